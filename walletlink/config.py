from typing import Any, ClassVar, FrozenSet

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./walletlink.db"

    # Database pool (applies to client/server DBs like Postgres; SQLite uses NullPool)
    DB_POOL_PRE_PING: bool = True
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT_SECONDS: int = 30
    DB_POOL_RECYCLE_SECONDS: int = 1800
    DB_SQLITE_BUSY_TIMEOUT_SECONDS: float = 15.0

    # Redis
    # When enabled, nonces, per-address bind locks, rate limits and revoked
    # token ids live in Redis so several hub processes can share them.
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_ENABLED: bool = False

    # JWT
    # NOTE: This default is intentionally insecure and must never be used outside dev/test.
    DEFAULT_JWT_SECRET: ClassVar[str] = "dev-secret-change-me-please-32chars!!"
    JWT_SECRET: str = DEFAULT_JWT_SECRET
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    JWT_REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Application
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    # Environment
    # Used for guardrails. Suggested values: dev|staging|prod.
    ENV: str = "dev"

    # Site identity embedded into every message the wallet is asked to sign.
    SITE_NAME: str = "WalletLink"
    SITE_DOMAIN: str = "localhost"

    # Wallet challenges
    WALLET_NONCE_TTL_SECONDS: int = 300
    # 16 bytes = 128 bits, the floor enforced by the guardrail below.
    WALLET_NONCE_BYTES: int = 16

    # Wallet-as-identity login
    WALLET_ALLOW_REGISTRATION: bool = True
    WALLET_DEFAULT_ROLE: str = "subscriber"
    # Comma-separated addresses that receive the administrator role on registration.
    WALLET_ADMIN_ADDRESSES: str = ""

    # Per-address serialization of bind attempts (Redis lock, when enabled)
    WALLET_BIND_LOCK_TTL_SECONDS: int = 15
    WALLET_BIND_LOCK_WAIT_SECONDS: float = 2.0

    # --- Flow session (identifies one browser flow for the nonce store) ---
    FLOW_SESSION_SECRET: str = "change-me-in-production"
    FLOW_SESSION_TTL_SEC: int = 86400  # 1 day
    FLOW_SESSION_CLOCK_SKEW_SEC: int = 300  # 5 min tolerance
    FLOW_SESSION_COOKIE_SECURE: bool = False

    # Browser origins allowed to call the API with credentials (local dev frontends by default).
    CORS_ALLOW_ORIGIN_REGEX: str = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

    # Rate limiting (in-memory, best-effort)
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_REQUESTS_PER_WINDOW: int = 120

    # Observability
    METRICS_ENABLED: bool = True

    # Admin API
    # NOTE: This default is intentionally insecure and must never be used outside dev/test.
    DEFAULT_ADMIN_TOKEN: ClassVar[str] = "dev-admin-token-change-me"
    ADMIN_TOKEN: str = DEFAULT_ADMIN_TOKEN

    # --- Guardrails ---
    # Fail-fast on obviously insecure secrets outside dev/test.
    _SAFE_ENVS: ClassVar[FrozenSet[str]] = frozenset({"dev", "development", "test", "testing"})
    _UNSAFE_PLACEHOLDERS: ClassVar[FrozenSet[str]] = frozenset({"change-me", "changeme", ""})
    _LOCAL_DOMAINS: ClassVar[FrozenSet[str]] = frozenset({"localhost", "127.0.0.1", "::1"})
    _MIN_NONCE_BYTES: ClassVar[int] = 16

    def model_post_init(self, __context: Any) -> None:
        # Runs on every Settings() instantiation (including module-level `settings = Settings()`).
        self._guardrail_nonce_entropy()
        if (self.ENV or "").strip().lower() not in self._SAFE_ENVS:
            self._guardrail_deployment()

    def _guardrail_nonce_entropy(self) -> None:
        if int(self.WALLET_NONCE_BYTES) < self._MIN_NONCE_BYTES:
            raise RuntimeError(
                f"WALLET_NONCE_BYTES must be at least {self._MIN_NONCE_BYTES} (128 bits). "
                f"Got {self.WALLET_NONCE_BYTES!r}."
            )
        if int(self.WALLET_NONCE_TTL_SECONDS) <= 0:
            raise RuntimeError("WALLET_NONCE_TTL_SECONDS must be positive")

    def _is_placeholder(self, value: str, default_value: str | None = None) -> bool:
        v = (value or "").strip().lower()
        if default_value is not None and v == default_value.lower():
            return True
        return v in self._UNSAFE_PLACEHOLDERS or "change-me" in v

    def _guardrail_deployment(self) -> None:
        """Refuse to start outside dev/test with settings that make signatures or tokens forgeable."""
        problems: list[str] = []
        if self._is_placeholder(self.JWT_SECRET, self.DEFAULT_JWT_SECRET):
            problems.append("JWT_SECRET")
        if self._is_placeholder(self.ADMIN_TOKEN, self.DEFAULT_ADMIN_TOKEN):
            problems.append("ADMIN_TOKEN")
        if self._is_placeholder(self.FLOW_SESSION_SECRET):
            problems.append("FLOW_SESSION_SECRET")
        # Embedded in every signed message.
        if (self.SITE_DOMAIN or "").strip().lower() in self._LOCAL_DOMAINS:
            problems.append("SITE_DOMAIN")
        if self.WALLET_DEFAULT_ROLE.strip().lower() == "administrator":
            problems.append("WALLET_DEFAULT_ROLE")

        if problems:
            raise RuntimeError(
                "Refusing to start with insecure default/placeholder settings outside dev/test: "
                f"{', '.join(problems)}. "
                f"Got ENV={self.ENV!r}. "
                "Set secure values via environment variables, or run with ENV=dev/test."
            )

    def admin_addresses(self) -> frozenset[str]:
        raw = str(self.WALLET_ADMIN_ADDRESSES or "")
        return frozenset(a.strip().lower() for a in raw.split(",") if a.strip())


settings = Settings()


def get_settings() -> Settings:
    """Return the global settings instance.

    Provided as a callable for FastAPI Depends() and test mocking convenience.
    """
    return settings
