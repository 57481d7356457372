"""Client-side wallet authentication flow.

One AuthSession drives one UI interaction (link a wallet, or log in with
one) through:

    Idle -> AwaitingAccounts -> AwaitingSignature -> Verifying -> Bound
                  \\                   \\                 \\
                   `-------------------`-----------------`--> Failed

Failed goes back to Idle on the next connect(). Every wallet prompt is
bounded by a timeout and every network call goes through the transport, so
no path leaves the session stuck in an in-flight phase.

Work started by an attempt that has since been cancelled, reset or
superseded is discarded: each attempt carries a generation number and the
nonce it was issued, and results are only applied while both are current.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from walletlink.client.provider import WalletProvider
from walletlink.client.transport import HubTransport
from walletlink.core.wallet.address import normalize_address, short_address
from walletlink.core.wallet.signature import recover_address
from walletlink.utils.exceptions import (
    AddressMismatchException,
    CancelledException,
    InvalidAddressException,
    UserRejectedException,
    WalletLinkException,
    WalletTimeoutException,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ACCOUNTS_TIMEOUT = 30.0
DEFAULT_SIGN_TIMEOUT = 60.0


class Phase(str, Enum):
    IDLE = "idle"
    AWAITING_ACCOUNTS = "awaiting_accounts"
    AWAITING_SIGNATURE = "awaiting_signature"
    VERIFYING = "verifying"
    BOUND = "bound"
    FAILED = "failed"


IN_FLIGHT_PHASES = frozenset({Phase.AWAITING_ACCOUNTS, Phase.AWAITING_SIGNATURE, Phase.VERIFYING})


class FlowMode(str, Enum):
    LINK = "link"
    LOGIN = "login"


@dataclass
class FlowResult:
    address: str
    mode: FlowMode
    payload: dict[str, Any] = field(default_factory=dict)


class _Superseded(Exception):
    pass


class AuthSession:
    def __init__(
        self,
        provider: WalletProvider,
        transport: HubTransport,
        *,
        mode: FlowMode = FlowMode.LINK,
        accounts_timeout: float = DEFAULT_ACCOUNTS_TIMEOUT,
        sign_timeout: float = DEFAULT_SIGN_TIMEOUT,
        verify_locally: bool = True,
        reverify_on_account_change: bool = True,
        on_change: Optional[Callable[["AuthSession"], None]] = None,
    ) -> None:
        self.provider = provider
        self.transport = transport
        self.mode = FlowMode(mode)
        self.accounts_timeout = accounts_timeout
        self.sign_timeout = sign_timeout
        self.verify_locally = verify_locally
        self.reverify_on_account_change = reverify_on_account_change
        self.on_change = on_change

        self.phase = Phase.IDLE
        self.wallet_address: Optional[str] = None
        self.chain_id: Optional[str] = None
        self.message: Optional[str] = None
        self.active_nonce: Optional[str] = None
        self.is_connecting = False
        self.has_requested_signature = False
        self.error: Optional[WalletLinkException] = None
        self.result: Optional[FlowResult] = None

        self._generation = 0
        self._task: Optional[asyncio.Task] = None

    # -- lifecycle -----------------------------------------------------------

    def attach(self) -> "AuthSession":
        self.provider.add_listener(self)
        return self

    def detach(self) -> None:
        self.provider.remove_listener(self)

    @property
    def in_flight(self) -> bool:
        return self.phase in IN_FLIGHT_PHASES

    @property
    def status_message(self) -> str:
        if self.phase == Phase.IDLE:
            return "Connect your wallet to continue."
        if self.phase == Phase.AWAITING_ACCOUNTS:
            return "Waiting for your wallet to share an account..."
        if self.phase == Phase.AWAITING_SIGNATURE:
            return "Please sign the message in your wallet."
        if self.phase == Phase.VERIFYING:
            return "Verifying signature..."
        if self.phase == Phase.BOUND:
            address = short_address(self.wallet_address or "")
            if self.mode == FlowMode.LOGIN:
                return f"Logged in with {address}."
            return f"Wallet {address} is linked to your account."
        return self.error.message if self.error else "Something went wrong. Please try again."

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self)

    def _set_phase(self, phase: Phase) -> None:
        if phase != self.phase:
            logger.debug("flow.phase %s -> %s mode=%s", self.phase.value, phase.value, self.mode.value)
        self.phase = phase
        self._notify()

    def _release_guards(self) -> None:
        self.is_connecting = False
        self.has_requested_signature = False
        self.active_nonce = None

    def _fail(self, exc: WalletLinkException) -> None:
        self.error = exc
        self._release_guards()
        self._set_phase(Phase.FAILED)

    def _ensure_current(self, generation: int, *, nonce: Optional[str] = None) -> None:
        if generation != self._generation:
            raise _Superseded()
        if nonce is not None and nonce != self.active_nonce:
            raise _Superseded()

    async def _bounded(self, awaitable: Awaitable[T], timeout: float, *, step: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError:
            raise WalletTimeoutException(details={"step": step, "timeout_seconds": timeout})

    # -- connect -------------------------------------------------------------

    def _start(self) -> asyncio.Task:
        if self._task is not None and not self._task.done():
            logger.debug("flow.connect ignored phase=%s (attempt already running)", self.phase.value)
            return self._task

        if self.phase == Phase.FAILED:
            self.error = None
            self._set_phase(Phase.IDLE)

        self._generation += 1
        self._task = asyncio.create_task(self._run(self._generation))
        return self._task

    async def connect(self) -> FlowResult:
        """Run (or join) the current attempt and return its result.

        A second call while an attempt is running joins it instead of opening
        another wallet prompt. Raises the attempt's WalletLinkException on failure.
        """
        if self.phase == Phase.BOUND and self.result is not None:
            return self.result
        return await asyncio.shield(self._start())

    async def _run(self, generation: int) -> FlowResult:
        self.is_connecting = True
        self.error = None
        try:
            self._set_phase(Phase.AWAITING_ACCOUNTS)
            accounts = await self._bounded(
                self.provider.request_accounts(), self.accounts_timeout, step="accounts"
            )
            self._ensure_current(generation)
            if not accounts:
                raise UserRejectedException("The wallet did not share any account")

            address = normalize_address(accounts[0])
            self.wallet_address = address
            self.chain_id = await self.provider.get_chain_id() or self.chain_id
            self._set_phase(Phase.AWAITING_SIGNATURE)

            issued = await self.transport.issue_challenge(self.mode.value, address)
            self._ensure_current(generation)
            self.active_nonce = issued.nonce
            self.message = issued.message
            self.has_requested_signature = True
            self._notify()

            signature = await self._bounded(
                self.provider.sign_message(address, issued.message), self.sign_timeout, step="signature"
            )
            self._ensure_current(generation, nonce=issued.nonce)

            if self.verify_locally:
                recovered = recover_address(issued.message, signature)
                if recovered != address:
                    raise AddressMismatchException(details={"claimed": address, "recovered": recovered})

            self._set_phase(Phase.VERIFYING)
            if self.mode == FlowMode.LINK:
                payload = await self.transport.verify_and_bind(
                    address=address, signature=signature, nonce=issued.nonce, message=issued.message
                )
            else:
                payload = await self.transport.login(
                    address=address, signature=signature, nonce=issued.nonce, message=issued.message
                )
            self._ensure_current(generation, nonce=issued.nonce)

            self.result = FlowResult(address=address, mode=self.mode, payload=payload)
            self._release_guards()
            self._set_phase(Phase.BOUND)
            logger.info("flow.bound mode=%s address=%s", self.mode.value, address)
            return self.result
        except _Superseded:
            logger.debug("flow.discarded_late_response generation=%s", generation)
            raise CancelledException(details={"reason": "superseded"})
        except asyncio.CancelledError:
            if generation != self._generation:
                raise CancelledException()
            raise
        except WalletLinkException as exc:
            if generation == self._generation:
                self._fail(exc)
            raise
        except Exception as exc:
            wrapped = WalletLinkException(f"Wallet flow failed: {exc}")
            if generation == self._generation:
                logger.exception("flow.crashed mode=%s", self.mode.value)
                self._fail(wrapped)
            raise wrapped from exc

    # -- cancellation --------------------------------------------------------

    async def _abort_in_flight(self) -> bool:
        task = self._task
        running = task is not None and not task.done()
        was_in_flight = running or self.in_flight

        self._generation += 1
        self._release_guards()
        self.is_connecting = False

        if running and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        return was_in_flight

    async def cancel(self) -> None:
        """User-initiated cancel. Idempotent; the session is immediately retryable."""
        if await self._abort_in_flight():
            self._fail(CancelledException())

    async def reset(self) -> None:
        await self._abort_in_flight()
        self.error = None
        self.result = None
        self.message = None
        self._set_phase(Phase.IDLE)

    async def unlink(self) -> dict[str, Any]:
        await self._abort_in_flight()
        payload = await self.transport.unbind()
        self.result = None
        self.error = None
        self._set_phase(Phase.IDLE)
        return payload

    # -- provider notifications ---------------------------------------------

    async def refresh_binding(self) -> None:
        """Re-derive Bound/Idle for the current address from the hub."""
        if self.mode != FlowMode.LINK or not self.wallet_address or self.in_flight:
            return
        try:
            status = await self.transport.check_binding(self.wallet_address)
        except WalletLinkException as exc:
            logger.debug("flow.refresh_binding failed code=%s", exc.code)
            self.error = exc
            return
        if status.get("is_linked"):
            self.result = FlowResult(address=self.wallet_address, mode=self.mode, payload=status)
            self._set_phase(Phase.BOUND)
        elif self.phase == Phase.BOUND:
            self.result = None
            self._set_phase(Phase.IDLE)

    async def on_accounts_changed(self, addresses: list[str]) -> None:
        was_bound = self.phase == Phase.BOUND
        previous = self.wallet_address
        await self._abort_in_flight()

        try:
            current = normalize_address(addresses[0]) if addresses else None
        except InvalidAddressException:
            current = None

        if current is None:
            self.wallet_address = None
            self.result = None
            self._set_phase(Phase.IDLE)
            return
        if was_bound and current == previous:
            return

        self.wallet_address = current
        self.result = None
        self.error = None
        self._set_phase(Phase.IDLE)
        await self.refresh_binding()

        if was_bound and self.phase != Phase.BOUND and self.reverify_on_account_change:
            task = self._start()
            task.add_done_callback(_retrieve_result)

    async def on_chain_changed(self, chain_id: str) -> None:
        self.chain_id = chain_id
        if await self._abort_in_flight() and self.phase != Phase.BOUND:
            self._set_phase(Phase.IDLE)

    async def on_disconnect(self) -> None:
        await self._abort_in_flight()
        self.wallet_address = None
        self.result = None
        self._set_phase(Phase.IDLE)


def _retrieve_result(task: asyncio.Task) -> None:
    # Background re-verification: the outcome is reflected in the session state.
    if not task.cancelled():
        task.exception()
