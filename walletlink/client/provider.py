"""Wallet provider boundary used by the client flow.

A provider is whatever holds the user's keys: a browser wallet bridged over
some IPC, a hardware device, or a local key for headless use. The flow only
needs three calls and three notifications from it.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional, Protocol

from eth_account import Account
from eth_account.signers.local import LocalAccount

from walletlink.core.wallet.signature import sign_message
from walletlink.utils.exceptions import (
    ConflictException,
    NoWalletDetectedException,
    UnauthorizedException,
    UserRejectedException,
    WalletLinkException,
)


logger = logging.getLogger(__name__)


# EIP-1193 provider error codes.
RPC_USER_REJECTED = 4001
RPC_UNAUTHORIZED = 4100
RPC_DISCONNECTED = 4900
RPC_CHAIN_DISCONNECTED = 4901
RPC_REQUEST_PENDING = -32002


def provider_error(code: int, message: str | None = None) -> WalletLinkException:
    """Translate an EIP-1193 error into the flow's exception types."""
    if code == RPC_USER_REJECTED:
        return UserRejectedException(message)
    if code == RPC_UNAUTHORIZED:
        return UnauthorizedException(message or "The wallet has not authorized this site")
    if code in (RPC_DISCONNECTED, RPC_CHAIN_DISCONNECTED):
        return NoWalletDetectedException(message or "The wallet is disconnected")
    if code == RPC_REQUEST_PENDING:
        return ConflictException(
            message or "A wallet request is already pending. Please check your wallet.",
            details={"rpc_code": code},
        )
    return WalletLinkException(message, details={"rpc_code": code})


class ProviderListener(Protocol):
    async def on_accounts_changed(self, addresses: list[str]) -> None: ...

    async def on_chain_changed(self, chain_id: str) -> None: ...

    async def on_disconnect(self) -> None: ...


class WalletProvider(ABC):
    def __init__(self) -> None:
        self._listeners: list[ProviderListener] = []

    @abstractmethod
    async def get_accounts(self) -> list[str]:
        """Accounts already authorized for this site; never prompts."""

    @abstractmethod
    async def request_accounts(self) -> list[str]:
        """Ask the user to expose accounts. May prompt, may raise UserRejectedException."""

    @abstractmethod
    async def sign_message(self, address: str, message: str) -> str:
        """`personal_sign` the message. May prompt, may raise UserRejectedException."""

    async def get_chain_id(self) -> Optional[str]:
        return None

    def add_listener(self, listener: ProviderListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ProviderListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def emit_accounts_changed(self, addresses: list[str]) -> None:
        for listener in list(self._listeners):
            await listener.on_accounts_changed(list(addresses))

    async def emit_chain_changed(self, chain_id: str) -> None:
        for listener in list(self._listeners):
            await listener.on_chain_changed(chain_id)

    async def emit_disconnect(self) -> None:
        for listener in list(self._listeners):
            await listener.on_disconnect()


class LocalKeyWalletProvider(WalletProvider):
    """Provider backed by in-process private keys (scripts, bots, tests)."""

    def __init__(self, private_keys: Iterable[str | bytes] = (), *, chain_id: str = "0x1") -> None:
        super().__init__()
        self._accounts: list[LocalAccount] = [Account.from_key(k) for k in private_keys]
        self._authorized = False
        self._chain_id = chain_id

    @property
    def addresses(self) -> list[str]:
        return [a.address for a in self._accounts]

    async def get_accounts(self) -> list[str]:
        return self.addresses if self._authorized else []

    async def request_accounts(self) -> list[str]:
        self._authorized = True
        return self.addresses

    async def sign_message(self, address: str, message: str) -> str:
        for account in self._accounts:
            if account.address.lower() == address.lower():
                return sign_message(account.key, message)
        raise UnauthorizedException("Requested account is not managed by this wallet")

    async def get_chain_id(self) -> Optional[str]:
        return self._chain_id

    async def switch_account(self, private_key: str | bytes) -> None:
        selected = Account.from_key(private_key)
        self._accounts = [selected] + [a for a in self._accounts if a.address != selected.address]
        self._authorized = True
        await self.emit_accounts_changed(self.addresses)

    async def switch_chain(self, chain_id: str) -> None:
        self._chain_id = chain_id
        await self.emit_chain_changed(chain_id)


class ProviderReadiness:
    """Resolved once, when a wallet provider becomes available.

    Replaces polling for the provider: callers await `wait()` with a bound and
    get NoWalletDetectedException if nothing shows up in time.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._provider: Optional[WalletProvider] = None

    @property
    def provider(self) -> Optional[WalletProvider]:
        return self._provider

    def is_ready(self) -> bool:
        return self._event.is_set()

    def register(self, provider: WalletProvider) -> None:
        if self._provider is not None:
            logger.debug("provider.already_registered ignored=%s", type(provider).__name__)
            return
        self._provider = provider
        self._event.set()

    async def wait(self, timeout: float = 3.0) -> WalletProvider:
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            raise NoWalletDetectedException(details={"waited_seconds": timeout})
        assert self._provider is not None
        return self._provider
