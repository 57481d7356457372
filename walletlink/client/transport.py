from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from walletlink.core.flow_session import HEADER_NAME
from walletlink.utils.exceptions import NetworkException, exception_from_envelope


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedMessage:
    message: str
    nonce: str
    purpose: str
    address: Optional[str] = None
    already_linked: bool = False


class HubTransport(ABC):
    """Request/response channel from the client flow to the hub."""

    @abstractmethod
    async def issue_challenge(self, purpose: str, address: Optional[str]) -> IssuedMessage: ...

    @abstractmethod
    async def verify_and_bind(self, *, address: str, signature: str, nonce: str, message: str) -> dict[str, Any]: ...

    @abstractmethod
    async def login(self, *, address: str, signature: str, nonce: str, message: str) -> dict[str, Any]: ...

    @abstractmethod
    async def unbind(self) -> dict[str, Any]: ...

    @abstractmethod
    async def check_binding(self, address: str) -> dict[str, Any]: ...

    @abstractmethod
    async def lookup_account(self, address: str) -> Optional[str]: ...


class HttpHubTransport(HubTransport):
    """httpx-based transport for the `/api/v1/wallet` endpoints.

    Keeps the flow-session value returned by the challenge endpoint and sends
    it back on verification, so the hub finds the nonce it stored for us.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        access_token: Optional[str] = None,
        api_prefix: str = "/api/v1",
    ) -> None:
        self.client = client
        self.access_token = access_token
        self.api_prefix = api_prefix.rstrip("/")
        self.flow_session: Optional[str] = None

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        if self.flow_session:
            headers[HEADER_NAME] = self.flow_session
        return headers

    async def _request(self, method: str, path: str, *, json: Any = None) -> httpx.Response:
        url = f"{self.api_prefix}{path}"
        try:
            response = await self.client.request(method, url, json=json, headers=self._headers())
        except httpx.TimeoutException as exc:
            raise NetworkException("The server did not respond in time", details={"path": path}) from exc
        except httpx.TransportError as exc:
            raise NetworkException(details={"path": path, "reason": type(exc).__name__}) from exc

        flow_session = response.headers.get(HEADER_NAME)
        if flow_session:
            self.flow_session = flow_session

        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = None
            logger.debug("transport.error path=%s status=%s", path, response.status_code)
            raise exception_from_envelope(response.status_code, payload)
        return response

    async def issue_challenge(self, purpose: str, address: Optional[str]) -> IssuedMessage:
        body: dict[str, Any] = {"purpose": purpose}
        if address:
            body["address"] = address
        data = (await self._request("POST", "/wallet/challenge", json=body)).json()
        return IssuedMessage(
            message=data["message"],
            nonce=data["nonce"],
            purpose=data["purpose"],
            address=data.get("address"),
            already_linked=bool(data.get("already_linked")),
        )

    async def verify_and_bind(self, *, address: str, signature: str, nonce: str, message: str) -> dict[str, Any]:
        body = {"address": address, "signature": signature, "nonce": nonce, "message": message}
        return (await self._request("POST", "/wallet/link", json=body)).json()

    async def login(self, *, address: str, signature: str, nonce: str, message: str) -> dict[str, Any]:
        body = {"address": address, "signature": signature, "nonce": nonce, "message": message}
        data = (await self._request("POST", "/wallet/login", json=body)).json()
        # Later link/unlink calls in the same client act as the logged-in account.
        self.access_token = data.get("access_token") or self.access_token
        return data

    async def unbind(self) -> dict[str, Any]:
        return (await self._request("DELETE", "/wallet/link")).json()

    async def check_binding(self, address: str) -> dict[str, Any]:
        return (await self._request("POST", "/wallet/link/check", json={"address": address})).json()

    async def lookup_account(self, address: str) -> Optional[str]:
        data = (await self._request("GET", f"/wallet/accounts/{address}")).json()
        return data.get("account_id")
