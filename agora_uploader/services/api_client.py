"""HTTP adapter for Agora API requests."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from ..errors import TransportError

logger = logging.getLogger(__name__)

API_KEY_SCHEME = "X-Agora-Api-Key"


@dataclass(frozen=True)
class TransportConfig:
    """
    Connection settings passed to every client.

    ``verify`` controls the TLS certificate check for this client only.
    """
    base_url: str
    api_key: str = ""
    username: str = ""
    password: str = ""
    verify: bool = True
    timeout: float = 300.0

    def with_api_key(self, api_key: str) -> "TransportConfig":
        return TransportConfig(
            base_url=self.base_url,
            api_key=api_key,
            username=self.username,
            password=self.password,
            verify=self.verify,
            timeout=self.timeout,
        )


class HTTPAPIClient:
    """
    HTTP client adapter for API calls.

    Implements IAPIClient protocol. Responses are returned as-is so callers
    can check the status codes their endpoint expects; transport failures are
    raised as TransportError.
    """

    def __init__(
        self,
        config: TransportConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def config(self) -> TransportConfig:
        return self._config

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            base_url=self._config.base_url,
            timeout=self._config.timeout,
            verify=self._config.verify,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    def _auth(self, use_basic: bool = False) -> Dict[str, Any]:
        if self._config.api_key and not use_basic:
            return {"headers": {"Authorization": f"{API_KEY_SCHEME} {self._config.api_key}"}}
        if self._config.username and self._config.password:
            return {"auth": httpx.BasicAuth(self._config.username, self._config.password)}
        return {}

    def _require_client(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("HTTPAPIClient not initialized. Use 'async with' context.")
        return self._client

    async def get(self, endpoint: str, use_basic: bool = False) -> httpx.Response:
        client = self._require_client()
        try:
            return await client.get(endpoint, **self._auth(use_basic))
        except httpx.HTTPError as exc:
            raise TransportError(f"GET {endpoint} failed: {exc}") from exc

    async def post(self, endpoint: str, json: Optional[Dict] = None) -> httpx.Response:
        client = self._require_client()
        kwargs = self._auth()
        if json is not None:
            kwargs["json"] = json
        else:
            kwargs.setdefault("headers", {})["Content-Type"] = "application/json"
        try:
            return await client.post(endpoint, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"POST {endpoint} failed: {exc}") from exc

    async def post_form(
        self,
        endpoint: str,
        data: Dict[str, str],
        files: Dict[str, Any],
    ) -> httpx.Response:
        """POST a multipart/form-data body."""
        client = self._require_client()
        try:
            return await client.post(endpoint, data=data, files=files, **self._auth())
        except httpx.HTTPError as exc:
            raise TransportError(f"POST {endpoint} failed: {exc}") from exc
