"""
Agora Service - Single Responsibility: speak the Agora REST API.

One method per endpoint; each checks the status code its endpoint is
expected to return and raises from the errors module otherwise.
"""
import logging
from typing import Any, Callable, Dict, List, TypeVar

import httpx

from ..errors import AuthenticationError, ConnectivityError, ImportSessionError, TransportError
from ..models import DataFile, FlowFile, ImportSession, UploadProgress
from ..protocols import IAPIClient
from .api_client import HTTPAPIClient, TransportConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

VERSION_ENDPOINT = "/api/v1/version/"
CURRENT_USER_ENDPOINT = "/api/v1/user/current/"
APIKEY_ENDPOINT = "/api/v1/apikey/"
IMPORT_ENDPOINT = "/api/v1/import/"


def import_endpoint(import_id: int, action: str) -> str:
    return f"{IMPORT_ENDPOINT}{import_id}/{action}/"


def flowfile_endpoint(transfer_id: str) -> str:
    return f"/api/v1/flowfile/{transfer_id}/"


def _decode(response: httpx.Response, parse: Callable[[Any], T], what: str) -> T:
    """Parse a JSON body; a malformed payload is reported as TransportError."""
    try:
        return parse(response.json())
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        raise TransportError(
            f"malformed {what} response from the server: {exc}", status_code=response.status_code
        ) from exc


class AgoraService:
    """Typed access to the Agora endpoints used by the uploader."""

    def __init__(self, api_client: IAPIClient):
        """
        Initialize service.

        Args:
            api_client: Authenticated HTTP client
        """
        self._api = api_client

    async def ping(self) -> bool:
        """Liveness probe; False when the server answers with another status."""
        try:
            response = await self._api.get(VERSION_ENDPOINT)
        except TransportError as exc:
            raise ConnectivityError(f"cannot connect to the Agora server: {exc}") from exc
        return response.status_code == 200

    async def check_connection(self) -> bool:
        """Validate the configured credentials against the current user."""
        try:
            response = await self._api.get(CURRENT_USER_ENDPOINT)
        except TransportError as exc:
            raise ConnectivityError(f"cannot connect to the Agora server: {exc}") from exc
        return response.status_code == 200

    async def get_api_key(self) -> str:
        """Exchange basic credentials for the user's API key."""
        try:
            response = await self._api.get(APIKEY_ENDPOINT, use_basic=True)
        except TransportError as exc:
            raise ConnectivityError(f"cannot connect to the Agora server: {exc}") from exc

        if response.status_code == 404:
            raise AuthenticationError(
                "no api-key found. Please create an api-key in your Agora user profile"
            )
        if response.status_code > 299:
            raise AuthenticationError(
                f"could not get the api-key. http status = {response.status_code}"
            )

        key = _decode(response, lambda data: data.get("key") or "", "api-key")
        if not key:
            raise AuthenticationError("the server returned an empty api-key")
        return key

    async def create_import(self) -> ImportSession:
        response = await self._api.post(IMPORT_ENDPOINT)
        if response.status_code != 201:
            raise ImportSessionError(
                f"could not get the import session. http status = {response.status_code}"
            )
        session = _decode(response, ImportSession.from_json, "import session")
        logger.debug("Created import session %d", session.id)
        return session

    async def upload_chunk(
        self,
        import_id: int,
        fields: Dict[str, str],
        filename: str,
        payload: bytes,
    ) -> None:
        response = await self._api.post_form(
            import_endpoint(import_id, "upload"),
            data=fields,
            files={"file": (filename, payload, "application/octet-stream")},
        )
        if response.status_code != 200:
            raise TransportError(
                f"bad status: {response.status_code}", status_code=response.status_code
            )

    async def get_flowfile(self, transfer_id: str) -> FlowFile:
        response = await self._api.get(flowfile_endpoint(transfer_id))
        if response.status_code != 200:
            raise TransportError(
                "failed to get the hash of the file from the server. "
                f"http status = {response.status_code}",
                status_code=response.status_code,
            )
        return _decode(response, FlowFile.from_json, "flowfile")

    async def complete_import(self, import_id: int, payload: Dict[str, str]) -> None:
        response = await self._api.post(import_endpoint(import_id, "complete"), json=payload)
        if response.status_code != 204:
            raise ImportSessionError(
                f'the "complete" request was invalid. http status = {response.status_code}. '
                "make sure the target folder does exist"
            )

    async def get_progress(self, import_id: int) -> UploadProgress:
        response = await self._api.get(import_endpoint(import_id, "progress"))
        if response.status_code != 200:
            raise TransportError(
                f"could not get the upload progress. http status = {response.status_code}",
                status_code=response.status_code,
            )
        return _decode(response, UploadProgress.from_json, "progress")

    async def get_result(self, import_id: int) -> List[List[DataFile]]:
        """Datafiles of every result entry, one list per entry."""
        response = await self._api.get(import_endpoint(import_id, "result"))
        if response.status_code != 200:
            raise TransportError(
                f"could not get the import result. http status = {response.status_code}",
                status_code=response.status_code,
            )
        return _decode(
            response,
            lambda data: [
                [DataFile.from_json(item) for item in (entry.get("datafiles") or [])]
                for entry in data
            ],
            "import result",
        )


async def obtain_api_key(config: TransportConfig, transport=None) -> str:
    """
    Exchange username/password for an API key and validate it.

    Args:
        config: Transport settings carrying username and password
        transport: Optional httpx transport (tests)

    Returns:
        The validated API key
    """
    async with HTTPAPIClient(config, transport=transport) as client:
        service = AgoraService(client)
        if not await service.ping():
            raise ConnectivityError(f"cannot connect to the Agora server at {config.base_url}")
        api_key = await service.get_api_key()

    async with HTTPAPIClient(config.with_api_key(api_key), transport=transport) as client:
        if not await AgoraService(client).check_connection():
            raise AuthenticationError("cannot connect to the Agora server with the api-key")
    return api_key
