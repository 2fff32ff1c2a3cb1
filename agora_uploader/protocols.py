"""
Protocols (Interfaces) for Dependency Inversion.

Small, focused interfaces so the orchestrator pieces can be tested with fakes.
"""
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from .models import DataFile, FlowFile, ImportSession, UploadProgress


@runtime_checkable
class IAPIClient(Protocol):
    """Interface for authenticated HTTP requests."""

    async def get(self, endpoint: str, use_basic: bool = False) -> Any:
        """GET request to API."""
        ...

    async def post(self, endpoint: str, json: Optional[Dict] = None) -> Any:
        """POST request to API."""
        ...

    async def post_form(self, endpoint: str, data: Dict[str, str], files: Dict[str, Any]) -> Any:
        """Multipart POST request to API."""
        ...


@runtime_checkable
class IAgoraGateway(Protocol):
    """Interface for the Agora import endpoints."""

    async def create_import(self) -> ImportSession:
        ...

    async def upload_chunk(
        self,
        import_id: int,
        fields: Dict[str, str],
        filename: str,
        payload: bytes,
    ) -> None:
        ...

    async def get_flowfile(self, transfer_id: str) -> FlowFile:
        ...

    async def complete_import(self, import_id: int, payload: Dict[str, str]) -> None:
        ...

    async def get_progress(self, import_id: int) -> UploadProgress:
        ...

    async def get_result(self, import_id: int) -> List[List[DataFile]]:
        ...
