"""
agora_uploader - Bulk uploads into Agora import sessions.

Small files inside folders are bundled into zip archives, everything else is
sent in 100 MB chunks by a pool of workers. Each transfer is verified against
the server's SHA-256 before the import is completed.

Usage:
    from agora_uploader import UploadOrchestrator, TransportConfig, ImportOptions

    transport = TransportConfig("https://agora.example.com", api_key=api_key)
    async with UploadOrchestrator(transport) as uploader:
        outcome = await uploader.upload_path(
            folder,
            ImportOptions(target_folder_id=42),
            verify=True,
        )
    for result in outcome.failed_units:
        print(result.filename, result.error)
"""
from .orchestrator import UploadOrchestrator
from .models import (
    ImportOptions,
    UnitResult,
    UnitStatus,
    UploadConfig,
    UploadOutcome,
    UploadProgress,
    UploadUnit,
)
from .services import AgoraService, HTTPAPIClient, TransportConfig, obtain_api_key
from .errors import UploaderError

__version__ = "0.1.0"
__all__ = [
    # Main
    "UploadOrchestrator",
    # Models
    "ImportOptions",
    "UnitResult",
    "UnitStatus",
    "UploadConfig",
    "UploadOutcome",
    "UploadProgress",
    "UploadUnit",
    # Services
    "AgoraService",
    "HTTPAPIClient",
    "TransportConfig",
    "obtain_api_key",
    # Errors
    "UploaderError",
]
