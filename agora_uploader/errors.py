"""Exception hierarchy for agora_uploader."""
from typing import Optional


class UploaderError(RuntimeError):
    """Base class for all uploader failures."""


class ConnectivityError(UploaderError):
    """Raised when the server cannot be reached."""


class AuthenticationError(UploaderError):
    """Raised when the API key is missing, invalid or cannot be obtained."""


class TransportError(UploaderError):
    """Raised on an httpx transport failure or an unexpected HTTP status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ChunkUploadError(TransportError):
    """Raised when a chunk exhausts its upload attempts."""

    def __init__(self, message: str, chunk_index: int, attempts: int, status_code: Optional[int] = None):
        super().__init__(message, status_code)
        self.chunk_index = chunk_index
        self.attempts = attempts


class UnitReadError(UploaderError):
    """Raised when a local file cannot be read consistently during upload."""


class ChunkAssemblyError(UploaderError):
    """Raised when the server reports that joining the chunks failed."""


class HashMismatchError(UploaderError):
    """Raised when the assembled server hash never matched the local hash."""

    def __init__(self, message: str, local_hash: str, server_hash: str):
        super().__init__(message)
        self.local_hash = local_hash
        self.server_hash = server_hash


class VerificationTimeoutError(UploaderError):
    """Raised when chunk assembly did not finish within the polling bound."""


class ImportSessionError(UploaderError):
    """Raised when the import session cannot be created or completed."""


class ImportFailedError(UploaderError):
    """Raised when the server reports a failed import."""


class ProgressTimeoutError(UploaderError):
    """Raised when waiting for the import exceeds the caller's timeout."""


class CLIError(UploaderError):
    """Raised when CLI validation/execution fails."""
