"""Services for agora_uploader."""
from .agora import AgoraService, obtain_api_key
from .api_client import HTTPAPIClient, TransportConfig
from .hashing import sha1_file, sha256_file

__all__ = [
    "AgoraService",
    "HTTPAPIClient",
    "TransportConfig",
    "obtain_api_key",
    "sha1_file",
    "sha256_file",
]
