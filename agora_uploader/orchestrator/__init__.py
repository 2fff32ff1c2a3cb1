"""Orchestrator package - coordinates upload workflows."""
from .core import UploadOrchestrator
from .chunked_upload import ChunkedUploader
from .hash_verifier import HashVerifier
from .import_session import ImportCoordinator
from .path_classifier import ClassifiedPaths, classify_paths
from .worker_pool import UploadWorkerPool
from .zip_bundler import ZipBundler

__all__ = [
    "UploadOrchestrator",
    "ChunkedUploader",
    "HashVerifier",
    "ImportCoordinator",
    "ClassifiedPaths",
    "classify_paths",
    "UploadWorkerPool",
    "ZipBundler",
]
