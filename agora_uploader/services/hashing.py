"""
File digests used for verification.

SHA-256 is compared against the flowfile content hash after chunk assembly,
SHA-1 against the datafile digest the server reports after import.
"""
import asyncio
import hashlib
from pathlib import Path

HASH_BLOCK_SIZE = 1024 * 1024


def _hash_file(path: Path, algorithm: str) -> str:
    hasher = hashlib.new(algorithm)
    with open(path, "rb") as f:
        while True:
            block = f.read(HASH_BLOCK_SIZE)
            if not block:
                break
            hasher.update(block)
    return hasher.hexdigest()


async def sha256_file(path: Path) -> str:
    """Calculate SHA-256 of file without blocking the event loop."""
    return await asyncio.to_thread(_hash_file, path, "sha256")


async def sha1_file(path: Path) -> str:
    """Calculate SHA-1 of file without blocking the event loop."""
    return await asyncio.to_thread(_hash_file, path, "sha1")
