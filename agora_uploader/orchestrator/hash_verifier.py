"""Post-transfer verification of assembled uploads."""
import asyncio
import logging
from pathlib import Path
from typing import Optional

from ..errors import ChunkAssemblyError, HashMismatchError, VerificationTimeoutError
from ..models import FlowFileState, TransferSession, UploadConfig, UploadUnit
from ..protocols import IAgoraGateway
from ..services.hashing import sha256_file

logger = logging.getLogger(__name__)


class HashVerifier:
    """
    Polls the flowfile of a transfer until the server has joined the chunks
    and its content hash equals the local SHA-256.

    The server hash may still settle after assembly, so a mismatch is polled
    again; polling stops after ``hash_max_attempts`` requests.
    """

    def __init__(self, gateway: IAgoraGateway, config: Optional[UploadConfig] = None):
        self._gateway = gateway
        self._config = config or UploadConfig()

    async def verify(self, unit: UploadUnit, session: TransferSession) -> str:
        """
        Verify an uploaded unit.

        Returns:
            The matching SHA-256 hex digest

        Raises:
            ChunkAssemblyError: Server failed to join the chunks
            HashMismatchError: Assembled hash still differed at the bound
            VerificationTimeoutError: Never assembled within the bound
            TransportError: Flowfile query returned a non-success status
        """
        path = Path(unit.source_path)
        local_hash = await sha256_file(path)
        server_hash = ""

        for attempt in range(1, self._config.hash_max_attempts + 1):
            flowfile = await self._gateway.get_flowfile(session.transfer_id)

            if flowfile.state == FlowFileState.ASSEMBLED:
                server_hash = flowfile.content_hash
                if server_hash == local_hash:
                    logger.debug("Hash verified for %s: %s", unit.name, local_hash)
                    return local_hash
                logger.debug(
                    "Hash mismatch for %s (attempt %d): local=%s server=%s",
                    unit.name, attempt, local_hash, server_hash,
                )
            elif flowfile.state in (FlowFileState.FAILED, FlowFileState.FAILED_ALT):
                raise ChunkAssemblyError(
                    f"failed to upload {path}: there was an error joining the chunks"
                )

            if attempt < self._config.hash_max_attempts:
                await asyncio.sleep(self._config.hash_poll_interval)

        if server_hash:
            raise HashMismatchError(
                f"hashes do not match for file {path}",
                local_hash=local_hash,
                server_hash=server_hash,
            )
        raise VerificationTimeoutError(
            f"chunks of {path} were not assembled after {self._config.hash_max_attempts} checks"
        )
