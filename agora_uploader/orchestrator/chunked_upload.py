"""Chunked multipart transfer of a single upload unit."""
import asyncio
import logging
from pathlib import Path
from typing import BinaryIO, Dict, Optional

from ..errors import ChunkUploadError, TransportError, UnitReadError
from ..models import TransferSession, UploadConfig, UploadUnit
from ..protocols import IAgoraGateway
from ..utils.events import EventEmitter, UnitProgress

logger = logging.getLogger(__name__)


def build_chunk_fields(unit: UploadUnit, session: TransferSession, index: int, length: int) -> Dict[str, str]:
    """Form fields describing one chunk of a flow.js style upload."""
    return {
        "description": "",
        "flowChunkNumber": str(index),
        "flowChunkSize": str(session.chunk_size),
        "flowCurrentChunkSize": str(length),
        "flowTotalSize": str(session.total_size),
        "flowIdentifier": session.transfer_id,
        "flowFilename": unit.target_path,
        "flowRelativePath": unit.target_path,
        "flowTotalChunks": str(session.total_chunks),
    }


def _progress(unit: UploadUnit, session: TransferSession, index: int) -> UnitProgress:
    return UnitProgress(
        name=unit.name,
        chunks_uploaded=index + 1,
        total_chunks=session.total_chunks,
        bytes_uploaded=min(session.total_size, (index + 1) * session.chunk_size),
        total_bytes=session.total_size,
    )


class ChunkedUploader:
    """
    Uploads a unit chunk by chunk, in strict index order.

    Each chunk gets ``max_chunk_attempts`` attempts; when a chunk runs out of
    attempts the unit is abandoned and the remaining chunks are never sent.
    """

    def __init__(
        self,
        gateway: IAgoraGateway,
        import_id: int,
        config: Optional[UploadConfig] = None,
        events: Optional[EventEmitter] = None,
    ):
        self._gateway = gateway
        self._import_id = import_id
        self._config = config or UploadConfig()
        self._events = events or EventEmitter()

    async def upload(self, unit: UploadUnit) -> TransferSession:
        """
        Transfer all chunks of ``unit``.

        Returns:
            The TransferSession whose transfer_id identifies the upload

        Raises:
            ChunkUploadError: A chunk failed on every attempt
            UnitReadError: The file shrank or could not be read
        """
        path = Path(unit.source_path)
        try:
            total_size = path.stat().st_size
        except OSError as exc:
            raise UnitReadError(f"could not get the file size of {path}: {exc}") from exc

        session = TransferSession.create(total_size, self._config.chunk_size)
        logger.info("Upload file: %s (%d chunk(s), id=%s)", path, session.total_chunks, session.transfer_id)

        try:
            fh = open(path, "rb")
        except OSError as exc:
            raise UnitReadError(f"could not open the file {path}: {exc}") from exc

        with fh:
            for index in range(session.total_chunks):
                payload = await self._read_chunk(fh, path, session, index)
                logger.debug("Uploading chunk %d/%d of %s", index, session.total_chunks, unit.name)
                await self._send_chunk(unit, session, index, payload)
                await self._events.emit("chunk_uploaded", unit, _progress(unit, session, index))

        return session

    async def _read_chunk(self, fh: BinaryIO, path: Path, session: TransferSession, index: int) -> bytes:
        expected = session.chunk_length(index)
        try:
            payload = await asyncio.to_thread(fh.read, session.chunk_size)
        except OSError as exc:
            raise UnitReadError(f"could not read chunk {index} of {path}: {exc}") from exc
        if len(payload) != expected:
            raise UnitReadError(
                f"{path} changed during upload: chunk {index} has {len(payload)} bytes, expected {expected}"
            )
        return payload

    async def _send_chunk(self, unit: UploadUnit, session: TransferSession, index: int, payload: bytes) -> None:
        if self._config.dry_run:
            return

        fields = build_chunk_fields(unit, session, index, len(payload))
        filename = Path(unit.source_path).name
        max_attempts = self._config.max_chunk_attempts

        for attempt in range(1, max_attempts + 1):
            try:
                await self._gateway.upload_chunk(self._import_id, fields, filename, payload)
                return
            except TransportError as exc:
                if attempt >= max_attempts:
                    logger.error(
                        "Failed to upload chunk %d/%d after %d attempts: %s",
                        index, session.total_chunks, attempt, exc,
                    )
                    raise ChunkUploadError(
                        f"chunk {index}/{session.total_chunks} of {unit.target_path} failed: {exc}",
                        chunk_index=index,
                        attempts=attempt,
                        status_code=exc.status_code,
                    ) from exc
                logger.warning(
                    "Retrying upload of chunk %d/%d (%d/%d): %s",
                    index, session.total_chunks, attempt, max_attempts, exc,
                )
                await asyncio.sleep(self._config.chunk_retry_delay * attempt)
