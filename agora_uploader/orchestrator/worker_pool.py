"""Fixed-size pool of upload workers fed by the direct and zip producers."""
import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from ..errors import UploaderError
from ..models import TransferSession, UnitResult, UploadConfig, UploadUnit
from ..utils.events import EventEmitter
from .chunked_upload import ChunkedUploader
from .hash_verifier import HashVerifier
from .zip_bundler import ZipBundler

logger = logging.getLogger(__name__)

_CLOSED = object()


class UploadWorkerPool:
    """
    Fixed pool of upload workers draining one shared queue.

    Two producers feed the queue: direct units as they are, and the zip
    bundler's archives. The queue is closed once both producers are done;
    ``run`` returns once every worker has drained it and exited.

    Events:
        unit_start(unit), chunk_uploaded(unit, UnitProgress),
        unit_complete(UnitResult), unit_fail(UnitResult)
    """

    def __init__(
        self,
        uploader: ChunkedUploader,
        verifier: Optional[HashVerifier],
        config: Optional[UploadConfig] = None,
        events: Optional[EventEmitter] = None,
    ):
        """
        Args:
            uploader: ChunkedUploader sharing the same event emitter
            verifier: HashVerifier, or None to skip verification (dry run)
            config: Upload configuration
            events: Emitter for unit events
        """
        self._config = config or UploadConfig()
        self._events = events or EventEmitter()
        self._uploader = uploader
        self._verifier = verifier

    @property
    def events(self) -> EventEmitter:
        return self._events

    async def run(
        self,
        direct_units: Sequence[UploadUnit],
        zip_candidates: Sequence[UploadUnit],
        bundler: ZipBundler,
    ) -> List[UnitResult]:
        """Upload everything and return one UnitResult per consumed unit."""
        worker_count = self._config.parallel_uploads
        queue: asyncio.Queue = asyncio.Queue(maxsize=worker_count)
        results: List[UnitResult] = []

        workers = [
            asyncio.create_task(self._worker(worker_id, queue, results))
            for worker_id in range(worker_count)
        ]
        producers = [
            asyncio.create_task(self._emit_direct(queue, direct_units)),
            asyncio.create_task(self._emit_archives(queue, bundler, zip_candidates)),
        ]

        try:
            producer_results = await asyncio.gather(*producers, return_exceptions=True)
        finally:
            for _ in workers:
                await queue.put(_CLOSED)
            await asyncio.gather(*workers)

        for outcome in producer_results:
            if isinstance(outcome, BaseException):
                raise outcome

        uploaded = sum(1 for r in results if r.success)
        logger.info("Uploads complete: %d successful, %d failed", uploaded, len(results) - uploaded)
        return results

    async def _emit_direct(self, queue: asyncio.Queue, units: Sequence[UploadUnit]) -> None:
        for unit in units:
            await queue.put(unit)

    async def _emit_archives(
        self,
        queue: asyncio.Queue,
        bundler: ZipBundler,
        candidates: Sequence[UploadUnit],
    ) -> None:
        async for archive in bundler.bundle(candidates):
            await queue.put(archive)

    async def _worker(self, worker_id: int, queue: asyncio.Queue, results: List[UnitResult]) -> None:
        while True:
            unit = await queue.get()
            if unit is _CLOSED:
                logger.debug("Worker %d exiting", worker_id)
                return
            results.append(await self._process(unit))

    async def _process(self, unit: UploadUnit) -> UnitResult:
        """Upload then verify one unit; failures stay with this unit."""
        await self._events.emit("unit_start", unit)
        session: Optional[TransferSession] = None
        try:
            session = await self._uploader.upload(unit)
            if self._verifier is not None:
                await self._verifier.verify(unit, session)
            result = UnitResult.ok(unit, session.transfer_id)
        except (UploaderError, OSError) as e:
            error_msg = str(e) or type(e).__name__
            logger.error("Could not upload the file %s: %s", unit.source_path, error_msg)
            result = UnitResult.fail(unit, error_msg, session.transfer_id if session else None)
        except Exception as e:
            # the worker must keep draining the queue
            error_msg = f"{type(e).__name__}: {e}"
            logger.exception("Unexpected error while uploading %s", unit.source_path)
            result = UnitResult.fail(unit, error_msg, session.transfer_id if session else None)
        finally:
            if unit.delete_after_upload:
                logger.debug("Removing temporary upload file: %s", unit.source_path)
                Path(unit.source_path).unlink(missing_ok=True)

        await self._events.emit("unit_complete" if result.success else "unit_fail", result)
        return result

