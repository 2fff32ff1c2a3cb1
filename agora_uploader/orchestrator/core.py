"""Core orchestrator - coordinates the whole upload workflow."""
import logging
import tempfile
from pathlib import Path
from typing import Optional, Sequence, Union

import httpx

from ..models import MB, ImportOptions, UploadConfig, UploadOutcome
from ..services.agora import AgoraService
from ..services.api_client import HTTPAPIClient, TransportConfig
from ..utils.events import EventEmitter

from .chunked_upload import ChunkedUploader
from .hash_verifier import HashVerifier
from .import_session import ImportCoordinator
from .path_classifier import classify_paths
from .worker_pool import UploadWorkerPool
from .zip_bundler import ZipBundler

logger = logging.getLogger(__name__)

TEMP_DIR_PREFIX = "agora_app"


class UploadOrchestrator:
    """
    Orchestrates uploads into an Agora import session.

    Usage:
        transport = TransportConfig("https://agora.example.com", api_key=key)
        async with UploadOrchestrator(transport) as uploader:
            outcome = await uploader.upload_path(folder, ImportOptions(target_folder_id=12))
    """

    def __init__(
        self,
        transport: TransportConfig,
        config: Optional[UploadConfig] = None,
        events: Optional[EventEmitter] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            transport: Server URL, credentials and TLS settings
            config: Upload configuration
            events: Emitter receiving unit events (see UploadWorkerPool)
            http_transport: Optional httpx transport, used by tests
        """
        self._transport = transport
        self._config = config or UploadConfig()
        self._events = events or EventEmitter()
        self._http_transport = http_transport

        # initialized in __aenter__
        self._api_client: Optional[HTTPAPIClient] = None
        self._agora: Optional[AgoraService] = None

    @property
    def events(self) -> EventEmitter:
        return self._events

    async def __aenter__(self):
        self._api_client = HTTPAPIClient(self._transport, transport=self._http_transport)
        await self._api_client.__aenter__()
        self._agora = AgoraService(self._api_client)
        return self

    async def __aexit__(self, *args):
        if self._api_client:
            await self._api_client.__aexit__(*args)

    async def upload_path(
        self,
        path: Union[str, Path],
        options: Optional[ImportOptions] = None,
        wait: bool = True,
        timeout: float = -1,
        verify: bool = False,
    ) -> UploadOutcome:
        """Upload a single file or folder; see ``upload``."""
        path = Path(path)
        options = options or ImportOptions()
        if options.extract_zip and path.exists():
            if path.is_dir():
                logger.warning('"--extract-zip" has no effect when uploading a directory and will be ignored')
            elif path.suffix.lower() != ".zip":
                logger.warning('no zip file found. "--extract-zip" will be ignored')

        logger.debug("Starting upload of %s to %s", path, self._transport.base_url)
        return await self.upload([path], options, wait=wait, timeout=timeout, verify=verify)

    async def upload(
        self,
        paths: Sequence[Union[str, Path]],
        options: Optional[ImportOptions] = None,
        wait: bool = False,
        timeout: float = -1,
        verify: bool = False,
    ) -> UploadOutcome:
        """
        Run the full pipeline for ``paths``.

        Args:
            paths: Files or folders to upload
            options: Parameters for the import "complete" action
            wait: Poll the import progress after completing
            timeout: Seconds to wait for the import; negative waits forever
            verify: Wait for the full import and reconcile the datafiles

        Returns:
            UploadOutcome with the per-unit results

        Raises:
            ImportSessionError: The import could not be created or completed
            ImportFailedError: The server reported a failed import
            ProgressTimeoutError: ``timeout`` elapsed while waiting
        """
        if self._agora is None:
            raise RuntimeError("UploadOrchestrator not initialized. Use 'async with' context.")
        wait = wait or verify

        logger.info("Preparing Data:")
        logger.info("-----------------")
        classified = classify_paths([Path(p) for p in paths], self._config.chunk_size)
        if not classified.files_only:
            logger.info(
                "Found %d files larger than %dMB which will be uploaded directly",
                len(classified.direct), self._config.chunk_size // MB,
            )
            logger.info("Found %d files which will be zipped and uploaded", len(classified.zip_candidates))

        logger.info("Uploading Data:")
        logger.info("-----------------")
        coordinator = ImportCoordinator(self._agora, self._config)
        session = await coordinator.create()
        outcome = UploadOutcome(import_id=session.id)

        uploader = ChunkedUploader(self._agora, session.id, self._config, events=self._events)
        verifier = None if self._config.dry_run else HashVerifier(self._agora, self._config)
        pool = UploadWorkerPool(uploader, verifier, self._config, events=self._events)

        with tempfile.TemporaryDirectory(prefix=TEMP_DIR_PREFIX) as temp_dir:
            bundler = ZipBundler(Path(temp_dir), self._config.max_zip_size)
            outcome.results = await pool.run(classified.direct, classified.zip_candidates, bundler)

        await coordinator.complete(session, options)
        if not wait:
            return outcome

        outcome.progress = await coordinator.wait(session, timeout=timeout, verify=verify)
        if verify:
            outcome.reconciliation = await coordinator.reconcile(session, classified.all_units)
            if outcome.all_imported:
                logger.info("All files were imported successfully!")
            else:
                logger.error("Not all files were imported successfully!")
        return outcome
