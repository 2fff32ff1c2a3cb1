"""Import session lifecycle: create, complete, wait and reconcile."""
import asyncio
import logging
import posixpath
import time
from typing import Dict, List, Optional, Sequence

from ..errors import ImportFailedError, ProgressTimeoutError
from ..models import (
    DataFile,
    ImportOptions,
    ImportSession,
    ReconciliationEntry,
    ReconciliationStatus,
    UploadConfig,
    UploadProgress,
    UploadUnit,
)
from ..protocols import IAgoraGateway
from ..services.hashing import sha1_file

logger = logging.getLogger(__name__)


def deduplicate_datafiles(entries: Sequence[Sequence[DataFile]]) -> List[DataFile]:
    """Merge result pages by server id; a later entry replaces an earlier one."""
    unique: Dict[int, DataFile] = {}
    for datafiles in entries:
        for datafile in datafiles:
            unique[datafile.id] = datafile
    return list(unique.values())


class ImportCoordinator:
    """Drives one server-side import session."""

    def __init__(self, gateway: IAgoraGateway, config: Optional[UploadConfig] = None):
        self._gateway = gateway
        self._config = config or UploadConfig()

    async def create(self) -> ImportSession:
        """Create the import session; any failure is fatal to the run."""
        return await self._gateway.create_import()

    async def complete(self, session: ImportSession, options: Optional[ImportOptions] = None) -> None:
        """Finalize the import once every upload unit has been processed."""
        payload = (options or ImportOptions()).to_payload()
        logger.debug("Completing import %d with %s", session.id, payload)
        await self._gateway.complete_import(session.id, payload)

    async def wait(self, session: ImportSession, timeout: float = -1, verify: bool = False) -> UploadProgress:
        """
        Poll progress until the import finishes.

        Args:
            session: Import session
            timeout: Seconds to wait; negative waits indefinitely
            verify: Wait for the fully imported state instead of the
                first finished state

        Returns:
            The final UploadProgress

        Raises:
            ImportFailedError: Server reported a failed import
            ProgressTimeoutError: ``timeout`` elapsed first
        """
        if verify:
            logger.info("Waiting for the Imports to finish...")
        else:
            logger.info("Waiting for the Uploads to finish...")

        start = time.monotonic()
        while timeout < 0 or time.monotonic() - start < timeout:
            progress = await self._gateway.get_progress(session.id)
            logger.debug(
                "Import %d: state=%d progress=%d%% tasks=%d/%d",
                session.id, progress.state, progress.progress,
                progress.tasks.finished, progress.tasks.count,
            )

            if progress.is_failed:
                raise ImportFailedError(f"the import {session.id} failed")
            if progress.is_finished and (not verify or progress.is_fully_imported):
                return progress

            await asyncio.sleep(self._config.progress_interval)

        raise ProgressTimeoutError(f"upload progress timeout after {timeout} s")

    async def reconcile(self, session: ImportSession, units: Sequence[UploadUnit]) -> List[ReconciliationEntry]:
        """
        Match imported datafiles to local units by base name and SHA-1.

        Marks matching units as imported. Mismatches, unreadable files and
        units without any datafile are reported per unit without aborting.
        """
        logger.info("Checking Imports:")
        logger.info("-----------------")

        entries = await self._gateway.get_result(session.id)
        if entries and not entries[0]:
            logger.info("The import did not report any datafiles")
            return []

        report: List[ReconciliationEntry] = []
        for datafile in deduplicate_datafiles(entries):
            datafile_name = posixpath.basename(datafile.name.replace("\\", "/"))
            for unit in units:
                if unit.imported or unit.name != datafile_name:
                    continue
                status = await self._check_unit(unit, datafile)
                logger.info("%-10s %s", f"{status.name}:", unit.source_path)
                report.append(ReconciliationEntry(unit=unit, status=status, datafile_id=datafile.id))
                break

        reported = {id(entry.unit) for entry in report}
        for unit in units:
            if id(unit) not in reported:
                logger.info("%-10s %s", "MISSING:", unit.source_path)
                report.append(ReconciliationEntry(unit=unit, status=ReconciliationStatus.MISSING))

        return report

    async def _check_unit(self, unit: UploadUnit, datafile: DataFile) -> ReconciliationStatus:
        try:
            local_sha1 = await sha1_file(unit.source_path)
        except OSError as e:
            logger.warning("Could not hash %s: %s", unit.source_path, e)
            return ReconciliationStatus.UNKNOWN
        if local_sha1 == datafile.sha1:
            unit.imported = True
            return ReconciliationStatus.IMPORTED
        return ReconciliationStatus.FAILED
