"""Bundling of small files into size-bounded zip archives."""
import asyncio
import logging
from pathlib import Path
from typing import AsyncIterator, List, Sequence, Tuple
from zipfile import ZIP_DEFLATED, ZipFile

from ..models import MB, UploadUnit

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".agora_upload"


class ZipBundler:
    """
    Packs zip candidates into archives inside a temporary directory.

    One archive is open at a time. The size is checked after each member is
    written, so the member that pushes an archive over ``max_zip_size`` is
    always fully contained in it and the next member starts a new archive.
    """

    def __init__(self, temp_dir: Path, max_zip_size: int):
        self._temp_dir = Path(temp_dir)
        self._max_zip_size = max_zip_size

    async def bundle(self, candidates: Sequence[UploadUnit]) -> AsyncIterator[UploadUnit]:
        """
        Yield closed archives as upload units, in candidate order.

        Args:
            candidates: Zip-candidate units

        Yields:
            UploadUnit for each closed archive, marked delete_after_upload
        """
        candidates = list(candidates)
        index = 0
        while index < len(candidates):
            archive, members = await asyncio.to_thread(self._write_archive, candidates, index)
            index += len(members)
            logger.debug("Closed %s with %d file(s)", archive.target_path, len(members))
            yield archive

    def _write_archive(self, candidates: List[UploadUnit], start: int) -> Tuple[UploadUnit, List[UploadUnit]]:
        archive_name = f"upload_{start}{ARCHIVE_SUFFIX}"
        archive_path = self._temp_dir / archive_name
        logger.debug("Creating zip file: %s", archive_path)

        members: List[UploadUnit] = []
        with open(archive_path, "wb") as fh, ZipFile(
            fh, "w", compression=ZIP_DEFLATED, allowZip64=True, strict_timestamps=False
        ) as zf:
            for candidate in candidates[start:]:
                logger.debug(
                    "Adding file to zip: %s (path in zipfile: %s)",
                    candidate.source_path,
                    candidate.target_path,
                )
                zf.write(candidate.source_path, candidate.target_path)
                members.append(candidate)
                if fh.tell() > self._max_zip_size:
                    logger.debug(
                        "Zip file exceeded %d MB --> uploading it", self._max_zip_size // MB
                    )
                    break

        unit = UploadUnit(source_path=archive_path, target_path=archive_name, delete_after_upload=True)
        return unit, members
