"""Input path classification for uploads."""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List

from ..models import UploadUnit

logger = logging.getLogger(__name__)


@dataclass
class ClassifiedPaths:
    """Upload units split by transfer strategy."""
    direct: List[UploadUnit] = field(default_factory=list)
    zip_candidates: List[UploadUnit] = field(default_factory=list)
    files_only: bool = True

    @property
    def all_units(self) -> List[UploadUnit]:
        return self.direct + self.zip_candidates


def classify_paths(paths: Iterable[Path], chunk_size: int) -> ClassifiedPaths:
    """
    Sort input paths into direct uploads and zip candidates.

    Args:
        paths: Files or folders, in order
        chunk_size: Files of at least this size inside folders are uploaded
            directly, smaller ones are bundled

    Returns:
        ClassifiedPaths; ``files_only`` is False when any input was a folder
    """
    classified = ClassifiedPaths()

    for raw in paths:
        path = Path(raw)
        if not path.exists():
            logger.debug("Skipping missing path: %s", path)
            continue

        if path.is_dir():
            classified.files_only = False
            for item in sorted(path.rglob("*")):
                if not item.is_file():
                    continue
                unit = UploadUnit(source_path=item, target_path=item.relative_to(path).as_posix())
                if item.stat().st_size < chunk_size:
                    classified.zip_candidates.append(unit)
                else:
                    classified.direct.append(unit)
        else:
            classified.direct.append(UploadUnit(source_path=path.absolute(), target_path=path.name))

    return classified
