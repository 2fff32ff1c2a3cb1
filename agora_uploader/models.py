"""
Models for agora_uploader.

Dataclasses describing upload units, transfer sessions and the server
resources the uploader reads back.
"""
import math
import posixpath
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

MB = 1024 * 1024

DEFAULT_CHUNK_SIZE = 100 * MB
DEFAULT_MAX_ZIP_SIZE = 1024 * MB


class FlowFileState:
    """Chunk-assembly states reported by /api/v1/flowfile/."""
    ASSEMBLED = 2
    FAILED = 3
    FAILED_ALT = 5


class ImportState:
    """Import progress states reported by /api/v1/import/{id}/progress/."""
    FAILED = -1
    UPLOAD_FINISHED = 4
    IMPORT_FINISHED = 5


class UnitStatus(Enum):
    """Upload unit outcome."""
    SUCCESS = "success"
    FAILED = "failed"


class ReconciliationStatus(Enum):
    """Per-unit import reconciliation outcome."""
    IMPORTED = "imported"
    FAILED = "failed"
    UNKNOWN = "unknown"  # local hash could not be computed
    MISSING = "missing"  # no datafile reported for the unit


@dataclass
class UploadUnit:
    """One transferable object: an original file or a synthetic zip archive."""
    source_path: Path
    target_path: str
    delete_after_upload: bool = False
    imported: bool = False

    @property
    def name(self) -> str:
        return posixpath.basename(self.target_path)


@dataclass(frozen=True)
class TransferSession:
    """Chunk layout of a single unit transfer."""
    transfer_id: str
    chunk_size: int
    total_size: int
    total_chunks: int

    @classmethod
    def create(cls, total_size: int, chunk_size: int) -> "TransferSession":
        # a zero-byte unit is still sent as one empty chunk
        total_chunks = max(1, math.ceil(total_size / chunk_size))
        return cls(
            transfer_id=str(uuid.uuid4()),
            chunk_size=chunk_size,
            total_size=total_size,
            total_chunks=total_chunks,
        )

    def chunk_length(self, index: int) -> int:
        """Byte length of chunk ``index``; only the last chunk may be shorter."""
        if index < 0 or index >= self.total_chunks:
            raise IndexError(f"chunk index {index} out of range 0..{self.total_chunks - 1}")
        offset = index * self.chunk_size
        return min(self.chunk_size, self.total_size - offset)


@dataclass
class ImportSession:
    """Server-side import package."""
    id: int
    state: int = 0
    is_complete: bool = False
    error: str = ""
    target_id: Optional[int] = None
    target_type: Optional[int] = None
    extract_zip_files: bool = False
    created_date: Optional[str] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ImportSession":
        return cls(
            id=int(data["id"]),
            state=int(data.get("state") or 0),
            is_complete=bool(data.get("is_complete", False)),
            error=data.get("error") or "",
            target_id=data.get("target_id"),
            target_type=data.get("target_type"),
            extract_zip_files=bool(data.get("extract_zip_files", False)),
            created_date=data.get("created_date"),
        )


@dataclass(frozen=True)
class ProgressTasks:
    count: int = 0
    finished: int = 0
    error: int = 0
    ids: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class UploadProgress:
    """Snapshot of /api/v1/import/{id}/progress/."""
    state: int
    progress: int = 0
    tasks: ProgressTasks = field(default_factory=ProgressTasks)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "UploadProgress":
        tasks = data.get("tasks") or {}
        return cls(
            state=int(data.get("state", 0)),
            progress=int(data.get("progress") or 0),
            tasks=ProgressTasks(
                count=int(tasks.get("count") or 0),
                finished=int(tasks.get("finished") or 0),
                error=int(tasks.get("error") or 0),
                ids=list(tasks.get("ids") or []),
            ),
        )

    @property
    def is_finished(self) -> bool:
        return self.state in (ImportState.UPLOAD_FINISHED, ImportState.IMPORT_FINISHED)

    @property
    def is_fully_imported(self) -> bool:
        return self.state == ImportState.IMPORT_FINISHED and self.progress == 100

    @property
    def is_failed(self) -> bool:
        return self.state == ImportState.FAILED


@dataclass(frozen=True)
class FlowFile:
    state: int
    content_hash: str = ""

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "FlowFile":
        return cls(state=int(data.get("state", 0)), content_hash=data.get("content_hash") or "")


@dataclass(frozen=True)
class DataFile:
    """Server-reported file ingested by an import."""
    id: int
    name: str
    sha1: str = ""

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "DataFile":
        return cls(id=int(data["id"]), name=data.get("name") or "", sha1=data.get("sha1") or "")


@dataclass(frozen=True)
class UnitResult:
    """Immutable result of processing one upload unit."""
    unit: UploadUnit
    status: UnitStatus = UnitStatus.SUCCESS
    transfer_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == UnitStatus.SUCCESS

    @property
    def filename(self) -> str:
        return self.unit.name

    @classmethod
    def ok(cls, unit: UploadUnit, transfer_id: str):
        return cls(unit=unit, status=UnitStatus.SUCCESS, transfer_id=transfer_id)

    @classmethod
    def fail(cls, unit: UploadUnit, error: str, transfer_id: Optional[str] = None):
        return cls(unit=unit, status=UnitStatus.FAILED, transfer_id=transfer_id, error=error)


@dataclass(frozen=True)
class ReconciliationEntry:
    unit: UploadUnit
    status: ReconciliationStatus
    datafile_id: Optional[int] = None


@dataclass
class UploadOutcome:
    """Result of a complete upload run."""
    import_id: int
    results: List[UnitResult] = field(default_factory=list)
    progress: Optional[UploadProgress] = None
    reconciliation: List[ReconciliationEntry] = field(default_factory=list)

    @property
    def failed_units(self) -> List[UnitResult]:
        return [r for r in self.results if not r.success]

    @property
    def all_imported(self) -> bool:
        return all(e.status == ReconciliationStatus.IMPORTED for e in self.reconciliation)


@dataclass(frozen=True)
class UploadConfig:
    """Immutable configuration for upload operations."""
    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_zip_size: int = DEFAULT_MAX_ZIP_SIZE
    parallel_uploads: int = 3
    max_chunk_attempts: int = 3
    chunk_retry_delay: float = 0.5
    hash_poll_interval: float = 1.0
    hash_max_attempts: int = 600
    progress_interval: float = 5.0
    dry_run: bool = False

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.parallel_uploads < 1:
            raise ValueError("parallel_uploads must be at least 1")
        if self.max_chunk_attempts < 1:
            raise ValueError("max_chunk_attempts must be at least 1")
        if self.hash_max_attempts < 1:
            raise ValueError("hash_max_attempts must be at least 1")


@dataclass(frozen=True)
class ImportOptions:
    """Parameters sent with the import "complete" action."""
    target_folder_id: int = -1
    exam_id: int = -1
    series_id: int = -1
    task_definition_id: int = -1
    import_json: str = ""
    extract_zip: bool = False

    def to_payload(self) -> Dict[str, str]:
        """Build the complete body, only including meaningful values."""
        data: Dict[str, str] = {}
        if self.import_json:
            data["import_file"] = self.import_json
        if self.target_folder_id > 0:
            data["folder"] = str(self.target_folder_id)
        if self.exam_id > 0:
            data["exam"] = str(self.exam_id)
        if self.series_id > 0:
            data["series"] = str(self.series_id)
        if self.task_definition_id > 0:
            data["task_definition"] = str(self.task_definition_id)
        if self.extract_zip:
            data["extract_zip_files"] = "true"
        return data
