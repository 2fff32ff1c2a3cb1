"""Console rendering and progress helpers for the agora-upload CLI."""
from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)
from rich.table import Table

from .models import ReconciliationEntry, ReconciliationStatus, UnitResult, UploadOutcome, UploadUnit
from .utils.events import EventEmitter, UnitProgress

console = Console()


def _human_size(value: int) -> str:
    size = float(max(value, 0))
    units = ["B", "KB", "MB", "GB", "TB"]
    unit_idx = 0
    while size >= 1024.0 and unit_idx < len(units) - 1:
        size /= 1024.0
        unit_idx += 1
    if unit_idx == 0:
        return f"{int(size)} {units[unit_idx]}"
    return f"{size:.2f} {units[unit_idx]}"


def render_configuration_summary(config: Dict[str, Any]) -> None:
    """Render startup configuration summary."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else str(value)
        table.add_row(key, rendered)

    console.print(
        Panel(
            table,
            title="[bold green]agora-upload[/bold green]",
            subtitle="[dim]Agora uploader[/dim]",
            border_style="blue",
        )
    )


def render_reconciliation(entries: Sequence[ReconciliationEntry]) -> None:
    """Render the per-file import check."""
    if not entries:
        return
    palette = {
        ReconciliationStatus.IMPORTED: "green",
        ReconciliationStatus.FAILED: "red",
        ReconciliationStatus.UNKNOWN: "yellow",
        ReconciliationStatus.MISSING: "red",
    }
    table = Table(title="Checking Imports", show_lines=False)
    table.add_column("Status", justify="left")
    table.add_column("File", style="white")
    for entry in entries:
        color = palette[entry.status]
        table.add_row(f"[{color}]{entry.status.name}[/{color}]", str(entry.unit.source_path))
    console.print(table)


class UploadProgressDisplay:
    """Event-based console display for the upload workers."""

    def __init__(self):
        self._active_tasks: Dict[str, TaskID] = {}
        self._sizes: Dict[str, int] = {}
        self._uploaded = 0
        self._failed = 0
        self._live: Optional[Live] = None
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold green]{task.fields[label]}", justify="left"),
            BarColumn(bar_width=42),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            expand=False,
            console=console,
        )

    def attach(self, events: EventEmitter) -> None:
        events.on("unit_start", self.on_unit_start)
        events.on("chunk_uploaded", self.on_chunk_uploaded)
        events.on("unit_complete", self.on_unit_complete)
        events.on("unit_fail", self.on_unit_fail)

    def _start_live(self) -> None:
        if self._live is not None:
            return
        self._live = Live(
            self._progress,
            console=console,
            refresh_per_second=8,
            vertical_overflow="visible",
        )
        self._live.start()

    def stop(self) -> None:
        if self._live is None:
            return
        self._live.stop()
        self._live = None

    def _emit_timeline(self, status: str, name: str, size_bytes: int = 0, error: Optional[str] = None) -> None:
        stamp = time.strftime("%H:%M:%S")
        size_label = f" {_human_size(size_bytes)}" if size_bytes > 0 else ""
        color = {"DONE": "green", "FAIL": "red"}.get(status, "white")
        error_label = f" cause={error}" if error else ""
        console.print(f"[dim]{stamp}[/dim] [{color}]{status:<4}[/{color}] {name}{size_label}{error_label}")

    def on_unit_start(self, unit: UploadUnit) -> None:
        self._start_live()
        try:
            total = Path(unit.source_path).stat().st_size
        except OSError:
            total = 0
        self._sizes[str(unit.source_path)] = total
        self._active_tasks[str(unit.source_path)] = self._progress.add_task(
            "upload", label=unit.name[:60], total=max(total, 1)
        )

    def on_chunk_uploaded(self, unit: UploadUnit, progress: UnitProgress) -> None:
        task_id = self._active_tasks.get(str(unit.source_path))
        if task_id is not None:
            self._progress.update(task_id, completed=progress.bytes_uploaded, total=max(progress.total_bytes, 1))

    def _finish_task(self, result: UnitResult) -> int:
        key = str(result.unit.source_path)
        task_id = self._active_tasks.pop(key, None)
        if task_id is not None:
            self._progress.remove_task(task_id)
        return self._sizes.pop(key, 0)

    def on_unit_complete(self, result: UnitResult) -> None:
        self._uploaded += 1
        size_bytes = self._finish_task(result)
        self._emit_timeline("DONE", result.unit.target_path, size_bytes)

    def on_unit_fail(self, result: UnitResult) -> None:
        self._failed += 1
        size_bytes = self._finish_task(result)
        self._emit_timeline("FAIL", result.unit.target_path, size_bytes, error=result.error)

    def on_finish(self, outcome: UploadOutcome) -> None:
        self.stop()
        state = outcome.progress.state if outcome.progress else "-"
        console.print(
            f"[bold]Finished[/bold] import={outcome.import_id} uploaded={self._uploaded} "
            f"failed={self._failed} state={state}"
        )
        render_reconciliation(outcome.reconciliation)
