"""
HeatAtlas - Artifact Lifecycle Store
=====================================
One directory per report id under ``REPORTS_DIR``:

    {report_id}/
        UHI_Research_Report.pdf | .txt
        UHI_Research_Report.html
        rasters/*.tif
        comprehensive_report.zip

Readiness is the existence of the archive. An in-memory state table sits
alongside it so a report that failed or expired in this process can be
told apart from one that was never requested; only the most recent
``MAX_TERMINAL_STATES`` failed or expired ids are remembered. Across
restarts only the archive-existence rule applies.
"""

import asyncio
import re
import shutil
import uuid
from collections import OrderedDict
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

from heatatlas.config import settings
from heatatlas.utils.exceptions import ArtifactNotFoundError, InputValidationError
from heatatlas.utils.logger import get_logger

logger = get_logger(__name__)

ARCHIVE_NAME = "comprehensive_report.zip"
RASTER_DIR_NAME = "rasters"

_REPORT_ID_RE = re.compile(r"^[0-9a-f]{32}$")

# Failed/expired ids remembered for status lookups; older ones fall back to not_found
MAX_TERMINAL_STATES = 1000


class ReportState(str, Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"
    EXPIRED = "expired"


TERMINAL_STATES = (ReportState.FAILED, ReportState.EXPIRED)


class ReportStatus(str, Enum):
    """Values exposed by the status endpoint."""

    COMPLETED = "completed"
    PROCESSING = "processing"
    FAILED = "failed"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"


class ArtifactStore:
    """Creates, inspects and expires report directories. Single process, single writer per id."""

    def __init__(
        self,
        root: Union[str, Path, None] = None,
        retention_seconds: Optional[float] = None,
        max_terminal_states: int = MAX_TERMINAL_STATES,
    ):
        self.root = Path(root or settings.REPORTS_DIR)
        self.retention_seconds = (
            settings.REPORT_RETENTION_SECONDS if retention_seconds is None else retention_seconds
        )
        self.max_terminal_states = max_terminal_states
        self._states: "OrderedDict[str, ReportState]" = OrderedDict()
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    # ========================================================================
    # IDENTIFIERS & PATHS
    # ========================================================================

    @staticmethod
    def new_report_id() -> str:
        return uuid.uuid4().hex

    @staticmethod
    def validate_id(report_id: str) -> str:
        """Only ids minted by ``new_report_id`` are accepted; rejects path tricks like ``../``."""
        if not report_id or not _REPORT_ID_RE.match(report_id):
            raise InputValidationError("Invalid report id", field="report_id", value=report_id)
        return report_id

    def report_dir(self, report_id: str) -> Path:
        return self.root / self.validate_id(report_id)

    def raster_dir(self, report_id: str) -> Path:
        return self.report_dir(report_id) / RASTER_DIR_NAME

    def archive_path_for(self, report_id: str) -> Path:
        return self.report_dir(report_id) / ARCHIVE_NAME

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    def create_report_dir(self, report_id: str) -> Path:
        report_dir = self.report_dir(report_id)
        (report_dir / RASTER_DIR_NAME).mkdir(parents=True, exist_ok=True)
        self._set_state(report_id, ReportState.PENDING)
        logger.info("Report directory created", report_id=report_id, path=str(report_dir))
        return report_dir

    def mark_ready(self, report_id: str):
        self._set_state(self.validate_id(report_id), ReportState.READY)

    def mark_failed(self, report_id: str):
        """Remove a partially built report right away."""
        self.delete_report_dir(report_id)
        self._set_state(report_id, ReportState.FAILED)
        logger.warning("Report marked failed", report_id=report_id)

    def delete_report_dir(self, report_id: str, expired: bool = False):
        report_dir = self.report_dir(report_id)
        timer = self._timers.pop(report_id, None)
        if timer is not None:
            timer.cancel()

        if report_dir.exists():
            shutil.rmtree(report_dir)
            logger.info("Report directory deleted", report_id=report_id, expired=expired)

        if expired:
            self._set_state(report_id, ReportState.EXPIRED)

    def _set_state(self, report_id: str, state: ReportState):
        self._states[report_id] = state
        self._states.move_to_end(report_id)
        if state not in TERMINAL_STATES:
            return

        terminal = [rid for rid, s in self._states.items() if s in TERMINAL_STATES]
        for stale_id in terminal[: max(0, len(terminal) - self.max_terminal_states)]:
            del self._states[stale_id]

    def schedule_cleanup(self, report_id: str, delay: Optional[float] = None):
        """Delete the whole directory ``delay`` seconds from now (default: retention window)."""
        self.validate_id(report_id)
        delay = self.retention_seconds if delay is None else delay

        loop = asyncio.get_running_loop()
        previous = self._timers.pop(report_id, None)
        if previous is not None:
            previous.cancel()
        self._timers[report_id] = loop.call_later(delay, self._expire, report_id)
        logger.info("Report cleanup scheduled", report_id=report_id, delay_seconds=delay)

    def _expire(self, report_id: str):
        self._timers.pop(report_id, None)
        try:
            self.delete_report_dir(report_id, expired=True)
        except OSError as e:
            logger.error("Report cleanup failed", report_id=report_id, error=str(e))

    def cancel_all(self):
        """Drop pending cleanup timers (process shutdown). Directories stay on disk."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

    # ========================================================================
    # QUERIES
    # ========================================================================

    def status_of(self, report_id: str) -> Dict[str, Any]:
        """``{status, ready, size?}``; ``ready`` is true iff the archive exists."""
        archive = self.archive_path_for(report_id)
        if archive.is_file():
            return {"status": ReportStatus.COMPLETED.value, "ready": True, "size": archive.stat().st_size}

        state = self._states.get(report_id)
        if state == ReportState.FAILED:
            status = ReportStatus.FAILED
        elif state == ReportState.EXPIRED:
            status = ReportStatus.EXPIRED
        elif self.report_dir(report_id).exists():
            status = ReportStatus.PROCESSING
        else:
            status = ReportStatus.NOT_FOUND
        return {"status": status.value, "ready": False, "size": None}

    def require_archive(self, report_id: str) -> Path:
        archive = self.archive_path_for(report_id)
        if not archive.is_file():
            raise ArtifactNotFoundError(report_id)
        return archive


artifact_store = ArtifactStore()
