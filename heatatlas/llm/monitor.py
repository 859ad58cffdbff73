"""Narration request metrics: totals, rates, timings and error counts, plus one log line per request."""

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from heatatlas.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class RequestTracker:
    section: str
    started: float = field(default_factory=time.monotonic)
    id: str = field(default_factory=lambda: f"req_{uuid.uuid4().hex[:12]}")


class NarrationMonitor:

    def __init__(self):
        self.reset()

    def reset(self):
        self.total_requests = 0
        self.successful_requests = 0
        self.failed_requests = 0
        self.fallback_used = 0
        self.requests_by_section: Dict[str, Dict[str, float]] = {}
        self.errors_by_type: Dict[str, int] = {}

    def start_request(self, section: str) -> RequestTracker:
        return RequestTracker(section=section)

    def end_request(
        self,
        tracker: RequestTracker,
        success: bool,
        error: Optional[BaseException] = None,
        used_fallback: bool = False,
    ):
        duration_ms = (time.monotonic() - tracker.started) * 1000

        self.total_requests += 1
        if used_fallback:
            self.fallback_used += 1
        elif success:
            self.successful_requests += 1
        else:
            self.failed_requests += 1

        section = self.requests_by_section.setdefault(tracker.section, {"count": 0, "total_ms": 0.0})
        section["count"] += 1
        section["total_ms"] += duration_ms

        if error is not None:
            name = type(error).__name__
            self.errors_by_type[name] = self.errors_by_type.get(name, 0) + 1

        logger.info(
            "Narration request finished",
            request_id=tracker.id,
            section=tracker.section,
            duration_ms=round(duration_ms),
            success=success,
            fallback=used_fallback,
            error=str(error) if error else None,
        )

    def get_metrics(self) -> Dict[str, Any]:
        total = self.total_requests
        total_ms = sum(s["total_ms"] for s in self.requests_by_section.values())
        return {
            "total_requests": total,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "fallback_used": self.fallback_used,
            "success_rate": f"{(self.successful_requests / total * 100) if total else 0:.2f}%",
            "fallback_rate": f"{(self.fallback_used / total * 100) if total else 0:.2f}%",
            "average_response_ms": round(total_ms / total) if total else 0,
            "requests_by_section": {
                name: {"count": int(s["count"]), "average_ms": round(s["total_ms"] / s["count"])}
                for name, s in self.requests_by_section.items()
            },
            "errors_by_type": dict(self.errors_by_type),
        }
