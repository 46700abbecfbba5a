"""
Process-wide diagnostic sink.

Collects classified failures/warnings and per-attempt request traces so
that a debugging console (or `careersync sync --diagnostics`) can show
what happened during a sync. Both buffers are bounded; the oldest records
are dropped first.

Captured errors are mirrored to the standard logger as well, so nothing
is lost when no console is attached.
"""
import json
import logging
import threading
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

MAX_ERRORS = 100
MAX_TRACES = 200


class Severity(str, Enum):
    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    DEBUG = "debug"


_LOG_LEVELS = {
    Severity.ERROR: logging.ERROR,
    Severity.WARN: logging.WARNING,
    Severity.INFO: logging.INFO,
    Severity.DEBUG: logging.DEBUG,
}


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


@dataclass
class CapturedError:
    id: str
    severity: Severity
    source: str
    message: str
    details: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class RequestTrace:
    """One attempt of one outbound request."""

    id: str
    context: str
    attempt: int
    status: str  # "success" or "error"
    status_code: Optional[int] = None
    duration_ms: Optional[float] = None
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class DiagnosticReporter:
    """Bounded, thread-safe collector of errors and request traces."""

    def __init__(self, max_errors: int = MAX_ERRORS, max_traces: int = MAX_TRACES):
        self._lock = threading.Lock()
        self._errors: Deque[CapturedError] = deque(maxlen=max_errors)
        self._traces: Deque[RequestTrace] = deque(maxlen=max_traces)

    def capture(
        self,
        source: str,
        message: str,
        *,
        severity: Severity = Severity.ERROR,
        details: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Record a failure or warning. Returns the record id."""
        record = CapturedError(
            id=_new_id("err"),
            severity=Severity(severity),
            source=source,
            message=message,
            details=details,
            context=dict(context or {}),
        )
        with self._lock:
            self._errors.appendleft(record)
        logger.log(_LOG_LEVELS[record.severity], "[%s] %s", source, message)
        return record.id

    def record_trace(
        self,
        context: str,
        attempt: int,
        *,
        status: str,
        status_code: Optional[int] = None,
        duration_ms: Optional[float] = None,
        error: Optional[str] = None,
    ) -> str:
        trace = RequestTrace(
            id=_new_id("trace"),
            context=context,
            attempt=attempt,
            status=status,
            status_code=status_code,
            duration_ms=duration_ms,
            error=error,
        )
        with self._lock:
            self._traces.appendleft(trace)
        return trace.id

    @property
    def errors(self) -> List[CapturedError]:
        """Newest first."""
        with self._lock:
            return list(self._errors)

    @property
    def traces(self) -> List[RequestTrace]:
        """Newest first."""
        with self._lock:
            return list(self._traces)

    def clear_errors(self) -> None:
        with self._lock:
            self._errors.clear()

    def clear_traces(self) -> None:
        with self._lock:
            self._traces.clear()

    def export_all(self) -> str:
        """Serialize everything to a JSON document for offline debugging."""
        payload = {
            "exportedAt": datetime.now(timezone.utc).isoformat(),
            "errors": [asdict(e) for e in self.errors],
            "traces": [asdict(t) for t in self.traces],
        }
        return json.dumps(payload, indent=2, default=str)


_reporter: Optional[DiagnosticReporter] = None


def get_reporter() -> DiagnosticReporter:
    global _reporter
    if _reporter is None:
        _reporter = DiagnosticReporter()
    return _reporter
