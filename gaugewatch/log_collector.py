"""
Log Collector - recent log entries for the operator dashboard.

Keeps a ring of recent records plus separate error/warning rings and
groups camera problems so the dashboard can hint at a fix.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional


@dataclass
class LogEntry:
    """One captured record."""
    timestamp: datetime
    level: str
    source: str
    message: str
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_str(self) -> str:
        return f"[{self.timestamp.strftime('%H:%M:%S')}] {self.level} {self.source}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
            "source": self.source,
            "message": self.message,
        }


class LogCollector(logging.Handler):
    """
    Handler buffering records for the dashboard.
    Errors can trigger an optional callback.
    """

    def __init__(self, max_entries: int = 100, on_error: Callable = None):
        super().__init__()
        self.buffer: deque = deque(maxlen=max_entries)
        self.error_buffer: deque = deque(maxlen=20)
        self.warning_buffer: deque = deque(maxlen=20)
        self._on_error_callback = on_error

        self.setFormatter(logging.Formatter(
            '%(asctime)s | %(levelname)-8s | %(name)-15s | %(message)s',
            datefmt='%H:%M:%S'
        ))

    def emit(self, record: logging.LogRecord):
        try:
            entry = LogEntry(
                timestamp=datetime.fromtimestamp(record.created),
                level=record.levelname,
                source=record.name,
                message=record.getMessage(),
                extra={
                    "lineno": record.lineno,
                    "funcName": record.funcName,
                }
            )

            self.buffer.append(entry)

            if record.levelno >= logging.ERROR:
                self.error_buffer.append(entry)
                if self._on_error_callback:
                    self._on_error_callback(entry)
            elif record.levelno >= logging.WARNING:
                self.warning_buffer.append(entry)

        except Exception:
            self.handleError(record)

    def get_recent_logs(self, n: int = 20, level: str = None) -> List[LogEntry]:
        """Last n entries, optionally at or above a level."""
        entries = list(self.buffer)
        if level:
            level_no = getattr(logging, level.upper(), 0)
            entries = [e for e in entries if getattr(logging, e.level, 0) >= level_no]
        return entries[-n:]

    def get_errors(self, n: int = 10) -> List[LogEntry]:
        return list(self.error_buffer)[-n:]

    def get_warnings(self, n: int = 10) -> List[LogEntry]:
        return list(self.warning_buffer)[-n:]

    def analyze_patterns(self) -> Dict[str, List[LogEntry]]:
        """Group recent errors by camera problem type."""
        patterns = {
            "permission_issues": [],
            "bandwidth_issues": [],
            "recognition_issues": [],
            "other_issues": [],
        }

        for entry in self.get_errors(20):
            msg_lower = entry.message.lower()
            source_lower = entry.source.lower()

            if "permission" in msg_lower or "denied" in msg_lower:
                patterns["permission_issues"].append(entry)
            elif source_lower.startswith("recognition") or "ocr" in msg_lower:
                patterns["recognition_issues"].append(entry)
            elif source_lower.startswith(("feed", "camera")) or "camera" in msg_lower:
                patterns["bandwidth_issues"].append(entry)
            else:
                patterns["other_issues"].append(entry)

        return patterns

    def get_suggestions(self) -> List[str]:
        """Operator hints derived from the error patterns."""
        patterns = self.analyze_patterns()
        suggestions = []

        if patterns["permission_issues"]:
            suggestions.append("Camera access is denied. Add the service user to the 'video' group and rediscover cameras.")

        if patterns["bandwidth_issues"]:
            suggestions.append("A camera failed to start. Spread cameras across USB controllers or switch some feeds off, then retry.")

        if patterns["recognition_issues"]:
            suggestions.append("OCR requests are failing. Check the recognition API key and network access.")

        return suggestions

    def summary(self, n: int = 20) -> Dict[str, Any]:
        return {
            "recent": [e.to_dict() for e in self.get_recent_logs(n)],
            "errors": [e.to_dict() for e in self.get_errors()],
            "warnings": [e.to_dict() for e in self.get_warnings()],
            "suggestions": self.get_suggestions(),
        }


# Global instance
_log_collector: Optional[LogCollector] = None


def get_log_collector() -> LogCollector:
    """Global collector, created on first use."""
    global _log_collector
    if _log_collector is None:
        _log_collector = LogCollector(max_entries=200)
    return _log_collector


def setup_log_collector(on_error: Callable = None) -> LogCollector:
    """Create the collector and attach it to the root logger."""
    global _log_collector
    root_logger = logging.getLogger()
    if _log_collector is not None:
        root_logger.removeHandler(_log_collector)

    _log_collector = LogCollector(max_entries=200, on_error=on_error)
    root_logger.addHandler(_log_collector)

    return _log_collector
