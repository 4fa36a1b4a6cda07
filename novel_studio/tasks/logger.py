"""
Structured logging for tasks.

Each message is persisted to the task log database and forwarded to the
standard logging tree under "novel_studio.task.<entry_id>".
"""

import logging
import threading
import traceback
from typing import Optional, Dict, Any

from .models import EntryID, TrackType
from .storage import TaskLogStorage


class TaskLogger:
    """
    Logger for one bookshelf entry.

    Features:
    - Thread-safe logging operations
    - Persistence to SQLite via TaskLogStorage
    - Structured metadata support
    - Standard Python logging integration
    """

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    def __init__(self, entry_id: EntryID, storage: Optional[TaskLogStorage] = None):
        """
        Initialize logger for a specific entry.

        Args:
            entry_id: Entry id to log for
            storage: TaskLogStorage for persistence (None logs to Python logging only)
        """
        self.entry_id = entry_id
        self.storage = storage
        self._lock = threading.Lock()

        self._py_logger = logging.getLogger(f"novel_studio.task.{entry_id}")

    def _log(
        self,
        level: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        track: Optional[TrackType] = None
    ):
        track_value = track.value if track is not None else None
        with self._lock:
            if self.storage is not None:
                try:
                    self.storage.add_log(
                        entry_id=self.entry_id,
                        level=level,
                        message=message,
                        metadata=metadata,
                        track=track_value
                    )
                except Exception:
                    logging.getLogger(__name__).exception(
                        "Could not persist log entry for task %s", self.entry_id
                    )

            py_level = self._level_to_py_level(level)
            if self._py_logger.isEnabledFor(py_level):
                prefix = f"[{track_value}] " if track_value else ""
                extra_msg = f" [{metadata}]" if metadata else ""
                self._py_logger.log(py_level, f"{prefix}{message}{extra_msg}")

    @staticmethod
    def _level_to_py_level(level: str) -> int:
        """Convert string level to Python logging level."""
        return {
            "DEBUG": logging.DEBUG,
            "INFO": logging.INFO,
            "WARNING": logging.WARNING,
            "ERROR": logging.ERROR,
            "CRITICAL": logging.CRITICAL,
        }.get(level, logging.INFO)

    def debug(self, message: str, metadata: Optional[Dict[str, Any]] = None, track: Optional[TrackType] = None):
        self._log(self.DEBUG, message, metadata, track)

    def info(self, message: str, metadata: Optional[Dict[str, Any]] = None, track: Optional[TrackType] = None):
        self._log(self.INFO, message, metadata, track)

    def warning(self, message: str, metadata: Optional[Dict[str, Any]] = None, track: Optional[TrackType] = None):
        self._log(self.WARNING, message, metadata, track)

    def error(self, message: str, metadata: Optional[Dict[str, Any]] = None, track: Optional[TrackType] = None):
        self._log(self.ERROR, message, metadata, track)

    def critical(self, message: str, metadata: Optional[Dict[str, Any]] = None, track: Optional[TrackType] = None):
        self._log(self.CRITICAL, message, metadata, track)

    def log_transition(self, track: TrackType, old_status, new_status, reason: str = ""):
        """Log a track status change."""
        suffix = f" ({reason})" if reason else ""
        self.info(
            f"{old_status.value} -> {new_status.value}{suffix}",
            metadata={'from': old_status.value, 'to': new_status.value},
            track=track
        )

    def log_error_with_context(
        self,
        error: BaseException,
        context: str,
        track: Optional[TrackType] = None
    ):
        """
        Log an error with full context.

        Must be called from inside the except block so the traceback is available.

        Args:
            error: Exception that occurred
            context: Description of what was being done
            track: Track being processed (if applicable)
        """
        self.error(
            f"Error during {context}: {type(error).__name__}: {error}",
            metadata={
                "error_type": type(error).__name__,
                "error_message": str(error),
                "context": context,
                "traceback": traceback.format_exc(),
            },
            track=track
        )

    def get_recent_logs(self, limit: int = 50) -> list:
        if self.storage is None:
            return []
        return self.storage.get_logs(self.entry_id, limit=limit)
