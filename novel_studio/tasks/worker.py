"""
Background execution of a single task attempt.

The scheduler starts one TaskWorker thread per attempt. The worker loads the
book detail, hands it to the execution gateway registered for the track type
and reports the outcome back to the manager, which finalizes the track and
picks the next queued one.
"""

import logging
import threading
import time
from typing import Optional, Tuple, TYPE_CHECKING

from .cancellation import CancellationToken, TaskCanceledError
from .models import EntryID, TaskChunk, TaskStatus, TrackType

if TYPE_CHECKING:
    from .manager import TaskManager

logger = logging.getLogger(__name__)

BOOK_DETAIL_NOT_FOUND = "book detail not found"


class TaskWorker(threading.Thread):
    """
    Runs one execution attempt of one track.

    Features:
    - Fresh cancellation token per attempt
    - Live pause predicate evaluated against the shared entry list
    - Chunk progress forwarded to the manager as the gateway reports it
    - Always hands the outcome back, so the queue keeps moving
    """

    def __init__(
        self,
        manager: 'TaskManager',
        entry_id: EntryID,
        track_type: TrackType,
        cancellation_token: CancellationToken
    ):
        super().__init__(
            name=f"task-{track_type.value}-{entry_id[:8]}",
            daemon=True
        )
        self.manager = manager
        self.entry_id = entry_id
        self.track_type = track_type
        self.cancellation_token = cancellation_token

    def run(self):
        final_status = TaskStatus.FAILED
        error_message: Optional[str] = None
        try:
            final_status, error_message = self.execute()
        except Exception as e:
            logger.exception(
                "Unexpected error executing %s task for %s", self.track_type.value, self.entry_id
            )
            final_status, error_message = TaskStatus.FAILED, str(e)
        finally:
            self.manager._finish_attempt(
                self.entry_id,
                self.track_type,
                self.cancellation_token,
                final_status,
                error_message
            )

    def _on_progress(self, ratio: float, chunk: TaskChunk):
        self.manager._apply_chunk_update(self.entry_id, self.track_type, ratio, chunk)

    def _is_paused(self) -> bool:
        return self.manager.is_track_paused(self.entry_id, self.track_type)

    def execute(self) -> Tuple[TaskStatus, Optional[str]]:
        """
        Run the gateway for this attempt.

        Returns:
            (final_status, error_message)
        """
        task_logger = self.manager.task_logger(self.entry_id)

        try:
            book = self.manager.storage.load_book_detail(self.entry_id)
        except Exception as e:
            task_logger.log_error_with_context(e, "loading book detail", track=self.track_type)
            book = None

        if book is None:
            return TaskStatus.FAILED, BOOK_DETAIL_NOT_FOUND

        gateway = self.manager.gateways.get(self.track_type)
        if gateway is None:
            return TaskStatus.FAILED, f"no execution gateway registered for {self.track_type.value}"

        chunks = self.manager._snapshot_chunks(self.entry_id, self.track_type)
        task_logger.info(
            f"Execution started for {book.title!r}",
            metadata={'chunks': len(chunks)},
            track=self.track_type
        )

        start_time = time.time()
        try:
            gateway.generate(
                book,
                self.cancellation_token,
                self._on_progress,
                self._is_paused,
                chunks
            )
        except TaskCanceledError:
            return TaskStatus.CANCELED, None
        except Exception as e:
            task_logger.log_error_with_context(e, "task execution", track=self.track_type)
            return TaskStatus.FAILED, str(e)

        elapsed = time.time() - start_time
        if self.cancellation_token.is_canceled:
            return TaskStatus.CANCELED, None

        task_logger.info(
            f"Gateway returned after {elapsed:.1f}s",
            metadata={'processing_time': elapsed},
            track=self.track_type
        )
        return TaskStatus.COMPLETED, None
