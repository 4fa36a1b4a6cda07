"""
High-level task management API.

TaskManager owns the bookshelf entry list. It schedules queued tracks onto
the global worker slot, exposes the lifecycle controls used by the UI
(pause, resume, cancel, retry, delete, clear) and recovers interrupted work
on startup.
"""

import copy
import logging
import threading
from typing import Optional, List, Dict, Any, Tuple

from ..config import TaskConfig
from .cancellation import CancellationToken
from .gateway import ExecutionGateway
from .logger import TaskLogger
from .models import (
    BookshelfEntry,
    ChunkStatus,
    EntryID,
    TaskChunk,
    TaskStatus,
    TrackType,
)
from .splitter import TaskSplitter
from .storage import BookshelfStorage, TaskLogStorage
from .store import TaskStateStore
from .worker import TaskWorker

logger = logging.getLogger(__name__)

AttemptKey = Tuple[EntryID, TrackType]


class TaskManager:
    """
    Scheduler and lifecycle controller for book tasks.

    Every entry-list mutation happens under one re-entrant lock, is published
    to the state store and then written to storage as a whole document.
    Execution gateways run on TaskWorker threads outside the lock.

    Example:
        manager = TaskManager(gateways={TrackType.ILLUSTRATION: my_gateway})
        manager.init()

        manager.enqueue_illustrations(book_id)
        manager.pause_task(book_id, TrackType.ILLUSTRATION)
        manager.resume_task(book_id, TrackType.ILLUSTRATION)
    """

    def __init__(
        self,
        config: Optional[TaskConfig] = None,
        storage: Optional[BookshelfStorage] = None,
        gateways: Optional[Dict[TrackType, ExecutionGateway]] = None,
        log_storage: Optional[TaskLogStorage] = None,
        splitter: Optional[TaskSplitter] = None
    ):
        """
        Initialize the task manager.

        Args:
            config: Task configuration (None loads it from the environment)
            storage: Bookshelf persistence (None uses config.cache_dir)
            gateways: Execution gateway per track type. Without any gateway
                the manager never dispatches work.
            log_storage: Task log database (None uses config.log_db_path)
            splitter: Chunk planner (None builds one from config)
        """
        self.config = config or TaskConfig.from_env()
        self.storage = storage or BookshelfStorage(self.config.cache_dir)
        self.gateways: Dict[TrackType, ExecutionGateway] = dict(gateways or {})
        self.log_storage = log_storage or TaskLogStorage(self.config.log_db_path)
        self.splitter = splitter or TaskSplitter(self.config)

        self.store = TaskStateStore()

        self._lock = threading.RLock()
        self._idle = threading.Condition(self._lock)
        self._cancellation_tokens: Dict[AttemptKey, CancellationToken] = {}
        self._running: Dict[AttemptKey, TaskWorker] = {}

    # Startup and persistence

    def init(self):
        """
        Load the bookshelf and demote interrupted work.

        Every running or queued track becomes paused, because the previous
        process may have exited before its chunk state was flushed. Nothing
        is re-queued automatically; see resume_all_tasks().
        """
        with self._lock:
            self._load()
            changed = False
            for entry in self.store.value:
                for track_type, track in entry.tracks():
                    if track.status in (TaskStatus.RUNNING, TaskStatus.QUEUED):
                        old_status = track.status
                        track.status = TaskStatus.PAUSED
                        self.task_logger(entry.id).log_transition(
                            track_type, old_status, TaskStatus.PAUSED, "startup recovery"
                        )
                        changed = True

            if changed:
                self._commit()
            logger.info("Task manager initialized with %d entries", len(self.store.value))

    def reload(self):
        """Re-read the bookshelf document after an external change."""
        with self._lock:
            self._load()

    def _load(self):
        try:
            entries = self.storage.load_all()
        except Exception:
            logger.exception("Failed to load task list from bookshelf")
            entries = []
        self.store.set(entries)

    def _save(self):
        try:
            self.storage.save_all(self.store.value)
        except Exception:
            logger.exception("Failed to save task list to bookshelf")

    def _commit(self):
        """Publish the current list to listeners, then persist it."""
        self.store.set(self.store.value)
        self._save()

    def close(self):
        """Close the task log database."""
        self.log_storage.close()

    # Queries

    @property
    def entries(self) -> List[BookshelfEntry]:
        return list(self.store.value)

    def get_entry(self, entry_id: EntryID) -> Optional[BookshelfEntry]:
        return self.store.get_entry(entry_id)

    def is_track_paused(self, entry_id: EntryID, track_type: TrackType) -> bool:
        with self._lock:
            entry = self.get_entry(entry_id)
            if entry is None:
                return True
            return entry.track(track_type).status == TaskStatus.PAUSED

    def get_running_tasks(self) -> List[AttemptKey]:
        """(entry_id, track_type) of every attempt holding a worker slot."""
        with self._lock:
            return list(self._running)

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until no attempt is executing.

        Returns:
            False if the timeout expired first
        """
        with self._idle:
            return self._idle.wait_for(lambda: not self._running, timeout)

    def task_logger(self, entry_id: EntryID) -> TaskLogger:
        return TaskLogger(entry_id, self.log_storage)

    def get_task_logs(
        self,
        entry_id: EntryID,
        level: Optional[str] = None,
        limit: int = 100,
        track: Optional[TrackType] = None
    ) -> List[Dict[str, Any]]:
        """
        Get log entries for a task, newest first.

        Args:
            entry_id: Entry id
            level: Filter by log level (None for all)
            limit: Maximum number of entries
            track: Filter by track (None for all)
        """
        return self.log_storage.get_logs(
            entry_id,
            level=level,
            limit=limit,
            track=track.value if track is not None else None
        )

    # Library membership

    def add_entry(self, entry: BookshelfEntry):
        """Add a newly imported book, or replace the entry with the same id."""
        with self._lock:
            entries = self.store.value
            for index, existing in enumerate(entries):
                if existing.id == entry.id:
                    entries[index] = entry
                    break
            else:
                entries.append(entry)
            self.task_logger(entry.id).info(f"Added to bookshelf: {entry.title}")
            self._commit()

    def remove_entry(self, entry_id: EntryID):
        """
        Remove a book from the library.

        Cancels its work, drops the entry, its cached book files and its logs.
        """
        with self._lock:
            if self.get_entry(entry_id) is None:
                return
            self.delete_task(entry_id)
            self.store.value[:] = [e for e in self.store.value if e.id != entry_id]
            self._commit()

        try:
            self.storage.remove_book_cache(entry_id)
        except OSError:
            logger.exception("Could not remove cache folder of %s", entry_id)
        self.log_storage.delete_logs(entry_id)

    # Enqueueing

    def enqueue(self, entry_id: EntryID, track_type: TrackType, chunks: List[TaskChunk]):
        """
        Queue a fresh generation attempt for one track.

        Args:
            entry_id: Entry id
            track_type: Track to queue
            chunks: The planned chunks (replace any previous ones)

        Raises:
            KeyError: If the entry does not exist
            ValueError: If the track is already queued or running, or chunks is empty
        """
        with self._lock:
            entry = self.get_entry(entry_id)
            if entry is None:
                raise KeyError(f"Unknown bookshelf entry: {entry_id}")

            track = entry.track(track_type)
            if track.status in (TaskStatus.QUEUED, TaskStatus.RUNNING) or (entry_id, track_type) in self._running:
                raise ValueError(f"{track_type.value} task for {entry.title!r} is already active")
            if not chunks:
                raise ValueError(f"No {track_type.value} work to do for {entry.title!r}")

            old_status = track.status
            track.chunks = list(chunks)
            track.status = TaskStatus.QUEUED
            track.error_message = None
            track.touch()
            track.created_at = track.updated_at

            self.task_logger(entry_id).log_transition(
                track_type, old_status, TaskStatus.QUEUED, f"{len(chunks)} chunks"
            )
            self._commit()

        self.process_queue()

    def _load_book_for_enqueue(self, entry_id: EntryID):
        book = self.storage.load_book_detail(entry_id)
        if book is None:
            raise ValueError(f"Book detail not found for {entry_id}")
        return book

    def enqueue_illustrations(self, entry_id: EntryID, scenes_per_chapter: Optional[int] = None):
        """Plan and queue the illustration track of a book."""
        book = self._load_book_for_enqueue(entry_id)
        chunks = self.splitter.split_for_illustrations(book, scenes_per_chapter)
        if not chunks:
            raise ValueError("Book content is too short to create illustration tasks")
        self.enqueue(entry_id, TrackType.ILLUSTRATION, chunks)

    def enqueue_translations(self, entry_id: EntryID):
        """Plan and queue the translation track of a book."""
        book = self._load_book_for_enqueue(entry_id)
        chunks = self.splitter.split_for_translations(book)
        if not chunks:
            raise ValueError("Book content is too short to create translation tasks")
        self.enqueue(entry_id, TrackType.TRANSLATION, chunks)

    def enqueue_video_generation(self, entry_id: EntryID):
        """Plan and queue the video generation track of a book."""
        book = self._load_book_for_enqueue(entry_id)
        chunks = self.splitter.split_for_videos(book)
        if not chunks:
            raise ValueError("Book has no illustrations to turn into videos")
        self.enqueue(entry_id, TrackType.VIDEO_GENERATION, chunks)

    # Scheduling

    def _select_next(self) -> Optional[AttemptKey]:
        """First queued track in list order, illustration before translation before video."""
        for track_type in TrackType:
            for entry in self.store.value:
                if (entry.id, track_type) in self._running:
                    continue
                if entry.track(track_type).status == TaskStatus.QUEUED:
                    return entry.id, track_type
        return None

    def process_queue(self):
        """
        Start the next eligible queued track if a worker slot is free.

        Safe to call at any time; does nothing when the slot is busy, when
        nothing is queued or when no gateway is registered.
        """
        with self._lock:
            if len(self._running) >= self.config.max_concurrent_tasks:
                logger.debug("Worker slot busy, %d task(s) running", len(self._running))
                return

            if not self.gateways:
                return

            selected = self._select_next()
            if selected is None:
                return

            entry_id, track_type = selected
            entry = self.get_entry(entry_id)
            track = entry.track(track_type)

            old_status = track.status
            track.status = TaskStatus.RUNNING
            track.error_message = None
            track.touch()

            token = CancellationToken()
            self._cancellation_tokens[selected] = token
            worker = TaskWorker(self, entry_id, track_type, token)
            self._running[selected] = worker

            self.task_logger(entry_id).log_transition(track_type, old_status, TaskStatus.RUNNING)
            self._commit()

            worker.start()

    def _snapshot_chunks(self, entry_id: EntryID, track_type: TrackType) -> List[TaskChunk]:
        with self._lock:
            entry = self.get_entry(entry_id)
            if entry is None:
                return []
            return copy.deepcopy(entry.track(track_type).chunks)

    def _apply_chunk_update(self, entry_id: EntryID, track_type: TrackType, ratio: float, chunk: TaskChunk):
        """Progress callback target. Dropped if the entry is gone or the track is not running."""
        with self._lock:
            entry = self.get_entry(entry_id)
            if entry is None:
                return

            track = entry.track(track_type)
            if track.status != TaskStatus.RUNNING:
                return

            target = track.find_chunk(chunk.id)
            if target is None:
                return

            target.status = ChunkStatus(chunk.status)
            track.touch()
            logger.debug(
                "%s %s chunk %s -> %s (%.0f%%)",
                entry_id, track_type.value, chunk.id, target.status.value, ratio * 100
            )
            self._commit()

    def _finish_attempt(
        self,
        entry_id: EntryID,
        track_type: TrackType,
        token: CancellationToken,
        final_status: TaskStatus,
        error_message: Optional[str]
    ):
        """
        Finalize an attempt, free its slot and schedule the next track.

        A normal return only completes a track that is still running. A track
        re-queued while the gateway was draining keeps its status whatever the
        outcome, so the next attempt picks it up.
        """
        key = (entry_id, track_type)
        with self._lock:
            entry = self.get_entry(entry_id)
            if entry is not None:
                track = entry.track(track_type)
                old_status = track.status
                task_logger = self.task_logger(entry_id)

                if old_status == TaskStatus.QUEUED or (
                    final_status == TaskStatus.COMPLETED and old_status != TaskStatus.RUNNING
                ):
                    task_logger.info(
                        f"Attempt ended while {old_status.value}; status kept",
                        track=track_type
                    )
                else:
                    track.status = final_status
                    track.error_message = error_message if final_status == TaskStatus.FAILED else None
                    track.touch()
                    task_logger.log_transition(track_type, old_status, final_status, error_message or "")

            if self._cancellation_tokens.get(key) is token:
                del self._cancellation_tokens[key]
            self._running.pop(key, None)
            self._commit()

            self.process_queue()
            self._idle.notify_all()

    # Lifecycle controls

    def pause_task(self, entry_id: EntryID, track_type: TrackType):
        """Pause a running track. The gateway stops at its next chunk boundary."""
        with self._lock:
            entry = self.get_entry(entry_id)
            if entry is None:
                return
            track = entry.track(track_type)
            if track.status != TaskStatus.RUNNING:
                return

            track.status = TaskStatus.PAUSED
            track.touch()
            self.task_logger(entry_id).log_transition(track_type, TaskStatus.RUNNING, TaskStatus.PAUSED)
            self._commit()

    def resume_task(self, entry_id: EntryID, track_type: TrackType):
        """Put a paused track back in the queue."""
        with self._lock:
            entry = self.get_entry(entry_id)
            if entry is None:
                return
            track = entry.track(track_type)
            if track.status != TaskStatus.PAUSED:
                return

            track.status = TaskStatus.QUEUED
            track.touch()
            self.task_logger(entry_id).log_transition(track_type, TaskStatus.PAUSED, TaskStatus.QUEUED)
            self._commit()

        self.process_queue()

    def resume_all_tasks(self):
        """Queue every paused track of every entry."""
        with self._lock:
            changed = False
            for entry in self.store.value:
                for track_type, track in entry.tracks():
                    if track.status == TaskStatus.PAUSED:
                        track.status = TaskStatus.QUEUED
                        track.touch()
                        self.task_logger(entry.id).log_transition(
                            track_type, TaskStatus.PAUSED, TaskStatus.QUEUED, "resume all"
                        )
                        changed = True
            if changed:
                self._commit()

        self.process_queue()

    def cancel_task(self, entry_id: EntryID):
        """
        Cancel an entry's work.

        Running attempts are signaled and finalize as canceled when their
        gateway returns. Queued tracks are canceled immediately.
        """
        with self._lock:
            entry = self.get_entry(entry_id)
            if entry is None:
                return

            for (token_entry_id, track_type), token in self._cancellation_tokens.items():
                if token_entry_id == entry_id:
                    token.cancel()
                    self.task_logger(entry_id).info("Cancellation requested", track=track_type)

            changed = False
            for track_type, track in entry.tracks():
                if track.status == TaskStatus.QUEUED:
                    track.status = TaskStatus.CANCELED
                    track.touch()
                    self.task_logger(entry_id).log_transition(track_type, TaskStatus.QUEUED, TaskStatus.CANCELED)
                    changed = True
            if changed:
                self._commit()

    def retry_task(self, entry_id: EntryID):
        """Queue every failed or canceled track again. Chunks are kept."""
        with self._lock:
            entry = self.get_entry(entry_id)
            if entry is None:
                return

            changed = False
            for track_type, track in entry.tracks():
                if track.status in (TaskStatus.FAILED, TaskStatus.CANCELED):
                    old_status = track.status
                    track.status = TaskStatus.QUEUED
                    track.error_message = None
                    track.touch()
                    self.task_logger(entry_id).log_transition(track_type, old_status, TaskStatus.QUEUED, "retry")
                    changed = True
            if not changed:
                return
            self._commit()

        self.process_queue()

    def clear_completed_tasks(self):
        """Reset every completed track to notStarted and drop its chunks."""
        with self._lock:
            changed = False
            for entry in self.store.value:
                for track_type, track in entry.tracks():
                    if track.status == TaskStatus.COMPLETED:
                        track.status = TaskStatus.NOT_STARTED
                        track.chunks = []
                        track.touch()
                        changed = True
            if changed:
                self._commit()

    def delete_task(self, entry_id: EntryID):
        """
        Cancel an entry's work and reset all three of its tracks.

        Deletion is whole-entry: every track returns to notStarted with no
        chunks and no error, whatever its previous state.
        """
        with self._lock:
            self.cancel_task(entry_id)
            entry = self.get_entry(entry_id)
            if entry is None:
                return

            for _, track in entry.tracks():
                track.reset()
            self.task_logger(entry_id).warning("Task history deleted")
            self._commit()
