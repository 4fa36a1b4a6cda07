"""
Background task system for Novel Studio.

Each book on the bookshelf carries three independent task tracks:
illustration, translation and video generation. Tracks are split into chunks,
queued, and executed one at a time by pluggable execution gateways. The task
list is persisted as a single bookshelf document, so interrupted work can be
recovered on the next start.

Key Components:
- TaskManager: Scheduler and lifecycle controls (pause, resume, cancel, retry, delete)
- TaskWorker: Background thread running one execution attempt
- ExecutionGateway: Contract implemented by the generation backends
- BookshelfStorage: JSON persistence of the task list and book details
- TaskStateStore: Observable snapshot of the task list for the UI
- TaskLogger: Structured per-task logging

Example Usage:
    from novel_studio.tasks import TaskManager, TrackType

    manager = TaskManager(gateways={TrackType.ILLUSTRATION: gateway})
    manager.init()
    manager.enqueue_illustrations(book_id)

    entry = manager.get_entry(book_id)
    print(f"Progress: {entry.illustration.progress:.0%}")
"""

__version__ = "1.0.0"

from .models import (
    BookshelfEntry,
    ChunkStatus,
    EntryID,
    IllustrationTaskChunk,
    TaskChunk,
    TaskStatus,
    TaskTrack,
    TrackType,
    TranslationTaskChunk,
    VideoGenerationTaskChunk,
)

from .cancellation import CancellationToken, TaskCanceledError
from .gateway import ChunkedExecutionGateway, ChunkFailuresError, ExecutionGateway
from .storage import BookshelfStorage, TaskLogStorage
from .store import TaskStateStore
from .logger import TaskLogger
from .splitter import TaskSplitter
from .manager import TaskManager
from .worker import TaskWorker

__all__ = [
    # Data models
    'BookshelfEntry',
    'ChunkStatus',
    'EntryID',
    'IllustrationTaskChunk',
    'TaskChunk',
    'TaskStatus',
    'TaskTrack',
    'TrackType',
    'TranslationTaskChunk',
    'VideoGenerationTaskChunk',

    # Cancellation
    'CancellationToken',
    'TaskCanceledError',

    # Execution
    'ExecutionGateway',
    'ChunkedExecutionGateway',
    'ChunkFailuresError',
    'TaskWorker',

    # Core components
    'BookshelfStorage',
    'TaskLogStorage',
    'TaskStateStore',
    'TaskLogger',
    'TaskSplitter',
    'TaskManager',
]
