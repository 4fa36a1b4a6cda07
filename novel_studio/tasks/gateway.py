"""Execution gateway contract for task tracks."""

import logging
from abc import ABC, abstractmethod
from typing import Callable, List

from ..book import Book
from .cancellation import CancellationToken, TaskCanceledError
from .models import ChunkStatus, TaskChunk

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, TaskChunk], None]
PausePredicate = Callable[[], bool]


class ChunkFailuresError(RuntimeError):
    """Raised after a pass in which some chunks failed."""

    def __init__(self, failed: int, total: int):
        super().__init__(f"{failed} of {total} chunks failed")
        self.failed = failed
        self.total = total


class ExecutionGateway(ABC):
    """Performs the generation work of one track type."""

    @abstractmethod
    def generate(
        self,
        book: Book,
        cancellation_token: CancellationToken,
        on_progress: ProgressCallback,
        is_paused: PausePredicate,
        chunks: List[TaskChunk],
    ) -> None:
        """Process the track's chunks for a book.

        Args:
            book: Parsed book detail.
            cancellation_token: Polled between chunks; stop once it is set.
            on_progress: Call with (overall_ratio, chunk) after every chunk
                status change. The chunk's id and status are copied onto the
                tracked chunk.
            is_paused: Stop submitting new chunk work once this returns True.
            chunks: Snapshot of the track's chunks. Mutating them does not
                change the tracked state; report through on_progress.

        Raises:
            Exception: Any unrecoverable error. The track is marked failed
                with str(error) as its message.
        """
        ...


class ChunkedExecutionGateway(ExecutionGateway):
    """
    Gateway that handles one chunk at a time.

    Completed chunks are skipped, so a resumed or retried track only
    redoes pending and failed work. A chunk error marks that chunk failed
    and the pass continues; the pass then raises ChunkFailuresError.
    """

    @abstractmethod
    def process_chunk(self, book: Book, chunk: TaskChunk, cancellation_token: CancellationToken) -> None:
        """Do the work of one chunk. Raise to mark it failed."""
        ...

    def generate(self, book, cancellation_token, on_progress, is_paused, chunks):
        total = len(chunks)
        if total == 0:
            return

        completed = sum(1 for chunk in chunks if chunk.status == ChunkStatus.COMPLETED)
        failed = 0

        for chunk in chunks:
            if chunk.status == ChunkStatus.COMPLETED:
                continue
            if cancellation_token.is_canceled or is_paused():
                return

            chunk.status = ChunkStatus.RUNNING
            on_progress(completed / total, chunk)

            try:
                self.process_chunk(book, chunk, cancellation_token)
            except TaskCanceledError:
                raise
            except Exception:
                if cancellation_token.is_canceled:
                    raise
                logger.warning("Chunk %s of book %s failed", chunk.id, book.id, exc_info=True)
                chunk.status = ChunkStatus.FAILED
                failed += 1
            else:
                chunk.status = ChunkStatus.COMPLETED
                completed += 1

            on_progress(completed / total, chunk)

        if failed:
            raise ChunkFailuresError(failed, total)
