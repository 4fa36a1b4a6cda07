"""
Persistence layer for the task system.

BookshelfStorage keeps the whole entry list as one JSON document plus one
JSON file per parsed book. TaskLogStorage keeps the per-task log history in
SQLite.
"""

import json
import os
import shutil
import sqlite3
import tempfile
import threading
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, List, Dict, Any, Tuple

from ..book import Book
from .models import BookshelfEntry, EntryID


BOOKSHELF_FILE_NAME = "bookshelf.json"


class BookshelfStorage:
    """
    File-based storage for the bookshelf and the per-book caches.

    Layout:
        <cache_dir>/bookshelf.json           all entries, one JSON array
        <cache_dir>/<book_id>/<book_id>.json the parsed Book
        <cache_dir>/<book_id>/content.<ext>  copy of the imported file

    Both load_all() and save_all() operate on the whole collection.
    """

    def __init__(self, cache_dir: str):
        """
        Initialize storage.

        Args:
            cache_dir: Root of the book cache. Created if missing.
        """
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.bookshelf_path = self.cache_dir / BOOKSHELF_FILE_NAME

    @staticmethod
    def _write_json_atomic(path: Path, payload: Any):
        """Write JSON to a temp file in the same directory, then replace."""
        fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, path)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    # Bookshelf document

    def load_all(self) -> List[BookshelfEntry]:
        """
        Load every entry.

        Returns:
            Entries in document order, or an empty list if no document exists

        Raises:
            ValueError: If the document is not a JSON array
        """
        if not self.bookshelf_path.exists():
            return []

        with open(self.bookshelf_path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        if not isinstance(data, list):
            raise ValueError(f"{self.bookshelf_path} does not contain a JSON array")

        return [BookshelfEntry.from_dict(item) for item in data]

    def save_all(self, entries: List[BookshelfEntry]):
        """Rewrite the whole document."""
        self._write_json_atomic(self.bookshelf_path, [entry.to_dict() for entry in entries])

    # Book detail cache

    def book_dir(self, book_id: str) -> Path:
        return self.cache_dir / book_id

    def create_book_cache(self, original_path: str) -> Tuple[str, str, Path]:
        """
        Create the cache folder for a newly imported file and copy it in.

        Args:
            original_path: The file being imported

        Returns:
            (book_id, cached_content_path, project_dir)
        """
        book_id = str(uuid.uuid4())
        project_dir = self.book_dir(book_id)
        project_dir.mkdir(parents=True, exist_ok=True)

        suffix = Path(original_path).suffix.lower()
        cached_path = project_dir / f"content{suffix}"
        shutil.copyfile(original_path, cached_path)

        return book_id, str(cached_path), project_dir

    def load_book_detail(self, book_id: str) -> Optional[Book]:
        """
        Load a parsed book.

        Returns:
            Book instance or None if no detail file exists
        """
        detail_path = self.book_dir(book_id) / f"{book_id}.json"
        if not detail_path.exists():
            return None

        with open(detail_path, 'r', encoding='utf-8') as f:
            return Book.from_dict(json.load(f))

    def save_book_detail(self, book: Book) -> str:
        """
        Persist a parsed book.

        Returns:
            Path of the detail file (stored as the entry's sub_cache_path)
        """
        project_dir = self.book_dir(book.id)
        project_dir.mkdir(parents=True, exist_ok=True)
        detail_path = project_dir / f"{book.id}.json"
        self._write_json_atomic(detail_path, book.to_dict())
        return str(detail_path)

    def remove_book_cache(self, book_id: str):
        """Delete the book's cache folder if present."""
        project_dir = self.book_dir(book_id)
        if project_dir.exists():
            shutil.rmtree(project_dir)


_LOG_SCHEMA = """
CREATE TABLE IF NOT EXISTS task_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    entry_id TEXT NOT NULL,
    track TEXT,
    timestamp REAL NOT NULL,
    level TEXT NOT NULL,
    message TEXT NOT NULL,
    metadata TEXT
);
CREATE INDEX IF NOT EXISTS idx_task_logs_entry ON task_logs(entry_id, timestamp);
"""


class TaskLogStorage:
    """
    SQLite-based storage for task log history.

    Features:
    - Thread-safe operations using thread-local connections
    - WAL mode for concurrent readers while the worker writes
    - Transaction support
    """

    def __init__(self, db_path: str):
        """
        Initialize storage.

        Args:
            db_path: Path to SQLite database file (":memory:" is not supported
                because every thread opens its own connection)
        """
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._lock = threading.Lock()

        self._initialize_database()

    def _get_connection(self) -> sqlite3.Connection:
        """
        Get a thread-local database connection.

        Each thread gets its own connection for thread safety.
        """
        if not hasattr(self._local, 'connection'):
            conn = sqlite3.connect(self.db_path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")

            self._local.connection = conn
            with self._lock:
                self._connections.append(conn)

        return self._local.connection

    @contextmanager
    def _transaction(self):
        """
        Context manager for database transactions.

        Automatically commits on success, rolls back on error.
        """
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def _initialize_database(self):
        conn = self._get_connection()
        conn.executescript(_LOG_SCHEMA)
        conn.commit()

    def add_log(
        self,
        entry_id: EntryID,
        level: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        track: Optional[str] = None
    ):
        """
        Add a log entry for a task.

        Args:
            entry_id: Bookshelf entry id
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            message: Log message
            metadata: Optional additional context
            track: Track type value the message concerns, if any
        """
        metadata_json = json.dumps(metadata, default=str) if metadata else None

        with self._transaction() as conn:
            conn.execute("""
                INSERT INTO task_logs (entry_id, track, timestamp, level, message, metadata)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (entry_id, track, time.time(), level, message, metadata_json))

    def get_logs(
        self,
        entry_id: EntryID,
        level: Optional[str] = None,
        limit: Optional[int] = None,
        track: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Get log entries for a task, newest first.

        Args:
            entry_id: Bookshelf entry id
            level: Filter by log level (None for all)
            limit: Maximum number of entries to return
            track: Filter by track type value (None for all)

        Returns:
            List of log entry dictionaries
        """
        conn = self._get_connection()

        query = "SELECT * FROM task_logs WHERE entry_id = ?"
        params: List[Any] = [entry_id]

        if level is not None:
            query += " AND level = ?"
            params.append(level)

        if track is not None:
            query += " AND track = ?"
            params.append(track)

        query += " ORDER BY timestamp DESC, id DESC"

        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        rows = conn.execute(query, params).fetchall()

        logs = []
        for row in rows:
            log_dict = dict(row)
            if log_dict.get('metadata'):
                log_dict['metadata'] = json.loads(log_dict['metadata'])
            logs.append(log_dict)

        return logs

    def delete_logs(self, entry_id: EntryID):
        """Delete every log entry of a task."""
        with self._transaction() as conn:
            conn.execute("DELETE FROM task_logs WHERE entry_id = ?", (entry_id,))

    def close(self):
        """Close all database connections opened by this storage."""
        with self._lock:
            connections = list(self._connections)
            self._connections.clear()
        for conn in connections:
            conn.close()
        if hasattr(self._local, 'connection'):
            delattr(self._local, 'connection')
