"""
Observable holder of the current bookshelf entry list.

Presentation layers subscribe to the store instead of polling the manager.
"""

import logging
import threading
from typing import Callable, List, Optional

from .models import BookshelfEntry, EntryID

logger = logging.getLogger(__name__)

Listener = Callable[[List[BookshelfEntry]], None]


class TaskStateStore:
    """
    Current value of the entry list plus a listener registry.

    set() swaps the list and notifies every listener synchronously, in
    subscription order. Listeners receive the live list and must treat it as
    read-only.
    """

    def __init__(self, entries: Optional[List[BookshelfEntry]] = None):
        self._entries: List[BookshelfEntry] = list(entries or [])
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    @property
    def value(self) -> List[BookshelfEntry]:
        return self._entries

    def set(self, entries: List[BookshelfEntry]):
        self._entries = list(entries)
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(self._entries)
            except Exception:
                logger.exception("Task state listener %r failed", listener)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            A callable that removes the listener again
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def get_entry(self, entry_id: EntryID) -> Optional[BookshelfEntry]:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None
