"""
Play queue with a current-position cursor.

Pure in-memory structure, no I/O. The cursor lives in [-1, len]:
-1 means "before the first entry" (always the case for an empty queue) and
len means "past the end" after advance() ran off the last entry. current()
returns None exactly at those two sentinels.
"""

import logging
from typing import Iterable, List, Optional, Tuple

from camper.catalog.models import QueueEntry
from camper.utils.exceptions import QueueError

logger = logging.getLogger(__name__)


class Queue:
    """Ordered, mutable sequence of QueueEntry plus a cursor."""

    def __init__(self, entries: Iterable[QueueEntry] = ()):
        self._entries: List[QueueEntry] = list(entries)
        self._cursor = -1

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(tuple(self._entries))

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def entries(self) -> Tuple[QueueEntry, ...]:
        return tuple(self._entries)

    @property
    def is_past_end(self) -> bool:
        return bool(self._entries) and self._cursor == len(self._entries)

    @property
    def has_next(self) -> bool:
        return self._cursor + 1 < len(self._entries)

    @property
    def has_previous(self) -> bool:
        return self._cursor > 0

    def current(self) -> Optional[QueueEntry]:
        if 0 <= self._cursor < len(self._entries):
            return self._entries[self._cursor]
        return None

    def peek_next(self) -> Optional[QueueEntry]:
        if self.has_next:
            return self._entries[self._cursor + 1]
        return None

    def index_of(self, entry: QueueEntry) -> Optional[int]:
        for index, queued in enumerate(self._entries):
            if queued is entry:
                return index
        return None

    def _check_index(self, index: int):
        if not 0 <= index < len(self._entries):
            raise QueueError(f"Queue index {index} out of range (size {len(self._entries)})")

    def append(self, entry: QueueEntry):
        self._entries.append(entry)
        logger.info(f"[QUEUE] Added '{entry.title}' | Queue size now: {len(self._entries)}")

    def extend(self, entries: Iterable[QueueEntry]):
        entries = list(entries)
        self._entries.extend(entries)
        logger.info(f"[QUEUE] Added {len(entries)} entr(ies) | Queue size now: {len(self._entries)}")

    def insert_next(self, entry: QueueEntry):
        """Insert right after the current entry (at the front before playback starts)."""
        position = min(self._cursor + 1, len(self._entries))
        self._entries.insert(position, entry)
        logger.info(f"[QUEUE] Inserted '{entry.title}' at {position} | Queue size now: {len(self._entries)}")

    def remove_at(self, index: int) -> QueueEntry:
        """
        Remove one entry.

        Removing the current entry leaves the cursor on the entry that followed
        it (or past the end if it was the last one).

        Raises:
            QueueError: if the index is out of range
        """
        self._check_index(index)
        entry = self._entries.pop(index)
        if index < self._cursor:
            self._cursor -= 1
        if not self._entries:
            self._cursor = -1
        logger.info(f"[QUEUE] Removed '{entry.title}' | Queue size now: {len(self._entries)}")
        return entry

    def move_cursor_to(self, index: int) -> QueueEntry:
        """
        Make the entry at index the current one.

        Raises:
            QueueError: if the index is out of range
        """
        self._check_index(index)
        self._cursor = index
        return self._entries[index]

    def advance(self) -> Optional[QueueEntry]:
        """Move forward one entry; None (and past-end) after the last."""
        if self._entries and self._cursor < len(self._entries):
            self._cursor += 1
        return self.current()

    def previous(self) -> Optional[QueueEntry]:
        """Move back one entry; None (and before-first) from the first."""
        if self._entries and self._cursor > -1:
            self._cursor -= 1
        return self.current()

    def replace(self, entries: Iterable[QueueEntry], start_index: int = 0) -> Optional[QueueEntry]:
        """
        Swap in a new list of entries with the cursor on start_index.

        Raises:
            QueueError: if start_index is out of range for a non-empty list
        """
        entries = list(entries)
        if entries and not 0 <= start_index < len(entries):
            raise QueueError(f"Start index {start_index} out of range (size {len(entries)})")
        self._entries = entries
        self._cursor = start_index if entries else -1
        logger.info(f"[QUEUE] Replaced queue with {len(entries)} entr(ies), cursor at {self._cursor}")
        return self.current()

    def clear(self):
        self._entries = []
        self._cursor = -1
        logger.info("[QUEUE] Cleared")
