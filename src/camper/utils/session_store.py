"""
Session Store for the Camper client
===================================

Holds the catalog session credential (an opaque cookie string handed over by
the login collaborator) and persists it in a single-row SQLite table so the
next process start can pick it up again.

Schema:
- session table:
  - id (INTEGER, PRIMARY KEY, always 1): there is only ever one credential
  - blob (TEXT, NOT NULL): opaque credential
  - saved_at (TIMESTAMP): when the blob was written

Readers (the content client, possibly from many concurrent requests) call
current() and get one immutable SessionCredential reference. Writers build a
new object and swap the reference, so a reader sees either the old or the new
credential and never a half-written one.
"""

import aiosqlite
import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionCredential:
    """Opaque credential blob plus its validity flag."""
    blob: str
    valid: bool = True
    obtained_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __repr__(self) -> str:
        # Never leak the cookie into logs
        return f"SessionCredential(valid={self.valid}, obtained_at={self.obtained_at.isoformat()})"


class SessionStore:
    """
    Async owner of the one persisted credential.

    The login/logout flow writes through save() and clear(); the content
    client reports rejected credentials through mark_expired().
    """

    def __init__(self, db_path: str = "session.db"):
        """
        Initialize the session store

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)
        self._lock = asyncio.Lock()
        self._credential: Optional[SessionCredential] = None

        # Create data directory if it doesn't exist
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    async def initialize(self):
        """
        Create the session table if it doesn't exist
        """
        async with self._lock:
            try:
                async with aiosqlite.connect(self.db_path) as db:
                    await db.execute('''
                        CREATE TABLE IF NOT EXISTS session (
                            id INTEGER PRIMARY KEY CHECK (id = 1),
                            blob TEXT NOT NULL,
                            saved_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                        )
                    ''')
                    await db.commit()

                logger.info("[SESSION] Session database initialized")

            except aiosqlite.Error as e:
                logger.error(f"[SESSION] Failed to initialize session database: {e}")
                raise

    async def load(self) -> Optional[SessionCredential]:
        """
        Reload the persisted credential into memory (process start).

        Returns:
            The loaded credential, or None when nothing is stored
        """
        async with self._lock:
            try:
                async with aiosqlite.connect(self.db_path) as db:
                    db.row_factory = aiosqlite.Row
                    async with db.execute('SELECT blob, saved_at FROM session WHERE id = 1') as cursor:
                        row = await cursor.fetchone()
            except aiosqlite.Error as e:
                logger.error(f"[SESSION] Failed to load credential: {e}")
                return None

            if row and row['blob']:
                self._credential = SessionCredential(
                    blob=row['blob'],
                    obtained_at=_parse_saved_at(row['saved_at']),
                )
                logger.info("[SESSION] Restored saved session")
            else:
                self._credential = None
                logger.info("[SESSION] No saved session")
            return self._credential

    async def save(self, blob: str) -> bool:
        """
        Store a fresh credential after a successful login.

        Args:
            blob: Opaque credential (cookie header value)

        Returns:
            True if the credential was persisted, False if only kept in memory
        """
        if not blob:
            raise ValueError("Credential blob must not be empty")

        credential = SessionCredential(blob=blob)
        async with self._lock:
            self._credential = credential
            try:
                async with aiosqlite.connect(self.db_path) as db:
                    await db.execute('''
                        INSERT OR REPLACE INTO session (id, blob, saved_at)
                        VALUES (1, ?, CURRENT_TIMESTAMP)
                    ''', (blob,))
                    await db.commit()
                logger.info("[SESSION] Session saved")
                return True
            except aiosqlite.Error as e:
                logger.error(f"[SESSION] Failed to persist credential: {e}")
                return False

    async def clear(self) -> bool:
        """
        Forget the credential (explicit logout).

        Returns:
            True if the persisted copy was removed
        """
        async with self._lock:
            self._credential = None
            return await self._delete_row()

    async def mark_expired(self, credential: Optional[SessionCredential] = None) -> bool:
        """
        Flag the credential as rejected by the catalog and drop the persisted copy.

        Args:
            credential: The credential the failing request used. When it is no
                longer the current one (a new login happened meanwhile) the
                call is a no-op.

        Returns:
            True if the current credential was invalidated
        """
        async with self._lock:
            current = self._credential
            if current is None or not current.valid:
                return False
            if credential is not None and credential is not current:
                logger.debug("[SESSION] Ignoring expiry report for a superseded credential")
                return False

            self._credential = replace(current, valid=False)
            logger.warning("[SESSION] Session expired, login required")
            await self._delete_row()
            return True

    def current(self) -> Optional[SessionCredential]:
        """Snapshot of the current credential."""
        return self._credential

    def is_valid(self) -> bool:
        credential = self._credential
        return credential is not None and credential.valid

    async def _delete_row(self) -> bool:
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute('DELETE FROM session WHERE id = 1')
                await db.commit()
            return True
        except aiosqlite.Error as e:
            logger.error(f"[SESSION] Failed to delete credential: {e}")
            return False


def _parse_saved_at(value) -> datetime:
    if isinstance(value, str):
        try:
            return datetime.strptime(value, '%Y-%m-%d %H:%M:%S').replace(tzinfo=timezone.utc)
        except ValueError:
            pass
    return datetime.now(timezone.utc)
