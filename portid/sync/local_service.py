from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional

from portid.errors import BackupFailed, BlobUnavailable, DirectoryUnavailable
from portid.utils.timeutil import utc_now_iso

from .crypto import content_pointer


class _SqliteService:
    def __init__(self, db_path: str | Path) -> None:
        self.db_path = str(Path(db_path).expanduser())
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        c = sqlite3.connect(self.db_path)
        c.row_factory = sqlite3.Row
        return c

    def _init_db(self) -> None:
        raise NotImplementedError


class LocalDirectoryService(_SqliteService):
    """In-process stand-in for the directory service.

    Same call shape as DirectoryClient; holds nothing but pointers.
    """

    def _init_db(self) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS directory_entries (
                    app_id TEXT NOT NULL,
                    username TEXT NOT NULL,
                    pointer TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY(app_id, username)
                );
                """
            )
            conn.commit()
        finally:
            conn.close()

    def set_pointer(self, app_id: str, username: str, pointer: str, *, timeout_s: float | None = None) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO directory_entries(app_id, username, pointer, updated_at)
                VALUES(?,?,?,?)
                ON CONFLICT(app_id, username) DO UPDATE SET pointer=excluded.pointer, updated_at=excluded.updated_at
                """,
                (str(app_id), str(username), str(pointer), utc_now_iso()),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise DirectoryUnavailable(f"{type(e).__name__}: {e}") from e
        finally:
            conn.close()

    def get_pointer(self, app_id: str, username: str, *, timeout_s: float | None = None) -> Optional[str]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT pointer FROM directory_entries WHERE app_id=? AND username=?",
                (str(app_id), str(username)),
            ).fetchone()
        except sqlite3.Error as e:
            raise DirectoryUnavailable(f"{type(e).__name__}: {e}") from e
        finally:
            conn.close()
        if not row:
            return None
        return str(row["pointer"])


class LocalStorageService(_SqliteService):
    """In-process content-addressed blob store. Blobs are immutable once written."""

    def _init_db(self) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS blobs (
                    pointer TEXT PRIMARY KEY,
                    ciphertext TEXT NOT NULL,
                    username TEXT,
                    created_at TEXT NOT NULL
                );
                """
            )
            conn.commit()
        finally:
            conn.close()

    def store(self, ciphertext: str, *, username: str, timeout_s: float | None = None) -> str:
        pointer = content_pointer(ciphertext)
        conn = self._connect()
        try:
            # Same bytes, same pointer: a repeated store is a no-op.
            conn.execute(
                "INSERT OR IGNORE INTO blobs(pointer, ciphertext, username, created_at) VALUES(?,?,?,?)",
                (pointer, str(ciphertext), str(username), utc_now_iso()),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise BackupFailed(f"{type(e).__name__}: {e}") from e
        finally:
            conn.close()
        return pointer

    def fetch(self, pointer: str, *, timeout_s: float | None = None) -> str:
        conn = self._connect()
        try:
            row = conn.execute("SELECT ciphertext FROM blobs WHERE pointer=?", (str(pointer),)).fetchone()
        except sqlite3.Error as e:
            raise BlobUnavailable(f"{type(e).__name__}: {e}") from e
        finally:
            conn.close()
        if not row:
            raise BlobUnavailable(f"no blob stored under {pointer}", retryable=False)
        return str(row["ciphertext"])

    def count(self) -> int:
        conn = self._connect()
        try:
            row = conn.execute("SELECT COUNT(1) AS n FROM blobs").fetchone()
            return int(row["n"] if row else 0)
        finally:
            conn.close()
