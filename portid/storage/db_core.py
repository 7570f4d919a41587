from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from portid.core import settings


def connect(db_path: Optional[Path] = None) -> sqlite3.Connection:
    """
    Unified connection factory:
    - PRAGMA journal_mode=WAL (default, env overridable)
    - PRAGMA synchronous=NORMAL (default, env overridable)
    - PRAGMA busy_timeout
    """
    path = Path(db_path or settings.get_db_path()).expanduser().resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), timeout=settings.SQLITE_TIMEOUT_S)
    conn.row_factory = sqlite3.Row

    # Helps avoid random "database is locked" when a backup thread and the app write at once
    conn.execute(f"PRAGMA busy_timeout={int(settings.SQLITE_TIMEOUT_S * 1000)};")

    try:
        conn.execute(f"PRAGMA journal_mode={settings.SQLITE_JOURNAL_MODE};")
    except sqlite3.OperationalError:
        # Some environments restrict changing journal mode; keep usable.
        pass

    if settings.SQLITE_SYNCHRONOUS in {"OFF", "NORMAL", "FULL", "EXTRA"}:
        try:
            conn.execute(f"PRAGMA synchronous={settings.SQLITE_SYNCHRONOUS};")
        except sqlite3.OperationalError:
            pass

    return conn


@contextmanager
def read_only(db_path: Optional[Path] = None) -> Iterator[sqlite3.Connection]:
    conn = connect(db_path=db_path)
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(db_path: Optional[Path] = None) -> Iterator[sqlite3.Connection]:
    """Read-write connection with explicit BEGIN/COMMIT/ROLLBACK."""
    conn = connect(db_path=db_path)
    try:
        conn.execute("BEGIN IMMEDIATE;")
        yield conn
        conn.commit()
    except BaseException:
        try:
            conn.rollback()
        except sqlite3.Error:
            pass
        raise
    finally:
        conn.close()
