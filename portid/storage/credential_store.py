from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from portid.errors import DuplicateUser, InvalidInput, LocalStoreError, NoSuchLocalUser
from portid.storage.db_core import read_only, transaction
from portid.utils.timeutil import utc_now_iso

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CredentialRecord:
    username: str
    recovery_key: str
    password_verifier: Optional[str] = None
    backup_pointer: Optional[str] = None


def _row_to_record(row: sqlite3.Row) -> CredentialRecord:
    return CredentialRecord(
        username=str(row["username"]),
        recovery_key=str(row["recovery_key"]),
        password_verifier=row["password_verifier"],
        backup_pointer=row["backup_pointer"],
    )


class CredentialStore:
    """Durable username -> CredentialRecord mapping for one application.

    Every instance is bound to a namespace (the application id). Records of
    different namespaces share the sqlite file but never see each other.
    Each operation runs in its own transaction, so writes are atomic per record.
    """

    def __init__(self, namespace: str, db_path: str | Path | None = None) -> None:
        ns = str(namespace or "").strip()
        if not ns:
            raise InvalidInput("credential store namespace is required")
        self.namespace = ns
        self.db_path = Path(db_path).expanduser() if db_path else None
        self._init_db()

    def _init_db(self) -> None:
        try:
            with transaction(self.db_path) as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS credentials (
                        namespace TEXT NOT NULL,
                        username TEXT NOT NULL,
                        password_verifier TEXT,
                        recovery_key TEXT NOT NULL,
                        backup_pointer TEXT,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL,
                        PRIMARY KEY(namespace, username)
                    );
                    """
                )
        except (sqlite3.Error, OSError) as e:
            raise LocalStoreError(f"init failed: {type(e).__name__}: {e}") from e

    def get(self, username: str) -> Optional[CredentialRecord]:
        try:
            with read_only(self.db_path) as conn:
                row = conn.execute(
                    """
                    SELECT username, password_verifier, recovery_key, backup_pointer
                    FROM credentials
                    WHERE namespace=? AND username=?
                    """,
                    (self.namespace, str(username)),
                ).fetchone()
        except (sqlite3.Error, OSError) as e:
            raise LocalStoreError(f"get failed: {type(e).__name__}: {e}") from e
        if not row:
            return None
        return _row_to_record(row)

    def add(self, record: CredentialRecord) -> None:
        now = utc_now_iso()
        try:
            with transaction(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO credentials(
                        namespace, username, password_verifier, recovery_key,
                        backup_pointer, created_at, updated_at
                    ) VALUES(?,?,?,?,?,?,?)
                    """,
                    (
                        self.namespace,
                        record.username,
                        record.password_verifier,
                        record.recovery_key,
                        record.backup_pointer,
                        now,
                        now,
                    ),
                )
        except sqlite3.IntegrityError as e:
            raise DuplicateUser(f"username '{record.username}' already exists locally") from e
        except (sqlite3.Error, OSError) as e:
            raise LocalStoreError(f"add failed: {type(e).__name__}: {e}") from e
        logger.debug(f"credential added ns={self.namespace} user={record.username}")

    def put(self, record: CredentialRecord) -> None:
        now = utc_now_iso()
        try:
            with transaction(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO credentials(
                        namespace, username, password_verifier, recovery_key,
                        backup_pointer, created_at, updated_at
                    ) VALUES(?,?,?,?,?,?,?)
                    ON CONFLICT(namespace, username) DO UPDATE SET
                        password_verifier=excluded.password_verifier,
                        recovery_key=excluded.recovery_key,
                        backup_pointer=excluded.backup_pointer,
                        updated_at=excluded.updated_at
                    """,
                    (
                        self.namespace,
                        record.username,
                        record.password_verifier,
                        record.recovery_key,
                        record.backup_pointer,
                        now,
                        now,
                    ),
                )
        except (sqlite3.Error, OSError) as e:
            raise LocalStoreError(f"put failed: {type(e).__name__}: {e}") from e
        logger.debug(f"credential upserted ns={self.namespace} user={record.username}")

    def update_pointer(self, username: str, pointer: str) -> None:
        try:
            with transaction(self.db_path) as conn:
                cur = conn.execute(
                    "UPDATE credentials SET backup_pointer=?, updated_at=? WHERE namespace=? AND username=?",
                    (str(pointer), utc_now_iso(), self.namespace, str(username)),
                )
                if cur.rowcount == 0:
                    raise NoSuchLocalUser(f"no local record for '{username}'")
        except (sqlite3.Error, OSError) as e:
            raise LocalStoreError(f"update_pointer failed: {type(e).__name__}: {e}") from e

    def set_verifier_if_absent(self, username: str, verifier: str) -> bool:
        """Fill an empty password verifier. Returns False if one is already set."""
        try:
            with transaction(self.db_path) as conn:
                cur = conn.execute(
                    """
                    UPDATE credentials SET password_verifier=?, updated_at=?
                    WHERE namespace=? AND username=? AND password_verifier IS NULL
                    """,
                    (str(verifier), utc_now_iso(), self.namespace, str(username)),
                )
                if cur.rowcount == 1:
                    return True
                exists = conn.execute(
                    "SELECT 1 FROM credentials WHERE namespace=? AND username=?",
                    (self.namespace, str(username)),
                ).fetchone()
        except (sqlite3.Error, OSError) as e:
            raise LocalStoreError(f"set_verifier failed: {type(e).__name__}: {e}") from e
        if not exists:
            raise NoSuchLocalUser(f"no local record for '{username}'")
        return False
