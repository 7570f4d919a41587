from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from portid.core import settings
from portid.errors import (
    BackupFailed,
    BlobUnavailable,
    DirectoryUnavailable,
    DuplicateUser,
    InvalidInput,
    InvalidRecoveryKey,
    NoBackupFound,
    NoSuchLocalUser,
    NotLoggedIn,
    PasswordAlreadySet,
    PortIDError,
    SchedulerUnavailable,
)
from portid.storage.credential_store import CredentialRecord, CredentialStore

from .crypto import (
    DecryptFailure,
    decrypt_payload,
    encrypt_payload,
    generate_recovery_key,
    make_password_verifier,
    verify_password,
)
from .directory import Directory, DirectoryClient
from .scheduler import Scheduler
from .storage import Storage, StorageClient

logger = logging.getLogger(__name__)


def _require_text(name: str, value: Any, *, strip: bool = True) -> str:
    v = str(value or "")
    if not v.strip():
        raise InvalidInput(f"{name} is required")
    return v.strip() if strip else v


def _password_verifier(password: str) -> str:
    try:
        return make_password_verifier(password)
    except ValueError as e:
        raise InvalidInput(str(e)) from e


class PortID:
    """Zero-knowledge backup and recovery for one application's users.

    Secrets are generated, encrypted and decrypted on this device only. The
    directory learns (app id, username) -> pointer, the storage service learns
    ciphertext, and neither ever sees the recovery key or the password.

    Every public method returns a value or raises exactly one PortIDError
    subclass.
    """

    def __init__(
        self,
        app_id: str,
        api_base_url: str | None = None,
        *,
        store: CredentialStore | None = None,
        directory: Directory | None = None,
        storage: Storage | None = None,
        scheduler: Scheduler | None = None,
        db_path: str | Path | None = None,
        timeout_s: float | None = None,
    ) -> None:
        self.app_id = _require_text("app_id", app_id)
        if directory is None or storage is None:
            base = _require_text("api_base_url", api_base_url)
            self.api_base_url = base[:-1] if base.endswith("/") else base
        else:
            self.api_base_url = (api_base_url or "").rstrip("/")

        self.timeout_s = float(timeout_s if timeout_s is not None else settings.HTTP_TIMEOUT_S)
        self.store = store or CredentialStore(self.app_id, db_path=db_path)
        self.directory: Directory = directory or DirectoryClient(self.api_base_url, timeout_s=self.timeout_s)
        self.storage: Storage = storage or StorageClient(self.api_base_url, timeout_s=self.timeout_s)
        self.scheduler = scheduler

        self._current_user: Optional[str] = None
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # -------------------------
    # Session
    # -------------------------
    @property
    def current_user(self) -> Optional[str]:
        return self._current_user

    @property
    def is_logged_in(self) -> bool:
        return self._current_user is not None

    def _user_lock(self, username: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(username)
            if lock is None:
                lock = self._locks[username] = threading.Lock()
            return lock

    # -------------------------
    # Remote calls: anything outside the taxonomy is wrapped here.
    # -------------------------
    def _set_pointer(self, username: str, pointer: str, timeout_s: float | None) -> None:
        try:
            self.directory.set_pointer(self.app_id, username, pointer, timeout_s=timeout_s if timeout_s is not None else self.timeout_s)
        except PortIDError:
            raise
        except Exception as e:
            raise DirectoryUnavailable(f"{type(e).__name__}: {e}") from e

    def _get_pointer(self, username: str, timeout_s: float | None) -> Optional[str]:
        try:
            return self.directory.get_pointer(self.app_id, username, timeout_s=timeout_s if timeout_s is not None else self.timeout_s)
        except PortIDError:
            raise
        except Exception as e:
            raise DirectoryUnavailable(f"{type(e).__name__}: {e}") from e

    def _store_blob(self, blob: str, username: str, timeout_s: float | None) -> str:
        try:
            pointer = self.storage.store(blob, username=username, timeout_s=timeout_s if timeout_s is not None else self.timeout_s)
        except PortIDError:
            raise
        except Exception as e:
            raise BackupFailed(f"{type(e).__name__}: {e}") from e
        if not pointer:
            raise BackupFailed("backup did not return a content pointer", retryable=False)
        return str(pointer)

    def _fetch_blob(self, pointer: str, timeout_s: float | None) -> str:
        try:
            return self.storage.fetch(pointer, timeout_s=timeout_s if timeout_s is not None else self.timeout_s)
        except PortIDError:
            raise
        except Exception as e:
            raise BlobUnavailable(f"{type(e).__name__}: {e}") from e

    @staticmethod
    def _encrypt(payload: Any, recovery_key: str) -> str:
        try:
            return encrypt_payload(payload, recovery_key)
        except (TypeError, ValueError) as e:
            raise InvalidInput(f"payload is not JSON serializable: {e}") from e

    # -------------------------
    # Public surface
    # -------------------------
    def sign_up(self, username: str, password: str, *, timeout_s: float | None = None) -> str:
        """Register a new user and return the recovery key.

        Order matters:
          1. placeholder directory entry (claims the username),
          2. encrypted initial backup,
          3. real pointer in the directory,
          4. local credential record, last, so a failure anywhere above
             leaves nothing local and the call can simply be repeated.

        The returned key is the only copy the application will ever get; it
        must be shown to the user for offline safekeeping.
        """
        username = _require_text("username", username)
        password = _require_text("password", password, strip=False)

        if self.store.get(username) is not None:
            raise DuplicateUser(f"username '{username}' already exists locally")

        recovery_key = generate_recovery_key()
        verifier = _password_verifier(password)

        self._set_pointer(username, settings.PENDING_POINTER, timeout_s)

        blob = self._encrypt({"sdk_version": settings.SDK_VERSION}, recovery_key)
        pointer = self._store_blob(blob, username, timeout_s)

        self._set_pointer(username, pointer, timeout_s)

        self.store.add(
            CredentialRecord(
                username=username,
                recovery_key=recovery_key,
                password_verifier=verifier,
                backup_pointer=pointer,
            )
        )
        logger.info(f"sign_up done app={self.app_id} user={username} pointer={pointer}")
        return recovery_key

    def login(self, username: str, password: str) -> bool:
        """Local-only check of the device password. Sets the session on success."""
        username = _require_text("username", username)
        record = self.store.get(username)
        if record is None:
            raise NoSuchLocalUser(f"no local record for '{username}'; restore it first")

        if not verify_password(str(password or ""), record.password_verifier):
            return False
        self._current_user = username
        return True

    def logout(self) -> None:
        self._current_user = None

    def set_password(self, username: str, password: str) -> None:
        """Give a restored record its device password.

        Only fills a missing verifier; it never replaces an existing one.
        """
        username = _require_text("username", username)
        password = _require_text("password", password, strip=False)
        if not self.store.set_verifier_if_absent(username, _password_verifier(password)):
            raise PasswordAlreadySet(f"'{username}' already has a local password")

    def backup_data(self, payload: Any, *, timeout_s: float | None = None) -> str:
        """Encrypt `payload`, store it, point the directory at it, then record it locally.

        Backups for one username are serialized. If the directory update fails
        after the store succeeded, the new blob is orphaned and the previous
        pointer stays valid; the failure is raised, nothing is rolled back.
        """
        username = self._current_user
        if username is None:
            raise NotLoggedIn("user is not logged in; call login() first")

        with self._user_lock(username):
            record = self.store.get(username)
            if record is None:
                raise NoSuchLocalUser(f"could not find credentials for '{username}' locally")

            blob = self._encrypt(payload, record.recovery_key)
            pointer = self._store_blob(blob, username, timeout_s)
            self._set_pointer(username, pointer, timeout_s)
            self.store.update_pointer(username, pointer)

        logger.info(f"backup done app={self.app_id} user={username} pointer={pointer}")
        return pointer

    def restore_data(self, username: str, recovery_key: str, *, timeout_s: float | None = None) -> Any:
        """Fetch and decrypt the latest backup, then adopt the user on this device.

        Decryption is the only recovery key check. The local record is written
        with no password verifier; call set_password() before login().
        """
        username = _require_text("username", username)
        recovery_key = _require_text("recovery_key", recovery_key)

        with self._user_lock(username):
            pointer = self._get_pointer(username, timeout_s)
            if not pointer or pointer == settings.PENDING_POINTER:
                raise NoBackupFound(f"could not find a backup pointer for '{username}'")

            blob = self._fetch_blob(pointer, timeout_s)
            data = decrypt_payload(blob, recovery_key)
            if isinstance(data, DecryptFailure):
                raise InvalidRecoveryKey(f"decryption failed ({data.reason}); the recovery key is likely incorrect")

            self.store.put(
                CredentialRecord(
                    username=username,
                    recovery_key=recovery_key,
                    password_verifier=None,
                    backup_pointer=pointer,
                )
            )

        logger.info(f"restore done app={self.app_id} user={username} pointer={pointer}")
        return data

    def enable_auto_backup(
        self,
        snapshot: Callable[[], Any],
        *,
        min_interval_hours: float | None = None,
        scheduler: Scheduler | None = None,
    ) -> str:
        """Back up `snapshot()` on every scheduler tick that finds a session.

        Returns the callback id registered with the scheduler.
        """
        if not callable(snapshot):
            raise InvalidInput("snapshot must be callable")
        hours = float(min_interval_hours if min_interval_hours is not None else settings.AUTO_BACKUP_HOURS)
        if hours <= 0:
            raise InvalidInput("min_interval_hours must be positive")

        sched = scheduler or self.scheduler
        if sched is None:
            raise SchedulerUnavailable("no scheduler configured for auto backup")
        self.scheduler = sched

        callback_id = settings.AUTO_BACKUP_CALLBACK_ID
        try:
            sched.register(callback_id, hours * 60 * 60, lambda: self._auto_backup(snapshot))
        except Exception as e:
            raise SchedulerUnavailable(f"auto-backup registration failed: {type(e).__name__}: {e}") from e
        logger.info(f"auto-backup registered app={self.app_id} every {hours}h")
        return callback_id

    def disable_auto_backup(self) -> None:
        if self.scheduler is None:
            return
        try:
            self.scheduler.cancel(settings.AUTO_BACKUP_CALLBACK_ID)
        except Exception as e:
            raise SchedulerUnavailable(f"auto-backup cancel failed: {type(e).__name__}: {e}") from e

    def _auto_backup(self, snapshot: Callable[[], Any]) -> Optional[str]:
        if self._current_user is None:
            logger.debug("auto-backup tick skipped: no active session")
            return None
        try:
            return self.backup_data(snapshot())
        except Exception as e:
            logger.exception(f"auto-backup failed: {type(e).__name__}: {e}")
            return None
