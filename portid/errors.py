# portid/errors.py
from __future__ import annotations

from typing import Optional


class PortIDError(Exception):
    """Base of every error a public PortID operation can raise.

    `code` is stable and machine readable, `retryable` tells the caller whether
    re-invoking the same operation can succeed without changing its inputs.
    """

    code: str = "portid_error"
    retryable: bool = False

    def __init__(self, detail: str = "", *, retryable: Optional[bool] = None, status: Optional[int] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status = status
        if retryable is not None:
            self.retryable = retryable

    def __str__(self) -> str:  # pragma: no cover
        s = f"{self.code}"
        if self.status is not None:
            s += f" (HTTP {self.status})"
        if self.retryable:
            s += " [retryable]"
        return f"{s}: {self.detail}" if self.detail else s


class InvalidInput(PortIDError):
    code = "invalid_input"


class DuplicateUser(PortIDError):
    code = "duplicate_user"


class NoSuchLocalUser(PortIDError):
    code = "no_such_local_user"


class NotLoggedIn(PortIDError):
    code = "not_logged_in"


class PasswordAlreadySet(PortIDError):
    code = "password_already_set"


class InvalidRecoveryKey(PortIDError):
    code = "invalid_recovery_key"


class NoBackupFound(PortIDError):
    code = "no_backup_found"


class BlobUnavailable(PortIDError):
    code = "blob_unavailable"
    retryable = True


class BackupFailed(PortIDError):
    code = "backup_failed"
    retryable = True


class DirectoryUnavailable(PortIDError):
    code = "directory_unavailable"
    retryable = True


class LocalStoreError(PortIDError):
    code = "local_store_error"


class SchedulerUnavailable(PortIDError):
    code = "scheduler_unavailable"


__all__ = [
    "PortIDError",
    "InvalidInput",
    "DuplicateUser",
    "NoSuchLocalUser",
    "NotLoggedIn",
    "PasswordAlreadySet",
    "InvalidRecoveryKey",
    "NoBackupFound",
    "BlobUnavailable",
    "BackupFailed",
    "DirectoryUnavailable",
    "LocalStoreError",
    "SchedulerUnavailable",
]
