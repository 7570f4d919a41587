# portid/core/settings.py
from __future__ import annotations


import os
import sys
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    v = (os.getenv(name) or "").strip()
    if not v:
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    v = (os.getenv(name) or "").strip()
    if not v:
        return default
    try:
        return float(v)
    except ValueError:
        return default


SDK_VERSION: str = "1.0.0"

# -------------------------
# Local credential database
# -------------------------
SQLITE_TIMEOUT_S: float = _env_float("PORTID_SQLITE_TIMEOUT_S", 5.0)
SQLITE_JOURNAL_MODE: str = (os.getenv("PORTID_SQLITE_JOURNAL_MODE", "WAL") or "WAL").strip().upper()
SQLITE_SYNCHRONOUS: str = (os.getenv("PORTID_SQLITE_SYNCHRONOUS", "NORMAL") or "NORMAL").strip().upper()


def default_data_dir() -> Path:
    env = (os.getenv("PORTID_DATA_DIR") or "").strip()
    if env:
        return Path(env).expanduser().resolve()

    home = Path.home()
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / "PortID"
    if sys.platform.startswith("win"):
        return Path(os.getenv("APPDATA", str(home))) / "PortID"
    return home / ".local" / "share" / "PortID"


def get_db_path() -> Path:
    """Read at call time so tests can point PORTID_DB_PATH at tmp_path."""
    env = (os.getenv("PORTID_DB_PATH") or "").strip()
    if env:
        return Path(env).expanduser().resolve()
    return default_data_dir() / "portid.sqlite3"


# -------------------------
# Network
# -------------------------
HTTP_TIMEOUT_S: float = _env_float("PORTID_HTTP_TIMEOUT_S", 20.0)

# -------------------------
# Password verifier
# sha256 reproduces the unsalted verifier; pbkdf2 is the salted option.
# -------------------------
PASSWORD_HASH_SCHEME: str = (os.getenv("PORTID_PASSWORD_HASH", "sha256") or "sha256").strip().lower()
PBKDF2_ITERATIONS: int = _env_int("PORTID_PBKDF2_ITERATIONS", 200_000)

# -------------------------
# Auto backup
# -------------------------
AUTO_BACKUP_HOURS: float = _env_float("PORTID_AUTO_BACKUP_HOURS", 12.0)
AUTO_BACKUP_CALLBACK_ID: str = "portid-auto-backup"

# Placeholder pointer registered before the first real backup exists.
PENDING_POINTER: str = "pending_first_backup"
