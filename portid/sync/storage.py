from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

from portid.core import settings
from portid.errors import BackupFailed, BlobUnavailable
from portid.sync import http

logger = logging.getLogger(__name__)


class Storage(Protocol):
    """Content-addressed ciphertext storage."""

    def store(self, ciphertext: str, *, username: str, timeout_s: float | None = None) -> str:
        """Persist the blob and return its content pointer. Raises BackupFailed."""
        ...

    def fetch(self, pointer: str, *, timeout_s: float | None = None) -> str:
        """Return the blob stored under `pointer`. Raises BlobUnavailable."""
        ...


def _extract_blob(resp: Dict[str, Any]) -> Optional[str]:
    # Pinning gateways either return the stored object as-is or wrap it in pinataContent.
    if isinstance(resp.get("kaironBackup"), str):
        return resp["kaironBackup"]
    inner = resp.get("pinataContent")
    if isinstance(inner, dict) and isinstance(inner.get("kaironBackup"), str):
        return inner["kaironBackup"]
    return None


class StorageClient:
    """Typed wrapper over /api/backup and /api/restore. No retries, no caching."""

    def __init__(self, base_url: str, *, timeout_s: float | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = float(timeout_s if timeout_s is not None else settings.HTTP_TIMEOUT_S)

    def store(self, ciphertext: str, *, username: str, timeout_s: float | None = None) -> str:
        url = http.build_url(self.base_url, "/api/backup")
        try:
            resp = http.request_json(
                "POST",
                url,
                payload={"encryptedData": ciphertext, "username": username},
                timeout_s=timeout_s if timeout_s is not None else self.timeout_s,
            )
        except http.TransportError as e:
            logger.warning(f"storage store failed user={username}: {e.code} {e.detail}")
            raise BackupFailed(e.detail, retryable=e.retryable, status=e.status) from e

        pointer = str(resp.get("ipfsHash") or "").strip()
        if not pointer:
            raise BackupFailed("backup did not return a content pointer", retryable=False)
        return pointer

    def fetch(self, pointer: str, *, timeout_s: float | None = None) -> str:
        url = http.build_url(self.base_url, "/api/restore", {"hash": pointer})
        try:
            resp = http.request_json("GET", url, timeout_s=timeout_s if timeout_s is not None else self.timeout_s)
        except http.TransportError as e:
            logger.warning(f"storage fetch failed pointer={pointer}: {e.code} {e.detail}")
            raise BlobUnavailable(e.detail, retryable=e.retryable, status=e.status) from e

        blob = _extract_blob(resp)
        if blob is None:
            raise BlobUnavailable("backup data blob is in an unexpected format", retryable=False)
        return blob
