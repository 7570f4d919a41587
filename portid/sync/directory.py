from __future__ import annotations

import logging
from typing import Optional, Protocol

from portid.core import settings
from portid.errors import DirectoryUnavailable
from portid.sync import http

logger = logging.getLogger(__name__)


class Directory(Protocol):
    """(app id, username) -> current backup pointer."""

    def set_pointer(self, app_id: str, username: str, pointer: str, *, timeout_s: float | None = None) -> None:
        """Upsert the pointer. Raises DirectoryUnavailable on failure."""
        ...

    def get_pointer(self, app_id: str, username: str, *, timeout_s: float | None = None) -> Optional[str]:
        """Return the registered pointer, or None when nothing is registered."""
        ...


class DirectoryClient:
    """Typed wrapper over /api/set-hash and /api/get-hash. No retries, no caching."""

    def __init__(self, base_url: str, *, timeout_s: float | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = float(timeout_s if timeout_s is not None else settings.HTTP_TIMEOUT_S)

    def set_pointer(self, app_id: str, username: str, pointer: str, *, timeout_s: float | None = None) -> None:
        url = http.build_url(self.base_url, "/api/set-hash")
        body = {"app_id": app_id, "username": username, "hash": pointer}
        try:
            http.request_json("POST", url, payload=body, timeout_s=timeout_s if timeout_s is not None else self.timeout_s)
        except http.TransportError as e:
            logger.warning(f"directory set_pointer failed app={app_id} user={username}: {e.code} {e.detail}")
            raise DirectoryUnavailable(e.detail, retryable=e.retryable, status=e.status) from e

    def get_pointer(self, app_id: str, username: str, *, timeout_s: float | None = None) -> Optional[str]:
        url = http.build_url(self.base_url, "/api/get-hash", {"app_id": app_id, "username": username})
        try:
            resp = http.request_json("GET", url, timeout_s=timeout_s if timeout_s is not None else self.timeout_s)
        except http.TransportError as e:
            if e.status == 404:
                return None
            logger.warning(f"directory get_pointer failed app={app_id} user={username}: {e.code} {e.detail}")
            raise DirectoryUnavailable(e.detail, retryable=e.retryable, status=e.status) from e

        pointer = str(resp.get("ipfsHash") or "").strip()
        return pointer or None
