from __future__ import annotations

import json
import socket
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional


@dataclass(eq=False)
class TransportError(Exception):
    """HTTP-level failure with retry classification.

    Never leaves the client modules: each client re-raises it as one of the
    portid.errors types.
    """

    code: str
    status: Optional[int]
    retryable: bool
    detail: str

    def __str__(self) -> str:  # pragma: no cover
        s = f"{self.code}"
        if self.status is not None:
            s += f" (HTTP {self.status})"
        if self.retryable:
            s += " [retryable]"
        return f"{s}: {self.detail}"


def _is_retryable_status(status: int) -> bool:
    return status == 408 or status == 429 or 500 <= status <= 599


def _error_message(body: str) -> str:
    try:
        data = json.loads(body) if body else {}
    except (ValueError, RecursionError):
        return body[:300]
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])[:300]
    return body[:300]


def build_url(base_url: str, endpoint: str, query: Optional[Mapping[str, Any]] = None) -> str:
    url = f"{base_url.rstrip('/')}{endpoint}"
    if query:
        url += "?" + urllib.parse.urlencode({k: str(v) for k, v in query.items()})
    return url


def request_json(
    method: str,
    url: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    timeout_s: float = 20.0,
) -> Dict[str, Any]:
    headers = {"Accept": "application/json"}
    data = None
    if payload is not None:
        headers["Content-Type"] = "application/json"
        data = json.dumps(payload).encode("utf-8")

    req = urllib.request.Request(url=url, data=data, headers=headers, method=method)
    try:
        with urllib.request.urlopen(req, timeout=timeout_s) as resp:
            raw = resp.read().decode("utf-8", errors="replace")
    except urllib.error.HTTPError as e:
        status = int(getattr(e, "code", 0) or 0)
        body = e.read().decode("utf-8", errors="replace")
        raise TransportError(
            code="http_status_error",
            status=status,
            retryable=_is_retryable_status(status),
            detail=_error_message(body) or str(e),
        ) from e
    except (socket.timeout, TimeoutError) as e:
        raise TransportError(code="timeout", status=None, retryable=True, detail=f"no response within {timeout_s}s") from e
    except (urllib.error.URLError, OSError) as e:
        if isinstance(getattr(e, "reason", None), (socket.timeout, TimeoutError)):
            raise TransportError(code="timeout", status=None, retryable=True, detail=f"no response within {timeout_s}s") from e
        raise TransportError(code=type(e).__name__, status=None, retryable=True, detail=str(e)) from e

    try:
        out = json.loads(raw) if raw else {}
    except (ValueError, RecursionError) as e:
        raise TransportError(code="invalid_json", status=None, retryable=False, detail=raw[:300]) from e
    if not isinstance(out, dict):
        raise TransportError(code="invalid_json", status=None, retryable=False, detail="response is not a JSON object")
    return out
