from __future__ import annotations

import base64
import binascii
import hashlib
import json
import os
import secrets
from dataclasses import dataclass
from typing import Any, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from portid.core import settings

BLOB_VERSION = 1
BLOB_ALG = "AES-256-GCM"
RECOVERY_KEY_BYTES = 16
_KEY_INFO = b"portid-backup-v1"
_PBKDF2_PREFIX = "pbkdf2_sha256"


def _b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")


def _b64d(s: str) -> bytes:
    return base64.b64decode(s.encode("ascii"), validate=True)


def _canon(obj: Any) -> bytes:
    return json.dumps(obj, ensure_ascii=False, sort_keys=True, separators=(",", ":")).encode("utf-8")


@dataclass(frozen=True)
class DecryptFailure:
    """Returned (not raised) when a blob cannot be turned back into a payload."""

    reason: str


DecryptResult = Union[Any, DecryptFailure]


def generate_recovery_key() -> str:
    # os.urandom raises if the OS has no entropy source; that is fatal, let it propagate.
    return os.urandom(RECOVERY_KEY_BYTES).hex()


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def _pbkdf2(password: str, salt: bytes, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


def make_password_verifier(password: str, *, scheme: str | None = None, iterations: int | None = None) -> str:
    """Build the stored verifier for a device-unlock password.

    scheme "sha256" gives `hash_password(password)`; scheme "pbkdf2" gives
    `pbkdf2_sha256$<iterations>$<salt_b64>$<digest_b64>` with a fresh salt.
    """
    s = (scheme or settings.PASSWORD_HASH_SCHEME).strip().lower()
    if s == "sha256":
        return hash_password(password)
    if s == "pbkdf2":
        n = int(iterations or settings.PBKDF2_ITERATIONS)
        salt = os.urandom(16)
        return f"{_PBKDF2_PREFIX}${n}${_b64e(salt)}${_b64e(_pbkdf2(password, salt, n))}"
    raise ValueError(f"Unknown password hash scheme '{scheme}'. Supported: sha256, pbkdf2")


def verify_password(password: str, verifier: str | None) -> bool:
    if not verifier:
        return False
    if verifier.startswith(_PBKDF2_PREFIX + "$"):
        try:
            _, n, salt_b64, digest_b64 = verifier.split("$")
            salt = _b64d(salt_b64)
            expected = _b64d(digest_b64)
            actual = _pbkdf2(password, salt, int(n))
        except (ValueError, binascii.Error):
            return False
        return secrets.compare_digest(actual, expected)
    return secrets.compare_digest(hash_password(password), verifier)


def derive_encryption_key(recovery_key: str) -> bytes:
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=None,
        info=_KEY_INFO,
    )
    return hkdf.derive(str(recovery_key).encode("utf-8"))


def encrypt_payload(payload: Any, key: str) -> str:
    """Serialize `payload` canonically and seal it under the recovery key.

    A fresh nonce is drawn per call, so the same input never yields the same blob.
    Raises TypeError/ValueError if the payload is not JSON serializable.
    """
    nonce = os.urandom(12)
    ct = AESGCM(derive_encryption_key(key)).encrypt(nonce, _canon(payload), None)
    box = {"v": BLOB_VERSION, "alg": BLOB_ALG, "nonce": _b64e(nonce), "ciphertext": _b64e(ct)}
    return _canon(box).decode("utf-8")


def decrypt_payload(blob: str, key: str) -> DecryptResult:
    try:
        box = json.loads(blob)
    except (TypeError, ValueError, RecursionError):
        return DecryptFailure("malformed_blob")
    if not isinstance(box, dict):
        return DecryptFailure("malformed_blob")
    if box.get("v") != BLOB_VERSION or box.get("alg") != BLOB_ALG:
        return DecryptFailure("unsupported_blob_version")

    try:
        nonce = _b64d(str(box["nonce"]))
        ct = _b64d(str(box["ciphertext"]))
    except (KeyError, ValueError, binascii.Error):
        return DecryptFailure("malformed_blob")

    try:
        pt = AESGCM(derive_encryption_key(key)).decrypt(nonce, ct, None)
    except InvalidTag:
        # Wrong key and tampered ciphertext are indistinguishable here.
        return DecryptFailure("authentication_failed")
    except ValueError:
        return DecryptFailure("malformed_blob")

    try:
        return json.loads(pt.decode("utf-8"))
    except (UnicodeDecodeError, ValueError, RecursionError):
        return DecryptFailure("undecodable_payload")


def content_pointer(data: bytes | str) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()
