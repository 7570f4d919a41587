import base64
import json
import os

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from portid.sync.crypto import (
    DecryptFailure,
    content_pointer,
    decrypt_payload,
    derive_encryption_key,
    encrypt_payload,
    generate_recovery_key,
    hash_password,
    make_password_verifier,
    verify_password,
)


def test_recovery_key_is_128_bit_hex_and_random():
    keys = {generate_recovery_key() for _ in range(50)}
    assert len(keys) == 50
    for k in keys:
        assert len(k) == 32
        int(k, 16)


def test_hash_password_is_deterministic_sha256():
    assert hash_password("pw1") == hash_password("pw1")
    assert hash_password("pw1") != hash_password("pw2")
    assert hash_password("") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


def test_roundtrip_structured_payload():
    key = generate_recovery_key()
    payload = {"notes": ["a", "b"], "count": 3, "nested": {"ok": True, "none": None}, "text": "héllo"}
    blob = encrypt_payload(payload, key)
    assert isinstance(blob, str)
    assert "héllo" not in blob
    assert decrypt_payload(blob, key) == payload


def test_encrypt_is_not_deterministic():
    key = generate_recovery_key()
    a = encrypt_payload({"x": 1}, key)
    b = encrypt_payload({"x": 1}, key)
    assert a != b
    assert decrypt_payload(a, key) == decrypt_payload(b, key) == {"x": 1}


def test_wrong_key_yields_failure_value():
    blob = encrypt_payload({"secret": 1}, generate_recovery_key())
    out = decrypt_payload(blob, generate_recovery_key())
    assert isinstance(out, DecryptFailure)
    assert out.reason == "authentication_failed"


def test_tampered_blob_yields_failure_value():
    key = generate_recovery_key()
    box = json.loads(encrypt_payload({"secret": 1}, key))
    ct = bytearray(box["ciphertext"].encode("ascii"))
    ct[0] = ord("A") if ct[0] != ord("A") else ord("B")
    box["ciphertext"] = ct.decode("ascii")
    out = decrypt_payload(json.dumps(box), key)
    assert isinstance(out, DecryptFailure)


@pytest.mark.parametrize(
    "blob,reason",
    [
        ("not json", "malformed_blob"),
        ("[1, 2]", "malformed_blob"),
        ('{"v": 2, "alg": "AES-256-GCM", "nonce": "", "ciphertext": ""}', "unsupported_blob_version"),
        ('{"v": 1, "alg": "AES-256-GCM"}', "malformed_blob"),
        ('{"v": 1, "alg": "AES-256-GCM", "nonce": "***", "ciphertext": "***"}', "malformed_blob"),
    ],
)
def test_garbage_blob_never_raises(blob, reason):
    out = decrypt_payload(blob, generate_recovery_key())
    assert out == DecryptFailure(reason)


DEEP = "[" * 100000 + "]" * 100000


def test_deeply_nested_blob_is_malformed_not_recursion_error():
    assert decrypt_payload(DEEP, generate_recovery_key()) == DecryptFailure("malformed_blob")


def test_deeply_nested_plaintext_is_undecodable():
    # Authentic ciphertext whose plaintext is too deep for the json parser.
    key = generate_recovery_key()
    nonce = os.urandom(12)
    ct = AESGCM(derive_encryption_key(key)).encrypt(nonce, DEEP.encode("utf-8"), None)
    box = {
        "v": 1,
        "alg": "AES-256-GCM",
        "nonce": base64.b64encode(nonce).decode("ascii"),
        "ciphertext": base64.b64encode(ct).decode("ascii"),
    }
    assert decrypt_payload(json.dumps(box), key) == DecryptFailure("undecodable_payload")


def test_falsy_payload_survives():
    key = generate_recovery_key()
    assert decrypt_payload(encrypt_payload({}, key), key) == {}
    assert decrypt_payload(encrypt_payload(None, key), key) is None


def test_unserializable_payload_raises_type_error():
    with pytest.raises(TypeError):
        encrypt_payload({"s": {1, 2}}, generate_recovery_key())


def test_password_verifier_schemes():
    plain = make_password_verifier("pw1", scheme="sha256")
    assert plain == hash_password("pw1")
    assert verify_password("pw1", plain)
    assert not verify_password("pw2", plain)

    salted = make_password_verifier("pw1", scheme="pbkdf2", iterations=1000)
    assert salted.startswith("pbkdf2_sha256$1000$")
    assert salted != make_password_verifier("pw1", scheme="pbkdf2", iterations=1000)
    assert verify_password("pw1", salted)
    assert not verify_password("pw2", salted)


def test_verify_password_rejects_missing_or_broken_verifier():
    assert not verify_password("pw", None)
    assert not verify_password("pw", "")
    assert not verify_password("pw", "pbkdf2_sha256$x$y")


def test_unknown_scheme_is_rejected():
    with pytest.raises(ValueError):
        make_password_verifier("pw", scheme="md5")


def test_content_pointer_addresses_bytes():
    assert content_pointer("abc") == content_pointer(b"abc")
    assert content_pointer("abc") != content_pointer("abd")
