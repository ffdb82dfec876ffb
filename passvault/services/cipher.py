"""
Payload encryption for stored record lists.

Key derivation: PBKDF2-HMAC-SHA256(secret, salt) → 256-bit AES key.
Encryption: AES-256-GCM with a fresh random 96-bit nonce per call.

The envelope is ``{"iv": <24 hex chars>, "data": <hex ciphertext+tag>}``.
Payloads are serialized as compact UTF-8 JSON so envelopes written here and
by earlier clients decrypt to the same values.

Never log secrets, keys or plaintext.
"""

import json
import os
from typing import Any, TypedDict

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from passvault.config import settings

NONCE_SIZE = 12  # 96-bit nonce
KEY_LENGTH = 32  # AES-256


class Envelope(TypedDict):
    iv: str
    data: str


def derive_key(secret: str, salt: str) -> bytes:
    """
    Stretch the session's encryption secret with the user's fixed salt.

    Re-derived on every call; derived keys are never cached or stored.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt.encode("utf-8"),
        iterations=settings.kdf_iterations,
    )
    return kdf.derive(secret.encode("utf-8"))


def encrypt(payload: Any, secret: str, salt: str) -> Envelope:
    """Encrypt a JSON-serializable payload into a hex envelope."""
    plaintext = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = AESGCM(derive_key(secret, salt)).encrypt(nonce, plaintext, None)
    return {"iv": nonce.hex(), "data": ciphertext.hex()}


def decrypt(envelope: Any, secret: str, salt: str) -> Any | None:
    """
    Decrypt an envelope produced by ``encrypt``.

    Returns None, never raises, when the envelope is structurally invalid or
    authentication fails (wrong key, tampered data, malformed hex).
    """
    if not isinstance(envelope, dict):
        return None
    iv_hex = envelope.get("iv")
    data_hex = envelope.get("data")
    if not iv_hex or not data_hex or not isinstance(iv_hex, str) or not isinstance(data_hex, str):
        return None

    try:
        nonce = bytes.fromhex(iv_hex)
        ciphertext = bytes.fromhex(data_hex)
    except ValueError:
        return None
    if len(nonce) != NONCE_SIZE:
        return None

    try:
        plaintext = AESGCM(derive_key(secret, salt)).decrypt(nonce, ciphertext, None)
    except InvalidTag:
        return None

    try:
        return json.loads(plaintext.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
