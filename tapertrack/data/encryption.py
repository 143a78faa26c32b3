"""age encryption helpers for local storage files, using pyrage."""

from __future__ import annotations

import json
from typing import Any

import pyrage
import pyrage.x25519


def encrypt_data(plaintext: bytes, recipient_public_key: str) -> bytes:
    """Encrypt bytes using age recipient public key."""
    recipient = pyrage.x25519.Recipient.from_str(recipient_public_key)
    result: bytes = pyrage.encrypt(plaintext, [recipient])
    return result


def decrypt_data(ciphertext: bytes, identity_private_key: str) -> bytes:
    """Decrypt age-encrypted bytes using identity (private key)."""
    identity = pyrage.x25519.Identity.from_str(identity_private_key)
    result: bytes = pyrage.decrypt(ciphertext, [identity])
    return result


def encode_value(value: Any, recipient_key: str = "") -> bytes:
    """Serialize a JSON value; encrypt it when a recipient key is configured."""
    plaintext = json.dumps(value, ensure_ascii=False).encode("utf-8")
    if not recipient_key:
        return plaintext
    return encrypt_data(plaintext, recipient_key)


def decode_value(payload: bytes, identity_key: str = "") -> Any:
    """Inverse of ``encode_value``."""
    plaintext = decrypt_data(payload, identity_key) if identity_key else payload
    return json.loads(plaintext.decode("utf-8"))
