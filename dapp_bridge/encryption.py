"""Symmetric encryption helpers for bridge payloads.

The bridge only ever sees ciphertext.  Payloads are serialized to compact JSON
and sealed with AES-256-GCM under the session's shared key; the resulting
envelope is what travels over the wire and what the wallet decrypts on its
side of the pairing.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from dataclasses import asdict, dataclass
from typing import Any, Mapping

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger(__name__)

ENVELOPE_ALGORITHM = "aes-256-gcm"
_AESGCM_NONCE_SIZE = 12
_KEY_BITS = 256


class DecryptionError(ValueError):
    """Raised when an envelope cannot be authenticated with the given key."""


@dataclass
class EncryptedPayload:
    """Serialized AEAD envelope exchanged with the bridge."""

    algorithm: str
    nonce: str
    ciphertext: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EncryptedPayload":
        try:
            return cls(
                algorithm=str(data["algorithm"]),
                nonce=str(data["nonce"]),
                ciphertext=str(data["ciphertext"]),
            )
        except KeyError as exc:
            raise DecryptionError(f"Envelope missing field: {exc.args[0]}") from exc


def _load_key(key: str) -> bytes:
    try:
        raw = bytes.fromhex(key)
    except ValueError as exc:
        raise DecryptionError("Shared key is not valid hex") from exc
    if len(raw) * 8 != _KEY_BITS:
        raise DecryptionError(f"Shared key must be {_KEY_BITS} bits")
    return raw


class CryptoProvider:
    """Key generation and AEAD sealing used by the session layer.

    Keys are carried around as hex strings so they can be stored in the local
    registry and embedded in the pairing payload without extra encoding.
    """

    def generate_key(self) -> str:
        key = AESGCM.generate_key(bit_length=_KEY_BITS)
        logger.debug("Generated %d-bit session key", _KEY_BITS)
        return key.hex()

    def encrypt(self, payload: Any, key: str) -> EncryptedPayload:
        """Encrypt any JSON-serializable *payload* with *key*."""

        plaintext = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        nonce = os.urandom(_AESGCM_NONCE_SIZE)
        ciphertext = AESGCM(_load_key(key)).encrypt(nonce, plaintext, None)
        return EncryptedPayload(
            algorithm=ENVELOPE_ALGORITHM,
            nonce=base64.b64encode(nonce).decode("ascii"),
            ciphertext=base64.b64encode(ciphertext).decode("ascii"),
        )

    def decrypt(self, envelope: EncryptedPayload, key: str) -> Any:
        """Return the JSON value sealed in *envelope*."""

        if envelope.algorithm != ENVELOPE_ALGORITHM:
            raise DecryptionError(f"Unsupported envelope algorithm: {envelope.algorithm}")
        try:
            nonce = base64.b64decode(envelope.nonce, validate=True)
            ciphertext = base64.b64decode(envelope.ciphertext, validate=True)
        except binascii.Error as exc:
            raise DecryptionError("Envelope is not valid base64") from exc
        try:
            plaintext = AESGCM(_load_key(key)).decrypt(nonce, ciphertext, None)
        except (InvalidTag, ValueError) as exc:
            raise DecryptionError("Failed to decrypt payload; invalid key or tampered data") from exc
        return json.loads(plaintext.decode("utf-8"))
