# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
AES-256-GCM envelope encryption for audit metadata.

Envelopes are JSON strings. An encrypted envelope carries the nonce, the
ciphertext and the 16-byte authentication tag separately; a fallback
envelope carries the plain metadata and an explicit marker.
"""

import base64
import json
import logging
import secrets
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..errors import EncryptionError


logger = logging.getLogger(__name__)

ALGORITHM = "aes-256-gcm"
NONCE_SIZE = 12
TAG_SIZE = 16
FALLBACK_MARKER = "unencrypted_fallback"
DECRYPTION_FAILED = {"error": "decryption_failed"}


def generate_key_hex() -> str:
    """Generate a new random 256-bit key, hex encoded."""
    return secrets.token_hex(32)


class MetadataCipher:
    """Encrypts and decrypts audit metadata with a single 256-bit key."""

    def __init__(self, key_hex: Optional[str]):
        self._aesgcm: Optional[AESGCM] = None
        if key_hex:
            key = bytes.fromhex(key_hex)
            if len(key) != 32:
                raise ValueError("Audit encryption key must be 32 bytes")
            self._aesgcm = AESGCM(key)

    @property
    def enabled(self) -> bool:
        return self._aesgcm is not None

    def encrypt(self, metadata: Dict[str, Any]) -> str:
        """Encrypt metadata into an envelope. Raises EncryptionError on any failure."""
        if self._aesgcm is None:
            raise EncryptionError("No audit encryption key configured")

        try:
            plaintext = json.dumps(metadata, sort_keys=True, default=str).encode("utf-8")
            nonce = secrets.token_bytes(NONCE_SIZE)
            sealed = self._aesgcm.encrypt(nonce, plaintext, None)
        except (TypeError, ValueError) as e:
            raise EncryptionError(f"Failed to encrypt audit metadata: {e}", cause=e)

        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return json.dumps({
            "algorithm": ALGORITHM,
            "nonce": base64.b64encode(nonce).decode("ascii"),
            "ciphertext": base64.b64encode(ciphertext).decode("ascii"),
            "tag": base64.b64encode(tag).decode("ascii"),
        })

    @staticmethod
    def fallback(metadata: Dict[str, Any]) -> str:
        """Envelope that stores metadata in clear with an explicit degraded marker."""
        return json.dumps({FALLBACK_MARKER: True, "metadata": metadata}, sort_keys=True, default=str)

    @staticmethod
    def plain(metadata: Dict[str, Any]) -> str:
        """Envelope for frameworks that do not require encryption."""
        return json.dumps({"metadata": metadata}, sort_keys=True, default=str)

    def decrypt(self, envelope: str) -> Dict[str, Any]:
        """
        Decrypt an envelope.

        Never raises: a tampered or undecryptable envelope yields the
        ``DECRYPTION_FAILED`` marker so a surrounding report is not lost.
        """
        try:
            data = json.loads(envelope) if envelope else {}
        except (TypeError, ValueError):
            logger.error("Audit metadata envelope is not valid JSON")
            return dict(DECRYPTION_FAILED)

        if "ciphertext" not in data:
            return dict(data.get("metadata", {}))

        if self._aesgcm is None:
            logger.error("Cannot decrypt audit metadata: no key configured")
            return dict(DECRYPTION_FAILED)

        try:
            nonce = base64.b64decode(data["nonce"])
            ciphertext = base64.b64decode(data["ciphertext"])
            tag = base64.b64decode(data["tag"])
            if len(tag) != TAG_SIZE:
                raise ValueError("Invalid authentication tag length")
            plaintext = self._aesgcm.decrypt(nonce, ciphertext + tag, None)
            return json.loads(plaintext.decode("utf-8"))
        except (InvalidTag, KeyError, ValueError, TypeError) as e:
            logger.error("Error decrypting audit metadata: %s", type(e).__name__)
            return dict(DECRYPTION_FAILED)
