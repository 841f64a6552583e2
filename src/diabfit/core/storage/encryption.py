"""Fernet field encryption for health records at rest.

Free text a user types or a vision model returns (dose notes, medication
instructions, ingredient lists, meal analyses) is encrypted before it is
written to SQLite. Numeric readings stay in plain columns so range queries
and trend statistics do not need to decrypt every row.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when encryption/decryption fails."""


class FieldEncryptor:
    """Round-trips JSON-serializable values through Fernet tokens.

    Usage::

        encryptor = FieldEncryptor(key=FieldEncryptor.generate_key())
        token = encryptor.encrypt(["nausea", "headache"])
        encryptor.decrypt(token)  # ["nausea", "headache"]
    """

    def __init__(self, key: str) -> None:
        """Initialize with a Fernet key.

        Args:
            key: A URL-safe base64 32-byte key (``ENCRYPTION_KEY``).

        Raises:
            EncryptionError: If the key is empty or malformed.
        """
        if not key or not key.strip():
            raise EncryptionError("Encryption key must not be empty")
        try:
            self._fernet = Fernet(key.strip().encode("utf-8"))
        except (ValueError, TypeError) as exc:
            raise EncryptionError(f"Invalid encryption key: {exc}") from exc

    def encrypt(self, data: Any) -> str | None:
        """Encrypt a value, returning ``None`` for empty input.

        ``None``, empty strings and empty lists are stored as NULL so that
        optional columns stay optional.

        Raises:
            EncryptionError: If the value is not JSON-serializable.
        """
        if data is None or data == "" or data == []:
            return None
        try:
            plaintext = json.dumps(data, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Encryption failed: {exc}") from exc
        return self._fernet.encrypt(plaintext).decode("utf-8")

    def decrypt(self, token: str | None, default: Any = None) -> Any:
        """Decrypt a token produced by :meth:`encrypt`.

        Args:
            token: Fernet token, or ``None``/empty for a NULL column.
            default: Value returned for NULL columns.

        Raises:
            EncryptionError: If the token was tampered with or the key differs.
        """
        if not token:
            return default
        try:
            plaintext = self._fernet.decrypt(token.encode("utf-8"))
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc
        try:
            return json.loads(plaintext)
        except ValueError as exc:
            raise EncryptionError(f"Decryption failed: {exc}") from exc

    @staticmethod
    def generate_key() -> str:
        """Generate a new Fernet key suitable for ``ENCRYPTION_KEY``."""
        return Fernet.generate_key().decode("utf-8")
