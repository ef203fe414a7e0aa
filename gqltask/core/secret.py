"""
Response body encryption.

Bodies are encrypted with Fernet (AES-128-CBC + HMAC-SHA256) from the
``cryptography`` package. The resulting token is wrapped in EncryptedString
and is only meaningful to a SecretCipher built from the same key; the rest of
gqltask never looks inside it.

The key comes from GQLTASK_ENCRYPTION_KEY (see ``gqltask secret
generate-key``). Without it, encryption is unavailable and asking for an
encrypted body fails with SecretError.
"""

from __future__ import annotations

from typing import Any, Literal, Optional, Union

from cryptography.fernet import Fernet, InvalidToken
from pydantic import BaseModel, ConfigDict

from gqltask.core.config import get_settings
from gqltask.core.errors import SecretError


class EncryptedString(BaseModel):
    """Opaque encrypted value as it appears under ``encryptedBody``."""

    model_config = ConfigDict(frozen=True)

    type: Literal["encrypted"] = "encrypted"
    value: str


def generate_key() -> str:
    """Return a new urlsafe base64 Fernet key."""
    return Fernet.generate_key().decode("ascii")


class SecretCipher:
    """Encrypt/decrypt collaborator pair backed by a single Fernet key."""

    def __init__(self, key: Union[str, bytes]):
        try:
            self._fernet = Fernet(key)
        except (ValueError, TypeError) as e:
            raise SecretError(f"Invalid encryption key: {e}") from e

    @classmethod
    def from_settings(cls) -> "SecretCipher":
        settings = get_settings()
        if not settings.encryption_enabled:
            raise SecretError(
                "Response encryption requested but no encryption key is configured; "
                "set GQLTASK_ENCRYPTION_KEY"
            )
        return cls(settings.encryption_key)

    def encrypt(self, plaintext: str) -> EncryptedString:
        token = self._fernet.encrypt(plaintext.encode("utf-8"))
        return EncryptedString(value=token.decode("ascii"))

    def decrypt(self, token: Union[EncryptedString, dict, str]) -> str:
        value = _token_value(token)
        try:
            return self._fernet.decrypt(value.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError) as e:
            raise SecretError("Unable to decrypt value: token is invalid or was produced with another key") from e


def _token_value(token: Any) -> str:
    if isinstance(token, EncryptedString):
        return token.value
    if isinstance(token, dict) and isinstance(token.get("value"), str):
        return token["value"]
    if isinstance(token, str):
        return token
    raise SecretError(f"Unsupported encrypted value of type {type(token).__name__}")


def default_encryptor(cipher: Optional[SecretCipher] = None):
    """
    Encrypt callable for the response processor.

    The cipher is resolved on first use so tasks that never encrypt do not
    need a key configured.
    """
    resolved: list[SecretCipher] = [cipher] if cipher is not None else []

    def encrypt(plaintext: str) -> EncryptedString:
        if not resolved:
            resolved.append(SecretCipher.from_settings())
        return resolved[0].encrypt(plaintext)

    return encrypt
