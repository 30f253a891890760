from __future__ import annotations

import os
from functools import lru_cache
from typing import Any

from cryptography.fernet import Fernet
from sqlalchemy import String, TypeDecorator

CREDENTIAL_KEY_ENV = "CREDENTIAL_ENCRYPTION_KEY"


@lru_cache(maxsize=4)
def _fernet_for(key: str) -> Fernet:
    return Fernet(key.encode())


def credential_cipher() -> Fernet:
    """Fernet cipher for bot tokens at rest.

    The key is read on every call so a rotated environment takes effect
    without a restart; ciphers are cached per key.
    """
    key = os.getenv(CREDENTIAL_KEY_ENV)
    if not key:
        raise RuntimeError(
            f"{CREDENTIAL_KEY_ENV} must be set to store bot tokens. "
            'Generate one with: python -c "from cryptography.fernet import Fernet; '
            'print(Fernet.generate_key().decode())"'
        )
    return _fernet_for(key)


class EncryptedString(TypeDecorator):
    """String column holding a Fernet token instead of the plain value."""

    impl = String
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> str | None:
        if value is None:
            return None
        return credential_cipher().encrypt(str(value).encode()).decode()

    def process_result_value(self, value: Any, dialect: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, bytes | memoryview):
            value = bytes(value).decode()
        return credential_cipher().decrypt(value.encode()).decode()
