"""Token store interface shared by the broker's persistence backends."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Optional, Protocol

from autostack.models.token import TokenKey, TokenRecord

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from autostack.services.token_cipher import TokenCipherService


class TokenStore(Protocol):
    """Durable map from ``(user_id, provider)`` to a single token record.

    Writes are unconditional overwrites. Implementations must not cache reads,
    so that every broker process observes the latest stored record.
    """

    def get(self, key: TokenKey) -> Optional[TokenRecord]:
        ...

    def put(self, key: TokenKey, record: TokenRecord) -> None:
        ...


class TokenRecordCodec:
    """Serialize token records, optionally encrypting them at rest."""

    def __init__(self, cipher: TokenCipherService | None = None) -> None:
        self._cipher = cipher

    def dumps(self, record: TokenRecord) -> str:
        serialized = json.dumps(record.model_dump(), separators=(",", ":"))
        if self._cipher is None:
            return serialized
        return self._cipher.encrypt(serialized)

    def loads(self, data: str) -> TokenRecord:
        if self._cipher is not None:
            data = self._cipher.decrypt(data)
        return TokenRecord.model_validate_json(data)


class InMemoryTokenStore:
    """Process-local token store for tests and single-process development."""

    def __init__(self) -> None:
        self._records: dict[TokenKey, str] = {}
        self._codec = TokenRecordCodec()

    def get(self, key: TokenKey) -> Optional[TokenRecord]:
        data = self._records.get(key)
        if data is None:
            return None
        return self._codec.loads(data)

    def put(self, key: TokenKey, record: TokenRecord) -> None:
        # Stored serialized so callers never share a mutable record instance.
        self._records[key] = self._codec.dumps(record)


__all__ = ["InMemoryTokenStore", "TokenRecordCodec", "TokenStore"]
