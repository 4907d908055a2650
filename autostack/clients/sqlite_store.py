"""SQLite-backed token store keyed by (pk, sk)."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional

from autostack.clients.token_store import TokenRecordCodec
from autostack.models.token import TokenKey, TokenRecord


class SQLiteTokenStore:
    """Persist one serialized token record per user/provider row."""

    def __init__(self, db_path: str, codec: TokenRecordCodec | None = None) -> None:
        self._db_path = Path(db_path)
        self._codec = codec or TokenRecordCodec()
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS oauth_tokens (
                    pk TEXT NOT NULL,
                    sk TEXT NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (pk, sk)
                )
                """
            )

    def put(self, key: TokenKey, record: TokenRecord) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO oauth_tokens (pk, sk, data)
                VALUES (?, ?, ?)
                ON CONFLICT(pk, sk) DO UPDATE SET data = excluded.data
                """,
                (key.partition_key, key.sort_key, self._codec.dumps(record)),
            )

    def get(self, key: TokenKey) -> Optional[TokenRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data FROM oauth_tokens WHERE pk = ? AND sk = ?",
                (key.partition_key, key.sort_key),
            ).fetchone()
        if not row:
            return None
        return self._codec.loads(row["data"])


__all__ = ["SQLiteTokenStore"]
