"""
app/resolution/durable_store.py

Local SQLite copy of resolved entities, so the resolution cache survives
process restarts.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sqlalchemy import JSON, Column, DateTime, MetaData, String, Table, create_engine, delete, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

_metadata = MetaData()

entity_cache_table = Table(
    "entity_cache",
    _metadata,
    Column("cache_key", String, primary_key=True),
    Column("entity_type", String, nullable=False, index=True),
    Column("entity_id", String, nullable=False),
    Column("payload", JSON, nullable=False),
    Column("stored_at", DateTime(timezone=True), nullable=False),
)


def make_cache_key(entity_type: str, entity_id: str) -> str:
    return f"{entity_type}:{entity_id}"


class DurableCacheStore:
    """
    Single-table SQLite store opened once per cache lifetime.

    Pass ``":memory:"`` as ``db_path`` for an ephemeral store.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._engine: Engine | None = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    def open(self) -> None:
        if self._engine is not None:
            return
        if self._db_path == ":memory:":
            self._engine = create_engine(
                "sqlite://",
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            self._engine = create_engine(f"sqlite:///{self._db_path}")
        _metadata.create_all(self._engine)
        logger.info("Entity cache store opened path=%s", self._db_path)

    def close(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None

    def load_all(self) -> list[tuple[str, str, dict[str, Any]]]:
        """
        Return ``(entity_type, entity_id, payload)`` oldest first.
        """

        stmt = select(
            entity_cache_table.c.entity_type,
            entity_cache_table.c.entity_id,
            entity_cache_table.c.payload,
        ).order_by(entity_cache_table.c.stored_at)
        with self._require_engine().connect() as conn:
            return [(row.entity_type, row.entity_id, row.payload) for row in conn.execute(stmt)]

    def put_many(self, entity_type: str, entities: Mapping[str, dict[str, Any]]) -> int:
        if not entities:
            return 0

        stored_at = datetime.now(timezone.utc)
        rows = [
            {
                "cache_key": make_cache_key(entity_type, entity_id),
                "entity_type": entity_type,
                "entity_id": entity_id,
                "payload": payload,
                "stored_at": stored_at,
            }
            for entity_id, payload in entities.items()
        ]
        stmt = sqlite_insert(entity_cache_table).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=[entity_cache_table.c.cache_key],
            set_={"payload": stmt.excluded.payload, "stored_at": stmt.excluded.stored_at},
        )
        with self._require_engine().begin() as conn:
            conn.execute(stmt)
        return len(rows)

    def clear(self, entity_type: str | None = None) -> int:
        stmt = delete(entity_cache_table)
        if entity_type is not None:
            stmt = stmt.where(entity_cache_table.c.entity_type == entity_type)
        with self._require_engine().begin() as conn:
            return conn.execute(stmt).rowcount or 0

    def count(self) -> int:
        with self._require_engine().connect() as conn:
            return len(conn.execute(select(entity_cache_table.c.cache_key)).all())

    def _require_engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Durable cache store is not open.")
        return self._engine
