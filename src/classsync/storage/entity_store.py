# src/classsync/storage/entity_store.py

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import re
import sqlite3
import time
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from ..core.errors import NotFoundError, PersistenceError, ValidationError
from ..core.ports import Record, WriteAction, WriteOp

logger = logging.getLogger(__name__)

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SqliteEntityStore:
    """
    SQLite document store (implements the EntityStore port).

    Every document lives in one table keyed by (collection, id) with its body
    stored as JSON. Queries filter on top-level fields through json_extract.

    Thread-safety:
    - each call opens its own SQLite connection
    - async methods run the blocking work in a worker thread

    Atomicity:
    - batch_write runs inside a single BEGIN IMMEDIATE transaction; any failing
      op rolls back the whole batch.
    """

    def __init__(self, db_path: str | Path = "classsync.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_documents()
        except PersistenceError:
            total = -1
        logger.info("SqliteEntityStore ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open database at {self._db_path}") from e
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    id TEXT NOT NULL,
                    data TEXT NOT NULL DEFAULT '{}',
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    PRIMARY KEY (collection, id)
                )
                """
            )

            cur.execute("PRAGMA table_info(documents)")
            cols = {row["name"] for row in cur.fetchall()}
            if "updated_at" not in cols:
                cur.execute("ALTER TABLE documents ADD COLUMN updated_at REAL NOT NULL DEFAULT 0")
                logger.info("SqliteEntityStore migration: added column updated_at")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection)")
            conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to prepare schema at {self._db_path}") from e
        finally:
            conn.close()

    @staticmethod
    def _encode(record: Mapping[str, Any]) -> str:
        try:
            return json.dumps(dict(record), ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Record is not JSON-serializable: {e}") from e

    @staticmethod
    def _decode(raw: str | None) -> Record:
        if not raw:
            return {}
        val = json.loads(raw)
        return val if isinstance(val, dict) else {}

    @staticmethod
    def _field_path(name: str) -> str:
        if not _FIELD_RE.match(name or ""):
            raise ValidationError(f"Invalid field name: {name!r}")
        return f"$.{name}"

    def _load(self, conn: sqlite3.Connection, collection: str, id: str) -> Record | None:
        row = conn.execute(
            "SELECT data FROM documents WHERE collection = ? AND id = ?",
            (collection, id),
        ).fetchone()
        return self._decode(row["data"]) if row else None

    def _upsert(self, conn: sqlite3.Connection, collection: str, id: str, record: Record, now: float) -> None:
        body = dict(record)
        body["id"] = id
        conn.execute(
            """
            INSERT INTO documents(collection, id, data, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(collection, id) DO UPDATE SET
                data = excluded.data,
                updated_at = excluded.updated_at
            """,
            (collection, id, self._encode(body), now, now),
        )

    def _apply(self, conn: sqlite3.Connection, op: WriteOp, now: float) -> None:
        if not op.collection or not op.id:
            raise ValidationError("WriteOp requires collection and id")

        if op.action == WriteAction.SET:
            self._upsert(conn, op.collection, op.id, op.data, now)
            return

        if op.action == WriteAction.UPDATE:
            current = self._load(conn, op.collection, op.id)
            if current is None:
                raise NotFoundError(f"{op.collection}/{op.id} does not exist")
            if op.check is not None:
                op.check(current)
            current.update(op.data)
            for name, delta in op.increments.items():
                current[name] = int(current.get(name) or 0) + int(delta)
            for name, items in op.array_union.items():
                values = list(current.get(name) or [])
                values.extend(item for item in dict.fromkeys(items) if item not in values)
                current[name] = values
            for name, items in op.array_remove.items():
                current[name] = [v for v in current.get(name) or [] if v not in items]
            self._upsert(conn, op.collection, op.id, current, now)
            return

        if op.action == WriteAction.DELETE:
            # Deleting a missing document is a no-op.
            conn.execute(
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                (op.collection, op.id),
            )
            return

        raise ValidationError(f"Unknown write action: {op.action!r}")

    # ---- blocking implementations ----

    def count_documents(self, collection: str | None = None) -> int:
        conn = self._get_conn()
        try:
            if collection is None:
                (n,) = conn.execute("SELECT COUNT(*) FROM documents").fetchone()
            else:
                (n,) = conn.execute(
                    "SELECT COUNT(*) FROM documents WHERE collection = ?", (collection,)
                ).fetchone()
            return int(n)
        except sqlite3.Error as e:
            raise PersistenceError("count_documents failed") from e
        finally:
            conn.close()

    def _put_sync(self, collection: str, id: str, record: Record) -> None:
        self.batch_write_sync([WriteOp(WriteAction.SET, collection, id, dict(record))])

    def _get_sync(self, collection: str, id: str) -> Record | None:
        conn = self._get_conn()
        try:
            return self._load(conn, collection, id)
        except sqlite3.Error as e:
            raise PersistenceError(f"get {collection}/{id} failed") from e
        finally:
            conn.close()

    def _query_sync(
        self,
        collection: str,
        filters: Mapping[str, Any] | None,
        order_by: str | None,
        descending: bool,
        limit: int | None,
    ) -> list[Record]:
        clauses = ["collection = ?"]
        params: list[Any] = [collection]

        for name, value in (filters or {}).items():
            path = self._field_path(name)
            if value is None:
                clauses.append("json_extract(data, ?) IS NULL")
                params.append(path)
            elif isinstance(value, (str, int, float, bool)):
                clauses.append("json_extract(data, ?) = ?")
                params.extend([path, value])
            else:
                raise ValidationError(f"Unsupported filter value for {name!r}: {type(value).__name__}")

        sql = f"SELECT data FROM documents WHERE {' AND '.join(clauses)}"

        if order_by:
            direction = "DESC" if descending else "ASC"
            sql += f" ORDER BY json_extract(data, ?) {direction}, rowid ASC"
            params.append(self._field_path(order_by))
        else:
            sql += " ORDER BY rowid ASC"

        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        conn = self._get_conn()
        try:
            rows = conn.execute(sql, params).fetchall()
            return [self._decode(r["data"]) for r in rows]
        except sqlite3.Error as e:
            raise PersistenceError(f"query on {collection} failed") from e
        finally:
            conn.close()

    def batch_write_sync(self, ops: Sequence[WriteOp]) -> None:
        if not ops:
            return

        now = time.time()
        conn = self._get_conn()  # raises PersistenceError
        try:
            conn.execute("BEGIN IMMEDIATE")
            for op in ops:
                self._apply(conn, op, now)
            conn.commit()
            logger.debug("Batch committed ops=%d", len(ops))
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(f"batch write failed ({len(ops)} ops)") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ---- EntityStore port ----

    async def put(self, collection: str, id: str, record: Record) -> None:
        await asyncio.to_thread(self._put_sync, collection, id, record)

    async def get(self, collection: str, id: str) -> Record | None:
        return await asyncio.to_thread(self._get_sync, collection, id)

    async def query(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Record]:
        return await asyncio.to_thread(self._query_sync, collection, filters, order_by, descending, limit)

    async def batch_write(self, ops: Sequence[WriteOp]) -> None:
        await asyncio.to_thread(self.batch_write_sync, list(ops))
