"""Owner-scoped vector store on SQLite with exact cosine ranking."""

from __future__ import annotations

import math
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Sequence

import orjson

from grounding_index.core.errors import ConfigurationError
from grounding_index.core.metrics import INDEX_SIZE
from grounding_index.db.sqlite import SQLiteDatabase, placeholders
from grounding_index.ingest.embeddings import as_bytes, from_bytes
from grounding_index.utils.ids import new_id
from grounding_index.utils.time import now_ms

CHUNKS = "chunks"
IMAGES = "images"


@dataclass(slots=True)
class VectorRow:
    id: str
    collection: str
    owner_id: str
    parent_id: str
    text: str
    vector: list[float]
    seq: int
    created_at: int
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Neighbor:
    row: VectorRow
    distance: float


class VectorStore:
    """Persists vectors scoped by owner and parent, and ranks them by cosine distance."""

    def __init__(self, db: SQLiteDatabase, dim: int) -> None:
        if dim <= 0:
            raise ConfigurationError(f"Vector dimension must be positive, got {dim}")
        self.db = db
        self.dim = dim

    def insert(
        self,
        owner_id: str,
        parent_id: str,
        text: str,
        vector: Sequence[float],
        collection: str = CHUNKS,
        row_id: str | None = None,
        meta: dict[str, Any] | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> str:
        """Append one row; pass ``conn`` to join a caller-owned transaction."""
        self._check_dim(vector, "Vector")
        row_id = row_id or new_id("chk" if collection == CHUNKS else "vec")
        params = [
            row_id,
            collection,
            owner_id,
            parent_id,
            text,
            self.dim,
            as_bytes(vector),
            orjson.dumps(meta or {}).decode("utf-8"),
            now_ms(),
        ]
        sql = """
            INSERT INTO vectors (id, collection, owner_id, parent_id, text, dim, vector, meta_json, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        if conn is not None:
            conn.execute(sql, params)
        else:
            with self.db.transaction() as own:
                own.execute(sql, params)
        return row_id

    def delete_by_parent(self, parent_id: str, conn: sqlite3.Connection | None = None) -> int:
        sql = "DELETE FROM vectors WHERE parent_id = ?"
        if conn is not None:
            return conn.execute(sql, [parent_id]).rowcount
        with self.db.transaction() as own:
            return own.execute(sql, [parent_id]).rowcount

    def delete(self, row_id: str) -> int:
        with self.db.transaction() as conn:
            return conn.execute("DELETE FROM vectors WHERE id = ?", [row_id]).rowcount

    def rows_for_parent(self, parent_id: str) -> list[VectorRow]:
        rows = self.db.query(
            "SELECT seq, id, collection, owner_id, parent_id, text, vector, meta_json, created_at "
            "FROM vectors WHERE parent_id = ? ORDER BY seq ASC",
            [parent_id],
        )
        return [_to_row(row) for row in rows]

    def nearest_neighbors(
        self,
        owner_id: str,
        query_vector: Sequence[float],
        k: int,
        collection: str = CHUNKS,
        parent_ids: Sequence[str] | None = None,
    ) -> list[Neighbor]:
        """Up to ``k`` of the owner's rows, nearest first; ties keep insertion order."""
        if k <= 0:
            return []
        self._check_dim(query_vector, "Query vector")
        sql = (
            "SELECT seq, id, collection, owner_id, parent_id, text, vector, meta_json, created_at "
            "FROM vectors WHERE owner_id = ? AND collection = ?"
        )
        params: list[Any] = [owner_id, collection]
        if parent_ids is not None:
            if not parent_ids:
                return []
            sql += f" AND parent_id IN ({placeholders(parent_ids)})"
            params.extend(parent_ids)
        sql += " ORDER BY seq ASC"
        query = list(query_vector)
        query_norm = _norm(query)
        scored = [
            Neighbor(row=candidate, distance=_cosine_distance(query, query_norm, candidate.vector))
            for candidate in (_to_row(row) for row in self.db.query(sql, params))
        ]
        # sorted() is stable, so rows with equal distance stay in seq order.
        scored.sort(key=lambda item: item.distance)
        return scored[:k]

    def count(self, owner_id: str | None = None, collection: str | None = None) -> int:
        clauses: list[str] = []
        params: list[Any] = []
        if owner_id is not None:
            clauses.append("owner_id = ?")
            params.append(owner_id)
        if collection is not None:
            clauses.append("collection = ?")
            params.append(collection)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        row = self.db.query_one(f"SELECT COUNT(*) AS count FROM vectors{where}", params)
        return int(row["count"]) if row else 0

    def update_size_metric(self) -> None:
        for collection in (CHUNKS, IMAGES):
            INDEX_SIZE.labels(collection=collection).set(self.count(collection=collection))

    def _check_dim(self, vector: Sequence[float], label: str) -> None:
        if len(vector) != self.dim:
            raise ConfigurationError(f"{label} has {len(vector)} dimensions, expected {self.dim}")


def _to_row(row: sqlite3.Row) -> VectorRow:
    return VectorRow(
        id=row["id"],
        collection=row["collection"],
        owner_id=row["owner_id"],
        parent_id=row["parent_id"],
        text=row["text"],
        vector=from_bytes(row["vector"]),
        seq=int(row["seq"]),
        created_at=int(row["created_at"]),
        meta=orjson.loads(row["meta_json"]) if row["meta_json"] else {},
    )


def _norm(vector: Sequence[float]) -> float:
    return math.sqrt(sum(value * value for value in vector))


def _cosine_distance(query: Sequence[float], query_norm: float, candidate: Sequence[float]) -> float:
    candidate_norm = _norm(candidate)
    if query_norm == 0 or candidate_norm == 0:
        return 1.0
    similarity = sum(x * y for x, y in zip(query, candidate)) / (query_norm * candidate_norm)
    return 1.0 - max(-1.0, min(1.0, similarity))


__all__ = ["VectorStore", "VectorRow", "Neighbor", "CHUNKS", "IMAGES"]
