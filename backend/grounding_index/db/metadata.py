"""Metadata store for source materials and image resources."""

from __future__ import annotations

import sqlite3
from typing import Any, Iterable, Sequence

from grounding_index.core.errors import InvalidTransitionError, MaterialBusyError, NotFoundError
from grounding_index.db.sqlite import SQLiteDatabase, placeholders
from grounding_index.models.entities import (
    TRANSITIONS,
    ImageResource,
    MaterialStatus,
    SourceMaterial,
)
from grounding_index.utils.ids import new_id
from grounding_index.utils.time import ms_to_datetime, now_ms

_MATERIAL_COLUMNS = (
    "id, owner_id, file_name, mime_type, blob_path, description, size_bytes, status, "
    "chunk_count, last_error, uploaded_at, processed_at"
)
_IMAGE_COLUMNS = (
    "id, owner_id, file_name, mime_type, blob_path, public_url, description, width, height, "
    "size_bytes, uploaded_at"
)


class MetadataStore:
    """CRUD over ``source_materials`` and ``image_resources``.

    ``set_status`` is the only code path that writes a material's status.
    """

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    # Source materials -------------------------------------------------

    def create_material(
        self,
        owner_id: str,
        file_name: str,
        mime_type: str | None,
        blob_path: str,
        size_bytes: int,
        description: str | None = None,
    ) -> SourceMaterial:
        material_id = new_id("mat")
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO source_materials (
                  id, owner_id, file_name, mime_type, blob_path, description, size_bytes,
                  status, chunk_count, uploaded_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, ?)
                """,
                [
                    material_id,
                    owner_id,
                    file_name,
                    mime_type,
                    blob_path,
                    description,
                    size_bytes,
                    MaterialStatus.UPLOADED.value,
                    now_ms(),
                ],
            )
        return self.get_material(material_id)

    def get_material(self, material_id: str, owner_id: str | None = None) -> SourceMaterial:
        row = self.db.query_one(f"SELECT {_MATERIAL_COLUMNS} FROM source_materials WHERE id = ?", [material_id])
        if row is None or (owner_id is not None and row["owner_id"] != owner_id):
            raise NotFoundError(f"Source material not found: {material_id}")
        return _row_to_material(row)

    def list_materials(self, owner_id: str, status: MaterialStatus | None = None) -> list[SourceMaterial]:
        sql = f"SELECT {_MATERIAL_COLUMNS} FROM source_materials WHERE owner_id = ?"
        params: list[Any] = [owner_id]
        if status is not None:
            sql += " AND status = ?"
            params.append(MaterialStatus(status).value)
        sql += " ORDER BY uploaded_at DESC, rowid DESC"
        return [_row_to_material(row) for row in self.db.query(sql, params)]

    def indexed_material_ids(self, owner_id: str, material_ids: Sequence[str] | None = None) -> list[str]:
        sql = "SELECT id FROM source_materials WHERE owner_id = ? AND status = ?"
        params: list[Any] = [owner_id, MaterialStatus.INDEXED.value]
        if material_ids is not None:
            if not material_ids:
                return []
            sql += f" AND id IN ({placeholders(material_ids)})"
            params.extend(material_ids)
        return [row["id"] for row in self.db.query(sql, params)]

    def material_names(self, material_ids: Iterable[str]) -> dict[str, str]:
        ids = list(dict.fromkeys(material_ids))
        if not ids:
            return {}
        rows = self.db.query(
            f"SELECT id, file_name FROM source_materials WHERE id IN ({placeholders(ids)})",
            ids,
        )
        return {row["id"]: row["file_name"] for row in rows}

    def set_status(
        self,
        material_id: str,
        status: MaterialStatus,
        *,
        processed_at: int | None = None,
        chunk_count: int | None = None,
        error: str | None = None,
        lease_token: str | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> SourceMaterial:
        """Transition a material, enforcing the lifecycle table atomically.

        With ``lease_token`` the write only lands while that lease is still
        held; a lost lease raises ``MaterialBusyError``.
        """
        status = MaterialStatus(status)
        sources = [prev.value for prev, allowed in TRANSITIONS.items() if status in allowed]
        assignments = ["status = ?"]
        params: list[Any] = [status.value]
        if processed_at is not None:
            assignments.append("processed_at = ?")
            params.append(processed_at)
        if chunk_count is not None:
            assignments.append("chunk_count = ?")
            params.append(chunk_count)
        if status is MaterialStatus.FAILED:
            assignments.append("last_error = ?")
            params.append(error)
        elif status is MaterialStatus.INDEXED:
            assignments.append("last_error = NULL")
        sql = f"UPDATE source_materials SET {', '.join(assignments)} WHERE id = ? AND status IN ({placeholders(sources)})"
        params.append(material_id)
        params.extend(sources)
        if lease_token is not None:
            sql += " AND lease_token = ?"
            params.append(lease_token)
        if conn is not None:
            updated = conn.execute(sql, params).rowcount
        else:
            with self.db.transaction() as own:
                updated = own.execute(sql, params).rowcount
        if not updated:
            current = self.get_material(material_id)
            if lease_token is not None and self.lease_holder(material_id) != lease_token:
                raise MaterialBusyError(f"Lease on material {material_id} was lost; {status.value} not recorded")
            raise InvalidTransitionError(
                f"Cannot move material {material_id} from {current.status.value} to {status.value}"
            )
        return self.get_material(material_id)

    def acquire_lease(self, material_id: str, token: str, ttl_seconds: float) -> bool:
        """Take the processing lease unless an unexpired one is held."""
        now = now_ms()
        expires = now + int(ttl_seconds * 1000)
        with self.db.transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE source_materials
                SET lease_token = ?, lease_expires_at = ?
                WHERE id = ? AND (lease_token IS NULL OR lease_expires_at IS NULL OR lease_expires_at <= ?)
                """,
                [token, expires, material_id, now],
            )
            return cursor.rowcount == 1

    def renew_lease(self, conn: sqlite3.Connection, material_id: str, token: str, ttl_seconds: float) -> bool:
        """Extend a lease still held by ``token``; False once another attempt has taken it.

        Runs inside the caller's transaction so the check and the caller's
        writes commit together.
        """
        cursor = conn.execute(
            "UPDATE source_materials SET lease_expires_at = ? WHERE id = ? AND lease_token = ?",
            [now_ms() + int(ttl_seconds * 1000), material_id, token],
        )
        return cursor.rowcount == 1

    def release_lease(self, material_id: str, token: str) -> None:
        with self.db.transaction() as conn:
            conn.execute(
                "UPDATE source_materials SET lease_token = NULL, lease_expires_at = NULL "
                "WHERE id = ? AND lease_token = ?",
                [material_id, token],
            )

    def lease_holder(self, material_id: str) -> str | None:
        row = self.db.query_one("SELECT lease_token FROM source_materials WHERE id = ?", [material_id])
        return row["lease_token"] if row else None

    def delete_material(self, material_id: str, conn: sqlite3.Connection | None = None) -> None:
        sql = "DELETE FROM source_materials WHERE id = ?"
        if conn is not None:
            conn.execute(sql, [material_id])
            return
        with self.db.transaction() as own:
            own.execute(sql, [material_id])

    # Image resources --------------------------------------------------

    def insert_image(self, conn: sqlite3.Connection, image: ImageResource, uploaded_at: int) -> None:
        """Insert inside a caller-owned transaction so the vector row commits with it."""
        conn.execute(
            f"INSERT INTO image_resources ({_IMAGE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                image.id,
                image.owner_id,
                image.file_name,
                image.mime_type,
                image.blob_path,
                image.public_url,
                image.description,
                image.width,
                image.height,
                image.size_bytes,
                uploaded_at,
            ],
        )

    def get_image(self, image_id: str, owner_id: str | None = None) -> ImageResource:
        row = self.db.query_one(f"SELECT {_IMAGE_COLUMNS} FROM image_resources WHERE id = ?", [image_id])
        if row is None or (owner_id is not None and row["owner_id"] != owner_id):
            raise NotFoundError(f"Image not found: {image_id}")
        return _row_to_image(row)

    def get_images(self, image_ids: Sequence[str]) -> dict[str, ImageResource]:
        if not image_ids:
            return {}
        rows = self.db.query(
            f"SELECT {_IMAGE_COLUMNS} FROM image_resources WHERE id IN ({placeholders(image_ids)})",
            list(image_ids),
        )
        return {row["id"]: _row_to_image(row) for row in rows}

    def list_images(self, owner_id: str) -> list[ImageResource]:
        rows = self.db.query(
            f"SELECT {_IMAGE_COLUMNS} FROM image_resources WHERE owner_id = ? ORDER BY uploaded_at DESC, rowid DESC",
            [owner_id],
        )
        return [_row_to_image(row) for row in rows]

    def delete_image(self, conn: sqlite3.Connection, image_id: str) -> None:
        conn.execute("DELETE FROM image_resources WHERE id = ?", [image_id])


def _row_to_material(row: sqlite3.Row) -> SourceMaterial:
    return SourceMaterial(
        id=row["id"],
        owner_id=row["owner_id"],
        file_name=row["file_name"],
        mime_type=row["mime_type"],
        blob_path=row["blob_path"],
        description=row["description"],
        size_bytes=int(row["size_bytes"] or 0),
        status=MaterialStatus(row["status"]),
        chunk_count=int(row["chunk_count"] or 0),
        last_error=row["last_error"],
        uploaded_at=ms_to_datetime(row["uploaded_at"]),
        processed_at=ms_to_datetime(row["processed_at"]),
    )


def _row_to_image(row: sqlite3.Row) -> ImageResource:
    return ImageResource(
        id=row["id"],
        owner_id=row["owner_id"],
        file_name=row["file_name"],
        mime_type=row["mime_type"],
        blob_path=row["blob_path"],
        public_url=row["public_url"],
        description=row["description"],
        width=row["width"],
        height=row["height"],
        size_bytes=int(row["size_bytes"] or 0),
        uploaded_at=ms_to_datetime(row["uploaded_at"]),
    )


__all__ = ["MetadataStore"]
