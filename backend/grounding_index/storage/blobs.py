"""Blob storage adapters."""

from __future__ import annotations

import os
from pathlib import Path, PurePosixPath
from urllib.parse import quote

from grounding_index.core.errors import ConfigurationError, NotFoundError
from grounding_index.core.logging import get_logger
from grounding_index.utils.ids import short_id

logger = get_logger(__name__)


class BlobStore:
    """Object storage keyed by relative POSIX paths."""

    def get(self, path: str) -> bytes:  # pragma: no cover - interface
        raise NotImplementedError

    def put(self, path: str, data: bytes, content_type: str | None = None) -> str:  # pragma: no cover - interface
        raise NotImplementedError

    def delete(self, path: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def public_url(self, path: str) -> str:  # pragma: no cover - interface
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    """Stores blobs as files below a root directory."""

    def __init__(self, root: Path, public_base_url: str = "") -> None:
        self.root = root.expanduser()
        self.public_base_url = public_base_url.rstrip("/")

    def get(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError as exc:
            raise NotFoundError(f"Blob not found: {path}", provider_name="local") from exc

    def put(self, path: str, data: bytes, content_type: str | None = None) -> str:
        target = self._resolve(path)
        if target.exists():
            raise ConfigurationError(f"Blob already exists: {path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(f".{target.name}.part")
        tmp.write_bytes(data)
        os.replace(tmp, target)
        logger.debug("Stored blob %s (%s bytes, %s)", path, len(data), content_type)
        return path

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.unlink()
        except FileNotFoundError as exc:
            raise NotFoundError(f"Blob not found: {path}", provider_name="local") from exc

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}/{quote(path)}"

    def _resolve(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts or not relative.parts:
            raise ConfigurationError(f"Invalid blob path: {path}")
        return self.root.joinpath(*relative.parts)


def blob_path_for(owner_id: str, file_name: str, prefix: str | None = None, default_ext: str = "bin") -> str:
    """``[prefix/]owner/stem_suffix.ext`` with a random suffix to avoid collisions."""
    name = PurePosixPath(file_name.replace("\\", "/")).name or "upload"
    stem, dot, ext = name.rpartition(".")
    if not dot or not stem:
        stem, ext = name, default_ext
    parts = [prefix] if prefix else []
    parts.extend([_safe_segment(owner_id), f"{_safe_segment(stem)}_{short_id(8)}.{_safe_segment(ext)}"])
    return "/".join(parts)


def _safe_segment(value: str) -> str:
    cleaned = "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in value).strip(".")
    return cleaned or "_"


__all__ = ["BlobStore", "LocalBlobStore", "blob_path_for"]
