"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator

from grounding_index.ingest.chunker import ChunkerConfig

ENV_PREFIX = "GIDX_"
DEFAULT_CONFIG_PATH = Path("~/.config/grounding-index/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "db_path"): "db_path",
    ("storage", "blob_root"): "blob_root",
    ("storage", "public_base_url"): "public_base_url",
    ("embeddings", "backend"): "embedding_backend",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "dim"): "embedding_dim",
    ("embeddings", "workers"): "embed_workers",
    ("chunking", "window_size"): "chunk_window_size",
    ("chunking", "overlap"): "chunk_overlap",
    ("chunking", "min_chars"): "min_chunk_chars",
    ("processing", "timeout_seconds"): "processing_timeout_seconds",
    ("processing", "lease_grace_seconds"): "lease_grace_seconds",
    ("retrieval", "default_top_n"): "default_top_n",
    ("retrieval", "max_top_n"): "max_top_n",
    ("vision", "endpoint"): "vision_endpoint",
    ("vision", "timeout_seconds"): "vision_timeout_seconds",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=Path.home() / ".grounding-index" / "gidx.db")
    blob_root: Path = Field(default=Path.home() / ".grounding-index" / "blobs")
    public_base_url: str = "http://127.0.0.1:5180/blobs"
    embedding_backend: Literal["hashed", "sentence-transformers"] = "hashed"
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dim: int = Field(default=384, ge=1)
    embed_workers: int = Field(default=4, ge=1, le=32)
    chunk_window_size: int = 1500
    chunk_overlap: int = 200
    min_chunk_chars: int = 11
    processing_timeout_seconds: float = Field(default=300.0, gt=0)
    lease_grace_seconds: float = Field(default=30.0, ge=0)
    default_top_n: int = Field(default=5, ge=1)
    max_top_n: int = Field(default=20, ge=1)
    vision_endpoint: str | None = None
    vision_timeout_seconds: float = 60.0

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", "blob_root", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("storage paths must be a path or string")

    @field_validator("vision_endpoint", mode="before")
    @classmethod
    def _blank_endpoint(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def chunker_config(self) -> ChunkerConfig:
        """Explicit chunker parameters; validated when chunking starts."""
        return ChunkerConfig(
            window_size=self.chunk_window_size,
            overlap=self.chunk_overlap,
            min_chars=self.min_chunk_chars,
        )

    @property
    def lease_seconds(self) -> float:
        return self.processing_timeout_seconds + self.lease_grace_seconds

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with GIDX_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings"]
