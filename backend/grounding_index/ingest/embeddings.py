"""Embedding provider adapters."""

from __future__ import annotations

import hashlib
import logging
import math
import re
from array import array
from typing import Iterable, Sequence

from grounding_index.core.errors import ConfigurationError, ProviderError, ProviderInputError, TransientProviderError

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+")


class EmbeddingProvider:
    """Turns text into a fixed-dimension vector."""

    name: str = "base"

    def __init__(self, dim: int) -> None:
        if dim <= 0:
            raise ConfigurationError(f"Embedding dimension must be positive, got {dim}")
        self._dim = dim

    @property
    def dim(self) -> int:
        return self._dim

    def embed(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise ProviderInputError("Cannot embed empty text", provider_name=self.name)
        vector = self._embed(text)
        if len(vector) != self._dim:
            raise ProviderInputError(
                f"Provider returned {len(vector)} dimensions, expected {self._dim}",
                provider_name=self.name,
            )
        return vector

    def embed_many(self, texts: Iterable[str]) -> list[list[float]]:
        return [self.embed(text) for text in texts]

    def _embed(self, text: str) -> list[float]:  # pragma: no cover - interface
        raise NotImplementedError


class HashedEmbeddingProvider(EmbeddingProvider):
    """Deterministic bag-of-words hashing; no model download required."""

    name = "hashed"

    def _embed(self, text: str) -> list[float]:
        vector = [0.0] * self._dim
        for token in _tokenize(text):
            vector[_hash_token(token, self._dim)] += 1.0
        _normalize(vector)
        return vector


class SentenceTransformerEmbeddingProvider(EmbeddingProvider):
    """Wraps a local sentence-transformers model."""

    name = "sentence-transformers"

    def __init__(self, model_name: str, dim: int, device: str | None = None) -> None:
        super().__init__(dim)
        # Deferred: importing sentence_transformers loads torch.
        from sentence_transformers import SentenceTransformer

        self.model_name = model_name
        try:
            self._model = SentenceTransformer(model_name, device=device)
        except Exception as exc:  # pragma: no cover - requires network
            raise TransientProviderError(f"Failed to load embedding model '{model_name}': {exc}", provider_name=self.name) from exc
        model_dim = self._model.get_sentence_embedding_dimension()
        if model_dim is not None and model_dim != dim:
            raise ConfigurationError(f"Model '{model_name}' produces {model_dim} dimensions but embedding_dim is {dim}")

    def _embed(self, text: str) -> list[float]:  # pragma: no cover - requires model
        try:
            encoded = self._model.encode([text], convert_to_numpy=True, normalize_embeddings=True)
        except (RuntimeError, MemoryError) as exc:
            raise TransientProviderError(str(exc), provider_name=self.name) from exc
        except Exception as exc:
            raise ProviderError(str(exc), provider_name=self.name) from exc
        return [float(value) for value in encoded[0]]


def build_embedding_provider(backend: str, model_name: str, dim: int) -> EmbeddingProvider:
    if backend == "hashed":
        return HashedEmbeddingProvider(dim)
    if backend == "sentence-transformers":
        return SentenceTransformerEmbeddingProvider(model_name, dim)
    raise ConfigurationError(f"Unknown embedding backend: {backend}")


def as_bytes(vector: Sequence[float]) -> bytes:
    return array("f", vector).tobytes()


def from_bytes(payload: bytes) -> list[float]:
    floats = array("f")
    floats.frombytes(payload)
    return list(floats)


def _tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    value = int.from_bytes(digest, "big")
    return value % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = [
    "EmbeddingProvider",
    "HashedEmbeddingProvider",
    "SentenceTransformerEmbeddingProvider",
    "build_embedding_provider",
    "as_bytes",
    "from_bytes",
]
