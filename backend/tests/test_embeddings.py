"""Tests for embedding utilities."""

import math

import pytest

from grounding_index.core.errors import ConfigurationError, ProviderInputError
from grounding_index.ingest.embeddings import (
    HashedEmbeddingProvider,
    as_bytes,
    build_embedding_provider,
    from_bytes,
)


def test_hashed_provider_dimension_and_norm() -> None:
    provider = HashedEmbeddingProvider(32)
    vectors = provider.embed_many(["hello", "world"])
    assert len(vectors) == 2
    assert all(len(vec) == provider.dim for vec in vectors)
    assert abs(sum(value * value for value in vectors[0]) - 1.0) < 1e-6


def test_hashed_provider_is_deterministic() -> None:
    provider = HashedEmbeddingProvider(32)
    assert provider.embed("Graduation ceremony") == provider.embed("graduation CEREMONY")


def test_blank_text_is_rejected() -> None:
    provider = HashedEmbeddingProvider(8)
    with pytest.raises(ProviderInputError):
        provider.embed("   ")


def test_punctuation_only_text_embeds_to_zero_vector() -> None:
    provider = HashedEmbeddingProvider(8)
    assert provider.embed("?!") == [0.0] * 8


def test_unknown_backend_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        build_embedding_provider("word2vec", "unused", 8)


def test_vector_bytes_use_float32() -> None:
    vector = [0.5, -0.25, 1.0]
    payload = as_bytes(vector)
    assert len(payload) == 12
    assert all(math.isclose(a, b) for a, b in zip(from_bytes(payload), vector))
