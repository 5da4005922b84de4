"""Retrieval components."""

from .vector_index import CHUNKS, IMAGES, Neighbor, VectorRow, VectorStore
from .search import RetrievalService

__all__ = [
    "VectorStore",
    "VectorRow",
    "Neighbor",
    "CHUNKS",
    "IMAGES",
    "RetrievalService",
]
