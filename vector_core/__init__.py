"""
Vector Engine: storage and similarity retrieval for embeddings grouped into collections.
"""

__version__ = "0.1.0"

from vector_core.core.embedding_store import EmbeddingStore
from vector_core.model.embedding_record import EmbeddingRecord, SearchResult
from vector_core.storage.interfaces import (
    BackendUnavailableError,
    ConflictError,
    DimensionMismatchError,
    EmbeddingStoreError,
    ValidationError,
)

__all__ = [
    "EmbeddingStore",
    "EmbeddingRecord",
    "SearchResult",
    "EmbeddingStoreError",
    "ValidationError",
    "DimensionMismatchError",
    "ConflictError",
    "BackendUnavailableError",
]
