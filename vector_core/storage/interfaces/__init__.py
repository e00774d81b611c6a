"""
Interfaces for embedding storage implementations.
"""

from .embedding_storage_interface import (
    EmbeddingStorageInterface,
    DEFAULT_DIMENSION,
    EmbeddingStoreError,
    ValidationError,
    DimensionMismatchError,
    ConflictError,
    BackendUnavailableError,
)

__all__ = [
    "EmbeddingStorageInterface",
    "DEFAULT_DIMENSION",
    "EmbeddingStoreError",
    "ValidationError",
    "DimensionMismatchError",
    "ConflictError",
    "BackendUnavailableError",
]
