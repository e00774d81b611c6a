"""
Storage layer for the vector engine.

This module provides the abstract embedding storage interface, its
concrete backends and the factory that selects one from configuration.
"""

from .interfaces import (
    BackendUnavailableError,
    ConflictError,
    DimensionMismatchError,
    EmbeddingStorageInterface,
    EmbeddingStoreError,
    ValidationError,
)
from .factory import create_storage, list_available_backends, is_backend_available

__all__ = [
    "EmbeddingStorageInterface",
    "EmbeddingStoreError",
    "ValidationError",
    "DimensionMismatchError",
    "ConflictError",
    "BackendUnavailableError",
    "create_storage",
    "list_available_backends",
    "is_backend_available",
]
