"""
Core engines of the vector engine.
"""

from .embedding_store import EmbeddingStore
from .maintenance_gate import MaintenanceGate
from .mutation_engine import MutationEngine
from .query_engine import QueryEngine
from .schema_manager import SchemaManager

__all__ = [
    "EmbeddingStore",
    "MaintenanceGate",
    "MutationEngine",
    "QueryEngine",
    "SchemaManager",
]
