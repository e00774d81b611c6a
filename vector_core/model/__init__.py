"""
Data model for the vector engine.
"""

from .embedding_record import EmbeddingRecord, SearchResult

__all__ = ["EmbeddingRecord", "SearchResult"]
