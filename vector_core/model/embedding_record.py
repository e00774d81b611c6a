"""
Embedding record module.

This module defines the single entity stored by the vector engine: a text payload,
an optional metadata document and a fixed-length embedding, keyed by (collection, id).
"""

from typing import Optional, Dict, Any, List


class EmbeddingRecord:
    """
    Represents one stored embedding.

    The pair (collection, record_id) is the primary key. Collections are not stored
    separately; a collection exists while at least one record carries its name.
    """

    def __init__(
        self,
        record_id: str,
        collection: str,
        content: str,
        embedding: List[float],
        metadata: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize an EmbeddingRecord.

        Args:
            record_id: Identifier, unique only within its collection
            collection: Name of the collection the record belongs to
            content: Text payload associated with the vector
            embedding: Fixed-length numeric vector
            metadata: Optional key/value document (None means absent, not empty)
        """
        self.record_id = record_id
        self.collection = collection
        self.content = content
        self.embedding = embedding
        self.metadata = metadata

    @property
    def key(self):
        """Composite primary key of the record."""
        return (self.collection, self.record_id)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the record to a dictionary representation.

        Returns:
            Dictionary with id, collection, content, metadata and embedding
        """
        return {
            "id": self.record_id,
            "collection": self.collection,
            "content": self.content,
            "metadata": self.metadata,
            "embedding": list(self.embedding) if self.embedding is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EmbeddingRecord":
        """
        Create an EmbeddingRecord from a dictionary representation.

        Missing keys become None so that validation can report them by name.

        Args:
            data: Dictionary containing record attributes

        Returns:
            A new EmbeddingRecord instance
        """
        return cls(
            record_id=data.get("id"),
            collection=data.get("collection"),
            content=data.get("content"),
            embedding=data.get("embedding"),
            metadata=data.get("metadata"),
        )

    def __eq__(self, other):
        if not isinstance(other, EmbeddingRecord):
            return False

        return (
            self.record_id == other.record_id
            and self.collection == other.collection
            and self.content == other.content
            and self.metadata == other.metadata
            and list(self.embedding) == list(other.embedding)
        )

    def __repr__(self):
        dimension = len(self.embedding) if self.embedding is not None else 0
        return (
            f"EmbeddingRecord(id={self.record_id!r}, collection={self.collection!r}, "
            f"content={self.content[:30] if self.content else self.content!r}, dim={dimension})"
        )


class SearchResult:
    """A record returned by nearest-neighbor search together with its cosine distance."""

    def __init__(self, record: EmbeddingRecord, distance: float):
        self.record = record
        self.distance = distance

    @property
    def record_id(self) -> str:
        return self.record.record_id

    @property
    def similarity(self) -> float:
        """Cosine similarity corresponding to the distance."""
        return 1.0 - self.distance

    def to_dict(self) -> Dict[str, Any]:
        result = self.record.to_dict()
        result["distance"] = self.distance
        return result

    def __eq__(self, other):
        if not isinstance(other, SearchResult):
            return False
        return self.record == other.record and self.distance == other.distance

    def __repr__(self):
        return f"SearchResult(id={self.record_id!r}, distance={self.distance:.6f})"
