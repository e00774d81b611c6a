"""
Boundary validation for embedding records and query arguments.

Every check here runs before a backend is touched, so a failed validation leaves
storage unchanged.
"""

import json
import math
from collections.abc import Iterable
from numbers import Real
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from vector_core.model.embedding_record import EmbeddingRecord
from vector_core.storage.interfaces import ValidationError, DimensionMismatchError


def _prefix(index: Optional[int]) -> str:
    return f"Invalid record at index {index}: " if index is not None else ""


def _require_text(value: Any, field: str, index: Optional[int] = None) -> str:
    if value is None:
        raise ValidationError(f"{_prefix(index)}missing required field '{field}'", field, index)
    if not isinstance(value, str):
        raise ValidationError(
            f"{_prefix(index)}field '{field}' must be a string, got {type(value).__name__}",
            field,
            index,
        )
    if not value:
        raise ValidationError(f"{_prefix(index)}field '{field}' must not be empty", field, index)
    return value


def validate_embedding(embedding: Any, dimension: int, index: Optional[int] = None) -> np.ndarray:
    """
    Convert an embedding to a float64 vector and check its shape and values.

    Args:
        embedding: Any 1-D numeric sequence
        dimension: Required vector length
        index: Batch position used in error messages

    Returns:
        The embedding as a 1-D float64 numpy array

    Raises:
        ValidationError: If the embedding is missing, non-numeric or non-finite
        DimensionMismatchError: If the length differs from dimension
    """
    if embedding is None:
        raise ValidationError(
            f"{_prefix(index)}missing required field 'embedding'", "embedding", index
        )
    if isinstance(embedding, (str, bytes)):
        raise ValidationError(
            f"{_prefix(index)}embedding must be a numeric sequence", "embedding", index
        )

    try:
        vector = np.asarray(embedding, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            f"{_prefix(index)}embedding must be a numeric sequence: {e}", "embedding", index
        ) from e

    if vector.ndim != 1:
        raise ValidationError(
            f"{_prefix(index)}embedding must be one-dimensional, got shape {vector.shape}",
            "embedding",
            index,
        )

    if vector.shape[0] != dimension:
        error = DimensionMismatchError(dimension, vector.shape[0], index=index)
        if index is not None:
            error.args = (f"{_prefix(index)}{error.args[0]}",)
        raise error

    if not np.all(np.isfinite(vector)):
        raise ValidationError(
            f"{_prefix(index)}embedding contains NaN or infinite values", "embedding", index
        )

    return vector


def normalize_metadata(metadata: Any, index: Optional[int] = None) -> Optional[Dict[str, Any]]:
    """
    Normalize a metadata document through a JSON round-trip.

    None stays None; anything else must be a JSON-compatible mapping.
    """
    if metadata is None:
        return None
    if not isinstance(metadata, dict):
        raise ValidationError(
            f"{_prefix(index)}metadata must be a mapping, got {type(metadata).__name__}",
            "metadata",
            index,
        )
    try:
        return json.loads(json.dumps(metadata, allow_nan=False))
    except (TypeError, ValueError) as e:
        raise ValidationError(
            f"{_prefix(index)}metadata is not a JSON-compatible document: {e}", "metadata", index
        ) from e


def validate_record(
    record_id: Any,
    collection: Any,
    content: Any,
    metadata: Any,
    embedding: Any,
    dimension: int,
    index: Optional[int] = None,
) -> EmbeddingRecord:
    """
    Validate record fields and build a normalized EmbeddingRecord.

    Returns:
        Record with normalized metadata and the embedding as a list of floats
    """
    record_id = _require_text(record_id, "id", index)
    collection = _require_text(collection, "collection", index)
    content = _require_text(content, "content", index)
    vector = validate_embedding(embedding, dimension, index)
    metadata = normalize_metadata(metadata, index)

    return EmbeddingRecord(
        record_id=record_id,
        collection=collection,
        content=content,
        embedding=vector.tolist(),
        metadata=metadata,
    )


def validate_batch(records: Sequence[Any], dimension: int) -> List[EmbeddingRecord]:
    """
    Validate every entry of a batch; the first malformed entry fails the whole batch.

    Entries may be EmbeddingRecord instances or dictionaries in the to_dict() shape.
    """
    if not isinstance(records, Iterable) or isinstance(records, (str, bytes, dict)):
        raise ValidationError("records must be a sequence of records", "records")

    validated = []
    for i, entry in enumerate(records):
        if isinstance(entry, dict):
            entry = EmbeddingRecord.from_dict(entry)
        if not isinstance(entry, EmbeddingRecord):
            raise ValidationError(
                f"Invalid record at index {i}: expected EmbeddingRecord, "
                f"got {type(entry).__name__}",
                index=i,
            )
        validated.append(
            validate_record(
                entry.record_id,
                entry.collection,
                entry.content,
                entry.metadata,
                entry.embedding,
                dimension,
                index=i,
            )
        )
    return validated


def validate_key(record_id: Any, collection: Any):
    """Validate a (record_id, collection) lookup key."""
    return _require_text(record_id, "id"), _require_text(collection, "collection")


def validate_limit(limit: Any) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise ValidationError(f"limit must be an integer, got {limit!r}", "limit")
    if limit < 1:
        raise ValidationError(f"limit must be at least 1, got {limit}", "limit")
    return limit


def validate_threshold(threshold: Any) -> Optional[float]:
    if threshold is None:
        return None
    if isinstance(threshold, bool) or not isinstance(threshold, Real):
        raise ValidationError(f"threshold must be a number, got {threshold!r}", "threshold")
    threshold = float(threshold)
    if math.isnan(threshold) or threshold < 0:
        raise ValidationError(f"threshold must be a non-negative number, got {threshold}", "threshold")
    return threshold


def validate_collection(collection: Any) -> str:
    return _require_text(collection, "collection")
