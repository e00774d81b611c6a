"""
Approximate nearest-neighbor index and distance helpers.
"""

from .distance import cosine_distances, normalize_rows, rank_by_distance
from .ivf_index import IVFIndex

__all__ = ["IVFIndex", "cosine_distances", "normalize_rows", "rank_by_distance"]
