"""
Inverted-file (IVF) cluster index for approximate cosine search.

Vectors are partitioned into nlist clusters by spherical k-means. A query only scans
the records of its nprobe nearest clusters, which trades recall for latency: a true
nearest neighbor that was assigned to an unprobed cluster is missed. Recall is therefore
NOT guaranteed to be 100%; setting nprobe >= nlist makes the search exact.

The index stores centroids only. Cluster membership lives with the records in each
backend, so the same index logic serves every backend.
"""

import logging
from typing import Any, Dict, List, Optional

import numpy as np

from vector_core.storage.index.distance import normalize_rows

logger = logging.getLogger(__name__)


class IVFIndex:
    """
    Spherical k-means cluster index.

    Attributes:
        nlist: Number of clusters to train (capped by the number of training vectors)
        nprobe: Number of nearest clusters scanned per query
        max_iterations: Upper bound on Lloyd iterations during training
        seed: Random seed for reproducible training
    """

    def __init__(
        self,
        nlist: int = 100,
        nprobe: int = 10,
        max_iterations: int = 25,
        seed: Optional[int] = None,
        centroids: Optional[np.ndarray] = None,
    ):
        if nlist < 1:
            raise ValueError(f"nlist must be at least 1, got {nlist}")
        if nprobe < 1:
            raise ValueError(f"nprobe must be at least 1, got {nprobe}")

        self.nlist = nlist
        self.nprobe = nprobe
        self.max_iterations = max_iterations
        self.seed = seed
        self.centroids: Optional[np.ndarray] = None

        if centroids is not None and len(centroids) > 0:
            self.centroids = normalize_rows(np.asarray(centroids, dtype=np.float64))

    @property
    def is_trained(self) -> bool:
        return self.centroids is not None

    @property
    def num_clusters(self) -> int:
        return 0 if self.centroids is None else self.centroids.shape[0]

    def train(self, vectors: np.ndarray) -> np.ndarray:
        """
        Fit centroids to the given vectors.

        Args:
            vectors: Array of shape (n, dimension)

        Returns:
            Cluster assignment for each input vector
        """
        vectors = np.asarray(vectors, dtype=np.float64)
        n = vectors.shape[0]
        if n == 0:
            self.centroids = None
            return np.empty(0, dtype=np.int64)

        k = min(self.nlist, n)
        rng = np.random.default_rng(self.seed)
        points = normalize_rows(vectors)

        centroids = self._init_centroids(points, k, rng)
        assignments = np.full(n, -1, dtype=np.int64)

        for iteration in range(self.max_iterations):
            similarities = points @ centroids.T
            new_assignments = np.argmax(similarities, axis=1)

            if np.array_equal(new_assignments, assignments):
                logger.debug(f"k-means converged after {iteration} iterations")
                break
            assignments = new_assignments

            best = similarities[np.arange(n), assignments]
            for cluster in range(k):
                members = points[assignments == cluster]
                if len(members) == 0:
                    # Reseed an empty cluster with the worst-served point
                    worst = int(np.argmin(best))
                    centroids[cluster] = points[worst]
                    best[worst] = np.inf
                else:
                    centroids[cluster] = members.sum(axis=0)
            centroids = normalize_rows(centroids)

        self.centroids = centroids
        logger.info(f"Trained IVF index with {k} clusters over {n} vectors")
        return self.assign(vectors)

    def _init_centroids(self, points: np.ndarray, k: int, rng: np.random.Generator) -> np.ndarray:
        """k-means++ seeding using cosine distance."""
        n = points.shape[0]
        centroids = np.empty((k, points.shape[1]), dtype=np.float64)
        centroids[0] = points[rng.integers(n)]
        closest = 1.0 - points @ centroids[0]

        for i in range(1, k):
            weights = np.clip(closest, 0.0, None)
            total = weights.sum()
            if total <= 0:
                choice = int(rng.integers(n))
            else:
                choice = int(rng.choice(n, p=weights / total))
            centroids[i] = points[choice]
            closest = np.minimum(closest, 1.0 - points @ centroids[i])

        return centroids

    def assign(self, vectors: np.ndarray) -> Optional[np.ndarray]:
        """
        Assign vectors to their nearest centroid.

        Returns:
            Array of cluster ids, or None if the index is not trained
        """
        if not self.is_trained:
            return None
        vectors = np.atleast_2d(np.asarray(vectors, dtype=np.float64))
        if vectors.shape[0] == 0:
            return np.empty(0, dtype=np.int64)
        return np.argmax(normalize_rows(vectors) @ self.centroids.T, axis=1)

    def probe(self, query_vector: np.ndarray) -> List[int]:
        """
        Return the ids of the nprobe clusters nearest to the query.

        Returns an empty list when the index is not trained.
        """
        if not self.is_trained:
            return []
        query = normalize_rows(np.atleast_2d(np.asarray(query_vector, dtype=np.float64)))[0]
        similarities = self.centroids @ query
        nprobe = min(self.nprobe, self.num_clusters)
        order = np.argsort(-similarities, kind="stable")[:nprobe]
        return [int(c) for c in order]

    def is_exhaustive(self) -> bool:
        """True when a probe covers every cluster, i.e. search is exact."""
        return not self.is_trained or self.nprobe >= self.num_clusters

    def get_info(self) -> Dict[str, Any]:
        return {
            "index_type": "IVF_FLAT",
            "nlist": self.nlist,
            "nprobe": self.nprobe,
            "trained": self.is_trained,
            "num_clusters": self.num_clusters,
        }
