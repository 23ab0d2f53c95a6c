"""
Nearest-Neighbor Index Module

Search structures over trajectory window features.

Two interchangeable strategies share one query contract and one result type:
- KDTREE: exact k-nearest search (scikit-learn KDTree) under squared
  Euclidean distance.
- KMEANS: approximate search. Windows are grouped into k clusters once
  (random initial centroids, fixed iteration count); a query only scans the
  members of clusters whose centroid lies within the centroid threshold.
  A true neighbor whose centroid falls just outside that threshold is missed.

Both return candidates within `match_threshold`, sorted ascending by distance,
at most `max_match_count` of them. An empty list means "no match".

The index is derived from a MotionAsset exactly once and is read-only after.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

import numpy as np
from sklearn.cluster import KMeans
from sklearn.neighbors import KDTree

from motion_matching.core.config import MatchConfig
from motion_matching.core.features import WindowFeatureSet, collect_window_features

logger = logging.getLogger(__name__)


class MatchStrategy(Enum):
    KDTREE = "kdtree"
    KMEANS = "kmeans"


@dataclass(frozen=True)
class MatchCandidate:
    """
    A search result.

    Attributes:
        distance: Squared feature distance (shape distance, not physical units)
        chunk_index: Trajectory/pose chunk holding the window
        chunk_offset: First trajectory point of the window inside the chunk
    """

    distance: float
    chunk_index: int
    chunk_offset: int


@dataclass
class MatchStatistics:
    """Running query timing of an index."""

    runs: int = 0
    avg_time_ms: float = 0.0
    last_time_ms: float = 0.0

    def record(self, elapsed_ms: float):
        self.avg_time_ms = (self.avg_time_ms * self.runs + elapsed_ms) / (self.runs + 1)
        self.runs += 1
        self.last_time_ms = elapsed_ms


def _squared_distances(features: np.ndarray, query: np.ndarray) -> np.ndarray:
    return np.sum((features - query) ** 2, axis=1)


def _select(
    distances: np.ndarray, rows: np.ndarray, feature_set: WindowFeatureSet, config: MatchConfig
) -> List[MatchCandidate]:
    """Threshold, sort and cap rows of a feature set into candidates."""
    keep = distances <= config.match_threshold
    distances = distances[keep]
    rows = rows[keep]

    order = np.argsort(distances, kind="stable")[: config.max_match_count]
    return [
        MatchCandidate(float(distances[i]), int(feature_set.keys[rows[i], 0]), int(feature_set.keys[rows[i], 1]))
        for i in order
    ]


def brute_force_search(feature_set: WindowFeatureSet, query, config: MatchConfig) -> List[MatchCandidate]:
    """Linear scan over every window. Reference result for the other strategies."""
    query = np.asarray(query, dtype=float).reshape(-1)
    if len(feature_set) == 0:
        return []
    distances = _squared_distances(feature_set.features, query)
    return _select(distances, np.arange(len(feature_set)), feature_set, config)


# ==============================================================================
# STRATEGIES
# ==============================================================================


class KdTreeIndex:
    """Exact search over all windows."""

    def __init__(self, feature_set: WindowFeatureSet, config: MatchConfig):
        self.feature_set = feature_set
        self.config = config
        self._tree = KDTree(feature_set.features) if len(feature_set) else None

    def query(self, query: np.ndarray) -> List[MatchCandidate]:
        if self._tree is None:
            return []

        k = min(self.config.max_match_count, len(self.feature_set))
        distances, rows = self._tree.query(query.reshape(1, -1), k=k)
        return _select(distances[0] ** 2, rows[0], self.feature_set, self.config)


class KMeansIndex:
    """Approximate search through cluster pruning."""

    def __init__(self, feature_set: WindowFeatureSet, config: MatchConfig):
        self.feature_set = feature_set
        self.config = config
        self.centroids = np.zeros((0, feature_set.feature_dim))
        self.cluster_members: List[np.ndarray] = []

        if len(feature_set) == 0:
            return

        num_clusters = min(config.kmeans_clusters, len(feature_set))
        kmeans = KMeans(
            n_clusters=num_clusters,
            init="random",
            n_init=1,
            max_iter=config.kmeans_iterations,
            random_state=config.random_seed,
        )
        labels = kmeans.fit_predict(feature_set.features)

        self.centroids = kmeans.cluster_centers_
        self.cluster_members = [np.flatnonzero(labels == c) for c in range(num_clusters)]
        logger.debug(
            "KMeans index: %d clusters, sizes %s", num_clusters, [len(members) for members in self.cluster_members]
        )

    def query(self, query: np.ndarray) -> List[MatchCandidate]:
        if len(self.centroids) == 0:
            return []

        centroid_distances = _squared_distances(self.centroids, query)
        surviving = np.flatnonzero(centroid_distances <= self.config.effective_centroid_threshold)
        if len(surviving) == 0:
            return []

        rows = np.concatenate([self.cluster_members[c] for c in surviving])
        distances = _squared_distances(self.feature_set.features[rows], query)
        return _select(distances, rows, self.feature_set, self.config)


# ==============================================================================
# INDEX
# ==============================================================================


class NearestTrajectoryIndex:
    """
    Search index derived from one MotionAsset.

    Build with `NearestTrajectoryIndex.build` (or `build_index`); the strategy
    is fixed at build time.
    """

    def __init__(self, asset, strategy: MatchStrategy, backend, feature_set: WindowFeatureSet, config: MatchConfig):
        self.asset = asset
        self.strategy = strategy
        self.backend = backend
        self.feature_set = feature_set
        self.config = config
        self.statistics = MatchStatistics()

    @classmethod
    def build(
        cls, asset, strategy: Union[MatchStrategy, str] = MatchStrategy.KDTREE, config: Optional[MatchConfig] = None
    ) -> "NearestTrajectoryIndex":
        strategy = MatchStrategy(strategy)
        config = config or MatchConfig()

        start = time.perf_counter()
        feature_set = collect_window_features(asset)
        if strategy is MatchStrategy.KDTREE:
            backend = KdTreeIndex(feature_set, config)
        else:
            backend = KMeansIndex(feature_set, config)
        elapsed_ms = (time.perf_counter() - start) * 1000.0

        logger.info(
            "Built %s index over %d trajectory windows in %.1f ms", strategy.value, len(feature_set), elapsed_ms
        )
        return cls(asset, strategy, backend, feature_set, config)

    @property
    def is_empty(self) -> bool:
        return len(self.feature_set) == 0

    @property
    def trajectory_config(self):
        return self.asset.trajectory_config

    def query_features(self, query) -> List[MatchCandidate]:
        """
        Nearest windows to a feature vector.

        Raises:
            ValueError: If the query dimension does not match the index
        """
        query = np.asarray(query, dtype=float).reshape(-1)
        expected = self.trajectory_config.feature_dim
        if query.shape[0] != expected:
            raise ValueError(f"Query has {query.shape[0]} features, index expects {expected}")

        start = time.perf_counter()
        candidates = self.backend.query(query)
        self.statistics.record((time.perf_counter() - start) * 1000.0)
        return candidates

    def __repr__(self):
        return f"NearestTrajectoryIndex(strategy={self.strategy.value}, windows={len(self.feature_set)})"


def build_index(
    asset, strategy: Union[MatchStrategy, str] = MatchStrategy.KDTREE, config: Optional[MatchConfig] = None
) -> NearestTrajectoryIndex:
    """Build a nearest-neighbor index over every trajectory window of an asset."""
    return NearestTrajectoryIndex.build(asset, strategy, config)
