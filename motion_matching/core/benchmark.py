"""
Match Strategy Benchmark Module

Runs the same live-trajectory queries through the kd-tree index, the k-means
index and a brute-force scan, and reports timing and agreement per query.

Queries file format (JSON list):

    [
        {"trajectory": [[x, z], ...], "transform2d": {"translation": [x, z], "angle": 0.0}},
        ...
    ]

Outputs:
- benchmark CSV: one row per query with each strategy's best candidate,
  distance and query time, plus whether k-means found a result within the
  match threshold of the brute-force optimum.
"""

import json
import logging
import math
import os
import time
from typing import Dict, List, Optional, Tuple

from motion_matching.core.config import MatchConfig
from motion_matching.core.features import trajectory_features
from motion_matching.core.nearest_index import MatchStrategy, brute_force_search, build_index
from motion_matching.core.transforms import Transform2d
from motion_matching.core.utils import write_dict_list_to_csv

logger = logging.getLogger(__name__)

BENCHMARK_FIELDS = [
    "query",
    "brute_chunk",
    "brute_offset",
    "brute_distance",
    "brute_ms",
    "kdtree_chunk",
    "kdtree_offset",
    "kdtree_distance",
    "kdtree_ms",
    "kmeans_chunk",
    "kmeans_offset",
    "kmeans_distance",
    "kmeans_ms",
    "kdtree_exact",
    "kmeans_within_threshold",
]


def load_queries(path) -> List[Tuple[List, Transform2d]]:
    """
    Read benchmark queries.

    Returns:
        list: (trajectory translations, Transform2d) pairs

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If an entry has no trajectory
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Queries file not found: {path}")

    with open(path, "r") as f:
        entries = json.load(f)

    queries = []
    for i, entry in enumerate(entries):
        if "trajectory" not in entry:
            raise ValueError(f"Query {i} in {path} has no 'trajectory'")
        transform = entry.get("transform2d", {})
        queries.append(
            (entry["trajectory"], Transform2d(transform.get("translation", (0.0, 0.0)), transform.get("angle", 0.0)))
        )
    return queries


def _best_fields(prefix: str, candidates, elapsed_ms: float) -> Dict:
    best = candidates[0] if candidates else None
    return {
        f"{prefix}_chunk": best.chunk_index if best else "",
        f"{prefix}_offset": best.chunk_offset if best else "",
        f"{prefix}_distance": round(best.distance, 6) if best else "",
        f"{prefix}_ms": round(elapsed_ms, 4),
    }


def benchmark_strategies(asset, queries, match_config: Optional[MatchConfig] = None) -> List[Dict]:
    """
    Compare kd-tree, k-means and brute-force search on the same queries.

    Args:
        asset: MotionAsset to search
        queries: (trajectory translations, Transform2d) pairs
        match_config: Search settings shared by every strategy

    Returns:
        list: One result row (dict) per query, keyed by BENCHMARK_FIELDS
    """
    match_config = match_config or MatchConfig()
    kdtree = build_index(asset, MatchStrategy.KDTREE, match_config)
    kmeans = build_index(asset, MatchStrategy.KMEANS, match_config)
    num_points = asset.trajectory_config.num_points

    results = []
    for i, (translations, transform2d) in enumerate(queries):
        if len(translations) != num_points:
            logger.warning("Query %d has %d points, expected %d; skipped", i, len(translations), num_points)
            continue

        features = trajectory_features(translations, transform2d)

        start = time.perf_counter()
        brute = brute_force_search(kdtree.feature_set, features, match_config)
        brute_ms = (time.perf_counter() - start) * 1000.0

        kd_candidates = kdtree.query_features(features)
        km_candidates = kmeans.query_features(features)

        row = {"query": i}
        row.update(_best_fields("brute", brute, brute_ms))
        row.update(_best_fields("kdtree", kd_candidates, kdtree.statistics.last_time_ms))
        row.update(_best_fields("kmeans", km_candidates, kmeans.statistics.last_time_ms))

        if brute:
            optimum = brute[0].distance
            row["kdtree_exact"] = bool(kd_candidates) and math.isclose(
                kd_candidates[0].distance, optimum, rel_tol=1e-9, abs_tol=1e-9
            )
            row["kmeans_within_threshold"] = (
                bool(km_candidates) and km_candidates[0].distance - optimum <= match_config.match_threshold
            )
        else:
            row["kdtree_exact"] = not kd_candidates
            row["kmeans_within_threshold"] = not km_candidates
        results.append(row)

    logger.info(
        "Benchmarked %d queries: kd-tree avg %.3f ms, k-means avg %.3f ms",
        len(results),
        kdtree.statistics.avg_time_ms,
        kmeans.statistics.avg_time_ms,
    )
    return results


def export_benchmark_csv(results: List[Dict], output_path):
    """Write benchmark rows to CSV (header only when there are no rows)."""
    write_dict_list_to_csv(results, output_path, fieldnames=BENCHMARK_FIELDS)
    logger.info("Benchmark report written to %s", output_path)
