"""
Motion Matching - Command Line Interface

Commands:
    build      Build a motion asset from decoded clip files (JSON)
    inspect    Print a summary of a motion asset
    benchmark  Compare the kd-tree and k-means strategies on recorded queries

Examples:
    python -m motion_matching build walk.json run.json -o corpus.json
    python -m motion_matching build clips/*.json -o corpus.json --config mm_config.json
    python -m motion_matching inspect corpus.json
    python -m motion_matching benchmark corpus.json queries.json -o report.csv

Batch building continues past clips that fail to load; the exit code is 1
only when nothing usable was produced.
"""

import argparse
import json
import logging
import os
import sys

from motion_matching.core.benchmark import benchmark_strategies, export_benchmark_csv, load_queries
from motion_matching.core.clip import load_clip_json
from motion_matching.core.config import MotionMatchingConfig, load_config
from motion_matching.core.features import collect_window_features
from motion_matching.core.motion_asset import MotionAsset, build_motion_asset

logger = logging.getLogger("motion_matching")


def _args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="motion_matching",
        description="Motion matching corpus tools",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    commands = p.add_subparsers(dest="command", required=True)

    build = commands.add_parser("build", help="build a motion asset from clip files")
    build.add_argument("clips", nargs="+", help="decoded clip JSON files")
    build.add_argument("-o", "--output", required=True, help="motion asset output path")
    build.add_argument("--config", help="configuration JSON file")

    inspect = commands.add_parser("inspect", help="summarize a motion asset")
    inspect.add_argument("asset", help="motion asset path")

    bench = commands.add_parser("benchmark", help="compare search strategies")
    bench.add_argument("asset", help="motion asset path")
    bench.add_argument("queries", help="queries JSON file")
    bench.add_argument("-o", "--output", required=True, help="CSV report path")
    bench.add_argument("--config", help="configuration JSON file (match section is used)")

    return p.parse_args(argv)


# ==============================================================================
# COMMANDS
# ==============================================================================


def run_build(args) -> int:
    config = load_config(args.config) if args.config else MotionMatchingConfig()

    clips = []
    failed = []
    for path in args.clips:
        try:
            clips.append(load_clip_json(path))
        except (OSError, ValueError, KeyError) as e:
            logger.error("Failed to load clip %s: %s", path, e)
            failed.append(path)

    if not clips:
        logger.error("No clip could be loaded")
        return 1

    asset = build_motion_asset(clips, config)
    asset.save(args.output)

    skipped = [entry for entry in asset.build_report if entry["status"] == "skipped"]
    print(f"Motion asset written: {args.output}")
    print(f"  Clips accepted: {asset.num_chunks}")
    print(f"  Clips skipped:  {len(skipped)}")
    print(f"  Load failures:  {len(failed)}")
    for entry in skipped:
        print(f"  - {entry['clip']}: {entry['reason']}")
    for path in failed:
        print(f"  - {os.path.basename(path)}: failed to load")

    return 0 if asset.num_chunks > 0 else 1


def run_inspect(args) -> int:
    asset = MotionAsset.load(args.asset)
    config = asset.trajectory_config
    num_windows = len(collect_window_features(asset))

    print(f"Motion asset: {args.asset}")
    print(f"  Skeleton: {asset.skeleton.num_joints} joints, {asset.skeleton.num_channels} channels")
    print(f"  Pose interval: {asset.pose_interval:.6f}s  Scale ratio: {asset.scale_ratio}")
    print(
        f"  Trajectory: interval {config.interval_time}s, {config.num_points} points, "
        f"history {config.history_count}"
    )
    print(f"  Chunks: {asset.num_chunks}  Windows: {num_windows}")
    for i in range(asset.num_chunks):
        name = asset.clip_names[i] if i < len(asset.clip_names) else f"chunk_{i}"
        loop = "loop" if asset.is_chunk_loopable(i) else "once"
        print(
            f"  [{i}] {name}: {asset.pose_data.chunk_len(i)} poses, "
            f"{asset.trajectory_data.chunk_len(i)} trajectory points, "
            f"{asset.chunk_duration(i):.3f}s ({loop})"
        )
    return 0


def run_benchmark(args) -> int:
    asset = MotionAsset.load(args.asset)
    match_config = load_config(args.config).match if args.config else None
    queries = load_queries(args.queries)

    results = benchmark_strategies(asset, queries, match_config)
    export_benchmark_csv(results, args.output)

    exact = sum(1 for row in results if row["kdtree_exact"])
    within = sum(1 for row in results if row["kmeans_within_threshold"])
    print(f"Benchmark report written: {args.output}")
    print(f"  Queries: {len(results)}")
    print(f"  kd-tree exact: {exact}/{len(results)}")
    print(f"  k-means within threshold: {within}/{len(results)}")
    return 0 if results else 1


COMMANDS = {"build": run_build, "inspect": run_inspect, "benchmark": run_benchmark}


def main(argv=None) -> int:
    """Main entry point for CLI."""
    args = _args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        return COMMANDS[args.command](args)
    except (OSError, ValueError, json.JSONDecodeError) as e:
        logger.error("%s failed: %s", args.command, e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
