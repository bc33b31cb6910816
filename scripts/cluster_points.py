#!/usr/bin/env python
"""CLI for clustering a CSV of points at one or more zoom levels."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List

import pandas as pd

from mapcluster.algo import AVAILABLE_ALGORITHMS, PreCachingAlgorithmDecorator, get_algorithm
from mapcluster.cluster import Cluster
from mapcluster.config import get_cluster_settings, get_logging_settings
from mapcluster.items import MarkerItem
from mapcluster.logging_utils import setup_cluster_logging
from mapcluster.performance_profiler import get_profiler

logger = logging.getLogger("cluster_points")


def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Cluster lat/lng points from a CSV file")
    parser.add_argument("input", type=Path, help="CSV file with one point per row.")
    parser.add_argument("--lat-col", default="lat", help="Latitude column name.")
    parser.add_argument("--lng-col", default="lng", help="Longitude column name.")
    parser.add_argument(
        "--title-col",
        default=None,
        help="Optional column used as the marker title.",
    )
    parser.add_argument(
        "--zoom",
        type=float,
        action="append",
        default=None,
        help="Zoom level to cluster at; repeat for several (default: 10).",
    )
    parser.add_argument(
        "--algorithm",
        choices=sorted(AVAILABLE_ALGORITHMS),
        default="distance",
        help="Clustering algorithm.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write JSON here instead of printing it.",
    )
    parser.add_argument(
        "--summary-only",
        action="store_true",
        help="Only report cluster counts and sizes, not member positions.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log DEBUG to the console.")
    return parser.parse_args(argv)


def load_items(path: Path, lat_col: str, lng_col: str, title_col: str | None = None) -> List[MarkerItem]:
    """Read points from CSV, skipping rows without coordinates."""
    frame = pd.read_csv(path)
    missing = [col for col in (lat_col, lng_col, title_col) if col and col not in frame.columns]
    if missing:
        raise ValueError(f"{path} is missing column(s): {', '.join(missing)}")

    coords = frame[[lat_col, lng_col]].apply(pd.to_numeric, errors="coerce")
    valid = coords.notna().all(axis=1)
    dropped = int((~valid).sum())
    if dropped:
        logger.warning("Skipping %d rows without numeric coordinates", dropped)

    titles = frame[title_col].astype(str) if title_col else None
    items = []
    for idx in frame.index[valid]:
        items.append(
            MarkerItem.at(
                float(coords.at[idx, lat_col]),
                float(coords.at[idx, lng_col]),
                title=titles.at[idx] if titles is not None else None,
            )
        )
    return items


def serialize_cluster(cluster: Cluster, summary_only: bool) -> Dict:
    payload = {
        "lat": cluster.position.latitude,
        "lng": cluster.position.longitude,
        "size": cluster.size,
    }
    if not summary_only:
        payload["items"] = [
            {
                "lat": item.position.latitude,
                "lng": item.position.longitude,
                "title": getattr(item, "title", None),
            }
            for item in cluster.items
        ]
    return payload


def run(args: argparse.Namespace) -> Dict:
    settings = get_cluster_settings()
    if args.algorithm == "grid":
        algorithm = get_algorithm("grid", grid_size_px=settings.grid_size_px)
    else:
        algorithm = get_algorithm("distance", max_distance_px=settings.max_distance_px)
    decorator = PreCachingAlgorithmDecorator(
        algorithm, max_entries=settings.cache_size, precache=False
    )

    items = load_items(args.input, args.lat_col, args.lng_col, args.title_col)
    decorator.add_items(items)
    logger.info("Loaded %d points from %s", len(items), args.input)

    results = []
    for zoom in args.zoom or [10.0]:
        clusters = decorator.get_clusters(zoom)
        logger.info("zoom=%.2f -> %d clusters", zoom, len(clusters))
        results.append(
            {
                "zoom": zoom,
                "cluster_count": len(clusters),
                "clusters": [serialize_cluster(c, args.summary_only) for c in clusters],
            }
        )

    return {
        "input": str(args.input),
        "algorithm": args.algorithm,
        "items": len(items),
        "results": results,
        "cache": decorator.get_stats(),
        "timings": get_profiler().get_summary(),
    }


def main(argv: List[str] | None = None) -> int:
    args = parse_args(argv)
    setup_cluster_logging(
        console_level=logging.DEBUG if args.verbose else logging.INFO,
        log_dir=get_logging_settings().log_dir,
    )

    try:
        summary = run(args)
    except (OSError, ValueError) as exc:
        logger.error("Clustering failed: %s", exc)
        return 1

    text = json.dumps(summary, indent=2)
    if args.output:
        args.output.write_text(text)
        logger.info("Wrote clusters to %s", args.output)
    else:
        print(text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
