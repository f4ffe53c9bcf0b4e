#!/usr/bin/env python3
"""Measure dense-label prefetch throughput on a list file.

Builds a DenseImageDataPrefetcher, consumes a number of batches while
simulating a training step, then prints the fill-thread timing counters.

Usage::

    python scripts/benchmark_pipeline.py --source data/train.txt --root data/
    python scripts/benchmark_pipeline.py --source data/train.txt --root data/ \
        --batch-size 8 --crop 256 256 --scale 2 --mirror --num-batches 200
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

from loguru import logger
from rich import box
from rich.console import Console
from rich.table import Table
from tqdm import tqdm

# Add project root to path so we can import prefetch_pipeline
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from prefetch_pipeline.config import DenseImageDataConfig  # noqa: E402
from prefetch_pipeline.data import DenseImageDataPrefetcher  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(description="Benchmark the dense prefetch pipeline")
    parser.add_argument("--source", type=Path, required=True, help="List file of pairs")
    parser.add_argument("--root", type=str, default="", help="Root folder for paths")
    parser.add_argument("--synth-source", type=Path, default=None)
    parser.add_argument("--batch-size", type=int, default=4)
    parser.add_argument("--crop", type=int, nargs=2, default=(0, 0))
    parser.add_argument("--resize", type=int, nargs=2, default=(0, 0))
    parser.add_argument("--scale", type=float, default=1.0)
    parser.add_argument("--mirror", action="store_true")
    parser.add_argument("--shuffle", action="store_true")
    parser.add_argument("--num-batches", type=int, default=100)
    parser.add_argument(
        "--step-ms",
        type=float,
        default=0.0,
        help="Simulated training-step time per batch",
    )
    parser.add_argument("--log-level", type=str, default="INFO")
    args = parser.parse_args()

    logger.remove()
    logger.add(sys.stderr, level=args.log_level)

    if not args.source.exists():
        logger.error(f"List file not found: {args.source}")
        sys.exit(1)

    config = DenseImageDataConfig(
        source=str(args.source),
        root_folder=args.root,
        synth_source=str(args.synth_source) if args.synth_source else None,
        batch_size=args.batch_size,
        new_height=args.resize[0],
        new_width=args.resize[1],
        crop_height=args.crop[0],
        crop_width=args.crop[1],
        scale=args.scale,
        mirror=args.mirror,
        shuffle=args.shuffle,
    )

    wait_s = 0.0
    start = time.perf_counter()
    with DenseImageDataPrefetcher(config) as prefetcher:
        for _ in tqdm(range(args.num_batches), desc="Batches", unit="batch"):
            t0 = time.perf_counter()
            batch = prefetcher.next_ready_batch()
            wait_s += time.perf_counter() - t0
            if args.step_ms:
                time.sleep(args.step_ms / 1000)
            prefetcher.release(batch)
        stats = prefetcher.stats
    total_s = time.perf_counter() - start

    table = Table(
        title="Prefetch Timing",
        header_style="bold magenta",
        box=box.SQUARE,
        show_lines=True,
    )
    table.add_column("Counter", style="cyan")
    table.add_column("Total (ms)", justify="right", style="green")
    table.add_column("Per batch (ms)", justify="right", style="yellow")
    n = max(stats.batches, 1)
    for name, value in (
        ("Fill", stats.batch_ms),
        ("Read", stats.read_ms),
        ("Transform", stats.transform_ms),
        ("Consumer wait", wait_s * 1000),
    ):
        table.add_row(name, f"{value:.1f}", f"{value / n:.2f}")
    Console().print(table)
    logger.info(
        f"{args.num_batches} batches consumed in {total_s:.2f}s "
        f"({stats.batches} filled)"
    )


if __name__ == "__main__":
    main()
