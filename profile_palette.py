#!/usr/bin/env python3
"""Profile palette extraction stages to identify performance bottlenecks."""

import cProfile
import pstats
import io
import sys
import time
from pathlib import Path

from image_palette import DEFAULT_MAX_COLORS, read_image
from octree import OcTree


def profile_image(image_path: str, max_colors: int = DEFAULT_MAX_COLORS, verbose: bool = True):
    """Time each stage for a single image."""

    if verbose:
        print(f"\n{'='*60}")
        print(f"Profiling: {Path(image_path).name}")
        print(f"{'='*60}")

    timings = {}

    # Stage 1: Decode
    start = time.perf_counter()
    data = read_image(image_path)
    timings['load'] = time.perf_counter() - start

    # Stage 2: Insertion
    tree = OcTree()
    start = time.perf_counter()
    tree.insert_many(data.pixels)
    timings['insert'] = time.perf_counter() - start
    leaves_before = tree.leaf_count

    # Stage 3: Reduction
    start = time.perf_counter()
    merges = tree.reduce(max_colors)
    timings['reduce'] = time.perf_counter() - start

    # Stage 4: Extraction
    start = time.perf_counter()
    palette = tree.extract()
    timings['extract'] = time.perf_counter() - start

    total = sum(timings.values())
    timings['total'] = total

    if verbose:
        print(f"  Total pixels: {tree.pixel_count:,}")
        print(f"  Leaves before reduction: {leaves_before:,}")
        print(f"  Merges: {merges:,}")
        print(f"  Palette entries: {len(palette)}")
        print(f"\nStage timings:")
        for stage, t in timings.items():
            pct = (t / total * 100) if stage != 'total' and total > 0 else 100
            print(f"  {stage:20s}: {t:6.3f}s ({pct:5.1f}%)")

    return timings, leaves_before


def detailed_profile(image_path: str):
    """Run detailed cProfile on insertion (the per-pixel stage)."""

    print(f"\n{'='*60}")
    print(f"Detailed profile of OcTree.insert_many()")
    print(f"{'='*60}")

    data = read_image(image_path)
    tree = OcTree()

    profiler = cProfile.Profile()
    profiler.enable()
    tree.insert_many(data.pixels)
    profiler.disable()

    stream = io.StringIO()
    stats = pstats.Stats(profiler, stream=stream)
    stats.sort_stats('cumulative')
    stats.print_stats(20)

    print(stream.getvalue())


def main(argv=None):
    images = [Path(arg) for arg in (sys.argv[1:] if argv is None else argv)]

    if not images:
        print("Usage: profile_palette.py IMAGE [IMAGE ...]", file=sys.stderr)
        sys.exit(1)

    all_timings = []
    for img in images:
        timings, leaves = profile_image(str(img))
        all_timings.append((img.name, timings, leaves))

    # Summary
    print(f"\n{'='*60}")
    print("SUMMARY")
    print(f"{'='*60}")
    print(f"{'Image':<35} {'Leaves':>10} {'Total':>8}")
    print("-" * 60)
    for name, timings, leaves in all_timings:
        print(f"{name:<35} {leaves:>10,} {timings['total']:>7.3f}s")

    detailed_profile(str(images[0]))


if __name__ == "__main__":
    main()
