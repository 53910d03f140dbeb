#!/usr/bin/env python3
"""Batch extract palettes and write swatch images."""

import argparse
import sys
import time
from pathlib import Path

from image_palette import (
    DEFAULT_MAX_COLORS, IMAGE_EXTENSIONS, PaletteError,
    load, render_swatches,
)


def find_images(directory: Path) -> list[Path]:
    """Find all image files in directory."""
    images = [
        path for path in directory.iterdir()
        if path.is_file() and path.suffix.lower() in IMAGE_EXTENSIONS
    ]
    return sorted(images)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Batch extract color palettes from a directory of images.'
    )
    parser.add_argument(
        '--input', '-i',
        required=True,
        help='Directory containing images to analyze'
    )
    parser.add_argument(
        '--output', '-o',
        default=None,
        help='Directory for swatch images (omit to only print palettes)'
    )
    parser.add_argument(
        '--max-colors', '-n',
        type=int,
        default=DEFAULT_MAX_COLORS,
        help=f'Maximum number of palette entries (default {DEFAULT_MAX_COLORS})'
    )

    args = parser.parse_args(argv)

    input_dir = Path(args.input)
    output_dir = Path(args.output) if args.output else None

    if args.max_colors < 1:
        parser.error('--max-colors must be at least 1')

    # Validate input directory
    if not input_dir.is_dir():
        print(f"Error: Input directory not found: {input_dir}", file=sys.stderr)
        sys.exit(2)

    if output_dir is not None:
        output_dir.mkdir(parents=True, exist_ok=True)

    images = find_images(input_dir)
    if not images:
        print(f"No images found in {input_dir}", file=sys.stderr)
        sys.exit(2)

    total = len(images)
    succeeded = 0
    failed = []

    batch_start = time.perf_counter()

    for i, image_path in enumerate(images, 1):
        try:
            img_start = time.perf_counter()
            palette, width, height = load(str(image_path), max_colors=args.max_colors)
            img_elapsed = time.perf_counter() - img_start

            if output_dir is not None:
                output_file = output_dir / f"{image_path.stem}-palette.png"
                if output_file.exists():
                    print(f"  Warning: Overwriting {output_file.name}", file=sys.stderr)
                render_swatches(palette, output_file)

            top = ' '.join(entry.hex for entry in palette[:5])
            print(f"[{i}/{total}] {image_path.name} ({width}x{height}) → "
                  f"{len(palette)} colors: {top} ({img_elapsed:.2f}s)")
            succeeded += 1

        except (PaletteError, OSError) as e:
            error_msg = f"{type(e).__name__}: {e}"
            print(f"[{i}/{total}] {image_path.name} → ERROR: {error_msg}", file=sys.stderr)
            failed.append((image_path.name, error_msg))

    batch_elapsed = time.perf_counter() - batch_start

    # Summary
    print()
    print(f"Completed: {succeeded}/{total} succeeded in {batch_elapsed:.2f}s")
    if succeeded > 0:
        print(f"Average: {batch_elapsed / succeeded:.2f}s per image")
    if failed:
        print(f"Failed ({len(failed)}):")
        for name, error in failed:
            print(f"  - {name}: {error}")
        sys.exit(1)


if __name__ == '__main__':
    main()
