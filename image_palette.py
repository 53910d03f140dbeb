#!/usr/bin/env python3
"""
Dominant color palette of an image.

Decodes the image with Pillow, runs every pixel through an octree quantizer
and returns the surviving buckets ranked by pixel count.
"""

import os
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from PIL import Image

from color_space import ColorCount
from octree import OcTree


# =============================================================================
# Constants
# =============================================================================

DEFAULT_MAX_COLORS = 16

# Image size limits (security: prevent decompression bombs)
MAX_IMAGE_PIXELS = 50_000_000  # 50 megapixels
MAX_IMAGE_DIMENSION = 10_000  # 10k pixels per side

IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.webp', '.gif', '.bmp', '.tif', '.tiff'}


# =============================================================================
# Errors
# =============================================================================

class PaletteError(Exception):
    """Base class for failures reported by palette extraction."""


class ImageDecodeError(PaletteError, ValueError):
    """The source could not be read or parsed as an image."""


class ImageNotFoundError(ImageDecodeError, FileNotFoundError):
    """The source path doesn't exist."""


class EmptyImageError(PaletteError, ValueError):
    """The image decoded fine but holds no pixels."""


# =============================================================================
# Image Loading
# =============================================================================

@dataclass
class ImageData:
    """Decoded pixels, flattened row-major."""
    pixels: np.ndarray  # (N, 3) uint8
    width: int
    height: int


def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ('RGBA', 'LA', 'PA') or 'transparency' in img.info


def read_image(source, skip_transparent: bool = False) -> ImageData:
    """
    Decode `source` into RGB pixels.

    Args:
        source: Path, binary file object, or an opened PIL image
        skip_transparent: Drop fully transparent pixels instead of keeping
            their RGB values

    Raises:
        ImageNotFoundError: If the path doesn't exist (also a FileNotFoundError)
        ImageDecodeError: If the source is not a readable image or exceeds size limits
    """
    if isinstance(source, Image.Image):
        return _decode(source, skip_transparent)

    try:
        img = Image.open(source)
    except FileNotFoundError as e:
        raise ImageNotFoundError(f"Image not found: {source}") from e
    except Exception as e:
        raise ImageDecodeError(f"Could not open image: {e}") from e

    with img:
        return _decode(img, skip_transparent)


def _decode(img: Image.Image, skip_transparent: bool) -> ImageData:
    # Validate image dimensions before decoding pixel data
    width, height = img.size
    if width > MAX_IMAGE_DIMENSION or height > MAX_IMAGE_DIMENSION:
        raise ImageDecodeError(
            f"Image dimensions {width}x{height} exceed maximum "
            f"{MAX_IMAGE_DIMENSION}x{MAX_IMAGE_DIMENSION}"
        )
    if width * height > MAX_IMAGE_PIXELS:
        raise ImageDecodeError(
            f"Image has {width * height:,} pixels, exceeding maximum {MAX_IMAGE_PIXELS:,}"
        )

    try:
        if skip_transparent and _has_alpha(img):
            rgba = np.array(img.convert('RGBA')).reshape(-1, 4)
            pixels = rgba[rgba[:, 3] > 0][:, :3]
        else:
            pixels = np.array(img.convert('RGB')).reshape(-1, 3)
    except Exception as e:
        raise ImageDecodeError(f"Could not decode image: {e}") from e

    return ImageData(pixels=pixels, width=width, height=height)


# =============================================================================
# Palette Extraction
# =============================================================================

def palette_from_pixels(pixels, max_colors: int = DEFAULT_MAX_COLORS) -> list[ColorCount]:
    """
    Quantize a pixel sequence to at most `max_colors` entries.

    Args:
        pixels: (N, 3) array or iterable of (r, g, b) triples / Colors

    Returns:
        Palette sorted by pixel count descending.

    Raises:
        EmptyImageError: If there are no pixels
    """
    if max_colors < 1:
        raise ValueError(f"max_colors must be at least 1, got {max_colors}")

    tree = OcTree()
    tree.insert_many(pixels)
    if tree.pixel_count == 0:
        raise EmptyImageError("Image has no pixels")

    tree.reduce(max_colors)
    return tree.extract()


def load(source, max_colors: int = DEFAULT_MAX_COLORS,
         skip_transparent: bool = False) -> tuple[list[ColorCount], int, int]:
    """
    Open an image and return its dominant colors.

    Returns:
        Tuple of (palette, width, height). Palette counts add up to
        width * height unless `skip_transparent` dropped pixels.
    """
    data = read_image(source, skip_transparent=skip_transparent)
    palette = palette_from_pixels(data.pixels, max_colors=max_colors)
    return palette, data.width, data.height


def load_with_maxcolor(source, max_color: int) -> tuple[list[ColorCount], int, int]:
    """Same as load() with an explicit palette size."""
    return load(source, max_colors=max_color)


# =============================================================================
# Render
# =============================================================================

def render_swatches(palette: list[ColorCount], output_path) -> None:
    """
    Save a swatch image of the palette with hex codes and coverage.

    Args:
        palette: Entries from load() / palette_from_pixels()
        output_path: Where to write the image; format follows the extension
    """
    from PIL import ImageDraw

    total_pixels = sum(entry.count for entry in palette)
    swatch_size = 80
    padding = 10
    text_height = 30
    cols = max(min(len(palette), 6), 1)
    rows = max((len(palette) + cols - 1) // cols, 1)

    img_width = cols * (swatch_size + padding) + padding
    img_height = rows * (swatch_size + text_height + padding) + padding

    img = Image.new('RGB', (img_width, img_height), (240, 240, 240))
    draw = ImageDraw.Draw(img)

    for i, entry in enumerate(palette):
        row = i // cols
        col = i % cols

        x = padding + col * (swatch_size + padding)
        y = padding + row * (swatch_size + text_height + padding)

        draw.rectangle([x, y, x + swatch_size, y + swatch_size], fill=entry.color.as_tuple())

        # Hex code and percentage, centered under the swatch
        for line_no, text in enumerate((entry.hex, f"{entry.percentage(total_pixels):.1f}%")):
            bbox = draw.textbbox((0, 0), text)
            text_width = bbox[2] - bbox[0]
            text_x = x + (swatch_size - text_width) // 2
            draw.text((text_x, y + swatch_size + 2 + line_no * 13), text, fill=(0, 0, 0))

    img.save(output_path)


def format_palette(palette: list[ColorCount], width: int, height: int) -> str:
    """Plain-text report, one '#RRGGBB: count (pct%)' line per entry."""
    total = sum(entry.count for entry in palette)
    lines = [f"Image: {width}x{height} ({width * height:,} pixels)"]
    for entry in palette:
        lines.append(f"{entry.hex}: {entry.count} ({entry.percentage(total):.1f}%)")
    return '\n'.join(lines)


# =============================================================================
# CLI
# =============================================================================

def main(argv=None):
    import argparse
    import sys

    parser = argparse.ArgumentParser(
        description='Extract the dominant color palette of an image.'
    )
    parser.add_argument(
        '--input', '-i',
        required=True,
        help='Path to the image file'
    )
    parser.add_argument(
        '--max-colors', '-n',
        type=int,
        default=DEFAULT_MAX_COLORS,
        help=f'Maximum number of palette entries (default {DEFAULT_MAX_COLORS})'
    )
    parser.add_argument(
        '--skip-transparent',
        action='store_true',
        help='Ignore fully transparent pixels'
    )
    parser.add_argument(
        '--output', '-o',
        nargs='?',
        const=True,
        default=None,
        help='Write a swatch PNG. Optionally specify path, otherwise auto-names from input.'
    )

    args = parser.parse_args(argv)
    image_path = Path(args.input)

    if args.max_colors < 1:
        parser.error('--max-colors must be at least 1')

    try:
        palette, width, height = load(
            os.fspath(image_path),
            max_colors=args.max_colors,
            skip_transparent=args.skip_transparent,
        )
    except ImageNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except PaletteError as e:
        print(f"Error analyzing image: {e}", file=sys.stderr)
        sys.exit(1)

    print(format_palette(palette, width, height))

    if args.output:
        if args.output is True:
            output_path = image_path.with_name(f"{image_path.stem}-palette.png")
        else:
            output_path = Path(args.output)

        try:
            render_swatches(palette, output_path)
            print(f"\nWrote: {output_path}")
        except (OSError, ValueError) as e:
            print(f"Error writing output: {e}", file=sys.stderr)
            sys.exit(1)


if __name__ == '__main__':
    main()
