"""Tests for image loading and palette extraction."""

import io

import numpy as np
import pytest
from PIL import Image

import image_palette
from color_space import Color, ColorCount
from image_palette import (
    EmptyImageError, ImageDecodeError, ImageNotFoundError, PaletteError,
    load, load_with_maxcolor, palette_from_pixels, read_image, render_swatches,
)


def noise_image(width=64, height=48, seed=1):
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    return Image.fromarray(pixels, 'RGB')


@pytest.fixture
def red_png(tmp_path):
    path = tmp_path / 'red.png'
    Image.new('RGB', (2, 2), (255, 0, 0)).save(path)
    return path


def test_single_color_image(red_png):
    palette, width, height = load(str(red_png))

    assert palette == [ColorCount(Color(255, 0, 0), 4)]
    assert (width, height) == (2, 2)


def test_counts_add_up_to_image_area(tmp_path):
    path = tmp_path / 'noise.png'
    noise_image().save(path)

    palette, width, height = load(path)

    assert sum(entry.count for entry in palette) == width * height
    assert len(palette) <= image_palette.DEFAULT_MAX_COLORS
    counts = [entry.count for entry in palette]
    assert counts == sorted(counts, reverse=True)


@pytest.mark.parametrize("max_colors", [1, 3, 8])
def test_palette_length_is_bounded(tmp_path, max_colors):
    path = tmp_path / 'noise.png'
    noise_image(seed=max_colors).save(path)

    palette, width, height = load(path, max_colors=max_colors)

    assert 1 <= len(palette) <= max_colors
    assert sum(entry.count for entry in palette) == width * height


def test_load_is_deterministic(tmp_path):
    path = tmp_path / 'noise.png'
    noise_image(seed=4).save(path)

    assert load(path, max_colors=6) == load(path, max_colors=6)


def test_load_with_maxcolor(tmp_path):
    path = tmp_path / 'noise.png'
    noise_image(seed=2).save(path)

    palette, _, _ = load_with_maxcolor(path, 2)
    assert len(palette) <= 2


def test_load_accepts_file_object_and_image():
    buffer = io.BytesIO()
    Image.new('RGB', (3, 1), (0, 128, 0)).save(buffer, format='PNG')
    buffer.seek(0)

    expected = [ColorCount(Color(0, 128, 0), 3)]
    assert load(buffer) == (expected, 3, 1)
    assert load(Image.new('RGB', (3, 1), (0, 128, 0))) == (expected, 3, 1)


def test_alpha_channel_is_dropped():
    img = Image.new('RGBA', (2, 1), (10, 20, 30, 0))
    img.putpixel((1, 0), (10, 20, 30, 255))

    palette, _, _ = load(img)
    assert palette == [ColorCount(Color(10, 20, 30), 2)]


def test_skip_transparent_pixels():
    img = Image.new('RGBA', (3, 1), (0, 0, 0, 0))
    img.putpixel((2, 0), (200, 100, 50, 255))

    palette, width, height = load(img, skip_transparent=True)
    assert palette == [ColorCount(Color(200, 100, 50), 1)]
    assert (width, height) == (3, 1)


def test_fully_transparent_image_is_empty():
    img = Image.new('RGBA', (2, 2), (0, 0, 0, 0))
    with pytest.raises(EmptyImageError):
        load(img, skip_transparent=True)


def test_missing_file(tmp_path):
    with pytest.raises(ImageNotFoundError) as excinfo:
        load(tmp_path / 'missing.png')

    assert isinstance(excinfo.value, FileNotFoundError)
    assert isinstance(excinfo.value, ImageDecodeError)


def test_corrupt_file(tmp_path):
    path = tmp_path / 'broken.png'
    path.write_bytes(b'this is not an image')

    with pytest.raises(ImageDecodeError) as excinfo:
        load(path)

    assert excinfo.value.__cause__ is not None


def test_truncated_file(tmp_path):
    buffer = io.BytesIO()
    noise_image().save(buffer, format='PNG')
    path = tmp_path / 'truncated.png'
    path.write_bytes(buffer.getvalue()[:200])

    with pytest.raises(ImageDecodeError):
        load(path)


def test_size_limits(monkeypatch, red_png):
    monkeypatch.setattr(image_palette, 'MAX_IMAGE_DIMENSION', 1)
    with pytest.raises(ImageDecodeError):
        read_image(red_png)

    monkeypatch.setattr(image_palette, 'MAX_IMAGE_DIMENSION', 10)
    monkeypatch.setattr(image_palette, 'MAX_IMAGE_PIXELS', 3)
    with pytest.raises(ImageDecodeError):
        read_image(red_png)


def test_read_image_flattens_pixels(red_png):
    data = read_image(red_png)

    assert data.pixels.shape == (4, 3)
    assert data.pixels.dtype == np.uint8
    assert (data.width, data.height) == (2, 2)


def test_empty_pixels():
    with pytest.raises(EmptyImageError):
        palette_from_pixels([])
    with pytest.raises(EmptyImageError):
        palette_from_pixels(np.zeros((0, 3), dtype=np.uint8))

    assert issubclass(EmptyImageError, PaletteError)


def test_invalid_max_colors():
    with pytest.raises(ValueError):
        palette_from_pixels([(1, 2, 3)], max_colors=0)


def test_render_swatches(tmp_path):
    palette = palette_from_pixels(np.asarray(noise_image(seed=9)), max_colors=8)
    output = tmp_path / 'swatches.png'

    render_swatches(palette, output)

    with Image.open(output) as img:
        assert img.size[0] > 0 and img.size[1] > 0


def test_format_palette():
    palette = [ColorCount(Color(255, 0, 0), 3), ColorCount(Color(0, 0, 255), 1)]
    text = image_palette.format_palette(palette, 2, 2)

    assert text.splitlines() == [
        'Image: 2x2 (4 pixels)',
        '#FF0000: 3 (75.0%)',
        '#0000FF: 1 (25.0%)',
    ]


def test_cli_prints_palette(red_png, capsys):
    image_palette.main(['-i', str(red_png)])

    out = capsys.readouterr().out
    assert 'Image: 2x2 (4 pixels)' in out
    assert '#FF0000: 4 (100.0%)' in out


def test_cli_writes_swatches(red_png, capsys):
    image_palette.main(['-i', str(red_png), '-n', '4', '-o'])

    assert (red_png.parent / 'red-palette.png').exists()
    assert 'Wrote:' in capsys.readouterr().out


def test_cli_reports_missing_file(tmp_path, capsys):
    with pytest.raises(SystemExit) as excinfo:
        image_palette.main(['-i', str(tmp_path / 'missing.png')])

    assert excinfo.value.code == 1
    assert 'Image not found' in capsys.readouterr().err


def test_path_source_is_closed(tmp_path, monkeypatch):
    path = tmp_path / 'frames.gif'
    first = Image.new('RGB', (4, 4), (255, 0, 0))
    second = Image.new('RGB', (4, 4), (0, 0, 255))
    first.save(path, save_all=True, append_images=[second])

    opened = []
    real_open = Image.open

    def tracking_open(*args, **kwargs):
        img = real_open(*args, **kwargs)
        opened.append(img)
        return img

    monkeypatch.setattr(Image, 'open', tracking_open)

    palette, width, height = load(path)

    assert (width, height) == (4, 4)
    assert sum(entry.count for entry in palette) == 16
    assert len(opened) == 1
    assert opened[0].fp is None
