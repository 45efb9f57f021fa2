import errno

import numpy as np
import pytest
from PIL import Image

from rmbg_service import postprocessing
from rmbg_service.errors import InferenceError, WriteError
from rmbg_service.postprocessing import (
    build_mask_image,
    compose_rgba,
    compose_with_background,
    mask_to_cutout,
    quantize,
    save_png,
)


def test_quantize_truncates_instead_of_rounding():
    values = np.array([0.0, 0.5, 0.999, 1.0, 0.0039, 0.0041], dtype=np.float32)
    assert quantize(values).tolist() == [0, 127, 254, 255, 0, 1]


def test_quantize_saturates_out_of_range_values():
    values = np.array([-0.2, 1.5, np.nan, np.inf, -np.inf], dtype=np.float32)
    assert quantize(values).tolist() == [0, 255, 0, 255, 0]


def test_mask_layout_is_row_major():
    mask = build_mask_image(np.arange(6, dtype=np.uint8), 2)
    assert mask.mode == "RGBA"
    assert mask.size == (2, 2)
    assert mask.getpixel((1, 0)) == (1, 1, 1, 255)
    assert mask.getpixel((0, 1)) == (2, 2, 2, 255)


def test_short_output_is_rejected():
    with pytest.raises(InferenceError):
        build_mask_image(np.zeros(3, dtype=np.uint8), 2)


def test_all_white_mask_gives_opaque_alpha_and_source_rgb():
    rng = np.random.default_rng(1)
    pixels = rng.integers(0, 256, size=(20, 30, 3), dtype=np.uint8)
    source = Image.fromarray(pixels)

    cutout = mask_to_cutout(np.ones(64 * 64, dtype=np.float32), source, 64)
    out = np.asarray(cutout)
    assert cutout.mode == "RGBA"
    assert cutout.size == (30, 20)
    assert (out[..., 3] == 255).all()
    np.testing.assert_array_equal(out[..., :3], pixels)


def test_alpha_follows_mask_red_channel():
    source = Image.new("RGB", (2, 1), (10, 20, 30))
    mask = Image.fromarray(np.array([[[7, 100, 100, 255], [200, 0, 0, 255]]], dtype=np.uint8))
    out = np.asarray(compose_rgba(source, mask))
    assert out[0, 0].tolist() == [10, 20, 30, 7]
    assert out[0, 1].tolist() == [10, 20, 30, 200]


def test_compose_requires_matching_sizes():
    with pytest.raises(ValueError):
        compose_rgba(Image.new("RGB", (4, 4)), Image.new("RGBA", (2, 2)))


def test_save_png_names_and_dedupes(tmp_path):
    image = Image.new("RGBA", (5, 4), (1, 2, 3, 4))
    first = save_png(image, tmp_path / "out", "/inputs/photo.jpg")
    second = save_png(image, tmp_path / "out", "/inputs/photo.jpg")

    assert first == str((tmp_path / "out" / "photo-rmbg.png").resolve())
    assert second == str((tmp_path / "out" / "photo-rmbg_1.png").resolve())
    with Image.open(first) as written:
        assert written.mode == "RGBA"
        assert written.getpixel((0, 0)) == (1, 2, 3, 4)


def test_failed_write_leaves_nothing_behind(tmp_path, monkeypatch):
    target_dir = tmp_path / "out"

    def full_disk(path, mode="r"):
        handle = open(path, mode)
        handle.close()
        raise OSError(errno.ENOSPC, "No space left on device")

    monkeypatch.setattr(postprocessing, "open", full_disk, raising=False)
    with pytest.raises(WriteError):
        save_png(Image.new("RGBA", (2, 2)), target_dir, "photo.jpg")
    assert list(target_dir.iterdir()) == []


def test_compose_with_color_fills_transparent_pixels():
    cutout = Image.fromarray(
        np.array([[[255, 0, 0, 255], [0, 255, 0, 0]]], dtype=np.uint8)
    )
    composed = compose_with_background(cutout, color=(0, 0, 255))
    assert composed.getpixel((0, 0)) == (255, 0, 0, 255)
    assert composed.getpixel((1, 0)) == (0, 0, 255, 255)


def test_compose_stretches_background_image():
    cutout = Image.new("RGBA", (40, 10), (0, 0, 0, 0))
    background = Image.new("RGB", (3, 3), (9, 8, 7))
    composed = compose_with_background(cutout, background=background)
    assert composed.size == (40, 10)
    assert composed.getpixel((39, 9)) == (9, 8, 7, 255)


def test_compose_needs_exactly_one_background():
    cutout = Image.new("RGBA", (2, 2))
    with pytest.raises(ValueError):
        compose_with_background(cutout)
    with pytest.raises(ValueError):
        compose_with_background(cutout, background=Image.new("RGB", (2, 2)), color=(0, 0, 0))
