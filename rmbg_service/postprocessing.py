"""Post-processing: raw model output -> mask -> RGBA cutout on disk."""

from __future__ import annotations

from io import BytesIO
import logging
import os
from pathlib import Path
from typing import Optional, Tuple

import numpy as np
from PIL import Image

from .errors import InferenceError, WriteError
from .paths import ensure_output_dir, file_stem, get_unique_file_path
from .preprocessing import RESAMPLE

logger = logging.getLogger(__name__)

OUTPUT_SUFFIX = "-rmbg"


def quantize(values: np.ndarray) -> np.ndarray:
    """
    Map float output to uint8 with ``floor(v * 255)``.

    Truncates toward zero and saturates at the uint8 bounds; NaN becomes 0.
    """
    scaled = np.asarray(values, dtype=np.float32) * np.float32(255.0)
    scaled = np.nan_to_num(scaled, nan=0.0, posinf=255.0, neginf=0.0)
    return np.clip(scaled, 0.0, 255.0).astype(np.uint8)


def build_mask_image(intensities: np.ndarray, resolution: int) -> Image.Image:
    """Lay out ``resolution**2`` intensities row-major as an opaque grey RGBA image."""
    needed = resolution * resolution
    if intensities.size < needed:
        raise InferenceError(
            f"Model output has {intensities.size} values, expected {resolution}x{resolution}"
        )
    grey = intensities[:needed].reshape(resolution, resolution)
    opaque = np.full_like(grey, 255)
    return Image.fromarray(np.dstack((grey, grey, grey, opaque)))


def compose_rgba(source: Image.Image, mask: Image.Image) -> Image.Image:
    """
    Merge the mask's red channel as alpha over the source RGB.

    ``mask`` must already match the source size.
    """
    if mask.size != source.size:
        raise ValueError(f"Mask size {mask.size} does not match image size {source.size}")
    rgb = np.asarray(source.convert("RGB"), dtype=np.uint8)
    alpha = np.asarray(mask, dtype=np.uint8)[..., 0]
    return Image.fromarray(np.dstack((rgb, alpha)))


def mask_to_cutout(output: np.ndarray, source: Image.Image, resolution: int) -> Image.Image:
    """Quantize, upscale to the source size and apply as alpha."""
    mask = build_mask_image(quantize(output), resolution)
    mask = mask.resize(source.size, RESAMPLE)
    return compose_rgba(source, mask)


def compose_with_background(
    cutout: Image.Image,
    background: Optional[Image.Image] = None,
    color: Optional[Tuple[int, int, int]] = None,
) -> Image.Image:
    """Stretch a background image (or fill a colour) to the cutout size and paste the cutout over it."""
    if (background is None) == (color is None):
        raise ValueError("Provide exactly one of a background image or a background colour")
    if background is not None:
        base = background.convert("RGBA").resize(cutout.size, RESAMPLE)
    else:
        base = Image.new("RGBA", cutout.size, (*color, 255))
    return Image.alpha_composite(base, cutout.convert("RGBA"))


def encode_png(image: Image.Image) -> bytes:
    buf = BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


def save_png(
    image: Image.Image,
    output_dir: str | os.PathLike,
    input_path: str | os.PathLike,
    suffix: str = OUTPUT_SUFFIX,
) -> str:
    """
    Write ``image`` as ``<output_dir>/<input stem><suffix>.png`` without
    overwriting anything, and return the absolute path.

    The PNG is encoded in memory first and written with exclusive create, so
    a failure never leaves a partial file behind.
    """
    directory = ensure_output_dir(output_dir)
    target = get_unique_file_path(directory / f"{file_stem(input_path)}{suffix}.png")

    png_bytes = encode_png(image)
    try:
        with open(target, "xb") as fh:
            fh.write(png_bytes)
    except OSError as exc:
        _discard(target, exc)
        raise WriteError(f"Failed to write {target}: {exc}") from exc

    logger.info("Wrote %dx%d RGBA output to %s", image.width, image.height, target)
    return str(Path(target).resolve())


def _discard(target: Path, cause: OSError) -> None:
    # Nothing was created if exclusive create itself failed.
    if isinstance(cause, FileExistsError):
        return
    try:
        target.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Failed to remove partial output %s: %s", target, exc)
