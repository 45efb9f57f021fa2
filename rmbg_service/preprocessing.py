"""
Image loading and preprocessing.

The preprocessing sniffs the file type from its content, resizes to the
model's fixed square input and packs RGB into a channel-first float32
tensor normalized to [-1, 1].
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import mimetypes
import os
from typing import Tuple

import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import DecodeError, UnsupportedFileTypeError

logger = logging.getLogger(__name__)

# Triangle (bilinear) filter, shared with the mask upscale in postprocessing.
RESAMPLE = Image.BILINEAR

HIGH_DEPTH_MODES = {"I", "I;16", "I;16L", "I;16B", "I;16N"}


@dataclass(frozen=True)
class PreprocessResult:
    tensor: np.ndarray  # (1, 3, R, R) float32
    original_image: Image.Image
    orig_size: Tuple[int, int]  # (width, height)
    mime_type: str


def sniff_mime_type(path: str | os.PathLike) -> str:
    """
    Identify the file from its header rather than its extension.

    Returns the MIME type Pillow associates with the detected format. Anything
    Pillow cannot identify is reported with its extension-based guess (or
    ``application/octet-stream``) so the caller can reject it. A damaged
    picture whose header Pillow cannot identify therefore surfaces as
    ``UnsupportedFileTypeError``, not ``DecodeError``, whatever its extension
    says; ``DecodeError`` means the header was recognised but decoding failed.
    """
    try:
        with Image.open(path) as probe:
            fmt = probe.format
    except UnidentifiedImageError:
        guessed, _ = mimetypes.guess_type(os.fspath(path))
        if guessed and guessed.startswith("image/"):
            # Looks like an image by name only; content disagrees.
            return "application/octet-stream"
        return guessed or "application/octet-stream"
    except (OSError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"Cannot open input file: {exc}") from exc
    return Image.MIME.get(fmt or "", f"image/{(fmt or 'unknown').lower()}")


def to_8bit(image: Image.Image) -> Image.Image:
    """
    Reduce high bit-depth greyscale (``I;16*`` / ``I``) to 8-bit ``L``.

    Samples are scaled with ``(v + 128) // 257``; a plain ``convert`` would
    clip everything above 255 to white.
    """
    if image.mode not in HIGH_DEPTH_MODES:
        return image
    wide = np.asarray(image.convert("I"), dtype=np.int64)
    wide = np.clip(wide, 0, 65535)
    return Image.fromarray(((wide + 128) // 257).astype(np.uint8))


def _normalize(image: Image.Image) -> np.ndarray:
    im_np = np.asarray(image, dtype=np.float32)
    im_np = (im_np - 127.5) / 127.5
    im_np = np.transpose(im_np, (2, 0, 1))  # HWC -> CHW
    return np.ascontiguousarray(im_np[np.newaxis, ...])


def load_and_preprocess_image(path: str | os.PathLike, resolution: int) -> PreprocessResult:
    """
    Decode an image at native resolution and build the model input tensor.

    Raises:
        UnsupportedFileTypeError: the content is not an image.
        DecodeError: the codec cannot read the file.
    """
    mime_type = sniff_mime_type(path)
    if mime_type.split("/", 1)[0] != "image":
        raise UnsupportedFileTypeError(f"File type is not supported: {mime_type}")

    try:
        with Image.open(path) as handle:
            handle.load()
            image = to_8bit(handle.copy())
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"Invalid image data: {exc}") from exc

    orig_w, orig_h = image.size
    # Converting first keeps RGB independent of any source alpha.
    resized = image.convert("RGB").resize((resolution, resolution), RESAMPLE)
    tensor = _normalize(resized)
    logger.debug(
        "Preprocessed %s (%s) %dx%d -> %dx%d", os.fspath(path), mime_type, orig_w, orig_h, resolution, resolution
    )

    return PreprocessResult(
        tensor=tensor,
        original_image=image,
        orig_size=(orig_w, orig_h),
        mime_type=mime_type,
    )
