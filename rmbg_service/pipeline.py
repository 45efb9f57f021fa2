"""
High-level background-removal pipeline.

`process_image` is the main entry point used by both the HTTP API and the
local CLI. It keeps orchestration simple:
path in -> preprocessing -> ONNX model -> post-processing -> RGBA PNG path out.
"""

from __future__ import annotations

import logging
import os
from typing import Callable, Optional, Tuple

from PIL import Image

from . import config
from .errors import DecodeError
from .model_loader import init_runtime, open_session, run_inference
from .postprocessing import compose_with_background, mask_to_cutout, save_png
from .preprocessing import load_and_preprocess_image, to_8bit

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


def process_image(
    input_path: str | os.PathLike,
    model_path: str | os.PathLike,
    resolution: int,
    output_dir: Optional[str | os.PathLike] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> str:
    """
    Remove the background from ``input_path`` and save it as an RGBA PNG.

    ``output_dir`` defaults to the host-supplied directory in settings.
    ``on_progress`` receives increasing fractions in (0, 1] after each stage.

    Returns:
        Absolute path of the freshly written PNG.

    Raises:
        BackgroundRemovalError: a subclass naming the stage that failed.
        ValueError: ``resolution`` is not a positive integer.
    """
    if isinstance(resolution, bool) or not isinstance(resolution, int) or resolution <= 0:
        raise ValueError(f"resolution must be a positive integer, got {resolution!r}")

    settings = config.get_settings()
    report = on_progress or (lambda _fraction: None)

    # Input is validated before the model is touched.
    preprocessed = load_and_preprocess_image(input_path, resolution)
    report(0.25)

    init_runtime(settings.execution_providers)
    handle = open_session(model_path)
    report(0.4)

    output = run_inference(handle, preprocessed.tensor)
    report(0.75)

    cutout = mask_to_cutout(output, preprocessed.original_image, resolution)
    written = save_png(cutout, output_dir if output_dir is not None else settings.output_dir, input_path)
    report(1.0)
    return written


def process_image_with_preset(
    input_path: str | os.PathLike,
    model_name: Optional[str] = None,
    output_dir: Optional[str | os.PathLike] = None,
    on_progress: Optional[ProgressCallback] = None,
    resolution: Optional[int] = None,
) -> Tuple[str, str, int]:
    """
    Run `process_image` with a model chosen by preset name (or settings).
    An explicit ``resolution`` overrides the preset's.
    """
    settings = config.get_settings()
    model_path, preset_resolution = config.resolve_model(model_name, settings=settings)
    if resolution is None:
        resolution = preset_resolution
    written = process_image(input_path, model_path, resolution, output_dir=output_dir, on_progress=on_progress)
    return written, model_name or settings.model_name, resolution


def _open_rgba(path: str | os.PathLike, what: str) -> Image.Image:
    try:
        with Image.open(path) as handle:
            return to_8bit(handle).convert("RGBA")
    except (OSError, ValueError) as exc:
        raise DecodeError(f"Cannot open {what} image: {exc}") from exc


def replace_background(
    cutout_path: str | os.PathLike,
    background_path: Optional[str | os.PathLike] = None,
    background_color: Optional[Tuple[int, int, int]] = None,
    output_dir: Optional[str | os.PathLike] = None,
) -> str:
    """
    Composite a transparent cutout over a new background and save it as
    ``<stem>-composed.png``. The background image is stretched to the
    cutout's size; alternatively a solid RGB colour is used.
    """
    if (background_path is None) == (background_color is None):
        raise ValueError("Provide exactly one of background_path or background_color")

    cutout = _open_rgba(cutout_path, "cutout")
    background = _open_rgba(background_path, "background") if background_path is not None else None
    composed = compose_with_background(cutout, background=background, color=background_color)

    directory = output_dir if output_dir is not None else config.get_settings().output_dir
    return save_png(composed, directory, cutout_path, suffix="-composed")
