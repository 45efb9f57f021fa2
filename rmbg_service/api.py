"""
FastAPI layer exposing background removal to a local host application.

Endpoints:
 - GET /health
 - POST /remove-bg
 - POST /replace-background
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from . import config
from .errors import BackgroundRemovalError, UnsupportedFileTypeError
from .model_loader import get_providers
from .pipeline import process_image, process_image_with_preset, replace_background

settings = config.get_settings()
logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(title="Background Removal Service", version="0.1.0")


class RemoveBgRequest(BaseModel):
    inputPath: str
    model: Optional[str] = None
    modelPath: Optional[str] = None
    resolution: Optional[int] = None
    outputDir: Optional[str] = None


class RemoveBgResponse(BaseModel):
    outputPath: str
    model: str
    resolution: int


class ReplaceBackgroundRequest(BaseModel):
    cutoutPath: str
    backgroundPath: Optional[str] = None
    backgroundColor: Optional[str] = None  # "#RRGGBB"
    outputDir: Optional[str] = None


class ReplaceBackgroundResponse(BaseModel):
    outputPath: str


def _parse_hex_color(value: Optional[str]) -> Optional[tuple[int, int, int]]:
    if not value:
        return None
    raw = value.strip()
    if raw.startswith("#"):
        raw = raw[1:]
    if len(raw) != 6:
        return None
    try:
        r = int(raw[0:2], 16)
        g = int(raw[2:4], 16)
        b = int(raw[4:6], 16)
        return (r, g, b)
    except ValueError:
        return None


def _to_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, UnsupportedFileTypeError):
        return HTTPException(status_code=415, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=400, detail=str(exc))
    stage = getattr(exc, "stage", "pipeline")
    return HTTPException(status_code=500, detail=f"Background removal failed at {stage} stage: {exc}")


@app.get("/health")
def health():
    return {"status": "ok", "providers": get_providers()}


@app.post("/remove-bg", response_model=RemoveBgResponse)
def remove_bg(body: RemoveBgRequest):
    try:
        if body.modelPath:
            if not body.resolution:
                raise ValueError("resolution is required when modelPath is given")
            output_path = process_image(
                body.inputPath, body.modelPath, body.resolution, output_dir=body.outputDir
            )
            model_label, resolution = body.modelPath, body.resolution
        else:
            output_path, model_label, resolution = process_image_with_preset(
                body.inputPath,
                model_name=body.model,
                output_dir=body.outputDir,
                resolution=body.resolution,
            )
    except (BackgroundRemovalError, ValueError) as exc:
        logger.exception("Background removal failed: %s", exc)
        raise _to_http_error(exc) from exc

    return RemoveBgResponse(outputPath=output_path, model=model_label, resolution=resolution)


@app.post("/replace-background", response_model=ReplaceBackgroundResponse)
def replace_bg(body: ReplaceBackgroundRequest):
    bg_color = _parse_hex_color(body.backgroundColor)
    if body.backgroundColor and bg_color is None:
        raise HTTPException(status_code=400, detail="backgroundColor must look like #RRGGBB")

    try:
        output_path = replace_background(
            body.cutoutPath,
            background_path=body.backgroundPath,
            background_color=bg_color,
            output_dir=body.outputDir,
        )
    except (BackgroundRemovalError, ValueError) as exc:
        logger.exception("Background replacement failed: %s", exc)
        raise _to_http_error(exc) from exc

    return ReplaceBackgroundResponse(outputPath=output_path)
