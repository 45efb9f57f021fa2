"""
Error taxonomy for the background-removal pipeline.

Every failure is terminal for the current call. Each error records the
pipeline stage that raised it so hosts can tell the user where things broke.
Input-side errors also subclass ``ValueError`` so callers that already map
``ValueError`` to "bad request" keep working.
"""

from __future__ import annotations


class BackgroundRemovalError(Exception):
    stage = "pipeline"

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class UnsupportedFileTypeError(BackgroundRemovalError, ValueError):
    """Input MIME top-level type is not ``image``."""

    stage = "input"


class DecodeError(BackgroundRemovalError, ValueError):
    """Input could not be read or decoded."""

    stage = "input"


class PathError(BackgroundRemovalError, ValueError):
    """File stem missing or not representable as text."""

    stage = "output"


class ModelLoadError(BackgroundRemovalError):
    stage = "model"


class SchemaError(BackgroundRemovalError):
    """Model declares no input or no output tensor."""

    stage = "model"


class InferenceError(BackgroundRemovalError):
    stage = "inference"


class TypeMismatchError(BackgroundRemovalError):
    """Output tensor element type is not float32."""

    stage = "inference"


class DirectoryError(BackgroundRemovalError):
    stage = "output"


class WriteError(BackgroundRemovalError):
    stage = "output"
