"""
Model loading and inference utilities.

The loader:
 - configures the ONNX runtime's execution providers once per process, from
   settings unless a caller registered them first,
 - opens a fresh session for every pipeline call (sessions are not cached),
 - binds the first declared input, runs the graph and extracts the first
   declared output as a flat float32 buffer.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import Path
from threading import Lock
from typing import List, Optional, Sequence

import numpy as np
import onnxruntime as ort

from . import config
from .errors import InferenceError, ModelLoadError, SchemaError, TypeMismatchError

logger = logging.getLogger(__name__)

CPU_PROVIDER = "CPUExecutionProvider"

_PROVIDERS: Optional[List[str]] = None
_LOCK = Lock()


@dataclass
class ModelHandle:
    session: ort.InferenceSession
    input_name: str
    output_name: str
    model_path: Path


def init_runtime(preferred: Sequence[str]) -> List[str]:
    """
    Register the execution providers used by every session in this process.

    Only the first call has an effect; the preference list is filtered to the
    providers this onnxruntime build offers and always ends with the CPU one.
    """
    global _PROVIDERS
    if _PROVIDERS is not None:
        return _PROVIDERS

    with _LOCK:
        if _PROVIDERS is None:
            available = set(ort.get_available_providers())
            providers = [p for p in preferred if p in available and p != CPU_PROVIDER]
            providers.append(CPU_PROVIDER)
            _PROVIDERS = providers
            logger.info("ONNX runtime providers: %s", ", ".join(providers))
    return _PROVIDERS


def get_providers() -> List[str]:
    """Return the registered providers, or an empty list before initialization."""
    return list(_PROVIDERS or [])


def open_session(model_path: str | os.PathLike) -> ModelHandle:
    """
    Load an ONNX model and read its declared input/output names.

    Only the first input and first output are used; any others are ignored.
    """
    path = Path(model_path)
    if not path.is_file():
        raise ModelLoadError(f"Model not found at: {path}")

    # No-op once the runtime has been configured.
    providers = init_runtime(config.get_settings().execution_providers)
    try:
        session = ort.InferenceSession(str(path), providers=providers)
    except Exception as exc:  # noqa: BLE001
        raise ModelLoadError(f"Failed to load ONNX model {path}: {exc}") from exc

    inputs = session.get_inputs()
    outputs = session.get_outputs()
    if not inputs:
        raise SchemaError(f"Model {path} declares no inputs")
    if not outputs:
        raise SchemaError(f"Model {path} declares no outputs")

    logger.debug("Loaded %s (input=%s, output=%s)", path, inputs[0].name, outputs[0].name)
    return ModelHandle(
        session=session,
        input_name=inputs[0].name,
        output_name=outputs[0].name,
        model_path=path,
    )


def run_inference(handle: ModelHandle, tensor: np.ndarray) -> np.ndarray:
    """Run one forward pass and return the output as a flat float32 array."""
    try:
        (output,) = handle.session.run([handle.output_name], {handle.input_name: tensor})
    except Exception as exc:  # noqa: BLE001
        raise InferenceError(f"Inference failed for {handle.model_path.name}: {exc}") from exc

    output = np.asarray(output)
    if output.dtype != np.float32:
        raise TypeMismatchError(f"Expected float32 model output, got {output.dtype}")
    return output.reshape(-1)
