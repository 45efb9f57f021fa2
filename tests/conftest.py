from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from typing import Callable, List, Optional

import numpy as np
import pytest
from PIL import Image

from rmbg_service import config, model_loader


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point the host-supplied directories into tmp_path and reset cached state."""
    monkeypatch.setenv("RMBG_OUTPUT_DIR", str(tmp_path / "downloads"))
    monkeypatch.setenv("RMBG_MODELS_DIR", str(tmp_path / "models"))
    monkeypatch.setenv("RMBG_EXECUTION_PROVIDERS", '["CPUExecutionProvider"]')
    for name in ("RMBG_MODEL_PATH", "RMBG_MODEL_NAME", "RMBG_RESOLUTION"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(model_loader, "_PROVIDERS", None)
    config.get_settings.cache_clear()
    yield
    config.get_settings.cache_clear()


@pytest.fixture
def output_dir(tmp_path) -> Path:
    return tmp_path / "downloads"


def make_image(path: Path, size=(300, 200), color=(200, 120, 40), fmt: Optional[str] = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color).save(path, format=fmt)
    return path


@pytest.fixture
def photo(tmp_path) -> Path:
    return make_image(tmp_path / "inputs" / "photo.jpg", fmt="JPEG")


class FakeSession:
    """Stands in for onnxruntime.InferenceSession with a scripted output."""

    def __init__(
        self,
        path: str,
        providers: Optional[List[str]] = None,
        inputs=("input",),
        outputs=("output",),
        producer: Optional[Callable[[np.ndarray], np.ndarray]] = None,
    ):
        self.path = path
        self.providers = providers
        self._inputs = [SimpleNamespace(name=n) for n in inputs]
        self._outputs = [SimpleNamespace(name=n) for n in outputs]
        self._producer = producer or (lambda x: np.ones((1, 1) + x.shape[2:], dtype=np.float32))
        self.calls = []

    def get_inputs(self):
        return self._inputs

    def get_outputs(self):
        return self._outputs

    def run(self, output_names, feeds):
        self.calls.append((output_names, feeds))
        (tensor,) = feeds.values()
        return [self._producer(tensor)]


@pytest.fixture
def fake_runtime(monkeypatch):
    """
    Replace the ONNX session class. Set ``state.options`` before running to
    customise the fake (inputs, outputs, producer).
    """
    state = SimpleNamespace(sessions=[], options={})

    def factory(path, providers=None):
        session = FakeSession(path, providers=providers, **state.options)
        state.sessions.append(session)
        return session

    monkeypatch.setattr(model_loader.ort, "InferenceSession", factory)
    return state


@pytest.fixture
def model_file(tmp_path) -> Path:
    path = tmp_path / "models" / "modnet.onnx"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"fake-onnx-graph")
    return path
