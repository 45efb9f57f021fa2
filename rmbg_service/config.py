"""
Configuration loader for the background-removal service.

Environment variables (prefixed ``RMBG_``) are centralized here to keep the
rest of the code focused on the pipeline and to make the host-supplied
inputs (model location, output directory, execution providers) explicit.
"""

from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Square input side length for each known model.
MODEL_PRESETS: Dict[str, int] = {
    "modnet": 512,
    "silueta": 320,
    "briaai": 1024,
    "u2netp": 320,
}

DEFAULT_EXECUTION_PROVIDERS = ["CUDAExecutionProvider", "CPUExecutionProvider"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RMBG_",
        env_file=".env",
        case_sensitive=False,
        protected_namespaces=(),
    )

    # Model selection
    model_path: Optional[Path] = None
    models_dir: Path = Path("models")
    model_name: str = "modnet"
    resolution: Optional[int] = None

    # Host-supplied destination for results
    output_dir: Path = Field(default_factory=lambda: Path.home() / "Downloads")

    # Inference runtime, in order of preference
    execution_providers: List[str] = Field(
        default_factory=lambda: list(DEFAULT_EXECUTION_PROVIDERS)
    )

    log_level: str = "INFO"

    @field_validator("model_name")
    @classmethod
    def validate_model_name(cls, v: str) -> str:
        v = v.lower()
        if v not in MODEL_PRESETS:
            raise ValueError(f"RMBG_MODEL_NAME must be one of {'|'.join(MODEL_PRESETS)}")
        return v

    @field_validator("resolution")
    @classmethod
    def validate_resolution(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError("RMBG_RESOLUTION must be a positive integer")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings to avoid reparsing env on every call."""
    return Settings()


def resolve_model(
    model_name: Optional[str] = None, settings: Optional[Settings] = None
) -> Tuple[Path, int]:
    """
    Translate a preset name into a ``(model_path, resolution)`` pair.

    An explicit ``model_path`` / ``resolution`` in settings wins over the
    preset defaults; a name passed by the caller wins over both.
    """
    settings = settings or get_settings()
    if model_name is not None:
        name = model_name.lower()
        if name not in MODEL_PRESETS:
            raise ValueError(f"Unknown model '{model_name}'; expected one of {'|'.join(MODEL_PRESETS)}")
        return settings.models_dir / f"{name}.onnx", MODEL_PRESETS[name]

    name = settings.model_name
    model_path = settings.model_path or settings.models_dir / f"{name}.onnx"
    resolution = settings.resolution or MODEL_PRESETS[name]
    return model_path, resolution
