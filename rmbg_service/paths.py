"""
Output path helpers.

The resolver only checks for existence; it never creates or locks the file,
so two concurrent runs on the same stem can still race between resolution
and the final write.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Union

from .errors import DirectoryError, PathError

logger = logging.getLogger(__name__)

PathLike = Union[str, bytes, os.PathLike]


def _as_text(value: str, what: str) -> str:
    # Undecodable bytes survive os.fsdecode as lone surrogates.
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise PathError(f"Failed to convert the {what} to text: {value!r}") from exc
    return value


def file_stem(path: PathLike) -> str:
    """Return the text stem of ``path`` or raise ``PathError``."""
    name = Path(os.fsdecode(path)).name
    if not name or name in {".", ".."}:
        raise PathError(f"Failed to extract the file stem from {os.fsdecode(path)!r}")
    return _as_text(Path(name).stem, "stem")


def get_unique_file_path(path: PathLike) -> Path:
    """
    Return ``path`` itself if nothing exists there, otherwise the first free
    ``<stem>_<n>.<ext>`` (``<stem>_<n>`` without an extension), n starting at 1.
    """
    original = Path(os.fsdecode(path))
    candidate = original
    count = 0
    while candidate.exists():
        count += 1
        stem = file_stem(original)
        suffix = _as_text(original.suffix, "extension")
        candidate = original.with_name(f"{stem}_{count}{suffix}")
    if count:
        logger.debug("Resolved %s to %s after %d collision(s)", original, candidate, count)
    return candidate


def ensure_output_dir(directory: PathLike) -> Path:
    """Create the host-supplied output directory if needed and return it absolute."""
    try:
        out = Path(os.fsdecode(directory)).expanduser()
        out.mkdir(parents=True, exist_ok=True)
    except (OSError, ValueError, TypeError) as exc:
        raise DirectoryError(f"Output directory is not usable: {directory!r}") from exc
    return out.resolve()
