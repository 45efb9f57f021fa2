"""
Local helper: runs the background-removal pipeline on an image file and
writes `<stem>-rmbg.png` into the output directory. This bypasses the API.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

# Ensure project root is importable when running from scripts/
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from rmbg_service import config
from rmbg_service.errors import BackgroundRemovalError
from rmbg_service.pipeline import process_image, replace_background


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Remove the background from a local image")
    parser.add_argument("--input", required=True, help="Path to the input image")
    parser.add_argument("--output-dir", help="Directory for the RGBA PNG (defaults to RMBG_OUTPUT_DIR)")
    parser.add_argument("--model", choices=sorted(config.MODEL_PRESETS), help="Model preset")
    parser.add_argument("--model-path", help="Explicit ONNX model file (overrides --model)")
    parser.add_argument("--resolution", type=int, help="Model input side length (required with --model-path)")
    parser.add_argument("--background", help="Optional image to place behind the cutout")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    settings = config.get_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))

    if args.model_path:
        if not args.resolution:
            raise SystemExit("--resolution is required with --model-path")
        model_path, resolution = Path(args.model_path), args.resolution
    else:
        model_path, resolution = config.resolve_model(args.model, settings=settings)
        resolution = args.resolution or resolution

    try:
        output = process_image(
            args.input,
            model_path,
            resolution,
            output_dir=args.output_dir,
            on_progress=lambda fraction: print(f"{fraction:4.0%}", file=sys.stderr),
        )
        print(f"Wrote RGBA output to {output}")
        if args.background:
            composed = replace_background(output, background_path=args.background, output_dir=args.output_dir)
            print(f"Wrote composed output to {composed}")
    except BackgroundRemovalError as exc:
        print(f"error ({exc.stage}): {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
