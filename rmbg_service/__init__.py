"""
ONNX background removal package.

Exposes reusable primitives for preprocessing images, running a
fixed-resolution matting model, compositing the alpha cutout, and serving
the FastAPI application.
"""
