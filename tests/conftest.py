"""
Pytest configuration and fixtures for testing.

This module provides:
- An isolated cache directory for the module-level dev server session
- Source images generated in memory with Pillow
- A transform factory context that records consumed directives
"""

import io
import logging
import os
import tempfile

# Set test environment before importing imageforge modules
os.environ.setdefault("CACHE_DIR", tempfile.mkdtemp(prefix="imageforge-test-"))
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import pytest
from PIL import Image

from imageforge.cache import ImageCache
from imageforge.transforms import TransformContext


def make_image(width=400, height=300, mode="RGB", fmt="PNG", color=(200, 30, 30)) -> bytes:
    """Encode a solid image and return its bytes."""
    if mode == "RGBA" and len(color) == 3:
        color = (*color, 128)
    image = Image.new(mode, (width, height), color)
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


# =============================================================================
# IMAGE FIXTURES
# =============================================================================


@pytest.fixture
def png_bytes() -> bytes:
    """400x300 opaque PNG."""
    return make_image()


@pytest.fixture
def png_image(png_bytes) -> Image.Image:
    """Decoded 400x300 PNG with its format set."""
    image = Image.open(io.BytesIO(png_bytes))
    image.load()
    return image


@pytest.fixture
def rgba_image() -> Image.Image:
    image = Image.open(io.BytesIO(make_image(mode="RGBA")))
    image.load()
    return image


@pytest.fixture
def source_file(tmp_path, png_bytes):
    path = tmp_path / "hero.png"
    path.write_bytes(png_bytes)
    return path


# =============================================================================
# ENGINE FIXTURES
# =============================================================================


@pytest.fixture
def cache(tmp_path) -> ImageCache:
    return ImageCache(tmp_path / "cache")


@pytest.fixture
def ctx() -> TransformContext:
    """Factory context; ``ctx.used`` holds every directive marked as consumed."""
    used = set()
    context = TransformContext(use_param=used.add, query={}, logger=logging.getLogger("tests"))
    context.used = used
    return context
