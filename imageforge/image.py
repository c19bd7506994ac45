"""
Image loading, inspection and encoding module for imageforge.

The only place outside the transforms that talks to Pillow directly.
"""

import io
import logging
from pathlib import Path
from typing import Union

from PIL import Image, UnidentifiedImageError

from .errors import ProcessingError

logger = logging.getLogger(__name__)

# directive format -> Pillow encoder name
ENCODERS = {
    "avif": "AVIF",
    "gif": "GIF",
    "heic": "HEIF",
    "heif": "HEIF",
    "jpeg": "JPEG",
    "jpg": "JPEG",
    "png": "PNG",
    "tiff": "TIFF",
    "webp": "WEBP",
}

# Pillow reports some containers under their own names
_DECODED_FORMATS = {"jpg": "jpeg", "mpo": "jpeg", "heic": "heif"}

# Encoders that cannot store an alpha channel or a palette
_RGB_ONLY = {"JPEG"}

# Image.info keys carrying embedded metadata
EMBEDDED_METADATA_KEYS = ("exif", "icc_profile", "xmp", "XML:com.adobe.xmp", "photoshop", "dpi")

Source = Union[bytes, str, Path]


def normalize_format(name: str) -> str:
    """
    Lowercase a Pillow or directive format name and fold aliases.

    Example:
        >>> normalize_format("JPEG")
        'jpeg'
    """
    name = (name or "").lower()
    return _DECODED_FORMATS.get(name, name)


def load_image(source: Source) -> Image.Image:
    """
    Open and fully decode a source image.

    Args:
        source: Raw bytes or a filesystem path

    Returns:
        The decoded image; ``image.format`` holds the source container format.

    Raises:
        ProcessingError: If the data is not a readable image
    """
    try:
        image = Image.open(io.BytesIO(source) if isinstance(source, bytes) else source)
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ProcessingError(f"Cannot decode source image: {exc}") from exc
    logger.debug(f"Loaded image {image.format} {image.size[0]}x{image.size[1]} mode={image.mode}")
    return image


def read_metadata(source: Source) -> dict:
    """
    Read intrinsic width, height and format without decoding pixel data.

    Returns:
        ``{"width": int, "height": int, "format": str}``

    Raises:
        ProcessingError: If the data is not a readable image
    """
    try:
        with Image.open(io.BytesIO(source) if isinstance(source, bytes) else source) as image:
            width, height = image.size
            fmt = normalize_format(image.format)
    except (UnidentifiedImageError, OSError) as exc:
        raise ProcessingError(f"Cannot read image metadata: {exc}") from exc
    return {"width": width, "height": height, "format": fmt}


def strip_metadata(image: Image.Image) -> Image.Image:
    """Drop EXIF/ICC/XMP and similar embedded metadata from the image info."""
    for key in EMBEDDED_METADATA_KEYS:
        image.info.pop(key, None)
    return image


def encode_image(image: Image.Image, metadata: dict) -> bytes:
    """
    Serialize an image in the format recorded on its metadata.

    Encoder options are taken from the metadata annotations written by the
    format transform: ``quality``, ``progressive`` and ``lossless``. Embedded
    metadata still present in ``image.info`` is written back out.

    Raises:
        ProcessingError: If the format is unknown or the encoder fails
    """
    fmt = metadata.get("format")
    encoder = ENCODERS.get(fmt)
    if encoder is None:
        raise ProcessingError(f"Unsupported output format: {fmt}")

    options = {}
    if metadata.get("quality") is not None:
        options["quality"] = metadata["quality"]
    if metadata.get("progressive"):
        options["progressive"] = True
    if metadata.get("lossless"):
        options["lossless"] = True
    for key in ("exif", "icc_profile"):
        if image.info.get(key):
            options[key] = image.info[key]

    if encoder in _RGB_ONLY and image.mode not in ("RGB", "L", "CMYK"):
        image = image.convert("RGB")

    buffer = io.BytesIO()
    try:
        image.save(buffer, format=encoder, **options)
    except (KeyError, OSError, ValueError) as exc:
        raise ProcessingError(f"Cannot encode {fmt}: {exc}") from exc
    data = buffer.getvalue()
    logger.debug(f"Encoded {fmt}: {len(data)} bytes")
    return data


def mime_type(fmt: str) -> str:
    """Content type for a normalized format name."""
    return f"image/{normalize_format(fmt)}"
