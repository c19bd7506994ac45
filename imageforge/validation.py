"""
Input parsing and validation module for imageforge.

Provides the lenient number/colour parsers shared by the transform factories,
content digests for cache keys, and the request validators used by the dev server.
"""

import hashlib
import logging
import re
from typing import Optional, Tuple, Union

from flask import abort
from PIL import ImageColor

logger = logging.getLogger(__name__)

_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_IMAGE_ID = re.compile(r"^[a-f0-9]{64}$")


def compute_digest(*parts: Union[str, bytes]) -> str:
    """
    Compute a SHA256 hex digest over one or more parts.

    Args:
        parts: Strings (UTF-8 encoded) or bytes, hashed in order

    Returns:
        64 lowercase hex characters, usable as a file name

    Example:
        >>> compute_digest(b"hello")
        '2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824'
    """
    h = hashlib.sha256()
    for part in parts:
        h.update(part.encode("utf-8") if isinstance(part, str) else part)
    return h.hexdigest()


def parse_int(value: Optional[str]) -> Optional[int]:
    """
    Parse the leading integer of a directive value, truncating any fraction.

    Examples:
        >>> parse_int("300.75")
        300
        >>> parse_int("invalid") is None
        True
    """
    if not value:
        return None
    match = _INT_PREFIX.match(value)
    return int(match.group(1)) if match else None


def parse_float(value: Optional[str]) -> Optional[float]:
    """Parse the leading decimal number of a directive value."""
    if not value:
        return None
    match = _FLOAT_PREFIX.match(value)
    return float(match.group(1)) if match else None


def parse_aspect(value: Optional[str]) -> Optional[float]:
    """
    Parse an aspect ratio given as a decimal ("1.5") or as "W:H" ("16:9").

    Returns:
        The strictly positive ratio, or None when the value is missing,
        malformed, zero or negative.
    """
    if not value:
        return None
    if ":" in value:
        left, _, right = value.partition(":")
        width, height = parse_float(left), parse_float(right)
        if width is None or not height:
            return None
        ratio = width / height
    else:
        ratio = parse_float(value)
    if ratio is None or ratio <= 0:
        return None
    return ratio


def parse_color(value: Optional[str]) -> Optional[Tuple[int, ...]]:
    """
    Parse a CSS colour. Bare hex digits ("fff", "0f0") are accepted without '#'.

    Returns:
        An RGB or RGBA tuple, or None when the value is not a colour.
    """
    if not value:
        return None
    for candidate in (value, f"#{value}"):
        try:
            return ImageColor.getrgb(candidate)
        except ValueError:
            continue
    logger.debug(f"Unrecognised colour: {value}")
    return None


def is_flag(value: Optional[str]) -> bool:
    """True for keyword-only directives: present with no argument, or literally 'true'."""
    return value == "" or value == "true"


def validate_image_id(image_id: str) -> None:
    """
    Validate a generated image id from a dev server URL.

    Raises:
        HTTPException: 400 Bad Request if the id is not a hex digest
    """
    if not _IMAGE_ID.match(image_id):
        logger.warning(f"Invalid image id format: {image_id}")
        abort(400, "Invalid image id: must be 64 hex characters")

    logger.debug(f"Image id validated: {image_id}")


def validate_source_path(filename: str) -> None:
    """
    Validate a source image path relative to the source root.

    Raises:
        HTTPException: 400 Bad Request if the path is absolute or escapes the root

    Examples:
        >>> validate_source_path("assets/hero.jpg")  # OK
        >>> validate_source_path("../etc/passwd")  # Raises 400
    """
    if not filename or filename.startswith("/") or ".." in filename.split("/"):
        logger.warning(f"Invalid source path: {filename}")
        abort(400, "Invalid source path: must be relative and stay inside the source root")

    logger.debug(f"Source path validated: {filename}")
