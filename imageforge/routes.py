"""
Flask application and dev server endpoints.

Renders directive queries against source images and serves the generated
variants by id, the way a bundler dev server would.
"""

import logging
import re
from pathlib import Path

from flask import Flask, Response, abort, jsonify, request

from .config import config
from .engine import ImageForge
from .errors import ProcessingError
from .image import mime_type
from .validation import validate_image_id, validate_source_path

logger = logging.getLogger(__name__)

# Create Flask app
app = Flask(__name__)

# Build session shared by all requests of this server
forge = ImageForge.from_config(config)


def _is_included(filename: str) -> bool:
    if not re.search(config.INCLUDE_PATTERN, filename, re.IGNORECASE):
        return False
    return not (config.EXCLUDE_PATTERN and re.search(config.EXCLUDE_PATTERN, filename))


# -------------------------------
# Dev server endpoints
# -------------------------------


@app.route("/images/<path:filename>")
def render_image(filename):
    """
    Generate the variants requested by the query string and return the output value.

    Args:
        filename: Source image path relative to SOURCE_ROOT (validated)

    Query:
        Any directives, e.g. ``?w=300;600&format=webp&as=srcset``

    Returns:
        JSON body holding the synthesized output value (string, list or object).
        Response header X-Variant-Errors counts variants that failed.

    Raises:
        400: Invalid source path
        404: Source not found, filtered out by INCLUDE/EXCLUDE, or no directives
        422: Source is not a readable image
        500: Every variant failed
    """
    validate_source_path(filename)

    if not _is_included(filename):
        logger.info(f"Source filtered out: {filename}")
        abort(404, f"Not an image source: {filename}")

    source = Path(config.SOURCE_ROOT) / filename
    if not source.is_file():
        logger.warning(f"Source not found: {source}")
        abort(404, f"Source not found: {filename}")

    query = request.query_string.decode("utf-8")
    logger.info(f"Render requested: source='{filename}', query='{query}'")

    try:
        result = forge.generate(source, query)
    except ProcessingError as exc:
        logger.error(f"Cannot process {filename}: {exc}")
        abort(422, str(exc))

    if result is None:
        abort(404, f"No directives given for {filename}")
    if not result.metadatas:
        abort(500, f"All {len(result.errors)} variant(s) of {filename} failed")

    resp = jsonify(result.output)
    resp.headers["X-Variant-Errors"] = str(len(result.errors))
    logger.info(f"Render sent: source='{filename}', variants={len(result.metadatas)}")
    return resp


@app.route(f"{config.BASE_PATH.rstrip('/')}/<image_id>", methods=["GET", "HEAD"])
def get_generated_image(image_id):
    """
    Serve a generated image by id.

    Methods:
        GET: Image bytes
        HEAD: Headers only

    Response Headers:
        Content-Type: image/<format>
        Content-Length: Size in bytes

    Raises:
        400: Malformed id
        404: Id unknown to this session
    """
    validate_image_id(image_id)

    found = forge.read_image(image_id)
    if found is None:
        logger.warning(f"Generated image not found: {image_id}")
        abort(404, f"Cannot find image with id {image_id}")

    data, fmt = found
    logger.debug(f"Serving image: {image_id}, format: {fmt}, size: {len(data)} bytes")

    if request.method == "HEAD":
        resp = Response(status=200)
    else:
        resp = Response(data, status=200)
    resp.headers["Content-Type"] = mime_type(fmt)
    resp.headers["Content-Length"] = len(data)
    return resp
