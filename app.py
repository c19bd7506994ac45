"""
Dev server for directive-driven responsive images.

Serves two kinds of requests:
    - GET /images/<path>?<directives> renders the directives against a source
      image under SOURCE_ROOT and returns the output value as JSON
    - GET <BASE_PATH><id> returns the bytes of a generated variant

Directive examples:
    ?w=300;600;900&format=webp&as=srcset
    ?w=800&format=avif;webp;jpeg&as=picture
    ?rotate=45&background=%23fff&as=metadata:width;height;format

Environment Variables:
    LOG_LEVEL, FLASK_HOST, FLASK_PORT, SOURCE_ROOT, BASE_PATH, CACHE_ENABLED,
    CACHE_DIR, CACHE_RETENTION, REMOVE_METADATA, MAX_WORKERS,
    INCLUDE_PATTERN, EXCLUDE_PATTERN

Example:
    $ SOURCE_ROOT=./assets LOG_LEVEL=DEBUG python app.py
    $ curl 'http://127.0.0.1:5173/images/hero.jpg?w=300;600&as=srcset'
"""

import logging

from imageforge.config import config
from imageforge.routes import app

# Configure logging
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def main():
    """Main entry point for the dev server."""
    debug_mode = logger.getEffectiveLevel() == logging.DEBUG
    logger.info(f"Starting imageforge dev server on {config.FLASK_HOST}:{config.FLASK_PORT}")
    logger.info(f"Configuration: {config}")
    logger.info(f"Log level: {logging.getLevelName(logger.getEffectiveLevel())}")
    if debug_mode:
        logger.info("Flask debug mode enabled")
    app.run(host=config.FLASK_HOST, port=config.FLASK_PORT, debug=debug_mode)


if __name__ == "__main__":
    main()
