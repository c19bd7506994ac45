"""
Configuration module for imageforge.

Loads all configuration from environment variables with sensible defaults.
"""

import os


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """
    Engine and dev server configuration from environment variables.

    Loads all configuration values from environment variables with sensible defaults.
    All settings can be overridden by setting the corresponding environment variable.
    """

    def __init__(self):
        """
        Initialize configuration from environment variables.

        Environment Variables:
            LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR). Default: INFO
            FLASK_HOST: Dev server bind address. Default: 127.0.0.1
            FLASK_PORT: Dev server bind port. Default: 5173
            SOURCE_ROOT: Directory source images are resolved against. Default: .
            BASE_PATH: URL prefix generated images are served under. Default: /@imageforge/
            CACHE_ENABLED: Persist generated variants on disk. Default: true
            CACHE_DIR: Cache directory. Default: ./.cache/imageforge
            CACHE_RETENTION: Seconds an unreferenced entry survives a sweep. Default: unset (never sweep)
            REMOVE_METADATA: Strip EXIF/ICC/XMP from generated images. Default: true
            MAX_WORKERS: Variants processed concurrently per source. Default: 4
            INCLUDE_PATTERN: Regex a source path must match. Default: common raster extensions
            EXCLUDE_PATTERN: Regex a source path must not match. Default: ^public/
        """
        # Logging
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

        # Dev server
        self.FLASK_HOST = os.getenv("FLASK_HOST", "127.0.0.1")
        self.FLASK_PORT = int(os.getenv("FLASK_PORT", "5173"))
        self.SOURCE_ROOT = os.getenv("SOURCE_ROOT", ".")
        self.BASE_PATH = os.getenv("BASE_PATH", "/@imageforge/")

        # Cache
        self.CACHE_ENABLED = _env_bool("CACHE_ENABLED", "true")
        self.CACHE_DIR = os.getenv("CACHE_DIR", "./.cache/imageforge")
        retention = os.getenv("CACHE_RETENTION")
        self.CACHE_RETENTION = int(retention) if retention else None  # seconds

        # Processing
        self.REMOVE_METADATA = _env_bool("REMOVE_METADATA", "true")
        self.MAX_WORKERS = int(os.getenv("MAX_WORKERS", "4"))

        # Source filter
        self.INCLUDE_PATTERN = os.getenv(
            "INCLUDE_PATTERN", r"\.(avif|gif|heif|jpeg|jpg|png|tiff|webp)$"
        )
        self.EXCLUDE_PATTERN = os.getenv("EXCLUDE_PATTERN", r"^public/")

    def __repr__(self):
        """String representation for logging."""
        return (
            f"Config(LOG_LEVEL={self.LOG_LEVEL}, "
            f"FLASK_HOST={self.FLASK_HOST}, "
            f"FLASK_PORT={self.FLASK_PORT}, "
            f"SOURCE_ROOT={self.SOURCE_ROOT}, "
            f"CACHE_DIR={self.CACHE_DIR}, "
            f"CACHE_RETENTION={self.CACHE_RETENTION})"
        )


# Global config instance
config = Config()
