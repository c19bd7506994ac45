"""
Content-addressed variant cache.

Generated images are stored as flat files named by a digest of the resolved
config and the source bytes, so an identical (config, source) pair always maps
to the same file regardless of where the source lives.
"""

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import List, Mapping, Optional, Union

from .errors import ProcessingError, StorageError
from .image import read_metadata
from .validation import compute_digest

logger = logging.getLogger(__name__)

_TEMP_SUFFIX = ".tmp"
_METADATA_SUFFIX = ".json"


def serialize_config(config: Mapping) -> str:
    """Stable JSON form of a config; key order does not matter."""
    return json.dumps(dict(config), sort_keys=True, separators=(",", ":"))


def generate_image_id(config: Mapping, image_hash: str) -> str:
    """
    Cache key for one variant of one source.

    Args:
        config: Resolved directive values
        image_hash: Digest of the source bytes (see compute_digest)

    Returns:
        64 hex characters
    """
    return compute_digest(serialize_config(config), image_hash)


class ImageCache:
    """
    Flat directory of generated images keyed by image id.

    Entries are written atomically (temp file + rename) and only trusted when
    non-empty, so an interrupted build never leaves a readable partial entry.
    Every id written or read during the current build is remembered so that
    sweep() can tell live entries from stale ones.
    """

    def __init__(
        self,
        directory: Union[str, Path],
        enabled: bool = True,
        retention: Optional[int] = None,
    ):
        """
        Args:
            directory: Cache directory, created if missing
            enabled: When False every lookup misses and nothing is written
            retention: Seconds an unreferenced entry may age before sweep()
                deletes it. None disables eviction.
        """
        self.directory = Path(directory)
        self.enabled = enabled
        self.retention = retention
        self.touched = set()
        if self.enabled:
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise StorageError(f"Cannot create cache directory {self.directory}: {exc}") from exc

    def __repr__(self):
        return f"ImageCache(directory={self.directory}, enabled={self.enabled}, retention={self.retention})"

    def path_for(self, image_id: str) -> Path:
        return self.directory / image_id

    def metadata_path_for(self, image_id: str) -> Path:
        return self.directory / f"{image_id}{_METADATA_SUFFIX}"

    def touch(self, image_id: str) -> None:
        """Mark an entry as referenced by the current build."""
        self.touched.add(image_id)

    def has(self, image_id: str) -> bool:
        """True when a complete (non-empty) entry exists."""
        if not self.enabled:
            return False
        try:
            return self.path_for(image_id).stat().st_size > 0
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"Cannot stat cache entry {image_id}: {exc}") from exc

    def read(self, image_id: str) -> Optional[bytes]:
        """
        Return the cached bytes, or None on a miss.

        Raises:
            StorageError: If the entry exists but cannot be read
        """
        if not self.has(image_id):
            logger.debug(f"Cache miss: {image_id}")
            return None
        try:
            data = self.path_for(image_id).read_bytes()
        except OSError as exc:
            raise StorageError(f"Cannot read cache entry {image_id}: {exc}") from exc
        self.touch(image_id)
        logger.debug(f"Cache hit: {image_id}, size: {len(data)} bytes")
        return data

    def _write_atomic(self, image_id: str, path: Path, data: bytes) -> None:
        try:
            fd, temp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{image_id}.", suffix=_TEMP_SUFFIX)
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(data)
                os.replace(temp_name, path)
            except BaseException:
                Path(temp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StorageError(f"Cannot write cache entry {image_id}: {exc}") from exc

    def write(self, image_id: str, data: bytes, metadata: Optional[Mapping] = None) -> Path:
        """
        Persist an entry atomically.

        Args:
            image_id: Cache key
            data: Encoded image
            metadata: Transform annotations to keep next to the image, so a
                later hit reports the same metadata as the build that wrote it

        Raises:
            StorageError: If the entry cannot be written
        """
        path = self.path_for(image_id)
        if metadata is not None:
            record = json.dumps(dict(metadata), sort_keys=True, default=str).encode("utf-8")
            self._write_atomic(image_id, self.metadata_path_for(image_id), record)
        self._write_atomic(image_id, path, data)
        self.touch(image_id)
        logger.debug(f"Cache write: {image_id}, size: {len(data)} bytes")
        return path

    def read_metadata(self, image_id: str, config: Mapping) -> dict:
        """
        Width, height and format of a cached entry, read from the stored file.

        Annotations stored by write() are merged underneath. Some AVIF
        decoders report the HEIF container instead; when the config asked for
        avif the format is reported as avif again.

        Raises:
            StorageError: If the entry is missing or not a readable image
        """
        try:
            metadata = read_metadata(self.path_for(image_id))
        except ProcessingError as exc:
            raise StorageError(f"Corrupt cache entry {image_id}: {exc}") from exc
        metadata = {**self._read_annotations(image_id), **metadata}
        if config.get("format") == "avif" and metadata["format"] == "heif":
            metadata["format"] = "avif"
        return metadata

    def _read_annotations(self, image_id: str) -> dict:
        try:
            return json.loads(self.metadata_path_for(image_id).read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            raise StorageError(f"Corrupt cache metadata {image_id}: {exc}") from exc

    def sweep(self, now: Optional[float] = None) -> List[str]:
        """
        Delete entries older than the retention window that the current build
        did not touch. Run once at the end of a build.

        Args:
            now: Reference timestamp. Default: time.time()

        Returns:
            Ids of the deleted entries
        """
        if not self.enabled or self.retention is None:
            return []
        now = time.time() if now is None else now
        deleted = []
        try:
            for entry in os.scandir(self.directory):
                image_id = entry.name.removesuffix(_METADATA_SUFFIX)
                if not entry.is_file() or image_id in self.touched:
                    continue
                if now - entry.stat().st_mtime > self.retention:
                    logger.debug(f"Deleting stale cached file {entry.name}")
                    os.remove(entry.path)
                    if entry.name == image_id:
                        deleted.append(image_id)
        except OSError as exc:
            raise StorageError(f"Cache sweep failed in {self.directory}: {exc}") from exc
        logger.info(f"Cache sweep removed {len(deleted)} stale entr{'y' if len(deleted) == 1 else 'ies'}")
        return deleted
