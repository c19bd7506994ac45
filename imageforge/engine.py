"""
Build session for imageforge.

Turns one source image plus a directive query into processed variants and a
synthesized output value. Variants are independent and run concurrently;
their metadata is collected back in resolution order before synthesis.
"""

import base64
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Union

from PIL import Image

from .builder import apply_transforms, generate_transforms
from .cache import ImageCache, generate_image_id
from .config import config as default_config
from .directives import (
    INLINE_DIRECTIVE,
    OUTPUT_DIRECTIVE,
    Query,
    clamp_dimensions,
    extract_entries,
    parse_output_spec,
    parse_query,
    resolve_configs,
)
from .errors import ProcessingError, VariantError
from .image import encode_image, load_image, read_metadata
from .output_formats import BUILTIN_OUTPUT_FORMATS, OutputFormat, select_output_format
from .transforms import BUILTIN_FACTORIES, TransformFactory
from .validation import compute_digest

logger = logging.getLogger(__name__)

DefaultDirectives = Union[Mapping, Callable[[str, Callable[[], dict]], Mapping]]


@dataclass
class GeneratedImage:
    """A variant kept for the dev server. ``image`` is set only when it is not in the cache."""

    metadata: dict
    image: Optional[Image.Image] = None


@dataclass
class GenerationResult:
    """
    Outcome of one generate() call.

    Attributes:
        output: Value synthesized by the selected output format, or None if
            every variant failed
        metadatas: Metadata of the produced variants, in resolution order
        errors: Variants whose pipeline failed
    """

    output: object
    metadatas: List[dict] = field(default_factory=list)
    errors: List[VariantError] = field(default_factory=list)


class _LazySource:
    """Decodes the source at most once, on first use from any worker."""

    def __init__(self, data: bytes):
        self._data = data
        self._image: Optional[Image.Image] = None
        self._lock = threading.Lock()

    def get(self) -> Image.Image:
        with self._lock:
            if self._image is None:
                self._image = load_image(self._data)
            return self._image


@dataclass
class _Variant:
    metadata: dict
    image: Optional[Image.Image] = None
    data: Optional[bytes] = None


class ImageForge:
    """
    One build session.

    Registries are fixed at construction. To add transforms or output formats,
    pass a new sequence or mapping built from BUILTIN_FACTORIES /
    BUILTIN_OUTPUT_FORMATS; the builtins themselves are immutable.

    Delivery:
        - ``inline`` directive: ``src`` is a base64 data URL
        - ``emit_asset`` given (build mode): ``src`` is whatever it returns for
          ``(file name, bytes)``
        - otherwise (serve mode): ``src`` is ``base_path + image id``
    """

    def __init__(
        self,
        transform_factories: Sequence[TransformFactory] = BUILTIN_FACTORIES,
        output_formats: Mapping[str, OutputFormat] = BUILTIN_OUTPUT_FORMATS,
        cache: Optional[ImageCache] = None,
        remove_metadata: bool = True,
        default_directives: Optional[DefaultDirectives] = None,
        config_resolver: Optional[Callable] = None,
        max_workers: int = 4,
        base_path: str = "/@imageforge/",
        emit_asset: Optional[Callable[[str, bytes], str]] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.transform_factories = tuple(transform_factories)
        self.output_formats = MappingProxyType(dict(output_formats))
        self.cache = cache
        self.remove_metadata = remove_metadata
        self.default_directives = default_directives
        self.config_resolver = config_resolver
        self.max_workers = max_workers
        self.base_path = base_path
        self.emit_asset = emit_asset
        self.log = log or logger
        self.generated_images: Dict[str, GeneratedImage] = {}

    @classmethod
    def from_config(cls, cfg=default_config, **kwargs) -> "ImageForge":
        """Build a session from a Config (environment) instance."""
        cache = ImageCache(cfg.CACHE_DIR, enabled=cfg.CACHE_ENABLED, retention=cfg.CACHE_RETENTION)
        kwargs.setdefault("remove_metadata", cfg.REMOVE_METADATA)
        kwargs.setdefault("max_workers", cfg.MAX_WORKERS)
        kwargs.setdefault("base_path", cfg.BASE_PATH)
        return cls(cache=cache, **kwargs)

    @property
    def caching(self) -> bool:
        return self.cache is not None and self.cache.enabled

    def _resolve_defaults(self, name: str, load_metadata: Callable[[], dict]) -> Dict[str, str]:
        defaults = self.default_directives
        if defaults is None:
            return {}
        if callable(defaults):
            defaults = defaults(name, load_metadata)
        return parse_query(defaults)

    def generate(
        self,
        source: Union[bytes, str, Path],
        query: Query,
        filename: Optional[str] = None,
    ) -> Optional[GenerationResult]:
        """
        Produce every variant requested by ``query`` for ``source``.

        Args:
            source: Source image bytes or path
            query: Directive query (string, mapping or pairs)
            filename: Name used for emitted assets. Default: the source file name

        Returns:
            GenerationResult, or None when there are no directives at all

        Raises:
            ProcessingError: If the source itself cannot be read or decoded
            StorageError: If the cache cannot be read or written
        """
        if isinstance(source, bytes):
            source_bytes = source
        else:
            try:
                source_bytes = Path(source).read_bytes()
            except OSError as exc:
                raise ProcessingError(f"Cannot read source {source}: {exc}") from exc
        name = filename or (Path(source).name if not isinstance(source, bytes) else "image")

        intrinsic = {}

        def load_metadata() -> dict:
            if not intrinsic:
                intrinsic.update(read_metadata(source_bytes))
            return intrinsic

        directives = {**self._resolve_defaults(name, load_metadata), **parse_query(query)}
        if not directives:
            return None

        if directives.get("allowUpscale") != "true" and (directives.get("w") or directives.get("h")):
            meta = load_metadata()
            directives = clamp_dimensions(directives, meta["width"], meta["height"])

        entries = extract_entries(directives)
        if self.config_resolver is not None:
            configs = self.config_resolver(entries, self.output_formats)
        else:
            configs = resolve_configs(entries)

        image_hash = compute_digest(source_bytes)
        ids = [generate_image_id(cfg, image_hash) for cfg in configs]

        # the source is only decoded when at least one variant misses the cache
        source_image = _LazySource(source_bytes)
        if not self.caching or not all(self.cache.has(image_id) for image_id in ids):
            source_image.get()

        inline = INLINE_DIRECTIVE in directives
        keep_bytes = inline or self.emit_asset is not None
        process = partial(self._process_variant, source_image, directives, keep_bytes)
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            # map() yields in submission order, whatever order variants finish in
            outcomes = list(pool.map(process, range(len(configs)), configs, ids))

        result = GenerationResult(output=None)
        for image_id, outcome in zip(ids, outcomes):
            if isinstance(outcome, VariantError):
                self.log.error(f"Variant {outcome.index} of {name} failed: {outcome.error}")
                result.errors.append(outcome)
                continue
            self.generated_images[image_id] = GeneratedImage(outcome.metadata, outcome.image)
            metadata = dict(outcome.metadata)
            metadata["src"] = self._src(image_id, name, metadata, outcome.data, inline)
            result.metadatas.append(metadata)

        if result.metadatas:
            output_name, output_params = parse_output_spec(directives.get(OUTPUT_DIRECTIVE))
            synthesize = select_output_format(output_name, output_params, self.output_formats)
            result.output = synthesize(result.metadatas)

        self.log.info(
            f"Generated {len(result.metadatas)}/{len(configs)} variant(s) for {name}"
            + (f", {len(result.errors)} failed" if result.errors else "")
        )
        return result

    def _process_variant(self, source_image, query, keep_bytes, index, config, image_id):
        if self.caching and self.cache.has(image_id):
            self.cache.touch(image_id)
            metadata = self.cache.read_metadata(image_id, config)
            data = self.cache.read(image_id) if keep_bytes else None
            return _Variant(metadata, data=data)

        image = source_image.get()
        transforms, _ = generate_transforms(config, self.transform_factories, query, self.log)
        try:
            processed, metadata = apply_transforms(transforms, image, self.remove_metadata)
            data = encode_image(processed, metadata) if self.caching or keep_bytes else None
        except ProcessingError as exc:
            return VariantError(index=index, config=dict(config), error=exc)

        if self.caching:
            self.cache.write(image_id, data, metadata)
            return _Variant(metadata, data=data)
        return _Variant(metadata, image=processed, data=data)

    def _src(self, image_id, name, metadata, data, inline) -> str:
        if inline:
            encoded = base64.b64encode(data).decode("ascii")
            return f"data:image/{metadata['format']};base64,{encoded}"
        if self.emit_asset is not None:
            return self.emit_asset(f"{Path(name).stem}.{metadata['format']}", data)
        return f"{self.base_path}{image_id}"

    def get(self, image_id: str) -> Optional[GeneratedImage]:
        return self.generated_images.get(image_id)

    def read_image(self, image_id: str) -> Optional[tuple]:
        """
        Bytes and format of a generated image, for the dev server.

        Returns:
            Tuple of (bytes, format), or None if this session never generated the id
        """
        generated = self.generated_images.get(image_id)
        if generated is None:
            return None
        if generated.image is not None:
            return encode_image(generated.image, generated.metadata), generated.metadata["format"]
        data = self.cache.read(image_id) if self.caching else None
        if data is None:
            return None
        return data, generated.metadata["format"]

    def end_build(self) -> List[str]:
        """Sweep stale cache entries. Call once, after the last generate() of a build."""
        if not self.caching:
            return []
        return self.cache.sweep()
