"""
Directive-driven responsive image generation.

Turns URL-style directives such as ``w=300;900&format=avif&as=picture`` into
processed image variants and a synthesized output value: a URL, a ``srcset``
string, an ``<img>``/``<picture>`` descriptor or raw metadata.

Features:
    - Multi-valued directives expanded into every combination
    - Ordered, overridable registry of transform factories
    - Output formats: url, srcset, img, picture, metadata
    - Content-addressed on-disk cache with age-based eviction
    - Concurrent variant processing with ordered results
    - Configurable via environment variables
    - Flask dev server serving generated images by id

Pipeline:
    1. Directive query is split into candidate values per directive
    2. Values are expanded into one resolved config per variant
    3. Each config gets an ordered transform pipeline
    4. Pipelines run on copies of the source (or hit the cache)
    5. The requested output format is synthesized from the variant metadata

Example:
    >>> forge = ImageForge(cache=ImageCache("./.cache/imageforge"))
    >>> forge.generate("hero.jpg", "w=300;600&format=webp&as=srcset").output
    '/@imageforge/3f1c... 300w, /@imageforge/9ab2... 600w'
"""

__version__ = "0.1.0"

# Import key components for convenience
from .config import Config
from .directives import (
    ResolvedConfig,
    clamp_dimensions,
    extract_entries,
    parse_output_spec,
    resolve_configs,
)
from .builder import apply_transforms, generate_transforms
from .transforms import BUILTIN_FACTORIES, TransformContext
from .output_formats import BUILTIN_OUTPUT_FORMATS, select_output_format
from .cache import ImageCache, generate_image_id
from .engine import GenerationResult, ImageForge
from .errors import ImageForgeError, ProcessingError, StorageError, VariantError

__all__ = [
    "Config",
    "ResolvedConfig",
    "clamp_dimensions",
    "extract_entries",
    "parse_output_spec",
    "resolve_configs",
    "apply_transforms",
    "generate_transforms",
    "BUILTIN_FACTORIES",
    "TransformContext",
    "BUILTIN_OUTPUT_FORMATS",
    "select_output_format",
    "ImageCache",
    "generate_image_id",
    "GenerationResult",
    "ImageForge",
    "ImageForgeError",
    "ProcessingError",
    "StorageError",
    "VariantError",
]
