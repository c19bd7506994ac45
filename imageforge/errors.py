"""
Exception types raised by the engine.

Validation problems never raise: a factory that cannot use its directive
simply contributes nothing to the pipeline. Only processing and storage
failures are exceptional.
"""

from dataclasses import dataclass
from typing import Mapping


class ImageForgeError(Exception):
    """Base class for all engine errors."""


class ProcessingError(ImageForgeError):
    """The image library failed while decoding, transforming or encoding one variant."""


class StorageError(ImageForgeError):
    """Reading or writing the variant cache failed. Fatal to the current build."""


@dataclass(frozen=True)
class VariantError:
    """
    A variant that could not be produced.

    Attributes:
        index: Position of the config in resolution order
        config: The directive values of the failed variant
        error: The processing error that aborted its pipeline
    """

    index: int
    config: Mapping[str, str]
    error: ProcessingError
