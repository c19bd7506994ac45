"""
Pipeline builder module for imageforge.

Composes the ordered transform list for one resolved config and applies it
to an image, threading the metadata record through every step.
"""

import logging
from typing import List, Mapping, Optional, Sequence, Set, Tuple

from PIL import Image

from .errors import ProcessingError
from .image import normalize_format, strip_metadata
from .transforms import Transform, TransformContext, TransformFactory

logger = logging.getLogger(__name__)


def generate_transforms(
    config: Mapping,
    factories: Sequence[TransformFactory],
    query: Optional[Mapping] = None,
    log: Optional[logging.Logger] = None,
) -> Tuple[List[Transform], Set[str]]:
    """
    Ask every factory, in order, whether it applies to ``config``.

    Args:
        config: One resolved config (directive name -> single raw value)
        factories: Factories in application order
        query: The unresolved flat query, exposed to factories as ``ctx.query``
        log: Logger for factory diagnostics. Default: this module's logger

    Returns:
        Tuple of (transforms in application order, directive keys consumed)

    Behavior:
        Directives no factory consumed are reported at warning level. A typo
        such as ``widht=300`` therefore shows up in the logs but never fails
        the build.
    """
    log = log or logger
    transforms: List[Transform] = []
    parameters_used: Set[str] = set()

    context = TransformContext(
        use_param=parameters_used.add,
        query=query if query is not None else {},
        logger=log,
    )

    for factory in factories:
        transform = factory(config, context)
        if callable(transform):
            transforms.append(transform)

    unused = [key for key in config if key not in parameters_used]
    if unused:
        log.warning(f"Unused directive(s) {', '.join(unused)} in {dict(config)}")

    logger.debug(f"Generated {len(transforms)} transform(s) for {dict(config)}")
    return transforms, parameters_used


def apply_transforms(
    transforms: Sequence[Transform],
    image: Image.Image,
    remove_metadata: bool = True,
) -> Tuple[Image.Image, dict]:
    """
    Apply transforms strictly in order to a copy of ``image``.

    Args:
        transforms: Transforms from generate_transforms()
        image: Decoded source image; it is not modified
        remove_metadata: Drop embedded EXIF/ICC/XMP before finalizing

    Returns:
        Tuple of (processed image, metadata). The metadata holds every
        annotation written by the transforms plus the final ``width``,
        ``height`` and ``format``.

    Raises:
        ProcessingError: If any transform fails. The variant is abandoned;
            nothing is retried.
    """
    source_format = normalize_format(image.format)
    result = image.copy()
    metadata: dict = {}

    try:
        for transform in transforms:
            result, metadata = transform(result, metadata)
    except ProcessingError:
        raise
    except (OSError, ValueError) as exc:
        logger.error(f"Transform failed: {exc}")
        raise ProcessingError(f"Transform failed: {exc}") from exc

    if remove_metadata:
        strip_metadata(result)

    width, height = result.size
    return result, {
        **metadata,
        "width": width,
        "height": height,
        "format": metadata.get("format") or source_format or "png",
    }
