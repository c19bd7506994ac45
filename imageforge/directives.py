"""
Directive extraction and config resolution.

A directive query such as ``w=300;900&format=webp&as=srcset`` is first split
into a DirectiveSet (name -> candidate values) and then expanded into one
ResolvedConfig per combination of values.
"""

import itertools
import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import Dict, Iterable, List, Optional, Tuple, Union
from urllib.parse import parse_qsl

from .validation import parse_int

logger = logging.getLogger(__name__)

SEPARATOR = ";"

# Directives that shape delivery rather than pixels
OUTPUT_DIRECTIVE = "as"
INLINE_DIRECTIVE = "inline"
RESERVED_DIRECTIVES = (OUTPUT_DIRECTIVE, INLINE_DIRECTIVE)

Query = Union[str, Mapping, Iterable[Tuple[str, str]]]
DirectiveSet = Mapping  # str -> tuple[str, ...]


class ResolvedConfig(Mapping):
    """
    One concrete, single-valued combination of directives.

    Behaves as a read-only mapping of directive name to raw value. The output
    selector parsed from ``as`` rides along but is not part of the mapping.
    """

    __slots__ = ("_values", "output_format", "output_params")

    def __init__(
        self,
        values: Mapping,
        output_format: Optional[str] = None,
        output_params: Optional[List[str]] = None,
    ):
        self._values = dict(values)
        self.output_format = output_format
        self.output_params = output_params

    def __getitem__(self, key):
        return self._values[key]

    def __iter__(self):
        return iter(self._values)

    def __len__(self):
        return len(self._values)

    def __repr__(self):
        return f"ResolvedConfig({self._values!r}, output_format={self.output_format!r})"


def parse_query(query: Query) -> Dict[str, str]:
    """
    Flatten a query into an ordered name -> raw value dict.

    Blank values are kept. A repeated key keeps the position of its first
    occurrence and the value of its last.
    """
    if isinstance(query, str):
        pairs = parse_qsl(query.lstrip("?"), keep_blank_values=True)
    elif isinstance(query, Mapping):
        pairs = query.items()
    else:
        pairs = query
    params: Dict[str, str] = {}
    for key, value in pairs:
        params[key] = value
    return params


def extract_entries(query: Query) -> DirectiveSet:
    """
    Split every directive value on the multi-value separator.

    Returns:
        Immutable mapping of directive name -> tuple of candidate values.
        ``flip=`` yields ``{"flip": ("",)}``; an empty value is still a candidate.

    Example:
        >>> dict(extract_entries("w=300;900&h=200"))
        {'w': ('300', '900'), 'h': ('200',)}
    """
    entries = {key: tuple(value.split(SEPARATOR)) for key, value in parse_query(query).items()}
    return MappingProxyType(entries)


def parse_output_spec(value: Optional[str]) -> Tuple[Optional[str], Optional[List[str]]]:
    """
    Parse the ``as`` directive: ``<name>`` or ``<name>:<param1>;<param2>``.

    Examples:
        >>> parse_output_spec("metadata:width;height")
        ('metadata', ['width', 'height'])
        >>> parse_output_spec(None)
        (None, None)
    """
    if value is None:
        return None, None
    name, _, params = value.partition(":")
    return name, (params.split(SEPARATOR) if params else None)


def resolve_configs(entries: DirectiveSet) -> List[ResolvedConfig]:
    """
    Expand a DirectiveSet into the cartesian product of its values.

    Directives are combined in insertion order with the first directive varying
    slowest, so ``w=300;900&format=webp;jpeg`` resolves to
    (300, webp), (300, jpeg), (900, webp), (900, jpeg).

    ``as`` and ``inline`` are not expanded. The ``as`` selector is parsed once
    and attached to every config.
    """
    as_values = entries.get(OUTPUT_DIRECTIVE)
    output_format, output_params = parse_output_spec(
        SEPARATOR.join(as_values) if as_values is not None else None
    )

    axes = [
        [(key, value) for value in values]
        for key, values in entries.items()
        if key not in RESERVED_DIRECTIVES and values
    ]
    configs = [
        ResolvedConfig(combination, output_format, output_params)
        for combination in itertools.product(*axes)
    ]
    logger.debug(f"Resolved {len(configs)} config(s) from {len(axes)} directive(s)")
    return configs


def _clamp(values: str, intrinsic: int) -> str:
    clamped: List[str] = []
    for value in values.split(SEPARATOR):
        size = parse_int(value)
        if size is not None and size > intrinsic:
            value = str(intrinsic)
        if value not in clamped:
            clamped.append(value)
    return SEPARATOR.join(clamped)


def clamp_dimensions(params: Mapping, width: int, height: int) -> Dict[str, str]:
    """
    Limit requested ``w``/``h`` values to the intrinsic size of the source.

    Applies only when ``allowUpscale`` is not ``'true'``. Duplicates created by
    clamping collapse to their first occurrence. Clamping an in-range value is
    a no-op, so the function is idempotent.

    Args:
        params: Flat name -> raw value mapping (before extraction)
        width: Intrinsic width of the source image
        height: Intrinsic height of the source image

    Returns:
        A new dict; ``params`` is not modified.

    Example:
        >>> clamp_dimensions({"w": "300;900;1200"}, 800, 600)
        {'w': '300;800'}
    """
    result = dict(params)
    if result.get("allowUpscale") == "true":
        return result
    if result.get("w"):
        result["w"] = _clamp(result["w"], width)
    if result.get("h"):
        result["h"] = _clamp(result["h"], height)
    return result
