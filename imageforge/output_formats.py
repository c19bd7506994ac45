"""
Output formats.

An output format is ``format(params) -> synthesize(metadatas) -> value``. The
metadata list always arrives in resolution order; nothing here mutates it.
"""

from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Sequence

ImageMetadata = dict
OutputFormat = Callable[[Optional[List[str]]], Callable[[Sequence[ImageMetadata]], object]]


def _srcset(metadatas: Sequence[ImageMetadata]) -> str:
    entries = []
    for meta in metadatas:
        density = meta.get("pixelDensityDescriptor")
        entries.append(f"{meta['src']} {density}" if density else f"{meta['src']} {meta['width']}w")
    return ", ".join(entries)


def _mime_format(meta: ImageMetadata) -> str:
    fmt = meta.get("format")
    if not fmt:
        raise ValueError("Could not determine image format")
    return fmt.replace("jpg", "jpeg")


def _largest(metadatas: Sequence[ImageMetadata]) -> Optional[ImageMetadata]:
    # first one wins on equal widths
    largest = None
    for meta in metadatas:
        if largest is None or meta["width"] > largest["width"]:
            largest = meta
    return largest


def _img(meta: Optional[ImageMetadata]) -> dict:
    if meta is None:
        return {"src": None, "w": None, "h": None}
    return {"src": meta["src"], "w": meta["width"], "h": meta["height"]}


def url_format(params=None):
    def synthesize(metadatas):
        urls = [meta["src"] for meta in metadatas]
        return urls[0] if len(urls) == 1 else urls

    return synthesize


def srcset_format(params=None):
    return _srcset


def img_format(params=None):
    def synthesize(metadatas):
        result = _img(_largest(metadatas))
        if len(metadatas) >= 2:
            result["srcset"] = _srcset(metadatas)
        return result

    return synthesize


def picture_format(params=None):
    """
    ``{"sources": {format: srcset}, "img": {src, w, h}}``.

    The fallback format is the last distinct format in variant order, so it
    should be requested last (``format=avif;webp;jpeg``). Its group only gets
    a source entry when it has two or more images; the ``img`` is always its
    largest image.
    """

    def synthesize(metadatas):
        formats = [_mime_format(meta) for meta in metadatas]
        fallback = list(dict.fromkeys(formats))[-1] if formats else None
        fallback_metas = [meta for meta, fmt in zip(metadatas, formats) if fmt == fallback]

        groups: Dict[str, List[ImageMetadata]] = {}
        for meta, fmt in zip(metadatas, formats):
            if fmt == fallback and len(fallback_metas) < 2:
                continue
            groups.setdefault(fmt, []).append(meta)

        return {
            "sources": {fmt: _srcset(group) for fmt, group in groups.items()},
            # never upscale the fallback; the browser can do that for free
            "img": _img(_largest(fallback_metas)),
        }

    return synthesize


def metadata_format(params=None):
    """Per-variant metadata, optionally limited to the keys in ``params``."""

    def synthesize(metadatas):
        result = []
        for meta in metadatas:
            entry = {k: v for k, v in meta.items() if k != "image"}
            if params:
                entry = {k: v for k, v in entry.items() if k in params}
            result.append(entry)
        return result[0] if len(result) == 1 else result

    return synthesize


BUILTIN_OUTPUT_FORMATS: Mapping[str, OutputFormat] = MappingProxyType({
    "url": url_format,
    "srcset": srcset_format,
    "img": img_format,
    "picture": picture_format,
    "metadata": metadata_format,
    "meta": metadata_format,
})


def select_output_format(
    name: Optional[str],
    params: Optional[List[str]] = None,
    formats: Mapping[str, OutputFormat] = BUILTIN_OUTPUT_FORMATS,
):
    """Bind the named format to its params; unknown or missing names fall back to ``url``."""
    factory = formats.get(name) if name else None
    if factory is None:
        return url_format()
    return factory(params)
