"""
Transform factories.

A factory looks at one ResolvedConfig and either returns a transform or
None when its directive is absent or malformed. A transform is a function
``(image, metadata) -> (image, metadata)``; it never mutates the metadata it
receives but returns an updated copy.

Option getters (``get_background``, ``get_fit``, ...) are pure decision
functions shared between factories. They mark the keys they accept as used
when given a context.
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Mapping, Optional, Tuple

from PIL import Image, ImageEnhance, ImageFilter, ImageOps

from .image import normalize_format
from .validation import is_flag, parse_aspect, parse_color, parse_float, parse_int

logger = logging.getLogger(__name__)

Transform = Callable[[Image.Image, dict], Tuple[Image.Image, dict]]


@dataclass
class TransformContext:
    """
    Per-pipeline-build capabilities handed to every factory.

    Attributes:
        use_param: Marks a directive key as consumed
        query: The unresolved flat query the configs were resolved from
        logger: Logger for factory diagnostics
    """

    use_param: Callable[[str], None]
    query: Mapping
    logger: logging.Logger


TransformFactory = Callable[[Mapping, TransformContext], Optional[Transform]]


def _use(ctx: Optional[TransformContext], key: str) -> None:
    if ctx is not None:
        ctx.use_param(key)


# -------------------------------
# Option getters
# -------------------------------

FIT_VALUES = ("cover", "contain", "fill", "inside", "outside")

# position -> centering for ImageOps.fit / ImageOps.pad
POSITIONS = MappingProxyType({
    "top": (0.5, 0.0),
    "right top": (1.0, 0.0),
    "right": (1.0, 0.5),
    "right bottom": (1.0, 1.0),
    "bottom": (0.5, 1.0),
    "left bottom": (0.0, 1.0),
    "left": (0.0, 0.5),
    "left top": (0.0, 0.0),
    "north": (0.5, 0.0),
    "northeast": (1.0, 0.0),
    "east": (1.0, 0.5),
    "southeast": (1.0, 1.0),
    "south": (0.5, 1.0),
    "southwest": (0.0, 1.0),
    "west": (0.0, 0.5),
    "northwest": (0.0, 0.0),
    "center": (0.5, 0.5),
    "centre": (0.5, 0.5),
    # no saliency detection; both crop around the centre
    "entropy": (0.5, 0.5),
    "attention": (0.5, 0.5),
})

KERNELS = MappingProxyType({
    "nearest": Image.Resampling.NEAREST,
    "linear": Image.Resampling.BILINEAR,
    "cubic": Image.Resampling.BICUBIC,
    "mitchell": Image.Resampling.BICUBIC,
    "lanczos2": Image.Resampling.LANCZOS,
    "lanczos3": Image.Resampling.LANCZOS,
})

FORMAT_VALUES = ("avif", "gif", "heic", "heif", "jpeg", "jpg", "png", "tiff", "webp")

# Keyword directives standing in for a canonical directive=value pair
SHORTHANDS = MappingProxyType({
    "cover": ("fit", "cover"),
    "contain": ("fit", "contain"),
    "fill": ("fit", "fill"),
    "inside": ("fit", "inside"),
    "outside": ("fit", "outside"),
    "top": ("position", "top"),
    "right top": ("position", "right top"),
    "right": ("position", "right"),
    "right bottom": ("position", "right bottom"),
    "bottom": ("position", "bottom"),
    "left bottom": ("position", "left bottom"),
    "left": ("position", "left"),
    "left top": ("position", "left top"),
})


def _enum_option(config: Mapping, ctx, name: str, choices) -> Optional[str]:
    value = config.get(name)
    if value in choices:
        _use(ctx, name)
        return value
    for shorthand, (canonical, canonical_value) in SHORTHANDS.items():
        if canonical == name and config.get(shorthand) == "":
            _use(ctx, shorthand)
            return canonical_value
    return None


def get_background(config: Mapping, ctx: Optional[TransformContext] = None) -> Optional[str]:
    """The ``background`` directive if it is a non-empty string."""
    background = config.get("background")
    if not isinstance(background, str) or not background:
        return None
    _use(ctx, "background")
    return background


def get_quality(config: Mapping, ctx: Optional[TransformContext] = None) -> Optional[int]:
    """The ``quality`` directive as a truncated integer; 0 and garbage are rejected."""
    quality = parse_int(config.get("quality"))
    if not quality:
        return None
    _use(ctx, "quality")
    return quality


def get_fit(config: Mapping, ctx: Optional[TransformContext] = None) -> Optional[str]:
    return _enum_option(config, ctx, "fit", FIT_VALUES)


def get_position(config: Mapping, ctx: Optional[TransformContext] = None) -> Optional[str]:
    return _enum_option(config, ctx, "position", POSITIONS)


def get_kernel(config: Mapping, ctx: Optional[TransformContext] = None) -> Optional[str]:
    return _enum_option(config, ctx, "kernel", KERNELS)


def get_progressive(config: Mapping, ctx: Optional[TransformContext] = None) -> Optional[bool]:
    if not is_flag(config.get("progressive")):
        return None
    _use(ctx, "progressive")
    return True


def get_lossless(config: Mapping, ctx: Optional[TransformContext] = None) -> Optional[bool]:
    if not is_flag(config.get("lossless")):
        return None
    _use(ctx, "lossless")
    return True


# -------------------------------
# Helpers
# -------------------------------


def _split_alpha(image: Image.Image):
    if "A" in image.getbands():
        return image.convert("RGB"), image.getchannel("A")
    return image.convert("RGB"), None


def _with_alpha(image: Image.Image, alpha) -> Image.Image:
    if alpha is not None:
        image = image.convert("RGBA")
        image.putalpha(alpha)
    return image


def _fill_color(image: Image.Image, color):
    """Fit an RGB(A) colour tuple to the band count of ``image``."""
    if color is None:
        color = (0, 0, 0, 255)
    bands = len(image.getbands())
    if bands == 1:
        return color[0]
    if bands == 2:
        return (color[0], color[3] if len(color) == 4 else 255)
    if len(color) == 3 and bands == 4:
        return (*color, 255)
    return tuple(color[:bands])


# -------------------------------
# Factories
# -------------------------------


def blur(config, ctx):
    value = config.get("blur")
    if value is None:
        return None
    sigma = parse_float(value) or (True if is_flag(value) else None)
    if sigma is None or (sigma is not True and sigma < 0):
        return None
    ctx.use_param("blur")

    def blur_transform(image, metadata):
        if sigma is True:
            image = image.filter(ImageFilter.BoxBlur(1))
        else:
            image = image.filter(ImageFilter.GaussianBlur(sigma))
        return image, {**metadata, "blur": sigma}

    return blur_transform


def flatten(config, ctx):
    if not is_flag(config.get("flatten")):
        return None
    ctx.use_param("flatten")
    background = get_background(config, ctx)

    def flatten_transform(image, metadata):
        updates = {"flatten": True}
        if background:
            updates["backgroundDirective"] = background
        if "A" not in image.getbands() and "transparency" not in image.info:
            return image, {**metadata, **updates}
        rgba = image.convert("RGBA")
        canvas = Image.new("RGB", rgba.size, _fill_color(rgba, parse_color(background))[:3])
        canvas.paste(rgba, mask=rgba.getchannel("A"))
        canvas.info = dict(image.info)
        return canvas, {**metadata, **updates}

    return flatten_transform


def flip(config, ctx):
    if not is_flag(config.get("flip")):
        return None
    ctx.use_param("flip")

    def flip_transform(image, metadata):
        return ImageOps.flip(image), {**metadata, "flip": True}

    return flip_transform


def flop(config, ctx):
    if not is_flag(config.get("flop")):
        return None
    ctx.use_param("flop")

    def flop_transform(image, metadata):
        return ImageOps.mirror(image), {**metadata, "flop": True}

    return flop_transform


def convert_format(config, ctx):
    """
    Output format plus encoder options (quality, progressive, lossless).

    Applies when any of them is given; without ``format`` the source format is kept.
    """
    fmt = config.get("format")
    if fmt not in FORMAT_VALUES:
        fmt = None
    quality = get_quality(config, ctx)
    progressive = get_progressive(config, ctx)
    lossless = get_lossless(config, ctx)
    if fmt is None and quality is None and progressive is None and lossless is None:
        return None
    if fmt is not None:
        ctx.use_param("format")

    def format_transform(image, metadata):
        updates = {}
        if fmt is not None:
            updates["format"] = normalize_format(fmt)
        if quality is not None:
            updates["quality"] = quality
        if progressive:
            updates["progressive"] = True
        if lossless:
            updates["lossless"] = True
        return image, {**metadata, **updates}

    return format_transform


def grayscale(config, ctx):
    if not is_flag(config.get("grayscale")):
        return None
    ctx.use_param("grayscale")

    def grayscale_transform(image, metadata):
        mode = "LA" if "A" in image.getbands() else "L"
        return image.convert(mode), {**metadata, "grayscale": True}

    return grayscale_transform


def hsb(config, ctx):
    """Hue rotation in degrees, saturation and brightness multipliers."""
    hue = parse_int(config.get("hue")) or None
    saturation = parse_float(config.get("saturation"))
    brightness = parse_float(config.get("brightness"))
    if saturation is not None and saturation < 0:
        saturation = None
    if brightness is not None and brightness < 0:
        brightness = None
    if hue is None and saturation is None and brightness is None:
        return None
    for key, value in (("hue", hue), ("saturation", saturation), ("brightness", brightness)):
        if value is not None:
            ctx.use_param(key)

    def hsb_transform(image, metadata):
        rgb, alpha = _split_alpha(image)
        if brightness is not None:
            rgb = ImageEnhance.Brightness(rgb).enhance(brightness)
        if saturation is not None:
            rgb = ImageEnhance.Color(rgb).enhance(saturation)
        if hue:
            shift = round((hue % 360) * 256 / 360)
            h, s, v = rgb.convert("HSV").split()
            h = h.point(lambda x: (x + shift) % 256)
            rgb = Image.merge("HSV", (h, s, v)).convert("RGB")
        updates = {"hue": hue, "saturation": saturation, "brightness": brightness}
        return _with_alpha(rgb, alpha), {
            **metadata,
            **{k: v for k, v in updates.items() if v is not None},
        }

    return hsb_transform


def invert(config, ctx):
    if not is_flag(config.get("invert")):
        return None
    ctx.use_param("invert")

    def invert_transform(image, metadata):
        rgb, alpha = _split_alpha(image)
        return _with_alpha(ImageOps.invert(rgb), alpha), {**metadata, "invert": True}

    return invert_transform


def median(config, ctx):
    value = config.get("median")
    if value is None:
        return None
    size = 3 if is_flag(value) else parse_int(value)
    # Pillow rank filters need an odd window
    if not size or size < 1 or size % 2 == 0:
        return None
    ctx.use_param("median")

    def median_transform(image, metadata):
        return image.filter(ImageFilter.MedianFilter(size)), {**metadata, "median": size}

    return median_transform


def normalize(config, ctx):
    key = "normalize" if "normalize" in config else "normalise"
    if not is_flag(config.get(key)):
        return None
    ctx.use_param(key)

    def normalize_transform(image, metadata):
        rgb, alpha = _split_alpha(image)
        return _with_alpha(ImageOps.autocontrast(rgb), alpha), {**metadata, "normalize": True}

    return normalize_transform


def _target_size(source: Tuple[int, int], width, height, aspect) -> Tuple[int, int]:
    src_width, src_height = source
    if width and height:
        return width, height
    ratio = aspect or src_width / src_height
    if width:
        return width, max(1, round(width / ratio))
    if height:
        return max(1, round(height * ratio)), height
    # aspect only: the largest box of that ratio inside the source
    if ratio < src_width / src_height:
        return max(1, round(src_height * ratio)), src_height
    return src_width, max(1, round(src_width / ratio))


def resize(config, ctx):
    """
    Resize to ``w``/``h``/``aspect`` honouring ``fit``, ``position``, ``kernel``
    and ``background``. A missing dimension is derived from the aspect ratio
    (explicit, or the source's). Unless ``allowUpscale=true`` the target is
    shrunk proportionally so it never exceeds the source.
    """
    width = parse_int(config.get("w"))
    height = parse_int(config.get("h"))
    aspect_key = "aspect" if config.get("aspect") else "ar"
    aspect = parse_aspect(config.get(aspect_key))
    width = width if width and width > 0 else None
    height = height if height and height > 0 else None
    if not width and not height and not aspect:
        return None

    for key, value in (("w", width), ("h", height), (aspect_key, aspect)):
        if value is not None:
            ctx.use_param(key)
    allow_upscale = config.get("allowUpscale") == "true"
    if "allowUpscale" in config:
        ctx.use_param("allowUpscale")
    fit = get_fit(config, ctx) or "cover"
    position = get_position(config, ctx) or "center"
    kernel = get_kernel(config, ctx) or "lanczos3"
    background = get_background(config, ctx) if fit == "contain" else None

    def resize_transform(image, metadata):
        target_width, target_height = _target_size(image.size, width, height, aspect)
        if not allow_upscale:
            scale = min(1.0, image.width / target_width, image.height / target_height)
            if scale < 1.0:
                target_width = max(1, round(target_width * scale))
                target_height = max(1, round(target_height * scale))
        size = (target_width, target_height)
        method = KERNELS[kernel]
        centering = POSITIONS[position]
        updates = {}

        if fit == "fill":
            image = image.resize(size, method)
        elif fit == "contain":
            color = _fill_color(image, parse_color(background))
            image = ImageOps.pad(image, size, method=method, color=color, centering=centering)
            if background:
                updates["backgroundDirective"] = background
        elif fit == "inside":
            image = ImageOps.contain(image, size, method=method)
        elif fit == "outside":
            scale = max(target_width / image.width, target_height / image.height)
            image = image.resize(
                (max(1, round(image.width * scale)), max(1, round(image.height * scale))), method
            )
        else:
            image = ImageOps.fit(image, size, method=method, centering=centering)
        return image, {**metadata, **updates}

    return resize_transform


def rotate(config, ctx):
    """Clockwise rotation in whole degrees; other angles than multiples of 90 fill with ``background``."""
    angle = parse_int(config.get("rotate"))
    if not angle:
        return None
    ctx.use_param("rotate")
    background = get_background(config, ctx)

    def rotate_transform(image, metadata):
        updates = {"rotate": angle}
        if angle % 90 == 0:
            image = image.rotate(-angle, expand=True)
        else:
            if image.mode not in ("RGB", "RGBA", "L", "LA"):
                image = image.convert("RGBA")
            image = image.rotate(
                -angle,
                resample=Image.Resampling.BICUBIC,
                expand=True,
                fillcolor=_fill_color(image, parse_color(background)),
            )
        if background:
            updates["backgroundDirective"] = background
        return image, {**metadata, **updates}

    return rotate_transform


def tint(config, ctx):
    color = parse_color(config.get("tint"))
    if color is None:
        return None
    ctx.use_param("tint")
    value = config["tint"]

    def tint_transform(image, metadata):
        rgb, alpha = _split_alpha(image)
        tinted = ImageOps.colorize(ImageOps.grayscale(rgb), black=(0, 0, 0), white=color[:3])
        return _with_alpha(tinted, alpha), {**metadata, "tint": value}

    return tint_transform


# Application order of the built-in pipeline
BUILTIN_FACTORIES: Tuple[TransformFactory, ...] = (
    blur,
    flatten,
    flip,
    flop,
    convert_format,
    grayscale,
    hsb,
    invert,
    median,
    normalize,
    resize,
    rotate,
    tint,
)
