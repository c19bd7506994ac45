import pytest

from imageforge.transforms import (
    BUILTIN_FACTORIES,
    blur,
    convert_format,
    flatten,
    flip,
    flop,
    get_background,
    get_fit,
    get_position,
    get_progressive,
    get_quality,
    grayscale,
    hsb,
    invert,
    median,
    normalize,
    resize,
    rotate,
    tint,
)


def run(transform, image):
    return transform(image, {})


# =============================================================================
# REGISTRY
# =============================================================================


def test_builtin_factories():
    names = [factory.__name__ for factory in BUILTIN_FACTORIES]

    assert names == [
        "blur",
        "flatten",
        "flip",
        "flop",
        "convert_format",
        "grayscale",
        "hsb",
        "invert",
        "median",
        "normalize",
        "resize",
        "rotate",
        "tint",
    ]
    assert isinstance(BUILTIN_FACTORIES, tuple)


# =============================================================================
# OPTION GETTERS
# =============================================================================


def test_background():
    assert get_background({"background": "#0f0"}) == "#0f0"
    assert get_background({"background": ""}) is None
    assert get_background({}) is None


def test_quality_truncates():
    assert get_quality({"quality": "3"}) == 3
    assert get_quality({"quality": "3.5"}) == 3


@pytest.mark.parametrize("value", ["0", "", "invalid"])
def test_quality_rejected(value):
    assert get_quality({"quality": value}) is None


def test_quality_missing():
    assert get_quality({}) is None


def test_fit():
    for value in ("cover", "contain", "fill", "inside", "outside"):
        assert get_fit({"fit": value}) == value
    assert get_fit({"fit": "invalid"}) is None
    assert get_fit({}) is None


def test_fit_shorthands():
    for short in ("cover", "contain", "fill", "inside", "outside"):
        assert get_fit({short: ""}) == short
        assert get_fit({short: "invalid"}) is None


def test_position():
    for value in ("top", "right bottom", "northwest", "centre", "attention"):
        assert get_position({"position": value}) == value
    assert get_position({"position": "invalid"}) is None
    assert get_position({"position": ""}) is None


def test_position_shorthands():
    shorts = ["top", "right top", "right", "right bottom", "bottom", "left bottom", "left", "left top"]
    for short in shorts:
        assert get_position({short: ""}) == short


def test_progressive():
    assert get_progressive({"progressive": "true"}) is True
    assert get_progressive({"progressive": ""}) is True
    assert get_progressive({"progressive": "invalid"}) is None
    assert get_progressive({}) is None


def test_getters_mark_used(ctx):
    get_fit({"cover": ""}, ctx)
    get_quality({"quality": "80"}, ctx)
    get_quality({"quality": "nope"}, ctx)

    assert ctx.used == {"cover", "quality"}


# =============================================================================
# BLUR
# =============================================================================


@pytest.mark.parametrize("value, sigma", [("3", 3.0), ("0.5", 0.5), ("true", True), ("", True)])
def test_blur_accepted(ctx, png_image, value, sigma):
    transform = blur({"blur": value}, ctx)

    _, metadata = run(transform, png_image)
    assert metadata["blur"] == sigma


@pytest.mark.parametrize("config", [{}, {"blur": "invalid"}, {"blur": "0"}, {"blur": "-2"}])
def test_blur_rejected(ctx, config):
    assert blur(config, ctx) is None


# =============================================================================
# ROTATE
# =============================================================================


def test_rotate_90_swaps_dimensions(ctx, png_image):
    image, metadata = run(rotate({"rotate": "90"}, ctx), png_image)

    assert image.size == (300, 400)
    assert metadata == {"rotate": 90}


def test_rotate_truncates(ctx, png_image):
    _, metadata = run(rotate({"rotate": "90.75"}, ctx), png_image)

    assert metadata["rotate"] == 90


@pytest.mark.parametrize("config", [{}, {"rotate": ""}, {"rotate": "invalid"}, {"rotate": "0"}])
def test_rotate_rejected(ctx, config):
    assert rotate(config, ctx) is None


def test_rotate_uses_background(ctx, png_image):
    image, metadata = run(rotate({"rotate": "45", "background": "#0f0"}, ctx), png_image)

    assert metadata["backgroundDirective"] == "#0f0"
    assert image.getpixel((0, 0)) == (0, 255, 0)
    assert ctx.used == {"rotate", "background"}


# =============================================================================
# RESIZE
# =============================================================================


def test_resize_width(ctx, png_image):
    image, _ = run(resize({"w": "300"}, ctx), png_image)

    assert image.size == (300, 225)


def test_resize_height(ctx, png_image):
    image, _ = run(resize({"h": "150"}, ctx), png_image)

    assert image.size == (200, 150)


def test_resize_truncates(ctx, png_image):
    image, _ = run(resize({"h": "150.75"}, ctx), png_image)

    assert image.size == (200, 150)


@pytest.mark.parametrize(
    "config",
    [
        {},
        {"w": "invalid"},
        {"w": ""},
        {"h": ""},
        {"aspect": "invalid"},
        {"ar": "invalid"},
        {"aspect": ""},
        {"aspect": "-1.5"},
        {"aspect": "16:0"},
        {"allowUpscale": "true"},
    ],
)
def test_resize_rejected(ctx, config):
    assert resize(config, ctx) is None


@pytest.mark.parametrize("config", [{"aspect": "16:9"}, {"aspect": "1.5"}, {"aspect": "1"}, {"ar": "4:3"}])
def test_resize_aspect_accepted(ctx, config):
    assert callable(resize(config, ctx))


def test_resize_aspect_crops_inside_source(ctx, png_image):
    image, _ = run(resize({"aspect": "1:2"}, ctx), png_image)

    assert image.size == (150, 300)
    assert image.width / image.height == 1 / 2


def test_resize_aspect_with_height(ctx, png_image):
    image, _ = run(resize({"aspect": "4:3", "h": "75"}, ctx), png_image)

    assert image.size == (100, 75)


def test_resize_never_upscales_by_default(ctx, png_image):
    image, _ = run(resize({"w": "800"}, ctx), png_image)

    assert image.size == (400, 300)


def test_resize_allow_upscale(ctx, png_image):
    image, _ = run(resize({"w": "800", "allowUpscale": "true"}, ctx), png_image)

    assert image.size == (800, 600)
    assert "allowUpscale" in ctx.used


@pytest.mark.parametrize(
    "fit, size",
    [("cover", (300, 300)), ("contain", (300, 300)), ("fill", (300, 300)), ("inside", (300, 225))],
)
def test_resize_fit(ctx, png_image, fit, size):
    image, _ = run(resize({"w": "300", "h": "300", "fit": fit}, ctx), png_image)

    assert image.size == size


def test_resize_contain_background(ctx, png_image):
    config = {"w": "300", "h": "300", "fit": "contain", "background": "#0f0"}
    image, metadata = run(resize(config, ctx), png_image)

    assert image.getpixel((150, 0)) == (0, 255, 0)
    assert metadata["backgroundDirective"] == "#0f0"


def test_resize_marks_used(ctx):
    resize({"w": "300", "cover": "", "top": "", "kernel": "cubic", "blur": "1"}, ctx)

    assert ctx.used == {"w", "cover", "top", "kernel"}


# =============================================================================
# FORMAT
# =============================================================================


def test_format(ctx, png_image):
    _, metadata = run(convert_format({"format": "webp", "quality": "80"}, ctx), png_image)

    assert metadata == {"format": "webp", "quality": 80}


def test_format_jpg_alias(ctx, png_image):
    _, metadata = run(convert_format({"format": "jpg"}, ctx), png_image)

    assert metadata["format"] == "jpeg"


def test_format_encoder_options_without_format(ctx, png_image):
    _, metadata = run(convert_format({"quality": "50", "progressive": ""}, ctx), png_image)

    assert metadata == {"quality": 50, "progressive": True}


def test_format_rejected(ctx):
    assert convert_format({"format": "bmp"}, ctx) is None
    assert convert_format({}, ctx) is None


# =============================================================================
# COLOUR AND ORIENTATION
# =============================================================================


@pytest.mark.parametrize("factory, key", [(flip, "flip"), (flop, "flop"), (invert, "invert"), (grayscale, "grayscale")])
def test_keyword_transforms(ctx, factory, key):
    assert callable(factory({key: ""}, ctx))
    assert callable(factory({key: "true"}, ctx))
    assert factory({key: "invalid"}, ctx) is None
    assert factory({}, ctx) is None


def test_invert_pixels(ctx, png_image):
    image, metadata = run(invert({"invert": ""}, ctx), png_image)

    assert image.getpixel((0, 0)) == (55, 225, 225)
    assert metadata == {"invert": True}


def test_invert_keeps_alpha(ctx, rgba_image):
    image, _ = run(invert({"invert": ""}, ctx), rgba_image)

    assert image.mode == "RGBA"
    assert image.getpixel((0, 0))[3] == 128


def test_grayscale(ctx, png_image, rgba_image):
    assert run(grayscale({"grayscale": ""}, ctx), png_image)[0].mode == "L"
    assert run(grayscale({"grayscale": ""}, ctx), rgba_image)[0].mode == "LA"


def test_flip_and_flop_keep_size(ctx, png_image):
    assert run(flip({"flip": ""}, ctx), png_image)[0].size == (400, 300)
    assert run(flop({"flop": "true"}, ctx), png_image)[0].size == (400, 300)


def test_tint(ctx, png_image):
    assert tint({"tint": ""}, ctx) is None
    assert tint({}, ctx) is None

    _, metadata = run(tint({"tint": "fff"}, ctx), png_image)
    assert metadata == {"tint": "fff"}


def test_flatten(ctx, rgba_image):
    image, metadata = run(flatten({"flatten": "", "background": "#fff"}, ctx), rgba_image)

    assert image.mode == "RGB"
    assert metadata == {"flatten": True, "backgroundDirective": "#fff"}


def test_median(ctx, png_image):
    assert run(median({"median": ""}, ctx), png_image)[1] == {"median": 3}
    assert run(median({"median": "5"}, ctx), png_image)[1] == {"median": 5}
    assert median({"median": "4"}, ctx) is None
    assert median({"median": "invalid"}, ctx) is None


def test_normalize_spellings(ctx):
    assert callable(normalize({"normalize": ""}, ctx))
    assert callable(normalize({"normalise": "true"}, ctx))
    assert normalize({}, ctx) is None


def test_hsb(ctx, png_image):
    assert hsb({}, ctx) is None

    image, metadata = run(hsb({"hue": "120", "saturation": "0.5"}, ctx), png_image)
    assert image.size == (400, 300)
    assert metadata == {"hue": 120, "saturation": 0.5}
    assert ctx.used == {"hue", "saturation"}
