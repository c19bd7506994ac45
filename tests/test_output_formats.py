import pytest

from imageforge.output_formats import (
    BUILTIN_OUTPUT_FORMATS,
    img_format,
    metadata_format,
    picture_format,
    select_output_format,
    srcset_format,
    url_format,
)


def meta(src, width, fmt="webp", **extra):
    return {"src": src, "width": width, "height": width // 2, "format": fmt, **extra}


def test_url_single_is_bare_string():
    assert url_format()([meta("a.webp", 100)]) == "a.webp"


def test_url_many_is_list():
    assert url_format()([meta("a", 100), meta("b", 200)]) == ["a", "b"]


def test_srcset():
    metadatas = [meta("a", 100), meta("b", 200), meta("c", 300, pixelDensityDescriptor="2x")]

    assert srcset_format()(metadatas) == "a 100w, b 200w, c 2x"


def test_img_single():
    assert img_format()([meta("a", 100)]) == {"src": "a", "w": 100, "h": 50}


def test_img_picks_largest_and_adds_srcset():
    result = img_format()([meta("a", 100), meta("b", 300), meta("c", 200)])

    assert result == {"src": "b", "w": 300, "h": 150, "srcset": "a 100w, b 300w, c 200w"}


def test_picture_fallback_is_last_format():
    metadatas = [meta("a", 300, "webp"), meta("b", 600, "webp"), meta("c", 600, "jpeg")]

    result = picture_format()(metadatas)

    assert result == {
        "sources": {"webp": "a 300w, b 600w"},
        "img": {"src": "c", "w": 600, "h": 300},
    }


def test_picture_fallback_group_kept_with_two_members():
    metadatas = [meta("a", 300, "webp"), meta("b", 300, "jpeg"), meta("c", 600, "jpeg")]

    result = picture_format()(metadatas)

    assert result["sources"] == {"webp": "a 300w", "jpeg": "b 300w, c 600w"}
    assert result["img"] == {"src": "c", "w": 600, "h": 300}


def test_picture_fallback_is_last_distinct_not_majority():
    metadatas = [meta("a", 100, "png"), meta("b", 200, "webp"), meta("c", 300, "png")]

    result = picture_format()(metadatas)

    assert result == {
        "sources": {"png": "a 100w, c 300w"},
        "img": {"src": "b", "w": 200, "h": 100},
    }


def test_picture_normalizes_jpg():
    result = picture_format()([meta("a", 100, "webp"), meta("b", 100, "jpg")])

    assert result == {"sources": {"webp": "a 100w"}, "img": {"src": "b", "w": 100, "h": 50}}


def test_picture_requires_format():
    with pytest.raises(ValueError, match="Could not determine image format"):
        picture_format()([{"src": "a", "width": 1, "height": 1}])


def test_metadata_single_and_many():
    single = metadata_format()([meta("a", 100, image=object())])

    assert single == {"src": "a", "width": 100, "height": 50, "format": "webp"}
    assert len(metadata_format()([meta("a", 100), meta("b", 200)])) == 2


def test_metadata_allow_list_does_not_mutate():
    original = meta("a", 100, quality=80)

    result = metadata_format(["width", "format"])([original])

    assert result == {"width": 100, "format": "webp"}
    assert original["quality"] == 80


def test_select_output_format():
    assert select_output_format("srcset")([meta("a", 100)]) == "a 100w"
    assert select_output_format("meta", ["src"])([meta("a", 100)]) == {"src": "a"}
    assert select_output_format("unknown")([meta("a", 100)]) == "a"
    assert select_output_format(None)([meta("a", 100)]) == "a"


def test_select_custom_registry():
    formats = {**BUILTIN_OUTPUT_FORMATS, "count": lambda params: len}

    assert select_output_format("count", None, formats)([meta("a", 1), meta("b", 2)]) == 2


def test_builtin_registry_is_immutable():
    assert set(BUILTIN_OUTPUT_FORMATS) == {"url", "srcset", "img", "picture", "metadata", "meta"}
    with pytest.raises(TypeError):
        BUILTIN_OUTPUT_FORMATS["url"] = None
