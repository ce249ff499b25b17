import io

from PIL import Image

from orion.backends.nanodlp.thumbnails import generate_placeholder, is_placeholder


def test_placeholder_has_exact_dimensions():
    for width, height in ((800, 480), (400, 400), (37, 11)):
        image = Image.open(io.BytesIO(generate_placeholder(width, height)))
        assert image.size == (width, height)
        assert image.format == "PNG"


def test_placeholder_is_deterministic_per_size():
    assert generate_placeholder(400, 400) == generate_placeholder(400, 400)
    assert generate_placeholder(400, 400) != generate_placeholder(800, 480)


def test_is_placeholder_by_byte_equality():
    assert is_placeholder(generate_placeholder(800, 480), 800, 480)
    assert not is_placeholder(generate_placeholder(800, 480), 400, 400)
    assert not is_placeholder(b"", 400, 400)
    assert not is_placeholder(b"\x89PNG-real", 400, 400)
