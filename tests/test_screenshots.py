"""
Tests for screenshot cropping, comparison and diffing.
"""

import base64
import io
import os

import pytest
from PIL import Image

from conftest import png_b64
from guibridge.core import screenshots
from guibridge.core.models import Bounds
from guibridge.errors import InvalidArgument


def _open(data):
    return Image.open(io.BytesIO(base64.b64decode(data)))


def _half_and_half(size=(32, 32)):
    image = Image.new("RGB", size, (0, 0, 0))
    image.paste((255, 255, 255), (0, 0, size[0] // 2, size[1]))
    return image


def test_crop_uses_screen_origin():
    data = screenshots.encode_png(Image.new("RGB", (100, 50), (0, 0, 255)))
    cropped = _open(screenshots.crop_png(data, Bounds(1010, 2005, 30, 20), origin=(1000, 2000)))
    assert cropped.size == (30, 20)


def test_crop_is_clamped_to_image():
    data = png_b64((40, 40))
    cropped = _open(screenshots.crop_png(data, Bounds(30, 30, 50, 50)))
    assert cropped.size == (10, 10)


def test_crop_outside_image_fails():
    with pytest.raises(InvalidArgument) as excinfo:
        screenshots.crop_png(png_b64((10, 10)), Bounds(50, 50, 5, 5))
    assert excinfo.value.code == "crop_error"


@pytest.mark.parametrize("algorithm", ["hybrid", "mssim", "rms"])
def test_identical_images_score_one(algorithm):
    image = _half_and_half()
    result = screenshots.compare_images(image, image.copy(), algorithm)
    assert result["score"] == pytest.approx(1.0)
    assert result["identical"] is True
    assert result["algorithm"] == algorithm


def test_different_images_score_lower():
    black = Image.new("RGB", (32, 32), (0, 0, 0))
    result = screenshots.compare_images(_half_and_half(), black, "rms")
    # Half the pixels differ by 255, so rms = 255 * sqrt(0.5)
    assert result["score"] == pytest.approx(1 - 0.5 ** 0.5, abs=0.01)
    assert result["identical"] is False


def test_compare_rejects_size_mismatch_and_unknown_algorithm():
    with pytest.raises(InvalidArgument) as excinfo:
        screenshots.compare_images(Image.new("RGB", (2, 2)), Image.new("RGB", (3, 3)))
    assert excinfo.value.code == "dimension_mismatch"
    with pytest.raises(InvalidArgument):
        screenshots.compare_images(Image.new("RGB", (2, 2)), Image.new("RGB", (2, 2)), "psnr")


def test_diff_marks_changed_pixels_red():
    a = Image.new("RGB", (4, 4), (10, 10, 10))
    b = a.copy()
    b.putpixel((1, 2), (200, 200, 200))

    diff = screenshots.diff_images(a, b)

    assert diff.mode == "RGBA"
    assert diff.getpixel((1, 2)) == (255, 0, 0, 255)
    assert diff.getpixel((0, 0)) == (10, 10, 10, 128)


def test_diff_of_different_sizes_uses_larger_canvas():
    diff = screenshots.diff_images(Image.new("RGB", (4, 4)), Image.new("RGB", (6, 5), (255, 255, 255)))
    assert diff.size == (6, 5)
    assert diff.getpixel((5, 4)) == (255, 0, 0, 255)


def test_load_image_errors():
    with pytest.raises(InvalidArgument) as excinfo:
        screenshots.load_image()
    assert excinfo.value.code == "missing_input"
    with pytest.raises(InvalidArgument) as excinfo:
        screenshots.load_image("not base64!!")
    assert excinfo.value.code == "decode_error"
    with pytest.raises(InvalidArgument) as excinfo:
        screenshots.load_image(base64.b64encode(b"plain text").decode())
    assert excinfo.value.code == "image_error"
    with pytest.raises(InvalidArgument) as excinfo:
        screenshots.load_image(path="/nonexistent/image.png")
    assert excinfo.value.code == "file_error"


def test_save_png_to_file(tmp_path):
    data = png_b64((8, 8))
    result = screenshots.save_png_to_file(data, str(tmp_path))
    assert os.path.exists(result["file_path"])
    assert result["size_bytes"] == len(base64.b64decode(data))
    assert Image.open(result["file_path"]).size == (8, 8)
