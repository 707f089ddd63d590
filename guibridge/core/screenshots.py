"""
Screenshot helpers: cropping, similarity scoring and visual diffs.
Images travel as base64 encoded PNG.
"""

import base64
import binascii
import io
import logging
import os
import tempfile
import time
from typing import Any, Dict, Optional, Tuple

import numpy as np
from PIL import Image, UnidentifiedImageError

from guibridge.constants import IDENTICAL_THRESHOLD
from guibridge.core.models import Bounds
from guibridge.errors import InvalidArgument

logger = logging.getLogger(__name__)

ALGORITHMS = ("hybrid", "mssim", "rms")
SSIM_WINDOW = 8
_C1 = (0.01 * 255) ** 2
_C2 = (0.03 * 255) ** 2


def encode_png(image: Image.Image) -> str:
    """Encode a Pillow image as base64 PNG."""
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


def decode_png(data: str) -> Image.Image:
    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidArgument(f"Failed to decode base64: {e}", code="decode_error")
    try:
        image = Image.open(io.BytesIO(raw))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidArgument(f"Failed to load image: {e}", code="image_error")
    return image


def load_image(base64_data: Optional[str] = None, path: Optional[str] = None) -> Image.Image:
    """Load an image from base64 data or, failing that, a file path."""
    if base64_data:
        return decode_png(base64_data)
    if path:
        try:
            image = Image.open(path)
            image.load()
        except (FileNotFoundError, UnidentifiedImageError, OSError) as e:
            raise InvalidArgument(f"Failed to open file: {e}", code="file_error")
        return image
    raise InvalidArgument("Either base64 data or file path must be provided", code="missing_input")


def crop_png(data: str, bounds: Bounds, origin: Tuple[float, float] = (0.0, 0.0)) -> str:
    """Crop a base64 PNG to `bounds`, given in the same screen coordinates as
    `origin`, the position of the image's top-left pixel."""
    image = decode_png(data)
    left = int(round(bounds.x - origin[0]))
    top = int(round(bounds.y - origin[1]))
    right = left + int(round(bounds.width))
    bottom = top + int(round(bounds.height))
    left, top = max(left, 0), max(top, 0)
    right, bottom = min(right, image.width), min(bottom, image.height)
    if right <= left or bottom <= top:
        raise InvalidArgument(f"Region {bounds.to_dict()} lies outside the {image.width}x{image.height} screenshot",
                              code="crop_error")
    return encode_png(image.crop((left, top, right, bottom)))


def _gray(image: Image.Image) -> np.ndarray:
    return np.asarray(image.convert("L"), dtype=np.float64)


def rms_score(a: np.ndarray, b: np.ndarray) -> float:
    """1.0 for identical images, falling toward 0.0 as pixels diverge."""
    rms = float(np.sqrt(np.mean((a - b) ** 2)))
    return 1.0 - rms / 255.0


def mssim_score(a: np.ndarray, b: np.ndarray, window: int = SSIM_WINDOW) -> float:
    """Mean structural similarity over non-overlapping square windows."""
    height, width = a.shape
    scores = []
    for top in range(0, height, window):
        for left in range(0, width, window):
            wa = a[top:top + window, left:left + window]
            wb = b[top:top + window, left:left + window]
            mean_a, mean_b = wa.mean(), wb.mean()
            var_a, var_b = wa.var(), wb.var()
            cov = ((wa - mean_a) * (wb - mean_b)).mean()
            numerator = (2 * mean_a * mean_b + _C1) * (2 * cov + _C2)
            denominator = (mean_a ** 2 + mean_b ** 2 + _C1) * (var_a + var_b + _C2)
            scores.append(numerator / denominator)
    return float(np.mean(scores)) if scores else 1.0


def compare_images(image_a: Image.Image, image_b: Image.Image, algorithm: str = "hybrid") -> Dict[str, Any]:
    """Score the similarity of two equally sized images."""
    algorithm = (algorithm or "hybrid").lower()
    if algorithm not in ALGORITHMS:
        raise InvalidArgument(f"Unknown algorithm '{algorithm}', expected one of {', '.join(ALGORITHMS)}")
    if image_a.size != image_b.size:
        raise InvalidArgument(
            f"Images have different dimensions: {image_a.size} vs {image_b.size}",
            code="dimension_mismatch",
        )

    gray_a, gray_b = _gray(image_a), _gray(image_b)
    if algorithm == "mssim":
        score = mssim_score(gray_a, gray_b)
    elif algorithm == "rms":
        score = rms_score(gray_a, gray_b)
    else:
        score = (mssim_score(gray_a, gray_b) + rms_score(gray_a, gray_b)) / 2.0

    return {"score": score, "identical": score > IDENTICAL_THRESHOLD, "algorithm": algorithm}


def diff_images(image_a: Image.Image, image_b: Image.Image) -> Image.Image:
    """Render differing pixels red over a faded grayscale copy of the rest.

    Images of different sizes are compared on the larger canvas, with the
    missing area treated as opaque black.
    """
    width = max(image_a.width, image_b.width)
    height = max(image_a.height, image_b.height)

    def canvas(image: Image.Image) -> np.ndarray:
        padded = Image.new("RGBA", (width, height), (0, 0, 0, 255))
        padded.paste(image.convert("RGBA"), (0, 0))
        return np.asarray(padded, dtype=np.uint8)

    pixels_a, pixels_b = canvas(image_a), canvas(image_b)
    differs = np.any(pixels_a != pixels_b, axis=2)

    gray = (pixels_a[:, :, :3].astype(np.uint32).sum(axis=2) // 3).astype(np.uint8)
    result = np.empty((height, width, 4), dtype=np.uint8)
    result[:, :, 0] = gray
    result[:, :, 1] = gray
    result[:, :, 2] = gray
    result[:, :, 3] = 128
    result[differs] = (255, 0, 0, 255)

    logger.debug(f"Diff found {int(differs.sum())} differing pixels on {width}x{height} canvas")
    return Image.fromarray(result)


def save_png_to_file(data: str, directory: Optional[str] = None) -> Dict[str, Any]:
    """Write a base64 PNG to a timestamped file and describe it."""
    directory = directory or tempfile.gettempdir()
    raw = base64.b64decode(data)
    os.makedirs(directory, exist_ok=True)
    file_path = os.path.join(directory, f"guibridge-screenshot-{int(time.time() * 1000)}.png")
    with open(file_path, "wb") as f:
        f.write(raw)
    logger.info(f"Screenshot saved to {file_path}")
    return {"file_path": file_path, "size_bytes": len(raw)}


def grab_screen() -> Tuple[bytes, Tuple[float, float]]:
    """Capture the whole screen as PNG bytes with its top-left origin."""
    from PIL import ImageGrab

    image = ImageGrab.grab(all_screens=True)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue(), (0.0, 0.0)
