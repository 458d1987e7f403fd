# lovablee/widget/images.py
import io
import logging
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from lovablee.errors import ImageNormalizationError

logger = logging.getLogger(__name__)

# Widgets are killed past ~800k pixels; 500x500 leaves room for the small family
MAX_DIMENSION = 500


def scaled_size(width: int, height: int, max_dimension: int = MAX_DIMENSION) -> Tuple[int, int]:
    """Size with the longer side equal to `max_dimension`, aspect ratio kept."""
    longer, shorter = max(width, height), min(width, height)
    scaled_shorter = max(1, round(max_dimension * shorter / longer))
    if width >= height:
        return max_dimension, scaled_shorter
    return scaled_shorter, max_dimension


def normalize_for_widget(data: bytes, max_dimension: int = MAX_DIMENSION) -> bytes:
    """
    Constrains an image to the widget's display budget.

    Images already within `max_dimension` on both sides are returned as-is,
    byte for byte. Larger ones are downscaled and re-encoded as PNG.
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise ImageNormalizationError(f"Could not decode image ({len(data)} bytes): {e}") from e

    width, height = image.size
    if width <= max_dimension and height <= max_dimension:
        return data

    if image.mode not in ("RGB", "RGBA", "L", "LA"):
        image = image.convert("RGBA")
    new_size = scaled_size(width, height, max_dimension)
    try:
        resized = image.resize(new_size, Image.Resampling.LANCZOS)
        buf = io.BytesIO()
        resized.save(buf, format="PNG")
    except (OSError, ValueError) as e:
        raise ImageNormalizationError(f"Could not encode resized image: {e}") from e

    logger.info("Resized doodle %sx%s -> %sx%s", width, height, *new_size)
    return buf.getvalue()
