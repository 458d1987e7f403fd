# lovablee/widget/renderer.py
import io
import logging
from typing import Dict, Tuple

from PIL import Image, ImageChops, ImageDraw, ImageFilter, ImageFont, ImageOps, UnidentifiedImageError

from lovablee.widget.timeline import DoodleEntry

logger = logging.getLogger(__name__)

# Pixel sizes of the supported widget families and their edge padding
FAMILIES: Dict[str, Tuple[Tuple[int, int], int]] = {
    "small": ((170, 170), 8),
    "medium": ((364, 170), 12),
}

GRADIENT_START = (252, 247, 242)
GRADIENT_END = (250, 242, 237)
EMPTY_INK = (102, 77, 128)
EMPTY_CAPTION = "No doodles yet"


def _font(size: int) -> ImageFont.ImageFont:
    try:
        return ImageFont.load_default(size=size)
    except (TypeError, OSError, ImportError):
        return ImageFont.load_default()


def _family(family: str) -> Tuple[Tuple[int, int], int]:
    if family not in FAMILIES:
        raise ValueError(f"Unknown widget family '{family}'. Expected one of {sorted(FAMILIES)}")
    return FAMILIES[family]


def _gradient(size: Tuple[int, int]) -> Image.Image:
    vertical = Image.linear_gradient("L")
    horizontal = vertical.rotate(90)
    # Top-left to bottom-right
    mask = ImageChops.add(vertical, horizontal, scale=2).resize(size)
    return Image.composite(Image.new("RGB", size, GRADIENT_END), Image.new("RGB", size, GRADIENT_START), mask)


def render_empty(size: Tuple[int, int]) -> Image.Image:
    canvas = _gradient(size).convert("RGBA")
    overlay = Image.new("RGBA", size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    cx, cy = size[0] // 2, size[1] // 2

    # Brush glyph: a tilted handle with a round tip
    draw.line([(cx + 14, cy - 34), (cx - 6, cy - 14)], fill=EMPTY_INK + (77,), width=7)
    draw.ellipse([cx - 16, cy - 16, cx - 2, cy - 2], fill=EMPTY_INK + (77,))

    font = _font(12)
    left, top, right, bottom = draw.textbbox((0, 0), EMPTY_CAPTION, font=font)
    draw.text((cx - (right - left) // 2, cy + 8), EMPTY_CAPTION, font=font, fill=EMPTY_INK + (153,))
    return Image.alpha_composite(canvas, overlay).convert("RGB")


def render_doodle(image: Image.Image, partner_name: str, size: Tuple[int, int], padding: int) -> Image.Image:
    canvas = ImageOps.fit(image.convert("RGBA"), size, Image.Resampling.LANCZOS)

    font = _font(11)
    label = f"from {partner_name}"
    probe = ImageDraw.Draw(canvas)
    left, top, right, bottom = probe.textbbox((0, 0), label, font=font)
    text_w, text_h = right - left, bottom - top
    pill_w, pill_h = text_w + 16, text_h + 8
    x0 = (size[0] - pill_w) // 2
    y0 = size[1] - padding - pill_h

    pill = Image.new("RGBA", size, (0, 0, 0, 0))
    ImageDraw.Draw(pill).rounded_rectangle(
        [x0, y0, x0 + pill_w, y0 + pill_h], radius=pill_h // 2, fill=(255, 255, 255, 110)
    )
    canvas = Image.alpha_composite(canvas, pill)

    text_x, text_y = x0 + 8 - left, y0 + 4 - top
    shadow = Image.new("RGBA", size, (0, 0, 0, 0))
    ImageDraw.Draw(shadow).text((text_x, text_y + 1), label, font=font, fill=(0, 0, 0, 178))
    canvas = Image.alpha_composite(canvas, shadow.filter(ImageFilter.GaussianBlur(1.5)))
    ImageDraw.Draw(canvas).text((text_x, text_y), label, font=font, fill=(255, 255, 255, 255))
    return canvas.convert("RGB")


def render_entry(entry: DoodleEntry, family: str = "small") -> Image.Image:
    size, padding = _family(family)
    if entry.doodle_image_data is None:
        return render_empty(size)
    try:
        image = Image.open(io.BytesIO(entry.doodle_image_data))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        logger.warning("Widget: cached image data is corrupted (%s), showing empty state", e)
        return render_empty(size)
    return render_doodle(image, entry.partner_name, size, padding)


def render_entry_png(entry: DoodleEntry, family: str = "small") -> bytes:
    buf = io.BytesIO()
    render_entry(entry, family).save(buf, format="PNG")
    return buf.getvalue()
