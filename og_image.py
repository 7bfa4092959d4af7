"""Share-card image for SiteCheck reports.

A 1200x630 PNG showing the project name, location, the overall
sustainability score out of 10 in its band color, the rating, and one
bar per category scaled to that category's weighted maximum.
"""

import io
import logging
from typing import Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

from scoring_config import SCORING_MODEL

logger = logging.getLogger(__name__)

BAND_COLORS = {band.css_class: band.color for band in SCORING_MODEL.score_bands}

BRAND_PRIMARY = (15, 52, 96)
SURFACE_WHITE = (255, 255, 255)
TRACK_GRAY = (229, 231, 235)
TEXT_MUTED = (71, 85, 105)
TEXT_FAINT = (136, 136, 136)

WIDTH = 1200
HEIGHT = 630

_FONT_BOLD = "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"
_FONT_REGULAR = "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"

# (label, percentage of category max)
CategoryBar = Tuple[str, float]


def _load_font(path: str, size: int) -> ImageFont.FreeTypeFont:
    try:
        return ImageFont.truetype(path, size)
    except OSError:
        logger.warning("Font %s not found, using default bitmap font", path)
        return ImageFont.load_default()


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit - 3] + "..."


def _draw_bars(draw: ImageDraw.ImageDraw, bars: Sequence[CategoryBar], color, top: int):
    font = _load_font(_FONT_REGULAR, 20)
    x0, x1 = 640, WIDTH - 60
    for i, (label, pct) in enumerate(bars):
        y = top + i * 62
        draw.text((x0, y), _truncate(label, 40), fill=TEXT_MUTED, font=font)
        draw.rectangle([x0, y + 30, x1, y + 44], fill=TRACK_GRAY)
        filled = x0 + int((x1 - x0) * max(0.0, min(pct, 100.0)) / 100)
        if filled > x0:
            draw.rectangle([x0, y + 30, filled, y + 44], fill=color)


def generate_og_image(
    project_name: str,
    location: str,
    score: float,
    rating: str,
    band_css_class: str,
    categories: Sequence[CategoryBar] = (),
) -> Optional[bytes]:
    """Return PNG bytes for the share card, or None on failure."""
    try:
        band_color = BAND_COLORS.get(band_css_class, BRAND_PRIMARY)

        img = Image.new("RGB", (WIDTH, HEIGHT), SURFACE_WHITE)
        draw = ImageDraw.Draw(img)
        draw.rectangle([0, 0, 10, HEIGHT], fill=band_color)

        draw.text((60, 40), "SiteCheck", fill=BRAND_PRIMARY, font=_load_font(_FONT_BOLD, 42))
        draw.text((60, 100), _truncate(project_name, 40), fill=BRAND_PRIMARY, font=_load_font(_FONT_BOLD, 30))
        if location:
            draw.text((60, 145), _truncate(location, 48), fill=TEXT_MUTED, font=_load_font(_FONT_REGULAR, 24))

        font_score = _load_font(_FONT_BOLD, 130)
        score_text = f"{score:.1f}"
        score_bbox = draw.textbbox((0, 0), score_text, font=font_score)
        score_w = score_bbox[2] - score_bbox[0]
        draw.text((60, 210), score_text, fill=band_color, font=font_score)
        draw.text((60 + score_w + 12, 300), "/10", fill=TEXT_FAINT, font=_load_font(_FONT_REGULAR, 48))
        draw.text((60, 400), rating, fill=TEXT_MUTED, font=_load_font(_FONT_REGULAR, 32))

        if categories:
            _draw_bars(draw, categories, band_color, top=110)

        draw.text((60, HEIGHT - 60), "Sustainability & Feasibility Assessment",
                  fill=TEXT_FAINT, font=_load_font(_FONT_REGULAR, 22))
        draw.rectangle([0, HEIGHT - 6, WIDTH, HEIGHT], fill=band_color)

        buf = io.BytesIO()
        img.save(buf, format="PNG", optimize=True)
        return buf.getvalue()

    except Exception:
        logger.exception("Failed to generate share image")
        return None
