"""Frame composer for the e-ink arrival board."""

from __future__ import annotations

from datetime import datetime, timezone

from PIL import Image, ImageDraw, ImageFont

from transit_board.logic.layout import AgencyRow, Layout, Row, TextRow

COLOR_BLACK = 0
COLOR_BUBBLE = 178
COLOR_BAND = 204
COLOR_WHITE = 255

FONT_SIZE = 24
ERROR_TITLE_SIZE = 36
ERROR_TEXT_SIZE = 12

ROW_GAP = 28
LINE_PITCH = 48
LINE_INSET = 20
SEPARATOR_INSET = 40
HEAVY_WIDTH = 2
TEXT_BAND_HEIGHT = 40
FOOTER_HEIGHT = 40
BUBBLE_RADIUS = 10
BUBBLE_PADDING = 4

FontType = ImageFont.FreeTypeFont | ImageFont.ImageFont


def load_font(size: int, font_path: str | None = None) -> FontType:
    """Load a TrueType font, or Pillow's bundled default at the given size."""
    if font_path:
        return ImageFont.truetype(font_path, size)
    return ImageFont.load_default(size=size)


def _text_height(draw: ImageDraw.ImageDraw, text: str, font: FontType) -> int:
    bbox = draw.textbbox((0, 0), text, font=font)
    return bbox[3] - bbox[1]


def _draw_text_in_bubble(draw: ImageDraw.ImageDraw, text: str, x: int, y: int, font: FontType) -> int:
    bbox = draw.textbbox((x, y), text, font=font)
    draw.rounded_rectangle(
        (
            bbox[0] - BUBBLE_PADDING,
            bbox[1] - BUBBLE_PADDING,
            bbox[2] + BUBBLE_PADDING,
            bbox[3] + BUBBLE_PADDING,
        ),
        radius=BUBBLE_RADIUS,
        fill=COLOR_BUBBLE,
    )
    draw.text((x, y), text, font=font, fill=COLOR_BLACK)
    return bbox[2] - bbox[0] + 2 * BUBBLE_PADDING


def _draw_agency_row(draw: ImageDraw.ImageDraw, row: AgencyRow, x1: int, x2: int, y: int, font: FontType) -> int:
    y += 4
    for idx, line in enumerate(row.lines):
        x = x1 + LINE_INSET
        bubble_width = _draw_text_in_bubble(draw, line.id, x, y, font)
        draw.text((x + bubble_width + 6, y), line.destination, font=font, fill=COLOR_BLACK)

        time_text = f"{line.departure_minutes_str()} min"
        time_width = draw.textlength(time_text, font=font)
        draw.text((x2 - LINE_INSET - time_width, y), time_text, font=font, fill=COLOR_BLACK)

        if idx < len(row.lines) - 1:
            separator_y = y + LINE_PITCH - 8
            draw.line((x1 + SEPARATOR_INSET, separator_y, x2 - SEPARATOR_INSET, separator_y), fill=COLOR_BUBBLE)
            y += LINE_PITCH
        else:
            y += FONT_SIZE + 15
    return y


def _draw_text_row(draw: ImageDraw.ImageDraw, row: TextRow, x1: int, x2: int, y: int, font: FontType) -> int:
    draw.rectangle((x1, y, x2, y + TEXT_BAND_HEIGHT), fill=COLOR_BAND)
    text_width = draw.textlength(row.text, font=font)
    text_y = y + (TEXT_BAND_HEIGHT - _text_height(draw, row.text, font)) // 2
    draw.text(((x1 + x2 - text_width) / 2, text_y), row.text, font=font, fill=COLOR_BLACK)
    return y + TEXT_BAND_HEIGHT + 12


def _draw_column(draw: ImageDraw.ImageDraw, rows: list[Row], x1: int, x2: int, font: FontType) -> None:
    y = 0
    for row in rows:
        if y > 0:
            draw.line((x1, y, x2, y), fill=COLOR_BLACK, width=HEAVY_WIDTH)
            y += ROW_GAP
        if isinstance(row, AgencyRow):
            y = _draw_agency_row(draw, row, x1, x2, y, font)
        else:
            y = _draw_text_row(draw, row, x1, x2, y, font)


def _footer_text(layout: Layout, now: datetime) -> str:
    text = now.astimezone().strftime("%a %b %d - %H:%M")
    oldest = layout.oldest_live_time()
    if oldest is not None:
        age_minutes = max(0, int((now - oldest).total_seconds() // 60))
        text = f"{text}  (data {age_minutes}m old)"
    return text


def _draw_footer(draw: ImageDraw.ImageDraw, text: str, width: int, height: int, font: FontType) -> None:
    top = height - FOOTER_HEIGHT
    draw.rectangle((0, top, width, height), fill=COLOR_BAND)
    draw.line((0, top, width, top), fill=COLOR_BLACK, width=HEAVY_WIDTH)
    text_width = draw.textlength(text, font=font)
    text_y = top + (FOOTER_HEIGHT - _text_height(draw, text, font)) // 2
    draw.text(((width - text_width) / 2, text_y), text, font=font, fill=COLOR_BLACK)


def _finish(image: Image.Image, rotate: bool) -> Image.Image:
    # Landscape frames are turned clockwise for a portrait-mounted panel.
    return image.rotate(-90, expand=True) if rotate else image


def compose_layout(
    layout: Layout,
    width: int,
    height: int,
    now: datetime | None = None,
    rotate: bool = True,
    font_path: str | None = None,
) -> Image.Image:
    """Compose a grayscale frame with two columns of arrivals and a footer."""
    if width <= 0 or height <= FOOTER_HEIGHT:
        raise ValueError(f"Frame must be wider than 0 and taller than {FOOTER_HEIGHT}, got {width}x{height}.")

    now = now or datetime.now(timezone.utc)
    font = load_font(FONT_SIZE, font_path)
    image = Image.new("L", (width, height), COLOR_WHITE)
    draw = ImageDraw.Draw(image)

    halfway = width // 2
    _draw_column(draw, layout.left, 0, halfway, font)
    _draw_column(draw, layout.right, halfway, width, font)
    draw.line((halfway, 0, halfway, height), fill=COLOR_BLACK, width=HEAVY_WIDTH)
    _draw_footer(draw, _footer_text(layout, now), width, height, font)

    return _finish(image, rotate)


def error_chain(error: BaseException | str) -> list[str]:
    """Messages for an exception and each exception it was raised from."""
    if isinstance(error, str):
        return [error]
    messages: list[str] = []
    current: BaseException | None = error
    while current is not None:
        messages.append(str(current) or type(current).__name__)
        current = current.__cause__
    return messages


def compose_error(
    error: BaseException | str,
    width: int,
    height: int,
    rotate: bool = True,
    font_path: str | None = None,
) -> Image.Image:
    """Compose a frame that reports why the board could not be drawn."""
    image = Image.new("L", (width, height), COLOR_WHITE)
    draw = ImageDraw.Draw(image)
    draw.text((100, 200), "ERROR", font=load_font(ERROR_TITLE_SIZE, font_path), fill=COLOR_BLACK)

    small_font = load_font(ERROR_TEXT_SIZE, font_path)
    y = 250
    for message in error_chain(error):
        draw.text((100, y), message, font=small_font, fill=COLOR_BLACK)
        y += 20

    return _finish(image, rotate)


__all__ = ["compose_error", "compose_layout", "error_chain", "load_font"]
