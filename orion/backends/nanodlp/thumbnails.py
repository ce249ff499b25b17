"""Generated placeholder previews for plates without a usable image."""
from __future__ import annotations

import io
from functools import lru_cache

from PIL import Image, ImageDraw

CELL = 16
BACKGROUND = (32, 36, 43)
ACCENT = (63, 74, 88)
HIGHLIGHT = (90, 104, 122)
_BANDS = (BACKGROUND, ACCENT, HIGHLIGHT)


@lru_cache(maxsize=8)
def generate_placeholder(width: int, height: int) -> bytes:
    """Return PNG bytes of a diagonal-band placeholder of exactly ``width`` x ``height``.

    Deterministic for a given size, which lets callers recognise a
    placeholder by byte equality.
    """
    width = max(int(width), 1)
    height = max(int(height), 1)
    image = Image.new("RGB", (width, height), BACKGROUND)
    draw = ImageDraw.Draw(image)
    for cell_y in range(0, height, CELL):
        for cell_x in range(0, width, CELL):
            band = ((cell_x // CELL) + (cell_y // CELL)) % 3
            if band == 0:
                continue
            draw.rectangle(
                (cell_x, cell_y, min(cell_x + CELL, width) - 1, min(cell_y + CELL, height) - 1),
                fill=_BANDS[band],
            )

    left, right = width // 4, (width * 3) // 4
    top, bottom = height // 4, (height * 3) // 4
    if right > left:
        draw.line((left, top, right - 1, top), fill=HIGHLIGHT)
        draw.line((left, bottom, right - 1, bottom), fill=HIGHLIGHT)
    if bottom > top:
        draw.line((left, top, left, bottom - 1), fill=HIGHLIGHT)
        draw.line((right, top, right, bottom - 1), fill=HIGHLIGHT)

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def is_placeholder(data: bytes | None, width: int, height: int) -> bool:
    if not data:
        return False
    return data == generate_placeholder(width, height)
