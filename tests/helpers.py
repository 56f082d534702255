"""Test helpers shared across test modules."""

from typing import List
from PIL import Image, ImageDraw


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def split_bytes(data: bytes, parts: int) -> List[bytes]:
    """Split data into parts non-empty pieces (last piece takes the remainder)."""
    size = max(1, len(data) // parts)
    pieces = [data[i * size:(i + 1) * size] for i in range(parts - 1)]
    pieces.append(data[(parts - 1) * size:])
    return pieces


def draw_receipt(size=(400, 800), background=255, ink=0, horizontal=True) -> Image.Image:
    """Draw a synthetic receipt: dark text-like bars on a light page.

    horizontal=False draws the bars vertically, as if the photo were
    taken sideways.
    """
    image = Image.new('L', size, color=background)
    draw = ImageDraw.Draw(image)
    width, height = size
    if horizontal:
        for y in range(20, height - 20, 24):
            draw.rectangle([20, y, width - 20, y + 8], fill=ink)
    else:
        for x in range(20, width - 20, 24):
            draw.rectangle([x, 20, x + 8, height - 20], fill=ink)
    return image
