"""Stamp coordinates and time onto photos."""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from PIL import Image, ImageDraw, ImageFont, ImageOps

from teleweb_bot.domain.geo import GeoPoint
from teleweb_bot.services.geo import format_decimal, format_dms


@dataclass(frozen=True)
class GeotagStamp:
    """What gets written onto a photo."""

    point: GeoPoint
    taken_at: datetime
    label: str | None = None

    def lines(self) -> list[str]:
        rows = [
            f"Decimal: {format_decimal(self.point)}",
            f"DMS: {format_dms(self.point)}",
            f"Time: {self.taken_at.strftime('%Y-%m-%d %H:%M')}",
        ]
        if self.label:
            rows.insert(0, self.label)
        return rows


@dataclass
class GeotagRenderer:
    """Draw a caption bar along the bottom edge of an image."""

    jpeg_quality: int = 90

    def render(self, source: Path, target: Path, stamp: GeotagStamp) -> Path:
        with Image.open(source) as opened:
            image = ImageOps.exif_transpose(opened).convert("RGB")
        width, height = image.size
        font_size = max(14, width // 40)
        font = ImageFont.load_default(size=font_size)
        padding = font_size // 2
        line_height = font_size + padding // 2
        lines = stamp.lines()
        bar_height = line_height * len(lines) + padding * 2

        overlay = Image.new("RGBA", image.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(overlay)
        draw.rectangle(
            [(0, height - bar_height), (width, height)], fill=(0, 0, 0, 150)
        )
        y = height - bar_height + padding
        for line in lines:
            draw.text((padding, y), line, font=font, fill=(255, 255, 255, 255))
            y += line_height

        stamped = Image.alpha_composite(image.convert("RGBA"), overlay).convert("RGB")
        target.parent.mkdir(parents=True, exist_ok=True)
        stamped.save(target, format="JPEG", quality=self.jpeg_quality)
        return target
