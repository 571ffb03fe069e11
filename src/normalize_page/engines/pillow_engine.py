from __future__ import annotations

from pathlib import Path

import PIL
from PIL import Image, UnidentifiedImageError

from ..errors import DecodeError
from .base import DecodedRaster, RasterEngine


def _density_from_info(info: dict) -> float | None:
    dpi = info.get("dpi")
    if not dpi:
        return None
    try:
        x = float(dpi[0]) if isinstance(dpi, (tuple, list)) else float(dpi)
    except (TypeError, ValueError):
        return None
    # PNG stores pixels per metre; 300 dpi reads back as 299.9994.
    return round(x, 2) if x > 0 else None


class PillowEngine(RasterEngine):
    def backend_id(self) -> str:
        return "pillow"

    def backend_version(self) -> str | None:
        return getattr(PIL, "__version__", None)

    def decode(self, *, source_file: Path) -> DecodedRaster:
        if not source_file.exists():
            raise DecodeError(f"Source raster not found: {source_file}")

        try:
            with Image.open(source_file) as img:
                img.load()
                image = img.copy()
                info = dict(img.info)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            raise DecodeError(f"Unreadable source raster {source_file.name}: {e}") from e

        width_px, height_px = image.size
        if width_px <= 0 or height_px <= 0:
            raise DecodeError(f"Source raster {source_file.name} has zero dimensions")

        return DecodedRaster(
            image=image,
            width_px=int(width_px),
            height_px=int(height_px),
            density=_density_from_info(info),
        )
