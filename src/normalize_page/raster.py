from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from PIL import Image

from .contracts import NormalizeConfig, PreviewRaster
from .engines import DecodedRaster, PillowEngine, Pypdfium2Engine, RasterEngine
from .errors import DecodeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True, eq=False)
class PageRaster:
    decoded: DecodedRaster
    preview: PreviewRaster
    engine_id: str
    engine_version: str | None


def _get_engine(*, source_file: Path, config: NormalizeConfig) -> RasterEngine:
    if source_file.suffix.lower() == ".pdf":
        return Pypdfium2Engine(render_dpi=config.pdf_render_dpi)
    return PillowEngine()


HIGH_DEPTH_MODES = ("I;16", "I;16L", "I;16B", "I;16N", "I", "F")


def to_8bit(image: Image.Image) -> Image.Image:
    """
    Rescale a high bit-depth grayscale raster (16-bit, 32-bit int, float) to "L".

    Pillow's own `convert("L")` clips these values at 255 instead of scaling
    them, which turns a 16-bit scan into a white page. `I;16*` is always
    treated as 0..65535. For `I` and `F` the range is taken from the data:
    values up to 255 (or up to 1.0 for `F`) are kept as 8-bit, up to 65535
    are treated as 16-bit, anything larger is scaled by its maximum.
    """

    if image.mode not in HIGH_DEPTH_MODES:
        return image

    arr = np.asarray(image).astype(np.float64)
    peak = float(arr.max()) if arr.size else 0.0
    if image.mode.startswith("I;16") or 255.0 < peak <= 65535.0:
        scaled = arr / 257.0
    elif image.mode == "F" and 0.0 < peak <= 1.0:
        scaled = arr * 255.0
    elif peak > 65535.0:
        scaled = arr * (255.0 / peak)
    else:
        scaled = arr
    out = np.clip(np.floor(scaled + 0.5), 0, 255).astype(np.uint8)
    return Image.fromarray(out)


def to_grayscale(image: Image.Image) -> Image.Image:
    image = to_8bit(image)
    if image.mode == "L":
        return image
    if image.mode in ("1", "P", "LA", "PA", "RGBA", "CMYK", "YCbCr", "LAB", "HSV"):
        # Drop alpha/palette first so every mode goes through the same luma weights.
        image = image.convert("RGB")
    return image.convert("L")


def build_preview(image: Image.Image, *, max_preview_dim: int) -> PreviewRaster:
    """
    Grayscale analysis preview whose longer side does not exceed `max_preview_dim`.
    """

    width, height = image.size
    if width <= 0 or height <= 0:
        raise DecodeError("Cannot build a preview from a zero-dimension raster")

    scale = min(1.0, max_preview_dim / max(width, height, 1))
    gray = to_grayscale(image)
    if scale < 1.0:
        size = (max(1, int(round(width * scale))), max(1, int(round(height * scale))))
        gray = gray.resize(size, Image.Resampling.LANCZOS)

    pixels = np.asarray(gray, dtype=np.uint8).copy()
    return PreviewRaster(pixels=pixels, scale=float(scale))


def load_page_raster(*, source_file: Path, config: NormalizeConfig) -> PageRaster:
    engine = _get_engine(source_file=source_file, config=config)
    decoded = engine.decode(source_file=source_file)
    preview = build_preview(decoded.image, max_preview_dim=config.max_preview_dim)
    logger.debug(
        "decoded %s via %s: %dx%d density=%s preview=%dx%d scale=%.4f",
        source_file.name,
        engine.backend_id(),
        decoded.width_px,
        decoded.height_px,
        decoded.density,
        preview.width,
        preview.height,
        preview.scale,
    )
    return PageRaster(
        decoded=decoded,
        preview=preview,
        engine_id=engine.backend_id(),
        engine_version=engine.backend_version(),
    )
