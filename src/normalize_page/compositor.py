from __future__ import annotations

import logging
import math
from pathlib import Path

from PIL import Image

from contracts.pages import PixelBox

from .contracts import NormalizeConfig
from .errors import ComputationError, EncodeError
from .raster import to_8bit

logger = logging.getLogger(__name__)


def scale_box_to_source(box: PixelBox, *, scale: float, width: int, height: int) -> PixelBox:
    """
    Map an inclusive preview box onto the source raster and clamp to its extents.

    Preview pixel i covers source pixels [i / scale, (i + 1) / scale).
    """

    if scale <= 0:
        raise ComputationError(f"Invalid preview scale {scale}")
    if scale >= 1.0:
        mapped = box
    else:
        mapped = PixelBox(
            x0=int(math.floor(box.x0 / scale)),
            y0=int(math.floor(box.y0 / scale)),
            x1=int(math.ceil((box.x1 + 1) / scale)) - 1,
            y1=int(math.ceil((box.y1 + 1) / scale)) - 1,
        )
    clamped = PixelBox(
        x0=max(0, min(width - 1, mapped.x0)),
        y0=max(0, min(height - 1, mapped.y0)),
        x1=max(0, min(width - 1, mapped.x1)),
        y1=max(0, min(height - 1, mapped.y1)),
    )
    if clamped.x1 < clamped.x0 or clamped.y1 < clamped.y0:
        raise ComputationError(f"Box {box.to_list()} maps to an empty source region")
    return clamped


def _output_mode(image: Image.Image) -> str:
    if image.mode in ("1", "L"):
        return "L"
    if image.mode in ("LA", "RGBA", "PA") or (
        image.mode == "P" and "transparency" in image.info
    ):
        return "RGBA"
    return "RGB"


_WHITE = {"L": 255, "RGB": (255, 255, 255), "RGBA": (255, 255, 255, 255)}


def rotate_raster(image: Image.Image, angle: float) -> Image.Image:
    """
    Undo a skew of `angle` degrees on the full-resolution raster (white fill, same canvas).
    """

    image = to_8bit(image)
    mode = _output_mode(image)
    if image.mode != mode:
        image = image.convert(mode)
    if angle == 0.0:
        return image
    return image.rotate(
        -angle,
        resample=Image.Resampling.BICUBIC,
        expand=False,
        fillcolor=_WHITE[mode],
    )


def compose_output(
    *,
    image: Image.Image,
    crop_box: PixelBox,
    angle: float,
    dpi: float,
    out_file: Path,
    config: NormalizeConfig,
) -> Path:
    """
    Rotate, crop and write the normalized page as PNG with DPI metadata.
    """

    width, height = image.size
    if crop_box.area() <= 0:
        raise ComputationError(f"Crop box {crop_box.to_list()} has zero area")
    if crop_box.x0 < 0 or crop_box.y0 < 0 or crop_box.x1 >= width or crop_box.y1 >= height:
        raise ComputationError(
            f"Crop box {crop_box.to_list()} exceeds raster extents {width}x{height}"
        )

    rotated = rotate_raster(image, angle)
    # PIL crop boxes are exclusive on the right/bottom edge.
    cropped = rotated.crop((crop_box.x0, crop_box.y0, crop_box.x1 + 1, crop_box.y1 + 1))

    try:
        out_file.parent.mkdir(parents=True, exist_ok=True)
        cropped.save(
            out_file,
            format="PNG",
            dpi=(dpi, dpi),
            compress_level=config.png_compress_level,
        )
    except OSError as e:
        raise EncodeError(f"Failed to write normalized raster {out_file.name}: {e}") from e

    logger.debug(
        "wrote %s crop=%s size=%dx%d dpi=%.2f",
        out_file.name,
        crop_box.to_list(),
        cropped.size[0],
        cropped.size[1],
        dpi,
    )
    return out_file
