from __future__ import annotations

import numpy as np
from PIL import Image

from .contracts import BorderStats, NormalizeConfig, PreviewRaster
from .gradients import mean_std, sobel


def rotate_preview(preview: PreviewRaster, angle: float) -> PreviewRaster:
    """
    Undo an estimated skew of `angle` degrees on the preview.

    The canvas size is kept and uncovered corners are filled with white, so
    preview coordinates stay comparable with the unrotated frame.
    """

    if angle == 0.0:
        return preview
    img = Image.fromarray(preview.pixels)
    rotated = img.rotate(-angle, resample=Image.Resampling.BILINEAR, expand=False, fillcolor=255)
    return PreviewRaster(pixels=np.asarray(rotated, dtype=np.uint8).copy(), scale=preview.scale)


def border_band_px(preview: PreviewRaster, ratio: float) -> int:
    return max(1, int(round(min(preview.width, preview.height) * ratio)))


def compute_border_stats(preview: PreviewRaster, *, ratio: float = 0.04) -> BorderStats:
    """
    Intensity mean/std of a thin band around all four edges (the blank margin model).
    """

    p = preview.pixels
    h, w = p.shape
    band = border_band_px(preview, ratio)

    top = p[:band, :]
    bottom = p[max(h - band, band) :, :]
    left = p[band : h - band, :band]
    right = p[band : h - band, max(w - band, band) :]

    samples = np.concatenate([top.ravel(), bottom.ravel(), left.ravel(), right.ravel()])
    if samples.size == 0:
        return BorderStats(mean=255.0, std=0.0)
    mean, std = mean_std(samples)
    return BorderStats(mean=mean, std=std)


def intensity_threshold(stats: BorderStats, config: NormalizeConfig) -> float:
    """
    Foreground cut-off: pixels darker than this are treated as content.
    """

    return max(
        0.0,
        min(
            stats.mean - stats.std * config.intensity_std_factor,
            stats.mean - config.intensity_min_delta,
        ),
    )


def edge_threshold(preview: PreviewRaster, config: NormalizeConfig) -> float:
    """
    Gradient magnitude cut-off from magnitude statistics (every second interior pixel).
    """

    magnitude, _ = sobel(preview.pixels)
    mean, std = mean_std(magnitude[::2, ::2])
    return max(config.edge_threshold_floor, mean + std * config.edge_threshold_scale)
