from __future__ import annotations

import numpy as np


def sobel(pixels: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    3x3 Sobel gradient over the interior pixels of a grayscale buffer.

    Kernels (row-major):
      gx = [-1 0 1; -2 0 2; -1 0 1]
      gy = [ 1 2 1;  0 0 0; -1 -2 -1]

    gy is positive when intensity increases upward, so angles follow the usual
    counter-clockwise convention. Returns (magnitude, angle_deg), each shaped
    (height - 2, width - 2); element [y, x] belongs to pixel (x + 1, y + 1).
    """

    p = np.asarray(pixels, dtype=np.float64)
    if p.ndim != 2 or p.shape[0] < 3 or p.shape[1] < 3:
        empty = np.zeros((max(0, p.shape[0] - 2), max(0, p.shape[1] - 2)), dtype=np.float64)
        return empty, empty.copy()

    top_l, top_c, top_r = p[:-2, :-2], p[:-2, 1:-1], p[:-2, 2:]
    mid_l, mid_r = p[1:-1, :-2], p[1:-1, 2:]
    bot_l, bot_c, bot_r = p[2:, :-2], p[2:, 1:-1], p[2:, 2:]

    gx = (top_r + 2.0 * mid_r + bot_r) - (top_l + 2.0 * mid_l + bot_l)
    gy = (top_l + 2.0 * top_c + top_r) - (bot_l + 2.0 * bot_c + bot_r)

    magnitude = np.hypot(gx, gy)
    angle = np.degrees(np.arctan2(gy, gx))
    return magnitude, angle


def mean_std(values: np.ndarray) -> tuple[float, float]:
    """
    Population mean and standard deviation; (0, 0) for an empty sample.
    """

    v = np.asarray(values, dtype=np.float64)
    if v.size == 0:
        return 0.0, 0.0
    mean = float(v.mean())
    variance = max(0.0, float((v * v).mean()) - mean * mean)
    return mean, float(np.sqrt(variance))
