from __future__ import annotations

import logging

import numpy as np

from .contracts import NormalizeConfig, PreviewRaster, SkewEstimate
from .gradients import sobel

logger = logging.getLogger(__name__)

HISTOGRAM_BUCKETS = 181  # -90..+90 degrees, one bucket per degree


def angle_to_bucket(angle: np.ndarray) -> np.ndarray:
    """
    Fold gradient angles into [-90, 90] and map them to 0..180 bucket indices.

    Rounding is half-up so bucket boundaries do not depend on numpy's
    round-half-to-even.
    """

    a = np.asarray(angle, dtype=np.float64)
    a = np.where(a > 90.0, a - 180.0, a)
    a = np.where(a < -90.0, a + 180.0, a)
    return np.clip(np.floor(a + 90.0 + 0.5), 0, HISTOGRAM_BUCKETS - 1).astype(np.int64)


def gradient_histogram(preview: PreviewRaster, *, noise_floor: float = 10.0) -> np.ndarray:
    """
    Magnitude-weighted histogram of gradient orientation (181 buckets).
    """

    magnitude, angle = sobel(preview.pixels)
    keep = magnitude >= noise_floor
    if not np.any(keep):
        return np.zeros(HISTOGRAM_BUCKETS, dtype=np.float64)
    buckets = angle_to_bucket(angle[keep])
    return np.bincount(buckets, weights=magnitude[keep], minlength=HISTOGRAM_BUCKETS).astype(
        np.float64
    )


def _fold_to_axis(angle: float) -> float:
    # Orientation deviation from the nearest image axis, in [-45, 45].
    return angle - 90.0 * float(np.floor(angle / 90.0 + 0.5))


def estimate_skew(preview: PreviewRaster, config: NormalizeConfig) -> SkewEstimate:
    """
    Dominant content rotation from the gradient-orientation histogram.

    The peak bucket is refined with a magnitude-weighted mean over
    +/- `skew_window` buckets, then reduced to its deviation from the nearest
    axis (text baselines and rules peak near +/-90, margins and columns near 0)
    and clamped to +/- `max_skew_degrees`.
    """

    histogram = gradient_histogram(preview, noise_floor=config.gradient_noise_floor)

    # -90 and +90 are the same orientation; merge them so the window can wrap.
    orientation = histogram[: HISTOGRAM_BUCKETS - 1].copy()
    orientation[0] += histogram[HISTOGRAM_BUCKETS - 1]

    best_bucket = int(np.argmax(orientation))
    best_val = float(orientation[best_bucket])
    if best_val <= 0.0:
        return SkewEstimate(angle=0.0, confidence=0.0)

    num = 0.0
    den = 0.0
    for offset in range(-config.skew_window, config.skew_window + 1):
        w = float(orientation[(best_bucket + offset) % orientation.size])
        num += offset * w
        den += w
    peak_angle = (best_bucket - 90) + (num / den if den > 0 else 0.0)

    # Reported angle is the peak's deviation from the nearest image axis, not the
    # raw peak; confidence is taken from the merged (wrapped) peak bucket.
    limit = config.max_skew_degrees
    angle = max(-limit, min(limit, _fold_to_axis(peak_angle)))
    if angle == 0.0:
        angle = 0.0  # normalise -0.0 for stable serialization
    confidence = min(1.0, best_val / max(1.0, preview.width * preview.height * 4.0))

    logger.debug(
        "skew peak bucket=%d value=%.1f angle=%.3f confidence=%.4f",
        best_bucket,
        best_val,
        angle,
        confidence,
    )
    return SkewEstimate(angle=float(angle), confidence=float(confidence))
