from __future__ import annotations

import logging

from .contracts import NormalizeConfig, PreviewRaster, ShadowDetection, ShadowSide

logger = logging.getLogger(__name__)


def shadow_strip_px(preview: PreviewRaster, ratio: float) -> int:
    return min(preview.width, max(4, int(round(preview.width * ratio))))


def detect_shadows(preview: PreviewRaster, config: NormalizeConfig) -> ShadowDetection:
    """
    Spine/edge shadow from left and right margin strips.

    A strip is a shadow when it is darker than the page's global mean by more
    than max(shadow_min_delta, shadow_delta_ratio * mean). Only left/right
    shadows are detected.
    """

    p = preview.pixels
    strip = shadow_strip_px(preview, config.shadow_strip_ratio)

    global_mean = float(p.mean()) if p.size else 0.0
    left_mean = float(p[:, :strip].mean()) if strip > 0 else global_mean
    right_mean = float(p[:, p.shape[1] - strip :].mean()) if strip > 0 else global_mean

    left_delta = global_mean - left_mean
    right_delta = global_mean - right_mean
    darkness = max(left_delta, right_delta)
    is_left = left_delta > right_delta
    delta = left_delta if is_left else right_delta

    present = delta > max(config.shadow_min_delta, global_mean * config.shadow_delta_ratio)
    confidence = max(0.0, min(1.0, delta / max(1.0, global_mean)))

    side = ShadowSide.NONE
    if present:
        side = ShadowSide.LEFT if is_left else ShadowSide.RIGHT
        logger.debug(
            "shadow on %s: delta=%.2f global_mean=%.2f confidence=%.3f",
            side.value,
            delta,
            global_mean,
            confidence,
        )

    return ShadowDetection(
        present=present,
        side=side,
        width_px=strip if present else 0,
        confidence=float(confidence),
        darkness=float(darkness),
    )
