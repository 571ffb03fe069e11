"""
Content bounds estimation as an ordered chain of named stages.

Each stage takes the previous `BoundsRecord` and the shared, read-only
`BoundsContext` and returns a new record. The chain is:

  intensity_mask -> edge_mask -> union -> shadow_trim -> clamp -> expand

All boxes are inclusive preview-pixel coordinates. `run_bounds_stages` returns
the final record plus the per-stage trace so every stage can be checked alone.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Callable

import numpy as np

from contracts.pages import PixelBox

from .contracts import NormalizeConfig, PreviewRaster, ShadowDetection, ShadowSide
from .errors import ComputationError
from .gradients import sobel

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True, eq=False)
class BoundsContext:
    preview: PreviewRaster  # skew-corrected preview
    config: NormalizeConfig
    intensity_threshold: float
    edge_threshold: float
    shadow: ShadowDetection


@dataclass(frozen=True, slots=True)
class BoundsRecord:
    stage: str = "start"
    box: PixelBox | None = None
    intensity_box: PixelBox | None = None
    edge_box: PixelBox | None = None
    intensity_coverage: float = 0.0
    mask_box: PixelBox | None = None  # pre-padding box, set by `clamp`
    padding_px: int = 0
    mask_coverage: float = 0.0
    trimmed_px: int = 0
    flags: tuple[str, ...] = field(default_factory=tuple)


BoundsStage = Callable[[BoundsRecord, BoundsContext], BoundsRecord]


def _scan_limits(counts: np.ndarray, limit: int) -> tuple[int, int] | None:
    """
    First and last index whose count reaches `limit`, scanning inward from both ends.
    """

    hits = np.flatnonzero(counts >= limit)
    if hits.size == 0:
        return None
    return int(hits[0]), int(hits[-1])


def projection_box(mask: np.ndarray, *, line_fraction: float) -> PixelBox | None:
    """
    Box enclosing rows/columns with enough set pixels.

    A row is in bounds once its count reaches max(2, floor(width * fraction));
    columns likewise against the height. None when nothing qualifies.
    """

    height, width = mask.shape
    row_counts = mask.sum(axis=1)
    col_counts = mask.sum(axis=0)
    row_limit = max(2, int(np.floor(width * line_fraction)))
    col_limit = max(2, int(np.floor(height * line_fraction)))

    rows = _scan_limits(row_counts, row_limit)
    cols = _scan_limits(col_counts, col_limit)
    if rows is None or cols is None:
        return None
    return PixelBox(x0=cols[0], y0=rows[0], x1=cols[1], y1=rows[1])


def intensity_mask_stage(record: BoundsRecord, ctx: BoundsContext) -> BoundsRecord:
    p = ctx.preview.pixels
    mask = p < ctx.intensity_threshold
    box = projection_box(mask, line_fraction=ctx.config.mask_line_fraction)
    coverage = box.area() / float(p.size) if box is not None and p.size else 0.0
    return replace(
        record,
        stage="intensity_mask",
        intensity_box=box,
        intensity_coverage=min(1.0, coverage),
    )


def edge_mask_stage(record: BoundsRecord, ctx: BoundsContext) -> BoundsRecord:
    p = ctx.preview.pixels
    magnitude, _ = sobel(p)
    mask = np.zeros(p.shape, dtype=bool)
    if magnitude.size:
        mask[1:-1, 1:-1] = magnitude > ctx.edge_threshold
    box = projection_box(mask, line_fraction=ctx.config.edge_line_fraction)
    return replace(record, stage="edge_mask", edge_box=box)


def union_stage(record: BoundsRecord, ctx: BoundsContext) -> BoundsRecord:
    candidates = [b for b in (record.intensity_box, record.edge_box) if b is not None]
    if candidates:
        box = candidates[0]
        for other in candidates[1:]:
            box = box.union(other)
        return replace(record, stage="union", box=box)

    # No detectable content: keep the whole frame, inset so padding restores it.
    w, h = ctx.preview.width, ctx.preview.height
    pad = ctx.config.padding_for(width=w, height=h)
    box = PixelBox(
        x0=min(pad, (w - 1) // 2),
        y0=min(pad, (h - 1) // 2),
        x1=max(w - 1 - pad, w // 2),
        y1=max(h - 1 - pad, h // 2),
    )
    return replace(record, stage="union", box=box, flags=record.flags + ("no_content",))


def shadow_trim_stage(record: BoundsRecord, ctx: BoundsContext) -> BoundsRecord:
    shadow = ctx.shadow
    box = record.box
    if (
        box is None
        or not shadow.present
        or shadow.confidence <= ctx.config.shadow_trim_confidence
        or shadow.side not in (ShadowSide.LEFT, ShadowSide.RIGHT)
    ):
        return replace(record, stage="shadow_trim")

    trim = int(round(shadow.width_px * ctx.config.shadow_trim_fraction))
    if shadow.side == ShadowSide.LEFT:
        box = replace(box, x0=box.x0 + trim)
    else:
        box = replace(box, x1=box.x1 - trim)
    return replace(
        record,
        stage="shadow_trim",
        box=box,
        trimmed_px=trim,
        flags=record.flags + (f"shadow_trim:{shadow.side.value}",),
    )


def clamp_box(box: PixelBox, *, width: int, height: int) -> PixelBox:
    """
    Clamp into [0, width-1] x [0, height-1], keeping at least a 2x2 box.
    """

    if width < 2 or height < 2:
        raise ComputationError(f"Frame {width}x{height} is too small to hold a bounding box")
    left = max(0, min(width - 2, box.x0))
    top = max(0, min(height - 2, box.y0))
    right = max(left + 1, min(width - 1, box.x1))
    bottom = max(top + 1, min(height - 1, box.y1))
    return PixelBox(x0=left, y0=top, x1=right, y1=bottom)


def clamp_stage(record: BoundsRecord, ctx: BoundsContext) -> BoundsRecord:
    if record.box is None:
        raise ComputationError("No bounding box reached the clamp stage")
    box = clamp_box(record.box, width=ctx.preview.width, height=ctx.preview.height)
    return replace(record, stage="clamp", box=box, mask_box=box)


def expand_box(box: PixelBox, padding: int, *, width: int, height: int) -> PixelBox:
    return PixelBox(
        x0=max(0, box.x0 - padding),
        y0=max(0, box.y0 - padding),
        x1=min(width - 1, box.x1 + padding),
        y1=min(height - 1, box.y1 + padding),
    )


def expand_stage(record: BoundsRecord, ctx: BoundsContext) -> BoundsRecord:
    if record.box is None:
        raise ComputationError("No bounding box reached the expand stage")
    w, h = ctx.preview.width, ctx.preview.height
    pad = ctx.config.padding_for(width=w, height=h)
    box = expand_box(record.box, pad, width=w, height=h)
    if box.area() <= 0:
        raise ComputationError(f"Expanded box {box.to_list()} has zero area")
    coverage = min(1.0, box.area() / float(w * h))
    return replace(record, stage="expand", box=box, padding_px=pad, mask_coverage=coverage)


DEFAULT_STAGES: tuple[tuple[str, BoundsStage], ...] = (
    ("intensity_mask", intensity_mask_stage),
    ("edge_mask", edge_mask_stage),
    ("union", union_stage),
    ("shadow_trim", shadow_trim_stage),
    ("clamp", clamp_stage),
    ("expand", expand_stage),
)


def run_bounds_stages(
    ctx: BoundsContext,
    stages: tuple[tuple[str, BoundsStage], ...] = DEFAULT_STAGES,
) -> tuple[BoundsRecord, list[BoundsRecord]]:
    record = BoundsRecord()
    trace: list[BoundsRecord] = []
    for name, stage in stages:
        record = stage(record, ctx)
        trace.append(record)
        logger.debug(
            "bounds stage %s: box=%s",
            name,
            None if record.box is None else record.box.to_list(),
        )
    return record, trace
