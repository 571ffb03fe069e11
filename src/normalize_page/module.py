from __future__ import annotations

import logging
from pathlib import Path

from contracts.pages import BoundsEstimate, PageSource

from .background import compute_border_stats, edge_threshold, intensity_threshold, rotate_preview
from .bounds import BoundsContext, run_bounds_stages
from .compositor import compose_output, scale_box_to_source
from .contracts import NormalizationResult, NormalizeConfig, PageStats
from .data_access import normalized_path_for
from .errors import ComputationError, MissingEstimateError, NormalizationError
from .physical_size import infer_physical_size, px_to_mm
from .raster import load_page_raster
from .shadow import detect_shadows
from .skew import estimate_skew

logger = logging.getLogger(__name__)


def normalize_page(
    *,
    page: PageSource,
    estimate: BoundsEstimate | None,
    config: NormalizeConfig,
    out_dir: Path,
    fallback_dpi: float = 300.0,
) -> NormalizationResult:
    """
    Normalize one page: physical size, deskew, content bounds, shadow, crop.

    Raises a NormalizationError subclass on failure; nothing is retried. The
    caller isolates failures from sibling pages.
    """

    if estimate is None:
        raise MissingEstimateError(f"No bounds estimate for page {page.page_id}", page_id=page.page_id)
    if estimate.page_id != page.page_id:
        raise MissingEstimateError(
            f"Bounds estimate belongs to {estimate.page_id!r}, not {page.page_id!r}",
            page_id=page.page_id,
        )

    try:
        raster = load_page_raster(source_file=Path(page.path), config=config)
    except NormalizationError as e:
        e.page_id = page.page_id
        raise

    decoded = raster.decoded
    density = decoded.density if decoded.density is not None else page.density
    physical = infer_physical_size(
        decoded.width_px,
        decoded.height_px,
        density,
        fallback_dpi=fallback_dpi,
        tolerance=config.size_match_tolerance,
    )

    skew = estimate_skew(raster.preview, config)
    rotated = rotate_preview(raster.preview, skew.angle)

    border = compute_border_stats(rotated, ratio=config.border_sample_ratio)
    shadow = detect_shadows(rotated, config)
    ctx = BoundsContext(
        preview=rotated,
        config=config,
        intensity_threshold=intensity_threshold(border, config),
        edge_threshold=edge_threshold(rotated, config),
        shadow=shadow,
    )

    try:
        bounds, _ = run_bounds_stages(ctx)
        if bounds.box is None or bounds.mask_box is None:
            raise ComputationError("Bounds stages produced no box")

        crop_box = scale_box_to_source(
            bounds.box, scale=rotated.scale, width=decoded.width_px, height=decoded.height_px
        )
        mask_box = scale_box_to_source(
            bounds.mask_box, scale=rotated.scale, width=decoded.width_px, height=decoded.height_px
        )

        out_file = normalized_path_for(out_dir=out_dir, page_id=page.page_id)
        compose_output(
            image=decoded.image,
            crop_box=crop_box,
            angle=skew.angle,
            dpi=physical.dpi,
            out_file=out_file,
            config=config,
        )
    except NormalizationError as e:
        e.page_id = page.page_id
        raise

    logger.info(
        "normalized %s: dpi=%.1f (%s) skew=%.2f coverage=%.3f shadow=%s",
        page.page_id,
        physical.dpi,
        physical.source.value,
        skew.angle,
        bounds.mask_coverage,
        shadow.side.value,
    )

    return NormalizationResult(
        page_id=page.page_id,
        normalized_path=str(out_file),
        crop_box=crop_box,
        mask_box=mask_box,
        dimensions_mm={"width": physical.width_mm, "height": physical.height_mm},
        dpi=physical.dpi,
        dpi_source=physical.source,
        trim_mm=px_to_mm(estimate.trim_px, physical.dpi),
        bleed_mm=px_to_mm(estimate.bleed_px, physical.dpi),
        skew_angle=skew.angle,
        shadow=shadow,
        stats=PageStats(
            background_mean=border.mean,
            background_std=border.std,
            mask_coverage=bounds.mask_coverage,
            skew_confidence=skew.confidence,
            shadow_score=shadow.darkness,
        ),
        engine_id=raster.engine_id,
        engine_version=raster.engine_version,
    )
