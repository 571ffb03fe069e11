from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from contracts.pages import PageSource

from .contracts import NormalizationResult, NormalizationRunResult
from .decisions import deskew_confidence, evaluate_acceptance

SIDECAR_VERSION = "1.0.0"
LOW_COVERAGE_FLAG_THRESHOLD = 0.6


def infer_layout_profile(page: PageSource, index: int) -> str:
    """
    Coarse layout hint from the page's position and filename.
    """

    name = page.filename.lower()
    if index == 0 or "cover" in name:
        return "cover"
    if "title" in name or "frontispiece" in name:
        return "title"
    if "chapter" in name or "chap" in name or "page_001" in name:
        return "chapter"
    return "body"


def page_flags(result: NormalizationResult) -> list[str]:
    flags: list[str] = []
    if result.shadow.present:
        flags.append(f"shadow:{result.shadow.side.value}")
    if result.stats.mask_coverage < LOW_COVERAGE_FLAG_THRESHOLD:
        flags.append("low-coverage")
    return flags


def build_sidecar(
    *, page: PageSource, index: int, result: NormalizationResult, run_id: str
) -> dict[str, Any]:
    """
    Per-page review/export record consumed by downstream steps.
    """

    flags = page_flags(result)
    metrics = {
        "deskewConfidence": deskew_confidence(result.stats.skew_confidence),
        "shadowScore": result.stats.shadow_score,
        "maskCoverage": result.stats.mask_coverage,
        "backgroundStd": result.stats.background_std,
    }
    decision = evaluate_acceptance(metrics)

    return {
        "version": SIDECAR_VERSION,
        "pageId": page.page_id,
        "source": {"path": page.path, "checksum": page.checksum or ""},
        "dimensions": {
            "width": result.dimensions_mm["width"],
            "height": result.dimensions_mm["height"],
            "unit": "mm",
        },
        "dpi": int(round(result.dpi)),
        "normalization": {
            "cropBox": result.crop_box.to_list(),
            "pageMask": result.mask_box.to_list(),
            "dpiSource": result.dpi_source.value,
            "bleed": result.bleed_mm,
            "trim": result.trim_mm,
            "scale": 1,
            "skewAngle": result.skew_angle,
            "warp": {"method": "affine", "residual": 0},
            "shadow": result.shadow.to_dict(),
        },
        "elements": [
            {
                "id": f"{page.page_id}-page-bounds",
                "type": "page_bounds",
                "bbox": result.crop_box.to_list(),
                "confidence": 0.5,
                "source": "local",
                "flags": flags,
            }
        ],
        "layoutProfile": infer_layout_profile(page, index),
        "metrics": metrics,
        "decisions": {
            "accepted": decision.accepted,
            "notes": decision.notes,
            "overrides": flags,
        },
        "normalizationRunId": run_id,
    }


def serialize_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, indent=2) + "\n"


def write_json_artifact(*, payload: dict[str, Any], out_file: Path) -> None:
    out_file.parent.mkdir(parents=True, exist_ok=True)
    out_file.write_text(serialize_json(payload), encoding="utf-8")


def build_run_report(
    *,
    result: NormalizationRunResult,
    page_count: int,
    target_dpi: float,
    target_dimensions_mm: dict[str, float],
) -> dict[str, Any]:
    """
    Run-level summary: metrics, per-page results, failures and the decoders used.
    """

    engines = sorted(
        {(r.engine_id, r.engine_version or "") for r in result.results.values() if r.engine_id}
    )
    return {
        "runId": result.run_id,
        "ok": result.ok,
        "pageCount": page_count,
        "targetDpi": target_dpi,
        "targetDimensionsMm": dict(target_dimensions_mm),
        "metrics": dict(result.metrics),
        "failures": [f.to_dict() for f in result.failures],
        "pages": sorted(result.results.keys()),
        "results": {page_id: result.results[page_id].to_dict() for page_id in sorted(result.results)},
        "engines": [{"id": eid, "version": version or None} for eid, version in engines],
    }
