from __future__ import annotations

import hashlib
import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict
from pathlib import Path
from typing import Any, Iterable

from contracts.pages import BoundsEstimate, PageSource

from .artifacts import build_run_report, build_sidecar, write_json_artifact
from .contracts import NormalizationResult, NormalizationRunResult, PageFailure, RunConfig
from .data_access import ensure_output_dir, sidecar_path_for
from .errors import MissingEstimateError, NormalizationError
from .module import normalize_page

logger = logging.getLogger(__name__)

LOW_COVERAGE_THRESHOLD = 0.5


def compute_run_id(*, pages: list[PageSource], config: RunConfig) -> str:
    """
    Deterministic run id, stable for identical pages (id + checksum) and tuning.
    """

    payload = {
        "pages": [[p.page_id, p.checksum] for p in sorted(pages, key=lambda p: p.page_id)],
        "target_dpi": config.target_dpi,
        "tuning": asdict(config.tuning),
    }
    s = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return f"run_{hashlib.sha256(s.encode('utf-8')).hexdigest()[:12]}"


def _normalize_one(
    *,
    page: PageSource,
    estimate: BoundsEstimate | None,
    config: RunConfig,
    out_dir: Path,
) -> NormalizationResult | PageFailure:
    try:
        return normalize_page(
            page=page,
            estimate=estimate,
            config=config.tuning,
            out_dir=out_dir,
            fallback_dpi=config.target_dpi,
        )
    except NormalizationError as e:
        log = logger.info if isinstance(e, MissingEstimateError) else logger.warning
        log("page %s failed in %s: %s", page.page_id, e.phase, e)
        return PageFailure(page_id=page.page_id, phase=e.phase, code=e.code, message=str(e))
    except Exception as e:
        # Unexpected failures are still page-local; record them instead of aborting siblings.
        logger.exception("page %s failed unexpectedly", page.page_id)
        return PageFailure(
            page_id=page.page_id,
            phase="normalize",
            code="NORMALIZE_UNEXPECTED_ERROR",
            message=repr(e),
        )


def summarize_results(results: Iterable[NormalizationResult]) -> dict[str, Any]:
    norm = list(results)
    n = max(1, len(norm))
    return {
        "avgSkewDeg": sum(abs(r.skew_angle) for r in norm) / n,
        "avgMaskCoverage": sum(r.stats.mask_coverage for r in norm) / n,
        "shadowRate": sum(1 for r in norm if r.shadow.present) / n,
        "lowCoverageCount": sum(1 for r in norm if r.stats.mask_coverage < LOW_COVERAGE_THRESHOLD),
        "normalizedPages": len(norm),
    }


def run_normalization(
    *,
    pages: list[PageSource],
    estimates: list[BoundsEstimate],
    config: RunConfig,
    out_dir: Path,
    run_id: str | None = None,
) -> NormalizationRunResult:
    """
    Normalize every page concurrently and collect results keyed by page id.

    Page failures (including a missing estimate) are recorded as PageFailure
    entries and never affect sibling pages. An unwritable output directory
    raises OutputDirectoryError before any page is started.
    """

    started = time.perf_counter()
    out_root = ensure_output_dir(out_dir)
    run_id = run_id or compute_run_id(pages=pages, config=config)
    estimate_by_id = {e.page_id: e for e in estimates}

    logger.info(
        "[%s] normalizing %d pages with %d workers into %s",
        run_id,
        len(pages),
        config.max_workers,
        out_root,
    )

    with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
        futures = [
            executor.submit(
                _normalize_one,
                page=page,
                estimate=estimate_by_id.get(page.page_id),
                config=config,
                out_dir=out_root,
            )
            for page in pages
        ]
        outcomes = [f.result() for f in futures]

    results: dict[str, NormalizationResult] = {}
    failures: list[PageFailure] = []
    for outcome in outcomes:
        if isinstance(outcome, PageFailure):
            failures.append(outcome)
        else:
            results[outcome.page_id] = outcome
    failures.sort(key=lambda f: f.page_id)

    if config.write_sidecars:
        for index, page in enumerate(pages):
            norm = results.get(page.page_id)
            if norm is None:
                continue
            write_json_artifact(
                payload=build_sidecar(page=page, index=index, result=norm, run_id=run_id),
                out_file=sidecar_path_for(out_dir=out_root, page_id=page.page_id),
            )

    metrics = summarize_results(results[k] for k in sorted(results))
    metrics["failedPages"] = len(failures)
    metrics["durationMs"] = int(round((time.perf_counter() - started) * 1000))

    result = NormalizationRunResult(
        run_id=run_id,
        ok=not failures,
        results=results,
        failures=failures,
        metrics=metrics,
    )

    if config.write_sidecars:
        write_json_artifact(
            payload=build_run_report(
                result=result,
                page_count=len(pages),
                target_dpi=config.target_dpi,
                target_dimensions_mm=config.target_dimensions_mm,
            ),
            out_file=out_root / f"{run_id}-report.json",
        )

    logger.info(
        "[%s] normalized %d/%d pages in %dms",
        run_id,
        len(results),
        len(pages),
        metrics["durationMs"],
    )
    return result


def evaluate_run(result: NormalizationRunResult) -> dict[str, list[str]]:
    """
    Human-readable observations and tuning recommendations for a finished run.
    """

    observations: list[str] = []
    recommendations: list[str] = []
    m = result.metrics

    observations.append(
        f"Normalized {m.get('normalizedPages', 0)} pages, {m.get('failedPages', 0)} failed"
    )
    if m.get("normalizedPages"):
        observations.append(f"Average residual skew: {m['avgSkewDeg']:.2f} deg")
        observations.append(f"Average mask coverage: {m['avgMaskCoverage'] * 100:.1f}%")
        observations.append(f"Shadow detection rate: {m['shadowRate'] * 100:.1f}%")

        if m.get("lowCoverageCount", 0) > 0:
            recommendations.append(
                f"{m['lowCoverageCount']} pages have low mask coverage (<50%); "
                "review crop padding or thresholding"
            )
        if m["shadowRate"] > 0.15:
            recommendations.append(
                "Spine/edge shadows frequent; increase edge margin or shadow compensation"
            )
        if m["avgMaskCoverage"] < 0.7:
            recommendations.append("Tight crops detected; increase padding or relax mask threshold")

    for f in result.failures:
        recommendations.append(f"[{f.phase}] {f.page_id}: {f.message}")

    return {"observations": observations, "recommendations": recommendations}
