from __future__ import annotations

import argparse
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any

from contracts.pages import BoundsEstimate, PageSource

from .contracts import NormalizeConfig, RunConfig
from .data_access import sha256_file
from .errors import OutputDirectoryError
from .run_module import evaluate_run, run_normalization

logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="page-normalize",
        description=(
            "Normalize scanned pages: infer physical size, deskew, detect content bounds "
            "and spine shadows, write cropped rasters + per-page JSON sidecars."
        ),
    )
    p.add_argument(
        "--manifest",
        required=True,
        type=Path,
        help='Run manifest JSON: {"pages": [...], "estimates": [...]}.',
    )
    p.add_argument("--out-dir", required=True, type=Path, help="Output directory for this run.")
    p.add_argument(
        "--target-dpi",
        type=float,
        default=None,
        help="Fallback DPI when neither metadata nor page size matching applies (default: 300).",
    )
    p.add_argument("--workers", type=int, default=4, help="Maximum pages processed concurrently.")
    p.add_argument(
        "--max-preview-dim",
        type=int,
        default=NormalizeConfig().max_preview_dim,
        help="Longest preview side used for analysis.",
    )
    p.add_argument("--run-id", default=None, help="Explicit run id (default: content hash).")
    p.add_argument("--no-sidecars", action="store_true", help="Skip sidecar and report JSON output.")
    p.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    return p


def load_manifest(manifest_file: Path) -> dict[str, Any]:
    payload = json.loads(manifest_file.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Run manifest must be a JSON object")
    if not isinstance(payload.get("pages"), list) or not isinstance(payload.get("estimates"), list):
        raise ValueError("Run manifest missing required fields (pages[], estimates[])")
    return payload


def _resolve_pages(raw_pages: list[dict[str, Any]], *, base_dir: Path) -> list[PageSource]:
    pages: list[PageSource] = []
    for raw in raw_pages:
        page = PageSource.from_dict(raw)
        path = Path(page.path)
        if not path.is_absolute():
            path = (base_dir / path).resolve()
            page = replace(page, path=str(path))
        if not page.checksum and path.exists():
            page = replace(page, checksum=sha256_file(path))
        pages.append(page)
    return pages


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        payload = load_manifest(args.manifest)
        pages = _resolve_pages(payload["pages"], base_dir=args.manifest.parent.resolve())
        estimates = [BoundsEstimate.from_dict(e) for e in payload["estimates"]]
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.error("invalid run manifest %s: %s", args.manifest, e)
        return 1

    target_dpi = args.target_dpi if args.target_dpi is not None else payload.get("target_dpi", 300.0)
    dims = payload.get("target_dimensions_mm") or {"width": 210.0, "height": 297.0}
    config = RunConfig(
        target_dpi=float(target_dpi),
        target_dimensions_mm={"width": float(dims["width"]), "height": float(dims["height"])},
        max_workers=args.workers,
        write_sidecars=not args.no_sidecars,
        tuning=NormalizeConfig(max_preview_dim=args.max_preview_dim),
    )

    try:
        result = run_normalization(
            pages=pages,
            estimates=estimates,
            config=config,
            out_dir=args.out_dir,
            run_id=args.run_id,
        )
    except OutputDirectoryError as e:
        logger.error("%s", e)
        return 1

    evaluation = evaluate_run(result)
    for line in evaluation["observations"]:
        logger.info("%s", line)
    for line in evaluation["recommendations"]:
        logger.warning("%s", line)

    print(f"run_id={result.run_id} pages={len(pages)} normalized={len(result.results)} ok={result.ok}")
    return 0 if result.ok else 2


if __name__ == "__main__":
    raise SystemExit(main())
