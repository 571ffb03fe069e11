from __future__ import annotations

import json
import unittest
from dataclasses import replace

from contracts.pages import PageSource, PixelBox
from normalize_page.artifacts import (
    SIDECAR_VERSION,
    build_sidecar,
    infer_layout_profile,
    page_flags,
    serialize_json,
)
from normalize_page.contracts import (
    DpiSource,
    NormalizationResult,
    PageStats,
    ShadowDetection,
    ShadowSide,
)
from normalize_page.decisions import AcceptanceRule, deskew_confidence, evaluate_acceptance


def _page(page_id: str = "p007", path: str = "/scans/page_007.png") -> PageSource:
    return PageSource(page_id=page_id, path=path, checksum="abc123", width_px=2480, height_px=3508)


def _result(*, coverage: float = 0.9, skew_confidence: float = 0.3, shadow: ShadowDetection | None = None) -> NormalizationResult:
    shadow = shadow or ShadowDetection(present=False, side=ShadowSide.NONE, width_px=0, confidence=0.0, darkness=1.5)
    return NormalizationResult(
        page_id="p007",
        normalized_path="/out/normalized/p007.png",
        crop_box=PixelBox(10, 20, 2400, 3400),
        mask_box=PixelBox(16, 26, 2394, 3394),
        dimensions_mm={"width": 210.0, "height": 297.0},
        dpi=299.6,
        dpi_source=DpiSource.INFERRED,
        trim_mm=2.032,
        bleed_mm=1.016,
        skew_angle=1.25,
        shadow=shadow,
        stats=PageStats(
            background_mean=245.0,
            background_std=3.5,
            mask_coverage=coverage,
            skew_confidence=skew_confidence,
            shadow_score=shadow.darkness,
        ),
    )


class TestAcceptance(unittest.TestCase):
    def test_all_rules_pass(self) -> None:
        d = evaluate_acceptance({"maskCoverage": 0.5, "deskewConfidence": 0.2})
        self.assertTrue(d.accepted)
        self.assertEqual(d.notes, "Auto-accepted")
        self.assertEqual(d.failed_rules, ())

    def test_failed_rules_are_named(self) -> None:
        d = evaluate_acceptance({"maskCoverage": 0.49, "deskewConfidence": 0.1})
        self.assertFalse(d.accepted)
        self.assertEqual(d.notes, "Requires review")
        self.assertEqual(d.failed_rules, ("mask_coverage", "deskew_confidence"))

    def test_missing_metric_fails(self) -> None:
        d = evaluate_acceptance({"maskCoverage": 0.9})
        self.assertEqual(d.failed_rules, ("deskew_confidence",))

    def test_custom_rules(self) -> None:
        rules = (AcceptanceRule(name="bg", metric="backgroundStd", minimum=5.0, description="noisy"),)
        self.assertFalse(evaluate_acceptance({"backgroundStd": 3.0}, rules).accepted)

    def test_deskew_confidence_boost_is_capped(self) -> None:
        self.assertAlmostEqual(deskew_confidence(0.0), 0.25)
        self.assertEqual(deskew_confidence(0.9), 1.0)


class TestLayoutProfile(unittest.TestCase):
    def test_profiles(self) -> None:
        self.assertEqual(infer_layout_profile(_page(), 0), "cover")
        self.assertEqual(infer_layout_profile(_page(path="/s/Cover-back.png"), 5), "cover")
        self.assertEqual(infer_layout_profile(_page(path="/s/title.png"), 1), "title")
        self.assertEqual(infer_layout_profile(_page(path="C:\\scans\\Chapter_02.tif"), 3), "chapter")
        self.assertEqual(infer_layout_profile(_page(path="/s/page_001.png"), 2), "chapter")
        self.assertEqual(infer_layout_profile(_page(path="/s/page_042.png"), 9), "body")


class TestSidecar(unittest.TestCase):
    def test_field_contract(self) -> None:
        sc = build_sidecar(page=_page(), index=4, result=_result(), run_id="run_abc")

        self.assertEqual(sc["version"], SIDECAR_VERSION)
        self.assertEqual(sc["pageId"], "p007")
        self.assertEqual(sc["source"], {"path": "/scans/page_007.png", "checksum": "abc123"})
        self.assertEqual(sc["dimensions"], {"width": 210.0, "height": 297.0, "unit": "mm"})
        self.assertEqual(sc["dpi"], 300)

        norm = sc["normalization"]
        self.assertEqual(norm["cropBox"], [10, 20, 2400, 3400])
        self.assertEqual(norm["pageMask"], [16, 26, 2394, 3394])
        self.assertEqual(norm["dpiSource"], "inferred")
        self.assertEqual(norm["skewAngle"], 1.25)
        self.assertEqual(norm["trim"], 2.032)
        self.assertEqual(norm["bleed"], 1.016)
        self.assertEqual(norm["warp"], {"method": "affine", "residual": 0})
        self.assertEqual(norm["shadow"]["side"], "none")
        self.assertIn("widthPx", norm["shadow"])

        self.assertEqual(len(sc["elements"]), 1)
        self.assertEqual(sc["elements"][0]["id"], "p007-page-bounds")
        self.assertEqual(sc["elements"][0]["bbox"], [10, 20, 2400, 3400])
        self.assertEqual(sc["layoutProfile"], "body")
        self.assertAlmostEqual(sc["metrics"]["deskewConfidence"], 0.55)
        self.assertEqual(sc["metrics"]["maskCoverage"], 0.9)
        self.assertTrue(sc["decisions"]["accepted"])
        self.assertEqual(sc["decisions"]["notes"], "Auto-accepted")
        self.assertEqual(sc["normalizationRunId"], "run_abc")

    def test_low_coverage_page_requires_review(self) -> None:
        sc = build_sidecar(page=_page(), index=4, result=_result(coverage=0.3), run_id="r")

        self.assertFalse(sc["decisions"]["accepted"])
        self.assertEqual(sc["decisions"]["notes"], "Requires review")
        self.assertEqual(sc["decisions"]["overrides"], ["low-coverage"])
        self.assertEqual(sc["elements"][0]["flags"], ["low-coverage"])

    def test_flags(self) -> None:
        shadow = ShadowDetection(present=True, side=ShadowSide.RIGHT, width_px=64, confidence=0.4, darkness=30.0)
        self.assertEqual(page_flags(_result(shadow=shadow, coverage=0.55)), ["shadow:right", "low-coverage"])
        self.assertEqual(page_flags(_result()), [])
        self.assertEqual(page_flags(_result(coverage=0.6)), [])

    def test_result_record_is_json_ready(self) -> None:
        shadow = ShadowDetection(present=True, side=ShadowSide.LEFT, width_px=40, confidence=0.3, darkness=20.0)
        d = replace(_result(shadow=shadow), engine_id="pillow", engine_version="11.0.0").to_dict()

        self.assertEqual(d["dpiSource"], "inferred")
        self.assertEqual(d["shadow"]["side"], "left")
        self.assertEqual(d["cropBox"], [10, 20, 2400, 3400])
        self.assertEqual(d["stats"]["maskCoverage"], 0.9)
        self.assertEqual(d["engine"], {"id": "pillow", "version": "11.0.0"})
        self.assertEqual(json.loads(serialize_json(d)), d)

    def test_serialization_is_stable(self) -> None:
        result = _result()
        a = serialize_json(build_sidecar(page=_page(), index=2, result=result, run_id="r"))
        b = serialize_json(build_sidecar(page=_page(), index=2, result=replace(result), run_id="r"))

        self.assertEqual(a, b)
        self.assertTrue(a.endswith("\n"))
        self.assertEqual(json.loads(a)["pageId"], "p007")
        self.assertLess(a.index('"decisions"'), a.index('"version"'))


if __name__ == "__main__":
    unittest.main()
