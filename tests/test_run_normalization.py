from __future__ import annotations

import json
import tempfile
import unittest
from dataclasses import replace
from pathlib import Path
from unittest.mock import patch

from PIL import Image

from normalize_page import run_module
from normalize_page.contracts import NormalizeConfig, RunConfig
from normalize_page.data_access import normalized_path_for, safe_page_stem
from normalize_page.errors import EncodeError, OutputDirectoryError
from normalize_page.run_module import compute_run_id, evaluate_run, run_normalization

from synthetic_pages import blank, estimate_for, page_source, text_block, write_page


class TestRunNormalization(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.out_dir = self.tmp / "run"
        self.config = RunConfig(max_workers=2)

        self.pages = [
            page_source(write_page(self.tmp / "cover.png", text_block(420, 594, margin=40)), "p001", checksum="c1"),
            page_source(write_page(self.tmp / "body.png", text_block(420, 594, margin=50)), "p002", checksum="c2"),
            page_source(write_page(self.tmp / "blank.png", blank(420, 594)), "p003", checksum="c3"),
        ]
        self.estimates = [estimate_for(p) for p in self.pages]

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_all_pages_normalized_with_sidecars_and_report(self) -> None:
        result = run_normalization(
            pages=self.pages, estimates=self.estimates, config=self.config, out_dir=self.out_dir
        )

        self.assertTrue(result.ok)
        self.assertEqual(sorted(result.results), ["p001", "p002", "p003"])
        self.assertEqual(result.failures, [])
        self.assertEqual(result.metrics["normalizedPages"], 3)
        self.assertEqual(result.metrics["failedPages"], 0)

        out = self.out_dir.resolve()
        for page_id in ("p001", "p002", "p003"):
            self.assertTrue((out / "normalized" / f"{page_id}.png").is_file())
            sidecar = json.loads((out / "sidecars" / f"{page_id}.json").read_text(encoding="utf-8"))
            self.assertEqual(sidecar["pageId"], page_id)
            self.assertEqual(sidecar["normalizationRunId"], result.run_id)

        report = json.loads((out / f"{result.run_id}-report.json").read_text(encoding="utf-8"))
        self.assertEqual(report["pageCount"], 3)
        self.assertEqual(report["pages"], ["p001", "p002", "p003"])
        self.assertTrue(report["ok"])
        self.assertEqual(report["results"]["p001"]["dpiSource"], "inferred")
        self.assertEqual(report["results"]["p003"]["cropBox"], [0, 0, 419, 593])
        self.assertEqual(report["results"]["p002"]["shadow"]["side"], "none")
        self.assertEqual([e["id"] for e in report["engines"]], ["pillow"])
        self.assertIsNotNone(report["engines"][0]["version"])
        self.assertEqual(result.results["p001"].engine_id, "pillow")

    def test_missing_estimate_fails_only_that_page(self) -> None:
        result = run_normalization(
            pages=self.pages, estimates=self.estimates[:2], config=self.config, out_dir=self.out_dir
        )

        self.assertFalse(result.ok)
        self.assertEqual(sorted(result.results), ["p001", "p002"])
        self.assertEqual(len(result.failures), 1)
        failure = result.failures[0]
        self.assertEqual(failure.page_id, "p003")
        self.assertEqual(failure.phase, "estimate")
        self.assertEqual(failure.code, "NORMALIZE_MISSING_ESTIMATE")
        self.assertFalse((self.out_dir / "sidecars" / "p003.json").exists())

        report = json.loads((self.out_dir / f"{result.run_id}-report.json").read_text(encoding="utf-8"))
        self.assertEqual(
            report["failures"],
            [
                {
                    "pageId": "p003",
                    "phase": "estimate",
                    "code": "NORMALIZE_MISSING_ESTIMATE",
                    "message": "No bounds estimate for page p003",
                }
            ],
        )
        self.assertNotIn("p003", report["results"])

    def test_decode_failure_is_isolated(self) -> None:
        bad = self.tmp / "broken.png"
        bad.write_bytes(b"\x89PNG truncated")
        pages = [self.pages[0], replace(self.pages[1], path=str(bad))]

        result = run_normalization(
            pages=pages, estimates=self.estimates, config=self.config, out_dir=self.out_dir
        )

        self.assertEqual(sorted(result.results), ["p001"])
        self.assertEqual([(f.page_id, f.phase) for f in result.failures], [("p002", "decode")])
        self.assertEqual(result.metrics["failedPages"], 1)

    def test_blank_page_is_auto_accepted(self) -> None:
        result = run_normalization(
            pages=self.pages, estimates=self.estimates, config=self.config, out_dir=self.out_dir
        )

        blank_result = result.results["p003"]
        self.assertEqual(blank_result.crop_box.to_list(), [0, 0, 419, 593])
        sidecar = json.loads((self.out_dir / "sidecars" / "p003.json").read_text(encoding="utf-8"))
        self.assertTrue(sidecar["decisions"]["accepted"])
        self.assertEqual(sidecar["layoutProfile"], "body")

    def test_encode_failure_is_recorded_with_phase(self) -> None:
        with patch(
            "normalize_page.module.compose_output",
            side_effect=EncodeError("disk full"),
        ):
            result = run_normalization(
                pages=self.pages[:1], estimates=self.estimates, config=self.config, out_dir=self.out_dir
            )

        self.assertEqual(result.results, {})
        self.assertEqual(
            [(f.page_id, f.phase, f.code) for f in result.failures],
            [("p001", "encode", "NORMALIZE_ENCODE_FAILED")],
        )

    def test_unexpected_exception_stays_page_local(self) -> None:
        real_normalize = run_module.normalize_page

        def flaky(*, page, **kwargs):
            if page.page_id == "p002":
                raise RuntimeError("boom")
            return real_normalize(page=page, **kwargs)

        with patch("normalize_page.run_module.normalize_page", side_effect=flaky):
            result = run_normalization(
                pages=self.pages, estimates=self.estimates, config=self.config, out_dir=self.out_dir
            )

        self.assertEqual(sorted(result.results), ["p001", "p003"])
        self.assertEqual(len(result.failures), 1)
        self.assertEqual(result.failures[0].code, "NORMALIZE_UNEXPECTED_ERROR")
        self.assertIn("boom", result.failures[0].message)

    def test_results_do_not_depend_on_worker_count(self) -> None:
        serial = run_normalization(
            pages=self.pages,
            estimates=self.estimates,
            config=replace(self.config, max_workers=1),
            out_dir=self.tmp / "serial",
        )
        parallel = run_normalization(
            pages=self.pages,
            estimates=self.estimates,
            config=replace(self.config, max_workers=3),
            out_dir=self.tmp / "parallel",
        )

        self.assertEqual(serial.run_id, parallel.run_id)
        for page_id in serial.results:
            a = replace(serial.results[page_id], normalized_path="")
            b = replace(parallel.results[page_id], normalized_path="")
            self.assertEqual(a, b)

    def test_sidecars_can_be_disabled(self) -> None:
        result = run_normalization(
            pages=self.pages,
            estimates=self.estimates,
            config=replace(self.config, write_sidecars=False),
            out_dir=self.out_dir,
        )

        self.assertTrue(result.ok)
        self.assertFalse((self.out_dir / "sidecars").exists())
        self.assertFalse((self.out_dir / f"{result.run_id}-report.json").exists())

    def test_unwritable_output_dir_is_fatal(self) -> None:
        blocker = self.tmp / "not-a-dir"
        blocker.write_text("x", encoding="utf-8")

        with self.assertRaises(OutputDirectoryError):
            run_normalization(
                pages=self.pages,
                estimates=self.estimates,
                config=self.config,
                out_dir=blocker / "nested",
            )

    def test_explicit_run_id_is_kept(self) -> None:
        result = run_normalization(
            pages=self.pages[:1],
            estimates=self.estimates,
            config=self.config,
            out_dir=self.out_dir,
            run_id="run-fixed",
        )
        self.assertEqual(result.run_id, "run-fixed")
        self.assertTrue((self.out_dir / "run-fixed-report.json").is_file())


class TestOutputPaths(unittest.TestCase):
    def test_safe_ids_are_kept(self) -> None:
        self.assertEqual(safe_page_stem("page_1"), "page_1")
        self.assertEqual(safe_page_stem("vol-2.p003"), "vol-2.p003")

    def test_sanitized_ids_get_a_hash_suffix(self) -> None:
        stem = safe_page_stem("page 1")
        self.assertTrue(stem.startswith("page_1~"))
        self.assertEqual(len(stem), len("page_1~") + 12)
        self.assertEqual(stem, safe_page_stem("page 1"))

    def test_ids_that_sanitize_alike_stay_distinct(self) -> None:
        ids = ["page 1", "page_1", "page/1", "page__1", "a/b", "a_b", "", "..", "page"]
        stems = [safe_page_stem(i) for i in ids]
        self.assertEqual(len(set(stems)), len(ids))
        for stem in stems:
            self.assertRegex(stem, r"^[A-Za-z0-9._~-]+$")

    def test_colliding_ids_write_separate_outputs(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            big = page_source(write_page(root / "big.png", text_block(400, 500, margin=40)), "page 1")
            small = page_source(write_page(root / "small.png", text_block(300, 300, margin=30)), "page_1")

            result = run_normalization(
                pages=[big, small],
                estimates=[estimate_for(big), estimate_for(small)],
                config=RunConfig(max_workers=2),
                out_dir=root / "out",
            )

            self.assertTrue(result.ok)
            big_res = result.results["page 1"]
            small_res = result.results["page_1"]
            self.assertNotEqual(big_res.normalized_path, small_res.normalized_path)
            expected = normalized_path_for(out_dir=(root / "out").resolve(), page_id="page_1")
            self.assertEqual(small_res.normalized_path, str(expected))
            for res in (big_res, small_res):
                with Image.open(res.normalized_path) as out:
                    self.assertEqual(out.size, (res.crop_box.width(), res.crop_box.height()))

            sidecars = sorted(p.name for p in (root / "out" / "sidecars").iterdir())
            self.assertEqual(len(sidecars), 2)


class TestRunId(unittest.TestCase):
    def test_run_id_is_order_independent_and_tuning_sensitive(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            a = page_source(write_page(Path(tmp) / "a.png", blank(20, 20)), "a", checksum="1")
            b = page_source(write_page(Path(tmp) / "b.png", blank(20, 20)), "b", checksum="2")

        cfg = RunConfig()
        rid = compute_run_id(pages=[a, b], config=cfg)

        self.assertTrue(rid.startswith("run_"))
        self.assertEqual(len(rid), len("run_") + 12)
        self.assertEqual(rid, compute_run_id(pages=[b, a], config=cfg))
        self.assertNotEqual(
            rid, compute_run_id(pages=[a, b], config=RunConfig(tuning=NormalizeConfig(max_preview_dim=800)))
        )
        self.assertNotEqual(rid, compute_run_id(pages=[a, replace(b, checksum="3")], config=cfg))


class TestEvaluateRun(unittest.TestCase):
    def test_observations_and_recommendations(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            pages = [
                page_source(write_page(root / "a.png", text_block(420, 594, margin=40)), "a"),
                page_source(write_page(root / "b.png", blank(420, 594)), "b"),
            ]
            result = run_normalization(
                pages=pages,
                estimates=[estimate_for(pages[0])],
                config=RunConfig(write_sidecars=False),
                out_dir=root / "out",
            )

        report = evaluate_run(result)

        self.assertEqual(report["observations"][0], "Normalized 1 pages, 1 failed")
        self.assertTrue(any(line.startswith("Average mask coverage:") for line in report["observations"]))
        self.assertIn("[estimate] b: No bounds estimate for page b", report["recommendations"])


if __name__ == "__main__":
    unittest.main()
