from __future__ import annotations

import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from PIL import Image

_DATA_DIR = tempfile.mkdtemp(prefix="email_autoslice_test_")
os.environ.setdefault("DATA_DIR", _DATA_DIR)

import httpx  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import email_autoslice.api.app as app_module  # noqa: E402
from email_autoslice.assembly.crop import pil_to_png_bytes  # noqa: E402
from email_autoslice.providers.base import BoundaryProposal  # noqa: E402
from email_autoslice.providers.vision_provider import VisionProvider  # noqa: E402
from email_autoslice.storage import RunStore  # noqa: E402


def _png(width: int = 60, height: int = 400) -> bytes:
    return pil_to_png_bytes(Image.new("RGB", (width, height), (255, 255, 255)))


BLOCKS = [
    {"text": "Welcome to our sale", "y_top": 40, "y_bottom": 70, "x_left": 5, "x_right": 55},
    {"text": "New arrivals", "yTop": 200, "yBottom": 230},
]


class TestApi(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self._store_patch = patch.object(app_module, "store", RunStore(root_dir=Path(self._tmp.name)))
        self._store_patch.start()
        self.client = TestClient(app_module.app)

    def tearDown(self) -> None:
        self._store_patch.stop()
        self._tmp.cleanup()

    def _auto_slice(self, **form):
        data = {"proposer": "gap", "text_blocks": json.dumps(BLOCKS), **form}
        return self.client.post(
            "/screenshots/auto-slice",
            data=data,
            files={"file": ("email.png", _png(), "image/png")},
        )

    def test_validate_snaps_out_of_band(self) -> None:
        resp = self.client.post(
            "/slices/validate",
            json={
                "boundaries": [100],
                "footer_start_y": 500,
                "forbidden_bands": [{"y_top": 90, "y_bottom": 110}],
                "candidate_lines": [{"y": 85}, {"y": 115, "type": "edge", "strength": 0.8}],
            },
        )
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["slices"], [{"y_top": 0, "y_bottom": 115}, {"y_top": 115, "y_bottom": 500}])
        self.assertIn("snapped", [r["kind"] for r in body["repairs"]])

    def test_validate_requires_footer(self) -> None:
        resp = self.client.post("/slices/validate", json={"boundaries": [1]})
        self.assertEqual(resp.status_code, 422)

    def test_plan(self) -> None:
        resp = self.client.post(
            "/slices/plan",
            json={
                "image_height": 400,
                "text_blocks": [{"text": b["text"], "y_top": 40, "y_bottom": 70} for b in BLOCKS[:1]],
                "include_geometry": True,
            },
        )
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["footer_start_y"], 380)
        self.assertEqual(body["footer"]["confidence"], "low")
        self.assertEqual(len(body["text_blocks"]), 1)

    def test_plan_rejects_zero_height(self) -> None:
        resp = self.client.post("/slices/plan", json={"image_height": 0})
        self.assertEqual(resp.status_code, 422)

    def test_auto_slice_with_supplied_geometry(self) -> None:
        resp = self._auto_slice()
        self.assertEqual(resp.status_code, 200, resp.text)
        run = resp.json()
        result = run["result"]
        self.assertEqual(result["footer_start_y"], 380)
        self.assertEqual(result["footer"]["confidence"], "low")
        self.assertEqual(result["proposed_boundaries"], [135])
        self.assertEqual(
            result["slices"],
            [{"y_top": 0, "y_bottom": 135}, {"y_top": 135, "y_bottom": 380}],
        )
        self.assertEqual(result["ocr"]["provider"], "client")
        self.assertEqual(result["proposer"]["provider"], "gap")
        self.assertEqual(sorted(a["kind"] for a in run["images"]), ["preview", "slice", "slice", "source"])

        slice_url = result["slice_images"][1]["url"]
        img_resp = self.client.get(slice_url)
        self.assertEqual(img_resp.status_code, 200)
        self.assertTrue(img_resp.content.startswith(b"\x89PNG"))

        listed = self.client.get("/runs").json()
        self.assertEqual([r["run_id"] for r in listed], [run["run_id"]])

    def test_auto_slice_without_preview(self) -> None:
        run = self._auto_slice(preview="false").json()
        self.assertNotIn("preview", [a["kind"] for a in run["images"]])

    def test_unknown_proposer(self) -> None:
        self.assertEqual(self._auto_slice(proposer="claude").status_code, 400)

    def test_model_proposer_without_key(self) -> None:
        with patch.object(app_module.settings, "gemini_api_key", None):
            resp = self._auto_slice(proposer="gemini")
        self.assertEqual(resp.status_code, 400)
        self.assertIn("GEMINI_API_KEY", resp.json()["detail"])

    def test_bad_text_blocks_payload(self) -> None:
        self.assertEqual(self._auto_slice(text_blocks="{not json").status_code, 400)

    def test_bad_image(self) -> None:
        resp = self.client.post(
            "/screenshots/auto-slice",
            data={"proposer": "gap"},
            files={"file": ("email.png", b"definitely not a png", "image/png")},
        )
        self.assertEqual(resp.status_code, 400)

    def test_missing_run_and_image(self) -> None:
        self.assertEqual(self.client.get("/runs/nope").status_code, 404)
        self.assertEqual(self.client.get("/runs/0123456789ab").status_code, 404)
        run = self._auto_slice().json()
        self.assertEqual(self.client.get(f"/runs/{run['run_id']}/images/nope").status_code, 404)

    def test_delete_run(self) -> None:
        run = self._auto_slice().json()
        resp = self.client.post(f"/runs/{run['run_id']}/delete")
        self.assertEqual(resp.json(), {"deleted": run["run_id"]})
        self.assertEqual(self.client.get(f"/runs/{run['run_id']}").status_code, 404)

    def test_failed_proposal_leaves_no_run_behind(self) -> None:
        with patch.object(app_module, "_get_proposer", return_value=_StubProposer(error=RuntimeError("boom"))):
            with self.assertRaises(RuntimeError):
                self._auto_slice()
        self.assertEqual(self.client.get("/runs").json(), [])
        self.assertEqual(list(app_module.store.runs_dir.iterdir()), [])

    def test_upstream_http_failure_is_502_and_cleaned_up(self) -> None:
        error = httpx.ConnectError("vision down")
        with patch.object(app_module, "_get_proposer", return_value=_StubProposer(error=error)):
            resp = self._auto_slice()
        self.assertEqual(resp.status_code, 502)
        self.assertEqual(self.client.get("/runs").json(), [])

    def test_non_positive_model_footer_falls_back_to_detector(self) -> None:
        stub = _StubProposer(boundaries=[135], footer_start_y=0)
        with patch.object(app_module, "_get_proposer", return_value=stub):
            run = self._auto_slice().json()
        result = run["result"]
        self.assertEqual(result["proposer"]["footer_start_y"], 0)
        self.assertEqual(result["footer_start_y"], 380)
        self.assertEqual(len(result["slices"]), 2)

    def test_model_footer_override_is_used_when_positive(self) -> None:
        stub = _StubProposer(boundaries=[135], footer_start_y=303)
        with patch.object(app_module, "_get_proposer", return_value=stub):
            run = self._auto_slice().json()
        self.assertEqual(run["result"]["footer_start_y"], 300)

    def test_vision_ocr_feeds_blocks_and_regions(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            self.assertEqual(request.url.params["key"], "test-key")
            features = [f["type"] for f in json.loads(request.content)["requests"][0]["features"]]
            self.assertEqual(features, ["DOCUMENT_TEXT_DETECTION", "OBJECT_LOCALIZATION", "LOGO_DETECTION"])
            return httpx.Response(200, json={"responses": [_VISION_RESPONSE]})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        provider = VisionProvider(api_key="test-key", client=client)
        with patch.object(app_module, "_get_vision", return_value=provider):
            resp = self._auto_slice(text_blocks="", ocr="vision")
        self.assertEqual(resp.status_code, 200, resp.text)
        result = resp.json()["result"]
        self.assertEqual(result["ocr"]["provider"], "vision")
        self.assertEqual([r["name"] for r in result["regions"]], ["Shoe"])
        # The product image between the two paragraphs is not cut through.
        self.assertEqual(result["proposed_boundaries"], [95, 180])
        self.assertEqual(
            [(s["y_top"], s["y_bottom"]) for s in result["slices"]],
            [(0, 95), (95, 180), (180, 380)],
        )

    def test_vision_without_key(self) -> None:
        with patch.object(app_module.settings, "google_cloud_vision_api_key", None):
            resp = self._auto_slice(text_blocks="", ocr="vision")
        self.assertEqual(resp.status_code, 400)
        self.assertIn("GOOGLE_CLOUD_VISION_API_KEY", resp.json()["detail"])

    def test_unknown_ocr_provider(self) -> None:
        self.assertEqual(self._auto_slice(text_blocks="", ocr="tesseract").status_code, 400)


def _paragraph(text: str, y0: int, y1: int) -> dict:
    return {
        "boundingBox": {"vertices": [{"x": 5, "y": y0}, {"x": 55, "y": y0}, {"x": 55, "y": y1}, {"x": 5, "y": y1}]},
        "words": [{"symbols": [{"text": ch} for ch in word]} for word in text.split()],
    }


_VISION_RESPONSE = {
    "fullTextAnnotation": {
        "pages": [{"blocks": [{"paragraphs": [_paragraph("Welcome to our sale", 40, 70), _paragraph("New arrivals", 200, 230)]}]}]
    },
    "localizedObjectAnnotations": [
        {
            "name": "Shoe",
            "score": 0.91,
            "boundingPoly": {
                "normalizedVertices": [{"x": 0.1, "y": 0.3}, {"x": 0.9, "y": 0.3}, {"x": 0.9, "y": 0.4}, {"x": 0.1, "y": 0.4}]
            },
        }
    ],
}


class _StubProposer:
    name = "stub"

    def __init__(self, boundaries=None, footer_start_y=None, error: Exception | None = None) -> None:
        self.boundaries = boundaries or []
        self.footer_start_y = footer_start_y
        self.error = error

    async def propose_boundaries(self, image_path, blocks, image_width, image_height, regions=()):
        if self.error is not None:
            raise self.error
        return BoundaryProposal(
            boundaries=self.boundaries,
            footer_start_y=self.footer_start_y,
            provider=self.name,
            model="stub",
        )


if __name__ == "__main__":
    unittest.main()
