from __future__ import annotations

import unittest

from PIL import Image, ImageDraw

from email_autoslice.slicing.candidates import generate_candidate_cuts, nearest_cut
from email_autoslice.slicing.contracts import CandidateCutLine, CutType, LowRiskCutBand
from email_autoslice.slicing.edges import detect_horizontal_edges


class TestCandidateCuts(unittest.TestCase):
    def test_uniform_grid_inside_image(self) -> None:
        cuts = generate_candidate_cuts(100, step=10)
        self.assertEqual([c.y for c in cuts.lines], [10, 20, 30, 40, 50, 60, 70, 80, 90])
        self.assertTrue(all(c.type == CutType.WHITESPACE for c in cuts.lines))
        self.assertTrue(all(c.strength == 0.5 for c in cuts.lines))

    def test_low_risk_bands_on_coarse_grid(self) -> None:
        cuts = generate_candidate_cuts(120, step=10, low_risk_multiple=5)
        self.assertEqual(cuts.low_risk_bands, [LowRiskCutBand(45, 55), LowRiskCutBand(95, 105)])

    def test_edges_merge_stronger_wins(self) -> None:
        edges = [
            CandidateCutLine(y=30, strength=0.9, type=CutType.EDGE),
            CandidateCutLine(y=33, strength=0.7, type=CutType.COLOR_SHIFT),
            CandidateCutLine(y=50, strength=0.2, type=CutType.EDGE),
            CandidateCutLine(y=0, strength=1.0, type=CutType.EDGE),
            CandidateCutLine(y=100, strength=1.0, type=CutType.EDGE),
        ]
        cuts = generate_candidate_cuts(100, step=10, edges=edges)
        by_y = {c.y: c for c in cuts.lines}
        self.assertEqual(by_y[30].type, CutType.EDGE)
        self.assertEqual(by_y[33].type, CutType.COLOR_SHIFT)
        self.assertEqual(by_y[50].type, CutType.WHITESPACE)
        self.assertNotIn(0, by_y)
        self.assertNotIn(100, by_y)
        self.assertEqual([c.y for c in cuts.lines], sorted(by_y))

    def test_invalid_arguments(self) -> None:
        with self.assertRaises(ValueError):
            generate_candidate_cuts(0)
        with self.assertRaises(ValueError):
            generate_candidate_cuts(100, step=0)

    def test_nearest_cut_prefers_later_on_tie(self) -> None:
        lines = [CandidateCutLine(y=85), CandidateCutLine(y=115)]
        self.assertEqual(nearest_cut(100, lines).y, 115)
        self.assertEqual(nearest_cut(99, lines).y, 85)
        self.assertIsNone(nearest_cut(100, []))


class TestHorizontalEdges(unittest.TestCase):
    def test_uniform_image_has_no_edges(self) -> None:
        img = Image.new("RGB", (100, 200), (255, 255, 255))
        self.assertEqual(detect_horizontal_edges(img), [])

    def test_background_change_is_color_shift(self) -> None:
        img = Image.new("RGB", (100, 200), (255, 255, 255))
        ImageDraw.Draw(img).rectangle([(0, 100), (99, 199)], fill=(0, 0, 0))
        edges = detect_horizontal_edges(img)
        self.assertEqual([e.y for e in edges], [100])
        self.assertEqual(edges[0].type, CutType.COLOR_SHIFT)
        self.assertEqual(edges[0].strength, 1.0)

    def test_thin_divider_is_edge(self) -> None:
        img = Image.new("RGB", (100, 200), (255, 255, 255))
        ImageDraw.Draw(img).rectangle([(0, 100), (99, 102)], fill=(0, 0, 0))
        edges = detect_horizontal_edges(img)
        self.assertEqual([e.y for e in edges], [100, 105])
        self.assertEqual(edges[0].type, CutType.EDGE)


if __name__ == "__main__":
    unittest.main()
