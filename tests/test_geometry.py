from __future__ import annotations

import json
import unittest

from email_autoslice.slicing.contracts import TextBlock
from email_autoslice.slicing.geometry import text_blocks_from_records, text_blocks_from_vision_annotation


def _word(text: str) -> dict:
    return {"symbols": [{"text": ch} for ch in text]}


class TestVisionAnnotation(unittest.TestCase):
    def test_paragraphs_flattened(self) -> None:
        annotation = {
            "pages": [
                {
                    "blocks": [
                        {
                            "paragraphs": [
                                {
                                    "boundingBox": {
                                        "vertices": [
                                            {"x": 10, "y": 20},
                                            {"x": 110, "y": 20},
                                            {"x": 110, "y": 50},
                                            {"x": 10, "y": 50},
                                        ]
                                    },
                                    "words": [_word("Hi"), _word("there")],
                                    "confidence": 0.97,
                                },
                                {
                                    # Degenerate box: skipped.
                                    "boundingBox": {"vertices": [{"x": 1, "y": 1}, {"x": 2, "y": 2}, {"x": 3}]},
                                    "words": [_word("skip")],
                                },
                                {
                                    "boundingBox": {"vertices": [{"y": 60}, {"x": 40, "y": 60}, {"x": 40, "y": 75}, {"y": 75}]},
                                    "words": [_word("Shop")],
                                },
                            ]
                        }
                    ]
                }
            ]
        }
        blocks = text_blocks_from_vision_annotation(annotation)
        self.assertEqual(
            blocks,
            [
                TextBlock(text="Hi there", y_top=20, y_bottom=50, x_left=10, x_right=110, confidence=0.97),
                TextBlock(text="Shop", y_top=60, y_bottom=75, x_left=0, x_right=40, confidence=0.9),
            ],
        )
        self.assertEqual(blocks[0].width, 100)
        self.assertEqual(blocks[0].height, 30)

    def test_missing_annotation(self) -> None:
        self.assertEqual(text_blocks_from_vision_annotation(None), [])
        self.assertEqual(text_blocks_from_vision_annotation({}), [])


class TestRecords(unittest.TestCase):
    def test_mixed_key_styles_and_repairs(self) -> None:
        rows = [
            {"text": "Header", "yTop": 10, "yBottom": 40, "xLeft": 5, "xRight": 300, "confidence": 0.8},
            {"text": "Inverted", "y_top": 90.6, "y_bottom": 60, "x_left": 400, "x_right": 100},
            {"text": "Overflow", "yTop": 980, "yBottom": 1200, "confidence": "bad"},
            {"text": "   ", "yTop": 1, "yBottom": 2},
            {"text": "No y"},
            "not a row",
        ]
        blocks = text_blocks_from_records(rows, image_width=600, image_height=1000)
        self.assertEqual([b.text for b in blocks], ["Header", "Inverted", "Overflow"])
        self.assertEqual((blocks[0].y_top, blocks[0].y_bottom, blocks[0].confidence), (10, 40, 0.8))
        self.assertEqual((blocks[1].y_top, blocks[1].y_bottom), (60, 91))
        self.assertEqual((blocks[1].x_left, blocks[1].x_right), (100, 400))
        self.assertEqual((blocks[2].y_bottom, blocks[2].x_left, blocks[2].x_right), (1000, 0, 600))
        self.assertEqual(blocks[2].confidence, 0.9)

    def test_non_finite_coordinates_drop_the_row(self) -> None:
        rows = json.loads(
            '[{"text": "x", "yTop": Infinity, "yBottom": 10},'
            ' {"text": "y", "yTop": 5, "yBottom": 1e999},'
            ' {"text": "z", "yTop": 20, "yBottom": 30, "xLeft": -Infinity, "confidence": NaN}]'
        )
        blocks = text_blocks_from_records(rows, image_width=100, image_height=100)
        self.assertEqual([b.text for b in blocks], ["z"])
        self.assertEqual((blocks[0].x_left, blocks[0].confidence), (0, 0.9))


if __name__ == "__main__":
    unittest.main()
