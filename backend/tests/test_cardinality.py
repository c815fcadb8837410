import pathlib
import sys
import unittest

ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from erdstudio.erd.cardinality import infer_marker_end, marker_end_for


class MarkerEndTests(unittest.TestCase):
    def test_key_and_nullability_table(self) -> None:
        cases = [
            ("FK", True, "zero-to-many-end"),
            ("FK", False, "many-end"),
            ("PK", True, "zero-to-one-end"),
            ("PK", False, "one-end"),
            ("NONE", True, "zero-to-many-end"),
            ("NONE", False, "many-end"),
        ]
        for key, nullable, expected in cases:
            with self.subTest(key=key, nullable=nullable):
                self.assertEqual(marker_end_for(key, nullable), expected)

    def test_infer_looks_up_target_field_by_handle(self) -> None:
        index = {
            "posts": {
                "posts-user_id": {"id": "posts-user_id", "key": "FK", "nullable": False},
            }
        }
        self.assertEqual(infer_marker_end(index, "posts", "posts-user_id-left"), "many-end")

    def test_infer_falls_back_when_target_unknown(self) -> None:
        index = {"posts": {}}
        self.assertEqual(infer_marker_end(index, "missing", "x-left"), "many-end")
        self.assertEqual(infer_marker_end(index, "posts", "posts-nope-left"), "many-end")
        self.assertEqual(infer_marker_end(index, "posts", None), "many-end")


if __name__ == "__main__":
    unittest.main()
