import contextlib
import io
import json
import sys
import tempfile
import unittest
from pathlib import Path

import mongomock

sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

import manage_db  # noqa: E402

from songstore import Couple, DocumentStore, FingerprintIndex, SongRegistry  # noqa: E402
from songstore.wav import write_wav_file  # noqa: E402


def run(argv, store=None):
    out = io.StringIO()
    with contextlib.redirect_stdout(out):
        code = manage_db.main(argv, store=store)
    return code, out.getvalue()


class ManageDbTests(unittest.TestCase):
    def setUp(self):
        self.store = DocumentStore(client=mongomock.MongoClient())

    def test_info(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "a.wav"
            write_wav_file(path, b"\x00" * 16000, 8000, 1, 16)
            code, out = run(["info", str(path)])

        self.assertEqual(code, 0)
        self.assertIn("Duration:        1.000 s", out)

    def test_register_lookup_delete(self):
        code, out = run(["register", "Title", "Artist", "yt1"], self.store)
        self.assertEqual(code, 0)
        song_id = int(out.strip().splitlines()[-1])

        code, out = run(["song", "--key", "Title", "Artist"], self.store)
        self.assertEqual(code, 0)
        self.assertIn(f"{song_id}\tTitle\tArtist\tyt1", out)

        code, out = run(["count"], self.store)
        self.assertTrue(out.strip().endswith("1"))

        code, _ = run(["delete-song", str(song_id)], self.store)
        self.assertEqual(code, 0)
        code, out = run(["song", "--id", str(song_id)], self.store)
        self.assertEqual(code, 1)
        self.assertIn("Not found", out)

    def test_duplicate_register_exits_non_zero(self):
        run(["register", "Title", "Artist", "yt1"], self.store)
        code, _ = run(["register", "Title", "Artist", "yt1"], self.store)
        self.assertEqual(code, 1)

    def test_import_fingerprints_and_reset(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "fp.json"
            path.write_text(json.dumps({"10": [[1, 2], [3, 4]], "11": [[5, 6]]}))
            code, out = run(["import-fingerprints", str(path)], self.store)

        self.assertEqual(code, 0)
        index = FingerprintIndex(self.store)
        self.assertEqual(index.get_couples([10, 11]), {10: [Couple(1, 2), Couple(3, 4)], 11: [Couple(5, 6)]})

        SongRegistry(self.store).register("T", "A", "r")
        code, _ = run(["reset", "--fingerprints", "--songs"], self.store)
        self.assertEqual(code, 0)
        self.assertEqual(index.get_couples([10, 11]), {})
        self.assertEqual(SongRegistry(self.store).count(), 0)

    def test_reset_needs_a_target(self):
        code, _ = run(["reset"], self.store)
        self.assertEqual(code, 2)

    def test_info_on_missing_file_exits_non_zero(self):
        with tempfile.TemporaryDirectory() as tmp:
            code, out = run(["info", str(Path(tmp) / "missing.wav")])
        self.assertEqual(code, 1)
        self.assertNotIn("Duration", out)

    def test_bad_fingerprint_files_exit_non_zero(self):
        bad = {
            "address": '{"abc": [[1, 2]]}',
            "couple": '{"10": [5]}',
            "json": '{"10": [[1, 2]',
            "shape": '[[1, 2]]',
        }
        with tempfile.TemporaryDirectory() as tmp:
            for name, text in bad.items():
                path = Path(tmp) / f"{name}.json"
                path.write_text(text)
                with self.subTest(name=name):
                    code, _ = run(["import-fingerprints", str(path)], self.store)
                    self.assertEqual(code, 1)
        self.assertEqual(FingerprintIndex(self.store).get_couples([10]), {})


if __name__ == "__main__":
    unittest.main()
