from __future__ import annotations

import contextlib
import io
import json as _json
import os
import tempfile
import unittest
from pathlib import Path
from typing import Dict

from zpack.cli import cmd_info, cmd_list, cmd_pack, cmd_repack, cmd_unpack, cmd_verify, main
from zpack.constants import HEADER_SIZE, MANIFEST_NAME
from zpack.errors import FormatError
from zpack.pathutil import dedupe_names, default_entry_name, safe_file_name
from zpack.reader import ArchiveReader
from zpack.writer import ArchiveWriter


def _build_fixture_tree(root: Path) -> Dict[str, bytes]:
    files: Dict[str, bytes] = {}
    (root / "a").mkdir()
    (root / "b").mkdir()
    files["a/title.bin"] = b"title screen\n" * 40
    files["b/title.bin"] = os.urandom(3000)
    files["a/empty.txt"] = b""
    files["b/course.dat"] = bytes(range(256)) * 20
    for rel, content in files.items():
        (root / rel).write_bytes(content)
    return files


def _run_quiet(func, *args, **kwargs):
    out = io.StringIO()
    with contextlib.redirect_stdout(out):
        result = func(*args, **kwargs)
    return result, out.getvalue()


class CliWorkflowTests(unittest.TestCase):
    def run_with_tmpdir(self, func):
        with tempfile.TemporaryDirectory() as tmp:
            func(Path(tmp))

    def _pack(self, tmp_path: Path):
        src = tmp_path / "src"
        src.mkdir()
        files = _build_fixture_tree(src)
        order = ["a/title.bin", "a/empty.txt", "b/title.bin", "b/course.dat"]
        header = tmp_path / "FAT_Z.BIN"
        data = tmp_path / "BG3ZPACK.ARC"
        ok, _ = _run_quiet(cmd_pack, str(header), str(data), [str(src / p) for p in order], tag=4, quiet=True)
        self.assertTrue(ok)
        return header, data, files, order

    def test_pack_list_unpack(self):
        def scenario(tmp_path: Path):
            header, data, files, order = self._pack(tmp_path)
            self.assertEqual(os.path.getsize(header), HEADER_SIZE)

            _, listing = _run_quiet(cmd_list, str(header), str(data))
            lines = listing.strip().splitlines()
            self.assertEqual(len(lines), 4)
            self.assertIn("TITLE.BIN", lines[0])
            self.assertIn("tag=4", lines[0])

            outdir = tmp_path / "out"
            ok, _ = _run_quiet(cmd_unpack, str(header), str(data), str(outdir), quiet=True)
            self.assertTrue(ok)
            self.assertEqual((outdir / "TITLE.BIN").read_bytes(), files["a/title.bin"])
            self.assertEqual((outdir / "TITLE (1).BIN").read_bytes(), files["b/title.bin"])
            self.assertEqual((outdir / "EMPTY.TXT").read_bytes(), b"")
            self.assertEqual((outdir / "COURSE.DAT").read_bytes(), files["b/course.dat"])

        self.run_with_tmpdir(scenario)

    def test_verify_and_info(self):
        def scenario(tmp_path: Path):
            header, data, _files, _order = self._pack(tmp_path)
            ok, out = _run_quiet(cmd_verify, str(header), str(data))
            self.assertTrue(ok)
            self.assertIn("OK", out)
            _, info = _run_quiet(cmd_info, str(header), str(data))
            self.assertIn("Entries: 4", info)

            with ArchiveReader.open(str(header), str(data)) as r:
                target = r.entries()[3]
            with open(data, "r+b") as fh:
                fh.seek(target.offset)
                fh.write(b"\x00\x00")
            ok, out = _run_quiet(cmd_verify, str(header), str(data))
            self.assertFalse(ok)
            self.assertIn("FAIL", out)
            self.assertIn("COURSE.DAT", out)

        self.run_with_tmpdir(scenario)

    def test_main_reports_truncated_header(self):
        def scenario(tmp_path: Path):
            header, data, _files, _order = self._pack(tmp_path)
            with open(header, "r+b") as fh:
                fh.truncate(100)
            err = io.StringIO()
            with contextlib.redirect_stderr(err), contextlib.redirect_stdout(io.StringIO()):
                with self.assertRaises(SystemExit) as ctx:
                    main(["list", str(header), str(data)])
            self.assertEqual(ctx.exception.code, 2)
            self.assertIn("Error:", err.getvalue())

        self.run_with_tmpdir(scenario)

    def test_main_pack_missing_input(self):
        def scenario(tmp_path: Path):
            err = io.StringIO()
            with contextlib.redirect_stderr(err), contextlib.redirect_stdout(io.StringIO()):
                with self.assertRaises(SystemExit) as ctx:
                    main(["pack", str(tmp_path / "H"), str(tmp_path / "D"), str(tmp_path / "missing.bin")])
            self.assertEqual(ctx.exception.code, 2)
            self.assertIn("missing.bin", err.getvalue())

        self.run_with_tmpdir(scenario)

    def test_main_gst_roundtrip(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "plain.bin"
            src.write_bytes(b"gst payload " * 200)
            with contextlib.redirect_stdout(io.StringIO()):
                main(["gst-compress", str(src), str(tmp_path / "X.GST")])
                main(["gst-decompress", str(tmp_path / "X.GST"), str(tmp_path / "X.GST.DE")])
            self.assertEqual((tmp_path / "X.GST.DE").read_bytes(), src.read_bytes())

        self.run_with_tmpdir(scenario)

    def test_unpack_keeps_clashing_names_apart(self):
        def scenario(tmp_path: Path):
            header, data = tmp_path / "FAT_Z.BIN", tmp_path / "BG3ZPACK.ARC"
            entries = [("A (1).BIN", b"one"), ("A.BIN", b"two"), ("A.BIN", b"three"), ("A/B", b"four"), ("A_B", b"five")]
            with ArchiveWriter.create(str(header), str(data)) as w:
                for name, payload in entries:
                    w.write_entry(name, 0, payload)
            outdir = tmp_path / "out"
            _run_quiet(cmd_unpack, str(header), str(data), str(outdir), quiet=True)
            manifest = _json.loads((outdir / MANIFEST_NAME).read_text(encoding="utf-8"))
            files = [rec["file"] for rec in manifest["entries"]]
            self.assertEqual(files, ["A (1).BIN", "A.BIN", "A (2).BIN", "A_B", "A_B (1)"])
            self.assertEqual([rec["name"] for rec in manifest["entries"]], [n for n, _ in entries])
            for fname, (_name, payload) in zip(files, entries):
                self.assertEqual((outdir / fname).read_bytes(), payload)
            self.assertEqual(len(os.listdir(outdir)), len(entries) + 1)

        self.run_with_tmpdir(scenario)

    def test_unpack_repack_reproduces_archive(self):
        def scenario(tmp_path: Path):
            header, data = tmp_path / "FAT_Z.BIN", tmp_path / "BG3ZPACK.ARC"
            with ArchiveWriter.create(str(header), str(data)) as w:
                w.write_entry("TITLE.BIN", 3, b"title screen\n" * 40)
                w.write_entry("TITLE.BIN", -7, os.urandom(3000))
                w.write_dummy("HOLE.BIN", 12)
                w.write_entry("EMPTY.TXT", -1, b"")
                w.write_entry("DIR/COURSE", 0x7FFF, bytes(range(256)) * 20)
                w.write_entry("戦闘.BIN".encode("shift_jis"), -0x8000, b"legacy name")
            outdir = tmp_path / "out"
            _run_quiet(cmd_unpack, str(header), str(data), str(outdir), quiet=True)

            rebuilt = tmp_path / "rebuilt"
            with contextlib.redirect_stdout(io.StringIO()):
                main(["repack", str(outdir), str(rebuilt), "--quiet"])
            self.assertEqual((rebuilt / "FAT_Z.BIN").read_bytes(), header.read_bytes())
            self.assertEqual((rebuilt / "BG3ZPACK.ARC").read_bytes(), data.read_bytes())

        self.run_with_tmpdir(scenario)

    def test_repack_next_to_original_keeps_backup(self):
        def scenario(tmp_path: Path):
            header, data, files, _order = self._pack(tmp_path)
            original = header.read_bytes()
            outdir = tmp_path / "out"
            _run_quiet(cmd_unpack, str(header), str(data), str(outdir), quiet=True)
            (outdir / "COURSE.DAT").write_bytes(b"edited course")
            ok, _ = _run_quiet(cmd_repack, str(outdir), quiet=True)
            self.assertTrue(ok)
            self.assertEqual((tmp_path / "FAT_Z.BIN.bak").read_bytes(), original)
            self.assertTrue((tmp_path / "BG3ZPACK.ARC.bak").exists())
            with ArchiveReader.open(str(header), str(data)) as r:
                self.assertEqual([e.tag for e in r.entries()], [4, 4, 4, 4])
                self.assertEqual(r.find("COURSE.DAT")[0].read_all(), b"edited course")
                self.assertEqual([e.read_all() for e in r.find("TITLE.BIN")], [files["a/title.bin"], files["b/title.bin"]])

        self.run_with_tmpdir(scenario)

    def test_main_repack_missing_file(self):
        def scenario(tmp_path: Path):
            header, data, _files, _order = self._pack(tmp_path)
            outdir = tmp_path / "out"
            _run_quiet(cmd_unpack, str(header), str(data), str(outdir), quiet=True)
            (outdir / "COURSE.DAT").unlink()
            err = io.StringIO()
            with contextlib.redirect_stderr(err), contextlib.redirect_stdout(io.StringIO()):
                with self.assertRaises(SystemExit) as ctx:
                    main(["repack", str(outdir), str(tmp_path / "rebuilt")])
            self.assertEqual(ctx.exception.code, 2)
            self.assertIn("COURSE.DAT", err.getvalue())
            self.assertFalse((tmp_path / "rebuilt" / "FAT_Z.BIN").exists())

        self.run_with_tmpdir(scenario)

    def test_repack_rejects_bad_manifest(self):
        def scenario(tmp_path: Path):
            indir = tmp_path / "in"
            indir.mkdir()
            with self.assertRaises(FileNotFoundError):
                cmd_repack(str(indir))
            manifest = {
                "format": "zpack-manifest",
                "version": 1,
                "entries": [{"name": "X", "file": "../X", "tag": 0}],
            }
            (indir / MANIFEST_NAME).write_text(_json.dumps(manifest), encoding="utf-8")
            with self.assertRaises(FormatError):
                cmd_repack(str(indir))
            (indir / MANIFEST_NAME).write_text("{not json", encoding="utf-8")
            with self.assertRaises(FormatError):
                cmd_repack(str(indir))

        self.run_with_tmpdir(scenario)

    def test_name_helpers(self):
        self.assertEqual(default_entry_name("/tmp/dir/track01.dat"), "TRACK01.DAT")
        self.assertEqual(
            list(dedupe_names(["A.BIN", "B.BIN", "A.BIN", "A.BIN", "NOEXT", "NOEXT"])),
            ["A.BIN", "B.BIN", "A (1).BIN", "A (2).BIN", "NOEXT", "NOEXT (1)"],
        )
        self.assertEqual(
            list(dedupe_names(["A (1).BIN", "A.BIN", "A.BIN"])),
            ["A (1).BIN", "A.BIN", "A (2).BIN"],
        )
        self.assertEqual(list(dedupe_names(["A/B", "A_B", "a_b"])), ["A_B", "A_B (1)", "a_b (2)"])
        self.assertEqual(list(dedupe_names(["_ZPACK.JSON"], reserved=("_zpack.json",))), ["_ZPACK (1).JSON"])
        self.assertEqual(safe_file_name("DIR/FILE"), "DIR_FILE")
        with self.assertRaises(ValueError):
            safe_file_name("..")


if __name__ == "__main__":
    unittest.main()
