from __future__ import annotations

import argparse
import json as _json
import os
import sys
import time
from typing import List, Optional

from zpack.blob import foz_extract, gst_compress_file, gst_decompress_file
from zpack.constants import (
    DEFAULT_DATA_NAME,
    DEFAULT_HEADER_NAME,
    DEFAULT_TAG,
    MANIFEST_FORMAT,
    MANIFEST_NAME,
    MANIFEST_VERSION,
)
from zpack.errors import CodecError, FormatError, ZPackError
from zpack.pathutil import dedupe_names, safe_file_name
from zpack.reader import ArchiveReader
from zpack.writer import ArchiveWriter


def _corrupt_hint(exc: Exception) -> None:
    print(
        f"Error: {exc}\n"
        "The header table is truncated or is not a zpack table. This command is read-only.",
        file=sys.stderr,
    )
    sys.exit(2)


def cmd_list(header: str, data: str) -> bool:
    """List archive entries.

    Args:
        header: Path to the header table file.
        data: Path to the data blob file.
    """
    try:
        with ArchiveReader.open(header, data) as r:
            entries = r.entries()
    except FormatError as exc:
        _corrupt_hint(exc)
    for e in entries:
        print(
            f"{e.index:>5}\t{e.name}\ttag={e.tag}\toffset={e.offset}\tspan={e.span}\t"
            f"csize={e.compressed_size}\tsize={e.uncompressed_size}"
        )
    return True


def cmd_info(header: str, data: str) -> bool:
    try:
        with ArchiveReader.open(header, data) as r:
            entries = r.entries()
    except FormatError as exc:
        _corrupt_hint(exc)
    dummies = sum(1 for e in entries if e.compressed_size == 0)
    packed = sum(e.span for e in entries)
    size = sum(e.uncompressed_size for e in entries)
    print(f"Archive: {header} + {data}")
    print(f"  Entries: {len(entries)}")
    print(f"    Dummies: {dummies}")
    print(f"  Stored bytes: {packed}")
    print(f"  Uncompressed bytes: {size}")
    return True


def cmd_verify(header: str, data: str) -> bool:
    """Inflate every entry and check it against its declared size.

    Prints:
        "OK" on success, "FAIL" followed by the failing entries otherwise.
    """
    failed: List[str] = []
    try:
        with ArchiveReader.open(header, data) as r:
            for e in r.entries():
                try:
                    e.read_into(_NullSink())
                except CodecError as exc:
                    failed.append(f"{e.index}:{e.name}: {exc}")
    except FormatError as exc:
        _corrupt_hint(exc)
    if failed:
        print("FAIL")
        for line in failed:
            print("  " + line)
        return False
    print("OK")
    return True


class _NullSink:
    def write(self, data) -> int:
        return len(data)


def cmd_unpack(header: str, data: str, outdir: str, *, quiet: bool = False) -> bool:
    """Extract every entry to ``outdir`` and record a manifest for ``repack``.

    Repeated or clashing names get a ' (n)' suffix on disk; the manifest
    (``_zpack.json``) keeps each entry's stored name, tag and file name in
    table order, so ``repack`` can rebuild the same header table.
    """
    outdir = outdir or "."
    os.makedirs(outdir, exist_ok=True)
    t0 = time.time()
    processed_bytes = 0
    records = []
    try:
        with ArchiveReader.open(header, data) as r:
            entries = r.entries()
            names = list(dedupe_names((e.name for e in entries), reserved=(MANIFEST_NAME,)))
            total = len(entries)
            for i, (e, fname) in enumerate(zip(entries, names), start=1):
                if not quiet:
                    print(f" unpacking: {i:>4}/{total:<4} {fname}")
                processed_bytes += r.extract(e, os.path.join(outdir, fname))
                rec = {"name": e.name, "file": fname, "tag": e.tag}
                if e.descriptor.raw_name is not None:
                    rec["name_hex"] = e.descriptor.raw_name.hex()
                if e.compressed_size == 0:
                    rec["dummy"] = True
                records.append(rec)
    except FormatError as exc:
        _corrupt_hint(exc)
    manifest = {
        "format": MANIFEST_FORMAT,
        "version": MANIFEST_VERSION,
        "header": os.path.basename(os.fspath(header)),
        "data": os.path.basename(os.fspath(data)),
        "entries": records,
    }
    with open(os.path.join(outdir, MANIFEST_NAME), "w", encoding="utf-8") as mf:
        _json.dump(manifest, mf, indent=2, ensure_ascii=False)
        mf.write("\n")
    dt = max(0.000001, time.time() - t0)
    mib = processed_bytes / (1024.0 * 1024.0)
    print(f"Done: extracted {total} entries ({mib:.2f} MiB) in {dt:.1f}s")
    return True


def _load_manifest(indir: str) -> dict:
    path = os.path.join(indir, MANIFEST_NAME)
    if not os.path.isfile(path):
        raise FileNotFoundError(f"No {MANIFEST_NAME} in {indir}; unpack the archive with zpack first")
    with open(path, "r", encoding="utf-8") as mf:
        try:
            manifest = _json.load(mf)
        except ValueError as exc:
            raise FormatError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(manifest, dict) or manifest.get("format") != MANIFEST_FORMAT:
        raise FormatError(f"{path} is not a zpack manifest")
    if manifest.get("version") != MANIFEST_VERSION:
        raise FormatError(f"Unsupported manifest version: {manifest.get('version')!r}")
    entries = manifest.get("entries")
    if not isinstance(entries, list):
        raise FormatError(f"{path} has no entry list")
    for i, rec in enumerate(entries):
        if not isinstance(rec, dict) or not isinstance(rec.get("name"), str) or not isinstance(rec.get("file"), str):
            raise FormatError(f"Manifest entry {i} needs a name and a file")
        # Files are looked up inside indir only
        if safe_file_name(rec["file"]) != rec["file"]:
            raise FormatError(f"Manifest entry {i} points outside the folder: {rec['file']!r}")
    return manifest


def _backup(path: str) -> None:
    """Move an existing output aside to ``path.bak`` unless a backup already exists."""
    backup = path + ".bak"
    if os.path.exists(path) and not os.path.exists(backup):
        os.replace(path, backup)


def cmd_repack(
    indir: str,
    outdir: Optional[str] = None,
    *,
    level: Optional[int] = None,
    quiet: bool = False,
) -> bool:
    """Rebuild an archive from a folder written by ``unpack``.

    Entries are written in manifest order with their stored names and tags,
    so repacking an unpacked archive reproduces its header table. Existing
    outputs are kept as ``.bak`` files.

    Args:
        indir: Folder holding the extracted files and ``_zpack.json``.
        outdir: Where the header and data files go (default: the parent of ``indir``).
        level: zlib compression level.
    """
    manifest = _load_manifest(indir)
    if outdir is None:
        outdir = os.path.dirname(os.path.abspath(indir))
    os.makedirs(outdir, exist_ok=True)
    header_path = os.path.join(outdir, safe_file_name(manifest.get("header") or DEFAULT_HEADER_NAME))
    data_path = os.path.join(outdir, safe_file_name(manifest.get("data") or DEFAULT_DATA_NAME))
    records = manifest["entries"]
    for rec in records:
        src = os.path.join(indir, rec["file"])
        if not rec.get("dummy") and not os.path.isfile(src):
            raise FileNotFoundError(f"Cannot find a file specified for repacking: {src}")
    _backup(header_path)
    _backup(data_path)
    t0 = time.time()
    total = len(records)
    processed = 0
    with ArchiveWriter.create(header_path, data_path, level=level) as w:
        for i, rec in enumerate(records, start=1):
            name = bytes.fromhex(rec["name_hex"]) if "name_hex" in rec else rec["name"]
            tag = rec.get("tag", DEFAULT_TAG)
            if rec.get("dummy"):
                w.write_dummy(name, tag)
            else:
                desc = w.write_file(os.path.join(indir, rec["file"]), name=name, tag=tag)
                processed += desc.uncompressed_size
            if not quiet:
                print(f" repacking: {i:>4}/{total:<4} {rec['file']}")
        w.finish()
        stored = w.data_position
    dt = max(0.000001, time.time() - t0)
    print(f"Done: {header_path} + {data_path}: {total} entries; {processed} bytes -> {stored} bytes in {dt:.1f}s")
    return True


def cmd_pack(
    header: str,
    data: str,
    inputs: List[str],
    *,
    tag: int = DEFAULT_TAG,
    level: Optional[int] = None,
    quiet: bool = False,
) -> bool:
    """Build a new archive from files, in the order given.

    Args:
        header: Output header table path.
        data: Output data blob path.
        inputs: Files to store; entry names are their upper-cased base names.
        tag: Tag stored for every entry.
        level: zlib compression level.
    """
    files = [p for p in inputs if os.path.isfile(p)]
    missing = [p for p in inputs if not os.path.isfile(p)]
    if missing:
        raise FileNotFoundError(f"Cannot find a file specified for packing: {missing[0]}")
    t0 = time.time()
    total_bytes = sum(os.path.getsize(p) for p in files) or 1
    processed = 0
    with ArchiveWriter.create(header, data, level=level) as w:
        for p in files:
            desc = w.write_file(p, tag=tag)
            processed += desc.uncompressed_size
            if not quiet:
                pct = processed * 100.0 / total_bytes
                print(f" {pct:6.2f}% packing: {desc.name}")
        w.finish()
        stored = w.data_position
    dt = max(0.000001, time.time() - t0)
    print(f"Done: {len(files)} entries; {processed} bytes -> {stored} bytes in {dt:.1f}s")
    return True


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="zpack",
        description="Sector-aligned zlib archive tool (header table + data blob)",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_list = sub.add_parser("list", help="List archive entries")
    ap_list.add_argument("header", help="Header table path (e.g. FAT_Z.BIN)")
    ap_list.add_argument("data", help="Data blob path (e.g. BG3ZPACK.ARC)")

    ap_info = sub.add_parser("info", help="Show archive summary")
    ap_info.add_argument("header", help="Header table path")
    ap_info.add_argument("data", help="Data blob path")

    ap_verify = sub.add_parser("verify", help="Inflate every entry and check declared sizes")
    ap_verify.add_argument("header", help="Header table path")
    ap_verify.add_argument("data", help="Data blob path")

    ap_unpack = sub.add_parser("unpack", help="Extract all entries")
    ap_unpack.add_argument("header", help="Header table path")
    ap_unpack.add_argument("data", help="Data blob path")
    ap_unpack.add_argument("outdir", help="Output directory")
    ap_unpack.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_pack = sub.add_parser("pack", help="Create an archive from files")
    ap_pack.add_argument("header", help="Output header table path")
    ap_pack.add_argument("data", help="Output data blob path")
    ap_pack.add_argument("inputs", nargs="+", help="Input files, stored in the order given")
    ap_pack.add_argument("--tag", type=int, default=DEFAULT_TAG, help="Tag stored for each entry (default -1)")
    ap_pack.add_argument("--level", type=int, default=None, help="zlib level 0-9 (default 6)")
    ap_pack.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_repack = sub.add_parser("repack", help="Rebuild an archive from a folder written by unpack")
    ap_repack.add_argument("indir", help="Folder holding the extracted files and _zpack.json")
    ap_repack.add_argument("outdir", nargs="?", default=None, help="Output directory (default: parent of indir)")
    ap_repack.add_argument("--level", type=int, default=None, help="zlib level 0-9 (default 6)")
    ap_repack.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_gst_d = sub.add_parser("gst-decompress", help="Inflate a single-stream GST file")
    ap_gst_d.add_argument("src")
    ap_gst_d.add_argument("dst")

    ap_gst_c = sub.add_parser("gst-compress", help="Deflate a file into a single-stream GST file")
    ap_gst_c.add_argument("src")
    ap_gst_c.add_argument("dst")
    ap_gst_c.add_argument("--level", type=int, default=None, help="zlib level 0-9 (default 6)")

    ap_foz = sub.add_parser("foz-extract", help="Extract the payload of a FOZ file under its stored name")
    ap_foz.add_argument("src")
    ap_foz.add_argument("outdir", nargs="?", default=None, help="Output directory (default: next to src)")

    args = ap.parse_args(argv)
    try:
        if args.cmd == "list":
            cmd_list(args.header, args.data)
        elif args.cmd == "info":
            cmd_info(args.header, args.data)
        elif args.cmd == "verify":
            ok = cmd_verify(args.header, args.data)
            sys.exit(0 if ok else 1)
        elif args.cmd == "unpack":
            cmd_unpack(args.header, args.data, args.outdir, quiet=args.quiet)
        elif args.cmd == "pack":
            cmd_pack(args.header, args.data, args.inputs, tag=args.tag, level=args.level, quiet=args.quiet)
        elif args.cmd == "repack":
            cmd_repack(args.indir, args.outdir, level=args.level, quiet=args.quiet)
        elif args.cmd == "gst-decompress":
            n = gst_decompress_file(args.src, args.dst)
            print(f"Done: {args.dst} ({n} bytes)")
        elif args.cmd == "gst-compress":
            n = gst_compress_file(args.src, args.dst, level=args.level)
            print(f"Done: {args.dst} ({n} bytes)")
        elif args.cmd == "foz-extract":
            outdir = args.outdir if args.outdir is not None else (os.path.dirname(args.src) or ".")
            print(f"Done: {foz_extract(args.src, outdir)}")
        else:
            raise RuntimeError("Unknown command")
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (ZPackError, OSError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
