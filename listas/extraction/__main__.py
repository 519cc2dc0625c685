"""
Package CLI entrypoint for supply-list tooling.

Usage:
  python -m listas.extraction infer "3° Básico B 2026.pdf" ...
  python -m listas.extraction import <school_id> lista1.pdf lista2.pdf ...
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from reconciliation.course_inferencer import describe, infer

from listas.extraction.pipeline import import_pdfs
from listas.store import CourseStore


def _infer(labels: list[str]) -> int:
    failures = 0
    for label in labels:
        d = infer(label)
        if d is None:
            failures += 1
            print(f"[infer] ❌ {label}: cannot infer course, route to manual review")
            continue
        print(f"[infer] ✅ {label}: {describe(d)} confidence={d.confidence}")
    return 0 if failures == 0 else 2


def _import(school_id: str, paths: list[str], accept_ambiguous: bool) -> int:
    files = []
    for p in paths:
        path = Path(p)
        if not path.exists():
            print(f"[import] ❌ PDF not found: {path}")
            return 2
        files.append((path.name, path.read_bytes()))

    store = CourseStore.from_url(create_tables=True)
    manifest = import_pdfs(store, files, school_id=school_id, accept_ambiguous=accept_ambiguous)

    for doc in manifest["documents"]:
        mark = "✅" if doc["course_id"] else "⚠️"
        print(
            f"[import] {mark} {doc['filename']}: status={doc['status']} course={doc['course_id']} "
            f"items={doc['items_written']} located={doc['items_located']}"
        )
    for w in manifest["warnings"]:
        print(f"[import] warning: {w}")
    if manifest.get("manifest_uri"):
        print(f"[import] manifest: {manifest['manifest_uri']}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="python -m listas.extraction")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_inf = sub.add_parser("infer", help="Infer the course from one or more filenames")
    p_inf.add_argument("labels", nargs="+", help="Filenames or labels")
    p_inf.add_argument("--json", action="store_true", help="Print descriptors as JSON")

    p_imp = sub.add_parser("import", help="Import supply-list PDFs for a school")
    p_imp.add_argument("school_id", help="School identifier")
    p_imp.add_argument("pdfs", nargs="+", help="PDF paths")
    p_imp.add_argument("--accept-ambiguous", action="store_true", help="Apply matches scoring 80-94 without confirmation")

    args = parser.parse_args(argv)

    if args.cmd == "infer":
        if args.json:
            out = []
            for label in args.labels:
                d = infer(label)
                out.append({"label": label, "descriptor": d.model_dump(mode="json") if d else None})
            print(json.dumps(out, indent=2, ensure_ascii=False))
            return 0
        return _infer(args.labels)

    if args.cmd == "import":
        return _import(args.school_id, args.pdfs, args.accept_ambiguous)

    parser.print_help()
    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
