#!/usr/bin/env python3
"""
darkpatch command line.

Usage:
    darkpatch scan page.json --domain example.com
    darkpatch scan page.json --generator proxy --generator-url http://localhost:8000
    darkpatch report
    darkpatch export patterns.json
    darkpatch import patterns.json --merge
    darkpatch serve
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

from darkpatch.config import GENERATOR_URL, STORE_NAMESPACE
from darkpatch.contracts.models import StoreDocument
from darkpatch.engine import DarkPatchEngine
from darkpatch.errors import DarkPatchError, PersistenceError
from darkpatch.host.memory import DocumentTree
from darkpatch.infrastructure.database import Database
from darkpatch.infrastructure.env import ensure_env_loaded
from darkpatch.learning.pattern_store import PatternStore
from darkpatch.learning.report import build_learning_report
from darkpatch.llm.generator import build_generator
from darkpatch.observability.logging import get_logger
from darkpatch.storage.kv import SqliteKeyValueStore

logger = get_logger(__name__)


def open_store(db_path: str | None = None) -> PatternStore:
    """Sqlite-backed store; a load failure leaves it degraded rather than raising."""
    database = Database(db_path)
    database.init_schema()
    store = PatternStore(SqliteKeyValueStore(database, STORE_NAMESPACE))
    if not store.reload():
        logger.warning("Pattern store unavailable: %s", store.last_error)
    return store


async def run_scan(
    tree: DocumentTree,
    store: PatternStore | None,
    generator_backend: str | None,
    generator_url: str = "",
    domain: str | None = None,
) -> dict[str, Any]:
    """Enable the engine for one full cycle, collect results, then disable it."""
    generator = build_generator(generator_backend, generator_url)
    engine = DarkPatchEngine(tree, store=store, generator=generator)
    report = await engine.enable(domain)
    status = engine.status()
    blocks = dict(tree.style_blocks())
    verification = engine.verify()
    await engine.disable()
    return {
        "cycle": asdict(report),
        "status": status,
        "verification": asdict(verification),
        "style_blocks": blocks,
    }


def _print_scan(result: dict[str, Any]) -> None:
    cycle = result["cycle"]
    status = result["status"]

    print("\n" + "=" * 60)
    print("DARKPATCH SCAN")
    print("=" * 60)
    print(f"Scanned nodes:     {cycle['scanned']}")
    print(f"Issues found:      {cycle['issues']}")
    print(f"Patches applied:   {cycle['applied']}")
    print(f"No patch:          {cycle['no_patch']}")
    print(f"Generations:       {cycle['generations']}")
    print(f"Confidence:        {status['confidence']}%")
    if cycle["errors"]:
        print(f"Errors:            {len(cycle['errors'])}")
        for error in cycle["errors"]:
            print(f"  - {error}")

    if result["style_blocks"]:
        print("-" * 60)
        for block_id, css in result["style_blocks"].items():
            print(f"/* {block_id} */")
            print(css)
    print()


def cmd_scan(args: argparse.Namespace) -> int:
    tree = DocumentTree.from_json(Path(args.document))
    store = None if args.no_store else open_store(args.db)
    result = asyncio.run(
        run_scan(
            tree,
            store,
            args.generator,
            args.generator_url or GENERATOR_URL,
            domain=args.domain,
        )
    )
    if args.json:
        print(json.dumps(result, indent=2, default=str))
    else:
        _print_scan(result)
    return 0


def cmd_report(args: argparse.Namespace) -> int:
    report = build_learning_report(open_store(args.db))
    print(report.model_dump_json(indent=2))
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    store = open_store(args.db)
    if not store.available:
        print(f"Pattern store unavailable: {store.last_error}", file=sys.stderr)
        return 1
    document = store.export_document()
    Path(args.path).write_text(document.model_dump_json(indent=2), encoding="utf-8")
    print(f"Exported {len(document.ledger)} ledger entries to {args.path}")
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    store = open_store(args.db)
    raw = json.loads(Path(args.path).read_text(encoding="utf-8"))
    total = store.import_document(StoreDocument.model_validate(raw), merge=args.merge)
    print(f"Imported store now holds {total} ledger entries")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    from darkpatch.api.app import main as serve

    serve()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="darkpatch", description="Find and patch dark-mode rendering defects"
    )
    parser.add_argument("--db", help="SQLite path (default: DARKPATCH_DB_PATH or data/darkpatch.db)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="Scan a JSON document tree and print patches")
    scan.add_argument("document", help="Path to a JSON document tree")
    scan.add_argument("--domain", help="Domain the document belongs to")
    scan.add_argument(
        "--generator",
        choices=["none", "gemini", "proxy"],
        default="none",
        help="Generation backend (default: none, templates only)",
    )
    scan.add_argument("--generator-url", default="", help="Base URL for the proxy backend")
    scan.add_argument("--no-store", action="store_true", help="Run without the pattern store")
    scan.add_argument("--json", action="store_true", help="Print machine-readable output")
    scan.set_defaults(func=cmd_scan)

    report = subparsers.add_parser("report", help="Print the learning report")
    report.set_defaults(func=cmd_report)

    export = subparsers.add_parser("export", help="Export the pattern store document")
    export.add_argument("path")
    export.set_defaults(func=cmd_export)

    import_ = subparsers.add_parser("import", help="Import a pattern store document")
    import_.add_argument("path")
    import_.add_argument("--merge", action="store_true", help="Merge into the existing ledger")
    import_.set_defaults(func=cmd_import)

    serve = subparsers.add_parser("serve", help="Run the API server")
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    ensure_env_loaded()
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return args.func(args)
    except (DarkPatchError, ValueError, OSError) as e:
        if isinstance(e, PersistenceError):
            print(f"Pattern store error: {e}", file=sys.stderr)
        else:
            print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
