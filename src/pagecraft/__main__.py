"""Pagecraft - block-based document editing engine.

Command-line access to the configured document store.

Usage:
    pagecraft new TITLE             Create a document (sqlite/memory stores)
    pagecraft show ID               List a document's blocks
    pagecraft export ID             Print a document as legacy text
    pagecraft import ID FILE        Replace a document's blocks with a Markdown file
    pagecraft migrate ID [ID...]    Convert legacy-text documents to blocks

Environment Variables:
    PAGECRAFT_STORE         Store backend: sqlite, rest or memory (default: sqlite)
    PAGECRAFT_DATA_DIR      Data directory (default: ~/.pagecraft)
    PAGECRAFT_SQLITE_PATH   SQLite database path
    PAGECRAFT_REST_URL      PostgREST base URL for the rest store
    PAGECRAFT_REST_API_KEY  API key for the rest store
    PAGECRAFT_LOG_LEVEL     Logging level (default: INFO)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import replace
from pathlib import Path

from .editor.blocks_models import Block
from .editor.legacy_parser import parse_legacy_text
from .editor.markdown_parser import parse_markdown
from .editor.markdown_renderer import render_legacy_text
from .editor.session import load_blocks
from .errors import PagecraftError
from .logging_setup import configure_logging
from .settings import Settings, settings
from .store import (
    DocumentPatch,
    DocumentStore,
    RestDocumentStore,
    SqliteDocumentStore,
    create_document,
    create_store,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pagecraft",
        description="Pagecraft - block-based document editing engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--store",
        choices=["sqlite", "rest", "memory"],
        default=None,
        help=f"Document store backend (default: {settings.store_backend})",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help=f"Logging level (default: {settings.log_level})",
    )
    parser.add_argument(
        "--version", "-V",
        action="version",
        version="%(prog)s 0.1.0",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    new = sub.add_parser("new", help="Create a document with one empty paragraph")
    new.add_argument("title")

    show = sub.add_parser("show", help="List a document's blocks")
    show.add_argument("document_id")

    export = sub.add_parser("export", help="Print a document as legacy text")
    export.add_argument("document_id")

    imp = sub.add_parser("import", help="Replace a document's blocks with a Markdown file")
    imp.add_argument("document_id")
    imp.add_argument("file", type=Path)

    migrate = sub.add_parser("migrate", help="Convert legacy-text documents to blocks")
    migrate.add_argument("document_ids", nargs="+")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    config: Settings = settings
    if args.store:
        config = replace(settings, store_backend=args.store)

    try:
        store = create_store(config)
    except PagecraftError as e:
        print(f"Error: {e}")
        return 1

    try:
        return asyncio.run(_run(args, store))
    except (PagecraftError, OSError) as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {e}")
        return 1


async def _run(args: argparse.Namespace, store: DocumentStore) -> int:
    """Run one command and close the store on the same event loop."""
    try:
        if args.command == "new":
            return cmd_new(store, args.title)
        elif args.command == "show":
            return await cmd_show(store, args.document_id)
        elif args.command == "export":
            return await cmd_export(store, args.document_id)
        elif args.command == "import":
            return await cmd_import(store, args.document_id, args.file)
        elif args.command == "migrate":
            return await cmd_migrate(store, args.document_ids)
        return 1
    finally:
        await _close_store(store)


async def _close_store(store: DocumentStore) -> None:
    if isinstance(store, SqliteDocumentStore):
        store.close()
    elif isinstance(store, RestDocumentStore):
        await store.aclose()


def cmd_new(store: DocumentStore, title: str) -> int:
    """Create a document."""
    document_id = create_document(store, title)
    print(f"Created document: {document_id}")
    print(f"Title: {title}")
    return 0


async def cmd_show(store: DocumentStore, document_id: str) -> int:
    """List a document's blocks."""
    stored = await store.load(document_id)
    blocks = load_blocks(stored)

    def print_block(block: Block, indent: int = 0) -> None:
        prefix = "  " * indent
        number = str(block.list_index) if block.list_index is not None else "-"
        text = block.content[:50] + ("..." if len(block.content) > 50 else "")
        print(f"{block.order_index:<6} {number:<6} {prefix}{block.type.value}: {text or '(empty)'}")
        for child in block.children:
            print_block(child, indent + 1)

    print(f"\n{stored.title or '(untitled)'}")
    print(f"{'Order':<6} {'List':<6} Block")
    print("-" * 60)
    for block in blocks:
        print_block(block)

    source = "structured" if stored.has_structured else "legacy text"
    print(f"\nTotal: {len(blocks)} blocks ({source})")
    return 0


async def cmd_export(store: DocumentStore, document_id: str) -> int:
    """Print a document as legacy text."""
    stored = await store.load(document_id)
    print(render_legacy_text(load_blocks(stored)))
    return 0


async def cmd_import(store: DocumentStore, document_id: str, path: Path) -> int:
    """Replace a document's blocks with parsed Markdown."""
    blocks = parse_markdown(path.read_text(encoding="utf-8"))
    receipt = await store.save(document_id, DocumentPatch(blocks=blocks))
    print(f"Imported {len(blocks)} blocks into {document_id} at {receipt.updated_at}")
    return 0


async def cmd_migrate(store: DocumentStore, document_ids: list[str]) -> int:
    """Convert legacy-text documents to structured blocks.

    The legacy text column is left untouched as a backup.
    """
    failures = 0
    for document_id in document_ids:
        try:
            stored = await store.load(document_id)
            if stored.has_structured:
                print(f"{document_id}: already structured")
                continue
            blocks = parse_legacy_text(stored.legacy_text)
            await store.save(document_id, DocumentPatch(blocks=blocks))
            print(f"{document_id}: migrated {len(blocks)} blocks")
        except PagecraftError as e:
            logger.warning("Migration of %s failed: %s", document_id, e)
            print(f"{document_id}: Error: {e}")
            failures += 1
    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
