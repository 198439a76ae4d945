#!/usr/bin/env python3
"""
cardkeep command line.

Usage:
    python -m cardkeep serve                  # local JSON API
    python -m cardkeep list --search milk --sort priority --order desc
    python -m cardkeep stats
    python -m cardkeep export [--dir DIR]     # writes cards-backup-YYYY-MM-DD.json
    python -m cardkeep import FILE
    python -m cardkeep clear --yes

Log records go to stderr; stdout carries only the command output.
"""
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .board import CardBoard
from .config import Config
from .errors import CardkeepError
from .schema import FilterSpec, SortKey, SortOrder, SortSpec
from .storage import MemoryStorage, SQLiteStorage
from .store import CardStore
from .transfer import write_backup

logger = logging.getLogger("cardkeep")


def build_board(cfg: Config, memory: bool = False) -> CardBoard:
    """Wire storage → store → board from config."""
    storage = MemoryStorage() if memory else SQLiteStorage(cfg.db_path)
    store = CardStore(storage, strict=cfg.strict_persistence)
    sort = SortSpec(SortKey.from_str(cfg.default_sort), SortOrder.from_str(cfg.default_order))
    return CardBoard(store, sort=sort)


def _cmd_serve(board: CardBoard, cfg: Config, args) -> int:
    from .server import create_app

    app = create_app(board, cfg)
    if not cfg.api_secret:
        logger.warning("CARDKEEP_API_SECRET not set: mutating routes are open")
    logger.info("Serving on http://%s:%d", cfg.host, cfg.port)
    app.run(host=cfg.host, port=cfg.port)
    return 0


def _cmd_list(board: CardBoard, cfg: Config, args) -> int:
    filters = FilterSpec(
        search=args.search or "",
        categories=args.category or [],
        tags=args.tag or [],
        priorities=args.priority or [],
        show_completed=not args.hide_completed,
    )
    sort = SortSpec(
        key=SortKey.from_str(args.sort) if args.sort else board.sort.key,
        order=SortOrder.from_str(args.order) if args.order else board.sort.order,
    )
    for card in board.query(filters, sort):
        category = board.category_for(card)
        mark = "x" if card.completed else " "
        due = card.due_date.date().isoformat() if card.due_date else "-"
        tags = ",".join(card.tags)
        print(f"[{mark}] {card.id}  {card.priority.value:<8} {due:<10} "
              f"{category.name if category else '(no category)':<12} {card.title}  {tags}")
    return 0


def _cmd_stats(board: CardBoard, cfg: Config, args) -> int:
    print(json.dumps(board.stats(), indent=2))
    return 0


def _cmd_export(board: CardBoard, cfg: Config, args) -> int:
    path = write_backup(board.store, args.dir or cfg.backup_dir)
    print(path)
    return 0


def _cmd_import(board: CardBoard, cfg: Config, args) -> int:
    result = asyncio.run(board.import_file(args.file))
    print(result.message)
    return 0 if result.success else 1


def _cmd_clear(board: CardBoard, cfg: Config, args) -> int:
    if not args.yes:
        print("Refusing to clear all data without --yes", file=sys.stderr)
        return 2
    board.clear_all_data()
    print("All data cleared.")
    return 0


COMMANDS = {
    "serve": _cmd_serve,
    "list": _cmd_list,
    "stats": _cmd_stats,
    "export": _cmd_export,
    "import": _cmd_import,
    "clear": _cmd_clear,
}


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="cardkeep", description="Local card/task organizer")
    ap.add_argument("--config", default=None, help="Path to cardkeep.yaml")
    ap.add_argument("--db", default=None, help="SQLite file (overrides config and CARDKEEP_DB)")
    ap.add_argument("--memory", action="store_true", help="Use a throwaway in-memory store")
    sub = ap.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the local JSON API")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    ls = sub.add_parser("list", help="List cards")
    ls.add_argument("--search", default=None)
    ls.add_argument("--category", action="append", help="Category id (repeatable)")
    ls.add_argument("--tag", action="append", help="Tag (repeatable)")
    ls.add_argument("--priority", action="append", choices=["low", "medium", "high", "critical"])
    ls.add_argument("--hide-completed", action="store_true")
    ls.add_argument("--sort", choices=[k.value for k in SortKey])
    ls.add_argument("--order", choices=[o.value for o in SortOrder])

    sub.add_parser("stats", help="Show board statistics")

    export = sub.add_parser("export", help="Write a backup file")
    export.add_argument("--dir", default=None, help="Output directory (default: backup_dir)")

    imp = sub.add_parser("import", help="Merge a backup file")
    imp.add_argument("file")

    clear = sub.add_parser("clear", help="Delete all cards, categories and settings")
    clear.add_argument("--yes", action="store_true", help="Confirm the irreversible wipe")
    return ap


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        cfg = Config.load(args.config)
    except CardkeepError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 2
    if args.db:
        cfg.db_path = str(Path(args.db).expanduser())
    if getattr(args, "host", None):
        cfg.host = args.host
    if getattr(args, "port", None):
        cfg.port = args.port

    logging.basicConfig(
        level=getattr(logging, str(cfg.log_level).upper(), logging.INFO),
        format="%(asctime)s [cardkeep] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    try:
        board = build_board(cfg, memory=args.memory)
        return COMMANDS[args.command](board, cfg, args)
    except CardkeepError as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
