#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from potion.config import DATABASE_PATH, DEFAULT_WORKSPACE_ID, KV_PATH
from potion.errors import MigrationError, NotFoundError
from potion.logging_setup import configure_logging
from potion.provider import StorageContext, StorageProvider
from potion.services.workspaces import (
    export_page_markdown_to_file,
    export_page_to_file,
    export_workspace_to_file,
    import_workspace_from_file,
)
from potion.transfer import validate_export_document


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _open(args: argparse.Namespace) -> StorageContext:
    # Opens the store without running migrations; `migrate` runs them explicitly.
    provider = StorageProvider(Path(args.database_path), Path(args.kv_path))
    context = provider.build_context()
    context.adapter.init()
    return context


def cmd_status(args: argparse.Namespace, context: StorageContext) -> int:
    _print_json(
        {
            "migrations": context.runner.status().to_record(),
            "stats": context.adapter.get_stats().to_record(),
        }
    )
    return 0


def cmd_migrate(args: argparse.Namespace, context: StorageContext) -> int:
    result = context.runner.run(context.adapter)
    _print_json(result.to_record())
    return 0 if result.success else 1


def cmd_rollback(args: argparse.Namespace, context: StorageContext) -> int:
    try:
        state = context.runner.rollback(context.adapter, args.version)
    except MigrationError as exc:
        print(f"[error] {exc}", file=sys.stderr)
        return 1
    print(f"[ok] rolled back; schema version is now {state.current_version}")
    return 0


def cmd_export(args: argparse.Namespace, context: StorageContext) -> int:
    try:
        if args.page and args.markdown:
            target = export_page_markdown_to_file(context.adapter, args.page, args.output)
        elif args.page:
            target = export_page_to_file(
                context.adapter, args.page, args.output, include_children=not args.no_children
            )
        elif args.database:
            export = context.adapter.export_database(args.database)
            target = Path(args.output)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(json.dumps(export.to_record(), indent=2, ensure_ascii=False), encoding="utf-8")
        else:
            target = export_workspace_to_file(context.adapter, args.output, args.workspace)
    except NotFoundError as exc:
        print(f"[error] {exc}", file=sys.stderr)
        return 1
    print(f"[ok] exported to {target}")
    return 0


def cmd_import(args: argparse.Namespace, context: StorageContext) -> int:
    result = import_workspace_from_file(context.adapter, args.file, args.mode, args.workspace)
    _print_json(result.to_record())
    return 0 if result.success else 1


def cmd_validate(args: argparse.Namespace, context: Optional[StorageContext]) -> int:
    try:
        raw = Path(args.file).expanduser().read_text(encoding="utf-8")
    except OSError as exc:
        print(f"[error] {exc}", file=sys.stderr)
        return 1
    validation = validate_export_document(raw)
    _print_json(validation.to_record())
    return 0 if validation.valid else 1


def cmd_backups(args: argparse.Namespace, context: StorageContext) -> int:
    if args.prune is not None:
        removed = context.backups.prune_backups(args.prune)
        print(f"[ok] pruned {len(removed)} backup(s)")
    _print_json([backup.to_record() for backup in context.backups.list_backups()])
    return 0


def cmd_restore(args: argparse.Namespace, context: StorageContext) -> int:
    try:
        results = context.backups.restore_backup(context.adapter, args.key)
    except NotFoundError as exc:
        print(f"[error] {exc}", file=sys.stderr)
        return 1
    _print_json([result.to_record() for result in results])
    return 0 if all(result.success for result in results) else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Administer a local Potion storage directory.")
    parser.add_argument(
        "--database-path",
        default=str(DATABASE_PATH),
        help="Path to the SQLite record store.",
    )
    parser.add_argument(
        "--kv-path",
        default=str(KV_PATH),
        help="Path to the side-channel store holding backups and migration state.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    status = subparsers.add_parser("status", help="Show schema version and storage statistics.")
    status.set_defaults(handler=cmd_status)

    migrate = subparsers.add_parser("migrate", help="Run pending migrations.")
    migrate.set_defaults(handler=cmd_migrate)

    rollback = subparsers.add_parser("rollback", help="Reverse the current migration.")
    rollback.add_argument("--version", type=int, default=None)
    rollback.set_defaults(handler=cmd_rollback)

    export = subparsers.add_parser("export", help="Export a workspace, page, or database.")
    export.add_argument("output", help="Target file or directory.")
    export.add_argument("--workspace", default=DEFAULT_WORKSPACE_ID)
    export.add_argument("--page", default=None)
    export.add_argument("--database", default=None)
    export.add_argument("--no-children", action="store_true", help="Export only the named page.")
    export.add_argument("--markdown", action="store_true", help="Write the page as Markdown.")
    export.set_defaults(handler=cmd_export)

    import_ = subparsers.add_parser("import", help="Import an export file.")
    import_.add_argument("file")
    import_.add_argument("--mode", choices=("replace", "merge"), default="merge")
    import_.add_argument("--workspace", default=None, help="Target workspace id (defaults to the file's).")
    import_.set_defaults(handler=cmd_import)

    validate = subparsers.add_parser("validate", help="Check an export file without importing it.")
    validate.add_argument("file")
    validate.set_defaults(handler=cmd_validate, needs_storage=False)

    backups = subparsers.add_parser("backups", help="List (and optionally prune) backups.")
    backups.add_argument("--prune", type=int, default=None, metavar="KEEP")
    backups.set_defaults(handler=cmd_backups)

    restore = subparsers.add_parser("restore", help="Restore every workspace from a backup.")
    restore.add_argument("key")
    restore.set_defaults(handler=cmd_restore)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()
    if not getattr(args, "needs_storage", True):
        return args.handler(args, None)

    context = _open(args)
    try:
        return args.handler(args, context)
    finally:
        context.adapter.close()


if __name__ == "__main__":
    sys.exit(main())
