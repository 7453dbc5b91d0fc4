#!/usr/bin/env python3
"""
SchemaPort Command Line
=======================

Converts DDL between dialects and ORM/documentation formats, and generates
PostgreSQL migrations from two IR snapshots.

Usage:
    # Parse a script into IR JSON
    schemaport parse --dialect sqlserver --out schema.json schema.sql

    # Convert between formats
    schemaport convert --from mysql --to prisma schema.sql
    schemaport convert --from sqlserver --to supabase --with-rls --schema app schema.sql

    # Migration between two IR snapshots
    schemaport diff old.json new.json --out migration.sql --summary

    # List dialects and targets
    schemaport dialects

Exit status is 0 on success and 1 on any error.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Add parent directory to path to import SchemaPort core
sys.path.insert(0, str(Path(__file__).parent.parent.resolve()))

from core import __version__
from core.errors import SchemaPortError
from core.schema_ir import IRSchema
from core.dialects import supported_dialects
from core.emitters import supported_targets
from core.converter import parse_to_ir, convert
from core.differ import diff_schemas, generate_migration_sql
from core.report_generator import generate_report
from config.settings import get_config, configure_logging

logger = logging.getLogger(__name__)


def _read(path: str) -> str:
    if path == '-':
        return sys.stdin.read()
    return Path(path).read_text(encoding='utf-8')


def _write(text: str, out: Optional[str]):
    if out:
        Path(out).write_text(text, encoding='utf-8')
        logger.info(f"Wrote {out}")
    else:
        sys.stdout.write(text if text.endswith('\n') else text + '\n')


def _warn(lines: List[str]):
    for line in lines:
        print(f"Warning: {line}", file=sys.stderr)


def _load_ir(path: str) -> IRSchema:
    try:
        data = json.loads(_read(path))
    except json.JSONDecodeError as e:
        raise SchemaPortError(f"{path} is not valid JSON: {e}") from e
    return IRSchema.from_dict(data)


def _options(args) -> dict:
    """Option overrides named on the command line"""
    config = get_config()
    return {
        'schema': args.schema or config.default_schema,
        'with_rls': args.with_rls or config.with_rls,
        'include_comments': not args.no_comments,
        'create_schema': args.create_schema,
        'preserve_comments': args.preserve_comments,
        'add_timestamps': args.add_timestamps,
    }


def cmd_parse(args) -> int:
    result = parse_to_ir(_read(args.file), args.dialect, {'preserve_comments': args.preserve_comments})
    _warn(result.rendered_warnings())
    _write(json.dumps(result.ir.to_dict(), indent=2), args.out)
    return 0


def cmd_convert(args) -> int:
    output = convert(_read(args.file), args.source, args.target, _options(args))
    _write(output, args.out)
    return 0


def cmd_diff(args) -> int:
    diff = diff_schemas(_load_ir(args.old), _load_ir(args.new))
    if args.summary:
        for line in diff.summary():
            print(line, file=sys.stderr)

    result = generate_migration_sql(diff)
    _warn(result.rendered_warnings())
    if not result.success:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1
    _write(result.sql, args.out)

    if args.report:
        Path(args.report).write_text(generate_report(diff, result).to_markdown(), encoding='utf-8')
        logger.info(f"Wrote report {args.report}")
    return 0


def cmd_dialects(args) -> int:
    print("Source dialects:")
    for name in supported_dialects():
        print(f"  {name}")
    print("Target formats:")
    for name in supported_targets():
        print(f"  {name}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='schemaport',
        description='SchemaPort - schema conversion and migration',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--version', action='version', version=f"schemaport {__version__}")
    parser.add_argument('--log-level', default=None, help='Logging level (default: SCHEMAPORT_LOG_LEVEL or INFO)')
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('parse', help='Parse a DDL script into IR JSON')
    p.add_argument('--dialect', '-d', required=True, help='Source dialect')
    p.add_argument('--out', '-o', help='Output file (default: stdout)')
    p.add_argument('--preserve-comments', action='store_true', help='Keep column comments')
    p.add_argument('file', help="Script file, or '-' for stdin")
    p.set_defaults(func=cmd_parse)

    p = sub.add_parser('convert', help='Convert a DDL script to another format')
    p.add_argument('--from', dest='source', required=True, help='Source dialect')
    p.add_argument('--to', dest='target', required=True, help='Target format')
    p.add_argument('--schema', help='Target schema (default: SCHEMAPORT_DEFAULT_SCHEMA or public)')
    p.add_argument('--with-rls', action='store_true', help='Emit row level security policies')
    p.add_argument('--create-schema', action='store_true', help='Emit CREATE SCHEMA IF NOT EXISTS')
    p.add_argument('--no-comments', action='store_true', help='Omit COMMENT ON statements')
    p.add_argument('--preserve-comments', action='store_true', help='Keep column comments from the source')
    p.add_argument('--add-timestamps', action='store_true', help='Add created_at/updated_at columns')
    p.add_argument('--out', '-o', help='Output file (default: stdout)')
    p.add_argument('file', help="Script file, or '-' for stdin")
    p.set_defaults(func=cmd_convert)

    p = sub.add_parser('diff', help='Generate a PostgreSQL migration between two IR JSON files')
    p.add_argument('old', help='IR JSON of the current schema')
    p.add_argument('new', help='IR JSON of the desired schema')
    p.add_argument('--out', '-o', help='Output file (default: stdout)')
    p.add_argument('--summary', action='store_true', help='Print a change summary to stderr')
    p.add_argument('--report', help='Write a markdown migration report to this file')
    p.set_defaults(func=cmd_diff)

    p = sub.add_parser('dialects', help='List supported dialects and targets')
    p.set_defaults(func=cmd_dialects)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        return args.func(args)
    except SchemaPortError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
