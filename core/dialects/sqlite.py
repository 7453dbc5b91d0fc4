"""
SQLite source dialect.

Well-known type names are kept as written; anything else is resolved with
SQLite's column affinity rules.
"""

import logging
from types import MappingProxyType
from typing import Optional

from core.ddl_parser import DDLParser, ParseResult, ParsedColumn, ParsedTable, TokenStream
from core.normalizer import normalize_tables, split_type
from core.dialects.base import Dialect, DialectStrategy

logger = logging.getLogger(__name__)

KNOWN_TYPES = {
    'INTEGER', 'BIGINT', 'SMALLINT', 'TEXT', 'VARCHAR', 'CHAR', 'REAL', 'DOUBLE PRECISION',
    'FLOAT', 'NUMERIC', 'DECIMAL', 'BOOLEAN', 'DATE', 'DATETIME', 'TIMESTAMP', 'BLOB',
    'JSON', 'UUID',
}

TYPE_MAP = {
    'INT': 'INTEGER',
    'CLOB': 'TEXT',
    'BOOL': 'BOOLEAN',
    'DOUBLE': 'DOUBLE PRECISION',
    '': 'TEXT',
}

DEFAULT_MAP = {
    "datetime('now')": 'now()',
    "datetime('now', 'localtime')": 'now()',
    'current_timestamp': 'now()',
    "strftime('%s', 'now')": 'now()',
    'random()': 'random()',
    'lower(hex(randomblob(16)))': 'gen_random_uuid()',
}


def apply_affinity(raw_type: str) -> str:
    """Resolve a declared type through SQLite's affinity rules"""
    base, params = split_type(raw_type)
    if base in KNOWN_TYPES:
        return base + params
    if 'INT' in base:
        return 'INTEGER'
    if any(word in base for word in ('CHAR', 'CLOB', 'TEXT')):
        return 'TEXT'
    if 'BLOB' in base:
        return 'BLOB'
    if any(word in base for word in ('REAL', 'FLOA', 'DOUB')):
        return 'REAL'
    return 'NUMERIC'


class SQLiteParser(DDLParser):
    dialect = 'sqlite'

    def _parse_column_option(self, ts: TokenStream, column: ParsedColumn, table: ParsedTable,
                             constraint_name: Optional[str]) -> bool:
        if ts.accept_word('AUTOINCREMENT'):
            column.is_auto_increment = True
            column.nullable = False
            return True
        if ts.accept_sequence('ON', 'CONFLICT'):
            ts.next()
            return True
        return super()._parse_column_option(ts, column, table, constraint_name)

    def _finish_column(self, column: ParsedColumn, table: ParsedTable):
        # INTEGER PRIMARY KEY aliases the rowid
        if column.is_primary_key and column.raw_type.upper() == 'INTEGER':
            column.is_auto_increment = True


def parse(script: str, options=None) -> ParseResult:
    result = SQLiteParser(options).parse(script)
    result.tables = normalize_tables(result.tables, STRATEGY)
    return result


STRATEGY = DialectStrategy(
    dialect=Dialect.SQLITE,
    parse=parse,
    type_map=MappingProxyType(TYPE_MAP),
    default_map=MappingProxyType(DEFAULT_MAP),
    type_rule=apply_affinity,
)
