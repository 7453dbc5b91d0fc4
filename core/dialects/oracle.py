"""
Oracle source dialect.

NUMBER is resolved by its precision and scale: integral forms become
INTEGER or BIGINT, fractional forms DECIMAL(p,s).
"""

import logging
from types import MappingProxyType
from typing import Optional

from core.ddl_parser import DDLParser, ParseResult, ParsedColumn, ParsedTable, TokenStream
from core.normalizer import normalize_tables, split_type
from core.dialects.base import Dialect, DialectStrategy

logger = logging.getLogger(__name__)

# NUMBER(p) with p above this no longer fits a 32-bit integer
INTEGER_DIGITS = 10

TYPE_MAP = {
    'VARCHAR2': 'VARCHAR',
    'NVARCHAR2': 'VARCHAR',
    'NCHAR': 'CHAR',
    'CLOB': 'TEXT',
    'NCLOB': 'TEXT',
    'LONG': 'TEXT',
    'BLOB': 'BLOB',
    'RAW': 'BLOB',
    'LONG RAW': 'BLOB',
    'BFILE': 'BLOB',
    'BINARY_FLOAT': 'REAL',
    'BINARY_DOUBLE': 'DOUBLE PRECISION',
    'TIMESTAMP WITH TIME ZONE': 'TIMESTAMP',
    'TIMESTAMP WITH LOCAL TIME ZONE': 'TIMESTAMP',
    'XMLTYPE': 'TEXT',
}

DEFAULT_MAP = {
    'sysdate': 'now()',
    'systimestamp': 'now()',
    'current_timestamp': 'now()',
    'current_date': 'now()',
    'localtimestamp': 'now()',
    'sys_guid()': 'gen_random_uuid()',
    'user': 'CURRENT_USER',
    'dbms_random.value': 'random()',
}


def resolve_number(raw_type: str) -> str:
    """Resolve NUMBER(p,s) spellings; other unknown types pass through"""
    base, params = split_type(raw_type)
    if base != 'NUMBER':
        return base + params

    args = [a.strip() for a in params[1:-1].split(',')] if params else []
    precision = args[0] if args else None
    scale = args[1] if len(args) > 1 else '0'

    if scale not in ('0', ''):
        if precision and precision.isdigit():
            return f"DECIMAL({precision},{scale})"
        return 'DECIMAL'
    if precision and precision.isdigit() and int(precision) > INTEGER_DIGITS:
        return 'BIGINT'
    if precision == '*':
        return 'BIGINT'
    return 'INTEGER'


class OracleParser(DDLParser):
    dialect = 'oracle'

    def _parse_column_option(self, ts: TokenStream, column: ParsedColumn, table: ParsedTable,
                             constraint_name: Optional[str]) -> bool:
        # Constraint state clauses: ENABLE, DISABLE, VALIDATE, NOVALIDATE, RELY
        if ts.accept_word('ENABLE', 'DISABLE', 'VALIDATE', 'NOVALIDATE', 'RELY', 'NORELY'):
            return True
        if ts.accept_sequence('USING', 'INDEX'):
            return True
        return super()._parse_column_option(ts, column, table, constraint_name)


def parse(script: str, options=None) -> ParseResult:
    result = OracleParser(options).parse(script)
    result.tables = normalize_tables(result.tables, STRATEGY)
    return result


STRATEGY = DialectStrategy(
    dialect=Dialect.ORACLE,
    parse=parse,
    type_map=MappingProxyType(TYPE_MAP),
    default_map=MappingProxyType(DEFAULT_MAP),
    type_rule=resolve_number,
)
