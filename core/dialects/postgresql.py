"""
PostgreSQL source dialect.

Adds CREATE TYPE ... AS ENUM collection, ::cast stripping on defaults and
nextval() sequence defaults as auto-increment.
"""

import logging
from types import MappingProxyType

from core.ddl_parser import (DDLParser, ParseResult, ParsedColumn, ParsedEnum, ParsedTable,
                             TokenStream, unquote_string)
from core.lexer import TokenType, split_top_level_tokens
from core.normalizer import normalize_tables
from core.dialects.base import Dialect, DialectStrategy

logger = logging.getLogger(__name__)

TYPE_MAP = {
    'INT': 'INTEGER',
    'INT2': 'SMALLINT',
    'INT4': 'INTEGER',
    'INT8': 'BIGINT',
    'FLOAT4': 'REAL',
    'FLOAT8': 'DOUBLE PRECISION',
    'BOOL': 'BOOLEAN',
    'CHARACTER VARYING': 'VARCHAR',
    'CHARACTER': 'CHAR',
    'TIMESTAMPTZ': 'TIMESTAMP',
    'TIMESTAMP WITH TIME ZONE': 'TIMESTAMP',
    'TIMESTAMP WITHOUT TIME ZONE': 'TIMESTAMP',
    'TIME WITH TIME ZONE': 'TIME',
    'TIME WITHOUT TIME ZONE': 'TIME',
    'JSONB': 'JSON',
    'CITEXT': 'TEXT',
}

DEFAULT_MAP = {
    'now()': 'now()',
    'current_timestamp': 'now()',
    'localtimestamp': 'now()',
    'transaction_timestamp()': 'now()',
    'gen_random_uuid()': 'gen_random_uuid()',
    'uuid_generate_v4()': 'gen_random_uuid()',
    'current_user': 'CURRENT_USER',
    'session_user': 'CURRENT_USER',
    'random()': 'random()',
}


def strip_casts(expression: str) -> str:
    """'active'::character varying -> 'active'; quotes are respected"""
    result = []
    in_quote = False
    index = 0
    while index < len(expression):
        char = expression[index]
        if char == "'":
            in_quote = not in_quote
        if not in_quote and expression.startswith('::', index):
            # Skip the type name, including multi-word and sized forms
            index += 2
            depth = 0
            while index < len(expression):
                char = expression[index]
                if char == '(':
                    depth += 1
                elif char == ')':
                    if depth == 0:
                        break
                    depth -= 1
                elif depth == 0 and not (char.isalnum() or char in '_ []"'):
                    break
                index += 1
            continue
        result.append(char)
        index += 1
    return ''.join(result).strip()


class PostgreSQLParser(DDLParser):
    dialect = 'postgresql'

    def _parse_other_statement(self, ts: TokenStream, result: ParseResult) -> bool:
        # CREATE TYPE name AS ENUM ('a', 'b')
        if not (ts.at_word('CREATE') and ts.at_word('TYPE', offset=1)):
            return False
        ts.next()
        ts.next()
        _, name = ts.qualified_name()
        ts.expect_word('AS')
        if not ts.accept_word('ENUM'):
            logger.debug(f"Ignoring composite type {name}")
            return True
        values = []
        for group in split_top_level_tokens(ts.paren_group()):
            if group[0].type != TokenType.STRING:
                ts.error(f"Enum {name} values must be string literals")
            values.append(unquote_string(group[0].value))
        result.enums.append(ParsedEnum(name, values))
        return True

    def _finish_column(self, column: ParsedColumn, table: ParsedTable):
        if column.default and column.default.lower().startswith('nextval('):
            column.is_auto_increment = True
            column.nullable = False
            column.default = None


def parse(script: str, options=None) -> ParseResult:
    result = PostgreSQLParser(options).parse(script)
    result.tables = normalize_tables(result.tables, STRATEGY)
    return result


STRATEGY = DialectStrategy(
    dialect=Dialect.POSTGRESQL,
    parse=parse,
    type_map=MappingProxyType(TYPE_MAP),
    default_map=MappingProxyType(DEFAULT_MAP),
    default_rule=strip_casts,
)
