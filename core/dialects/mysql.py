"""
MySQL / MariaDB source dialect.
"""

import logging
from types import MappingProxyType
from typing import Optional

from core.ddl_parser import DDLParser, ParseResult, ParsedColumn, ParsedTable, TokenStream, unquote_string
from core.lexer import TokenType
from core.normalizer import normalize_tables
from core.dialects.base import Dialect, DialectStrategy

logger = logging.getLogger(__name__)

TYPE_MAP = {
    'TINYINT(1)': 'BOOLEAN',
    'BOOL': 'BOOLEAN',
    'TINYINT': 'SMALLINT',
    'MEDIUMINT': 'INTEGER',
    'INT': 'INTEGER',
    'YEAR': 'INTEGER',
    'TINYTEXT': 'TEXT',
    'MEDIUMTEXT': 'TEXT',
    'LONGTEXT': 'TEXT',
    'TINYBLOB': 'BLOB',
    'MEDIUMBLOB': 'BLOB',
    'LONGBLOB': 'BLOB',
    'DATETIME': 'TIMESTAMP',
    'ENUM': 'VARCHAR(255)',
    'SET': 'VARCHAR(255)',
    'DOUBLE': 'DOUBLE PRECISION',
}

DEFAULT_MAP = {
    'now()': 'now()',
    'current_timestamp': 'now()',
    'current_timestamp()': 'now()',
    'localtimestamp': 'now()',
    'uuid()': 'gen_random_uuid()',
    'user()': 'CURRENT_USER',
    'current_user()': 'CURRENT_USER',
    'current_user': 'CURRENT_USER',
    'rand()': 'random()',
}


class MySQLParser(DDLParser):
    dialect = 'mysql'

    def _parse_column_option(self, ts: TokenStream, column: ParsedColumn, table: ParsedTable,
                             constraint_name: Optional[str]) -> bool:
        if ts.accept_word('AUTO_INCREMENT'):
            column.is_auto_increment = True
            column.nullable = False
            return True
        if ts.at_word('ON') and ts.at_word('UPDATE', offset=1):
            # ON UPDATE CURRENT_TIMESTAMP[(n)]
            ts.next()
            ts.next()
            ts.next()
            if ts.at_type(TokenType.LPAREN):
                ts.paren_group()
            return True
        if ts.accept_word('COMMENT'):
            text = unquote_string(ts.expect(TokenType.STRING).value)
            if self.preserve_comments:
                column.comment = text
            return True
        if ts.accept_sequence('CHARACTER', 'SET') or ts.accept_word('CHARSET'):
            ts.identifier()
            return True
        return super()._parse_column_option(ts, column, table, constraint_name)

    def _parse_table_options(self, ts: TokenStream, table: ParsedTable):
        # ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COMMENT='...'
        while not ts.at_end():
            if ts.accept_word('COMMENT'):
                if ts.at_type(TokenType.OPERATOR) and ts.peek().value == '=':
                    ts.next()
                if ts.at_type(TokenType.STRING):
                    text = unquote_string(ts.next().value)
                    if self.preserve_comments:
                        table.comment = text
                continue
            ts.next()


def parse(script: str, options=None) -> ParseResult:
    result = MySQLParser(options).parse(script)
    result.tables = normalize_tables(result.tables, STRATEGY)
    return result


STRATEGY = DialectStrategy(
    dialect=Dialect.MYSQL,
    parse=parse,
    type_map=MappingProxyType(TYPE_MAP),
    default_map=MappingProxyType(DEFAULT_MAP),
)
