"""
SQL Server (T-SQL) source dialect.

Bracket identifiers, IDENTITY(seed, step) auto-increment and GO batch
separators are handled here and in the shared lexer.
"""

import logging
from types import MappingProxyType
from typing import Optional

from core.ddl_parser import DDLParser, ParseResult, ParsedColumn, ParsedTable, TokenStream
from core.lexer import TokenType
from core.normalizer import normalize_tables
from core.dialects.base import Dialect, DialectStrategy

logger = logging.getLogger(__name__)

TYPE_MAP = {
    'NVARCHAR(MAX)': 'TEXT',
    'VARCHAR(MAX)': 'TEXT',
    'VARBINARY(MAX)': 'BLOB',
    'NVARCHAR': 'VARCHAR',
    'NCHAR': 'CHAR',
    'NTEXT': 'TEXT',
    'BIT': 'BOOLEAN',
    'DATETIME': 'TIMESTAMP',
    'DATETIME2': 'TIMESTAMP',
    'SMALLDATETIME': 'TIMESTAMP',
    'DATETIMEOFFSET': 'TIMESTAMP',
    'UNIQUEIDENTIFIER': 'UUID',
    'TINYINT': 'SMALLINT',
    'INT': 'INTEGER',
    'IMAGE': 'BLOB',
    'MONEY': 'DECIMAL(19,4)',
    'SMALLMONEY': 'DECIMAL(10,4)',
}

DEFAULT_MAP = {
    'getdate()': 'now()',
    'getutcdate()': 'now()',
    'sysdatetime()': 'now()',
    'sysutcdatetime()': 'now()',
    'sysdatetimeoffset()': 'now()',
    'current_timestamp': 'now()',
    'newid()': 'gen_random_uuid()',
    'newsequentialid()': 'gen_random_uuid()',
    'suser_sname()': 'CURRENT_USER',
    'current_user': 'CURRENT_USER',
    'rand()': 'random()',
}


def strip_unicode_prefix(expression: str) -> str:
    """N'text' -> 'text'"""
    if expression[:2] in ("N'", "n'"):
        return expression[1:]
    return expression


class SQLServerParser(DDLParser):
    dialect = 'sqlserver'

    def _parse_column_option(self, ts: TokenStream, column: ParsedColumn, table: ParsedTable,
                             constraint_name: Optional[str]) -> bool:
        if ts.accept_word('IDENTITY'):
            if ts.at_type(TokenType.LPAREN):
                ts.paren_group()
            column.is_auto_increment = True
            column.nullable = False
            return True
        if ts.accept_sequence('NOT', 'FOR', 'REPLICATION'):
            return True
        if ts.accept_word('ROWGUIDCOL', 'SPARSE'):
            return True
        return super()._parse_column_option(ts, column, table, constraint_name)


def parse(script: str, options=None) -> ParseResult:
    result = SQLServerParser(options).parse(script)
    result.tables = normalize_tables(result.tables, STRATEGY)
    return result


STRATEGY = DialectStrategy(
    dialect=Dialect.SQLSERVER,
    parse=parse,
    type_map=MappingProxyType(TYPE_MAP),
    default_map=MappingProxyType(DEFAULT_MAP),
    default_rule=strip_unicode_prefix,
)
