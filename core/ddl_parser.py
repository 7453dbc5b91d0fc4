#!/usr/bin/env python3
"""
SchemaPort DDL Parser

A small recursive-descent parser over the lexer's token stream. It recognizes
the DDL subset needed to describe tables, columns, keys, indexes and foreign
keys, and produces dialect-neutral ParsedTable records. Dialect modules
subclass DDLParser and hook in their own column options and statements.

Statements that look like DDL but fail structurally are skipped and reported;
everything else in a script (DML, procedural code, SET options) is ignored.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Tuple

from core.errors import ParseError
from core.lexer import SQLLexer, Token, TokenType, split_statements, split_top_level_tokens

logger = logging.getLogger(__name__)

FK_ACTIONS = ('CASCADE', 'SET NULL', 'RESTRICT', 'NO ACTION', 'SET DEFAULT')

# Words that end a DEFAULT expression when met at paren depth zero
COLUMN_STOP_WORDS = {
    'NOT', 'NULL', 'PRIMARY', 'UNIQUE', 'CHECK', 'REFERENCES', 'CONSTRAINT',
    'COLLATE', 'ON', 'AUTO_INCREMENT', 'AUTOINCREMENT', 'IDENTITY', 'GENERATED',
    'COMMENT', 'ENABLE', 'DISABLE', 'ROWGUIDCOL', 'CHARACTER', 'CHARSET',
}

@dataclass
class ParsedColumn:
    name: str
    raw_type: str
    nullable: bool = True
    default: Optional[str] = None
    is_primary_key: bool = False
    is_unique: bool = False
    is_auto_increment: bool = False
    precision: Optional[int] = None
    scale: Optional[int] = None
    length: Optional[int] = None
    comment: Optional[str] = None

@dataclass
class ParsedConstraint:
    type: str  # PRIMARY KEY, FOREIGN KEY, UNIQUE, CHECK
    columns: List[str] = field(default_factory=list)
    name: Optional[str] = None
    referenced_table: Optional[str] = None
    referenced_columns: List[str] = field(default_factory=list)
    on_delete: Optional[str] = None
    on_update: Optional[str] = None
    expression: Optional[str] = None

@dataclass
class ParsedIndex:
    name: Optional[str]
    columns: List[str]
    unique: bool = False

@dataclass
class ParsedTable:
    name: str
    columns: List[ParsedColumn] = field(default_factory=list)
    constraints: List[ParsedConstraint] = field(default_factory=list)
    indexes: List[ParsedIndex] = field(default_factory=list)
    schema: Optional[str] = None
    comment: Optional[str] = None

    def get_column(self, name: str) -> Optional[ParsedColumn]:
        for column in self.columns:
            if column.name == name:
                return column
        lowered = name.lower()
        for column in self.columns:
            if column.name.lower() == lowered:
                return column
        return None

@dataclass
class ParsedEnum:
    name: str
    values: List[str] = field(default_factory=list)

@dataclass
class ParseResult:
    """Outcome of parsing one script: tables, enums and skipped statements"""
    tables: List[ParsedTable] = field(default_factory=list)
    enums: List[ParsedEnum] = field(default_factory=list)
    errors: List[ParseError] = field(default_factory=list)

    def find_table(self, name: str) -> Optional[ParsedTable]:
        lowered = name.lower()
        for table in self.tables:
            if table.name.lower() == lowered:
                return table
        return None

    def add_table(self, table: ParsedTable):
        existing = self.find_table(table.name)
        if existing is not None:
            logger.warning(f"Table {table.name} defined more than once; keeping the last definition")
            self.tables[self.tables.index(existing)] = table
        else:
            self.tables.append(table)


def unquote_string(raw: str) -> str:
    """Strip N/E prefixes and quotes from a string literal token"""
    text = raw
    if text[:1] in ('N', 'n', 'E', 'e') and text[1:2] == "'":
        text = text[1:]
    if len(text) >= 2 and text[0] == "'" and text[-1] == "'":
        text = text[1:-1].replace("''", "'")
    return text


def normalize_action(words: List[str]) -> Optional[str]:
    action = ' '.join(w.upper() for w in words)
    return action if action in FK_ACTIONS else None


class TokenStream:
    """Cursor over one statement's tokens"""

    def __init__(self, tokens: List[Token], sql: str):
        self.tokens = tokens if tokens and tokens[-1].type == TokenType.EOF else tokens + [
            Token(TokenType.EOF, '', tokens[-1].end if tokens else 0, 0, 0, 0)
        ]
        self.sql = sql
        self.index = 0

    def peek(self, offset: int = 0) -> Token:
        pos = min(self.index + offset, len(self.tokens) - 1)
        return self.tokens[pos]

    def next(self) -> Token:
        token = self.peek()
        if token.type != TokenType.EOF:
            self.index += 1
        return token

    def at_end(self) -> bool:
        return self.peek().type == TokenType.EOF

    def at_word(self, *words: str, offset: int = 0) -> bool:
        return self.peek(offset).is_word(*words)

    def at_type(self, token_type: TokenType, offset: int = 0) -> bool:
        return self.peek(offset).type == token_type

    def accept_word(self, *words: str) -> bool:
        if self.at_word(*words):
            self.next()
            return True
        return False

    def accept_sequence(self, *words: str) -> bool:
        for offset, word in enumerate(words):
            if not self.at_word(word, offset=offset):
                return False
        self.index += len(words)
        return True

    def expect_word(self, word: str) -> Token:
        if not self.at_word(word):
            self.error(f"Expected {word}")
        return self.next()

    def expect(self, token_type: TokenType) -> Token:
        if not self.at_type(token_type):
            self.error(f"Expected {token_type.name}")
        return self.next()

    def error(self, message: str):
        token = self.peek()
        near = token.value or 'end of statement'
        raise ParseError(f"{message} near '{near}'", line=token.line, column=token.column)

    def identifier(self) -> str:
        token = self.peek()
        if token.type in (TokenType.WORD, TokenType.QUOTED_IDENTIFIER):
            self.next()
            return token.value
        if token.type == TokenType.STRING:
            # MySQL and SQLite accept 'name' where an identifier is expected
            self.next()
            return unquote_string(token.value)
        self.error("Expected identifier")

    def qualified_name(self) -> Tuple[Optional[str], str]:
        """Parse [db.][schema.]name and return (schema, name)"""
        parts = [self.identifier()]
        while self.at_type(TokenType.DOT):
            self.next()
            parts.append(self.identifier())
        schema = parts[-2] if len(parts) > 1 else None
        return schema, parts[-1]

    def paren_group(self) -> List[Token]:
        """Consume a balanced (...) group and return the inner tokens"""
        self.expect(TokenType.LPAREN)
        depth = 1
        inner: List[Token] = []
        while True:
            token = self.next()
            if token.type == TokenType.EOF:
                self.error("Unbalanced parentheses")
            if token.type == TokenType.LPAREN:
                depth += 1
            elif token.type == TokenType.RPAREN:
                depth -= 1
                if depth == 0:
                    return inner
            inner.append(token)

    def text(self, tokens: List[Token]) -> str:
        if not tokens:
            return ''
        return self.sql[tokens[0].position:tokens[-1].end].strip()


class DDLParser:
    """
    Dialect-neutral DDL parser.

    Subclasses set `dialect` and override the `_parse_column_option`,
    `_parse_table_options`, `_parse_other_statement` and `_finish_column`
    hooks for dialect specifics.
    """

    dialect = 'postgresql'

    def __init__(self, options=None):
        self.options = options
        self.preserve_comments = bool(getattr(options, 'preserve_comments', False))

    def parse(self, script: str) -> ParseResult:
        """Parse every DDL statement in `script`; bad statements are skipped"""
        result = ParseResult()
        statements = split_statements(script, self.dialect)
        for statement in statements:
            try:
                self._parse_statement(statement, result)
            except ParseError as e:
                e.statement = statement
                e.details['statement'] = statement
                result.errors.append(e)
                logger.warning(f"Skipping unparseable {self.dialect} statement: {e.message}")
        logger.info(f"Parsed {len(result.tables)} table(s) from {len(statements)} {self.dialect} statement(s)")
        return result

    # -- statement dispatch ------------------------------------------------

    def _parse_statement(self, sql: str, result: ParseResult):
        tokens = SQLLexer(self.dialect).tokenize(sql)
        ts = TokenStream(tokens, sql)

        if ts.at_word('CREATE'):
            ts.next()
            ts.accept_sequence('OR', 'REPLACE')
            ts.accept_word('GLOBAL', 'LOCAL')
            ts.accept_word('TEMPORARY', 'TEMP', 'UNLOGGED')
            if ts.accept_word('TABLE'):
                self._parse_create_table(ts, result)
                return
            unique = ts.accept_word('UNIQUE')
            ts.accept_word('CLUSTERED', 'NONCLUSTERED', 'BITMAP')
            if ts.accept_word('INDEX'):
                self._parse_create_index(ts, result, unique)
                return
        elif ts.at_word('ALTER') and ts.at_word('TABLE', offset=1):
            ts.next()
            ts.next()
            self._parse_alter_table(ts, result)
            return
        elif ts.at_word('COMMENT') and ts.at_word('ON', offset=1):
            ts.next()
            ts.next()
            self._parse_comment_on(ts, result)
            return

        ts.index = 0
        if not self._parse_other_statement(ts, result):
            logger.debug(f"Ignoring non-DDL statement: {sql[:60]}")

    def _parse_other_statement(self, ts: TokenStream, result: ParseResult) -> bool:
        """Hook for dialect-specific statements; return True when handled"""
        return False

    # -- CREATE TABLE ------------------------------------------------------

    def _parse_create_table(self, ts: TokenStream, result: ParseResult):
        ts.accept_sequence('IF', 'NOT', 'EXISTS')
        schema, name = ts.qualified_name()

        if not ts.at_type(TokenType.LPAREN):
            ts.error(f"Unsupported CREATE TABLE form for {name}")

        body = ts.paren_group()
        table = ParsedTable(name=name, schema=schema)

        for element in split_top_level_tokens(body):
            self._parse_table_element(TokenStream(element, ts.sql), table)

        if not table.columns:
            raise ParseError(f"Table {name} has no columns")

        self._parse_table_options(ts, table)
        result.add_table(table)
        logger.debug(f"Parsed table {name} with {len(table.columns)} column(s)")

    def _parse_table_options(self, ts: TokenStream, table: ParsedTable):
        """Hook for trailing table options; ignored by default"""

    def _parse_table_element(self, ts: TokenStream, table: ParsedTable):
        constraint_name = None
        if ts.accept_word('CONSTRAINT'):
            constraint_name = ts.identifier()

        if self._parse_table_constraint(ts, table, constraint_name):
            return

        if constraint_name is not None:
            ts.error(f"Unknown constraint type for {constraint_name}")

        if ts.at_word('KEY', 'INDEX') and self._parse_inline_index(ts, table):
            return

        if ts.at_word('FULLTEXT', 'SPATIAL', 'EXCLUDE', 'PERIOD', 'LIKE'):
            logger.debug(f"Ignoring table element {ts.peek().value} on {table.name}")
            return

        self._parse_column(ts, table)

    def _parse_table_constraint(self, ts: TokenStream, table: ParsedTable, name: Optional[str]) -> bool:
        if ts.at_word('PRIMARY') and ts.at_word('KEY', offset=1):
            ts.next()
            ts.next()
            ts.accept_word('CLUSTERED', 'NONCLUSTERED')
            table.constraints.append(ParsedConstraint('PRIMARY KEY', self._column_list(ts), name=name))
            return True

        if ts.at_word('FOREIGN') and ts.at_word('KEY', offset=1):
            ts.next()
            ts.next()
            if not ts.at_type(TokenType.LPAREN):
                ts.identifier()  # MySQL index name
            columns = self._column_list(ts)
            constraint = ParsedConstraint('FOREIGN KEY', columns, name=name)
            ts.expect_word('REFERENCES')
            self._parse_references(ts, constraint)
            table.constraints.append(constraint)
            return True

        if ts.at_word('UNIQUE') and (
            ts.at_type(TokenType.LPAREN, offset=1) or ts.at_word('KEY', 'INDEX', 'CLUSTERED', 'NONCLUSTERED', offset=1)
        ):
            ts.next()
            ts.accept_word('KEY', 'INDEX')
            ts.accept_word('CLUSTERED', 'NONCLUSTERED')
            if not ts.at_type(TokenType.LPAREN):
                ts.identifier()  # MySQL index name
            table.constraints.append(ParsedConstraint('UNIQUE', self._column_list(ts), name=name))
            return True

        if ts.at_word('CHECK') and ts.at_type(TokenType.LPAREN, offset=1):
            ts.next()
            expression = ts.text(ts.paren_group())
            table.constraints.append(ParsedConstraint('CHECK', [], name=name, expression=expression))
            return True

        if ts.at_word('DEFAULT') and name is not None:
            # SQL Server: ADD CONSTRAINT DF_x DEFAULT (expr) FOR column
            ts.next()
            collected: List[Token] = []
            while not ts.at_end() and not ts.at_word('FOR'):
                collected.append(ts.next())
            ts.expect_word('FOR')
            column = table.get_column(ts.identifier())
            if column is not None and collected:
                column.default = ts.text(collected)
            return True

        return False

    def _parse_inline_index(self, ts: TokenStream, table: ParsedTable) -> bool:
        """MySQL `KEY name (cols)` / `INDEX name (cols)` inside CREATE TABLE"""
        named = ts.at_type(TokenType.LPAREN, offset=2)
        if not (ts.at_type(TokenType.LPAREN, offset=1) or named):
            return False
        # `key VARCHAR(50)` is a column, `KEY idx (col)` an index
        first_inner = ts.peek(3 if named else 2)
        if first_inner.type not in (TokenType.WORD, TokenType.QUOTED_IDENTIFIER):
            return False
        ts.next()
        name = None if ts.at_type(TokenType.LPAREN) else ts.identifier()
        table.indexes.append(ParsedIndex(name, self._column_list(ts), unique=False))
        return True

    def _column_list(self, ts: TokenStream) -> List[str]:
        """Parse (a, b DESC, c(10)) into ['a', 'b', 'c']"""
        columns = []
        for group in split_top_level_tokens(ts.paren_group()):
            first = group[0]
            if first.type in (TokenType.WORD, TokenType.QUOTED_IDENTIFIER):
                columns.append(first.value)
            elif first.type == TokenType.STRING:
                columns.append(unquote_string(first.value))
            else:
                ts.error("Expected column name in column list")
        if not columns:
            ts.error("Empty column list")
        return columns

    def _parse_references(self, ts: TokenStream, constraint: ParsedConstraint):
        _, constraint.referenced_table = ts.qualified_name()
        if ts.at_type(TokenType.LPAREN):
            constraint.referenced_columns = self._column_list(ts)
        while ts.at_word('ON', 'MATCH', 'DEFERRABLE', 'NOT', 'INITIALLY'):
            if ts.accept_word('MATCH'):
                ts.next()
                continue
            if ts.at_word('ON') and ts.at_word('DELETE', 'UPDATE', offset=1):
                ts.next()
                event = ts.next().upper
                words = [ts.next().value]
                if words[0].upper() in ('SET', 'NO'):
                    words.append(ts.next().value)
                action = normalize_action(words)
                if event == 'DELETE':
                    constraint.on_delete = action
                else:
                    constraint.on_update = action
                continue
            if ts.accept_word('DEFERRABLE') or ts.accept_sequence('NOT', 'DEFERRABLE'):
                continue
            if ts.accept_word('INITIALLY'):
                ts.next()
                continue
            break

    # -- columns -----------------------------------------------------------

    def _parse_column(self, ts: TokenStream, table: ParsedTable):
        name = ts.identifier()
        raw_type = self._parse_type(ts)
        column = ParsedColumn(name=name, raw_type=raw_type)
        self._fill_sizes(column)

        pending_name = None
        while not ts.at_end():
            if ts.accept_word('CONSTRAINT'):
                pending_name = ts.identifier()
                continue
            if self._parse_column_option(ts, column, table, pending_name):
                pending_name = None
                continue
            token = ts.next()
            logger.debug(f"Ignoring column option {token.value!r} on {table.name}.{name}")

        self._finish_column(column, table)
        table.columns.append(column)

    def _parse_column_option(self, ts: TokenStream, column: ParsedColumn, table: ParsedTable,
                             constraint_name: Optional[str]) -> bool:
        """Consume one column option; subclasses extend this for dialect keywords"""
        if ts.accept_sequence('NOT', 'NULL'):
            column.nullable = False
            return True
        if ts.accept_word('NULL'):
            column.nullable = True
            return True
        if ts.at_word('PRIMARY') and ts.at_word('KEY', offset=1):
            ts.next()
            ts.next()
            ts.accept_word('ASC', 'DESC')
            ts.accept_word('CLUSTERED', 'NONCLUSTERED')
            column.is_primary_key = True
            column.nullable = False
            return True
        if ts.accept_word('UNIQUE'):
            ts.accept_word('KEY')
            ts.accept_word('CLUSTERED', 'NONCLUSTERED')
            column.is_unique = True
            return True
        if ts.accept_word('DEFAULT'):
            column.default = self._parse_default(ts)
            return True
        if ts.at_word('CHECK') and ts.at_type(TokenType.LPAREN, offset=1):
            ts.next()
            expression = ts.text(ts.paren_group())
            table.constraints.append(ParsedConstraint('CHECK', [column.name], name=constraint_name, expression=expression))
            return True
        if ts.accept_word('REFERENCES'):
            constraint = ParsedConstraint('FOREIGN KEY', [column.name], name=constraint_name)
            self._parse_references(ts, constraint)
            table.constraints.append(constraint)
            return True
        if ts.accept_word('COLLATE'):
            ts.identifier()
            return True
        if ts.accept_word('GENERATED'):
            return self._parse_generated(ts, column)
        return False

    def _parse_generated(self, ts: TokenStream, column: ParsedColumn) -> bool:
        """GENERATED {ALWAYS | BY DEFAULT [ON NULL]} AS {IDENTITY [(...)] | (expr) [STORED]}"""
        if not ts.accept_word('ALWAYS'):
            ts.accept_sequence('BY', 'DEFAULT')
        ts.accept_sequence('ON', 'NULL')
        ts.expect_word('AS')
        if ts.accept_word('IDENTITY'):
            if ts.at_type(TokenType.LPAREN):
                ts.paren_group()
            column.is_auto_increment = True
            column.nullable = False
            return True
        if ts.at_type(TokenType.LPAREN):
            ts.paren_group()
            ts.accept_word('STORED', 'VIRTUAL')
        return True

    def _parse_default(self, ts: TokenStream) -> Optional[str]:
        if ts.accept_word('NULL'):
            return None
        collected: List[Token] = []
        depth = 0
        while not ts.at_end():
            token = ts.peek()
            if depth == 0 and token.type == TokenType.WORD and token.upper in COLUMN_STOP_WORDS and collected:
                break
            if token.type == TokenType.LPAREN:
                depth += 1
            elif token.type == TokenType.RPAREN:
                depth -= 1
            collected.append(ts.next())
        if not collected:
            ts.error("Expected DEFAULT expression")
        return ts.text(collected)

    def _finish_column(self, column: ParsedColumn, table: ParsedTable):
        """Hook run after a column definition is fully parsed"""

    def _parse_type(self, ts: TokenStream) -> str:
        token = ts.peek()
        if token.type not in (TokenType.WORD, TokenType.QUOTED_IDENTIFIER) or token.upper in COLUMN_STOP_WORDS - {'CHARACTER'} \
                or token.upper in ('DEFAULT', 'IDENTITY'):
            return ''

        words = [ts.next().value]
        while ts.at_type(TokenType.DOT):
            ts.next()
            words = [ts.identifier()]
        base = words[0].upper()

        if base == 'DOUBLE' and ts.at_word('PRECISION'):
            words.append(ts.next().value)
        elif base in ('CHARACTER', 'CHAR', 'NATIONAL') and ts.at_word('VARYING', 'CHARACTER', 'CHAR'):
            words.append(ts.next().value)
            if ts.at_word('VARYING'):
                words.append(ts.next().value)
        elif base == 'LONG' and ts.at_word('RAW', 'VARCHAR'):
            words.append(ts.next().value)

        params = ''
        if ts.at_type(TokenType.LPAREN):
            groups = split_top_level_tokens(ts.paren_group())
            params = '(' + ','.join(group[0].value for group in groups if group) + ')'

        # TIMESTAMP(6) WITH [LOCAL] TIME ZONE
        if ts.at_word('WITH', 'WITHOUT') and (ts.at_word('TIME', offset=1) or ts.at_word('LOCAL', offset=1)):
            suffix = [ts.next().value]
            while ts.at_word('LOCAL', 'TIME', 'ZONE'):
                suffix.append(ts.next().value)
            words.extend(suffix)
            raw = ' '.join(words)
        else:
            raw = ' '.join(words) + params

        while ts.at_word('UNSIGNED', 'SIGNED', 'ZEROFILL', 'VARYING'):
            ts.next()
        # PostgreSQL array suffix
        while ts.at_type(TokenType.OPERATOR) and ts.peek().value == '[':
            ts.next()
            while not ts.at_end() and ts.peek().value != ']':
                ts.next()
            ts.next()
            raw += '[]'
        return raw

    @staticmethod
    def _fill_sizes(column: ParsedColumn):
        raw = column.raw_type
        if '(' not in raw or not raw.endswith(')'):
            return
        params = [p.strip() for p in raw[raw.index('(') + 1:-1].split(',')]
        numbers = [int(p) for p in params if p.isdigit()]
        base = raw[:raw.index('(')].upper()
        if any(word in base for word in ('CHAR', 'BINARY', 'STRING')):
            column.length = numbers[0] if numbers else None
        elif numbers:
            column.precision = numbers[0]
            column.scale = numbers[1] if len(numbers) > 1 else None

    # -- CREATE INDEX ------------------------------------------------------

    def _parse_create_index(self, ts: TokenStream, result: ParseResult, unique: bool):
        ts.accept_word('CONCURRENTLY')
        ts.accept_sequence('IF', 'NOT', 'EXISTS')
        name = None
        if not ts.at_word('ON'):
            _, name = ts.qualified_name()
        ts.expect_word('ON')
        ts.accept_word('ONLY')
        _, table_name = ts.qualified_name()
        if ts.accept_word('USING'):
            ts.next()
        columns = self._column_list(ts)

        table = result.find_table(table_name)
        if table is None:
            logger.debug(f"Index {name} targets unknown table {table_name}; ignored")
            return
        table.indexes.append(ParsedIndex(name, columns, unique=unique))

    # -- ALTER TABLE -------------------------------------------------------

    def _parse_alter_table(self, ts: TokenStream, result: ParseResult):
        ts.accept_sequence('IF', 'EXISTS')
        ts.accept_word('ONLY')
        _, table_name = ts.qualified_name()
        table = result.find_table(table_name)

        remainder = ts.tokens[ts.index:]
        for action in split_top_level_tokens(remainder):
            ats = TokenStream(action, ts.sql)
            # SQL Server: ALTER TABLE t WITH CHECK ADD CONSTRAINT ...
            if ats.at_word('WITH') and ats.at_word('CHECK', 'NOCHECK', offset=1):
                ats.next()
                ats.next()
            if not ats.accept_word('ADD'):
                logger.debug(f"Ignoring ALTER TABLE action on {table_name}: {ats.text(action)[:60]}")
                continue
            if table is None:
                logger.debug(f"ALTER TABLE targets unknown table {table_name}; ignored")
                return
            if ats.at_type(TokenType.LPAREN):
                # Oracle: ADD (CONSTRAINT ..., col type ...)
                for element in split_top_level_tokens(ats.paren_group()):
                    self._parse_table_element(TokenStream(element, ts.sql), table)
                continue
            ats.accept_word('COLUMN')
            ats.accept_sequence('IF', 'NOT', 'EXISTS')
            self._parse_table_element(ats, table)

    # -- COMMENT ON --------------------------------------------------------

    def _parse_comment_on(self, ts: TokenStream, result: ParseResult):
        kind = ts.next().upper
        if kind not in ('TABLE', 'COLUMN'):
            return
        parts = [ts.identifier()]
        while ts.at_type(TokenType.DOT):
            ts.next()
            parts.append(ts.identifier())
        ts.expect_word('IS')
        if ts.accept_word('NULL'):
            return
        text = unquote_string(ts.expect(TokenType.STRING).value)
        if not self.preserve_comments:
            return

        if kind == 'TABLE':
            table = result.find_table(parts[-1])
            if table is not None:
                table.comment = text
            return
        if len(parts) < 2:
            ts.error("COMMENT ON COLUMN needs table.column")
        table = result.find_table(parts[-2])
        column = table.get_column(parts[-1]) if table is not None else None
        if column is not None:
            column.comment = text
