#!/usr/bin/env python3
"""
SchemaPort SQL Lexer and Statement Splitter

This module performs lexical analysis on DDL scripts, converting raw text into
a flat stream of classified tokens. Every dialect parser and the shared
statement splitter work from this stream, so quoting rules live in one place.

The lexer is the first stage of the conversion pipeline:
Script → Lexer → Splitter → Dialect Parser → Normalizer → IR Builder

Quoting rules handled here:
- 'single quoted' string literals with '' doubling (N'' and E'' prefixes too)
- "double quoted" identifiers with "" doubling
- `backtick` identifiers (MySQL)
- [bracket] identifiers with ]] doubling (SQL Server, SQLite)
- $tag$ dollar quoted bodies (PostgreSQL)

Version: 1.0.0
"""

import logging
from typing import List, Optional
from enum import Enum, auto
from dataclasses import dataclass

from core.errors import ParseError

# Configure logging
logger = logging.getLogger(__name__)

# Dialects whose [x] syntax is an identifier rather than an array subscript
BRACKET_IDENTIFIER_DIALECTS = {'sqlserver', 'sqlite'}

class TokenType(Enum):
    """SQL token categories"""
    WORD = auto()                # keywords and bare identifiers
    QUOTED_IDENTIFIER = auto()   # "x", `x`, [x]
    STRING = auto()              # 'text', N'text', $$body$$
    NUMBER = auto()              # 1, 10.5, 1e3
    LPAREN = auto()
    RPAREN = auto()
    COMMA = auto()
    SEMICOLON = auto()
    DOT = auto()
    OPERATOR = auto()            # anything else: = :: + - [ ] ...
    COMMENT = auto()
    EOF = auto()

@dataclass
class Token:
    """
    A single lexical token.

    `value` holds the unquoted identifier for QUOTED_IDENTIFIER tokens and the
    raw source text otherwise; `position`/`length` index into the lexed text so
    callers can slice out expressions verbatim.
    """
    type: TokenType
    value: str
    position: int
    line: int
    column: int
    length: int

    @property
    def upper(self) -> str:
        return self.value.upper() if self.type == TokenType.WORD else ''

    @property
    def end(self) -> int:
        return self.position + self.length

    def is_word(self, *words: str) -> bool:
        return self.type == TokenType.WORD and self.value.upper() in words

    def __str__(self) -> str:
        return f"Token({self.type.name}, '{self.value}', {self.line}:{self.column})"

    def __repr__(self) -> str:
        return self.__str__()

class LexError(ParseError):
    """Exception raised during lexical analysis"""

    def __init__(self, message: str, position: int, line: int, column: int):
        super().__init__(f"Lexical error at {line}:{column} - {message}", line=line, column=column)
        self.position = position

class SQLLexer:
    """
    SQL Lexical Analyzer

    Converts DDL text into classified tokens with line/column tracking.
    In lenient mode an unterminated quote or comment runs to the end of the
    input instead of raising, which is what the statement splitter needs.
    """

    def __init__(self, dialect=None, keep_comments: bool = False, lenient: bool = False):
        self.dialect = getattr(dialect, 'value', dialect) or 'postgresql'
        self.keep_comments = keep_comments
        self.lenient = lenient
        self.bracket_identifiers = self.dialect in BRACKET_IDENTIFIER_DIALECTS
        self._reset('')

    def _reset(self, text: str):
        self.text = text
        self.position = 0
        self.line = 1
        self.column = 1
        self.tokens: List[Token] = []

    def tokenize(self, text: str) -> List[Token]:
        """Tokenize `text` into a list ending with an EOF token"""
        self._reset(text)

        while self.position < len(self.text):
            char = self._current_char()

            if char.isspace():
                self._advance()
                continue

            if self._match_comment():
                continue

            start, line, column = self.position, self.line, self.column

            if char == "'" or (char in 'NnEe' and self._peek_char() == "'"):
                self._match_quoted("'", TokenType.STRING, start, line, column, prefix=char != "'")
            elif char == '"':
                self._match_quoted('"', TokenType.QUOTED_IDENTIFIER, start, line, column)
            elif char == '`':
                self._match_quoted('`', TokenType.QUOTED_IDENTIFIER, start, line, column)
            elif char == '[' and self.bracket_identifiers:
                self._match_quoted(']', TokenType.QUOTED_IDENTIFIER, start, line, column)
            elif char == '$' and self._match_dollar_quote(start, line, column):
                pass
            elif char.isdigit() or (char == '.' and (self._peek_char() or '').isdigit()):
                self._match_number(start, line, column)
            elif char.isalpha() or char in '_@#':
                self._match_word(start, line, column)
            else:
                self._match_punctuation(start, line, column)

        self.tokens.append(Token(TokenType.EOF, '', self.position, self.line, self.column, 0))
        return self.tokens

    # -- character helpers -------------------------------------------------

    def _current_char(self) -> Optional[str]:
        if self.position < len(self.text):
            return self.text[self.position]
        return None

    def _peek_char(self, offset: int = 1) -> Optional[str]:
        pos = self.position + offset
        if pos < len(self.text):
            return self.text[pos]
        return None

    def _advance(self, count: int = 1):
        for _ in range(count):
            if self.position >= len(self.text):
                return
            if self.text[self.position] == '\n':
                self.line += 1
                self.column = 1
            else:
                self.column += 1
            self.position += 1

    def _emit(self, token_type: TokenType, value: str, start: int, line: int, column: int):
        self.tokens.append(Token(token_type, value, start, line, column, self.position - start))

    # -- matchers ----------------------------------------------------------

    def _match_comment(self) -> bool:
        char, nxt = self._current_char(), self._peek_char()
        start, line, column = self.position, self.line, self.column

        if char == '-' and nxt == '-':
            while self._current_char() is not None and self._current_char() != '\n':
                self._advance()
        elif char == '/' and nxt == '*':
            self._advance(2)
            while True:
                if self._current_char() is None:
                    if not self.lenient:
                        raise LexError("Unterminated block comment", start, line, column)
                    break
                if self._current_char() == '*' and self._peek_char() == '/':
                    self._advance(2)
                    break
                self._advance()
        else:
            return False

        if self.keep_comments:
            self._emit(TokenType.COMMENT, self.text[start:self.position], start, line, column)
        return True

    def _match_quoted(self, closing: str, token_type: TokenType, start: int, line: int, column: int,
                      prefix: bool = False):
        if prefix:
            self._advance()
        self._advance()  # opening quote
        chars = []
        while True:
            char = self._current_char()
            if char is None:
                if not self.lenient:
                    raise LexError(f"Unterminated quoted text (expected {closing})", start, line, column)
                break
            if char == closing:
                # Doubled closing quote is an escaped literal quote
                if self._peek_char() == closing:
                    chars.append(closing)
                    self._advance(2)
                    continue
                self._advance()
                break
            chars.append(char)
            self._advance()

        if token_type == TokenType.QUOTED_IDENTIFIER:
            self._emit(token_type, ''.join(chars), start, line, column)
        else:
            self._emit(token_type, self.text[start:self.position], start, line, column)

    def _match_dollar_quote(self, start: int, line: int, column: int) -> bool:
        end_tag = self.text.find('$', self.position + 1)
        if end_tag == -1:
            return False
        tag = self.text[self.position:end_tag + 1]
        if not all(c.isalnum() or c == '_' for c in tag[1:-1]):
            return False
        close = self.text.find(tag, end_tag + 1)
        if close == -1:
            if not self.lenient:
                raise LexError(f"Unterminated dollar-quoted body {tag}", start, line, column)
            close = len(self.text) - len(tag)
        self._advance(close + len(tag) - self.position)
        self._emit(TokenType.STRING, self.text[start:self.position], start, line, column)
        return True

    def _match_number(self, start: int, line: int, column: int):
        while self._current_char() is not None and (self._current_char().isdigit() or self._current_char() == '.'):
            self._advance()
        if self._current_char() in ('e', 'E') and ((self._peek_char() or '').isdigit() or self._peek_char() in ('+', '-')):
            self._advance(2)
            while self._current_char() is not None and self._current_char().isdigit():
                self._advance()
        self._emit(TokenType.NUMBER, self.text[start:self.position], start, line, column)

    def _match_word(self, start: int, line: int, column: int):
        while self._current_char() is not None and (self._current_char().isalnum() or self._current_char() in '_$#@'):
            self._advance()
        self._emit(TokenType.WORD, self.text[start:self.position], start, line, column)

    def _match_punctuation(self, start: int, line: int, column: int):
        char = self._current_char()
        simple = {
            '(': TokenType.LPAREN,
            ')': TokenType.RPAREN,
            ',': TokenType.COMMA,
            ';': TokenType.SEMICOLON,
            '.': TokenType.DOT,
        }
        if char in simple:
            self._advance()
            self._emit(simple[char], char, start, line, column)
            return
        # Two-character operators
        pair = char + (self._peek_char() or '')
        if pair in ('::', '<=', '>=', '<>', '!=', '||'):
            self._advance(2)
        else:
            self._advance()
        self._emit(TokenType.OPERATOR, self.text[start:self.position], start, line, column)


def split_top_level_tokens(tokens: List[Token], separator: TokenType = TokenType.COMMA) -> List[List[Token]]:
    """
    Split a token list on `separator` tokens at parenthesis depth zero.

    Empty groups are dropped and the EOF token is ignored.
    """
    groups: List[List[Token]] = []
    current: List[Token] = []
    depth = 0
    for token in tokens:
        if token.type == TokenType.EOF:
            break
        if token.type == TokenType.LPAREN:
            depth += 1
        elif token.type == TokenType.RPAREN:
            depth = max(depth - 1, 0)
        elif token.type == separator and depth == 0:
            if current:
                groups.append(current)
            current = []
            continue
        current.append(token)
    if current:
        groups.append(current)
    return groups


def split_top_level(text: str, separator: str = ',', dialect=None) -> List[str]:
    """Quote and paren aware split of `text`; returns trimmed non-empty parts"""
    separators = {',': TokenType.COMMA, ';': TokenType.SEMICOLON}
    if separator not in separators:
        raise ValueError(f"Unsupported separator: {separator!r}")
    tokens = SQLLexer(dialect, lenient=True).tokenize(text)
    parts = []
    for group in split_top_level_tokens(tokens, separators[separator]):
        part = text[group[0].position:group[-1].end].strip()
        if part:
            parts.append(part)
    return parts


def split_statements(script: str, dialect=None) -> List[str]:
    """
    Split a raw script into top-level statements.

    Splits on every `;` outside quotes and comments, so an unclosed `(` in one
    statement never swallows the ones after it. For SQL Server a line holding
    only GO also ends a batch. Trailing text without a terminator is kept.
    """
    dialect_name = getattr(dialect, 'value', dialect) or 'postgresql'
    tokens = SQLLexer(dialect_name, lenient=True).tokenize(script)

    statements: List[str] = []
    current: List[Token] = []

    def flush():
        if current:
            text = script[current[0].position:current[-1].end].strip()
            if text:
                statements.append(text)
        current.clear()

    for index, token in enumerate(tokens):
        if token.type == TokenType.EOF:
            break
        if token.type == TokenType.SEMICOLON:
            flush()
            continue
        elif dialect_name == 'sqlserver' and token.is_word('GO') and _alone_on_line(tokens, index):
            flush()
            continue
        current.append(token)

    flush()
    logger.debug(f"Split script into {len(statements)} statement(s)")
    return statements


def _alone_on_line(tokens: List[Token], index: int) -> bool:
    token = tokens[index]
    before = tokens[index - 1] if index > 0 else None
    after = tokens[index + 1]
    if before is not None and before.line == token.line:
        return False
    return after.type == TokenType.EOF or after.line != token.line
