#!/usr/bin/env python3
"""
SchemaPort Dialect Normalizer

Rewrites dialect-native spellings in ParsedTable records into the shared
pre-canonical vocabulary consumed by the IR builder and every emitter:

- type spellings   (NVARCHAR(50) -> VARCHAR(50), TINYINT(1) -> BOOLEAN, ...)
- auto-increment   (flag -> SERIAL / BIGSERIAL marker type)
- default values   (GETDATE() -> now(), NEWID() -> gen_random_uuid(), ...)

Inputs are never mutated; normalized copies are returned.
"""

import copy
import logging
from typing import List, Mapping, Optional, Callable

from core.ddl_parser import ParsedTable, ParsedColumn

logger = logging.getLogger(__name__)

BIGINT_SPELLINGS = {'BIGINT', 'INT8', 'BIGSERIAL'}
SERIAL_TYPES = {'SERIAL', 'BIGSERIAL', 'SMALLSERIAL'}
SIZED_TYPES = {'VARCHAR', 'CHAR', 'DECIMAL', 'NUMERIC', 'BINARY', 'VARBINARY'}


def split_type(raw_type: str):
    """'NVARCHAR(255)' -> ('NVARCHAR', '(255)')"""
    raw = ' '.join(raw_type.split())
    if '(' in raw and raw.endswith(')'):
        index = raw.index('(')
        return raw[:index].strip().upper(), raw[index:].replace(' ', '')
    return raw.upper(), ''


def normalize_type(raw_type: str, type_map: Mapping[str, str],
                   type_rule: Optional[Callable[[str], str]] = None) -> str:
    """Rewrite one raw type; full-spelling matches win over base-name matches"""
    base, params = split_type(raw_type)
    full = base + params

    if full in type_map:
        return type_map[full]
    if base in type_map:
        replacement = type_map[base]
        # Size arguments only survive on sized replacements
        if params and replacement in SIZED_TYPES:
            return replacement + params
        return replacement
    if type_rule is not None:
        return type_rule(full)
    return full


def strip_wrapping_parens(expression: str) -> str:
    """'((0))' -> '0'; '(a) + (b)' is left alone"""
    text = expression.strip()
    while text.startswith('(') and text.endswith(')') and _outer_parens_match(text):
        text = text[1:-1].strip()
    return text


def _outer_parens_match(text: str) -> bool:
    depth = 0
    in_quote = False
    for index, char in enumerate(text):
        if char == "'":
            in_quote = not in_quote
        if in_quote:
            continue
        if char == '(':
            depth += 1
        elif char == ')':
            depth -= 1
            if depth == 0 and index != len(text) - 1:
                return False
    return depth == 0


def normalize_default(expression: Optional[str], default_map: Mapping[str, str],
                      default_rule: Optional[Callable[[str], str]] = None) -> Optional[str]:
    """Rewrite one default expression into the shared default vocabulary"""
    if expression is None:
        return None
    text = strip_wrapping_parens(expression)
    if default_rule is not None:
        text = default_rule(text)
    key = ' '.join(text.lower().split())
    if key in default_map:
        return default_map[key]
    if key == 'null':
        return None
    return text


def normalize_column(column: ParsedColumn, strategy) -> ParsedColumn:
    normalized = copy.deepcopy(column)
    normalized.raw_type = normalize_type(column.raw_type, strategy.type_map, strategy.type_rule)
    normalized.default = normalize_default(column.default, strategy.default_map, strategy.default_rule)

    base, _ = split_type(normalized.raw_type)
    if base in SERIAL_TYPES:
        normalized.is_auto_increment = True
    if normalized.is_auto_increment:
        normalized.raw_type = 'BIGSERIAL' if base in BIGINT_SPELLINGS else 'SERIAL'
        normalized.nullable = False
        normalized.default = None

    if normalized.raw_type != column.raw_type:
        logger.debug(f"Normalized {column.name}: {column.raw_type} -> {normalized.raw_type}")
    return normalized


def normalize_table(table: ParsedTable, strategy) -> ParsedTable:
    normalized = copy.deepcopy(table)
    normalized.columns = [normalize_column(column, strategy) for column in table.columns]
    return normalized


def normalize_tables(tables: List[ParsedTable], strategy) -> List[ParsedTable]:
    """Apply a dialect strategy's type/default rewrites to every table"""
    return [normalize_table(table, strategy) for table in tables]
