"""
Scanning helpers shared by the ORM source dialects (Prisma, TypeORM).

Both formats quote with ' " or ` using backslash escapes, comment with //
and /* */, and nest (), [] and {}. These helpers work on raw text so the
parsers can stay regex driven.
"""

import re
from typing import List, Optional, Tuple

from core.errors import ParseError

OPENERS = {'(': ')', '[': ']', '{': '}'}
CLOSERS = {')', ']', '}'}
QUOTES = ('"', "'", '`')


def _skip_quoted(text: str, start: int) -> int:
    """Index just past the string literal opening at `start`"""
    quote = text[start]
    index = start + 1
    while index < len(text):
        char = text[index]
        if char == '\\':
            index += 2
            continue
        if char == quote:
            return index + 1
        index += 1
    raise ParseError(f"Unterminated string starting at offset {start}")


def strip_comments(text: str) -> str:
    """Drop // and /* */ comments that sit outside string literals"""
    out = []
    index = 0
    while index < len(text):
        char = text[index]
        if char in QUOTES:
            end = _skip_quoted(text, index)
            out.append(text[index:end])
            index = end
        elif text.startswith('//', index):
            newline = text.find('\n', index)
            index = len(text) if newline == -1 else newline
        elif text.startswith('/*', index):
            close = text.find('*/', index + 2)
            if close == -1:
                raise ParseError("Unterminated block comment")
            # keep line numbers stable
            out.append('\n' * text.count('\n', index, close))
            index = close + 2
        else:
            out.append(char)
            index += 1
    return ''.join(out)


def closing_index(text: str, start: int) -> int:
    """Index of the bracket closing the one at `start`"""
    expected = [OPENERS[text[start]]]
    index = start + 1
    while index < len(text):
        char = text[index]
        if char in QUOTES:
            index = _skip_quoted(text, index)
            continue
        if char in OPENERS:
            expected.append(OPENERS[char])
        elif char in CLOSERS:
            if char != expected[-1]:
                raise ParseError(f"Mismatched '{char}' at offset {index}")
            expected.pop()
            if not expected:
                return index
        index += 1
    raise ParseError(f"Unbalanced '{text[start]}' at offset {start}")


def split_args(text: str) -> List[str]:
    """Split on commas outside brackets and quotes; returns trimmed non-empty parts"""
    parts = []
    depth = 0
    current = []
    index = 0
    while index < len(text):
        char = text[index]
        if char in QUOTES:
            end = _skip_quoted(text, index)
            current.append(text[index:end])
            index = end
            continue
        if char in OPENERS:
            depth += 1
        elif char in CLOSERS:
            depth -= 1
        elif char == ',' and depth == 0:
            parts.append(''.join(current).strip())
            current = []
            index += 1
            continue
        current.append(char)
        index += 1
    parts.append(''.join(current).strip())
    return [part for part in parts if part]


def unquote(value: str) -> Optional[str]:
    """'abc' / "abc" / `abc` -> abc; None when `value` is not a string literal"""
    value = value.strip()
    if len(value) >= 2 and value[0] in QUOTES and value[-1] == value[0]:
        return re.sub(r'\\(.)', r'\1', value[1:-1])
    return None


def key_value(part: str) -> Tuple[Optional[str], str]:
    """'name: value' -> ('name', 'value'); a bare value gives (None, value)"""
    match = re.match(r'^\s*["\']?([A-Za-z_$][\w$]*)["\']?\s*:(?!:)\s*(.*)$', part, re.S)
    if match:
        return match.group(1), match.group(2).strip()
    return None, part.strip()


def object_entries(text: str) -> dict:
    """Entries of a `{ a: 1, b: 'x' }` literal as raw value strings"""
    body = text.strip()
    if body.startswith('{') and body.endswith('}'):
        body = body[1:-1]
    entries = {}
    for part in split_args(body):
        key, value = key_value(part)
        if key is not None:
            entries[key] = value
    return entries


def list_items(text: str) -> List[str]:
    """`[a, "b", c]` -> ['a', 'b', 'c'] with quotes removed"""
    body = text.strip()
    if body.startswith('[') and body.endswith(']'):
        body = body[1:-1]
    items = []
    for part in split_args(body):
        unquoted = unquote(part)
        items.append(unquoted if unquoted is not None else part)
    return items


def snake_case(name: str) -> str:
    """UserProfile -> user_profile"""
    name = re.sub(r'([A-Z]+)([A-Z][a-z])', r'\1_\2', name)
    return re.sub(r'([a-z0-9])([A-Z])', r'\1_\2', name).lower()
