#!/usr/bin/env python3
"""
SchemaPort Converter

Function-level entry points over the whole pipeline:

    parse_to_ir: script -> IRSchema (plus warnings and skipped statements)
    convert:     script -> target text
    migrate:     IRSchema x IRSchema -> MigrationResult
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from core.errors import ParseError
from core.options import ConvertOptions
from core.schema_ir import IRSchema
from core.dialects import get_strategy
from core.ir_builder import IRBuilder
from core.emitters import TargetFormat, emit
from core.emitters.base import Clock
from core.differ import diff_schemas, generate_migration_sql, MigrationResult
from core.diagnostics import render_warnings

logger = logging.getLogger(__name__)

OptionsLike = Union[ConvertOptions, Dict[str, Any], None]


@dataclass
class ConversionResult:
    """IR built from one script, plus what the parse had to leave out"""
    ir: IRSchema
    warnings: List[Any] = field(default_factory=list)
    skipped: List[ParseError] = field(default_factory=list)

    def rendered_warnings(self) -> List[str]:
        lines = render_warnings(self.warnings)
        lines += [f"Skipped statement: {error.message}" for error in self.skipped]
        return lines


def _options(options: OptionsLike) -> ConvertOptions:
    if isinstance(options, ConvertOptions):
        return options
    return ConvertOptions.from_dict(options)


def parse_to_ir(script: str, dialect, options: OptionsLike = None) -> ConversionResult:
    """
    Parse a DDL script (or MongoDB schema document) into an IRSchema.

    The dialect is resolved before any parsing, so an unknown name raises
    UnsupportedDialectError without touching the script. Statements that fail
    to parse are skipped and reported in `skipped`.
    """
    strategy = get_strategy(dialect)
    options = _options(options)

    parsed = strategy.parse(script, options)
    builder = IRBuilder(strategy.dialect)
    ir = builder.build(parsed.tables, parsed.enums)

    logger.info(f"Parsed {strategy.dialect.value} script into {len(ir.entities)} entities "
                f"({len(parsed.errors)} skipped statement(s))")
    return ConversionResult(ir=ir, warnings=list(builder.warnings), skipped=list(parsed.errors))


def convert(script: str, source, target, options: OptionsLike = None, clock: Optional[Clock] = None) -> str:
    """
    Convert a script from a source dialect to a target format.

    Raises:
        UnsupportedDialectError: unknown source dialect or target format
        ParseError: nothing in the script produced a table
        ValidationError: the built IR is not well-formed
    """
    target_format = TargetFormat.from_name(target)
    options = _options(options)
    result = parse_to_ir(script, source, options)
    if not result.ir.entities:
        first = result.skipped[0] if result.skipped else None
        message = "No tables found in script"
        if first is not None:
            message += f" (first error: {first.message})"
        raise ParseError(message, statement=first.statement if first else None)
    return emit(result.ir, target_format, options, clock)


def migrate(old_ir: IRSchema, new_ir: IRSchema, options: OptionsLike = None) -> MigrationResult:
    """Diff two schemas and generate the PostgreSQL migration; raises DiffError on malformed input"""
    diff = diff_schemas(old_ir, new_ir)
    return generate_migration_sql(diff, _options(options))
