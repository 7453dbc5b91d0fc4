#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
SchemaPort Core Package Initialization
Exports the conversion pipeline for clean imports

Version: 1.0.0
"""

from .errors import (SchemaPortError, ErrorCode, UnsupportedDialectError, ParseError,
                     ValidationError, DiffError)
from .type_registry import CanonicalType, TypeInfo, TypeRegistry
from .schema_ir import (IRSchema, IREntity, IRAttribute, IRReference, IRIndex, IRRelation,
                        IREnum, IRCheck, IRComment)
from .options import ConvertOptions
from .diagnostics import (WarningKind, DataLossWarning, TypeNarrowingWarning,
                          UnresolvedReferenceWarning, render_warnings)
from .lexer import SQLLexer, LexError, split_statements
from .dialects import Dialect, get_strategy, supported_dialects
from .ir_builder import IRBuilder
from .ir_validator import validate_schema
from .emitters import TargetFormat, emit, supported_targets, topological_sort
from .differ import (ColumnFacet, ColumnChange, TableDiff, SchemaDiff, MigrationResult,
                     diff_schemas, generate_migration_sql)
from .converter import ConversionResult, parse_to_ir, convert, migrate

# Export everything
__all__ = [
    # Errors
    'SchemaPortError',
    'ErrorCode',
    'UnsupportedDialectError',
    'ParseError',
    'LexError',
    'ValidationError',
    'DiffError',

    # IR
    'CanonicalType',
    'TypeInfo',
    'TypeRegistry',
    'IRSchema',
    'IREntity',
    'IRAttribute',
    'IRReference',
    'IRIndex',
    'IRRelation',
    'IREnum',
    'IRCheck',
    'IRComment',

    # Options and diagnostics
    'ConvertOptions',
    'WarningKind',
    'DataLossWarning',
    'TypeNarrowingWarning',
    'UnresolvedReferenceWarning',
    'render_warnings',

    # Pipeline
    'SQLLexer',
    'split_statements',
    'Dialect',
    'get_strategy',
    'supported_dialects',
    'IRBuilder',
    'validate_schema',
    'TargetFormat',
    'emit',
    'supported_targets',
    'topological_sort',
    'ColumnFacet',
    'ColumnChange',
    'TableDiff',
    'SchemaDiff',
    'MigrationResult',
    'diff_schemas',
    'generate_migration_sql',
    'ConversionResult',
    'parse_to_ir',
    'convert',
    'migrate',
]

# Version info
__version__ = '1.0.0'
__description__ = 'SchemaPort - DDL conversion and migration toolkit'
