#!/usr/bin/env python3
"""
SchemaPort Error Hierarchy
Canonical exception classes for the conversion pipeline.
"""

from enum import Enum

class ErrorCode(Enum):
    UNKNOWN = "UNKNOWN_ERROR"
    UNSUPPORTED_DIALECT = "UNSUPPORTED_DIALECT"
    SYNTAX_ERROR = "SYNTAX_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    DIFF_ERROR = "DIFF_ERROR"

class SchemaPortError(Exception):
    """Base class for all SchemaPort exceptions"""
    def __init__(self, message: str, code: ErrorCode = ErrorCode.UNKNOWN, details: dict = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

class UnsupportedDialectError(SchemaPortError):
    """Raised when a source dialect or target format is not known"""
    def __init__(self, name: str, kind: str = "dialect", supported: list = None):
        supported = supported or []
        message = f"Unsupported {kind}: {name!r}"
        if supported:
            message += f" (supported: {', '.join(supported)})"
        details = {'name': name, 'kind': kind, 'supported': supported}
        super().__init__(message, ErrorCode.UNSUPPORTED_DIALECT, details)
        self.name = name
        self.kind = kind

class ParseError(SchemaPortError):
    """Raised when a DDL statement cannot be parsed"""
    def __init__(self, message: str, statement: str = None, line: int = None, column: int = None):
        details = {'statement': statement, 'line': line, 'column': column}
        super().__init__(message, ErrorCode.SYNTAX_ERROR, details)
        self.statement = statement
        self.line = line
        self.column = column

class ValidationError(SchemaPortError):
    """Raised when an IR value violates a data-model invariant"""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, ErrorCode.VALIDATION_ERROR, details)

class DiffError(SchemaPortError):
    """Raised when schemas handed to the differ are not well-formed"""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, ErrorCode.DIFF_ERROR, details)
