#!/usr/bin/env python3
"""
SchemaPort - Production Entry Point
This is the canonical way to use SchemaPort programmatically

Also supports command-line usage:
    python schemaport.py convert --from sqlserver --to postgresql schema.sql
    python schemaport.py dialects
    python schemaport.py --help
"""

import sys
import logging
from typing import Any, Dict, List, Optional, Union

from core import __version__
from core.options import ConvertOptions
from core.schema_ir import IRSchema
from core.dialects import supported_dialects
from core.emitters import emit, supported_targets
from core.emitters.base import Clock
from core.converter import ConversionResult, parse_to_ir, convert
from core.differ import SchemaDiff, MigrationResult, diff_schemas, generate_migration_sql
from core.report_generator import MigrationReport, generate_report
from config.settings import get_config

logger = logging.getLogger(__name__)

SCHEMAPORT_VERSION = __version__

IRLike = Union[IRSchema, Dict[str, Any]]


class SchemaPort:
    """
    Blessed API for SchemaPort

    Example:
        >>> from schemaport import SchemaPort
        >>>
        >>> port = SchemaPort()
        >>> ddl = "CREATE TABLE users (id INT IDENTITY(1,1) PRIMARY KEY, email NVARCHAR(255))"
        >>> print(port.convert(ddl, "sqlserver", "postgresql"))
        >>>
        >>> old = port.parse(ddl, "sqlserver").ir
        >>> new = port.parse(ddl_v2, "sqlserver").ir
        >>> result = port.migrate(old, new)
        >>> print(result.sql)
    """

    def __init__(self, options: Optional[ConvertOptions] = None, clock: Optional[Clock] = None):
        """
        Args:
            options: Default options for every call (default: built from the environment config)
            clock: Callable returning the datetime stamped into emitted headers
        """
        self.config = get_config()
        self.options = options or self.config.default_options()
        self.clock = clock

    def _options(self, overrides: Optional[Dict[str, Any]]) -> ConvertOptions:
        if not overrides:
            return self.options
        return self.options.merged(overrides)

    @staticmethod
    def _ir(value: IRLike) -> IRSchema:
        if isinstance(value, IRSchema):
            return value
        return IRSchema.from_dict(value)

    def parse(self, script: str, dialect, **overrides) -> ConversionResult:
        """
        Parse a script into IR

        Args:
            script: DDL script (or MongoDB schema document)
            dialect: Source dialect name or Dialect
            **overrides: Option fields for this call only

        Returns:
            ConversionResult with the IR, builder warnings and skipped statements
        """
        return parse_to_ir(script, dialect, self._options(overrides))

    def emit(self, ir: IRLike, target, **overrides) -> str:
        return emit(self._ir(ir), target, self._options(overrides), self.clock)

    def convert(self, script: str, source, target, **overrides) -> str:
        """
        Convert a script between formats

        Example:
            >>> port.convert(ddl, "mysql", "prisma", add_timestamps=True)
        """
        return convert(script, source, target, self._options(overrides), self.clock)

    def diff(self, old: IRLike, new: IRLike) -> SchemaDiff:
        return diff_schemas(self._ir(old), self._ir(new))

    def migrate(self, old: IRLike, new: IRLike, **overrides) -> MigrationResult:
        """
        Generate the PostgreSQL migration from `old` to `new`

        Warnings never block generation; inspect result.warnings before applying.
        """
        return generate_migration_sql(self.diff(old, new), self._options(overrides))

    def report(self, old: IRLike, new: IRLike, **overrides) -> MigrationReport:
        diff = self.diff(old, new)
        return generate_report(diff, generate_migration_sql(diff, self._options(overrides)))

    @staticmethod
    def dialects() -> List[str]:
        return supported_dialects()

    @staticmethod
    def targets() -> List[str]:
        return supported_targets()


if __name__ == "__main__":
    from tools.schema_migrator import main
    sys.exit(main())
