"""
Target format registry and the emit() entry point.
"""

import logging
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from core.errors import UnsupportedDialectError
from core.options import ConvertOptions
from core.schema_ir import IRSchema
from core.emitters.base import Clock, topological_sort, SortResult
from core.emitters.sql import SQLEmitter
from core.emitters.orm import PrismaEmitter, TypeORMEmitter, SequelizeEmitter
from core.emitters.docs import DBMLEmitter, MermaidEmitter
from core.emitters.json_schema import JSONSchemaEmitter

logger = logging.getLogger(__name__)


class TargetFormat(Enum):
    """Supported output formats"""
    POSTGRESQL = "postgresql"
    SUPABASE = "supabase"
    MYSQL = "mysql"
    SQLSERVER = "sqlserver"
    SQLITE = "sqlite"
    PRISMA = "prisma"
    TYPEORM = "typeorm"
    SEQUELIZE = "sequelize"
    DBML = "dbml"
    MERMAID = "mermaid"
    JSON_SCHEMA = "json-schema"

    @classmethod
    def from_name(cls, name) -> 'TargetFormat':
        if isinstance(name, cls):
            return name
        key = str(name or '').strip().lower()
        key = TARGET_ALIASES.get(key, key)
        for target in cls:
            if target.value == key:
                return target
        raise UnsupportedDialectError(str(name), "target", [t.value for t in cls])

    @property
    def is_sql(self) -> bool:
        return self in (TargetFormat.POSTGRESQL, TargetFormat.SUPABASE, TargetFormat.MYSQL,
                        TargetFormat.SQLSERVER, TargetFormat.SQLITE)


TARGET_ALIASES = {
    'postgres': 'postgresql',
    'pg': 'postgresql',
    'mssql': 'sqlserver',
    'sql server': 'sqlserver',
    'tsql': 'sqlserver',
    'mariadb': 'mysql',
    'sqlite3': 'sqlite',
    'jsonschema': 'json-schema',
    'json_schema': 'json-schema',
    'json': 'json-schema',
}

# TargetFormat -> factory(options, clock) returning an object with emit(ir)
_EMITTERS: Mapping[TargetFormat, Callable[..., Any]] = MappingProxyType({
    TargetFormat.POSTGRESQL: lambda options, clock: SQLEmitter('postgresql', options, clock),
    TargetFormat.SUPABASE: lambda options, clock: SQLEmitter('supabase', options, clock),
    TargetFormat.MYSQL: lambda options, clock: SQLEmitter('mysql', options, clock),
    TargetFormat.SQLSERVER: lambda options, clock: SQLEmitter('sqlserver', options, clock),
    TargetFormat.SQLITE: lambda options, clock: SQLEmitter('sqlite', options, clock),
    TargetFormat.PRISMA: PrismaEmitter,
    TargetFormat.TYPEORM: TypeORMEmitter,
    TargetFormat.SEQUELIZE: SequelizeEmitter,
    TargetFormat.DBML: DBMLEmitter,
    TargetFormat.MERMAID: MermaidEmitter,
    TargetFormat.JSON_SCHEMA: JSONSchemaEmitter,
})

if set(_EMITTERS) != set(TargetFormat):
    raise ImportError("Every TargetFormat needs a registered emitter")


def emit(ir: IRSchema, target, options: Union[ConvertOptions, Dict[str, Any], None] = None,
         clock: Optional[Clock] = None) -> str:
    """
    Render `ir` in a target format.

    Args:
        ir: Schema to render; validated before any output is produced
        target: TargetFormat or target name ("postgresql", "prisma", ...)
        options: ConvertOptions or a dict accepted by ConvertOptions.from_dict
        clock: Callable returning the datetime for the "Generated on:" line

    Raises:
        UnsupportedDialectError: unknown target
        ValidationError: `ir` violates an IR invariant
    """
    target_format = TargetFormat.from_name(target)
    if not isinstance(options, ConvertOptions):
        options = ConvertOptions.from_dict(options)
    emitter = _EMITTERS[target_format](options, clock)
    logger.debug(f"Emitting {target_format.value}")
    return emitter.emit(ir)


def supported_targets() -> List[str]:
    return [t.value for t in TargetFormat]


__all__ = [
    'TargetFormat',
    'emit',
    'supported_targets',
    'topological_sort',
    'SortResult',
    'SQLEmitter',
    'PrismaEmitter',
    'TypeORMEmitter',
    'SequelizeEmitter',
    'DBMLEmitter',
    'MermaidEmitter',
    'JSONSchemaEmitter',
]
