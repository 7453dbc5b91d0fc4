"""
Dialect identifiers and the per-dialect strategy record.

Every source dialect contributes one DialectStrategy: its parse entry point
plus the type and default rewrite tables the normalizer applies.
"""

from enum import Enum
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from core.errors import UnsupportedDialectError


class Dialect(Enum):
    """Supported source dialects"""
    SQLSERVER = "sqlserver"
    MYSQL = "mysql"
    POSTGRESQL = "postgresql"
    ORACLE = "oracle"
    SQLITE = "sqlite"
    MONGODB = "mongodb"
    PRISMA = "prisma"
    TYPEORM = "typeorm"

    @classmethod
    def from_name(cls, name) -> 'Dialect':
        """Resolve a dialect from its name or a common alias"""
        if isinstance(name, cls):
            return name
        key = str(name or '').strip().lower()
        key = DIALECT_ALIASES.get(key, key)
        for dialect in cls:
            if dialect.value == key:
                return dialect
        raise UnsupportedDialectError(str(name), "dialect", [d.value for d in cls])


DIALECT_ALIASES = {
    'mssql': 'sqlserver',
    'sql server': 'sqlserver',
    'sql-server': 'sqlserver',
    'tsql': 'sqlserver',
    'azure-sql': 'sqlserver',
    'mariadb': 'mysql',
    'postgres': 'postgresql',
    'pg': 'postgresql',
    'pgsql': 'postgresql',
    'sqlite3': 'sqlite',
    'mongo': 'mongodb',
    'schema.prisma': 'prisma',
    'type-orm': 'typeorm',
}


@dataclass(frozen=True)
class DialectStrategy:
    """
    Everything the pipeline needs to know about one source dialect.

    parse:        (script, options) -> ParseResult, already normalized
    type_map:     raw type (full spelling or base name, upper case) -> rewrite
    default_map:  default expression (lower case) -> shared default vocabulary
    type_rule:    optional fallback for raw types the map does not cover
    default_rule: optional cleanup applied to every default before the map
    """
    dialect: Dialect
    parse: Callable
    type_map: Mapping[str, str]
    default_map: Mapping[str, str]
    type_rule: Optional[Callable[[str], str]] = None
    default_rule: Optional[Callable[[str], str]] = None
