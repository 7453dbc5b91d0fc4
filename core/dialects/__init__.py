"""
Source dialect registry.

Each dialect module exposes a STRATEGY; this package wires them into one
read-only mapping keyed by Dialect and refuses to import if any Dialect is
left unwired.
"""

from types import MappingProxyType
from typing import List, Mapping

from core.errors import UnsupportedDialectError
from core.dialects.base import Dialect, DialectStrategy, DIALECT_ALIASES
from core.dialects import sqlserver, mysql, postgresql, oracle, sqlite, mongodb, prisma, typeorm

_STRATEGIES: Mapping[Dialect, DialectStrategy] = MappingProxyType({
    module.STRATEGY.dialect: module.STRATEGY
    for module in (sqlserver, mysql, postgresql, oracle, sqlite, mongodb, prisma, typeorm)
})


def _check_registry():
    missing = [d.value for d in Dialect if d not in _STRATEGIES]
    if missing:
        raise ImportError(f"No dialect strategy registered for: {', '.join(missing)}")
    for dialect, strategy in _STRATEGIES.items():
        if not callable(strategy.parse) or strategy.type_map is None or strategy.default_map is None:
            raise ImportError(f"Incomplete dialect strategy for {dialect.value}")


_check_registry()


def get_strategy(dialect) -> DialectStrategy:
    """Look up the strategy for a Dialect or dialect name"""
    try:
        return _STRATEGIES[Dialect.from_name(dialect)]
    except KeyError:
        raise UnsupportedDialectError(str(dialect), "dialect", supported_dialects())


def supported_dialects() -> List[str]:
    return [d.value for d in Dialect]


__all__ = [
    'Dialect',
    'DialectStrategy',
    'DIALECT_ALIASES',
    'get_strategy',
    'supported_dialects',
]
