#!/usr/bin/env python3
"""
SchemaPort Diagnostics

Structured warnings produced by the IR builder, the validator and the
migration differ. They carry context as fields and are rendered to text only
at the presentation boundary (CLI, HTTP service, migration report).
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class WarningKind(Enum):
    DATA_LOSS = "data_loss"
    TYPE_NARROWING = "type_narrowing"
    UNRESOLVED_REFERENCE = "unresolved_reference"


@dataclass
class DataLossWarning:
    """A table or column is dropped"""
    table: str
    column: Optional[str] = None
    kind: WarningKind = field(default=WarningKind.DATA_LOSS, init=False)

    def render(self) -> str:
        if self.column is None:
            return f"Dropping table {self.table} causes permanent data loss of all its rows"
        return f"Dropping column {self.table}.{self.column} causes permanent data loss of its values"

    def to_dict(self) -> Dict[str, Any]:
        return {'kind': self.kind.value, 'table': self.table, 'column': self.column, 'message': self.render()}


@dataclass
class TypeNarrowingWarning:
    """A column change can fail or truncate existing values"""
    table: str
    column: str
    old_type: str
    new_type: str
    reason: str
    kind: WarningKind = field(default=WarningKind.TYPE_NARROWING, init=False)

    def render(self) -> str:
        return (f"Changing {self.table}.{self.column} from {self.old_type} to {self.new_type} "
                f"may fail or truncate data: {self.reason}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value, 'table': self.table, 'column': self.column,
            'old_type': self.old_type, 'new_type': self.new_type, 'reason': self.reason,
            'message': self.render(),
        }


@dataclass
class UnresolvedReferenceWarning:
    """A foreign key points at an entity or column that does not exist"""
    table: str
    columns: List[str]
    target_table: str
    target_columns: List[str]
    kind: WarningKind = field(default=WarningKind.UNRESOLVED_REFERENCE, init=False)

    def render(self) -> str:
        source = f"{self.table}({', '.join(self.columns)})"
        target = f"{self.target_table}({', '.join(self.target_columns)})"
        return f"Foreign key {source} references {target}, which does not exist in the schema"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value, 'table': self.table, 'columns': list(self.columns),
            'target_table': self.target_table, 'target_columns': list(self.target_columns),
            'message': self.render(),
        }


def render_warnings(warnings) -> List[str]:
    return [w.render() for w in warnings]
