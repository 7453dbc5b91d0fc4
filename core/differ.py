#!/usr/bin/env python3
"""
SchemaPort Migration Differ

Compares two IRSchema snapshots and generates a PostgreSQL migration script.

Tables and columns are matched by exact name, so a rename shows up as a drop
plus an add. The generated script runs in one transaction and follows a fixed
statement order:

    1. drop foreign keys        6. add columns
    2. drop indexes             7. alter columns
    3. drop columns             8. create indexes
    4. drop tables              9. add foreign keys
    5. create tables

Warnings (data loss, type narrowing, unresolved references) are collected as
structured values and never stop generation.
"""

import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from core.errors import DiffError, ValidationError
from core.options import ConvertOptions
from core.schema_ir import IRSchema, IREntity, IRAttribute, IRIndex, IRRelation
from core.type_registry import TypeRegistry, TypeInfo
from core.ir_validator import validate_schema
from core.diagnostics import DataLossWarning, TypeNarrowingWarning, UnresolvedReferenceWarning, render_warnings
from core.emitters.base import foreign_keys, topological_sort, render_type, render_default, column_suffix
from core.emitters.sql import SQLEmitter, fk_name

logger = logging.getLogger(__name__)

TARGET = 'postgresql'


class ColumnFacet(Enum):
    NULLABILITY = "nullability"
    TYPE = "type"
    DEFAULT = "default"
    UNIQUE = "unique"
    REFERENCE = "reference"


@dataclass
class ColumnChange:
    name: str
    old: IRAttribute
    new: IRAttribute
    facets: List[ColumnFacet] = field(default_factory=list)


@dataclass
class TableDiff:
    """Changes to one table present in both schemas"""
    table_name: str
    columns_to_add: List[IRAttribute] = field(default_factory=list)
    columns_to_remove: List[IRAttribute] = field(default_factory=list)
    columns_to_modify: List[ColumnChange] = field(default_factory=list)
    indexes_to_add: List[IRIndex] = field(default_factory=list)
    indexes_to_remove: List[IRIndex] = field(default_factory=list)
    relations_to_add: List[IRRelation] = field(default_factory=list)
    relations_to_remove: List[IRRelation] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return any((self.columns_to_add, self.columns_to_remove, self.columns_to_modify,
                    self.indexes_to_add, self.indexes_to_remove,
                    self.relations_to_add, self.relations_to_remove))


@dataclass
class SchemaDiff:
    tables_to_add: List[IREntity] = field(default_factory=list)
    tables_to_remove: List[IREntity] = field(default_factory=list)
    tables_to_modify: List[TableDiff] = field(default_factory=list)
    old: IRSchema = field(default_factory=IRSchema, repr=False)
    new: IRSchema = field(default_factory=IRSchema, repr=False)

    @property
    def is_empty(self) -> bool:
        return not (self.tables_to_add or self.tables_to_remove or self.tables_to_modify)

    def summary(self) -> List[str]:
        """Human-readable description of the diff, one line per change group"""
        if self.is_empty:
            return ["No changes detected"]
        lines = []
        if self.tables_to_add:
            lines.append(f"Tables to add: {', '.join(e.name for e in self.tables_to_add)}")
        if self.tables_to_remove:
            lines.append(f"Tables to remove: {', '.join(e.name for e in self.tables_to_remove)}")
        if self.tables_to_modify:
            lines.append(f"Tables to modify: {', '.join(t.table_name for t in self.tables_to_modify)}")
        for table in self.tables_to_modify:
            if table.columns_to_add:
                lines.append(f"  {table.table_name}: add columns {', '.join(c.name for c in table.columns_to_add)}")
            if table.columns_to_remove:
                lines.append(f"  {table.table_name}: remove columns "
                             f"{', '.join(c.name for c in table.columns_to_remove)}")
            for change in table.columns_to_modify:
                facets = ', '.join(f.value for f in change.facets)
                lines.append(f"  {table.table_name}: modify column {change.name} ({facets})")
            if table.indexes_to_add or table.indexes_to_remove:
                lines.append(f"  {table.table_name}: {len(table.indexes_to_add)} index(es) to add, "
                             f"{len(table.indexes_to_remove)} to remove")
            if table.relations_to_add or table.relations_to_remove:
                lines.append(f"  {table.table_name}: {len(table.relations_to_add)} foreign key(s) to add, "
                             f"{len(table.relations_to_remove)} to remove")
        return lines

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tables_to_add': [e.name for e in self.tables_to_add],
            'tables_to_remove': [e.name for e in self.tables_to_remove],
            'tables_to_modify': [
                {
                    'table_name': t.table_name,
                    'columns_to_add': [c.name for c in t.columns_to_add],
                    'columns_to_remove': [c.name for c in t.columns_to_remove],
                    'columns_to_modify': [
                        {'name': c.name, 'facets': [f.value for f in c.facets]} for c in t.columns_to_modify
                    ],
                    'indexes_to_add': [list(i.columns) for i in t.indexes_to_add],
                    'indexes_to_remove': [list(i.columns) for i in t.indexes_to_remove],
                    'relations_to_add': [fk_name(r) for r in t.relations_to_add],
                    'relations_to_remove': [fk_name(r) for r in t.relations_to_remove],
                }
                for t in self.tables_to_modify
            ],
        }


@dataclass
class MigrationResult:
    sql: str
    warnings: List[Any] = field(default_factory=list)
    success: bool = True
    error: Optional[str] = None

    def rendered_warnings(self) -> List[str]:
        return render_warnings(self.warnings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'sql': self.sql,
            'warnings': [w.to_dict() for w in self.warnings],
            'error': self.error,
        }


def diff_schemas(old: IRSchema, new: IRSchema) -> SchemaDiff:
    """
    Compare two schemas by table and column name.

    Raises:
        DiffError: either input is not a well-formed IRSchema
    """
    for label, schema in (('old', old), ('new', new)):
        try:
            validate_schema(schema)
        except ValidationError as e:
            raise DiffError(f"Invalid {label} schema: {e.message}", {'schema': label, **e.details}) from e

    diff = SchemaDiff(old=old, new=new)
    old_names = set(old.entity_names())
    new_names = set(new.entity_names())

    diff.tables_to_add = [e for e in new.entities if e.name not in old_names]
    diff.tables_to_remove = [e for e in old.entities if e.name not in new_names]

    old_fks = _fks_by_table(old)
    new_fks = _fks_by_table(new)
    for entity in new.entities:
        previous = old.get_entity(entity.name)
        if previous is None:
            continue
        table = _diff_table(previous, entity, old_fks.get(entity.name, []), new_fks.get(entity.name, []))
        if table.has_changes:
            diff.tables_to_modify.append(table)

    logger.info(f"Diff: +{len(diff.tables_to_add)} -{len(diff.tables_to_remove)} "
                f"~{len(diff.tables_to_modify)} tables")
    return diff


def _fks_by_table(ir: IRSchema) -> Dict[str, List[IRRelation]]:
    result: Dict[str, List[IRRelation]] = {}
    for fk in foreign_keys(ir):
        result.setdefault(fk.source_entity, []).append(fk)
    return result


def _fk_key(fk: IRRelation) -> Tuple:
    return (tuple(fk.source_columns), fk.target_entity, tuple(fk.target_columns), fk.on_delete, fk.on_update)


def _index_key(index: IRIndex) -> Tuple:
    return (tuple(index.columns), index.unique)


def _diff_table(old: IREntity, new: IREntity, old_fks: List[IRRelation], new_fks: List[IRRelation]) -> TableDiff:
    table = TableDiff(new.name)
    old_columns = set(old.attribute_names())
    new_columns = set(new.attribute_names())

    table.columns_to_add = [a for a in new.attributes if a.name not in old_columns]
    table.columns_to_remove = [a for a in old.attributes if a.name not in new_columns]

    old_refs = {tuple(fk.source_columns): _fk_key(fk) for fk in old_fks}
    new_refs = {tuple(fk.source_columns): _fk_key(fk) for fk in new_fks}

    for attr in new.attributes:
        previous = old.get_attribute(attr.name)
        if previous is None:
            continue
        facets = _column_facets(previous, attr)
        if old_refs.get((attr.name,)) != new_refs.get((attr.name,)):
            facets.append(ColumnFacet.REFERENCE)
        if facets:
            table.columns_to_modify.append(ColumnChange(attr.name, previous, attr, facets))

    old_indexes = {_index_key(i) for i in old.indexes}
    new_indexes = {_index_key(i) for i in new.indexes}
    table.indexes_to_add = [i for i in new.indexes if _index_key(i) not in old_indexes]
    table.indexes_to_remove = [i for i in old.indexes if _index_key(i) not in new_indexes]

    old_keys = {_fk_key(fk) for fk in old_fks}
    new_keys = {_fk_key(fk) for fk in new_fks}
    table.relations_to_add = [fk for fk in new_fks if _fk_key(fk) not in old_keys]
    table.relations_to_remove = [fk for fk in old_fks if _fk_key(fk) not in new_keys]
    return table


def _column_facets(old: IRAttribute, new: IRAttribute) -> List[ColumnFacet]:
    facets = []
    if old.is_optional != new.is_optional:
        facets.append(ColumnFacet.NULLABILITY)
    if TypeInfo.of(old) != TypeInfo.of(new):
        facets.append(ColumnFacet.TYPE)
    if (old.default or None) != (new.default or None):
        facets.append(ColumnFacet.DEFAULT)
    if old.is_unique != new.is_unique:
        facets.append(ColumnFacet.UNIQUE)
    return facets


def generate_migration_sql(diff: SchemaDiff, options: Optional[ConvertOptions] = None) -> MigrationResult:
    """
    Render `diff` as a transactional PostgreSQL script.

    Returns a MigrationResult; `success` is False only when generation raised,
    in which case `sql` is empty and `error` holds the message.
    """
    generator = _MigrationWriter(diff, options or ConvertOptions())
    try:
        sql = generator.write()
    except Exception as e:
        logger.error(f"Migration generation failed: {e}")
        return MigrationResult(sql='', warnings=generator.warnings, success=False, error=str(e))
    logger.info(f"Generated migration with {len(generator.warnings)} warning(s)")
    return MigrationResult(sql=sql, warnings=generator.warnings)


class _MigrationWriter:
    """Accumulates the statements of one migration in the fixed step order"""

    def __init__(self, diff: SchemaDiff, options: ConvertOptions):
        self.diff = diff
        self.options = options
        self.sql = SQLEmitter(TARGET, options)
        self.warnings: List[Any] = []

    def write(self) -> str:
        steps = [
            ("Drop foreign keys", self._drop_foreign_keys()),
            ("Drop indexes", self._drop_indexes()),
            ("Drop columns", self._drop_columns()),
            ("Drop tables", self._drop_tables()),
            ("Create tables", self._create_tables()),
            ("Add columns", self._add_columns()),
            ("Alter columns", self._alter_columns()),
            ("Create indexes", self._create_indexes()),
            ("Add foreign keys", self._add_foreign_keys()),
        ]
        lines = ["-- Migration script", "BEGIN;", ""]
        for title, statements in steps:
            if statements:
                lines += [f"-- {title}"] + statements + [""]
        lines.append("COMMIT;")
        return '\n'.join(lines) + '\n'

    def _q(self, name: str) -> str:
        return self.sql.quote(name)

    def _table(self, name: str) -> str:
        return self.sql.table_name(name)

    # -- destructive steps -------------------------------------------------

    def _drop_foreign_keys(self) -> List[str]:
        return [
            f"ALTER TABLE {self._table(fk.source_entity)} DROP CONSTRAINT IF EXISTS {self._q(fk_name(fk))};"
            for table in self.diff.tables_to_modify
            for fk in table.relations_to_remove
        ]

    def _drop_indexes(self) -> List[str]:
        statements = []
        for table in self.diff.tables_to_modify:
            for index in table.indexes_to_remove:
                name = self._q(f"idx_{table.table_name}_{column_suffix(index.columns)}")
                if self.sql.has_schema:
                    name = f"{self._q(self.options.schema)}.{name}"
                statements.append(f"DROP INDEX IF EXISTS {name};")
        return statements

    def _drop_columns(self) -> List[str]:
        statements = []
        for table in self.diff.tables_to_modify:
            for attr in table.columns_to_remove:
                self.warnings.append(DataLossWarning(table.table_name, attr.name))
                statements.append(f"ALTER TABLE {self._table(table.table_name)} DROP COLUMN IF EXISTS {self._q(attr.name)};")
        return statements

    def _drop_tables(self) -> List[str]:
        removed = self.diff.tables_to_remove
        order = topological_sort(removed, foreign_keys(self.diff.old)).order
        statements = []
        # dependents first
        for entity in reversed(order):
            self.warnings.append(DataLossWarning(entity.name))
            statements.append(f"DROP TABLE IF EXISTS {self._table(entity.name)} CASCADE;")
        return statements

    # -- additive steps ----------------------------------------------------

    def _create_tables(self) -> List[str]:
        order = topological_sort(self.diff.tables_to_add, foreign_keys(self.diff.new)).order
        return [self.sql.create_table(entity, self.diff.new, []) for entity in order]

    def _add_columns(self) -> List[str]:
        statements = []
        for table in self.diff.tables_to_modify:
            entity = self.diff.new.get_entity(table.table_name)
            for attr in table.columns_to_add:
                if not attr.is_optional and attr.default is None and not attr.is_auto_increment:
                    self.warnings.append(TypeNarrowingWarning(
                        table.table_name, attr.name, '(absent)', self._type(attr),
                        "New NOT NULL column has no default; existing rows cannot be filled",
                    ))
                statements.append(f"ALTER TABLE {self._table(table.table_name)} "
                                  f"ADD COLUMN {self.sql.column_definition(entity, attr)};")
        return statements

    def _alter_columns(self) -> List[str]:
        statements = []
        for table in self.diff.tables_to_modify:
            target = self._table(table.table_name)
            for change in table.columns_to_modify:
                column = self._q(change.name)
                alter = f"ALTER TABLE {target} ALTER COLUMN {column}"
                old, new = change.old, change.new

                if ColumnFacet.TYPE in change.facets:
                    new_type = self._type(new)
                    narrowing, reason = TypeRegistry.is_narrowing(TypeInfo.of(old), TypeInfo.of(new))
                    if narrowing:
                        self.warnings.append(TypeNarrowingWarning(
                            table.table_name, change.name, self._type(old), new_type, reason,
                        ))
                    statements.append(f"{alter} TYPE {new_type} USING {column}::{new_type};")

                if ColumnFacet.NULLABILITY in change.facets:
                    if new.is_optional:
                        statements.append(f"{alter} DROP NOT NULL;")
                    else:
                        if new.default is None:
                            self.warnings.append(TypeNarrowingWarning(
                                table.table_name, change.name, 'NULL', 'NOT NULL',
                                "Column becomes NOT NULL without a default; existing NULL values will fail",
                            ))
                        statements.append(f"{alter} SET NOT NULL;")

                if ColumnFacet.DEFAULT in change.facets:
                    default = render_default(new, TARGET)
                    if default is None:
                        statements.append(f"{alter} DROP DEFAULT;")
                    else:
                        statements.append(f"{alter} SET DEFAULT {default};")

                if ColumnFacet.UNIQUE in change.facets:
                    constraint = self._q(f"{table.table_name}_{change.name}_key")
                    if new.is_unique:
                        statements.append(f"ALTER TABLE {target} ADD CONSTRAINT {constraint} UNIQUE ({column});")
                    else:
                        statements.append(f"ALTER TABLE {target} DROP CONSTRAINT IF EXISTS {constraint};")
        return statements

    def _create_indexes(self) -> List[str]:
        statements = self.sql.create_indexes(self.diff.tables_to_add)
        for table in self.diff.tables_to_modify:
            entity = IREntity(table.table_name, indexes=table.indexes_to_add)
            statements += self.sql.create_indexes([entity])
        return statements

    def _add_foreign_keys(self) -> List[str]:
        added = {entity.name for entity in self.diff.tables_to_add}
        pending = [fk for fk in foreign_keys(self.diff.new) if fk.source_entity in added]
        for table in self.diff.tables_to_modify:
            pending += table.relations_to_add

        statements = []
        for fk in pending:
            target = self.diff.new.get_entity(fk.target_entity)
            if target is None or any(target.get_attribute(c) is None for c in fk.target_columns):
                self.warnings.append(UnresolvedReferenceWarning(
                    fk.source_entity, list(fk.source_columns), fk.target_entity, list(fk.target_columns),
                ))
                statements.append(f"-- Skipped foreign key {fk_name(fk)}: target {fk.target_entity} is not defined")
                continue
            statements.append(self.sql.add_foreign_key(fk))
        return statements

    @staticmethod
    def _type(attr: IRAttribute) -> str:
        return render_type(attr, TARGET)
