#!/usr/bin/env python3
"""
SchemaPort SQL Emitters

Renders an IRSchema as DDL for PostgreSQL, Supabase, MySQL, SQL Server and
SQLite. Output layout:

    header (with the Generated on: line)
    [schema], [enums]
    tables in dependency order
    indexes
    foreign keys (ALTER TABLE ... ADD CONSTRAINT, after every table)
    check constraints
    comments, row level security (PostgreSQL family)

SQLite cannot add constraints with ALTER TABLE, so its foreign keys and
checks are written inside CREATE TABLE.
"""

import logging
from typing import List, Optional

from core.options import ConvertOptions
from core.schema_ir import IRSchema, IREntity, IRAttribute, IRRelation, IRCheck
from core.type_registry import CanonicalType
from core.ir_validator import validate_schema
from core.emitters.base import (Clock, generated_on, topological_sort, split_foreign_keys, quote_identifier,
                                render_type, render_default, prepare_entities, column_suffix,
                                is_single_serial_key, sql_family)

logger = logging.getLogger(__name__)

TARGET_TITLES = {
    'postgresql': 'PostgreSQL',
    'supabase': 'Supabase',
    'mysql': 'MySQL',
    'sqlserver': 'SQL Server',
    'sqlite': 'SQLite',
}

OWNER_COLUMNS = ('owner_id', 'user_id')


class SQLEmitter:
    """DDL emitter for one SQL target"""

    def __init__(self, target: str, options: Optional[ConvertOptions] = None, clock: Optional[Clock] = None):
        if target not in TARGET_TITLES:
            raise ValueError(f"Not a SQL target: {target}")
        self.target = target
        self.family = sql_family(target)
        self.options = options or ConvertOptions()
        self.clock = clock
        # enums declared by the schema being emitted; empty for migrations
        self.enum_types = set()

    @property
    def is_postgres(self) -> bool:
        return self.family == 'postgresql'

    def emit(self, ir: IRSchema) -> str:
        validate_schema(ir)
        emitted_fks, skipped_fks = split_foreign_keys(ir)

        self.enum_types = {e.name for e in ir.enums} if self.is_postgres else set()
        entities = prepare_entities(ir, self.options.add_timestamps)
        order = topological_sort(entities, emitted_fks)
        if order.cycle_breaks:
            logger.info(f"Foreign key cycle broken at: {', '.join(order.cycle_breaks)}")

        lines = [
            f"-- Generated {TARGET_TITLES[self.target]} schema",
            f"-- {generated_on(self.clock)}",
            "",
        ]
        if self.family == 'sqlite':
            lines += ["PRAGMA foreign_keys = ON;", ""]

        if self.is_postgres and self.options.create_schema and self.has_schema:
            lines += [f"CREATE SCHEMA IF NOT EXISTS {self.quote(self.options.schema)};", ""]

        if self.is_postgres and ir.enums:
            lines.append("-- Enums")
            for enum in ir.enums:
                values = ', '.join(_literal(v) for v in enum.values)
                lines.append(f"CREATE TYPE {self.table_name(enum.name)} AS ENUM ({values});")
            lines.append("")

        lines.append("-- Tables")
        for entity in order.order:
            lines.append(self.create_table(entity, ir, emitted_fks))
            lines.append("")

        index_lines = self.create_indexes(order.order)
        if index_lines:
            lines += ["-- Indexes"] + index_lines + [""]

        if self.family != 'sqlite':
            fk_lines = [self.add_foreign_key(fk) for fk in emitted_fks]
            fk_lines += [f"-- Skipped foreign key {fk_name(fk)}: target {fk.target_entity} is not defined"
                         for fk in skipped_fks]
            if fk_lines:
                lines += ["-- Foreign Key Constraints"] + fk_lines + [""]

            if ir.checks:
                lines.append("-- Check Constraints")
                for number, check in enumerate(ir.checks, 1):
                    lines.append(self._add_check(check, number))
                lines.append("")

        if self.is_postgres and self.options.include_comments and ir.comments:
            lines.append("-- Comments")
            for comment in ir.comments:
                if comment.column:
                    lines.append(f"COMMENT ON COLUMN {self.table_name(comment.table)}.{self.quote(comment.column)} "
                                 f"IS {_literal(comment.text)};")
                else:
                    lines.append(f"COMMENT ON TABLE {self.table_name(comment.table)} IS {_literal(comment.text)};")
            lines.append("")

        if self.is_postgres and self.options.with_rls:
            lines.append("-- Row Level Security")
            for entity in order.order:
                lines += self._rls_policies(entity)
            lines.append("")

        logger.debug(f"Emitted {self.target} DDL for {len(entities)} entities")
        return '\n'.join(lines)

    # -- naming ------------------------------------------------------------

    def quote(self, name: str) -> str:
        return quote_identifier(name, self.target)

    @property
    def has_schema(self) -> bool:
        return bool(self.options.schema) and self.options.schema != 'public'

    def table_name(self, table: str) -> str:
        """Schema-qualified table name; MySQL and SQLite are never qualified"""
        if self.family in ('postgresql', 'sqlserver') and self.has_schema:
            return f"{self.quote(self.options.schema)}.{self.quote(table)}"
        return self.quote(table)

    def _columns(self, columns: List[str]) -> str:
        return ', '.join(self.quote(c) for c in columns)

    # -- tables ------------------------------------------------------------

    def create_table(self, entity: IREntity, ir: IRSchema, fks: List[IRRelation]) -> str:
        definitions = [f"  {self.column_definition(entity, attr)}" for attr in entity.attributes]

        if len(entity.primary_key) > 1:
            definitions.append(f"  CONSTRAINT {self.quote(entity.name + '_pkey')} PRIMARY KEY "
                               f"({self._columns(entity.primary_key)})")
        for number, unique in enumerate(entity.uniques, 1):
            definitions.append(f"  CONSTRAINT {self.quote(f'{entity.name}_unique_{number}')} UNIQUE "
                               f"({self._columns(unique)})")

        if self.family == 'sqlite':
            for fk in fks:
                if fk.source_entity == entity.name:
                    definitions.append(f"  CONSTRAINT {self.quote(fk_name(fk))} {self._fk_clause(fk)}")
            for number, check in enumerate(ir.checks, 1):
                if check.table == entity.name:
                    definitions.append(f"  CONSTRAINT {self.quote(_check_name(check, number))} CHECK ({check.expression})")

        closing = ");"
        if self.family == 'mysql':
            closing = ") ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;"
        return '\n'.join([f"CREATE TABLE {self.table_name(entity.name)} ("] + [',\n'.join(definitions)] + [closing])

    def column_definition(self, entity: IREntity, attr: IRAttribute) -> str:
        single_pk = entity.primary_key == [attr.name]
        serial = is_single_serial_key(entity, attr) or (attr.is_auto_increment and self.is_postgres)
        parts = [self.quote(attr.name)]

        if serial and self.is_postgres:
            parts.append('BIGSERIAL' if attr.type == CanonicalType.BIGINT else 'SERIAL')
        elif serial and self.family == 'sqlite' and single_pk:
            parts.append('INTEGER')
        elif attr.enum in self.enum_types:
            parts.append(self.table_name(attr.enum))
        else:
            parts.append(render_type(attr, self.target))
            if attr.is_auto_increment and self.family == 'sqlserver':
                parts.append('IDENTITY(1,1)')

        if not attr.is_optional:
            parts.append('NOT NULL')

        default = None if attr.is_auto_increment else render_default(attr, self.target)
        if default is not None:
            parts.append(f"DEFAULT {default}")

        if single_pk:
            parts.append('PRIMARY KEY')
            if serial and self.family == 'sqlite':
                parts.append('AUTOINCREMENT')
        elif attr.is_unique:
            parts.append('UNIQUE')

        if attr.is_auto_increment and self.family == 'mysql':
            parts.append('AUTO_INCREMENT')
        return ' '.join(parts)

    # -- trailing sections -------------------------------------------------

    def create_indexes(self, entities) -> List[str]:
        lines = []
        for entity in entities:
            for index in entity.indexes:
                unique = 'UNIQUE ' if index.unique else ''
                name = f"idx_{entity.name}_{column_suffix(index.columns)}"
                lines.append(f"CREATE {unique}INDEX {self.quote(name)} ON {self.table_name(entity.name)} "
                             f"({self._columns(index.columns)});")
        return lines

    def _fk_clause(self, fk: IRRelation) -> str:
        clause = (f"FOREIGN KEY ({self._columns(fk.source_columns)}) "
                  f"REFERENCES {self.table_name(fk.target_entity)} ({self._columns(fk.target_columns)})")
        if fk.on_delete:
            clause += f" ON DELETE {fk.on_delete}"
        if fk.on_update:
            clause += f" ON UPDATE {fk.on_update}"
        return clause

    def add_foreign_key(self, fk: IRRelation) -> str:
        return (f"ALTER TABLE {self.table_name(fk.source_entity)} ADD CONSTRAINT {self.quote(fk_name(fk))} "
                f"{self._fk_clause(fk)};")

    def _add_check(self, check: IRCheck, number: int) -> str:
        return (f"ALTER TABLE {self.table_name(check.table)} ADD CONSTRAINT {self.quote(_check_name(check, number))} "
                f"CHECK ({check.expression});")

    def _rls_policies(self, entity: IREntity) -> List[str]:
        table = self.table_name(entity.name)
        lines = [f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY;"]

        owner = next((a.name for a in entity.attributes if a.name.lower() in OWNER_COLUMNS), None)
        if owner is None:
            lines.append(f"CREATE POLICY {self.quote(entity.name + '_authenticated_all')} ON {table} "
                         f"FOR ALL USING (auth.role() = 'authenticated');")
            return lines

        owns = f"auth.uid()::text = {self.quote(owner)}::text"
        for action in ('select', 'update', 'delete'):
            lines.append(f"CREATE POLICY {self.quote(f'{entity.name}_owner_{action}')} ON {table} "
                         f"FOR {action.upper()} USING ({owns});")
        lines.append(f"CREATE POLICY {self.quote(entity.name + '_authenticated_insert')} ON {table} "
                     f"FOR INSERT WITH CHECK (auth.role() = 'authenticated');")
        return lines


def fk_name(fk: IRRelation) -> str:
    return f"fk_{fk.source_entity}_{column_suffix(fk.source_columns)}"


def _check_name(check: IRCheck, number: int) -> str:
    return check.name or f"{check.table}_check_{number}"


def _literal(text: str) -> str:
    return "'" + text.replace("'", "''") + "'"
