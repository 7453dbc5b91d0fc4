#!/usr/bin/env python3
"""
SchemaPort IR Builder

Turns normalized ParsedTable records into an IRSchema.

Two passes: every table becomes an entity first, then foreign keys are
collected across all tables so forward references resolve regardless of
declaration order. A foreign key whose target is missing (or whose target
columns are not a key) is still recorded as a relation; the builder notes an
UnresolvedReferenceWarning and carries on.
"""

import logging
from typing import List, Optional

from core.ddl_parser import ParsedTable, ParsedColumn, ParsedEnum
from core.schema_ir import (IRSchema, IREntity, IRAttribute, IRReference, IRIndex, IRRelation,
                            IREnum, IRCheck, IRComment)
from core.type_registry import TypeRegistry, CanonicalType
from core.diagnostics import UnresolvedReferenceWarning

logger = logging.getLogger(__name__)


class IRBuilder:
    """Builds IRSchema values for one source dialect"""

    def __init__(self, dialect):
        self.dialect = getattr(dialect, 'value', dialect)
        self.warnings: List[UnresolvedReferenceWarning] = []

    def build(self, tables: List[ParsedTable], enums: Optional[List[ParsedEnum]] = None) -> IRSchema:
        self.warnings = []
        schema = IRSchema()
        schema.enums = [IREnum(e.name, list(e.values)) for e in enums or []]
        enum_names = {e.name.lower(): e.name for e in schema.enums}

        # Pass 1: entities
        for table in tables:
            schema.entities.append(self._build_entity(table, schema, enum_names))

        # Pass 2: relations
        for table in tables:
            entity = schema.get_entity(table.name)
            for constraint in table.constraints:
                if constraint.type == 'FOREIGN KEY':
                    schema.relations.append(self._build_relation(entity, constraint, schema))

        logger.info(f"Built IR with {len(schema.entities)} entities and {len(schema.relations)} relations")
        return schema

    # -- pass 1 ------------------------------------------------------------

    def _build_entity(self, table: ParsedTable, schema: IRSchema, enum_names) -> IREntity:
        entity = IREntity(name=table.name)

        for column in table.columns:
            entity.attributes.append(self._build_attribute(column, enum_names))
            if column.is_primary_key:
                entity.primary_key.append(column.name)

        for constraint in table.constraints:
            columns = [self._resolve_name(entity, c) for c in constraint.columns]
            if constraint.type == 'PRIMARY KEY':
                for name in columns:
                    if name not in entity.primary_key:
                        entity.primary_key.append(name)
            elif constraint.type == 'UNIQUE':
                if len(columns) == 1 and entity.get_attribute(columns[0]) is not None:
                    entity.get_attribute(columns[0]).is_unique = True
                elif columns not in entity.uniques:
                    entity.uniques.append(columns)
            elif constraint.type == 'CHECK' and constraint.expression:
                schema.checks.append(IRCheck(entity.name, constraint.expression, constraint.name))

        for name in entity.primary_key:
            attr = entity.get_attribute(name)
            if attr is not None:
                attr.is_primary_key = True
                attr.is_optional = False

        for index in table.indexes:
            columns = [self._resolve_name(entity, c) for c in index.columns]
            entity.indexes.append(IRIndex(columns, unique=index.unique, name=index.name))

        if table.comment:
            entity.comment = table.comment
            schema.comments.append(IRComment(entity.name, table.comment))
        for attr in entity.attributes:
            if attr.comment:
                schema.comments.append(IRComment(entity.name, attr.comment, attr.name))
        return entity

    def _build_attribute(self, column: ParsedColumn, enum_names) -> IRAttribute:
        enum = enum_names.get(column.raw_type.lower())
        if enum is not None:
            type_info = TypeRegistry.map_to_ir(self.dialect, 'VARCHAR')
        else:
            type_info = TypeRegistry.map_to_ir(self.dialect, column.raw_type)

        length = type_info.length
        if type_info.ir_type == CanonicalType.STRING and length is None:
            length = column.length
        return IRAttribute(
            name=column.name,
            type=type_info.ir_type,
            length=length,
            precision=type_info.precision,
            scale=type_info.scale,
            is_primary_key=column.is_primary_key,
            is_optional=column.nullable and not column.is_primary_key,
            is_unique=column.is_unique,
            is_auto_increment=column.is_auto_increment,
            default=column.default,
            comment=column.comment,
            enum=enum,
        )

    @staticmethod
    def _resolve_name(entity: IREntity, name: str) -> str:
        """Match a constraint's column spelling to the declared attribute name"""
        if entity.get_attribute(name) is not None:
            return name
        lowered = name.lower()
        for attr in entity.attributes:
            if attr.name.lower() == lowered:
                return attr.name
        return name

    # -- pass 2 ------------------------------------------------------------

    def _build_relation(self, entity: IREntity, constraint, schema: IRSchema) -> IRRelation:
        source_columns = [self._resolve_name(entity, c) for c in constraint.columns]
        target = self._find_entity(schema, constraint.referenced_table)
        target_name = target.name if target is not None else constraint.referenced_table

        target_columns = list(constraint.referenced_columns)
        if not target_columns:
            # REFERENCES t without a column list means t's primary key
            if target is not None and len(target.primary_key) == len(source_columns):
                target_columns = list(target.primary_key)
            else:
                target_columns = list(source_columns)
        if target is not None:
            target_columns = [self._resolve_name(target, c) for c in target_columns]

        unresolved = target is None or any(target.get_attribute(c) is None for c in target_columns)
        if unresolved:
            warning = UnresolvedReferenceWarning(entity.name, source_columns, target_name, target_columns)
            self.warnings.append(warning)
            logger.warning(warning.render())
        elif not self._is_key(target, target_columns):
            logger.debug(f"{entity.name} references non-key columns {target_name}({', '.join(target_columns)})")

        relation = IRRelation(
            source_entity=entity.name,
            target_entity=target_name,
            source_columns=source_columns,
            target_columns=target_columns,
            on_delete=constraint.on_delete,
            on_update=constraint.on_update,
            kind="1-1" if self._is_key(entity, source_columns) else "1-N",
            name=constraint.name,
        )

        if len(source_columns) == 1:
            attr = entity.get_attribute(source_columns[0])
            if attr is not None:
                attr.references = IRReference(target_name, target_columns[0],
                                              constraint.on_delete, constraint.on_update)
        return relation

    @staticmethod
    def _find_entity(schema: IRSchema, name: Optional[str]) -> Optional[IREntity]:
        if not name:
            return None
        entity = schema.get_entity(name)
        if entity is not None:
            return entity
        lowered = name.lower()
        for candidate in schema.entities:
            if candidate.name.lower() == lowered:
                return candidate
        return None

    @staticmethod
    def _is_key(entity: IREntity, columns: List[str]) -> bool:
        """True when `columns` are the primary key or a unique set of `entity`"""
        wanted = set(columns)
        if entity.primary_key and wanted == set(entity.primary_key):
            return True
        if len(columns) == 1:
            attr = entity.get_attribute(columns[0])
            if attr is not None and attr.is_unique:
                return True
        return any(wanted == set(unique) for unique in entity.uniques)
