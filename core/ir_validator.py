#!/usr/bin/env python3
"""
SchemaPort IR Validator

Checks the structural invariants of an IRSchema before it is emitted or
diffed. Violations raise ValidationError; dangling foreign key targets are
either raised (strict) or returned as UnresolvedReferenceWarning values.
"""

import logging
from typing import List

from core.errors import ValidationError
from core.schema_ir import IRSchema, IREntity
from core.type_registry import CanonicalType
from core.diagnostics import UnresolvedReferenceWarning

logger = logging.getLogger(__name__)


def validate_schema(ir: IRSchema, strict: bool = False) -> List[UnresolvedReferenceWarning]:
    """
    Validate an IR schema.

    Args:
        ir: Schema to check
        strict: Raise on foreign keys whose target does not exist

    Returns:
        Warnings for unresolved references (always empty in strict mode)
    """
    if not isinstance(ir, IRSchema):
        raise ValidationError(f"Expected IRSchema, got {type(ir).__name__}")

    seen = set()
    for entity in ir.entities:
        if entity.name in seen:
            raise ValidationError(f"Duplicate entity name: {entity.name}", {'entity': entity.name})
        seen.add(entity.name)
        _validate_entity(entity)

    warnings: List[UnresolvedReferenceWarning] = []
    for relation in ir.relations:
        source = ir.get_entity(relation.source_entity)
        if source is None:
            raise ValidationError(
                f"Relation source entity {relation.source_entity} does not exist",
                {'entity': relation.source_entity},
            )
        if not relation.source_columns or len(relation.source_columns) != len(relation.target_columns):
            raise ValidationError(
                f"Relation on {relation.source_entity} has mismatched column lists",
                {'entity': relation.source_entity},
            )
        for column in relation.source_columns:
            if source.get_attribute(column) is None:
                raise ValidationError(
                    f"Relation column {relation.source_entity}.{column} does not exist",
                    {'entity': relation.source_entity, 'column': column},
                )

        target = ir.get_entity(relation.target_entity)
        missing = target is None or any(target.get_attribute(c) is None for c in relation.target_columns)
        if missing:
            warning = UnresolvedReferenceWarning(
                relation.source_entity, list(relation.source_columns),
                relation.target_entity, list(relation.target_columns),
            )
            if strict:
                raise ValidationError(warning.render(), {'entity': relation.source_entity})
            warnings.append(warning)

    logger.debug(f"Validated schema with {len(ir.entities)} entities, {len(warnings)} unresolved reference(s)")
    return warnings


def _validate_entity(entity: IREntity):
    if not entity.name:
        raise ValidationError("Entity name must not be empty")

    names = set()
    for attr in entity.attributes:
        if not attr.name:
            raise ValidationError(f"Entity {entity.name} has an attribute without a name", {'entity': entity.name})
        if attr.name in names:
            raise ValidationError(
                f"Duplicate attribute {attr.name} in entity {entity.name}",
                {'entity': entity.name, 'attribute': attr.name},
            )
        if not isinstance(attr.type, CanonicalType):
            raise ValidationError(
                f"Attribute {entity.name}.{attr.name} has no canonical type",
                {'entity': entity.name, 'attribute': attr.name},
            )
        if attr.is_primary_key and attr.is_optional:
            raise ValidationError(
                f"Primary key column {entity.name}.{attr.name} must not be optional",
                {'entity': entity.name, 'column': attr.name},
            )
        names.add(attr.name)

    for name in entity.primary_key:
        attr = entity.get_attribute(name)
        if attr is None:
            raise ValidationError(
                f"Primary key column {name} is not an attribute of {entity.name}",
                {'entity': entity.name, 'column': name},
            )
        if attr.is_optional:
            raise ValidationError(
                f"Primary key column {entity.name}.{name} must not be optional",
                {'entity': entity.name, 'column': name},
            )

    for index in entity.indexes:
        _check_columns(entity, index.columns, "Index")
    for unique in entity.uniques:
        _check_columns(entity, unique, "Unique constraint")


def _check_columns(entity: IREntity, columns: List[str], what: str):
    if not columns:
        raise ValidationError(f"{what} on {entity.name} has no columns", {'entity': entity.name})
    for column in columns:
        if entity.get_attribute(column) is None:
            raise ValidationError(
                f"{what} on {entity.name} names missing column {column}",
                {'entity': entity.name, 'column': column},
            )
