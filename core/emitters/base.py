#!/usr/bin/env python3
"""
SchemaPort Emitter Base

Pieces shared by every emitter:

- topological_sort: dependency ordering of entities over their foreign keys
- foreign_keys: every FK of a schema as IRRelation values
- identifier quoting and default rendering per SQL target
- the "Generated on:" header line, with an injectable clock
"""

import re
import copy
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from core.schema_ir import IRSchema, IREntity, IRAttribute, IRRelation
from core.type_registry import TypeRegistry, TypeInfo, CanonicalType

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

TRUE_LITERALS = {'true', '1', "'1'", "b'1'", "'true'", "'t'", 't'}
FALSE_LITERALS = {'false', '0', "'0'", "b'0'", "'false'", "'f'", 'f'}

# Target spelling of boolean literals
BOOLEAN_LITERALS: Dict[str, Tuple[str, str]] = {
    'postgresql': ('TRUE', 'FALSE'),
    'mysql': ('1', '0'),
    'sqlserver': ('1', '0'),
    'sqlite': ('1', '0'),
}

TIMESTAMP_COLUMNS = ('created_at', 'updated_at')


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generated_on(clock: Optional[Clock] = None) -> str:
    """The one non-deterministic line of every emitted document"""
    moment = (clock or utc_now)()
    return f"Generated on: {moment.isoformat()}"


@dataclass(frozen=True)
class SortResult:
    """Entities in dependency order plus the names force-placed to break cycles"""
    order: Tuple[IREntity, ...]
    cycle_breaks: Tuple[str, ...]

    @property
    def names(self) -> List[str]:
        return [entity.name for entity in self.order]


def topological_sort(entities: Sequence[IREntity],
                     relations: Iterable[IRRelation] = ()) -> SortResult:
    """
    Order entities so that FK targets come before the entities referencing them.

    Repeatedly places the first remaining entity whose FK targets (ignoring
    self references and targets outside `entities`) are all placed. When none
    qualifies the first remaining entity is force-placed and recorded as a
    cycle break. The input is never mutated.
    """
    known = {entity.name for entity in entities}
    depends_on: Dict[str, set] = {entity.name: set() for entity in entities}

    for entity in entities:
        for attr in entity.attributes:
            if attr.references is not None:
                depends_on[entity.name].add(attr.references.table)
    for relation in relations:
        if relation.source_entity in depends_on:
            depends_on[relation.source_entity].add(relation.target_entity)
    for name, targets in depends_on.items():
        targets.discard(name)
        targets.intersection_update(known)

    remaining = list(entities)
    placed: List[IREntity] = []
    placed_names = set()
    cycle_breaks: List[str] = []

    while remaining:
        chosen = None
        for entity in remaining:
            if depends_on[entity.name] <= placed_names:
                chosen = entity
                break
        if chosen is None:
            chosen = remaining[0]
            cycle_breaks.append(chosen.name)
            logger.debug(f"Dependency cycle: force-placing {chosen.name}")
        remaining.remove(chosen)
        placed.append(chosen)
        placed_names.add(chosen.name)

    return SortResult(tuple(placed), tuple(cycle_breaks))


def foreign_keys(ir: IRSchema) -> List[IRRelation]:
    """All FKs of `ir`: its relations plus attribute references they do not cover"""
    result = list(ir.relations)
    covered = {(r.source_entity, tuple(r.source_columns)) for r in ir.relations}
    for entity in ir.entities:
        for attr in entity.attributes:
            ref = attr.references
            if ref is None or (entity.name, (attr.name,)) in covered:
                continue
            result.append(IRRelation(
                source_entity=entity.name,
                target_entity=ref.table,
                source_columns=[attr.name],
                target_columns=[ref.column],
                on_delete=ref.on_delete,
                on_update=ref.on_update,
                kind="1-1" if attr.is_unique or entity.primary_key == [attr.name] else "1-N",
            ))
    return result


def sql_family(target: str) -> str:
    """supabase renders exactly like postgresql at the type level"""
    return 'postgresql' if target == 'supabase' else target


def quote_identifier(name: str, target: str) -> str:
    target = sql_family(target)
    if target == 'mysql':
        return '`' + name.replace('`', '``') + '`'
    if target == 'sqlserver':
        return '[' + name.replace(']', ']]') + ']'
    return '"' + name.replace('"', '""') + '"'


def render_type(attr: IRAttribute, target: str) -> str:
    return TypeRegistry.map_from_ir(sql_family(target), TypeInfo.of(attr))


def render_default(attr: IRAttribute, target: str) -> Optional[str]:
    """Default clause value in the target's spelling; None when there is none"""
    if attr.default is None:
        return None
    target = sql_family(target)
    value = attr.default.strip()
    if attr.type == CanonicalType.BOOLEAN:
        literals = BOOLEAN_LITERALS.get(target, ('TRUE', 'FALSE'))
        if value.lower() in TRUE_LITERALS:
            return literals[0]
        if value.lower() in FALSE_LITERALS:
            return literals[1]
    return TypeRegistry.map_default(target, value)


def with_timestamps(entity: IREntity) -> IREntity:
    """Copy of `entity` with created_at/updated_at appended where missing"""
    existing = {name.lower() for name in entity.attribute_names()}
    missing = [name for name in TIMESTAMP_COLUMNS if name not in existing]
    if not missing:
        return entity
    extended = copy.deepcopy(entity)
    for name in missing:
        extended.attributes.append(IRAttribute(
            name=name, type=CanonicalType.TIMESTAMP, is_optional=False, default='now()'
        ))
    return extended


def prepare_entities(ir: IRSchema, add_timestamps: bool) -> List[IREntity]:
    if not add_timestamps:
        return list(ir.entities)
    return [with_timestamps(entity) for entity in ir.entities]


def column_suffix(columns: Sequence[str]) -> str:
    return '_'.join(columns)


def is_single_serial_key(entity: IREntity, attr: IRAttribute) -> bool:
    return attr.is_auto_increment and entity.primary_key == [attr.name]


def pascal_case(name: str) -> str:
    """user_accounts -> UserAccounts"""
    parts = [p for p in name.replace('-', '_').replace(' ', '_').split('_') if p]
    return ''.join(p[:1].upper() + p[1:] for p in parts) or name


def camel_case(name: str) -> str:
    pascal = pascal_case(name)
    return pascal[:1].lower() + pascal[1:]


NUMBER_PATTERN = re.compile(r'^-?\d+(\.\d+)?$')


def classify_default(attr: IRAttribute) -> Optional[Tuple[str, str]]:
    """
    Sort a default into the kinds non-SQL emitters understand.

    Returns (kind, value) with kind one of now, uuid, current_user, random,
    boolean, number, string (value unquoted) or expression; None when the
    attribute has no default.
    """
    if attr.default is None:
        return None
    value = attr.default.strip()
    lowered = value.lower()
    if lowered == 'now()':
        return 'now', value
    if lowered == 'gen_random_uuid()':
        return 'uuid', value
    if lowered == 'current_user':
        return 'current_user', value
    if lowered == 'random()':
        return 'random', value
    if attr.type == CanonicalType.BOOLEAN and lowered in TRUE_LITERALS:
        return 'boolean', 'true'
    if attr.type == CanonicalType.BOOLEAN and lowered in FALSE_LITERALS:
        return 'boolean', 'false'
    if lowered in ('true', 'false'):
        return 'boolean', lowered
    if NUMBER_PATTERN.match(value):
        return 'number', value
    if len(value) >= 2 and value[0] == "'" and value[-1] == "'":
        return 'string', value[1:-1].replace("''", "'")
    return 'expression', value


def js_string(text: str) -> str:
    """Single-quoted JavaScript/TypeScript string literal"""
    return "'" + text.replace('\\', '\\\\').replace("'", "\\'") + "'"


def split_foreign_keys(ir: IRSchema) -> Tuple[List[IRRelation], List[IRRelation]]:
    """(resolved, unresolved) FKs of `ir`; unresolved ones are left out of emitted models"""
    resolved, unresolved = [], []
    for fk in foreign_keys(ir):
        target = ir.get_entity(fk.target_entity)
        if target is None or any(target.get_attribute(c) is None for c in fk.target_columns):
            unresolved.append(fk)
        else:
            resolved.append(fk)
    return resolved, unresolved
