#!/usr/bin/env python3
"""
SchemaPort ORM Emitters

Renders an IRSchema as ORM model source:

- Prisma schema (model blocks)
- TypeORM entity classes (TypeScript)
- Sequelize models (sequelize-typescript)

All three reuse the topological entity order and skip foreign keys whose
target entity is not part of the schema.
"""

import re
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from core.options import ConvertOptions
from core.schema_ir import IRSchema, IREntity, IRAttribute, IRRelation
from core.type_registry import CanonicalType
from core.ir_validator import validate_schema
from core.emitters.base import (Clock, generated_on, topological_sort, split_foreign_keys, prepare_entities,
                                is_single_serial_key, pascal_case, camel_case, classify_default, js_string)

logger = logging.getLogger(__name__)

PRISMA_ACTIONS = {
    'CASCADE': 'Cascade',
    'SET NULL': 'SetNull',
    'RESTRICT': 'Restrict',
    'NO ACTION': 'NoAction',
    'SET DEFAULT': 'SetDefault',
}

IDENTIFIER = re.compile(r'^[A-Za-z][A-Za-z0-9_]*$')


@dataclass
class RelationMeta:
    """One FK seen from both ends"""
    relation: IRRelation
    name: Optional[str]     # set when a child references the same parent more than once
    index: int
    forward_field: str = ''
    back_field: str = ''


class ModelEmitter:
    """Shared plumbing: validation, ordering and relation naming"""

    title = 'models'
    comment_prefix = '//'

    def __init__(self, options: Optional[ConvertOptions] = None, clock: Optional[Clock] = None):
        self.options = options or ConvertOptions()
        self.clock = clock

    def emit(self, ir: IRSchema) -> str:
        validate_schema(ir)
        relations, skipped = split_foreign_keys(ir)
        for fk in skipped:
            logger.info(f"Skipping foreign key {fk.source_entity}({', '.join(fk.source_columns)}): "
                        f"{fk.target_entity} is not defined")
        entities = prepare_entities(ir, self.options.add_timestamps)
        order = topological_sort(entities, relations)

        metas = self._relation_metas(relations)
        header = [
            f"{self.comment_prefix} Generated {self.title}",
            f"{self.comment_prefix} {generated_on(self.clock)}",
            "",
        ]
        body = self.render(list(order.order), metas)
        logger.debug(f"Emitted {self.title} for {len(entities)} entities")
        return '\n'.join(header) + '\n' + body

    def render(self, entities: List[IREntity], metas: List[RelationMeta]) -> str:
        raise NotImplementedError

    @staticmethod
    def _relation_metas(relations: List[IRRelation]) -> List[RelationMeta]:
        groups: Dict[tuple, List[IRRelation]] = {}
        for relation in relations:
            groups.setdefault((relation.source_entity, relation.target_entity), []).append(relation)

        metas = []
        for (child, parent), group in groups.items():
            for index, relation in enumerate(group, 1):
                needs_name = len(group) > 1 or child == parent
                name = f"Rel_{child}_{parent}_{index}" if needs_name else None
                metas.append(RelationMeta(relation, name, index))
        return metas

    @staticmethod
    def outgoing(entity: IREntity, metas: List[RelationMeta]) -> List[RelationMeta]:
        return [m for m in metas if m.relation.source_entity == entity.name]

    @staticmethod
    def incoming(entity: IREntity, metas: List[RelationMeta]) -> List[RelationMeta]:
        return [m for m in metas if m.relation.target_entity == entity.name]

    @staticmethod
    def unique_field(wanted: str, taken: set) -> str:
        field = wanted
        suffix = 2
        while field in taken:
            field = f"{wanted}{suffix}"
            suffix += 1
        taken.add(field)
        return field

    def assign_fields(self, entities: List[IREntity], metas: List[RelationMeta], forward, back):
        """Pick collision-free relation field names on both ends of every FK"""
        taken = {e.name: set(e.attribute_names()) for e in entities}
        for meta in metas:
            rel = meta.relation
            meta.forward_field = self.unique_field(forward(meta), taken.setdefault(rel.source_entity, set()))
        for meta in metas:
            rel = meta.relation
            meta.back_field = self.unique_field(back(meta), taken.setdefault(rel.target_entity, set()))


# -- Prisma ----------------------------------------------------------------

class PrismaEmitter(ModelEmitter):
    title = 'Prisma schema'

    TYPES = {
        CanonicalType.STRING: 'String',
        CanonicalType.TEXT: 'String',
        CanonicalType.INTEGER: 'Int',
        CanonicalType.BIGINT: 'BigInt',
        CanonicalType.DECIMAL: 'Decimal',
        CanonicalType.NUMBER: 'Float',
        CanonicalType.BOOLEAN: 'Boolean',
        CanonicalType.DATE: 'DateTime',
        CanonicalType.TIMESTAMP: 'DateTime',
        CanonicalType.UUID: 'String',
        CanonicalType.JSON: 'Json',
        CanonicalType.BINARY: 'Bytes',
    }

    def render(self, entities: List[IREntity], metas: List[RelationMeta]) -> str:
        self.assign_fields(
            entities, metas,
            forward=lambda m: _prisma_name(m.relation.target_entity) + (f"_{m.index}" if m.name else ''),
            back=lambda m: _prisma_name(m.relation.source_entity) + (f"_{m.index}" if m.name else ''),
        )
        blocks = [
            'generator client {\n  provider = "prisma-client-js"\n}',
            'datasource db {\n  provider = "postgresql"\n  url      = env("DATABASE_URL")\n}',
        ]
        blocks += [self._model(entity, metas) for entity in entities]
        return '\n\n'.join(blocks) + '\n'

    def _model(self, entity: IREntity, metas: List[RelationMeta]) -> str:
        lines = []
        for attr in entity.attributes:
            lines.append(self._field(entity, attr))

        for meta in self.outgoing(entity, metas):
            rel = meta.relation
            optional = any(_optional(entity, c) for c in rel.source_columns)
            args = []
            if meta.name:
                args.append(f'"{meta.name}"')
            args.append(f"fields: [{', '.join(_prisma_name(c) for c in rel.source_columns)}]")
            args.append(f"references: [{', '.join(_prisma_name(c) for c in rel.target_columns)}]")
            if rel.on_delete in PRISMA_ACTIONS:
                args.append(f"onDelete: {PRISMA_ACTIONS[rel.on_delete]}")
            if rel.on_update in PRISMA_ACTIONS:
                args.append(f"onUpdate: {PRISMA_ACTIONS[rel.on_update]}")
            lines.append(f"  {meta.forward_field} {_prisma_name(rel.target_entity)}{'?' if optional else ''} "
                         f"@relation({', '.join(args)})")

        for meta in self.incoming(entity, metas):
            rel = meta.relation
            shape = '?' if rel.kind == '1-1' else '[]'
            suffix = f' @relation("{meta.name}")' if meta.name else ''
            lines.append(f"  {meta.back_field} {_prisma_name(rel.source_entity)}{shape}{suffix}")

        if len(entity.primary_key) > 1:
            lines.append(f"  @@id([{', '.join(_prisma_name(c) for c in entity.primary_key)}])")
        for unique in entity.uniques:
            lines.append(f"  @@unique([{', '.join(_prisma_name(c) for c in unique)}])")
        for index in entity.indexes:
            kind = '@@unique' if index.unique else '@@index'
            lines.append(f"  {kind}([{', '.join(_prisma_name(c) for c in index.columns)}])")
        if _prisma_name(entity.name) != entity.name:
            lines.append(f'  @@map("{entity.name}")')

        return f"model {_prisma_name(entity.name)} {{\n" + '\n'.join(lines) + "\n}"

    def _field(self, entity: IREntity, attr: IRAttribute) -> str:
        prisma_type = self.TYPES.get(attr.type, 'String')
        parts = [_prisma_name(attr.name), prisma_type + ('?' if attr.is_optional else '')]

        if entity.primary_key == [attr.name]:
            parts.append('@id')
        if attr.is_unique and not attr.is_primary_key:
            parts.append('@unique')

        default = self._default(attr)
        if default:
            parts.append(f"@default({default})")

        if attr.type == CanonicalType.STRING and attr.length:
            parts.append(f"@db.VarChar({attr.length})")
        elif attr.type == CanonicalType.DECIMAL and attr.precision:
            parts.append(f"@db.Decimal({attr.precision}, {attr.scale or 0})")
        elif attr.type == CanonicalType.DATE:
            parts.append('@db.Date')
        elif attr.type == CanonicalType.UUID:
            parts.append('@db.Uuid')

        if _prisma_name(attr.name) != attr.name:
            parts.append(f'@map("{attr.name}")')
        return '  ' + ' '.join(parts)

    @staticmethod
    def _default(attr: IRAttribute) -> Optional[str]:
        if attr.is_auto_increment:
            return 'autoincrement()'
        classified = classify_default(attr)
        if classified is None:
            return None
        kind, value = classified
        if kind == 'now':
            return 'now()'
        if kind == 'uuid':
            return 'uuid()'
        if kind in ('boolean', 'number'):
            return value
        if kind == 'string':
            return '"' + value.replace('\\', '\\\\').replace('"', '\\"') + '"'
        return f'dbgenerated("{value}")'


def _prisma_name(name: str) -> str:
    """Prisma identifiers start with a letter; '_id' becomes 'id'"""
    if IDENTIFIER.match(name):
        return name
    cleaned = re.sub(r'[^A-Za-z0-9_]', '_', name).lstrip('_')
    if not cleaned or not cleaned[0].isalpha():
        cleaned = 'f_' + cleaned
    return cleaned


def _optional(entity: IREntity, column: str) -> bool:
    attr = entity.get_attribute(column)
    return attr is None or attr.is_optional


def _used_decorators(names, blocks: List[str]) -> List[str]:
    text = '\n'.join(blocks)
    return [name for name in names if re.search(rf'@{name}\b', text)]


def _collection(name: str, kind: str) -> str:
    """Field name for the child side of a relation: comment -> comments"""
    if kind == '1-1' or name.endswith('s'):
        return name
    return name + 's'


# -- TypeORM ---------------------------------------------------------------

class TypeORMEmitter(ModelEmitter):
    title = 'TypeORM entities'

    # canonical type -> (column type, TypeScript type)
    TYPES = {
        CanonicalType.STRING: ('varchar', 'string'),
        CanonicalType.TEXT: ('text', 'string'),
        CanonicalType.INTEGER: ('int', 'number'),
        CanonicalType.BIGINT: ('bigint', 'string'),
        CanonicalType.DECIMAL: ('decimal', 'string'),
        CanonicalType.NUMBER: ('float', 'number'),
        CanonicalType.BOOLEAN: ('boolean', 'boolean'),
        CanonicalType.DATE: ('date', 'string'),
        CanonicalType.TIMESTAMP: ('timestamp', 'Date'),
        CanonicalType.UUID: ('uuid', 'string'),
        CanonicalType.JSON: ('json', 'Record<string, unknown>'),
        CanonicalType.BINARY: ('bytea', 'Buffer'),
    }

    DECORATORS = ('Entity', 'Column', 'PrimaryColumn', 'PrimaryGeneratedColumn', 'ManyToOne', 'OneToMany',
                  'OneToOne', 'JoinColumn', 'Index', 'Unique')

    def render(self, entities: List[IREntity], metas: List[RelationMeta]) -> str:
        self.assign_fields(
            entities, metas,
            forward=lambda m: camel_case(m.relation.target_entity) + (f"_{m.index}" if m.name else ''),
            back=lambda m: _collection(camel_case(m.relation.source_entity), m.relation.kind)
            + (f"_{m.index}" if m.name else ''),
        )
        classes = [self._entity(entity, metas) for entity in entities]
        names = _used_decorators(self.DECORATORS, classes)
        imports = "import { " + ', '.join(names) + " } from 'typeorm';"
        return imports + '\n\n' + '\n\n'.join(classes) + '\n'

    def _entity(self, entity: IREntity, metas: List[RelationMeta]) -> str:
        lines = [f"@Entity({js_string(entity.name)})"]
        for index in entity.indexes:
            columns = ', '.join(js_string(c) for c in index.columns)
            name = js_string(f"idx_{entity.name}_{'_'.join(index.columns)}")
            lines.append(f"@Index({name}, [{columns}]{', { unique: true }' if index.unique else ''})")
        for unique in entity.uniques:
            lines.append(f"@Unique([{', '.join(js_string(c) for c in unique)}])")
        lines.append(f"export class {pascal_case(entity.name)} {{")

        members = [self._column(entity, attr) for attr in entity.attributes]

        for meta in self.outgoing(entity, metas):
            rel = meta.relation
            parent = pascal_case(rel.target_entity)
            decorator = 'OneToOne' if rel.kind == '1-1' else 'ManyToOne'
            options = []
            if rel.on_delete:
                options.append(f"onDelete: {js_string(rel.on_delete)}")
            if rel.on_update:
                options.append(f"onUpdate: {js_string(rel.on_update)}")
            if any(_optional(entity, c) for c in rel.source_columns):
                options.append('nullable: true')
            inverse = f", (target) => target.{meta.back_field}"
            opts = f", {{ {', '.join(options)} }}" if options else ''
            joins = [f"{{ name: {js_string(s)}, referencedColumnName: {js_string(t)} }}"
                     for s, t in zip(rel.source_columns, rel.target_columns)]
            join = joins[0] if len(joins) == 1 else '[' + ', '.join(joins) + ']'
            members.append(
                f"  @{decorator}(() => {parent}{inverse}{opts})\n"
                f"  @JoinColumn({join})\n"
                f"  {meta.forward_field}: {parent};"
            )

        for meta in self.incoming(entity, metas):
            rel = meta.relation
            child = pascal_case(rel.source_entity)
            if rel.kind == '1-1':
                members.append(f"  @OneToOne(() => {child}, (source) => source.{meta.forward_field})\n"
                               f"  {meta.back_field}: {child};")
            else:
                members.append(f"  @OneToMany(() => {child}, (source) => source.{meta.forward_field})\n"
                               f"  {meta.back_field}: {child}[];")

        return '\n'.join(lines) + '\n' + '\n\n'.join(members) + '\n}'

    def _column(self, entity: IREntity, attr: IRAttribute) -> str:
        column_type, ts_type = self.TYPES.get(attr.type, ('varchar', 'string'))
        options = []

        if is_single_serial_key(entity, attr):
            if attr.type == CanonicalType.BIGINT:
                decorator = "@PrimaryGeneratedColumn('increment', { type: 'bigint' })"
            else:
                decorator = "@PrimaryGeneratedColumn('increment')"
            return f"  {decorator}\n  {attr.name}: {ts_type};"

        classified = classify_default(attr)
        if attr.is_primary_key and attr.type == CanonicalType.UUID and classified and classified[0] == 'uuid':
            return f"  @PrimaryGeneratedColumn('uuid')\n  {attr.name}: {ts_type};"

        if attr.type == CanonicalType.STRING and attr.length:
            options.append(f"length: {attr.length}")
        if attr.type == CanonicalType.DECIMAL and attr.precision:
            options.append(f"precision: {attr.precision}")
            if attr.scale is not None:
                options.append(f"scale: {attr.scale}")
        if attr.is_optional:
            options.append('nullable: true')
        if attr.is_unique and not attr.is_primary_key:
            options.append('unique: true')
        if attr.is_auto_increment:
            options.append("generated: 'increment'")
        default = self._default(classified)
        if default:
            options.append(f"default: {default}")

        decorator = 'PrimaryColumn' if attr.is_primary_key else 'Column'
        opts = f", {{ {', '.join(options)} }}" if options else ''
        ts = f"{ts_type} | null" if attr.is_optional else ts_type
        return f"  @{decorator}({js_string(column_type)}{opts})\n  {attr.name}: {ts};"

    @staticmethod
    def _default(classified) -> Optional[str]:
        if classified is None:
            return None
        kind, value = classified
        if kind == 'now':
            return "() => 'CURRENT_TIMESTAMP'"
        if kind in ('boolean', 'number'):
            return value
        if kind == 'string':
            return js_string(value)
        return f"() => {js_string(value)}"


# -- Sequelize -------------------------------------------------------------

class SequelizeEmitter(ModelEmitter):
    title = 'Sequelize models'

    # canonical type -> (DataType expression, TypeScript type)
    TYPES = {
        CanonicalType.STRING: ('DataType.STRING', 'string'),
        CanonicalType.TEXT: ('DataType.TEXT', 'string'),
        CanonicalType.INTEGER: ('DataType.INTEGER', 'number'),
        CanonicalType.BIGINT: ('DataType.BIGINT', 'string'),
        CanonicalType.DECIMAL: ('DataType.DECIMAL', 'string'),
        CanonicalType.NUMBER: ('DataType.DOUBLE', 'number'),
        CanonicalType.BOOLEAN: ('DataType.BOOLEAN', 'boolean'),
        CanonicalType.DATE: ('DataType.DATEONLY', 'string'),
        CanonicalType.TIMESTAMP: ('DataType.DATE', 'Date'),
        CanonicalType.UUID: ('DataType.UUID', 'string'),
        CanonicalType.JSON: ('DataType.JSON', 'object'),
        CanonicalType.BINARY: ('DataType.BLOB', 'Buffer'),
    }

    # Model and DataType appear outside decorators and are always imported
    BASE_IMPORTS = ('Table', 'Column', 'Model', 'DataType')
    DECORATORS = ('PrimaryKey', 'AutoIncrement', 'AllowNull', 'Unique', 'Default', 'ForeignKey',
                  'BelongsTo', 'HasMany', 'HasOne')

    def render(self, entities: List[IREntity], metas: List[RelationMeta]) -> str:
        self.assign_fields(
            entities, metas,
            forward=lambda m: camel_case(m.relation.target_entity) + (f"_{m.index}" if m.name else ''),
            back=lambda m: _collection(camel_case(m.relation.source_entity), m.relation.kind)
            + (f"_{m.index}" if m.name else ''),
        )
        models = [self._model(entity, metas) for entity in entities]
        names = list(self.BASE_IMPORTS) + _used_decorators(self.DECORATORS, models)
        imports = "import {\n" + ',\n'.join(f"  {name}" for name in names) + "\n} from 'sequelize-typescript';"
        if any('literal(' in model for model in models):
            imports += "\nimport { literal } from 'sequelize';"
        return imports + '\n\n' + '\n\n'.join(models) + '\n'

    def _model(self, entity: IREntity, metas: List[RelationMeta]) -> str:
        name = pascal_case(entity.name)
        table_options = [f"tableName: {js_string(entity.name)}", 'timestamps: false']
        if entity.indexes or entity.uniques:
            specs = []
            for index in entity.indexes:
                fields = ', '.join(js_string(c) for c in index.columns)
                unique = ', unique: true' if index.unique else ''
                specs.append(f"{{ name: {js_string('idx_' + entity.name + '_' + '_'.join(index.columns))}, "
                             f"fields: [{fields}]{unique} }}")
            for unique in entity.uniques:
                specs.append(f"{{ fields: [{', '.join(js_string(c) for c in unique)}], unique: true }}")
            table_options.append(f"indexes: [{', '.join(specs)}]")

        single_fks = {m.relation.source_columns[0]: m for m in self.outgoing(entity, metas)
                      if len(m.relation.source_columns) == 1}
        members = [self._attribute(entity, attr, single_fks.get(attr.name)) for attr in entity.attributes]

        for meta in self.outgoing(entity, metas):
            rel = meta.relation
            parent = pascal_case(rel.target_entity)
            if len(rel.source_columns) > 1:
                members.append(f"  // Composite foreign key ({', '.join(rel.source_columns)}) -> "
                               f"{rel.target_entity}({', '.join(rel.target_columns)}) is enforced by the database only")
                continue
            options = [f"foreignKey: {js_string(rel.source_columns[0])}"]
            if rel.target_columns[0] != 'id':
                options.append(f"targetKey: {js_string(rel.target_columns[0])}")
            if rel.on_delete:
                options.append(f"onDelete: {js_string(rel.on_delete)}")
            if rel.on_update:
                options.append(f"onUpdate: {js_string(rel.on_update)}")
            members.append(f"  @BelongsTo(() => {parent}, {{ {', '.join(options)} }})\n"
                           f"  declare {meta.forward_field}: {parent};")

        for meta in self.incoming(entity, metas):
            rel = meta.relation
            if len(rel.source_columns) > 1:
                continue
            child = pascal_case(rel.source_entity)
            if rel.kind == '1-1':
                members.append(f"  @HasOne(() => {child}, {js_string(rel.source_columns[0])})\n"
                               f"  declare {meta.back_field}: {child};")
            else:
                members.append(f"  @HasMany(() => {child}, {js_string(rel.source_columns[0])})\n"
                               f"  declare {meta.back_field}: {child}[];")

        header = "@Table({\n  " + ',\n  '.join(table_options) + ",\n})"
        return f"{header}\nexport class {name} extends Model<{name}> {{\n" + '\n\n'.join(members) + "\n}"

    def _attribute(self, entity: IREntity, attr: IRAttribute, fk: Optional[RelationMeta]) -> str:
        data_type, ts_type = self.TYPES.get(attr.type, ('DataType.STRING', 'string'))
        if attr.type == CanonicalType.STRING and attr.length:
            data_type = f"{data_type}({attr.length})"
        elif attr.type == CanonicalType.DECIMAL and attr.precision:
            data_type = f"{data_type}({attr.precision}, {attr.scale or 0})"

        decorators = []
        if fk is not None:
            decorators.append(f"@ForeignKey(() => {pascal_case(fk.relation.target_entity)})")
        if attr.is_primary_key:
            decorators.append('@PrimaryKey')
        if attr.is_auto_increment:
            decorators.append('@AutoIncrement')
        if not attr.is_primary_key:
            decorators.append(f"@AllowNull({'true' if attr.is_optional else 'false'})")
        if attr.is_unique and not attr.is_primary_key:
            decorators.append('@Unique')
        default = None if attr.is_auto_increment else self._default(classify_default(attr))
        if default:
            decorators.append(f"@Default({default})")
        decorators.append(f"@Column({data_type})")

        ts = f"{ts_type} | null" if attr.is_optional else ts_type
        return '\n'.join(f"  {d}" for d in decorators) + f"\n  declare {attr.name}: {ts};"

    @staticmethod
    def _default(classified) -> Optional[str]:
        if classified is None:
            return None
        kind, value = classified
        if kind == 'now':
            return 'DataType.NOW'
        if kind == 'uuid':
            return 'DataType.UUIDV4'
        if kind in ('boolean', 'number'):
            return value
        if kind == 'string':
            return js_string(value)
        return f"literal({js_string(value)})"
