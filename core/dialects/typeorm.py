"""
TypeORM entity source dialect.

Reads TypeScript entity classes decorated with @Entity. Column decorators
(@Column, @PrimaryColumn, @PrimaryGeneratedColumn, @CreateDateColumn,
@UpdateDateColumn, @DeleteDateColumn, @VersionColumn) become columns; a
@ManyToOne or owning @OneToOne with @JoinColumn becomes a foreign key. Class
level @Index and @Unique decorators become indexes and unique constraints.

Tables default to the snake_case class name, as TypeORM's default naming
strategy does.
"""

import re
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Optional, Tuple

from core.errors import ParseError
from core.ddl_parser import ParseResult, ParsedColumn, ParsedConstraint, ParsedIndex, ParsedTable
from core.normalizer import normalize_tables
from core.dialects.base import Dialect, DialectStrategy
from core.dialects.source_text import (strip_comments, closing_index, split_args, unquote, object_entries,
                                       list_items, snake_case)

logger = logging.getLogger(__name__)

TYPE_MAP = {
    'INT': 'INTEGER',
    'INT4': 'INTEGER',
    'INTEGER': 'INTEGER',
    'SMALLINT': 'SMALLINT',
    'TINYINT': 'SMALLINT',
    'BIGINT': 'BIGINT',
    'INT8': 'BIGINT',
    'FLOAT': 'DOUBLE PRECISION',
    'DOUBLE': 'DOUBLE PRECISION',
    'DOUBLE PRECISION': 'DOUBLE PRECISION',
    'REAL': 'REAL',
    'DECIMAL': 'DECIMAL',
    'NUMERIC': 'DECIMAL',
    'VARCHAR': 'VARCHAR',
    'CHARACTER VARYING': 'VARCHAR',
    'NVARCHAR': 'VARCHAR',
    'CHAR': 'CHAR',
    'TEXT': 'TEXT',
    'MEDIUMTEXT': 'TEXT',
    'LONGTEXT': 'TEXT',
    'BOOLEAN': 'BOOLEAN',
    'BOOL': 'BOOLEAN',
    'DATE': 'DATE',
    'TIME': 'TIME',
    'TIMESTAMP': 'TIMESTAMP',
    'TIMESTAMPTZ': 'TIMESTAMPTZ',
    'TIMESTAMP WITH TIME ZONE': 'TIMESTAMPTZ',
    'DATETIME': 'TIMESTAMP',
    'UUID': 'UUID',
    'JSON': 'JSON',
    'JSONB': 'JSONB',
    'SIMPLE-JSON': 'TEXT',
    'SIMPLE-ARRAY': 'TEXT',
    'ENUM': 'VARCHAR(255)',
    'BYTEA': 'BYTEA',
    'BLOB': 'BLOB',
    'LONGBLOB': 'BLOB',
}

DEFAULT_MAP = {
    'current_timestamp': 'now()',
    'current_timestamp()': 'now()',
    'now()': 'now()',
    'uuid_generate_v4()': 'gen_random_uuid()',
    'gen_random_uuid()': 'gen_random_uuid()',
}

# TypeScript property type -> column type when the decorator names none
TS_TYPES = {
    'number': 'INTEGER',
    'string': 'VARCHAR(255)',
    'boolean': 'BOOLEAN',
    'Date': 'TIMESTAMP',
    'Buffer': 'BYTEA',
    'bigint': 'BIGINT',
}

COLUMN_DECORATORS = {
    'Column', 'PrimaryColumn', 'PrimaryGeneratedColumn', 'CreateDateColumn', 'UpdateDateColumn',
    'DeleteDateColumn', 'VersionColumn',
}

ENTITY_START = re.compile(r'@Entity\s*\(')
CLASS_START = re.compile(r'export\s+(?:default\s+)?(?:abstract\s+)?class\s+(\w+)[^{]*\{')
DECORATOR = re.compile(r'@(\w+)\s*')
PROPERTY = re.compile(r'(?:(?:public|private|protected|readonly|declare)\s+)*(\w+)\s*([?!])?\s*:\s*([^;=\n]+)')


@dataclass
class _Member:
    name: str
    optional: bool
    ts_type: str
    decorators: Dict[str, Optional[str]]


@dataclass
class _Entity:
    class_name: str
    table: str
    decorators: List[Tuple[str, Optional[str]]]
    members: List[_Member] = field(default_factory=list)


def _decorators(text: str, index: int) -> Tuple[List[Tuple[str, Optional[str]]], int]:
    """Read consecutive @Name(...) decorators starting at `index`"""
    found = []
    while True:
        while index < len(text) and text[index].isspace():
            index += 1
        match = DECORATOR.match(text, index)
        if not match:
            return found, index
        index = match.end()
        args = None
        if index < len(text) and text[index] == '(':
            end = closing_index(text, index)
            args = text[index + 1:end]
            index = end + 1
        found.append((match.group(1), args))


def _literal(value: str) -> Optional[str]:
    """A JS option value as SQL text: strings quoted, arrows unwrapped"""
    value = value.strip()
    arrow = re.match(r'^\(\s*\)\s*=>\s*(.+)$', value, re.S)
    if arrow:
        return unquote(arrow.group(1)) or arrow.group(1).strip()
    text = unquote(value)
    if text is not None:
        return "'" + text.replace("'", "''") + "'"
    if value in ('null', 'undefined'):
        return None
    return value


def _options(args: Optional[str]) -> Tuple[Optional[str], Dict[str, str]]:
    """@Column('varchar', { length: 20 }) -> ('varchar', {'length': '20'})"""
    type_name = None
    options: Dict[str, str] = {}
    for part in split_args(args or ''):
        if part.startswith('{'):
            options.update(object_entries(part))
        elif type_name is None and unquote(part) is not None:
            type_name = unquote(part)
    if 'type' in options and unquote(options['type']) is not None:
        type_name = unquote(options['type'])
    return type_name, options


def _relation_target(args: Optional[str]) -> Optional[str]:
    """'() => Users, (u) => u.posts' -> 'Users'"""
    parts = split_args(args or '')
    if not parts:
        return None
    match = re.match(r'^(?:\(?\s*\w*\s*\)?\s*=>\s*)?["\']?(\w+)["\']?$', parts[0])
    return match.group(1) if match else None


class TypeORMEntityParser:
    """Builds ParsedTable records from TypeORM entity classes"""

    def __init__(self, options=None):
        self.options = options

    def parse(self, script: str) -> ParseResult:
        result = ParseResult()
        try:
            entities = self._entities(strip_comments(script))
        except ParseError as e:
            result.errors.append(e)
            logger.warning(f"Unreadable TypeORM source: {e.message}")
            return result

        if not entities:
            result.errors.append(ParseError("No @Entity classes found"))
        by_class = {entity.class_name: entity for entity in entities}
        for entity in entities:
            try:
                result.add_table(self._table(entity, by_class))
            except ParseError as e:
                e.statement = f"class {entity.class_name}"
                result.errors.append(e)
                logger.warning(f"Skipping entity {entity.class_name}: {e.message}")
        logger.info(f"Parsed {len(result.tables)} TypeORM entity class(es)")
        return result

    def _entities(self, text: str) -> List[_Entity]:
        entities = []
        index = 0
        while True:
            start = ENTITY_START.search(text, index)
            if not start:
                return entities
            decorators, after = _decorators(text, start.start())
            match = CLASS_START.match(text, after)
            if not match:
                raise ParseError(f"@Entity at offset {start.start()} is not followed by a class")
            brace = match.end() - 1
            end = closing_index(text, brace)

            class_name = match.group(1)
            entity_args = dict(decorators).get('Entity') or ''
            table = None
            for part in split_args(entity_args):
                table = unquote(part) or unquote(object_entries(part).get('name', '')) or table
            entity = _Entity(class_name, table or snake_case(class_name), decorators)
            entity.members = self._members(text[brace + 1:end])
            entities.append(entity)
            index = end + 1

    @staticmethod
    def _members(body: str) -> List[_Member]:
        members = []
        index = 0
        while index < len(body):
            decorators, index = _decorators(body, index)
            match = PROPERTY.match(body, index)
            if match:
                name, marker, ts_type = match.groups()
                members.append(_Member(name, marker == '?', ts_type.strip(), dict(decorators)))
                index = match.end()
            # skip to the end of the declaration, over method bodies
            while index < len(body) and body[index] not in ';\n':
                if body[index] in '({[':
                    index = closing_index(body, index)
                index += 1
            index += 1
        return members

    def _table(self, entity: _Entity, by_class: Dict[str, _Entity]) -> ParsedTable:
        table = ParsedTable(name=entity.table)
        relations = []
        for member in entity.members:
            kinds = set(member.decorators)
            if kinds & COLUMN_DECORATORS:
                column = self._column(member)
                table.columns.append(column)
                if 'Index' in kinds:
                    table.indexes.append(ParsedIndex(None, [column.name]))
            elif 'ManyToOne' in kinds or ('OneToOne' in kinds and 'JoinColumn' in kinds):
                relations.append(member)

        for member in relations:
            self._relation(table, member, by_class)

        for name, args in entity.decorators:
            if name not in ('Index', 'Unique'):
                continue
            parts = split_args(args or '')
            label = unquote(parts[0]) if parts else None
            columns = next((list_items(p) for p in parts if p.startswith('[')), [])
            options = next((object_entries(p) for p in parts if p.startswith('{')), {})
            columns = [self._column_name(entity, c) for c in columns]
            if not columns:
                continue
            if name == 'Unique':
                table.constraints.append(ParsedConstraint('UNIQUE', columns, name=label))
            else:
                table.indexes.append(ParsedIndex(label, columns, unique=options.get('unique') == 'true'))
        return table

    @staticmethod
    def _column_name(entity: _Entity, prop: str) -> str:
        for member in entity.members:
            if member.name == prop:
                for kind, args in member.decorators.items():
                    name = _options(args)[1].get('name') if kind in COLUMN_DECORATORS else None
                    if name and unquote(name):
                        return unquote(name)
        return prop

    @staticmethod
    def _column(member: _Member) -> ParsedColumn:
        ts_type = member.ts_type.replace(' ', '')
        nullable = member.optional or ts_type.endswith('|null') or ts_type.startswith('null|')
        base_ts = ts_type.replace('|null', '').replace('null|', '')

        kind = next(k for k in member.decorators if k in COLUMN_DECORATORS)
        type_name, options = _options(member.decorators[kind])
        column = ParsedColumn(name=unquote(options.get('name', '')) or member.name, raw_type='')

        if kind == 'PrimaryGeneratedColumn':
            strategy = type_name or 'increment'
            if strategy == 'uuid':
                column.raw_type = 'UUID'
                column.default = 'gen_random_uuid()'
            else:
                column.raw_type = (unquote(options.get('type', '')) or 'INTEGER').upper()
                column.is_auto_increment = True
            column.is_primary_key = True
            column.nullable = False
            return column

        if kind in ('CreateDateColumn', 'UpdateDateColumn', 'DeleteDateColumn'):
            column.raw_type = (type_name or 'TIMESTAMP').upper()
            if kind == 'DeleteDateColumn':
                nullable = True
            else:
                column.default = 'now()'
                nullable = False
        elif kind == 'VersionColumn':
            column.raw_type = 'INTEGER'
            nullable = False
        elif type_name:
            column.raw_type = type_name.upper()
        else:
            column.raw_type = TS_TYPES.get(base_ts, 'JSON' if base_ts.startswith(('Record<', '{')) else 'TEXT')

        length = options.get('length')
        if length and length.isdigit():
            column.raw_type = f"{column.raw_type.split('(')[0]}({length})"
            column.length = int(length)
        precision = options.get('precision')
        if precision and precision.isdigit():
            scale = options.get('scale', '0')
            column.raw_type = f"{column.raw_type}({precision},{scale if scale.isdigit() else 0})"

        if 'nullable' in options:
            nullable = options['nullable'] == 'true'
        column.nullable = nullable and kind != 'PrimaryColumn'
        column.is_primary_key = kind == 'PrimaryColumn' or options.get('primary') == 'true'
        column.is_unique = options.get('unique') == 'true'
        generated = unquote(options.get('generated', '')) or options.get('generated')
        if generated in ('increment', 'true'):
            column.is_auto_increment = True
        elif generated == 'uuid':
            column.default = 'gen_random_uuid()'
        if 'default' in options and column.default is None:
            column.default = _literal(options['default'])
        return column

    def _relation(self, table: ParsedTable, member: _Member, by_class: Dict[str, _Entity]):
        kind = 'ManyToOne' if 'ManyToOne' in member.decorators else 'OneToOne'
        args = member.decorators[kind]
        target_class = _relation_target(args)
        parent = by_class.get(target_class)
        if parent is None:
            raise ParseError(f"Relation {member.name} targets unknown entity {target_class}")
        options = next((object_entries(p) for p in split_args(args or '') if p.startswith('{')), {})

        join_args = (member.decorators.get('JoinColumn') or '').strip()
        joins = [object_entries(p) for p in split_args(join_args[1:-1])] if join_args.startswith('[') \
            else [object_entries(join_args)] if join_args else [{}]

        parent_key = next((m for m in parent.members if {'PrimaryColumn', 'PrimaryGeneratedColumn'} & set(m.decorators)),
                          None)
        sources, targets = [], []
        for join in joins:
            target = unquote(join.get('referencedColumnName', '')) or \
                (self._column_name(parent, parent_key.name) if parent_key else 'id')
            source = unquote(join.get('name', '')) or member.name + target[:1].upper() + target[1:]
            sources.append(source)
            targets.append(target)

        nullable = options.get('nullable', 'true') != 'false'
        for source in sources:
            if table.get_column(source) is None:
                # join column not declared as a property
                table.columns.append(ParsedColumn(name=source, raw_type='INTEGER', nullable=nullable))

        table.constraints.append(ParsedConstraint(
            'FOREIGN KEY', sources,
            referenced_table=parent.table,
            referenced_columns=targets,
            on_delete=unquote(options.get('onDelete', '')) or None,
            on_update=unquote(options.get('onUpdate', '')) or None,
        ))


def parse(script: str, options=None) -> ParseResult:
    result = TypeORMEntityParser(options).parse(script)
    result.tables = normalize_tables(result.tables, STRATEGY)
    return result


STRATEGY = DialectStrategy(
    dialect=Dialect.TYPEORM,
    parse=parse,
    type_map=MappingProxyType(TYPE_MAP),
    default_map=MappingProxyType(DEFAULT_MAP),
)
