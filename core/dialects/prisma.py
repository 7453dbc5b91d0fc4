"""
Prisma schema source dialect.

Reads `model` and `enum` blocks from a schema.prisma file; generator,
datasource, view and composite `type` blocks carry no tables and are
skipped. Per model:

    scalar fields        -> columns (`?` marks nullable, `@db.*` refines the type)
    @id / @@id           -> primary key
    @unique / @@unique   -> unique column / unique constraint
    @@index              -> index
    @default(...)        -> default, autoincrement() -> auto-increment
    @relation(fields, references, onDelete, onUpdate) -> foreign key
    @map / @@map         -> column / table name

Relation fields without `fields:` (the back side) and list relations are not
columns and are dropped.
"""

import re
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Optional

from core.errors import ParseError
from core.ddl_parser import ParseResult, ParsedColumn, ParsedConstraint, ParsedEnum, ParsedIndex, ParsedTable
from core.normalizer import normalize_tables
from core.dialects.base import Dialect, DialectStrategy
from core.dialects.source_text import strip_comments, closing_index, split_args, unquote, key_value, list_items

logger = logging.getLogger(__name__)

TYPE_MAP = {
    # scalar types
    'STRING': 'TEXT',
    'INT': 'INTEGER',
    'BIGINT': 'BIGINT',
    'FLOAT': 'DOUBLE PRECISION',
    'DECIMAL': 'DECIMAL',
    'BOOLEAN': 'BOOLEAN',
    'DATETIME': 'TIMESTAMP',
    'JSON': 'JSON',
    'BYTES': 'BYTEA',
    # @db native types
    'VARCHAR': 'VARCHAR',
    'CHAR': 'CHAR',
    'TEXT': 'TEXT',
    'CITEXT': 'TEXT',
    'UUID': 'UUID',
    'SMALLINT': 'SMALLINT',
    'INTEGER': 'INTEGER',
    'REAL': 'REAL',
    'DOUBLEPRECISION': 'DOUBLE PRECISION',
    'MONEY': 'DECIMAL(19,2)',
    'DATE': 'DATE',
    'TIME': 'TIME',
    'TIMETZ': 'TIME',
    'TIMESTAMP': 'TIMESTAMP',
    'TIMESTAMPTZ': 'TIMESTAMPTZ',
    'JSONB': 'JSONB',
    'BYTEA': 'BYTEA',
    'XML': 'TEXT',
    'INET': 'VARCHAR(45)',
}

DEFAULT_MAP = {
    'now()': 'now()',
    'uuid()': 'gen_random_uuid()',
    'uuid(4)': 'gen_random_uuid()',
}

ACTIONS = {
    'Cascade': 'CASCADE',
    'SetNull': 'SET NULL',
    'Restrict': 'RESTRICT',
    'NoAction': 'NO ACTION',
    'SetDefault': 'SET DEFAULT',
}

SCALARS = {'String', 'Int', 'BigInt', 'Float', 'Decimal', 'Boolean', 'DateTime', 'Json', 'Bytes'}

BLOCK_START = re.compile(r'^[ \t]*(model|enum|type|view|generator|datasource)\s+(\w+)\s*\{', re.M)
FIELD_LINE = re.compile(r'^(\w+)\s+(\w+(?:\([^)]*\))?)(\[\])?(\?)?\s*(.*)$')
ATTRIBUTE = re.compile(r'@@?([\w.]+)')


@dataclass
class _Block:
    kind: str
    name: str
    lines: List[str]


@dataclass
class _Model:
    """A model block, resolved enough to know its table and column names"""
    name: str
    table: str
    fields: List[tuple] = field(default_factory=list)   # (field name, type, is_list, optional, attrs)
    block_attrs: List[str] = field(default_factory=list)
    columns: Dict[str, str] = field(default_factory=dict)  # field name -> column name


def _attributes(text: str) -> List[tuple]:
    """'@id @default(now()) @db.VarChar(20)' -> [('id', None), ('default', 'now()'), ('db.VarChar', '20')]"""
    found = []
    index = 0
    while True:
        match = ATTRIBUTE.search(text, index)
        if not match:
            return found
        name = match.group(1)
        index = match.end()
        args = None
        if index < len(text) and text[index] == '(':
            end = closing_index(text, index)
            args = text[index + 1:end]
            index = end + 1
        found.append((name, args))


def _named_args(args: Optional[str]) -> Dict[Optional[str], str]:
    """'fields: [a], references: [b]' -> {'fields': '[a]', 'references': '[b]'}"""
    named = {}
    for part in split_args(args or ''):
        key, value = key_value(part)
        named.setdefault(key, value)
    return named


class PrismaSchemaParser:
    """Builds ParsedTable records from a Prisma schema"""

    def __init__(self, options=None):
        self.options = options

    def parse(self, script: str) -> ParseResult:
        result = ParseResult()
        try:
            blocks = self._blocks(strip_comments(script))
        except ParseError as e:
            result.errors.append(e)
            logger.warning(f"Unreadable Prisma schema: {e.message}")
            return result

        enums = {b.name for b in blocks if b.kind == 'enum'}
        composites = {b.name for b in blocks if b.kind == 'type'}
        for block in blocks:
            if block.kind == 'enum':
                result.enums.append(self._enum(block))

        models: Dict[str, _Model] = {}
        for block in blocks:
            if block.kind != 'model':
                continue
            try:
                models[block.name] = self._model(block)
            except ParseError as e:
                e.statement = f"model {block.name}"
                result.errors.append(e)
                logger.warning(f"Skipping model {block.name}: {e.message}")

        for model in models.values():
            try:
                result.add_table(self._table(model, models, enums, composites))
            except ParseError as e:
                e.statement = f"model {model.name}"
                result.errors.append(e)
                logger.warning(f"Skipping model {model.name}: {e.message}")

        if not blocks:
            result.errors.append(ParseError("No model blocks found in Prisma schema"))
        logger.info(f"Parsed {len(result.tables)} Prisma model(s), {len(result.enums)} enum(s)")
        return result

    @staticmethod
    def _blocks(text: str) -> List[_Block]:
        blocks = []
        index = 0
        while True:
            match = BLOCK_START.search(text, index)
            if not match:
                return blocks
            brace = match.end() - 1
            end = closing_index(text, brace)
            lines = [line.strip() for line in text[brace + 1:end].splitlines()]
            blocks.append(_Block(match.group(1), match.group(2), [line for line in lines if line]))
            index = end + 1

    @staticmethod
    def _enum(block: _Block) -> ParsedEnum:
        values = []
        for line in block.lines:
            if line.startswith('@@'):
                continue
            values.append(line.split()[0])
        return ParsedEnum(block.name, values)

    @staticmethod
    def _model(block: _Block) -> _Model:
        model = _Model(name=block.name, table=block.name)
        for line in block.lines:
            if line.startswith('@@'):
                model.block_attrs.append(line)
                continue
            match = FIELD_LINE.match(line)
            if not match:
                raise ParseError(f"Unreadable field definition: {line}")
            name, type_name, is_list, optional, rest = match.groups()
            attrs = _attributes(rest)
            model.fields.append((name, type_name, bool(is_list), bool(optional), attrs))
            mapped = next((unquote(args) for attr, args in attrs if attr == 'map' and args), None)
            model.columns[name] = mapped or name

        for name, args in _attributes(' '.join(model.block_attrs)):
            if name == 'map' and args:
                model.table = unquote(split_args(args)[0]) or model.table
        return model

    def _table(self, model: _Model, models: Dict[str, _Model], enums, composites) -> ParsedTable:
        table = ParsedTable(name=model.table)

        for name, type_name, is_list, optional, attrs in model.fields:
            if type_name in models:
                if not is_list:
                    self._relation(table, model, name, type_name, attrs, models)
                continue
            column = ParsedColumn(name=model.columns[name], raw_type=type_name, nullable=optional)
            if is_list or type_name in composites:
                column.raw_type = 'JSON'
            elif type_name.startswith('Unsupported('):
                column.raw_type = unquote(type_name[len('Unsupported('):-1]) or 'TEXT'
            elif type_name not in SCALARS and type_name not in enums:
                raise ParseError(f"Field {model.name}.{name} has unknown type {type_name}")

            for attr, args in attrs:
                if attr == 'id':
                    column.is_primary_key = True
                    column.nullable = False
                elif attr == 'unique':
                    column.is_unique = True
                elif attr == 'default':
                    self._default(column, args or '', type_name in enums)
                elif attr.startswith('db.'):
                    column.raw_type = attr[3:] + (f"({args.replace(' ', '')})" if args else '')
                    if attr == 'db.VarChar' and args:
                        column.length = int(args.strip())
            table.columns.append(column)

        for attr, args in _attributes(' '.join(model.block_attrs)):
            named = _named_args(args)
            columns = [model.columns.get(c, c) for c in list_items(named.get(None) or named.get('fields') or '[]')]
            index_name = unquote(named.get('name') or named.get('map') or '') or None
            if attr == 'id' and columns:
                table.constraints.append(ParsedConstraint('PRIMARY KEY', columns, name=index_name))
                for column_name in columns:
                    column = table.get_column(column_name)
                    if column is not None:
                        column.nullable = False
            elif attr == 'unique' and columns:
                table.constraints.append(ParsedConstraint('UNIQUE', columns, name=index_name))
            elif attr == 'index' and columns:
                table.indexes.append(ParsedIndex(index_name, columns))
        return table

    @staticmethod
    def _relation(table: ParsedTable, model: _Model, name: str, target: str, attrs, models: Dict[str, _Model]):
        args = next((args for attr, args in attrs if attr == 'relation'), None)
        named = _named_args(args)
        if 'fields' not in named:
            # back side of a one-to-one, the other model holds the key
            return
        parent = models[target]
        sources = [model.columns.get(c, c) for c in list_items(named['fields'])]
        targets = [parent.columns.get(c, c) for c in list_items(named.get('references', '[]'))]
        if len(sources) != len(targets):
            raise ParseError(f"Relation {model.name}.{name} lists {len(sources)} field(s) "
                             f"but {len(targets)} reference(s)")
        table.constraints.append(ParsedConstraint(
            'FOREIGN KEY', sources,
            name=unquote(named.get('map', '')) or None,
            referenced_table=parent.table,
            referenced_columns=targets,
            on_delete=ACTIONS.get(named.get('onDelete', '')),
            on_update=ACTIONS.get(named.get('onUpdate', '')),
        ))

    @staticmethod
    def _default(column: ParsedColumn, args: str, is_enum: bool):
        value = args.strip()
        if value == 'autoincrement()':
            column.is_auto_increment = True
            return
        if value.startswith('dbgenerated('):
            column.default = unquote(value[len('dbgenerated('):-1]) or None
            return
        literal = unquote(value)
        if literal is not None:
            column.default = "'" + literal.replace("'", "''") + "'"
        elif is_enum:
            column.default = f"'{value}'"
        elif value.endswith(')') and value.lower() not in DEFAULT_MAP:
            # cuid(), nanoid() and the like have no SQL spelling
            logger.debug(f"Dropping Prisma default {value} on {column.name}")
        else:
            column.default = value


def parse(script: str, options=None) -> ParseResult:
    result = PrismaSchemaParser(options).parse(script)
    result.tables = normalize_tables(result.tables, STRATEGY)
    return result


STRATEGY = DialectStrategy(
    dialect=Dialect.PRISMA,
    parse=parse,
    type_map=MappingProxyType(TYPE_MAP),
    default_map=MappingProxyType(DEFAULT_MAP),
)
