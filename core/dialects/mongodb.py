"""
MongoDB source dialect.

MongoDB has no DDL; collections are described as JSON. Accepted shapes:

    [ {collection}, ... ]
    {"collections": [ {collection}, ... ]}
    {collection}

where a collection is {"name": ..., "fields"|"schema": {...}} or carries a
"validator": {"$jsonSchema": {...}}. Fields are either a map of
name -> {type|bsonType, required, unique, default, ref} or a JSON Schema
object with "properties" and "required".

Input that is not JSON is scanned for mongo shell statements
(db.createCollection("x"), db.x.insertOne(...)); each collection found that
way becomes a table holding only its _id.
"""

import re
import json
import logging
from types import MappingProxyType
from typing import Any, List, Optional

from core.errors import ParseError
from core.ddl_parser import ParseResult, ParsedColumn, ParsedConstraint, ParsedIndex, ParsedTable
from core.normalizer import normalize_tables
from core.dialects.base import Dialect, DialectStrategy

logger = logging.getLogger(__name__)

TYPE_MAP = {
    'OBJECTID': 'UUID',
    'STRING': 'TEXT',
    'INT': 'INTEGER',
    'INT32': 'INTEGER',
    'INTEGER': 'INTEGER',
    'LONG': 'BIGINT',
    'INT64': 'BIGINT',
    'NUMBER': 'INTEGER',
    'DOUBLE': 'DECIMAL',
    'DECIMAL': 'DECIMAL',
    'DECIMAL128': 'DECIMAL',
    'BOOL': 'BOOLEAN',
    'BOOLEAN': 'BOOLEAN',
    'DATE': 'TIMESTAMP',
    'TIMESTAMP': 'TIMESTAMP',
    'OBJECT': 'JSON',
    'ARRAY': 'JSON',
    'MIXED': 'JSON',
    'BINDATA': 'BLOB',
    'BUFFER': 'BLOB',
    'UUID': 'UUID',
}

DEFAULT_MAP = {
    'date.now': 'now()',
    'date.now()': 'now()',
    'new date()': 'now()',
    '$$now': 'now()',
    'now()': 'now()',
    'uuid()': 'gen_random_uuid()',
}

SHELL_COLLECTION_PATTERNS = [
    re.compile(r'db\.createCollection\(\s*["\']([\w.-]+)["\']'),
    re.compile(r'db\.getCollection\(\s*["\']([\w.-]+)["\']\s*\)'),
    re.compile(r'db\.([A-Za-z_][\w]*)\.(?:insert|insertOne|insertMany|createIndex|updateOne|find)\s*\('),
]

ID_FIELD = '_id'


class MongoSchemaParser:
    """Builds ParsedTable records from MongoDB collection descriptions"""

    def __init__(self, options=None):
        self.options = options
        self.preserve_comments = bool(getattr(options, 'preserve_comments', False))

    def parse(self, script: str) -> ParseResult:
        result = ParseResult()
        try:
            document = json.loads(script)
        except json.JSONDecodeError as e:
            self._parse_shell(script, result, e)
            return result

        for collection in self._collections(document):
            try:
                result.add_table(self._parse_collection(collection))
            except ParseError as e:
                e.statement = json.dumps(collection)[:200]
                result.errors.append(e)
                logger.warning(f"Skipping malformed collection: {e.message}")
        logger.info(f"Parsed {len(result.tables)} collection(s)")
        return result

    @staticmethod
    def _collections(document: Any) -> List[Any]:
        if isinstance(document, list):
            return document
        if isinstance(document, dict):
            if isinstance(document.get('collections'), list):
                return document['collections']
            return [document]
        return []

    def _parse_collection(self, collection: Any) -> ParsedTable:
        if not isinstance(collection, dict) or not collection.get('name'):
            raise ParseError("Collection entry needs a name")
        table = ParsedTable(name=str(collection['name']))
        if self.preserve_comments and collection.get('description'):
            table.comment = str(collection['description'])

        schema = collection.get('fields') or collection.get('schema') or {}
        validator = collection.get('validator') or {}
        if '$jsonSchema' in validator:
            schema = validator['$jsonSchema']
        if isinstance(schema, dict) and '$jsonSchema' in schema:
            schema = schema['$jsonSchema']
        if not isinstance(schema, dict):
            raise ParseError(f"Collection {table.name} has a malformed schema")

        if 'properties' in schema:
            required = set(schema.get('required') or [])
            fields = {
                name: dict(field_def, required=name in required) if isinstance(field_def, dict) else field_def
                for name, field_def in schema['properties'].items()
            }
        else:
            fields = schema

        for name, field_def in fields.items():
            table.columns.append(self._parse_field(table, name, field_def))

        id_column = table.get_column(ID_FIELD)
        if id_column is None:
            id_column = ParsedColumn(name=ID_FIELD, raw_type='objectId')
            table.columns.insert(0, id_column)
        id_column.is_primary_key = True
        id_column.nullable = False

        for index in collection.get('indexes') or []:
            parsed = self._parse_index(index)
            if parsed is not None:
                table.indexes.append(parsed)
        return table

    def _parse_field(self, table: ParsedTable, name: str, field_def: Any) -> ParsedColumn:
        if isinstance(field_def, str):
            return ParsedColumn(name=name, raw_type=field_def)
        if isinstance(field_def, list):
            # Mongoose style [Type] arrays
            return ParsedColumn(name=name, raw_type='array')
        if not isinstance(field_def, dict):
            raise ParseError(f"Field {table.name}.{name} has a malformed definition")

        raw_type = field_def.get('bsonType') or field_def.get('type') or 'string'
        nullable = True
        if isinstance(raw_type, list):
            nullable = 'null' in raw_type
            concrete = [t for t in raw_type if t != 'null']
            raw_type = concrete[0] if concrete else 'string'

        # Schema.Types.ObjectId -> ObjectId
        column = ParsedColumn(name=name, raw_type=str(raw_type).split('.')[-1])
        column.nullable = nullable and not field_def.get('required', False)
        column.is_unique = bool(field_def.get('unique', False))
        if 'default' in field_def:
            column.default = self._render_default(field_def['default'])
        if self.preserve_comments and field_def.get('description'):
            column.comment = str(field_def['description'])
        if field_def.get('maxLength') and column.raw_type.lower() == 'string':
            column.raw_type = f"VARCHAR({int(field_def['maxLength'])})"
            column.length = int(field_def['maxLength'])

        ref = field_def.get('ref')
        if ref:
            table.constraints.append(ParsedConstraint(
                'FOREIGN KEY', [name], referenced_table=str(ref), referenced_columns=[ID_FIELD]
            ))
        return column

    @staticmethod
    def _render_default(value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, bool):
            return 'true' if value else 'false'
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, str):
            if value.lower() in DEFAULT_MAP:
                return value
            return "'" + value.replace("'", "''") + "'"
        return "'" + json.dumps(value).replace("'", "''") + "'"

    @staticmethod
    def _parse_index(index: Any) -> Optional[ParsedIndex]:
        if not isinstance(index, dict):
            return None
        keys = index.get('key') or index.get('keys') or index.get('fields') or {}
        columns = list(keys) if isinstance(keys, (dict, list)) else []
        if not columns:
            return None
        return ParsedIndex(index.get('name'), columns, unique=bool(index.get('unique', False)))

    def _parse_shell(self, script: str, result: ParseResult, error: json.JSONDecodeError):
        names: List[str] = []
        for pattern in SHELL_COLLECTION_PATTERNS:
            for match in pattern.finditer(script):
                name = match.group(1)
                if name not in names:
                    names.append(name)

        if not names:
            result.errors.append(ParseError(
                f"Input is neither JSON nor mongo shell: {error.msg}",
                line=error.lineno, column=error.colno,
            ))
            logger.warning("MongoDB input contained no collections")
            return

        for name in names:
            result.add_table(ParsedTable(name=name, columns=[
                ParsedColumn(name=ID_FIELD, raw_type='objectId', nullable=False, is_primary_key=True)
            ]))
        logger.info(f"Found {len(names)} collection(s) in mongo shell script")


def parse(script: str, options=None) -> ParseResult:
    result = MongoSchemaParser(options).parse(script)
    result.tables = normalize_tables(result.tables, STRATEGY)
    return result


STRATEGY = DialectStrategy(
    dialect=Dialect.MONGODB,
    parse=parse,
    type_map=MappingProxyType(TYPE_MAP),
    default_map=MappingProxyType(DEFAULT_MAP),
)
