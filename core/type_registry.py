import re
import logging
from enum import Enum
from typing import Dict, Tuple, Optional, List, Union

logger = logging.getLogger(__name__)

class CanonicalType(Enum):
    STRING = "string"      # bounded character data
    TEXT = "text"          # unbounded character data
    INTEGER = "integer"
    BIGINT = "bigint"
    DECIMAL = "decimal"    # exact, with precision/scale
    NUMBER = "number"      # floating point
    BOOLEAN = "boolean"
    DATE = "date"
    TIMESTAMP = "timestamp"
    UUID = "uuid"
    JSON = "json"
    BINARY = "binary"

class TypeInfo:
    def __init__(self, ir_type: CanonicalType, precision: Optional[int] = None,
                 scale: Optional[int] = None, length: Optional[int] = None):
        self.ir_type = ir_type
        self.precision = precision
        self.scale = scale
        self.length = length

    @classmethod
    def of(cls, attr) -> 'TypeInfo':
        """TypeInfo view of an IRAttribute"""
        return cls(attr.type, attr.precision, attr.scale, attr.length)

    def __eq__(self, other):
        if not isinstance(other, TypeInfo):
            return NotImplemented
        return (self.ir_type, self.precision, self.scale, self.length) == \
            (other.ir_type, other.precision, other.scale, other.length)

    def __repr__(self):
        value = getattr(self.ir_type, 'value', self.ir_type)
        return f"TypeInfo({value}, p={self.precision}, s={self.scale}, l={self.length})"

# Pre-canonical spellings shared by every dialect after normalization.
# Format: raw base type -> (CanonicalType, precision_rule, scale_rule)
# rule='EXTRACT' means take from the type arguments; an int is a fixed value.
_COMMON: Dict[str, Tuple[CanonicalType, Optional[Union[str, int]], Optional[Union[str, int]]]] = {
    'varchar': (CanonicalType.STRING, 'EXTRACT', None),
    'character varying': (CanonicalType.STRING, 'EXTRACT', None),
    'char': (CanonicalType.STRING, 'EXTRACT', None),
    'character': (CanonicalType.STRING, 'EXTRACT', None),
    'text': (CanonicalType.TEXT, None, None),
    'smallint': (CanonicalType.INTEGER, None, None),
    'int': (CanonicalType.INTEGER, None, None),
    'integer': (CanonicalType.INTEGER, None, None),
    'serial': (CanonicalType.INTEGER, None, None),
    'smallserial': (CanonicalType.INTEGER, None, None),
    'bigint': (CanonicalType.BIGINT, None, None),
    'bigserial': (CanonicalType.BIGINT, None, None),
    'decimal': (CanonicalType.DECIMAL, 'EXTRACT', 'EXTRACT'),
    'numeric': (CanonicalType.DECIMAL, 'EXTRACT', 'EXTRACT'),
    'real': (CanonicalType.NUMBER, None, None),
    'float': (CanonicalType.NUMBER, None, None),
    'double': (CanonicalType.NUMBER, None, None),
    'double precision': (CanonicalType.NUMBER, None, None),
    'boolean': (CanonicalType.BOOLEAN, None, None),
    'bool': (CanonicalType.BOOLEAN, None, None),
    'date': (CanonicalType.DATE, None, None),
    'time': (CanonicalType.TIMESTAMP, None, None),
    'datetime': (CanonicalType.TIMESTAMP, None, None),
    'timestamp': (CanonicalType.TIMESTAMP, None, None),
    'timestamptz': (CanonicalType.TIMESTAMP, None, None),
    'timestamp with time zone': (CanonicalType.TIMESTAMP, None, None),
    'timestamp without time zone': (CanonicalType.TIMESTAMP, None, None),
    'uuid': (CanonicalType.UUID, None, None),
    'json': (CanonicalType.JSON, None, None),
    'jsonb': (CanonicalType.JSON, None, None),
    'binary': (CanonicalType.BINARY, None, None),
    'varbinary': (CanonicalType.BINARY, None, None),
    'blob': (CanonicalType.BINARY, None, None),
    'bytea': (CanonicalType.BINARY, None, None),
}

# Keyword fallback for raw types no table knows, tried in order.
_KEYWORD_FALLBACK: List[Tuple[str, CanonicalType]] = [
    (r'bigint|int8|bigserial', CanonicalType.BIGINT),
    (r'^(tiny|small|medium)?int|integer|serial|int\d$', CanonicalType.INTEGER),
    (r'char|string|enum', CanonicalType.STRING),
    (r'text|clob', CanonicalType.TEXT),
    (r'dec|numeric|money|number', CanonicalType.DECIMAL),
    (r'float|double|real', CanonicalType.NUMBER),
    (r'bool|^bit', CanonicalType.BOOLEAN),
    (r'timestamp|datetime|^time', CanonicalType.TIMESTAMP),
    (r'date', CanonicalType.DATE),
    (r'uuid|guid|uniqueidentifier', CanonicalType.UUID),
    (r'json', CanonicalType.JSON),
    (r'binary|blob|image|bytea|raw', CanonicalType.BINARY),
]

class TypeRegistry:
    # Source type -> canonical type mappings, keyed by dialect name
    SOURCE_TO_IR: Dict[str, Dict[str, Tuple[CanonicalType, Optional[Union[str, int]], Optional[Union[str, int]]]]] = {
        'postgresql': {
            **_COMMON,
            'int2': (CanonicalType.INTEGER, None, None),
            'int4': (CanonicalType.INTEGER, None, None),
            'int8': (CanonicalType.BIGINT, None, None),
            'float4': (CanonicalType.NUMBER, None, None),
            'float8': (CanonicalType.NUMBER, None, None),
            'citext': (CanonicalType.TEXT, None, None),
            'money': (CanonicalType.DECIMAL, 19, 2),
            'timetz': (CanonicalType.TIMESTAMP, None, None),
            'inet': (CanonicalType.STRING, None, None),
            'xml': (CanonicalType.TEXT, None, None),
        },
        'mysql': {
            **_COMMON,
            'tinyint(1)': (CanonicalType.BOOLEAN, None, None),
            'tinyint': (CanonicalType.INTEGER, None, None),
            'mediumint': (CanonicalType.INTEGER, None, None),
            'year': (CanonicalType.INTEGER, None, None),
            'tinytext': (CanonicalType.TEXT, None, None),
            'mediumtext': (CanonicalType.TEXT, None, None),
            'longtext': (CanonicalType.TEXT, None, None),
            'tinyblob': (CanonicalType.BINARY, None, None),
            'mediumblob': (CanonicalType.BINARY, None, None),
            'longblob': (CanonicalType.BINARY, None, None),
        },
        'sqlite': {
            **_COMMON,
            'clob': (CanonicalType.TEXT, None, None),
        },
        'oracle': {
            **_COMMON,
            'number': (CanonicalType.DECIMAL, 'EXTRACT', 'EXTRACT'),
            'varchar2': (CanonicalType.STRING, 'EXTRACT', None),
            'nvarchar2': (CanonicalType.STRING, 'EXTRACT', None),
            'nchar': (CanonicalType.STRING, 'EXTRACT', None),
            'clob': (CanonicalType.TEXT, None, None),
            'nclob': (CanonicalType.TEXT, None, None),
            'long': (CanonicalType.TEXT, None, None),
            'raw': (CanonicalType.BINARY, None, None),
            'long raw': (CanonicalType.BINARY, None, None),
            'binary_float': (CanonicalType.NUMBER, None, None),
            'binary_double': (CanonicalType.NUMBER, None, None),
            'timestamp with local time zone': (CanonicalType.TIMESTAMP, None, None),
        },
        'sqlserver': {
            **_COMMON,
            'tinyint': (CanonicalType.INTEGER, None, None),
            'bit': (CanonicalType.BOOLEAN, None, None),
            'money': (CanonicalType.DECIMAL, 19, 4),
            'smallmoney': (CanonicalType.DECIMAL, 10, 4),
            'datetime2': (CanonicalType.TIMESTAMP, None, None),
            'smalldatetime': (CanonicalType.TIMESTAMP, None, None),
            'datetimeoffset': (CanonicalType.TIMESTAMP, None, None),
            'nchar': (CanonicalType.STRING, 'EXTRACT', None),
            'nvarchar': (CanonicalType.STRING, 'EXTRACT', None),
            'ntext': (CanonicalType.TEXT, None, None),
            'image': (CanonicalType.BINARY, None, None),
            'uniqueidentifier': (CanonicalType.UUID, None, None),
            'xml': (CanonicalType.TEXT, None, None),
        },
        'mongodb': {
            **_COMMON,
            'objectid': (CanonicalType.UUID, None, None),
            'string': (CanonicalType.TEXT, None, None),
            'long': (CanonicalType.BIGINT, None, None),
            'object': (CanonicalType.JSON, None, None),
            'array': (CanonicalType.JSON, None, None),
            'bindata': (CanonicalType.BINARY, None, None),
        },
    }

    # Canonical type -> target type mappings
    IR_TO_TARGET: Dict[str, Dict[CanonicalType, str]] = {
        'postgresql': {
            CanonicalType.STRING: 'VARCHAR',
            CanonicalType.TEXT: 'TEXT',
            CanonicalType.INTEGER: 'INTEGER',
            CanonicalType.BIGINT: 'BIGINT',
            CanonicalType.DECIMAL: 'NUMERIC',
            CanonicalType.NUMBER: 'DOUBLE PRECISION',
            CanonicalType.BOOLEAN: 'BOOLEAN',
            CanonicalType.DATE: 'DATE',
            CanonicalType.TIMESTAMP: 'TIMESTAMP WITH TIME ZONE',
            CanonicalType.UUID: 'UUID',
            CanonicalType.JSON: 'JSONB',
            CanonicalType.BINARY: 'BYTEA',
        },
        'mysql': {
            CanonicalType.STRING: 'VARCHAR',
            CanonicalType.TEXT: 'TEXT',
            CanonicalType.INTEGER: 'INT',
            CanonicalType.BIGINT: 'BIGINT',
            CanonicalType.DECIMAL: 'DECIMAL',
            CanonicalType.NUMBER: 'DOUBLE',
            CanonicalType.BOOLEAN: 'TINYINT(1)',
            CanonicalType.DATE: 'DATE',
            CanonicalType.TIMESTAMP: 'DATETIME',
            CanonicalType.UUID: 'CHAR(36)',
            CanonicalType.JSON: 'JSON',
            CanonicalType.BINARY: 'LONGBLOB',
        },
        'sqlserver': {
            CanonicalType.STRING: 'NVARCHAR',
            CanonicalType.TEXT: 'NVARCHAR(MAX)',
            CanonicalType.INTEGER: 'INT',
            CanonicalType.BIGINT: 'BIGINT',
            CanonicalType.DECIMAL: 'DECIMAL',
            CanonicalType.NUMBER: 'FLOAT',
            CanonicalType.BOOLEAN: 'BIT',
            CanonicalType.DATE: 'DATE',
            CanonicalType.TIMESTAMP: 'DATETIME2',
            CanonicalType.UUID: 'UNIQUEIDENTIFIER',
            CanonicalType.JSON: 'NVARCHAR(MAX)',
            CanonicalType.BINARY: 'VARBINARY(MAX)',
        },
        'sqlite': {
            CanonicalType.STRING: 'VARCHAR',
            CanonicalType.TEXT: 'TEXT',
            CanonicalType.INTEGER: 'INTEGER',
            CanonicalType.BIGINT: 'BIGINT',
            CanonicalType.DECIMAL: 'NUMERIC',
            CanonicalType.NUMBER: 'REAL',
            CanonicalType.BOOLEAN: 'BOOLEAN',
            CanonicalType.DATE: 'DATE',
            CanonicalType.TIMESTAMP: 'DATETIME',
            CanonicalType.UUID: 'TEXT',
            CanonicalType.JSON: 'TEXT',
            CanonicalType.BINARY: 'BLOB',
        },
    }

    # Unbounded character type of each target; used for unmapped types
    GENERIC_TEXT: Dict[str, str] = {
        'postgresql': 'TEXT',
        'mysql': 'TEXT',
        'sqlserver': 'NVARCHAR(MAX)',
        'sqlite': 'TEXT',
    }

    # Length used when a target requires one and the IR has none
    DEFAULT_STRING_LENGTH: Dict[str, Optional[int]] = {
        'postgresql': None,
        'mysql': 255,
        'sqlserver': 255,
        'sqlite': None,
    }

    # Shared default vocabulary -> target spelling
    DEFAULT_TO_TARGET: Dict[str, Dict[str, str]] = {
        'postgresql': {
            'now()': 'now()',
            'gen_random_uuid()': 'gen_random_uuid()',
            'current_user': 'CURRENT_USER',
            'random()': 'random()',
        },
        'mysql': {
            'now()': 'CURRENT_TIMESTAMP',
            'gen_random_uuid()': '(UUID())',
            'current_user': '(CURRENT_USER())',
            'random()': '(RAND())',
        },
        'sqlserver': {
            'now()': 'GETDATE()',
            'gen_random_uuid()': 'NEWID()',
            'current_user': 'CURRENT_USER',
            'random()': 'RAND()',
        },
        'sqlite': {
            'now()': 'CURRENT_TIMESTAMP',
            'gen_random_uuid()': '(lower(hex(randomblob(16))))',
            'current_user': "''",
            'random()': '(random())',
        },
    }

    @staticmethod
    def map_to_ir(source_dialect: str, source_type: str) -> TypeInfo:
        """Map a raw source type to its canonical TypeInfo"""
        source_type_lower = ' '.join(source_type.lower().split())
        dialect_lower = source_dialect.lower()

        if source_type_lower.endswith('[]'):
            return TypeInfo(CanonicalType.JSON)

        base_type, params = TypeRegistry._parse_type_string(source_type_lower)
        table = TypeRegistry.SOURCE_TO_IR.get(dialect_lower, _COMMON)

        # 1. Exact match of the full string (e.g. "tinyint(1)"), then the base type
        mapping = table.get(source_type_lower) or table.get(base_type)

        if mapping:
            ir_type, p_rule, s_rule = mapping
        else:
            ir_type, p_rule, s_rule = TypeRegistry._keyword_fallback(base_type), 'EXTRACT', 'EXTRACT'
            logger.debug(f"No mapping for {dialect_lower}:{source_type_lower}, fell back to {ir_type.value}")

        if ir_type == CanonicalType.STRING:
            if params and params[0] == 'max':
                return TypeInfo(CanonicalType.TEXT)
            length = params[0] if p_rule == 'EXTRACT' and params and isinstance(params[0], int) else None
            return TypeInfo(ir_type, length=length)

        if ir_type == CanonicalType.DECIMAL:
            precision = TypeRegistry._apply_rule(p_rule, params, 0)
            scale = TypeRegistry._apply_rule(s_rule, params, 1)
            return TypeInfo(ir_type, precision=precision, scale=scale)

        return TypeInfo(ir_type)

    @staticmethod
    def map_from_ir(target: str, type_info: TypeInfo) -> str:
        """Render a canonical type in a target's spelling"""
        target_lower = target.lower()
        mapping = TypeRegistry.IR_TO_TARGET.get(target_lower, {})
        base = mapping.get(type_info.ir_type)

        if base is None:
            fallback = TypeRegistry.GENERIC_TEXT.get(target_lower, 'TEXT')
            logger.debug(f"No {target_lower} mapping for {type_info!r}, using {fallback}")
            return fallback

        if type_info.ir_type == CanonicalType.STRING and target_lower != 'sqlite':
            length = type_info.length or TypeRegistry.DEFAULT_STRING_LENGTH.get(target_lower)
            return f"{base}({length})" if length else base

        if type_info.ir_type == CanonicalType.DECIMAL and type_info.precision and target_lower != 'sqlite':
            if type_info.scale is not None:
                return f"{base}({type_info.precision},{type_info.scale})"
            return f"{base}({type_info.precision})"

        return base

    @staticmethod
    def map_default(target: str, default: Optional[str]) -> Optional[str]:
        """Render a normalized default expression in a target's spelling"""
        if default is None:
            return None
        table = TypeRegistry.DEFAULT_TO_TARGET.get(target.lower(), {})
        return table.get(default.strip().lower(), default)

    @staticmethod
    def _parse_type_string(type_str: str) -> Tuple[str, Tuple]:
        """Split 'numeric(10, 2)' into ('numeric', (10, 2))"""
        match = re.match(r'^\s*([a-z_][a-z0-9_ ]*?)\s*(?:\((.*)\))?\s*$', type_str)
        if not match:
            return type_str.strip(), ()
        base = match.group(1).strip()
        params = []
        if match.group(2):
            for part in match.group(2).split(','):
                part = part.strip()
                if part.isdigit():
                    params.append(int(part))
                elif part:
                    params.append(part)
        return base, tuple(params)

    @staticmethod
    def _apply_rule(rule, params: Tuple, position: int) -> Optional[int]:
        if isinstance(rule, int):
            return rule
        if rule == 'EXTRACT' and len(params) > position and isinstance(params[position], int):
            return params[position]
        return None

    @staticmethod
    def _keyword_fallback(base_type: str) -> CanonicalType:
        for pattern, ir_type in _KEYWORD_FALLBACK:
            if re.search(pattern, base_type):
                return ir_type
        return CanonicalType.STRING

    @staticmethod
    def is_narrowing(old: TypeInfo, new: TypeInfo) -> Tuple[bool, Optional[str]]:
        """
        Check whether changing a column from `old` to `new` can lose data.

        Returns:
            (is_narrowing, reason)
        """
        old_t, new_t = old.ir_type, new.ir_type

        if old_t == new_t:
            if old_t == CanonicalType.STRING and old.length is not None:
                if new.length is not None and new.length < old.length:
                    return True, f"Length reduction: {old.length} -> {new.length}"
            if old_t == CanonicalType.DECIMAL:
                if old.precision and new.precision and new.precision < old.precision:
                    return True, f"Precision reduction: {old.precision} -> {new.precision}"
                if old.scale and new.scale is not None and new.scale < old.scale:
                    return True, f"Scale reduction: {old.scale} -> {new.scale}"
            return False, None

        if (old_t, new_t) in _WIDENING:
            return False, None
        if new_t == CanonicalType.TEXT and old_t != CanonicalType.BINARY:
            return False, None
        if new_t == CanonicalType.STRING and new.length is None and old_t not in (CanonicalType.TEXT, CanonicalType.BINARY, CanonicalType.JSON):
            return False, None

        reason = _NARROWING_REASONS.get((old_t, new_t))
        if reason is None:
            reason = f"Values of type {old_t.value} may not convert to {new_t.value}"
        return True, reason


_WIDENING = {
    (CanonicalType.INTEGER, CanonicalType.BIGINT),
    (CanonicalType.INTEGER, CanonicalType.DECIMAL),
    (CanonicalType.INTEGER, CanonicalType.NUMBER),
    (CanonicalType.BIGINT, CanonicalType.DECIMAL),
    (CanonicalType.DATE, CanonicalType.TIMESTAMP),
    (CanonicalType.BOOLEAN, CanonicalType.INTEGER),
    (CanonicalType.BOOLEAN, CanonicalType.BIGINT),
}

_NARROWING_REASONS = {
    (CanonicalType.TEXT, CanonicalType.STRING): "Length restriction: text -> string",
    (CanonicalType.BIGINT, CanonicalType.INTEGER): "Range loss: bigint -> integer",
    (CanonicalType.DECIMAL, CanonicalType.INTEGER): "Precision loss: decimal -> integer",
    (CanonicalType.DECIMAL, CanonicalType.BIGINT): "Precision loss: decimal -> bigint",
    (CanonicalType.NUMBER, CanonicalType.INTEGER): "Precision loss: number -> integer",
    (CanonicalType.NUMBER, CanonicalType.BIGINT): "Precision loss: number -> bigint",
    (CanonicalType.NUMBER, CanonicalType.DECIMAL): "Precision loss: number -> decimal",
    (CanonicalType.BIGINT, CanonicalType.NUMBER): "Precision loss: bigint -> number",
    (CanonicalType.DECIMAL, CanonicalType.NUMBER): "Precision loss: decimal -> number",
    (CanonicalType.TIMESTAMP, CanonicalType.DATE): "Time component loss: timestamp -> date",
}
