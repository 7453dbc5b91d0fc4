"""
JSON Schema (draft-07) emitter. One definition per entity, usable for
request validation in front of the generated database.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from core.options import ConvertOptions
from core.schema_ir import IRSchema, IRAttribute
from core.type_registry import CanonicalType
from core.ir_validator import validate_schema
from core.emitters.base import Clock, generated_on, topological_sort, split_foreign_keys, prepare_entities, \
    pascal_case, classify_default

logger = logging.getLogger(__name__)

DRAFT_07 = "http://json-schema.org/draft-07/schema#"

INTEGER_BOUNDS = {
    CanonicalType.INTEGER: (-2147483648, 2147483647),
    CanonicalType.BIGINT: (-9223372036854775808, 9223372036854775807),
}

FORMATS = {
    CanonicalType.DATE: 'date',
    CanonicalType.TIMESTAMP: 'date-time',
    CanonicalType.UUID: 'uuid',
    CanonicalType.BINARY: 'byte',
}

JSON_TYPES = {
    CanonicalType.STRING: 'string',
    CanonicalType.TEXT: 'string',
    CanonicalType.INTEGER: 'integer',
    CanonicalType.BIGINT: 'integer',
    CanonicalType.DECIMAL: 'number',
    CanonicalType.NUMBER: 'number',
    CanonicalType.BOOLEAN: 'boolean',
    CanonicalType.DATE: 'string',
    CanonicalType.TIMESTAMP: 'string',
    CanonicalType.UUID: 'string',
    CanonicalType.BINARY: 'string',
}


class JSONSchemaEmitter:

    def __init__(self, options: Optional[ConvertOptions] = None, clock: Optional[Clock] = None):
        self.options = options or ConvertOptions()
        self.clock = clock

    def emit(self, ir: IRSchema) -> str:
        validate_schema(ir)
        relations, _ = split_foreign_keys(ir)
        order = topological_sort(prepare_entities(ir, self.options.add_timestamps), relations)

        references = {}
        for rel in relations:
            for source, target in zip(rel.source_columns, rel.target_columns):
                references[(rel.source_entity, source)] = f"{rel.target_entity}.{target}"

        definitions: Dict[str, Any] = {}
        for entity in order.order:
            properties = {}
            required: List[str] = []
            for attr in entity.attributes:
                properties[attr.name] = self._property(attr, references.get((entity.name, attr.name)))
                if not attr.is_optional and not attr.is_auto_increment and attr.default is None:
                    required.append(attr.name)

            definition: Dict[str, Any] = {'title': entity.name, 'type': 'object', 'properties': properties}
            if required:
                definition['required'] = required
            definition['additionalProperties'] = False
            if entity.comment and self.options.include_comments:
                definition['description'] = entity.comment
            definitions[pascal_case(entity.name)] = definition

        document = {
            '$schema': DRAFT_07,
            '$comment': f"Generated JSON Schema; {generated_on(self.clock)}",
            'type': 'object',
            'definitions': definitions,
        }
        logger.debug(f"Emitted JSON Schema with {len(definitions)} definitions")
        return json.dumps(document, indent=2) + '\n'

    def _property(self, attr: IRAttribute, reference: Optional[str]) -> Dict[str, Any]:
        if attr.type == CanonicalType.JSON:
            prop: Dict[str, Any] = {'type': ['object', 'array']}
        else:
            prop = {'type': JSON_TYPES.get(attr.type, 'string')}

        if attr.type in FORMATS:
            prop['format'] = FORMATS[attr.type]
        if attr.type == CanonicalType.STRING and attr.length:
            prop['maxLength'] = attr.length
        if attr.type in INTEGER_BOUNDS:
            low, high = INTEGER_BOUNDS[attr.type]
            prop['minimum'] = 1 if attr.is_auto_increment else low
            prop['maximum'] = high
        if attr.is_optional and isinstance(prop['type'], str):
            prop['type'] = [prop['type'], 'null']

        default = self._default(attr)
        if default is not None:
            prop['default'] = default

        descriptions = []
        if attr.comment and self.options.include_comments:
            descriptions.append(attr.comment)
        if reference:
            descriptions.append(f"Foreign key reference to {reference}")
        if descriptions:
            prop['description'] = '. '.join(descriptions)
        return prop

    @staticmethod
    def _default(attr: IRAttribute):
        """JSON value of a literal default; expressions have none"""
        classified = classify_default(attr)
        if classified is None:
            return None
        kind, value = classified
        if kind == 'boolean':
            return value == 'true'
        if kind == 'number':
            return float(value) if '.' in value else int(value)
        if kind == 'string':
            return value
        return None
