"""
Documentation emitters: DBML (dbdiagram.io) and Mermaid ER diagrams.
"""

import re
import logging
from typing import List

from core.schema_ir import IREntity, IRAttribute
from core.type_registry import CanonicalType
from core.emitters.base import classify_default, column_suffix
from core.emitters.orm import ModelEmitter, RelationMeta

logger = logging.getLogger(__name__)

DBML_TYPES = {
    CanonicalType.STRING: 'varchar',
    CanonicalType.TEXT: 'text',
    CanonicalType.INTEGER: 'int',
    CanonicalType.BIGINT: 'bigint',
    CanonicalType.DECIMAL: 'decimal',
    CanonicalType.NUMBER: 'float',
    CanonicalType.BOOLEAN: 'boolean',
    CanonicalType.DATE: 'date',
    CanonicalType.TIMESTAMP: 'timestamp',
    CanonicalType.UUID: 'uuid',
    CanonicalType.JSON: 'json',
    CanonicalType.BINARY: 'blob',
}


def _dbml_type(attr: IRAttribute) -> str:
    base = DBML_TYPES.get(attr.type, 'varchar')
    if attr.type == CanonicalType.STRING and attr.length:
        return f"{base}({attr.length})"
    if attr.type == CanonicalType.DECIMAL and attr.precision:
        return f"{base}({attr.precision},{attr.scale or 0})"
    return base


def _dbml_name(name: str) -> str:
    return '"' + name.replace('"', '\\"') + '"'


def _dbml_note(text: str) -> str:
    return "'" + text.replace('\\', '\\\\').replace("'", "\\'") + "'"


class DBMLEmitter(ModelEmitter):
    title = 'DBML'

    def render(self, entities: List[IREntity], metas: List[RelationMeta]) -> str:
        blocks = [self._table(entity) for entity in entities]
        refs = [self._ref(meta) for meta in metas]
        body = '\n\n'.join(blocks) + '\n'
        if refs:
            body += '\n' + '\n'.join(refs) + '\n'
        return body

    def _table(self, entity: IREntity) -> str:
        lines = [f"Table {_dbml_name(entity.name)} {{"]
        for attr in entity.attributes:
            settings = self._settings(entity, attr)
            suffix = f" [{', '.join(settings)}]" if settings else ''
            lines.append(f"  {_dbml_name(attr.name)} {_dbml_type(attr)}{suffix}")

        index_lines = []
        if len(entity.primary_key) > 1:
            index_lines.append(f"    ({', '.join(_dbml_name(c) for c in entity.primary_key)}) [pk]")
        for unique in entity.uniques:
            index_lines.append(f"    ({', '.join(_dbml_name(c) for c in unique)}) [unique]")
        for index in entity.indexes:
            settings = [f"name: '{index.name or 'idx_' + entity.name + '_' + column_suffix(index.columns)}'"]
            if index.unique:
                settings.insert(0, 'unique')
            index_lines.append(f"    ({', '.join(_dbml_name(c) for c in index.columns)}) [{', '.join(settings)}]")
        if index_lines:
            lines += ["", "  Indexes {"] + index_lines + ["  }"]

        if entity.comment and self.options.include_comments:
            lines += ["", f"  Note: {_dbml_note(entity.comment)}"]
        lines.append("}")
        return '\n'.join(lines)

    def _settings(self, entity: IREntity, attr: IRAttribute) -> List[str]:
        settings = []
        if entity.primary_key == [attr.name]:
            settings.append('pk')
        if attr.is_auto_increment:
            settings.append('increment')
        if attr.is_unique and not attr.is_primary_key:
            settings.append('unique')
        if not attr.is_optional and not attr.is_primary_key:
            settings.append('not null')

        classified = None if attr.is_auto_increment else classify_default(attr)
        if classified is not None:
            kind, value = classified
            if kind in ('boolean', 'number'):
                settings.append(f"default: {value}")
            elif kind == 'string':
                settings.append(f"default: {_dbml_note(value)}")
            else:
                settings.append(f"default: `{value}`")

        if attr.comment and self.options.include_comments:
            settings.append(f"note: {_dbml_note(attr.comment)}")
        return settings

    @staticmethod
    def _ref(meta: RelationMeta) -> str:
        rel = meta.relation
        source = _dbml_columns(rel.source_entity, rel.source_columns)
        target = _dbml_columns(rel.target_entity, rel.target_columns)
        arrow = '-' if rel.kind == '1-1' else '>'
        actions = []
        if rel.on_delete:
            actions.append(f"delete: {rel.on_delete.lower()}")
        if rel.on_update:
            actions.append(f"update: {rel.on_update.lower()}")
        suffix = f" [{', '.join(actions)}]" if actions else ''
        return f"Ref: {source} {arrow} {target}{suffix}"


def _dbml_columns(table: str, columns: List[str]) -> str:
    if len(columns) == 1:
        return f"{_dbml_name(table)}.{_dbml_name(columns[0])}"
    return f"{_dbml_name(table)}.({', '.join(_dbml_name(c) for c in columns)})"


# Mermaid attribute types are bare words
MERMAID_TYPES = {
    CanonicalType.STRING: 'varchar',
    CanonicalType.TEXT: 'text',
    CanonicalType.INTEGER: 'int',
    CanonicalType.BIGINT: 'bigint',
    CanonicalType.DECIMAL: 'decimal',
    CanonicalType.NUMBER: 'float',
    CanonicalType.BOOLEAN: 'boolean',
    CanonicalType.DATE: 'date',
    CanonicalType.TIMESTAMP: 'timestamp',
    CanonicalType.UUID: 'uuid',
    CanonicalType.JSON: 'json',
    CanonicalType.BINARY: 'blob',
}


def mermaid_name(name: str) -> str:
    return re.sub(r'[^A-Za-z0-9_]', '_', name)


class MermaidEmitter(ModelEmitter):
    title = 'Mermaid ER diagram'
    comment_prefix = '%%'

    def render(self, entities: List[IREntity], metas: List[RelationMeta]) -> str:
        fk_columns = {(m.relation.source_entity, c) for m in metas for c in m.relation.source_columns}
        lines = ["erDiagram"]
        for entity in entities:
            lines.append(f"  {mermaid_name(entity.name)} {{")
            for attr in entity.attributes:
                lines.append(f"    {self._attribute(entity, attr, fk_columns)}")
            lines.append("  }")

        for meta in metas:
            rel = meta.relation
            shape = '||--||' if rel.kind == '1-1' else '||--o{'
            label = f"has_{column_suffix(rel.source_columns)}"
            lines.append(f"  {mermaid_name(rel.target_entity)} {shape} {mermaid_name(rel.source_entity)} : \"{label}\"")
        return '\n'.join(lines) + '\n'

    def _attribute(self, entity: IREntity, attr: IRAttribute, fk_columns) -> str:
        keys = []
        if attr.name in entity.primary_key:
            keys.append('PK')
        if (entity.name, attr.name) in fk_columns:
            keys.append('FK')
        if attr.is_unique and not attr.is_primary_key:
            keys.append('UK')

        line = f"{MERMAID_TYPES.get(attr.type, 'varchar')} {mermaid_name(attr.name)}"
        if keys:
            line += ' ' + ', '.join(keys)

        notes = []
        if not attr.is_optional and not attr.is_primary_key:
            notes.append('NOT NULL')
        if attr.is_auto_increment:
            notes.append('AUTO_INCREMENT')
        elif attr.default is not None:
            notes.append(f"DEFAULT {attr.default.replace(chr(34), chr(39))}")
        if notes:
            line += f' "{", ".join(notes)}"'
        return line
