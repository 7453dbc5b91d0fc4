from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

from core.type_registry import CanonicalType

@dataclass
class IRReference:
    """Single-column foreign key target"""
    table: str
    column: str
    on_delete: Optional[str] = None
    on_update: Optional[str] = None

@dataclass
class IRAttribute:
    """Column definition in IR"""
    name: str
    type: CanonicalType
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    is_primary_key: bool = False
    is_optional: bool = True
    is_unique: bool = False
    is_auto_increment: bool = False
    default: Optional[str] = None
    references: Optional[IRReference] = None
    comment: Optional[str] = None
    enum: Optional[str] = None  # IREnum name when typed with a declared enum

@dataclass
class IRIndex:
    """Secondary index"""
    columns: List[str]
    unique: bool = False
    name: Optional[str] = None

@dataclass
class IREntity:
    """Table definition in IR"""
    name: str
    attributes: List[IRAttribute] = field(default_factory=list)
    primary_key: List[str] = field(default_factory=list)
    indexes: List[IRIndex] = field(default_factory=list)
    uniques: List[List[str]] = field(default_factory=list)
    comment: Optional[str] = None

    def get_attribute(self, name: str) -> Optional[IRAttribute]:
        for attr in self.attributes:
            if attr.name == name:
                return attr
        return None

    def attribute_names(self) -> List[str]:
        return [attr.name for attr in self.attributes]

@dataclass
class IRRelation:
    """Foreign key between two entities, derived by the builder"""
    source_entity: str
    target_entity: str
    source_columns: List[str]
    target_columns: List[str]
    on_delete: Optional[str] = None
    on_update: Optional[str] = None
    kind: str = "1-N"  # 1-N or 1-1
    name: Optional[str] = None

@dataclass
class IREnum:
    name: str
    values: List[str] = field(default_factory=list)

@dataclass
class IRCheck:
    table: str
    expression: str
    name: Optional[str] = None

@dataclass
class IRComment:
    table: str
    text: str
    column: Optional[str] = None

@dataclass
class IRSchema:
    """Full database schema in IR"""
    entities: List[IREntity] = field(default_factory=list)
    relations: List[IRRelation] = field(default_factory=list)
    enums: List[IREnum] = field(default_factory=list)
    checks: List[IRCheck] = field(default_factory=list)
    comments: List[IRComment] = field(default_factory=list)

    def get_entity(self, name: str) -> Optional[IREntity]:
        for entity in self.entities:
            if entity.name == name:
                return entity
        return None

    def entity_names(self) -> List[str]:
        return [entity.name for entity in self.entities]

    def relations_from(self, entity_name: str) -> List[IRRelation]:
        return [rel for rel in self.relations if rel.source_entity == entity_name]

    def to_dict(self) -> Dict[str, Any]:
        """Plain JSON-compatible representation (camelCase keys)"""
        return {
            "entities": [_entity_to_dict(e) for e in self.entities],
            "relations": [
                {
                    "sourceEntity": r.source_entity,
                    "targetEntity": r.target_entity,
                    "sourceColumns": list(r.source_columns),
                    "targetColumns": list(r.target_columns),
                    "onDelete": r.on_delete,
                    "onUpdate": r.on_update,
                    "kind": r.kind,
                    "name": r.name,
                }
                for r in self.relations
            ],
            "enums": [{"name": e.name, "values": list(e.values)} for e in self.enums],
            "checks": [{"table": c.table, "expression": c.expression, "name": c.name} for c in self.checks],
            "comments": [{"table": c.table, "column": c.column, "text": c.text} for c in self.comments],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IRSchema':
        """Inverse of to_dict. Raises ValidationError on malformed input."""
        from core.errors import ValidationError

        if not isinstance(data, dict):
            raise ValidationError("IR document must be a JSON object")
        try:
            entities = [_entity_from_dict(e) for e in data.get("entities", [])]
            relations = [
                IRRelation(
                    source_entity=r["sourceEntity"],
                    target_entity=r["targetEntity"],
                    source_columns=list(r.get("sourceColumns", [])),
                    target_columns=list(r.get("targetColumns", [])),
                    on_delete=r.get("onDelete"),
                    on_update=r.get("onUpdate"),
                    kind=r.get("kind", "1-N"),
                    name=r.get("name"),
                )
                for r in data.get("relations", [])
            ]
            enums = [IREnum(e["name"], list(e.get("values", []))) for e in data.get("enums", [])]
            checks = [IRCheck(c["table"], c["expression"], c.get("name")) for c in data.get("checks", [])]
            comments = [IRComment(c["table"], c["text"], c.get("column")) for c in data.get("comments", [])]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ValidationError(f"Malformed IR document: {e}", {"error": str(e)}) from e
        return cls(entities=entities, relations=relations, enums=enums, checks=checks, comments=comments)


def _entity_to_dict(entity: IREntity) -> Dict[str, Any]:
    return {
        "name": entity.name,
        "attributes": [
            {
                "name": a.name,
                "type": a.type.value,
                "length": a.length,
                "precision": a.precision,
                "scale": a.scale,
                "isPrimaryKey": a.is_primary_key,
                "isOptional": a.is_optional,
                "isUnique": a.is_unique,
                "isAutoIncrement": a.is_auto_increment,
                "default": a.default,
                "references": None if a.references is None else {
                    "table": a.references.table,
                    "column": a.references.column,
                    "onDelete": a.references.on_delete,
                    "onUpdate": a.references.on_update,
                },
                "comment": a.comment,
                "enum": a.enum,
            }
            for a in entity.attributes
        ],
        "primaryKey": list(entity.primary_key),
        "indexes": [{"columns": list(i.columns), "unique": i.unique, "name": i.name} for i in entity.indexes],
        "uniques": [list(u) for u in entity.uniques],
        "comment": entity.comment,
    }


def _entity_from_dict(data: Dict[str, Any]) -> IREntity:
    attributes = []
    for a in data.get("attributes", []):
        ref = a.get("references")
        attributes.append(IRAttribute(
            name=a["name"],
            type=CanonicalType(a["type"]),
            length=a.get("length"),
            precision=a.get("precision"),
            scale=a.get("scale"),
            is_primary_key=bool(a.get("isPrimaryKey", False)),
            is_optional=bool(a.get("isOptional", True)),
            is_unique=bool(a.get("isUnique", False)),
            is_auto_increment=bool(a.get("isAutoIncrement", False)),
            default=a.get("default"),
            references=None if not ref else IRReference(
                ref["table"], ref["column"], ref.get("onDelete"), ref.get("onUpdate")
            ),
            comment=a.get("comment"),
            enum=a.get("enum"),
        ))
    return IREntity(
        name=data["name"],
        attributes=attributes,
        primary_key=list(data.get("primaryKey", [])),
        indexes=[IRIndex(list(i["columns"]), bool(i.get("unique", False)), i.get("name")) for i in data.get("indexes", [])],
        uniques=[list(u) for u in data.get("uniques", [])],
        comment=data.get("comment"),
    )
