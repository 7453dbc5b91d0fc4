"""
Conversion options shared by parsers, emitters and the migration differ.
"""

import re
from dataclasses import dataclass, fields, asdict
from typing import Any, Dict, Optional

from core.errors import ValidationError


@dataclass
class ConvertOptions:
    """Flat option record; every field has a safe default"""
    schema: str = "public"
    with_rls: bool = False
    include_comments: bool = True
    create_schema: bool = False
    preserve_comments: bool = False
    add_timestamps: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ConvertOptions':
        """Build options from snake_case or camelCase keys (withRLS, includeComments, ...)"""
        if data is None:
            return cls()
        known = {f.name: f for f in fields(cls)}
        values = {}
        for key, value in data.items():
            name = _snake_case(key)
            if name not in known:
                raise ValidationError(f"Unknown option: {key}", {'option': key, 'known': sorted(known)})
            if known[name].type in (bool, 'bool') and not isinstance(value, bool):
                raise ValidationError(f"Option {key} must be a boolean", {'option': key})
            if name == 'schema' and (not isinstance(value, str) or not value.strip()):
                raise ValidationError("Option schema must be a non-empty string", {'option': key})
            values[name] = value
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def merged(self, overrides: Optional[Dict[str, Any]]) -> 'ConvertOptions':
        """Copy of these options with `overrides` applied"""
        data = self.to_dict()
        data.update(ConvertOptions.from_dict(overrides).explicit(overrides))
        return ConvertOptions(**data)

    def explicit(self, source: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """The subset of fields named in `source`"""
        names = {_snake_case(key) for key in (source or {})}
        return {name: value for name, value in self.to_dict().items() if name in names}


def _snake_case(key: str) -> str:
    # withRLS -> with_rls, includeComments -> include_comments
    key = re.sub(r'([a-z0-9])([A-Z])', r'\1_\2', key)
    return key.lower()
