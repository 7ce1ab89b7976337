"""
Stored document mapping.

Entities are dataclasses with snake_case attributes. In MongoDB they live
under camelCase field names (`login_attempts` is stored as `loginAttempts`)
and `id` is the document's `_id`, so documents keep the shape other
services of the marketplace read and write.
"""

import dataclasses
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

_UNDERSCORE_LETTER = re.compile(r"_([a-z0-9])")


def camel_case(name: str) -> str:
    return _UNDERSCORE_LETTER.sub(lambda m: m.group(1).upper(), name)


E = TypeVar("E", bound="Entity")


@dataclass
class Entity:
    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @staticmethod
    def stored_name(attribute: str) -> str:
        return "_id" if attribute == "id" else camel_case(attribute)

    @classmethod
    def from_document(cls: type[E], doc: dict[str, Any] | None) -> E | None:
        """
        Build an entity from a stored document.

        Fields missing from the document keep their dataclass defaults;
        unknown document fields are ignored.
        """
        if doc is None:
            return None
        values = {}
        for f in dataclasses.fields(cls):
            key = cls.stored_name(f.name)
            if key in doc:
                values[f.name] = str(doc[key]) if f.name == "id" else doc[key]
        return cls(**values)
