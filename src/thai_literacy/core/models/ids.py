"""
Entity identifiers

All records are keyed by an opaque ``EntityId``. Callers hand the persistence
layer whatever they have (a string from a URL, a UUID, a model row, a JSON
document with ``id``/``_id``) and ``normalize_id`` turns it into the single
canonical representation: 32 lowercase hex characters.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Mapping, Union


@dataclass(frozen=True)
class EntityId:
    """Canonical identifier value"""

    value: str

    def __post_init__(self):
        if len(self.value) != 32 or any(c not in "0123456789abcdef" for c in self.value):
            raise ValueError(f"Not a canonical entity id: {self.value!r}")

    @classmethod
    def new(cls) -> "EntityId":
        return cls(uuid.uuid4().hex)

    @classmethod
    def of(cls, raw: Any) -> "EntityId":
        """Build an EntityId from any supported id-like value."""
        if isinstance(raw, EntityId):
            return raw
        if isinstance(raw, uuid.UUID):
            return cls(raw.hex)
        if isinstance(raw, Mapping):
            for key in ("id", "_id"):
                if raw.get(key) is not None:
                    return cls.of(raw[key])
            raise ValueError("Mapping has no id field")
        if isinstance(raw, str):
            text = raw.strip().lower().replace("-", "")
            if text.startswith("{") and text.endswith("}"):
                text = text[1:-1]
            return cls(text)
        row_id = getattr(raw, "id", None)
        if row_id is not None and row_id is not raw:
            return cls.of(row_id)
        raise ValueError(f"Unsupported id value: {raw!r}")

    def __str__(self) -> str:
        return self.value


IdLike = Union[EntityId, uuid.UUID, str, Mapping[str, Any], Any]


def new_id() -> str:
    """Column default for primary keys"""
    return EntityId.new().value


def normalize_id(raw: IdLike) -> str:
    """Return the canonical string form of an id-like value."""
    return EntityId.of(raw).value


def try_normalize_id(raw: IdLike):
    """Like normalize_id but returns None for values that are not ids."""
    if raw is None:
        return None
    try:
        return normalize_id(raw)
    except ValueError:
        return None
