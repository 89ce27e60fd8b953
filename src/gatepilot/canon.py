"""
GatePilot Schema Fingerprints

Deterministic JSON rendering of questionnaire structure, hashed with
SHA-256. An archived schema snapshot carries the hash of its sections and
every submission copies the hash of the version it pinned, so a rendered
submission can show that the structure it displays is the one answered.

Rendering rules (RFC 8785 style):
- keys sorted, no insignificant whitespace, UTF-8 output
- timestamps converted to UTC with millisecond precision and a "Z" suffix
- enums by value, sets as sorted lists, dataclasses as dicts
"""
from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, is_dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Iterable


def _encode(obj: Any) -> Any:
    if isinstance(obj, datetime):
        if obj.tzinfo is not None:
            obj = obj.astimezone(timezone.utc)
        return obj.strftime("%Y-%m-%dT%H:%M:%S.") + f"{obj.microsecond // 1000:03d}Z"
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    raise TypeError(f"Cannot canonicalize {type(obj).__name__}")


def canonical_json(obj: Any) -> str:
    """
    Render obj as canonical JSON text.

        >>> canonical_json({"b": 1, "a": 2})
        '{"a":2,"b":1}'
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=_encode)


def content_hash(obj: Any) -> str:
    """Hex SHA-256 of the canonical rendering."""
    return hashlib.sha256(canonical_json(obj).encode("utf-8")).hexdigest()


def compute_schema_hash(template_id: str, sections: Iterable[Any]) -> str:
    """
    Fingerprint a questionnaire's structure.

    Only the template id and the ordered sections (fields, options,
    criteria) are hashed. Version numbers, timestamps and authorship are
    left out, so archiving identical structure twice gives the same hash.

    Args:
        template_id: Template identifier
        sections: Ordered sections, as dataclasses or plain dicts
    """
    rendered = [s.to_dict() if hasattr(s, "to_dict") else s for s in sections]
    return content_hash({"template_id": template_id, "sections": rendered})
