"""Validated form submission and the alias normalization that produces it."""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from grammar_coach.utils.error_handler import SubmissionValidationError

# Canonical field -> accepted request keys, canonical name first.
FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "name": ("name",),
    "email": ("email",),
    "grade": ("grade",),
    "target": ("target", "targetSchool", "school"),
    "explanation": ("explanation", "message"),
    "user_id": ("userId", "lineUserId", "user_id"),
}

_KEY_TO_FIELD = {alias: field for field, aliases in FIELD_ALIASES.items() for alias in aliases}


@dataclass(frozen=True)
class Submission:
    """One form post. Built once at request entry and never mutated."""

    explanation: str
    name: str = ""
    email: str = ""
    grade: str = ""
    target: str = ""
    user_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "Submission":
        return cls(**normalize_payload(payload))


def normalize_payload(payload: Any) -> Dict[str, Any]:
    """Maps a raw request body onto canonical submission fields.

    Accepts the historical field names (`targetSchool`, `school`,
    `message`, `lineUserId`) and rejects unknown keys, non-string values,
    conflicting aliases and a missing or blank explanation. Every string
    is stripped; empty optional values become "" (or None for `user_id`).

    Raises:
        SubmissionValidationError: Listing the offending fields.
    """
    if not isinstance(payload, Mapping):
        raise SubmissionValidationError("Request body must be a JSON object.")

    unknown = sorted(k for k in payload if k not in _KEY_TO_FIELD)
    if unknown:
        raise SubmissionValidationError(f"Unknown fields: {', '.join(unknown)}", fields=unknown)

    values: Dict[str, str] = {}
    for key, raw in payload.items():
        field = _KEY_TO_FIELD[key]
        if raw is None:
            continue
        if not isinstance(raw, str):
            raise SubmissionValidationError(f"Field '{key}' must be a string.", fields=[key])
        value = raw.strip()
        if not value:
            continue
        if field in values and values[field] != value:
            raise SubmissionValidationError(
                f"Conflicting values for '{field}' given under different names.", fields=[field]
            )
        values[field] = value

    if not values.get("explanation"):
        raise SubmissionValidationError("Field 'explanation' is required.", fields=["explanation"])

    return {
        "explanation": values["explanation"],
        "name": values.get("name", ""),
        "email": values.get("email", ""),
        "grade": values.get("grade", ""),
        "target": values.get("target", ""),
        "user_id": values.get("user_id") or None,
    }
