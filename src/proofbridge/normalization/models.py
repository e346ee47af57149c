"""Pydantic models for extraction output."""

from __future__ import annotations

from typing import Any, Dict, Literal

from pydantic import BaseModel, ConfigDict, model_validator


def is_populated(value: Any) -> bool:
    """Return True for values that count as extracted data."""

    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict)):
        return len(value) > 0
    return True


class NormalizedRecord(BaseModel):
    """Provider-specific fields extracted from one proof envelope."""

    model_config = ConfigDict(frozen=True)

    provider_id: str
    fields: Dict[str, Any]
    extraction_path: Literal["primary", "deep_search"] = "primary"

    @model_validator(mode="after")
    def _require_populated_field(self) -> "NormalizedRecord":
        if not any(is_populated(value) for value in self.fields.values()):
            raise ValueError("a normalized record needs at least one populated field")
        return self

    def __getitem__(self, name: str) -> Any:
        return self.fields[name]

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def item_count(self, name: str) -> int:
        value = self.fields.get(name)
        return len(value) if isinstance(value, list) else 0


__all__ = ["NormalizedRecord", "is_populated"]
