"""Pydantic models for memory records.

Wire format is camelCase (``ownerId``, ``isPublic``, ``createdAt``); Python
attributes are snake_case. Both spellings are accepted on input.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .errors import MemoryValidationError


# Fields a client may change through update. Everything else is ignored.
MUTABLE_FIELDS = (
    "title",
    "description",
    "content",
    "type",
    "images",
    "videos",
    "location",
    "tags",
    "is_public",
)


class MemoryType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    MIXED = "mixed"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Location(_CamelModel):
    """Geographic point attached to a memory; lat/lon always travel together."""

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None


class _MemoryFields(_CamelModel):
    title: str
    description: Optional[str] = None
    content: Optional[str] = None
    type: MemoryType
    images: List[str] = Field(default_factory=list)
    videos: List[str] = Field(default_factory=list)
    location: Optional[Location] = None
    tags: List[str] = Field(default_factory=list)
    is_public: bool = False

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title must not be empty")
        return v

    @field_validator("images", "videos", "tags", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("is_public", mode="before")
    @classmethod
    def _none_is_private(cls, v: Any) -> Any:
        return False if v is None else v


class MemoryCreate(_MemoryFields):
    """Body accepted by create; server-owned fields are not part of it."""

    model_config = ConfigDict(extra="ignore")


class Memory(_MemoryFields):
    """A persisted memory record."""

    id: str
    owner_id: str
    created_at: datetime
    updated_at: datetime

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def describe_validation_error(exc: ValidationError) -> str:
    """Flatten pydantic errors into a single client-facing line."""
    parts: List[str] = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg', 'invalid')}" if loc else err.get("msg", "invalid"))
    return "Invalid memory fields: " + "; ".join(parts)


def parse_create(fields: Dict[str, Any]) -> MemoryCreate:
    """Validate a create body, raising MemoryValidationError on any problem."""
    if not fields.get("title") or not fields.get("type"):
        raise MemoryValidationError("Title and type are required")
    try:
        return MemoryCreate.model_validate(fields)
    except ValidationError as e:
        raise MemoryValidationError(describe_validation_error(e)) from e


def mutable_updates(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Pick the allow-listed fields out of an update body (camel or snake keys)."""
    out: Dict[str, Any] = {}
    for name in MUTABLE_FIELDS:
        alias = to_camel(name)
        if alias in fields:
            out[name] = fields[alias]
        elif name in fields:
            out[name] = fields[name]
    return out
