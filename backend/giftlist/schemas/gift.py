from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _strip_or_none(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


class GiftCreate(CamelModel):
    title: str = Field(max_length=500)
    note: str | None = Field(default=None, max_length=5000)
    url: str | None = Field(default=None, max_length=2048)
    image_url: str | None = Field(default=None, max_length=2048)
    image_focal_x: float | None = Field(default=None, ge=0, le=1)
    image_focal_y: float | None = Field(default=None, ge=0, le=1)

    @field_validator("title")
    @classmethod
    def _title_required(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Title is required")
        return normalized

    @field_validator("note", "url", "image_url")
    @classmethod
    def _normalize_optional(cls, value: str | None) -> str | None:
        return _strip_or_none(value)


class GiftUpdate(CamelModel):
    title: str | None = Field(default=None, max_length=500)
    note: str | None = Field(default=None, max_length=5000)
    url: str | None = Field(default=None, max_length=2048)
    image_url: str | None = Field(default=None, max_length=2048)
    image_focal_x: float | None = Field(default=None, ge=0, le=1)
    image_focal_y: float | None = Field(default=None, ge=0, le=1)

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if not normalized:
            raise ValueError("Title is required")
        return normalized

    @field_validator("note", "url", "image_url")
    @classmethod
    def _normalize_optional(cls, value: str | None) -> str | None:
        return _strip_or_none(value)


class GiftPublic(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    title: str
    note: str | None = None
    url: str | None = None
    image_url: str | None = None
    image_focal_x: float | None = None
    image_focal_y: float | None = None
    created_at: datetime
    bought: bool = False
    bought_by: str | None = None
    can_toggle: bool = True


class ClaimToggleRequest(CamelModel):
    gift_id: int = Field(gt=0, strict=True)
    bought: bool = Field(strict=True)


class ClaimToggleResponse(CamelModel):
    success: bool = True
    bought: bool
    bought_by: str | None = None


class ClaimRejected(CamelModel):
    success: bool = False
    error: str
    reason: str
    bought: bool = True
    bought_by: str | None = None


class DeleteResponse(BaseModel):
    success: bool = True
