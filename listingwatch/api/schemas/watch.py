"""Watch schemas."""
from datetime import datetime
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from listingwatch.services.criteria import Criterion, format_criteria_summary

CriterionValue = Union[str, int, float, bool]


class CriterionIn(BaseModel):
    """One saved criterion. The legacy {name, label, values} shape is accepted too."""

    field_path: str = Field(..., min_length=1, max_length=255, description="Dotted attribute path or __word_search")
    kind: Literal["exact_or_set", "range", "word_search"] = "exact_or_set"
    values: list[CriterionValue] = Field(..., min_length=1)

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_shape(cls, data: Any) -> Any:
        if isinstance(data, dict) and "field_path" not in data and "name" in data:
            return Criterion.from_dict(data).to_dict()
        return data


class WatchCreate(BaseModel):
    """Schema for creating a watch. Anonymous callers must give guest_email."""

    name: str = Field(..., min_length=1, max_length=255)
    category: str = Field(..., min_length=1, max_length=100)
    criteria: list[CriterionIn] = Field(default_factory=list)
    guest_email: Optional[EmailStr] = None

    @field_validator("name", "category")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class WatchUpdate(BaseModel):
    """Partial update: only the name can change."""

    name: str = Field(..., min_length=1, max_length=255)


class WatchRead(BaseModel):
    id: str
    name: str
    category: str
    criteria: list[dict[str, Any]]
    criteria_summary: str
    seen_count: int
    is_guest: bool
    guest_email: Optional[str] = None
    expires_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_watch(cls, watch: Any) -> "WatchRead":
        criteria = list(watch.criteria or [])
        return cls(
            id=watch.id,
            name=watch.name,
            category=watch.category,
            criteria=criteria,
            criteria_summary=format_criteria_summary(criteria),
            seen_count=len(watch.seen_listing_ids or []),
            is_guest=watch.user_id is None,
            guest_email=watch.guest_email,
            expires_at=watch.expires_at,
            last_run_at=watch.last_run_at,
            created_at=watch.created_at,
            updated_at=watch.updated_at,
        )


class WatchCreated(WatchRead):
    """Returned once at creation; the deletion token is never shown again."""

    deletion_token: Optional[str] = None


class WatchListResponse(BaseModel):
    total: int
    items: list[WatchRead]


class ListingRead(BaseModel):
    id: str
    title: str
    url: Optional[str] = None
    category: Optional[str] = None
    attributes: dict[str, Any] = Field(default_factory=dict)


class RunResponse(BaseModel):
    watch_id: str
    new_count: int
    total_current_matches: int
    new_listings: list[ListingRead]


class NewCountResponse(BaseModel):
    watch_id: str
    new_count: int


class MatchEventRead(BaseModel):
    model_config = {"from_attributes": True}

    listing_id: str
    listing_title: Optional[str] = None
    listing_url: Optional[str] = None
    created_at: Optional[datetime] = None
