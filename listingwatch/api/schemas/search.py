"""Ad-hoc search schemas."""
from typing import Any, Literal

from pydantic import BaseModel, Field

from listingwatch.api.schemas.watch import CriterionIn


class SearchRequest(BaseModel):
    criteria: list[CriterionIn] = Field(default_factory=list)
    logic: Literal["AND", "OR", "ALL"] = "AND"
    categories: list[str] = Field(default_factory=list)
    debug: bool = False


class SearchResponse(BaseModel):
    posts: list[dict[str, Any]]
    total_found: int
    criteria: dict[str, Any]
    match_logic: str
    debug: dict[str, Any] = Field(default_factory=dict)


class FieldsResponse(BaseModel):
    categories: list[str]
    fields: list[str]
