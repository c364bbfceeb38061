"""Shared response envelope and pagination schemas."""
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

DataT = TypeVar("DataT")


class CamelModel(BaseModel):
    """Base model exposing camelCase JSON keys while accepting either form."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiResponse(CamelModel, Generic[DataT]):
    status: Literal["success", "error"] = "success"
    message: str
    data: DataT | None = None


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_comments: int
    has_next_page: bool
    has_prev_page: bool


class ItemPagination(CamelModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next_page: bool
    has_prev_page: bool


class DailyCount(CamelModel):
    date: str
    count: int
