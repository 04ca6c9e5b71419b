"""Shared response schemas."""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """Offset-paginated list response."""

    items: list[T]
    total: int
    page: int
    pages: int


def page_count(total: int, limit: int) -> int:
    """Number of pages needed to show ``total`` items ``limit`` at a time."""
    return -(-total // limit) if limit else 0
