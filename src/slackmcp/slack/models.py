"""Pydantic models for pages returned by the remote conversation service."""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """One page of a cursor-paginated remote listing.

    ``next_cursor`` is ``None`` on the last page.
    """

    model_config = ConfigDict(frozen=True)

    items: list[T] = Field(default_factory=list)
    next_cursor: str | None = None

    @property
    def has_more(self) -> bool:
        return bool(self.next_cursor)
