"""Shared schema bases."""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class BaseResponse(BaseModel):
    """Response schemas are built straight from ORM rows and dataclasses."""

    model_config = ConfigDict(from_attributes=True)


class ListResponse(BaseModel, Generic[T]):  # noqa: UP046
    """One page of results.

    ``total`` counts every row matching the filters, so it can exceed
    ``len(items)`` when limit/offset are used.
    """

    items: list[T]
    total: int
