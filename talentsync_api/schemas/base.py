"""Base Pydantic schemas with CamelCase conversion."""

from typing import Any

from humps import camelize
from pydantic import BaseModel, ConfigDict


class CamelModel(BaseModel):
    """
    Shared base for request and response bodies.

    Field names are snake_case in Python and camelCase on the wire; requests
    may use either. ``from_attributes`` lets responses validate ORM rows.
    """

    model_config = ConfigDict(
        alias_generator=camelize,
        populate_by_name=True,
        from_attributes=True,
    )


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: dict[str, Any] = {}


class ErrorResponse(BaseModel):
    """Body of every non-2xx answer: ``{"error": {"code", "message", "details"}}``."""

    error: ErrorDetail
