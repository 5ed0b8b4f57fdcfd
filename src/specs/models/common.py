from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class EntityBase(BaseModel):
    """Fields every externally visible entity carries.

    DTOs ignore undeclared attributes, so nothing that is not a declared field
    can ever be serialised to a caller.
    """

    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    id: str
    createdAt: str
    updatedAt: str
    version: int = Field(ge=1)


class RequestBase(BaseModel):
    """Base for create/update payloads: unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid", use_enum_values=True)


class ErrorTracking(BaseModel):
    code: str
    message: str
    at: str
    retryable: bool = False


class ErrorInput(BaseModel):
    code: str
    message: str
    retryable: Optional[bool] = False


__all__ = [
    "EntityBase",
    "RequestBase",
    "ErrorTracking",
    "ErrorInput",
]
