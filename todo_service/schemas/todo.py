"""Pydantic schemas for TODO items."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class TodoCreate(BaseModel):
    """Payload for creating a TODO item."""

    title: str = Field(..., min_length=1, max_length=200, description="Short task title.")
    description: str | None = Field(
        default=None, max_length=2000, description="Optional longer description."
    )


class TodoUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    completed: bool | None = None


class Todo(BaseModel):
    """Stored TODO item."""

    id: int
    title: str
    description: str | None = None
    completed: bool = False
    created_at: datetime
    updated_at: datetime
