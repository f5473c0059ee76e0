"""Pydantic schemas for the health endpoint."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: Literal["ok", "unavailable"]
    store: Literal["connected", "disconnected"]
    backend: str = Field(..., description="Configured store backend.")
    detail: str | None = Field(default=None, description="Failure reason when unavailable.")
