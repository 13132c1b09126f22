"""Pydantic schemas for upload responses."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class UploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str
    original_name: str = Field(alias="originalName")
    size: int
    url: str


class ErrorResponse(BaseModel):
    error: str
