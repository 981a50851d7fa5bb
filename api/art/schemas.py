"""
Art API schemas (record shape + request models).
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ArtRecord(BaseModel):
    """
    A stored pixel-art submission.

    `mapping` is the client's cell data and is stored and returned verbatim.
    `createdAt` is epoch milliseconds.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    mapping: Any
    size: int = Field(..., gt=0)
    created_at: int = Field(..., alias="createdAt")


class CreateArtRequest(BaseModel):
    # Presence and emptiness are checked by the service so the client gets
    # one consistent "missing fields" error.
    name: str | None = None
    author: str | None = None
    mapping: Any = None
    size: Any = None


class CreateArtResponse(BaseModel):
    message: str = "Art submitted successfully!"
    id: str


class ArtPage(BaseModel):
    data: list[ArtRecord]
    next_cursor: str | None = None
