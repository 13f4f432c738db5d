"""
Pydantic schemas for blacklist management.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class BlacklistEntryCreate(BaseModel):
    account_number: str = Field(min_length=1, max_length=64)
    entity_name: str | None = Field(default=None, max_length=255)
    reason: str | None = None


class BlacklistEntryUpdate(BaseModel):
    is_active: bool


class BlacklistEntryResponse(BaseModel):
    id: int
    account_number: str
    entity_name: str | None
    reason: str | None
    is_active: bool
    created_by: int | None
    created_at: datetime

    model_config = {"from_attributes": True}


class BlacklistMutationResponse(BaseModel):
    entry: BlacklistEntryResponse
    warnings: list[str] = []
