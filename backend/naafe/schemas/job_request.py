"""Pydantic schemas for job requests."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class JobRequestCreate(BaseModel):
    """Schema for posting a job request."""
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    budget_min: Decimal = Field(..., ge=0)
    budget_max: Decimal = Field(..., ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    deadline: Optional[datetime] = None


class JobRequestResponse(BaseModel):
    """Job request response."""
    id: str
    seeker_id: str
    title: str
    description: str
    budget_min: Decimal
    budget_max: Decimal
    currency: str
    deadline: Optional[datetime]
    status: str
    assigned_provider_id: Optional[str]
    created_at: datetime
    completed_at: Optional[datetime]

    class Config:
        from_attributes = True
