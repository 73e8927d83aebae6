"""
Base Pydantic schemas with common patterns.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(from_attributes=True, validate_assignment=True)


class BaseCreateSchema(BaseModel):
    """Request bodies: unknown fields are ignored, strings are stripped."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


class BaseResponseSchema(BaseSchema):
    """Schema with id and timestamp fields."""

    id: str
    created_at: datetime


class Pagination(BaseModel):
    page: int = Field(..., ge=1, description="Current page number")
    limit: int = Field(..., ge=1, le=100, description="Items per page")
    total: int = Field(..., ge=0, description="Total number of items")
    total_pages: int = Field(..., ge=0, description="Total number of pages")

    @classmethod
    def create(cls, total: int, page: int, limit: int) -> "Pagination":
        pages = (total + limit - 1) // limit
        return cls(page=page, limit=limit, total=total, total_pages=pages)


class SuccessResponse(BaseModel):
    """Success response schema."""

    success: bool = True
    message: Optional[str] = Field(None, description="Success message")
