"""
Shop data models.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class Shop(BaseModel):
    """A shop record as stored in the database."""
    id: int = Field(..., description="Shop ID")
    name: str = Field(..., description="Shop name")
    type_id: int = Field(..., description="Shop type ID")
    images: str = Field("", description="Comma separated image URLs")
    area: Optional[str] = Field(None, description="Business district")
    address: str = Field("", description="Street address")
    x: float = Field(0.0, description="Longitude")
    y: float = Field(0.0, description="Latitude")
    avg_price: Optional[int] = Field(None, description="Average price per person")
    sold: int = Field(0, description="Units sold")
    comments: int = Field(0, description="Number of comments")
    score: int = Field(0, description="Score x10, e.g. 47 for 4.7")
    open_hours: Optional[str] = Field(None, description="Opening hours, e.g. 10:00-22:00")
    create_time: Optional[datetime] = None
    update_time: Optional[datetime] = None


class ShopUpdateRequest(BaseModel):
    """Request model for updating a shop. Unset fields keep their value."""
    id: Optional[int] = Field(None, description="Shop ID")
    name: Optional[str] = None
    type_id: Optional[int] = None
    images: Optional[str] = None
    area: Optional[str] = None
    address: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    avg_price: Optional[int] = None
    sold: Optional[int] = None
    comments: Optional[int] = None
    score: Optional[int] = None
    open_hours: Optional[str] = None


class ShopType(BaseModel):
    """A shop category."""
    id: int
    name: str
    icon: Optional[str] = None
    sort: int = 0
    create_time: Optional[datetime] = None
    update_time: Optional[datetime] = None


class Result(BaseModel):
    """Uniform response envelope."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    error_msg: Optional[str] = Field(None, alias="errorMsg")
    data: Any = None
    total: Optional[int] = None

    @classmethod
    def ok(cls, data: Any = None, total: Optional[int] = None) -> "Result":
        return cls(success=True, data=data, total=total)

    @classmethod
    def fail(cls, error_msg: str) -> "Result":
        return cls(success=False, error_msg=error_msg)
