"""Report schemas."""

from typing import Any

from pydantic import BaseModel, Field, model_validator

from civicfeed.core.visibility import ReportStatus
from civicfeed.schemas.common import ReportLocation, UtcDatetime


class ReportCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=5000)
    location: ReportLocation | None = None
    image_url: str | None = None
    category: str | None = Field(default=None, description="Usually assigned by the categorization service")
    priority: str | None = Field(default=None, pattern="^(low|medium|high|urgent)$")
    is_anonymous: bool = False


class ReportStatusUpdate(BaseModel):
    status: ReportStatus


class ReportOut(BaseModel):
    id: str
    owner_id: str
    title: str
    description: str = ""
    location: ReportLocation | None = None
    image_url: str | None = None
    status: ReportStatus
    category: str | None = None
    priority: str | None = None
    created_at: UtcDatetime
    updated_at: UtcDatetime
    votes: int = Field(default=0, ge=0)
    comments_count: int = Field(default=0, ge=0)
    is_anonymous: bool = False

    model_config = {"from_attributes": True}

    @model_validator(mode="before")
    @classmethod
    def _fold_location(cls, data: Any) -> Any:
        """Accept flat latitude/longitude/address columns (rows and change events)."""
        if isinstance(data, dict):
            row = dict(data)
        elif hasattr(data, "__table__"):
            row = {c.key: getattr(data, c.key) for c in data.__table__.columns}
        else:
            return data
        if "location" not in row:
            lat = row.pop("latitude", None)
            lng = row.pop("longitude", None)
            address = row.pop("address", None)
            if lat is not None or lng is not None or address:
                row["location"] = {"lat": lat, "lng": lng, "address": address}
        return row


class ReportSummary(BaseModel):
    """Owner's report counts by status."""

    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    resolved: int = 0
