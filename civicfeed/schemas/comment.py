"""Comment schemas."""

from pydantic import BaseModel, Field

from civicfeed.schemas.common import UtcDatetime


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)
    is_anonymous: bool = False


class CommentUpdate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)


class CommentOut(BaseModel):
    id: str
    report_id: str
    user_id: str | None
    content: str
    is_anonymous: bool = False
    created_at: UtcDatetime

    model_config = {"from_attributes": True}
