"""User profile lookups."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from civicfeed.models.user_profile import UserProfile


def get_profile(db: Session, user_id: str) -> UserProfile | None:
    return db.get(UserProfile, user_id)


def list_admin_ids(db: Session) -> list[str]:
    """Ids of every user currently holding the admin role."""
    result = db.execute(select(UserProfile.id).where(UserProfile.role == "admin").order_by(UserProfile.id))
    return list(result.scalars().all())
