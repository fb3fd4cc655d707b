"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from civicfeed.core.change_hub import change_hub
from civicfeed.core.security import decode_access_token
from civicfeed.core.visibility import ANONYMOUS_VIEWER, ViewerContext, ViewerRole
from civicfeed.db.session import SessionLocal, get_db
from civicfeed.services.change_feed import ChangeFeedClient
from civicfeed.services.profile_service import get_profile
from civicfeed.services.store_client import StoreClient

security = HTTPBearer(auto_error=False)

_feed_client = ChangeFeedClient(change_hub)


def viewer_from_token(db: Session, token: str | None) -> ViewerContext | None:
    """Resolve a bearer token to a viewer. None token means anonymous; a bad token returns None."""
    if not token:
        return ANONYMOUS_VIEWER
    payload = decode_access_token(token)
    if not payload or "sub" not in payload:
        return None
    profile = get_profile(db, payload["sub"])
    if not profile:
        return None
    return ViewerContext(user_id=profile.id, role=ViewerRole(profile.role))


def get_viewer(
    db: Annotated[Session, Depends(get_db)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> ViewerContext:
    """Viewer context for the request. Anonymous when no token is sent."""
    viewer = viewer_from_token(db, credentials.credentials if credentials else None)
    if viewer is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return viewer


def require_user(viewer: Annotated[ViewerContext, Depends(get_viewer)]) -> ViewerContext:
    """Require an authenticated viewer."""
    if viewer.user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return viewer


def require_admin(viewer: Annotated[ViewerContext, Depends(require_user)]) -> ViewerContext:
    """Require current viewer to be an admin (moderation)."""
    if not viewer.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only admins can moderate reports",
        )
    return viewer


def get_store_client() -> StoreClient:
    return StoreClient(SessionLocal)


def get_feed_client() -> ChangeFeedClient:
    return _feed_client
