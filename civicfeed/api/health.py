"""Health check endpoint."""

from fastapi import APIRouter

from civicfeed.core.change_hub import change_hub

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    """Returns service health and live feed connection count."""
    return {"status": "ok", "feed_connections": change_hub.total_connections}
