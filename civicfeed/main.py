"""civicfeed FastAPI application."""

from __future__ import annotations

import logging

from fastapi import FastAPI

import civicfeed.models  # noqa: F401 - registers models and change capture
from civicfeed.api import comments, feed, health, notifications, reports, ws
from civicfeed.core.config import settings

app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
)

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app.include_router(health.router)
app.include_router(reports.router)
app.include_router(comments.router)
app.include_router(feed.router)
app.include_router(notifications.router)
app.include_router(ws.router)
