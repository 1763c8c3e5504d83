from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.api.ai import router as ai_router
from app.api.assessments import router as assessments_router
from app.api.enrollments import router as enrollments_router
from app.api.gamification import router as gamification_router
from app.api.health import router as health_router
from app.api.media import router as media_router
from app.api.metrics_endpoint import router as metrics_router
from app.api.notifications import router as notifications_router
from app.api.progress import router as progress_router
from app.api.reports import router as reports_router
from app.api.taxonomy import router as taxonomy_router
from app.api.training import router as training_router
from app.api.users import router as users_router
from app.core.config import SETTINGS
from app.core.errors import install_error_handlers
from app.core.logging import setup_logging
from app.db.engine import lifespan_db
from app.db.redis import lifespan_redis
from app.middleware.metrics import MetricsMiddleware
from app.middleware.request_context import (
    RequestContextMiddleware,
    install_request_context_filter,
)

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
# setup_logging replaces the root handlers, so the filter goes back on.
install_request_context_filter()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Teardown runs in reverse order of startup.
    async with lifespan_db():
        async with lifespan_redis():
            yield


app = FastAPI(
    title="training-platform",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

install_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(SETTINGS.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Middleware execution order: last-added runs first (outermost layer).
# RequestContext (outermost) → Metrics → CORS → route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(metrics_router)
app.include_router(health_router)
# Taxonomy paths live under /api/users and must win over /api/users/{user_id}.
app.include_router(taxonomy_router)
app.include_router(users_router)
app.include_router(training_router)
app.include_router(assessments_router)
app.include_router(progress_router)
app.include_router(gamification_router)
app.include_router(notifications_router)
app.include_router(enrollments_router)
app.include_router(media_router)
app.include_router(reports_router)
app.include_router(ai_router)

upload_dir = Path(SETTINGS.upload_dir)
upload_dir.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=upload_dir), name="uploads")

logger.info(
    "training-platform started  env=%s log_level=%s port=%d docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
)
