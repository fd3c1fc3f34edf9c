import os
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database

import auth
import transport_entries
import users
from allocator import EntryIdAllocator
from config import Settings, get_settings
from database import COUNTERS, TRANSPORT_ENTRIES, connect, ensure_indexes
from errors import register_exception_handlers
from logging_config import get_logger, setup_logging
from middleware import add_middleware
from notifications import Mailer, build_mailer
from utils import Clock, utcnow

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    db: Optional[Database] = None,
    mailer: Optional[Mailer] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    settings = settings or get_settings()
    if db is None:
        db = connect(settings)
    ensure_indexes(db)

    app = FastAPI(title=settings.PROJECT_NAME)
    app.state.settings = settings
    app.state.db = db
    app.state.mailer = mailer or build_mailer(settings)
    app.state.clock = clock or utcnow
    app.state.allocator = EntryIdAllocator(
        db[TRANSPORT_ENTRIES],
        db[COUNTERS],
        atomic=settings.ENTRY_ID_ATOMIC,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )
    add_middleware(app, settings)
    register_exception_handlers(app, debug=settings.is_development)

    prefix = settings.API_PREFIX
    app.include_router(auth.router, prefix=f"{prefix}/auth", tags=["auth"])
    app.include_router(users.router, prefix=f"{prefix}/users", tags=["users"])
    app.include_router(transport_entries.router, prefix=f"{prefix}/transport-entries", tags=["transport-entries"])

    @app.get("/")
    def read_root():
        return {
            "message": "Backend API is running",
            "environment": settings.ENVIRONMENT,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "endpoints": {
                "health": "/health",
                "auth": f"{prefix}/auth",
                "users": f"{prefix}/users",
                "transportEntries": f"{prefix}/transport-entries",
            },
        }

    @app.get("/health")
    def health(request: Request):
        response = {
            "status": "healthy",
            "database": "connected",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            request.app.state.db.command("ping")
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            response["status"] = "unhealthy"
            response["database"] = "unavailable"
            return JSONResponse(status_code=503, content=response)
        return response

    logger.info(f"{settings.PROJECT_NAME} ready ({settings.ENVIRONMENT})")
    return app


def build_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    return create_app(settings)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run("main:build_app", factory=True, host="0.0.0.0", port=port)
