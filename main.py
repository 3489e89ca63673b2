import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from auth import AuthService
from config import Settings, get_settings
from crud import UserDirectory
from database import Database, seed_demo_data
from notifications import EmailNotifier, Notifier
from routers import admin, auth, employees, leaves
from workflow import LeaveWorkflowEngine

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings):
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    cleanup = asyncio.create_task(app.state.auth.cleanup_expired_tokens())
    try:
        yield
    finally:
        cleanup.cancel()


def create_app(
    settings: Optional[Settings] = None,
    db: Optional[Database] = None,
    notifier: Optional[Notifier] = None,
) -> FastAPI:
    """Build an application around its own store, directory and engine."""
    settings = settings or get_settings()
    if db is None:
        db = Database()
        if settings.SEED_DEMO_DATA:
            seed_demo_data(db, settings.DEFAULT_USER_PASSWORD)
    notifier = notifier or EmailNotifier(settings)
    directory = UserDirectory(db, default_password=settings.DEFAULT_USER_PASSWORD)

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db
    app.state.directory = directory
    app.state.notifier = notifier
    app.state.engine = LeaveWorkflowEngine(db, directory, notifier)
    app.state.auth = AuthService(settings, directory, notifier)

    # Rate limiting
    limiter = Limiter(key_func=get_remote_address)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok", "users": len(db.users), "leave_requests": len(db.leave_requests)}

    # Include routers
    app.include_router(auth.build_router(limiter, settings))
    app.include_router(leaves.router)
    app.include_router(employees.router)
    app.include_router(admin.router)

    return app


configure_logging(get_settings())
app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, port=8000)
