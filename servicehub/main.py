from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .config import settings
from .db import init_db
from .logging import setup_logging, RequestIdMiddleware, structlog
from .models import models  # noqa: F401  registers tables on Base.metadata
from .auth.router import router as auth_router
from .routes.users import router as users_router
from .routes.services import router as services_router
from .routes.bookings import router as bookings_router
from .routes.feedback import router as feedback_router
from .routes.inventory import router as inventory_router
from .routes.notifications import router as notifications_router
from .routes.announcements import router as announcements_router
from .routes.payments import router as payments_router
from .routes.health import router as health_router, ws_router


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_url, "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    for router in (
        auth_router,
        users_router,
        services_router,
        bookings_router,
        feedback_router,
        inventory_router,
        notifications_router,
        announcements_router,
        payments_router,
        health_router,
    ):
        app.include_router(router, prefix=settings.api_prefix)
    app.include_router(ws_router)

    Instrumentator().instrument(app).expose(app)

    @app.on_event("startup")
    def _startup():
        log = structlog.get_logger()
        if settings.auto_create_db:
            init_db()
        log.info("startup_complete", environment=settings.environment, gateway=bool(settings.stripe_secret_key))

    return app


app = create_app()
