import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pymongo.database import Database

from .config import API_PREFIX, APP_VERSION, Settings, load_settings
from .database import connect, ensure_indexes
from .errors import register_error_handlers
from .gateway import RazorpayGateway
from .log import configure_logging
from .mailer import Mailer
from .routers import admin, auth, cart, categories, coupons, orders, payments, products, support, users, wishlist
from .security import PasswordHasher, TokenService
from .services.auth import ensure_initial_admin

logger = logging.getLogger(__name__)

ROUTERS = (auth, users, products, categories, cart, coupons, orders, payments, admin, wishlist, support)


def create_app(settings: Settings, db: Optional[Database] = None, gateway=None, mailer=None) -> FastAPI:
    """Build the API. ``db``, ``gateway`` and ``mailer`` may be injected; otherwise they come from ``settings``."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = None
        if app.state.db is None:
            client = connect(settings)
            app.state.db = client[settings.database_name]
        ensure_indexes(app.state.db)
        ensure_initial_admin(app.state.db, settings, app.state.hasher)
        logger.info("Storefront API %s started (%s)", APP_VERSION, settings.app_env)
        try:
            yield
        finally:
            if client is not None:
                client.close()
                logger.info("MongoDB connection closed")

    app = FastAPI(title="Storefront API", version=APP_VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db
    app.state.tokens = TokenService(settings)
    app.state.hasher = PasswordHasher(settings.bcrypt_rounds)
    app.state.mailer = mailer or Mailer(settings)
    app.state.gateway = gateway or RazorpayGateway(settings)
    app.state.started_at = time.monotonic()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if settings.is_development:
        @app.middleware("http")
        async def log_requests(request: Request, call_next):
            started = time.perf_counter()
            response = await call_next(request)
            logger.debug("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code,
                         (time.perf_counter() - started) * 1000)
            return response

    register_error_handlers(app)

    def health():
        return {
            "uptime": round(time.monotonic() - app.state.started_at, 3),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": APP_VERSION,
        }

    app.add_api_route("/health", health, methods=["GET"], tags=["health"])
    app.add_api_route(f"{API_PREFIX}/health", health, methods=["GET"], tags=["health"])

    for module in ROUTERS:
        app.include_router(module.router, prefix=API_PREFIX)
    return app


def run():
    load_dotenv()
    settings = load_settings()
    configure_logging(settings)
    import uvicorn
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
