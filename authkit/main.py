import logging
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from authkit.api.exception_handlers import register_exception_handlers
from authkit.api.v1.router import api_router
from authkit.core.config import settings
from authkit.core.logging import configure_logging
from authkit.realtime.changes import UserChangeFeed
from authkit.services.identity import AuthEvent, AuthEventHub

logger = logging.getLogger(__name__)


def log_auth_event(event: AuthEvent, account_id: str) -> None:
    logger.info("Auth event %s for account %s", event.value, account_id)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    unsubscribe = app.state.auth_events.subscribe(log_auth_event)
    try:
        yield
    finally:
        unsubscribe()


def create_app() -> FastAPI:
    app = FastAPI(title="authkit", lifespan=lifespan)
    app.state.change_feed = UserChangeFeed()
    app.state.auth_events = AuthEventHub()

    if settings.app_base_url:
        parsed = urlparse(settings.app_base_url)
        origin = f"{parsed.scheme}://{parsed.netloc}"
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[origin],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
