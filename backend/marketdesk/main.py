from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from marketdesk.api.routes import router
from marketdesk.config.settings import settings
from marketdesk.logging_config import setup_logging
from marketdesk.registry import SessionRegistry


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    setup_logging(debug=settings.debug, log_dir=settings.log_dir)
    sessions = SessionRegistry()
    app.state.sessions = sessions
    try:
        yield
    finally:
        await sessions.close_all()


def create_app() -> FastAPI:
    app = FastAPI(title="marketdesk", lifespan=lifespan)
    app.include_router(router, prefix="/api")
    return app


app = create_app()
