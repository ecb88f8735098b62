from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cemtrack.config import Settings, settings as default_settings
from cemtrack.logging_config import configure_logging
from cemtrack.middleware.exceptions import register_exception_handlers
from cemtrack.routers import dispatch, health
from cemtrack.services.dispatcher import Dispatcher
from cemtrack.services.ledger import Ledger


def create_app(settings: Settings | None = None, ledger: Ledger | None = None) -> FastAPI:
    """Build the API.  ``ledger`` lets tests supply a pre-wired ledger."""
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings)
        app.state.ledger = ledger or Ledger.from_settings(settings)
        app.state.dispatcher = Dispatcher(app.state.ledger)
        try:
            yield
        finally:
            await app.state.ledger.close()

    app = FastAPI(
        title="Cement Tracking API",
        description="Cement bag ledger: batch registration and on-site usage",
        version="0.1.0",
        lifespan=lifespan,
    )
    if ledger is not None:
        # Usable without running the lifespan (e.g. ASGITransport in tests)
        app.state.ledger = ledger
        app.state.dispatcher = Dispatcher(ledger)

    # ── Exception Handlers ───────────────────────────────────
    register_exception_handlers(app)

    # ── Middleware ───────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Routers ──────────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(dispatch.router)

    return app


app = create_app()
