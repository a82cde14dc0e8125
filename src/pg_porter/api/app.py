"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from pg_porter import __version__
from pg_porter.adapters.base import ImportTarget
from pg_porter.api.errors import (
    internal_error_handler,
    porter_error_handler,
    request_validation_handler,
)
from pg_porter.api.exports import router as export_router
from pg_porter.api.imports import router as import_router
from pg_porter.config.models import PorterConfig
from pg_porter.errors import PgPorterError
from pg_porter.factory import create_session_store, get_profile, open_import_target
from pg_porter.importer.sessions import ImportSessionStore

logger = logging.getLogger(__name__)

TargetFactory = Callable[[str | None], ImportTarget]


def profile_target_factory(config: PorterConfig) -> TargetFactory:
    """Open an import target on the profile named by a chunk's ``server`` parameter."""

    def open_target(server: str | None) -> ImportTarget:
        _, profile = get_profile(config, server or config.import_.target_profile)
        return open_import_target(profile)

    return open_target


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the session store on startup (unless one was injected) and close it on shutdown."""
    if app.state.session_store is None:
        app.state.session_store = await create_session_store(app.state.config.import_)
        logger.info("Import session store: %s", app.state.config.import_.session_store)

    yield

    await app.state.session_store.close()


def create_app(
    config: PorterConfig,
    session_store: ImportSessionStore | None = None,
    open_target: TargetFactory | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Loaded db.toml configuration.
        session_store: Store for import sessions (default: built from
            ``[import] session_store`` on startup).
        open_target: Maps a ``server`` parameter to an import target
            (default: psycopg target on the db.toml profile).

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="pg-porter API",
        description="Chunked PostgreSQL data import and streaming SQL export",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.session_store = session_store
    app.state.open_target = open_target or profile_target_factory(config)

    app.include_router(import_router, tags=["import"])
    app.include_router(export_router, tags=["export"])

    app.add_exception_handler(PgPorterError, porter_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, internal_error_handler)
    return app
