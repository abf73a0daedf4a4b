"""
Differ - package diffs between image releases

FastAPI application tracking images, their releases and installed
packages, and serving cached diffs between two releases.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from differ.cache import DiffCache, get_backend
from differ.config import Settings, settings as default_settings
from differ.database import Database
from differ.routers import images
from differ.services.diff_service import DiffService
from differ.storage import DuplicateError, NotFoundError, Storage

log = logging.getLogger("differ")


def error_response(detail: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"detail": detail, "status": status_code}
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create the API with its database, diff cache and diff service.

    Write endpoints are only registered when credentials exist in the
    database, otherwise the API runs read-only.

    Args:
        settings: Settings to use, the global settings if None

    Returns:
        FastAPI application, its collaborators available on ``app.state``
    """
    settings = settings or default_settings

    db = Database(settings.database_path)
    storage = Storage(db)
    cache = DiffCache(get_backend(settings), key_prefix=settings.cache_key_prefix)
    diff_service = DiffService(storage, cache, coalesce=settings.coalesce_requests)

    authorizations = storage.fetch_authorizations()
    read_only = len(authorizations) == 0

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        cache.close()
        db.close()

    app = FastAPI(
        title="Differ",
        description="Package diffs between image releases",
        version=settings.service_version,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.db = db
    app.state.storage = storage
    app.state.cache = cache
    app.state.diff_service = diff_service
    app.state.authorizations = authorizations
    app.state.read_only = read_only

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return error_response(str(exc), status.HTTP_404_NOT_FOUND)

    @app.exception_handler(DuplicateError)
    async def duplicate_handler(request: Request, exc: DuplicateError):
        return error_response(str(exc), status.HTTP_400_BAD_REQUEST)

    app.include_router(images.router)
    if read_only:
        log.warning("No authorizations found, running in read-only mode")
    else:
        app.include_router(images.write_router)

    return app


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=default_settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(
        create_app(),
        host=default_settings.host,
        port=default_settings.port,
        log_level=default_settings.log_level.lower(),
    )
