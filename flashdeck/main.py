# flashdeck/main.py
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from flashdeck.api.v1.endpoints import (
    account_requests,
    auth,
    flashcards,
    health,
    messages,
    packs,
    users,
    ws,
)
from flashdeck.core.config import Settings, settings
from flashdeck.core.logging_config import setup_logging
from flashdeck.realtime.manager import ConnectionManager
from flashdeck.storage.base import Storage
from flashdeck.storage.errors import (
    AccountRequestNotFoundError,
    DuplicateUserError,
    MissingReferenceError,
    StorageError,
)
from flashdeck.storage.selector import ensure_bootstrap_admin, select_storage
from flashdeck.workers.scheduler import start_purge_scheduler

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def create_app(
    storage: Storage | None = None,
    app_settings: Settings | None = None,
    run_scheduler: bool = True,
) -> FastAPI:
    """
    Pass a storage to skip backend selection (tests do this).
    The app owns, and closes, only a storage it selected itself.
    """
    app_settings = app_settings or settings
    app = FastAPI(title=app_settings.PROJECT_NAME)

    app.state.settings = app_settings
    app.state.storage = storage
    app.state.owns_storage = storage is None
    app.state.broadcaster = ConnectionManager()
    app.state.purge_scheduler = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_api_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        if request.url.path.startswith("/api"):
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.info(
                f"{request.method} {request.url.path} {response.status_code} in {elapsed_ms:.0f}ms"
            )
        return response

    @app.exception_handler(DuplicateUserError)
    async def duplicate_user_handler(request: Request, exc: DuplicateUserError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(AccountRequestNotFoundError)
    async def request_not_found_handler(request: Request, exc: AccountRequestNotFoundError):
        return JSONResponse(status_code=404, content={"detail": "Account request not found"})

    @app.exception_handler(MissingReferenceError)
    async def missing_reference_handler(request: Request, exc: MissingReferenceError):
        # the parent went away between the endpoint check and the write
        logger.warning(f"{request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error(f"Storage error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Storage error"})

    @app.on_event("startup")
    async def on_startup():
        setup_logging(app_settings.LOG_LEVEL, app_settings.LOG_FILE)
        if app.state.storage is None:
            app.state.storage = select_storage(app_settings)
        ensure_bootstrap_admin(app.state.storage, app_settings)
        if run_scheduler:
            app.state.purge_scheduler = start_purge_scheduler(app.state.storage, app_settings)

    @app.on_event("shutdown")
    async def on_shutdown():
        if app.state.purge_scheduler is not None:
            app.state.purge_scheduler.shutdown(wait=False)
            app.state.purge_scheduler = None
        if app.state.owns_storage and app.state.storage is not None:
            app.state.storage.close()

    # keep-alive pingers hit this
    @app.get("/ping")
    def ping():
        return {"status": "ok"}

    app.include_router(auth.router, prefix=API_PREFIX)
    app.include_router(users.router, prefix=API_PREFIX)
    app.include_router(account_requests.router, prefix=API_PREFIX)
    app.include_router(packs.router, prefix=API_PREFIX)
    app.include_router(flashcards.router, prefix=API_PREFIX)
    app.include_router(messages.router, prefix=API_PREFIX)
    app.include_router(messages.notifications_router, prefix=API_PREFIX)
    app.include_router(health.router, prefix=API_PREFIX)
    app.include_router(ws.router)

    return app


app = create_app()
