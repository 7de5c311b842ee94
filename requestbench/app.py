from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.routing import APIRouter
from loguru import logger

from requestbench.backends import create_backend
from requestbench.backends.base import CollectionBackend
from requestbench.errors import DefaultWorkspaceError, PersistenceError
from requestbench.log import setup_logging
from requestbench.models.enums import BackendKind
from requestbench.settings import BenchSettings, get_settings


def _create_storage_backend(settings: BenchSettings) -> CollectionBackend | None:
    """Create the local backend the service exposes.

    A ``remote`` configuration has nothing local to serve; routes then
    answer 503.
    """
    if settings.backend == BackendKind.REMOTE:
        return None
    return create_backend(settings)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # -- Startup ---------------------------------------------------------------
    settings = get_settings()
    setup_logging(settings.log_level)

    logger.info("Storage service starting (host={}, port={})", settings.host, settings.port)
    prefix_info = f", prefix={settings.data_prefix}" if settings.data_prefix else ""
    logger.info("Data root: {} (backend={}{})", settings.data_root, settings.backend, prefix_info)

    _app.state.backend = _create_storage_backend(settings)
    if _app.state.backend is None:
        logger.warning("BENCH_BACKEND=remote -- storage routes disabled")

    yield

    # -- Shutdown --------------------------------------------------------------
    logger.info("Storage service shutting down")
    if _app.state.backend is not None:
        await _app.state.backend.aclose()
        _app.state.backend = None


app = FastAPI(title="requestbench storage service", lifespan=lifespan)
app.state.backend = None


# ---------------------------------------------------------------------------
# Domain error mapping
# ---------------------------------------------------------------------------


@app.exception_handler(DefaultWorkspaceError)
async def default_workspace_error_handler(_request: Request, exc: DefaultWorkspaceError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(PersistenceError)
async def persistence_error_handler(_request: Request, exc: PersistenceError) -> JSONResponse:
    logger.error("Storage failure [{}]: {}", exc.code, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": str(exc), "code": exc.code},
    )


# ---------------------------------------------------------------------------
# API router -- all storage endpoints live under /api
# ---------------------------------------------------------------------------
api = APIRouter(prefix="/api")


@api.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


# -- Storage routers ---------------------------------------------------------
from requestbench.routers.items import router as items_router  # noqa: E402
from requestbench.routers.workspaces import router as workspaces_router  # noqa: E402

api.include_router(workspaces_router)
api.include_router(items_router)

app.include_router(api)
