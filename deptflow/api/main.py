from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from deptflow import __version__
from deptflow.core.config import get_settings
from deptflow.core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
    WorkflowError,
)
from deptflow.core.logger import get_logger, setup_logger
from deptflow.api.routers import policies, requests

settings = get_settings()
logger = get_logger("api")

ERROR_STATUS = {
    NotFoundError: 404,
    ForbiddenError: 403,
    ValidationError: 400,
    ConflictError: 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    from deptflow.db.session import init_db

    setup_logger(settings)
    init_db()
    logger.info(f"{settings.app_name} {__version__} started")
    yield


app = FastAPI(
    title=settings.app_name,
    description="Department-scoped request approval workflow",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    status_code = 400
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            status_code = code
            break
    return JSONResponse(status_code=status_code, content=exc.to_dict())


# Include routers
app.include_router(requests.router, prefix="/api")
app.include_router(policies.router, prefix="/api")


@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": __version__}
