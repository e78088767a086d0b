import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ums.core.config import get_settings
from ums.core.logging import configure_logging
from ums.core.approval.errors import WorkflowError
from ums.api.routers import health, enrollments, approval_steps
from ums.api.schemas.common import ErrorResponse

settings = get_settings()
configure_logging(settings)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    description="Course enrollment approval workflow",
    version=health.VERSION,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    """Render workflow errors with their own status code and stable error code."""
    if exc.status_code >= 500:
        logger.error("Workflow error on %s %s: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("Denied %s %s: %s", request.method, request.url.path, exc.code)
    body = ErrorResponse(error=exc.message, detail=exc.context or None, code=exc.code)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))


# Include routers
app.include_router(health.router)
app.include_router(enrollments.router, prefix="/api")
app.include_router(approval_steps.router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": health.VERSION,
        "docs": "/docs" if settings.debug else None,
    }
