"""
Image Tagging Workflow service.

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api.deps import get_request_id
from src.api.middleware.cors import CORS_HEADERS, CorsMiddleware
from src.api.middleware.request_id import REQUEST_ID_HEADER, RequestIdMiddleware
from src.api.v1 import router as api_v1_router
from src.config import get_settings
from src.database import async_session_maker, close_db, init_db
from src.errors import ImageWorkflowError, MethodNotAllowed, NotFound
from src.kernel.storage.blob_store import LocalBlobStore
from src.logging_config import configure_logging, get_logger
from src.orchestration.state_machine import create_workflow_engine
from src.schemas.common import ErrorResponse, HealthResponse

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Builds the workflow engine and resumes instances a previous process
    left unfinished; cancels running instances on shutdown.
    """
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    logger.info("Starting %s v%s", settings.project_name, settings.version)
    await init_db()
    logger.info("Database initialized")

    blob_store = LocalBlobStore(Path(settings.blob_storage_dir))
    engine = create_workflow_engine(async_session_maker, blob_store, settings=settings)
    app.state.blob_store = blob_store
    app.state.workflow_engine = engine
    await engine.resume_pending()

    yield

    logger.info("Shutting down...")
    await engine.aclose()
    await close_db()
    logger.info("Database connections closed")


app = FastAPI(
    title=settings.project_name,
    description="""
    Image Tagging Workflow

    Upload an image, approve or deny each AI step, and read back the
    generated tags and alt text.

    ## Flow

    1. `POST /` with a multipart `image` field starts a workflow
    2. `POST /approval-for-ai-tagging` and `POST /approval-for-ai-alttext`
       deliver the two human decisions (each gate times out after 5 minutes)
    3. `GET /?instanceId=...` reports status until `complete`
    4. `GET /tags` and `GET /alttext` return the derived text
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# add_middleware stacks innermost-first: CORS is outermost so preflights
# short-circuit before anything else runs.
app.add_middleware(RequestIdMiddleware)
app.add_middleware(CorsMiddleware)


def _error_response(
    request: Request,
    status_code: int,
    message: str,
    extra_headers: dict | None = None,
) -> JSONResponse:
    headers = dict(extra_headers or {})
    headers.update(CORS_HEADERS)
    req_id = get_request_id(request)
    if req_id:
        headers[REQUEST_ID_HEADER] = req_id
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump(), headers=headers)


@app.exception_handler(ImageWorkflowError)
async def workflow_error_handler(request: Request, exc: ImageWorkflowError):
    """Map the service error taxonomy to {error} bodies."""
    if exc.status_code >= 500:
        logger.error("Request failed: %s", exc)
    return _error_response(request, exc.status_code, exc.message)


_ROUTING_ERRORS = {
    status.HTTP_404_NOT_FOUND: NotFound,
    status.HTTP_405_METHOD_NOT_ALLOWED: MethodNotAllowed,
}


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Unknown routes (404) and wrong methods (405)."""
    message = exc.detail if isinstance(exc.detail, str) else "Invalid Request"
    headers = getattr(exc, "headers", None)
    error_class = _ROUTING_ERRORS.get(exc.status_code)
    if error_class is None:
        return _error_response(request, exc.status_code, message, extra_headers=headers)

    error = error_class(message, path=request.url.path, method=request.method)
    logger.info("Routing error %d for %s %s", error.status_code, request.method, request.url.path)
    return _error_response(request, error.status_code, error.message, extra_headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed query, JSON or form input is a 400, not FastAPI's 422."""
    logger.info("Rejected request input: %s", exc.errors())
    return _error_response(request, status.HTTP_400_BAD_REQUEST, "Missing or invalid parameters")


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Unexpected exceptions. Runs outside the middleware stack, so CORS headers are added here."""
    logger.exception("Unhandled exception: %s", exc)
    message = str(exc) if settings.debug else "Internal server error"
    return _error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, message)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request):
    """Check application health."""
    key = (settings.openai_api_key or "").strip()
    engine = getattr(request.app.state, "workflow_engine", None)
    return HealthResponse(
        status="ok",
        version=settings.version,
        database="connected",
        ai_configured=bool(key and not key.startswith("sk-your-")),
        active_workflows=engine.active_instances if engine else 0,
    )


# Workflow routes live at the root of the service
app.include_router(api_v1_router)


# Main entry point for development
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
