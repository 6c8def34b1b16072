"""FastAPI main application."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.app.api import deps
from backend.app.api import llm as llm_api, proposals as proposals_api, templates as templates_api
from backend.app.core.error_handling import (
    CodexError,
    create_error_response,
    create_success_response,
    log_error_with_context,
)
from backend.app.db.migrate import apply_schema
from shared.config import SEED_DEFAULT_TEMPLATES
from shared.runtime_settings import load_runtime_settings

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"
SETTINGS = load_runtime_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not SETTINGS.dev_mode and SETTINGS.allows_any_origin:
        raise RuntimeError(
            "Unsafe CORS config: '*' is only allowed in dev mode. "
            "Set CODEX_CORS_ALLOW_ORIGINS to explicit origins."
        )
    apply_schema(deps.DEFAULT_DB_PATH)
    llm = deps.get_llm_service()
    if SEED_DEFAULT_TEMPLATES:
        async with deps.open_services(llm) as services:
            await services.templates.seed_default_templates()
    logger.info(
        "API startup complete (dev_mode=%s, db=%s, llm=%s/%s)",
        SETTINGS.dev_mode,
        deps.DEFAULT_DB_PATH,
        llm.config.provider.value,
        llm.config.default_model,
    )
    yield
    await llm.aclose()
    deps.get_llm_service.cache_clear()


app = FastAPI(title="Campaign Codex API", version=API_VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(SETTINGS.cors_allow_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CodexError)
async def codex_error_handler(request: Request, exc: CodexError):
    """Domain errors carry their own HTTP status and code."""
    if exc.status_code >= 500:
        log_error_with_context(
            error=exc,
            node_name="api",
            proposal_id=request.path_params.get("proposal_id"),
            user_id=request.headers.get("x-user-id"),
            extra_context={"method": request.method, "path": request.url.path},
        )
    else:
        logger.info("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.code)
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.code, exc.message, exc.details),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies and query strings are client errors (400)."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=create_error_response(
            "VALIDATION_ERROR",
            "Invalid request",
            details={"errors": jsonable_encoder(exc.errors())},
        ),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTPExceptions with structured error responses."""
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(
            error_code=f"HTTP_{exc.status_code}",
            message=str(exc.detail),
            details={"path": request.url.path},
        ),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler: return structured error responses with logging."""
    log_error_with_context(
        error=exc,
        node_name="api",
        proposal_id=request.path_params.get("proposal_id"),
        user_id=request.headers.get("x-user-id"),
        extra_context={
            "method": request.method,
            "path": request.url.path,
            "query_params": dict(request.query_params),
        },
    )
    message = str(exc) or f"An error occurred: {type(exc).__name__}"
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=create_error_response(
            "INTERNAL_ERROR",
            message,
            details={"exception_type": type(exc).__name__, "path": request.url.path},
        ),
    )


# Template routes first: /proposals/templates must not match /proposals/{proposal_id}
app.include_router(templates_api.router)
app.include_router(proposals_api.router)
app.include_router(llm_api.router)


@app.get("/")
async def root():
    return {"message": "Campaign Codex API", "version": API_VERSION}


@app.get("/health")
async def health():
    return create_success_response({"status": "healthy", "version": API_VERSION})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=SETTINGS.host, port=SETTINGS.port)
