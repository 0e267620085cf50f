import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from cutline.api import render
from cutline.config import Settings, get_settings
from cutline.constants.error_codes import get_error_spec, is_retryable
from cutline.exceptions import CutlineError
from cutline.render.encoder import EngineConfig
from cutline.render.pipeline import ExportPipeline
from cutline.schemas.envelope import ErrorInfo

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, pipeline: ExportPipeline | None = None) -> FastAPI:
    """Build the API app. ``pipeline`` overrides the one derived from settings."""
    settings = settings or get_settings()
    config = EngineConfig.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # Startup
        config.output_dir.mkdir(parents=True, exist_ok=True)
        app.state.export_pipeline = pipeline or ExportPipeline(config)
        yield
        # Shutdown
        app.state.export_pipeline.close()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CutlineError)
    async def cutline_exception_handler(request: Request, exc: CutlineError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"[API] {request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.info(f"[API] {request.method} {request.url.path} rejected: {exc.message}")
        info = exc.to_error_info()
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": info.message, **info.model_dump(exclude_none=True)},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        spec = get_error_spec("VALIDATION_ERROR")

        # Build a human-readable message from the first validation error
        errors = exc.errors()
        if errors:
            first_error = errors[0]
            loc = " -> ".join(str(x) for x in first_error.get("loc", []))
            msg = first_error.get("msg", "Validation error")
            message = f"{loc}: {msg}" if loc else msg
        else:
            message = "Request validation failed"

        info = ErrorInfo(
            code="VALIDATION_ERROR",
            message=message,
            retryable=is_retryable("VALIDATION_ERROR"),
            suggested_fix=spec.get("suggested_fix"),
        )
        return JSONResponse(
            status_code=422,
            content=jsonable_encoder(
                {"error": message, **info.model_dump(exclude_none=True), "detail": errors}
            ),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "code": "INTERNAL_ERROR", "retryable": False},
        )

    app.include_router(render.router, prefix="/api", tags=["render"])

    # Rendered files, addressed by the URLs the render endpoint returns
    app.mount(
        settings.render_output_url_prefix.rstrip("/"),
        StaticFiles(directory=settings.render_output_dir, check_dir=False),
        name="output",
    )

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "ok", "version": settings.app_version}

    return app


app = create_app()
