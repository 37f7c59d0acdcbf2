"""
FastAPI server for roadmap generation.

Endpoints:
- POST /roadmaps/generate: run the six-stage pipeline for one assessment
- GET /health: liveness and component status

Usage:
    $ uvicorn roadmap_pipeline.api.server:app --host 0.0.0.0 --port 8000

    $ curl -X POST http://localhost:8000/roadmaps/generate \
      -H 'Content-Type: application/json' \
      -d '{"subject_id": "s-42", "clarity": "Development", "engagement": "Balanced",
           "preparation": "Development", "support": "Proficiency"}'
"""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, model_validator

from .. import __version__
from ..config.container import Container, setup_container
from ..config.settings import get_settings
from ..core.scoring import DIMENSIONS, normalize_answers
from ..core.state import AssessmentInput, PipelineState, UserPreferences
from ..observability.logging import get_logger, setup_logging
from ..observability.tracing import setup_tracing, shutdown_tracing

logger = get_logger(__name__)


class GenerateRequest(BaseModel):
    """Either the four zone labels, or the twelve raw answers, or both."""

    subject_id: str = Field(..., min_length=1, max_length=255)
    clarity: str | None = None
    engagement: str | None = None
    preparation: str | None = None
    support: str | None = None
    answers: list[str] | None = Field(None, description="Twelve answers, A-E")
    session_id: str | None = Field(None, max_length=255)
    preferences: UserPreferences = Field(default_factory=UserPreferences)

    @model_validator(mode="after")
    def check_zones_or_answers(self) -> "GenerateRequest":
        has_zones = all(getattr(self, dim) for dim in DIMENSIONS)
        if self.answers is not None:
            normalize_answers(self.answers)
        elif not has_zones:
            raise ValueError("Provide all four readiness zones or the twelve answers")
        return self

    def to_input(self) -> AssessmentInput:
        if self.answers is not None and not all(getattr(self, dim) for dim in DIMENSIONS):
            return AssessmentInput.from_answers(
                self.subject_id,
                self.answers,
                preferences=self.preferences,
                session_id=self.session_id,
            )
        return AssessmentInput(
            subject_id=self.subject_id,
            answers=tuple(self.answers or ()),
            session_id=self.session_id,
            preferences=self.preferences,
            **{dim: getattr(self, dim) for dim in DIMENSIONS},
        )


class GenerateResponse(BaseModel):
    success: bool = True
    data: dict[str, Any]
    fallback: bool
    session_id: str | None
    step_history: list[str]


class ErrorResponse(BaseModel):
    error: str
    error_code: str | None = None
    retryable: bool = False
    data: dict[str, Any] | None = None


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float
    components: dict[str, str]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = app.state.container.settings
    setup_logging(settings.observability.log_level)
    if settings.observability.enable_tracing:
        setup_tracing(
            settings.observability.service_name,
            settings.observability.service_version,
            settings.observability.otlp_endpoint,
        )

    app.state.startup_time = time.time()
    logger.info("Roadmap API server ready", environment=settings.environment)

    yield

    logger.info("Shutting down roadmap API server...")
    await app.state.container.cleanup()
    if settings.observability.enable_tracing:
        shutdown_tracing()


def create_app(container: Container | None = None) -> FastAPI:
    """Create and configure FastAPI application."""
    container = container or setup_container(get_settings())
    settings = container.settings

    app = FastAPI(
        title="Roadmap Pipeline",
        description="Readiness assessment to four-phase academic roadmap",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.container = container
    app.state.startup_time = time.time()

    if settings.api.enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.api.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["authorization", "content-type"],
        )

    @app.get("/health", response_model=HealthResponse)
    async def health_check_endpoint() -> HealthResponse:
        components = {"config": "healthy"}
        try:
            store = container.get("assessment_store")
            components["store"] = store.backend if store is not None else "not_configured"
        except Exception as e:
            logger.error(f"Store health check failed: {e}")
            components["store"] = "error"
        components["generation"] = (
            "configured" if settings.generation.api_key else "missing_api_key"
        )

        return HealthResponse(
            status="unhealthy" if components["store"] == "error" else "healthy",
            version=__version__,
            uptime_seconds=max(0.0, time.time() - app.state.startup_time),
            components=components,
        )

    @app.post(
        "/roadmaps/generate",
        response_model=GenerateResponse,
        responses={500: {"model": ErrorResponse}},
    )
    async def generate_roadmap_endpoint(request: GenerateRequest):
        """Run the roadmap pipeline for one assessment."""
        state = PipelineState(input=request.to_input())
        logger.info("Roadmap requested", subject=request.subject_id)

        pipeline = container.get("pipeline")
        state = await pipeline.run(state)

        if state.error:
            body = ErrorResponse(
                error=state.error,
                error_code=state.error_code,
                retryable=state.caller_may_retry,
                data=state.roadmap.to_wire() if state.roadmap else None,
            )
            return JSONResponse(status_code=500, content=body.model_dump())

        return GenerateResponse(
            data=state.roadmap.to_wire(),
            fallback=state.is_fallback,
            session_id=state.session_id,
            step_history=state.step_history,
        )

    @app.exception_handler(Exception)
    async def global_exception_handler_endpoint(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.url.path}: {exc}")
        body = ErrorResponse(error="Failed to generate roadmap", error_code="internal")
        return JSONResponse(status_code=500, content=body.model_dump())

    return app


app = create_app()
