"""PatchX REST API.

Endpoints:
- POST /upload - Validate and store a patch file
- POST /submit - Create a submission and start driving it in the background
- GET /status/{submission_id} - Latest persisted state and log tail
- GET /status/{submission_id}/review - Live Gerrit state of the submission's change
- POST /ai/resolve-conflict - Resolve a three-way conflict with AI providers
- GET /ai/providers - Configured AI providers
- POST /ai/test-providers - Health-check every AI provider
- GET /health - Liveness

Every response uses the ``{success, data}`` / ``{success: false, error}`` envelope.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from patchx import __version__
from patchx.api.schemas import ResolveConflictRequest, SubmitRequest, failure, success
from patchx.config.runtime_config import RuntimeConfig
from patchx.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    PatchXError,
    PersistenceError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
    ValidationError,
)
from patchx.llm.exceptions import LLMConfigurationError
from patchx.services import ServiceContainer, build_services

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[type[Exception], int] = {
    ValidationError: 400,
    LLMConfigurationError: 400,
    NotFoundError: 404,
    InvalidTransitionError: 409,
    UpstreamUnavailableError: 502,
    PersistenceError: 503,
    UpstreamTimeoutError: 504,
}


def status_code_for(error: Exception) -> int:
    """Map an exception to its HTTP status by walking its class hierarchy."""
    for cls in type(error).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


def _services(request: Request) -> ServiceContainer:
    return request.app.state.services


def create_app(
    services: ServiceContainer | None = None, config: RuntimeConfig | None = None
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        services: Pre-built service container. Built from ``config`` at startup when omitted.
        config: Runtime configuration used when ``services`` is omitted.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services(config)
        container: ServiceContainer = app.state.services
        logger.info(
            f"PatchX API started (store={container.config.store_backend}, "
            f"ai_enabled={container.engine.enabled})"
        )
        try:
            yield
        finally:
            await container.aclose()
            logger.info("PatchX API stopped")

    app = FastAPI(
        title="PatchX API",
        version=__version__,
        description="Patch submission pipeline for Gerrit code review",
        lifespan=lifespan,
    )
    app.state.services = services

    @app.exception_handler(PatchXError)
    async def handle_domain_error(request: Request, exc: PatchXError) -> JSONResponse:
        status_code = status_code_for(exc)
        log = logger.warning if status_code < 500 else logger.error
        log(f"{request.method} {request.url.path} -> {status_code}: {exc.message}")
        return JSONResponse(failure(exc.message, exc.details), status_code=status_code)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        problems = []
        for err in exc.errors():
            location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
            problems.append(f"{location}: {err.get('msg')}")
        return JSONResponse(
            failure(f"Invalid request: {'; '.join(problems)}"), status_code=400
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(failure(str(exc.detail)), status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(failure("Internal server error"), status_code=500)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return success({"status": "ok"})

    @app.post("/upload")
    async def upload(
        request: Request,
        file: UploadFile = File(...),
        project: str = Form(""),
    ) -> dict[str, Any]:
        content = await file.read()
        receipt = _services(request).upload_service.validate_and_store(
            file.filename or "patch.diff", content, project
        )
        return success(receipt.to_dict())

    @app.post("/submit")
    async def submit(request: Request, body: SubmitRequest) -> dict[str, Any]:
        orchestrator = _services(request).orchestrator
        submission = orchestrator.create_submission(body.upload_id, body.to_submission_request())
        orchestrator.start(submission.id)
        return success({"submissionId": submission.id, "status": submission.status.value})

    @app.get("/status/{submission_id}")
    async def status(request: Request, submission_id: str) -> dict[str, Any]:
        view = _services(request).status_reporter.get_status(submission_id)
        return success(view.to_dict())

    @app.get("/status/{submission_id}/review")
    async def review_status(request: Request, submission_id: str) -> dict[str, Any]:
        change = await _services(request).status_reporter.get_review_status(submission_id)
        return success(
            {
                "status": change.status,
                "mergeable": change.mergeable,
                "submittable": change.submittable,
            }
        )

    @app.post("/ai/resolve-conflict")
    async def resolve_conflict(request: Request, body: ResolveConflictRequest) -> dict[str, Any]:
        resolution = await _services(request).engine.resolve_conflict(
            body.original_code,
            body.incoming_code,
            body.current_code,
            body.file_path,
            provider=body.provider,
            use_multiple=body.use_multiple_providers,
        )
        return success(resolution.to_dict())

    @app.get("/ai/providers")
    async def providers(request: Request) -> dict[str, Any]:
        engine = _services(request).engine
        message = (
            "AI conflict resolution is enabled"
            if engine.enabled
            else "AI conflict resolution is disabled; configure an AI provider"
        )
        return success(
            {
                "enabled": engine.enabled,
                "providers": engine.available_providers(),
                "message": message,
            }
        )

    @app.post("/ai/test-providers")
    async def test_providers(request: Request) -> dict[str, Any]:
        engine = _services(request).engine
        if not engine.enabled:
            raise ValidationError("AI conflict resolution is not enabled")
        results = await engine.test_providers()
        return success([result.to_dict() for result in results])

    return app
