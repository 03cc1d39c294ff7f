"""HTTP surface: submission, history and result views."""

from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse

from grammar_coach import __version__, config
from grammar_coach.config import Settings
from grammar_coach.core.grader import SubmissionPipeline
from grammar_coach.core.rendering import render_history_page, render_result_page
from grammar_coach.core.results import ResultStore
from grammar_coach.core.submission import Submission
from grammar_coach.utils.logger import get_logger
from grammar_coach.utils.error_handler import (APIError, AuthenticationError, ConfigError,
                                               GradingError, RecordNotFoundError,
                                               SubmissionValidationError)

logger = get_logger()

GENERIC_ERROR = "Server Error"
CONFIG_ERROR = "Server config error"


def _error(message: str, status_code: int, **extra: Any) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status_code)


def _require_store(app: FastAPI) -> ResultStore:
    store: Optional[ResultStore] = app.state.history
    if store is None:
        raise ConfigError("Result store is not configured.")
    return store


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(SubmissionValidationError)
    async def _validation(request: Request, exc: SubmissionValidationError) -> JSONResponse:
        logger.info(f"Rejected request to {request.url.path}: {exc}")
        return _error(str(exc), 400, fields=list(exc.fields))

    @app.exception_handler(RequestValidationError)
    async def _malformed(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info(f"Malformed request to {request.url.path}: {exc.errors()}")
        return _error("Request body must be valid JSON.", 400)

    @app.exception_handler(GradingError)
    async def _grading(request: Request, exc: GradingError) -> JSONResponse:
        # Details were logged by the pipeline; callers only get the generic message
        return _error(GENERIC_ERROR, 500)

    @app.exception_handler(RecordNotFoundError)
    async def _not_found(request: Request, exc: RecordNotFoundError) -> JSONResponse:
        return _error(str(exc), 404)

    @app.exception_handler(ConfigError)
    async def _config(request: Request, exc: ConfigError) -> JSONResponse:
        logger.error(f"Configuration error serving {request.url.path}: {exc}")
        return _error(CONFIG_ERROR, 500)

    @app.exception_handler(APIError)
    @app.exception_handler(AuthenticationError)
    async def _upstream(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Upstream error serving {request.url.path}: {exc}", exc_info=config.DEBUG)
        return _error(GENERIC_ERROR, 500)


def create_app(
    settings: Settings,
    pipeline: Optional[SubmissionPipeline] = None,
    history: Optional[ResultStore] = None,
) -> FastAPI:
    """Builds the FastAPI application.

    Args:
        settings: Application settings.
        pipeline: Submission pipeline; wired from settings when omitted.
        history: Store used by the read-only views; defaults to the
            pipeline's store. When neither exists those views answer 500.
    """
    if pipeline is None:
        pipeline = SubmissionPipeline.from_settings(settings)
    if history is None:
        history = pipeline.store

    app = FastAPI(title="Grammar Coach", version=__version__)
    app.state.settings = settings
    app.state.pipeline = pipeline
    app.state.history = history
    register_error_handlers(app)

    # Sync handlers: FastAPI runs them in its threadpool, so blocking client calls are fine.
    @app.post("/api/analyze")
    def analyze(payload: Any = Body(None)) -> Dict[str, Any]:
        submission = Submission.from_payload(payload)
        outcome = app.state.pipeline.process(submission)
        body: Dict[str, Any] = {
            "success": True,
            "markdown": outcome.graded_text,
            "analysis": outcome.graded_text,
        }
        if outcome.record_id:
            body["id"] = outcome.record_id
        if outcome.detail_url:
            body["url"] = outcome.detail_url
        return body

    @app.get("/api/history")
    def history_api(userId: Optional[str] = Query(None)) -> Dict[str, Any]:
        if not userId or not userId.strip():
            raise SubmissionValidationError("UserID is required", fields=["userId"])
        entries = _require_store(app).history_for(userId)
        return {"history": [e.to_dict() for e in entries]}

    @app.get("/api/result/{record_id}")
    def result_api(record_id: str) -> Dict[str, Any]:
        return _require_store(app).get(record_id).to_dict()

    @app.get("/api/liff-config")
    def liff_config() -> Dict[str, str]:
        return {"liffId": app.state.settings.liff_id}

    @app.get("/result/{record_id}", response_class=HTMLResponse)
    def result_page(record_id: str) -> HTMLResponse:
        try:
            result = _require_store(app).get(record_id)
        except RecordNotFoundError:
            return HTMLResponse("<h1>404</h1><p>結果が見つかりません。</p>", status_code=404)
        return HTMLResponse(render_result_page(result))

    @app.get("/history", response_class=HTMLResponse)
    def history_page(userId: Optional[str] = Query(None)) -> HTMLResponse:
        if not userId or not userId.strip():
            return HTMLResponse("<h1>400</h1><p>userId が必要です。</p>", status_code=400)
        return HTMLResponse(render_history_page(_require_store(app).history_for(userId)))

    return app
