"""Starlette app exposing the orchestrator flows."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from contextlib import asynccontextmanager

from starlette.applications import Starlette
from starlette.datastructures import UploadFile
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from knowledge_hub.errors import BackendNotFound, KnowledgeHubError, ValidationError
from knowledge_hub.middleware.request_log import RequestLogMiddleware
from knowledge_hub.orchestrator.flows import DEFAULT_USER, Orchestrator, UploadRequest
from knowledge_hub.orchestrator.steps import CriticalStepFailed
from knowledge_hub.utils.serialization import json_default
from knowledge_hub.utils.time import utc_now_iso

logger = logging.getLogger(__name__)

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


class _JSONResponse(JSONResponse):
    def render(self, content: object) -> bytes:
        return json.dumps(content, ensure_ascii=False, default=json_default).encode("utf-8")


def _error(message: str, status_code: int) -> Response:
    return _JSONResponse(
        {"success": False, "error": message, "timestamp": utc_now_iso()},
        status_code=status_code,
    )


def parse_tags(raw: object) -> list[str]:
    """Accept a JSON list or a comma separated string."""
    if raw is None:
        return []
    if isinstance(raw, list):
        return [str(tag).strip() for tag in raw if str(tag).strip()]
    text = str(raw).strip()
    if not text:
        return []
    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValidationError("tags must be a JSON list or comma separated") from exc
        if isinstance(parsed, list):
            return [str(tag).strip() for tag in parsed if str(tag).strip()]
    return [tag.strip() for tag in text.split(",") if tag.strip()]


def _optional(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


async def _json_body(request: Request) -> dict[str, object]:
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError("Request body must be valid JSON") from exc
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


async def read_upload(request: Request) -> UploadRequest:
    """Build an ``UploadRequest`` from a multipart form (or a JSON body)."""
    content_type = request.headers.get("content-type", "")
    file_name: str | None = None
    if content_type.startswith("application/json"):
        fields = await _json_body(request)
        content = str(fields.get("content") or "")
    else:
        form = await request.form()
        fields = dict(form)
        upload = form.get("file")
        if isinstance(upload, UploadFile):
            data = await upload.read()
            content = data.decode("utf-8", errors="replace")
            file_name = upload.filename or None
        else:
            content = str(form.get("content") or "")

    return UploadRequest(
        content=content,
        title=_optional(fields.get("title")),
        category=_optional(fields.get("category")),
        tags=parse_tags(fields.get("tags")),
        file_name=file_name or _optional(fields.get("file_name")),
        user_id=_optional(fields.get("user_id")) or DEFAULT_USER,
    )


def create_orchestrator_app(
    orchestrator: Orchestrator,
    *,
    on_shutdown: list[Callable[[], None]] | None = None,
) -> Starlette:
    """Create the orchestrator HTTP application around a ready ``Orchestrator``."""

    async def health_handler(request: Request) -> Response:
        return _JSONResponse(await orchestrator.health())

    async def upload_handler(request: Request) -> Response:
        upload = await read_upload(request)
        return _JSONResponse(await orchestrator.upload_document(upload))

    async def search_handler(request: Request) -> Response:
        body = await _json_body(request)
        include_web = body.get("include_web", False)
        if isinstance(include_web, str):
            include_web = include_web.strip().lower() in _TRUE_VALUES
        result = await orchestrator.search(
            str(body.get("query") or ""),
            include_web=bool(include_web),
            user_id=_optional(body.get("user_id")) or DEFAULT_USER,
        )
        return _JSONResponse(result)

    async def status_handler(request: Request) -> Response:
        return _JSONResponse(await orchestrator.status())

    async def document_handler(request: Request) -> Response:
        return _JSONResponse(await orchestrator.get_document(request.path_params["document_id"]))

    async def recommendations_handler(request: Request) -> Response:
        user_id = request.path_params.get("user_id") or DEFAULT_USER
        return _JSONResponse(await orchestrator.recommendations(user_id))

    async def tools_handler(request: Request) -> Response:
        return _JSONResponse(await orchestrator.tools())

    async def handle_critical(request: Request, exc: CriticalStepFailed) -> Response:
        if isinstance(exc.cause, BackendNotFound):
            return _error("Document not found", 404)
        return _error(str(exc), 500)

    async def handle_known(request: Request, exc: KnowledgeHubError) -> Response:
        return _error(str(exc), exc.status_code)

    async def handle_unexpected(request: Request, exc: Exception) -> Response:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error("Internal server error", 500)

    routes = [
        Route("/health", endpoint=health_handler, methods=["GET"]),
        Route("/api/upload-document", endpoint=upload_handler, methods=["POST"]),
        Route("/api/search", endpoint=search_handler, methods=["POST"]),
        Route("/api/status", endpoint=status_handler, methods=["GET"]),
        Route("/api/document/{document_id:int}", endpoint=document_handler, methods=["GET"]),
        Route("/api/recommendations", endpoint=recommendations_handler, methods=["GET"]),
        Route(
            "/api/recommendations/{user_id}",
            endpoint=recommendations_handler,
            methods=["GET"],
        ),
        Route("/api/tools", endpoint=tools_handler, methods=["GET"]),
    ]

    @asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info("Starting orchestrator...")
        try:
            yield
        finally:
            logger.info("Stopping orchestrator...")
            await orchestrator.clients.aclose()
            for hook in on_shutdown or []:
                hook()

    app = Starlette(
        routes=routes,
        middleware=[Middleware(RequestLogMiddleware, service="orchestrator")],
        exception_handlers={
            CriticalStepFailed: handle_critical,
            KnowledgeHubError: handle_known,
            Exception: handle_unexpected,
        },
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator
    return app
