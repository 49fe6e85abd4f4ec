"""Shared assembly for backend services.

A backend is a name plus a list of ``ToolSpec``. The same list produces the
routes and the ``/tools`` manifest, so every advertised endpoint is served and
every served tool is advertised.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Literal

import httpx
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from knowledge_hub.errors import KnowledgeHubError, ValidationError
from knowledge_hub.middleware.request_log import RequestLogMiddleware
from knowledge_hub.utils.blocking import run_blocking
from knowledge_hub.utils.jsonschema import validate_payload
from knowledge_hub.utils.serialization import json_default
from knowledge_hub.utils.time import utc_now_iso

logger = logging.getLogger(__name__)

HttpMethod = Literal["GET", "POST", "PUT", "DELETE"]
ToolHandler = Callable[[dict[str, object]], Awaitable[dict[str, object]]]

_CONVERTOR_RE = re.compile(r"\{(\w+):\w+\}")


@dataclass
class ToolSpec:
    name: str
    description: str
    method: HttpMethod
    path: str
    input_schema: dict[str, object]
    handler: ToolHandler

    @property
    def endpoint(self) -> str:
        """Route path without Starlette convertors, e.g. ``/tools/get-document/{id}``."""
        return _CONVERTOR_RE.sub(r"{\1}", self.path)

    @property
    def parameters(self) -> list[str]:
        properties = self.input_schema.get("properties") or {}
        return list(properties) if isinstance(properties, dict) else []

    def manifest_entry(self) -> dict[str, object]:
        return {
            "name": self.name,
            "description": self.description,
            "endpoint": self.endpoint,
            "method": self.method,
            "parameters": self.parameters,
        }


class _EnvelopeResponse(JSONResponse):
    def render(self, content: object) -> bytes:
        return json.dumps(content, ensure_ascii=False, default=json_default).encode("utf-8")


def envelope(payload: dict[str, object], status_code: int = 200) -> Response:
    body = {"success": True, **payload, "timestamp": utc_now_iso()}
    return _EnvelopeResponse(body, status_code=status_code)


def error_response(message: str, status_code: int, details: list[str] | None = None) -> Response:
    body: dict[str, object] = {"success": False, "error": message}
    if details:
        body["details"] = details
    body["timestamp"] = utc_now_iso()
    return _EnvelopeResponse(body, status_code=status_code)


def validate_or_raise(schema: dict[str, object], payload: dict[str, object]) -> None:
    errors = validate_payload(schema, payload)
    if errors:
        raise ValidationError("Input validation failed: " + "; ".join(errors), errors)


def _coerce_query(schema: dict[str, object], raw: dict[str, str]) -> dict[str, object]:
    """Convert query-string values to the types the schema declares."""
    properties = schema.get("properties") or {}
    coerced: dict[str, object] = {}
    for key, value in raw.items():
        declared = properties.get(key, {}) if isinstance(properties, dict) else {}
        kind = declared.get("type") if isinstance(declared, dict) else None
        if kind == "integer":
            try:
                coerced[key] = int(value)
            except ValueError:
                coerced[key] = value
        elif kind == "number":
            try:
                coerced[key] = float(value)
            except ValueError:
                coerced[key] = value
        elif kind == "boolean":
            coerced[key] = value.strip().lower() in {"1", "true", "yes"}
        else:
            coerced[key] = value
    return coerced


async def _read_params(request: Request, tool: ToolSpec) -> dict[str, object]:
    params: dict[str, object] = _coerce_query(tool.input_schema, dict(request.query_params))
    if request.method in {"POST", "PUT"}:
        raw = await request.body()
        if raw:
            try:
                body = json.loads(raw)
            except (json.JSONDecodeError, UnicodeDecodeError) as exc:
                raise ValidationError("Request body must be valid JSON") from exc
            if not isinstance(body, dict):
                raise ValidationError("Request body must be a JSON object")
            params.update(body)
    params.update(request.path_params)
    return params


def tool_endpoint(tool: ToolSpec) -> Callable[[Request], Awaitable[Response]]:
    async def endpoint(request: Request) -> Response:
        try:
            params = await _read_params(request, tool)
            validate_or_raise(tool.input_schema, params)
            payload = await tool.handler(params)
        except ValidationError as exc:
            return error_response(str(exc), exc.status_code, exc.errors)
        except KnowledgeHubError as exc:
            if exc.status_code >= 500:
                logger.error("Tool %s failed: %s", tool.name, exc)
            return error_response(str(exc), exc.status_code)
        except httpx.HTTPError as exc:
            logger.warning("Upstream provider call failed in tool %s: %s", tool.name, exc)
            return error_response(f"Upstream provider error: {exc}", 502)
        except Exception as exc:
            logger.exception("Unexpected error in tool %s", tool.name)
            return error_response(f"Failed to run {tool.name}: {exc}", 500)
        return envelope(payload)

    endpoint.__name__ = f"tool_{tool.name.replace('-', '_')}"
    return endpoint


def create_backend_app(
    service: str,
    tools: list[ToolSpec],
    *,
    health_details: Callable[[], dict[str, object]] | None = None,
    on_shutdown: list[Callable[[], Awaitable[None]]] | None = None,
) -> Starlette:
    """Build the Starlette app for one backend."""

    async def root_handler(request: Request) -> Response:
        return JSONResponse({"status": "healthy", "service": service, "timestamp": utc_now_iso()})

    async def health_handler(request: Request) -> Response:
        body: dict[str, object] = {"status": "healthy", "service": service}
        if health_details is not None:
            body.update(await run_blocking(health_details))
        body["tools"] = [tool.name for tool in tools]
        body["timestamp"] = utc_now_iso()
        return JSONResponse(body)

    async def tools_handler(request: Request) -> Response:
        return JSONResponse(
            {"service": service, "tools": [tool.manifest_entry() for tool in tools]}
        )

    routes = [
        Route("/", endpoint=root_handler, methods=["GET"]),
        Route("/health", endpoint=health_handler, methods=["GET"]),
        Route("/tools", endpoint=tools_handler, methods=["GET"]),
    ]
    routes.extend(
        Route(tool.path, endpoint=tool_endpoint(tool), methods=[tool.method]) for tool in tools
    )

    @asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info("Starting %s backend with %d tools", service, len(tools))
        try:
            yield
        finally:
            for hook in on_shutdown or []:
                try:
                    await hook()
                except Exception:
                    logger.warning("Shutdown hook failed for %s", service, exc_info=True)
            logger.info("Stopped %s backend", service)

    app = Starlette(
        routes=routes,
        middleware=[Middleware(RequestLogMiddleware, service=service)],
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.tools = tools
    return app
