from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Mapping

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from .attachments import validate_attachments
from .auth import AuthResolver, HeaderAuthResolver, Principal
from .budget import model_ceiling, resolve_max_tokens
from .config import Settings, configure_logging, get_settings
from .errors import AuthenticationRequired, GatewayError, classify_error
from .lifecycle import RequestLifecycle, RequestState
from .models import FileAttachment, Message
from .parsing import parse_chat_request
from .providers.base import ProviderAdapter
from .providers.registry import ProviderRegistry, build_adapters
from .resolver import ProviderKind, parse_provider_kind
from .streaming import StreamMultiplexer


logger = logging.getLogger(__name__)

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _cors_headers(request: Request, settings: Settings) -> dict[str, str]:
    origin = request.headers.get("origin", "")
    if origin in settings.allowed_origins:
        allowed = origin
    else:
        allowed = settings.allowed_origins[0] if settings.allowed_origins else ""
    return {
        "Access-Control-Allow-Origin": allowed,
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
    }


def compose_system_prompt(
    base: str, principal: Principal, system_instruction: str = ""
) -> str:
    prompt = base
    if principal.professional_role:
        prompt += (
            "\n\nUSER CONTEXT:\n"
            f"- Professional Role: {principal.professional_role}\n"
            "- Tailor your responses to be relevant for someone in this role"
        )
    if system_instruction.strip():
        prompt += f"\n\nAdditional Instructions: {system_instruction.strip()}"
    return prompt


def _with_attachments(messages: list[Message], files: list[FileAttachment]) -> list[Message]:
    """Swap the last user message's files for the validated set."""
    for idx in range(len(messages) - 1, -1, -1):
        if messages[idx].role == "user":
            updated = list(messages)
            updated[idx] = messages[idx].model_copy(update={"files": files})
            return updated
    return messages


def create_app(
    adapters: Mapping[ProviderKind, ProviderAdapter] | None = None,
    auth_resolver: AuthResolver | None = None,
) -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    default_kind = parse_provider_kind(settings.default_provider, ProviderKind.OPENAI)
    registry = ProviderRegistry(
        adapters if adapters is not None else build_adapters(settings), default_kind
    )
    auth = auth_resolver or HeaderAuthResolver()

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        await registry.aclose()

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.registry = registry

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        return JSONResponse(
            {"success": False, "error": exc.message},
            status_code=exc.status_code,
            headers=_cors_headers(request, settings),
        )

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok", "scope": "gateway"}

    @app.get("/api/ai/models")
    async def list_models():
        models = [
            {
                "id": model,
                "provider": adapter.name,
                "maxTokens": model_ceiling(model, extended=False),
                "extendedMaxTokens": model_ceiling(model, extended=True),
                "isDefault": model == settings.default_model,
            }
            for adapter in registry
            for model in adapter.models
        ]
        return {"success": True, "data": models}

    @app.options("/api/chat")
    async def chat_options(request: Request):
        return Response(status_code=200, headers=_cors_headers(request, settings))

    @app.post("/api/chat")
    async def chat(request: Request):
        request_id = uuid.uuid4().hex
        cors = _cors_headers(request, settings)
        lifecycle = RequestLifecycle(request_id)

        principal = await auth.resolve(request)
        if principal is None:
            logger.info("chat %s rejected: unauthenticated", request_id)
            raise AuthenticationRequired()

        lifecycle.advance(RequestState.NORMALIZING)
        try:
            chat_request = await parse_chat_request(request, settings)
        except GatewayError as exc:
            lifecycle.fail()
            logger.info("chat %s rejected: %s", request_id, exc.message)
            raise

        lifecycle.advance(RequestState.VALIDATING)
        validation = validate_attachments(chat_request.attachments())
        messages = _with_attachments(chat_request.messages, validation.files)
        warnings = chat_request.warnings + validation.warnings

        adapter = registry.resolve(chat_request.model)
        lifecycle.advance(RequestState.PROVIDER_RESOLVED)

        params = chat_request.params
        max_tokens = resolve_max_tokens(
            params.model, params.extended_thinking, params.thinking_budget_tokens
        )
        params = params.model_copy(
            update={
                "max_tokens": max_tokens,
                "system_prompt": compose_system_prompt(
                    settings.system_instruction, principal, params.system_prompt
                ),
            }
        )
        lifecycle.advance(RequestState.BUDGET_RESOLVED)

        logger.info(
            "chat %s user=%s model=%s provider=%s stream=%s files=%d warnings=%d max_tokens=%d",
            request_id,
            principal.user_id,
            params.model,
            adapter.name,
            chat_request.stream,
            len(validation.files),
            len(warnings),
            max_tokens,
        )

        lifecycle.advance(RequestState.DISPATCHED)
        if chat_request.stream:
            multiplexer = StreamMultiplexer(
                adapter.generate_stream(messages, params),
                warnings=warnings,
                heartbeat_interval=settings.heartbeat_interval,
                request_id=request_id,
            )

            async def event_stream() -> AsyncGenerator[str, None]:
                lifecycle.advance(RequestState.STREAMING)
                try:
                    async for frame in multiplexer.events():
                        yield frame
                finally:
                    if multiplexer.error is None and multiplexer.done_sent:
                        lifecycle.advance(RequestState.COMPLETED)
                    elif not lifecycle.is_terminal:
                        lifecycle.fail()

            return StreamingResponse(
                event_stream(),
                media_type="text/event-stream",
                headers={**STREAM_HEADERS, **cors},
            )

        try:
            response = await adapter.generate_response(messages, params)
        except Exception as exc:
            lifecycle.fail()
            classification = classify_error(exc)
            logger.warning(
                "chat %s failed (%s): %s", request_id, classification.category.value, exc
            )
            return JSONResponse(
                {"success": False, "error": classification.message},
                status_code=classification.status_code,
                headers=cors,
            )

        lifecycle.advance(RequestState.COMPLETED)
        body: dict[str, Any] = {"success": True, "data": response.to_wire()}
        if warnings:
            body["fileValidationWarnings"] = [w.to_wire() for w in warnings]
        return JSONResponse(body, headers=cors)

    return app
