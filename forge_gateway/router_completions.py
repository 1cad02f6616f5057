"""Completion and chat routes.

  POST /v1/completions       — code completion (or 501 when no model resolved)
  POST /v1/chat/completions  — proxied to the chat engine, only with completion + chat

Both live on one sub-router whose routes share a request timeout and the
allowed-repository list.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.routing import APIRoute

from .bindings import HttpChatEngine
from .completion import AllowedCodeRepository, CompletionService
from .http_utils import json_or_error_response, not_implemented_response
from .models import CompletionRequest, CompletionResponse

logger = logging.getLogger(__name__)


def timeout_route(seconds: float) -> type[APIRoute]:
    """Route class that answers 408 when the handler runs past ``seconds``."""

    class TimeoutRoute(APIRoute):
        def get_route_handler(self) -> Callable:
            handler = super().get_route_handler()

            async def with_timeout(request: Request) -> Response:
                try:
                    return await asyncio.wait_for(handler(request), timeout=seconds)
                except asyncio.TimeoutError:
                    logger.warning("%s timed out after %ss", request.url.path, seconds)
                    return JSONResponse(status_code=408, content={"error": "Request timeout"})

            return with_timeout

    return TimeoutRoute


async def _opened_stream(chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    """Wait for the first chunk so engine errors surface before headers go out."""
    try:
        first = await chunks.__anext__()
    except StopAsyncIteration:
        first = b""

    async def relay() -> AsyncIterator[bytes]:
        if first:
            yield first
        async for chunk in chunks:
            yield chunk

    return relay()


def allowed_repository_dependency(allowed: AllowedCodeRepository) -> Callable:
    async def attach(request: Request) -> None:
        request.state.allowed_code_repository = allowed

    return attach


def create_router(
    completion: CompletionService,
    chat: HttpChatEngine | None,
    *,
    timeout: float,
    allowed: AllowedCodeRepository,
) -> APIRouter:
    router = APIRouter(
        tags=["v1"],
        route_class=timeout_route(timeout),
        dependencies=[Depends(allowed_repository_dependency(allowed))],
    )

    @router.post("/v1/completions", response_model=CompletionResponse)
    async def completions(body: CompletionRequest, request: Request):
        return await completion.generate(body, request.state.allowed_code_repository)

    if chat is not None:

        @router.post("/v1/chat/completions")
        async def chat_completions(request: Request):
            try:
                payload = await request.json()
            except ValueError as e:
                raise HTTPException(status_code=400, detail="Request body must be JSON") from e
            if not isinstance(payload, dict):
                raise HTTPException(status_code=400, detail="Request body must be a JSON object")

            if payload.get("stream"):
                stream = await _opened_stream(chat.stream(payload))
                return StreamingResponse(stream, media_type="text/event-stream")
            resp = await chat.chat(payload)
            return json_or_error_response(resp, "chat engine error")

    return router


def create_unavailable_router() -> APIRouter:
    router = APIRouter(tags=["v1"])

    @router.post("/v1/completions", status_code=501)
    async def completions_not_implemented():
        return not_implemented_response("completion")

    return router
