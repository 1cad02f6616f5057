"""Server startup: merge CLI overrides, assemble services, build routes, serve."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx
import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

from . import __version__
from .api_router import build_api_router, route_table
from .assembler import assemble
from .backend_client import client
from .config import Config, Device, LocalModelConfig, Settings, to_local_config
from .model_loader import check_local_model
from .startup_signal import notify_ready, try_run_spinner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServeArgs:
    model: str | None = None
    host: str = "0.0.0.0"
    port: int = 8080
    device: Device = Device.CPU
    parallelism: int = 1


def merge_args(config: Config, args: ServeArgs) -> Config:
    """Apply the CLI completion model on top of the file config."""
    if args.model is None:
        return config
    if config.model.completion is not None:
        logger.warning(
            "Overriding completion model from config file. The overriding behavior might surprise you. "
            "Consider setting the model in the config file directly."
        )
    completion = to_local_config(args.model, args.parallelism, args.device)
    return config.model_copy(
        update={"model": config.model.model_copy(update={"completion": completion})}
    )


def load_model(config: Config) -> None:
    for role in ("completion", "chat", "embedding"):
        model = getattr(config.model, role)
        if isinstance(model, LocalModelConfig):
            check_local_model(model.model_id)


def create_app(api: APIRouter) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await client.start()
        logger.info("Forge Gateway started")
        yield
        await client.stop()
        logger.info("Forge Gateway stopped")

    app = FastAPI(
        title="Forge Gateway",
        version=__version__,
        docs_url="/swagger-ui",
        openapi_url="/api-docs/openapi.json",
        lifespan=lifespan,
    )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        if isinstance(exc, httpx.ConnectError):
            return JSONResponse(status_code=503, content={"error": "Backend unavailable", "detail": str(exc)})
        if isinstance(exc, (httpx.ReadTimeout, httpx.WriteTimeout)):
            return JSONResponse(status_code=504, content={"error": "Backend timeout", "detail": str(exc)})
        if isinstance(exc, httpx.HTTPStatusError):
            return JSONResponse(
                status_code=502,
                content={"error": "Backend error", "detail": str(exc)},
            )
        logger.exception("Unhandled error: %s", exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    app.include_router(api)
    app.state.route_table = route_table(api)
    return app


async def build(config: Config, args: ServeArgs, settings: Settings) -> FastAPI:
    """Everything up to (not including) accepting connections."""
    config = merge_args(config, args)
    load_model(config)

    signal = try_run_spinner(settings.prod_mode)
    services = await assemble(config, settings=settings)
    app = create_app(build_api_router(services, config, settings))
    for path, method in app.state.route_table:
        logger.debug("Route %s %s", method, path)

    notify_ready(signal)
    return app


async def main(config: Config, args: ServeArgs, settings: Settings) -> None:
    app = await build(config, args, settings)
    server = uvicorn.Server(
        uvicorn.Config(app, host=args.host, port=args.port, log_level=settings.log_level.lower())
    )
    logger.info("Listening on %s:%d", args.host, args.port)
    await server.serve()
