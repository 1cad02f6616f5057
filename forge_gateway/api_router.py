"""Route table assembly.

The table shape is a pure function of which services resolved: each entry of
``ROUTE_FRAGMENTS`` pairs a predicate over ``ResolvedServices`` with a
fragment builder, and the fragments whose predicate holds are merged in order.
"""

from __future__ import annotations

from typing import Callable

from fastapi import APIRouter
from fastapi.routing import APIRoute

from . import router_completions, router_events, router_server
from .assembler import ResolvedServices
from .completion import AllowedCodeRepository
from .config import Config, Settings
from .models import ServerSetting

Predicate = Callable[[ResolvedServices], bool]
Fragment = Callable[[ResolvedServices, Config, Settings], APIRouter]


def _always(services: ResolvedServices) -> bool:
    return True


def _has_completion(services: ResolvedServices) -> bool:
    return services.completion is not None


def _lacks_completion(services: ResolvedServices) -> bool:
    return services.completion is None


def _events(services: ResolvedServices, config: Config, settings: Settings) -> APIRouter:
    return router_events.create_router(services.logger)


def _models(services: ResolvedServices, config: Config, settings: Settings) -> APIRouter:
    return router_server.create_models_router(router_server.model_info_from_config(config))


def _completions(services: ResolvedServices, config: Config, settings: Settings) -> APIRouter:
    return router_completions.create_router(
        services.completion,
        services.chat,
        timeout=config.server.completion_timeout,
        allowed=AllowedCodeRepository(config.repositories),
    )


def _completions_unavailable(services: ResolvedServices, config: Config, settings: Settings) -> APIRouter:
    return router_completions.create_unavailable_router()


def _server_setting(services: ResolvedServices, config: Config, settings: Settings) -> APIRouter:
    setting = ServerSetting(disable_client_side_telemetry=settings.disable_client_side_telemetry)
    return router_server.create_setting_router(setting)


ROUTE_FRAGMENTS: list[tuple[Predicate, Fragment]] = [
    (_always, _events),
    (_always, _models),
    (_has_completion, _completions),
    (_lacks_completion, _completions_unavailable),
    (_always, _server_setting),
]


class ApiRouter(APIRouter):
    """Root router that keeps the fragments merged into it, in order."""

    def __init__(self) -> None:
        super().__init__()
        self.fragments: list[APIRouter] = []

    def merge(self, fragment: APIRouter) -> None:
        self.include_router(fragment)
        self.fragments.append(fragment)


def build_api_router(services: ResolvedServices, config: Config, settings: Settings) -> ApiRouter:
    root = ApiRouter()
    for predicate, fragment in ROUTE_FRAGMENTS:
        if predicate(services):
            root.merge(fragment(services, config, settings))
    return root


def route_table(router: APIRouter) -> list[tuple[str, str]]:
    """(path, method) pairs in registration order.

    Read from the fragment routers, which hold plain ``APIRoute`` objects.
    """
    fragments = router.fragments if isinstance(router, ApiRouter) else [router]
    table = []
    for fragment in fragments:
        for route in fragment.routes:
            if not isinstance(route, APIRoute):
                continue
            for method in sorted(route.methods):
                table.append((route.path, method))
    return table
