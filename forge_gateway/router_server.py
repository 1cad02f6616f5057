"""Server information routes — model listing and client settings."""

from fastapi import APIRouter

from .config import Config, model_identifier
from .models import ModelInfo, ServerSetting


def model_info_from_config(config: Config) -> ModelInfo:
    """Snapshot of configured model identifiers, one list per configured role."""
    group = config.model
    return ModelInfo(
        completion=[model_identifier(group.completion)] if group.completion else None,
        chat=[model_identifier(group.chat)] if group.chat else None,
        embedding=[model_identifier(group.embedding)] if group.embedding else None,
    )


def create_models_router(info: ModelInfo) -> APIRouter:
    router = APIRouter(tags=["v1"])

    @router.get("/v1/models", response_model=ModelInfo, response_model_exclude_none=True)
    async def models():
        return info

    return router


def create_setting_router(setting: ServerSetting) -> APIRouter:
    router = APIRouter(tags=["v1beta"])

    @router.get("/v1beta/server_setting", response_model=ServerSetting)
    async def server_setting():
        return setting

    return router
