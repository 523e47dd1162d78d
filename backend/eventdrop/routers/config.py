"""公开的应用配置接口"""
from __future__ import annotations

from fastapi import APIRouter

from eventdrop.core.config import settings
from eventdrop.schemas import AppConfigResponse

router = APIRouter(prefix="/api/config", tags=["config"])


@router.get("", response_model=AppConfigResponse)
async def get_app_config() -> AppConfigResponse:
    """返回前端需要的部署配置（无需认证）"""
    return AppConfigResponse(
        allowed_domains=list(settings.allowed_domains),
        support_subdomain=settings.support_subdomain,
        allow_event_creation=settings.allow_event_creation,
    )
