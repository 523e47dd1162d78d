"""活动管理接口模块

创建、查看、修改、删除活动。活动本身以目录形式存放在数据目录下。
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from eventdrop.auth import (
    require_admin,
    require_event_creation,
    require_member,
    valid_event_id,
)
from eventdrop.core.errors import ApiError
from eventdrop.models import EventRecord
from eventdrop.schemas import (
    AvailabilityResponse,
    CreateEventRequest,
    DeleteEventResponse,
    EventResponse,
    UpdateEventRequest,
    UpdateEventResponse,
)
from eventdrop.services.access import AccessGrant, Role
from eventdrop.services.event_store import get_event_store
from eventdrop.services.events import apply_update, build_event_record, build_event_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/events", tags=["events"])


@router.get("/{eventId}/availability", response_model=AvailabilityResponse)
async def check_availability(event_id: str = Depends(valid_event_id)) -> AvailabilityResponse:
    """活动 ID 是否可用（仅供界面提示，创建时以目录占用为准）"""
    result = await get_event_store().is_event_id_available(event_id)
    if not result.ok:
        raise ApiError.from_error(result.error)
    return AvailabilityResponse(event_id=event_id, available=result.data)


@router.post("", response_model=EventResponse, dependencies=[Depends(require_event_creation)])
async def create_event(payload: CreateEventRequest) -> EventResponse:
    """创建活动，创建者以管理员身份获得响应"""
    built = await build_event_record(payload)
    if not built.ok:
        raise ApiError.from_error(built.error)

    created = await get_event_store().create_event(built.data)
    if not created.ok:
        raise ApiError.from_error(created.error)
    return build_event_response(created.data, Role.ADMIN)


@router.get("/{eventId}", response_model=EventResponse)
async def get_event(grant: AccessGrant = Depends(require_member)) -> EventResponse:
    return build_event_response(grant.event, grant.role)


@router.patch("/{eventId}", response_model=UpdateEventResponse)
async def update_event(
    payload: UpdateEventRequest,
    grant: AccessGrant = Depends(require_admin),
) -> UpdateEventResponse:
    """部分更新活动配置（管理员）

    未提供的字段保持不变；guestPassword 为空字符串时移除访客密码，
    同时关闭访客下载。
    """
    merged = await apply_update(grant.event, payload)
    if not merged.ok:
        raise ApiError.from_error(merged.error)

    saved = await get_event_store().save_event(merged.data)
    if not saved.ok:
        raise ApiError.from_error(saved.error)
    logger.info(f"Updated event settings: {saved.data.event_id}")
    response = build_event_response(saved.data, grant.role)
    return UpdateEventResponse(ok=True, **response.model_dump())


@router.delete("/{eventId}", response_model=DeleteEventResponse)
async def delete_event(grant: AccessGrant = Depends(require_admin)) -> DeleteEventResponse:
    """删除活动及其全部文件，不可恢复（管理员）"""
    event: EventRecord = grant.event
    result = await get_event_store().delete_event(event.event_id)
    if not result.ok:
        raise ApiError.from_error(result.error)
    return DeleteEventResponse(ok=True, message="Event deleted successfully.")
