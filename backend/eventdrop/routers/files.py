"""活动文件接口模块

提供文件列表、上传、下载、预览、打包下载、删除以及文件夹重命名。
文件只存在于 ``<data_root>/<eventId>/files/`` 下，最多一层文件夹。

注意：预览路由必须先于 ``/files/{folder}/{filename}`` 注册，否则
``/files/a.jpg/preview`` 会被当成文件夹 ``a.jpg`` 下的文件 ``preview``。
"""
from __future__ import annotations

import asyncio
import logging
from typing import Literal

from fastapi import APIRouter, Depends, File, Form, Path, Query, Request, UploadFile
from fastapi.responses import FileResponse, Response, StreamingResponse

from eventdrop.auth import (
    check_guest_download,
    load_event,
    require_admin,
    require_download_access,
    require_upload_access,
    resolve_grant,
    valid_event_id,
)
from eventdrop.core.errors import ApiError, ErrorKey
from eventdrop.core.security import sanitize_string
from eventdrop.schemas import (
    DeleteFileResponse,
    ListFilesResponse,
    RejectedUpload,
    RenameFolderRequest,
    RenameFolderResponse,
    UploadResponse,
)
from eventdrop.services.access import AccessGrant, Role
from eventdrop.services.file_store import get_file_store
from eventdrop.services.preview import (
    DEFAULT_QUALITY,
    MAX_PREVIEW_SIZE,
    PreviewError,
    PreviewOptions,
    is_previewable,
    render_preview,
)
from eventdrop.services.uploads import cleanup_staged_uploads, partition_by_mime_type, stage_uploads
from eventdrop.services.validation import (
    INVALID_FOLDER,
    ROOT_FOLDER,
    is_safe_filename,
    is_valid_folder_name,
    parse_folder,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/events/{eventId}", tags=["files"])

DOWNLOAD_CACHE_CONTROL = "public, max-age=86400"
PREVIEW_CACHE_CONTROL = "public, max-age=31536000, immutable"
ZIP_NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
    "Surrogate-Control": "no-store",
}


# ========== Parameter helpers ==========

def _optional_folder(raw: str | None, property: str = "folder") -> str:
    folder = parse_folder(raw)
    if folder is INVALID_FOLDER:
        raise ApiError(400, ErrorKey.INVALID_FOLDER, "Invalid folder name.", property=property)
    return folder


async def query_folder(folder: str | None = Query(default=None)) -> str:
    """``?folder=``，缺省或空字符串表示根目录"""
    return _optional_folder(folder)


async def path_folder(folder: str = Path()) -> str:
    """路径中的文件夹必须是有效名称，不能为空"""
    if not is_valid_folder_name(folder):
        raise ApiError(400, ErrorKey.INVALID_FOLDER, "Invalid folder name.", property="folder")
    return folder.strip()


async def path_filename(filename: str = Path()) -> str:
    if not is_safe_filename(filename):
        raise ApiError(400, ErrorKey.INVALID_FILENAME, "Invalid file name.", property="filename")
    return filename


def _raise_on_failure(result) -> None:
    if not result.ok:
        raise ApiError.from_error(result.error)


# ========== Listing & upload ==========

@router.get("/files", response_model=ListFilesResponse)
async def list_files(
    folder: str = Depends(query_folder),
    grant: AccessGrant = Depends(require_download_access),
) -> ListFilesResponse:
    result = await get_file_store().list_files(grant.event.event_id, folder)
    _raise_on_failure(result)
    return ListFilesResponse(files=result.data.files, folders=result.data.folders, folder=folder)


@router.post("/files", response_model=UploadResponse)
async def upload_files(
    files: list[UploadFile] = File(...),
    from_folder: str | None = Form(default=None, alias="from"),
    grant: AccessGrant = Depends(require_upload_access),
) -> UploadResponse:
    """上传文件到根目录或 ``from`` 指定的文件夹

    文件先写入暂存目录，再按活动允许的 MIME 类型筛选后移入 files/。
    无论成功与否，暂存目录中剩余的文件都会被清理。
    """
    event = grant.event
    folder = _optional_folder(from_folder, property="from")
    if grant.role is Role.GUEST and event.settings.require_upload_folder and folder == ROOT_FOLDER:
        raise ApiError(
            400,
            ErrorKey.UPLOAD_FOLDER_REQUIRED,
            "Please choose a folder for your upload.",
            property="from",
            event_id=event.event_id,
        )

    staged_result = await stage_uploads(event.event_id, files)
    _raise_on_failure(staged_result)
    staged = staged_result.data

    try:
        accepted, rejected = partition_by_mime_type(staged, event.allowed_mime_types)
        await cleanup_staged_uploads(rejected)
        moved = await get_file_store().move_uploaded_files(event.event_id, folder, accepted)
        _raise_on_failure(moved)
    finally:
        await cleanup_staged_uploads(staged)

    if rejected:
        logger.info(f"Rejected {len(rejected)} upload(s) for event {event.event_id} by MIME type")
    return UploadResponse(
        message="Files uploaded successfully.",
        uploaded=len(moved.data),
        files=moved.data,
        rejected=[
            RejectedUpload(file=upload.original_name, reason="File type not allowed.")
            for upload in rejected
        ],
    )


@router.patch("/folders/{folder}", response_model=RenameFolderResponse)
async def rename_folder(
    payload: RenameFolderRequest,
    folder: str = Depends(path_folder),
    grant: AccessGrant = Depends(require_admin),
) -> RenameFolderResponse:
    result = await get_file_store().rename_folder(grant.event.event_id, folder, payload.to)
    _raise_on_failure(result)
    return RenameFolderResponse(success=True, folder=result.data)


@router.get("/files.zip")
async def download_zip(
    folder: str = Depends(query_folder),
    grant: AccessGrant = Depends(require_download_access),
) -> StreamingResponse:
    """打包下载（边压缩边发送，不落盘）"""
    event_id = grant.event.event_id
    result = await get_file_store().create_zip_stream(event_id, folder)
    _raise_on_failure(result)
    headers = {
        "Content-Disposition": f'attachment; filename="{event_id}-files.zip"',
        **ZIP_NO_STORE_HEADERS,
    }
    return StreamingResponse(result.data, media_type="application/zip", headers=headers)


# ========== Preview ==========

async def _preview(
    grant: AccessGrant,
    folder: str,
    filename: str,
    options: PreviewOptions,
) -> Response:
    if not is_previewable(filename):
        raise ApiError(
            415,
            ErrorKey.UNSUPPORTED_FILE_TYPE,
            "Preview not available for this file type.",
            property="filename",
        )
    event_id = grant.event.event_id
    result = await get_file_store().get_file_buffer(event_id, folder, filename)
    _raise_on_failure(result)
    try:
        content, media_type = await asyncio.to_thread(render_preview, result.data.data, options)
    except PreviewError as exc:
        logger.warning(
            f"Error generating preview for event {event_id}, folder={folder!r}, "
            f"file={sanitize_string(filename)!r}: {exc}"
        )
        raise ApiError(400, ErrorKey.INVALID_INPUT, "Preview not available for this file.", property="filename")
    return Response(content=content, media_type=media_type, headers={"Cache-Control": PREVIEW_CACHE_CONTROL})


async def preview_options(
    w: int | None = Query(default=None, ge=1, le=MAX_PREVIEW_SIZE),
    h: int | None = Query(default=None, ge=1),
    q: int = Query(default=DEFAULT_QUALITY, ge=1, le=100),
    fit: Literal["inside", "cover"] = Query(default="inside"),
    format: Literal["jpeg", "webp", "png"] = Query(default="jpeg"),
) -> PreviewOptions:
    return PreviewOptions(width=w, height=h, quality=q, fit=fit, format=format)


async def preview_access(
    request: Request,
    options: PreviewOptions = Depends(preview_options),
    event_id: str = Depends(valid_event_id),
) -> AccessGrant:
    """预览参数先于认证校验，参数不合法时直接返回 400"""
    event = await load_event(event_id)
    grant = await resolve_grant(request, event, (Role.ADMIN, Role.GUEST))
    return check_guest_download(grant)


@router.get("/files/{filename}/preview")
async def preview_file(
    filename: str = Depends(path_filename),
    folder: str = Depends(query_folder),
    options: PreviewOptions = Depends(preview_options),
    grant: AccessGrant = Depends(preview_access),
) -> Response:
    return await _preview(grant, folder, filename, options)


@router.get("/files/{folder}/{filename}/preview")
async def preview_file_in_folder(
    folder: str = Depends(path_folder),
    filename: str = Depends(path_filename),
    options: PreviewOptions = Depends(preview_options),
    grant: AccessGrant = Depends(preview_access),
) -> Response:
    return await _preview(grant, folder, filename, options)


# ========== Download & delete ==========

async def _download(grant: AccessGrant, folder: str, filename: str) -> FileResponse:
    result = await get_file_store().get_file_stream(grant.event.event_id, folder, filename)
    _raise_on_failure(result)
    return FileResponse(result.data.path, headers={"Cache-Control": DOWNLOAD_CACHE_CONTROL})


async def _delete(grant: AccessGrant, folder: str, filename: str) -> DeleteFileResponse:
    result = await get_file_store().delete_file(grant.event.event_id, folder, filename)
    _raise_on_failure(result)
    return DeleteFileResponse(ok=True, message=result.data)


@router.get("/files/{filename}")
async def download_file(
    filename: str = Depends(path_filename),
    folder: str = Depends(query_folder),
    grant: AccessGrant = Depends(require_download_access),
) -> FileResponse:
    return await _download(grant, folder, filename)


@router.get("/files/{folder}/{filename}")
async def download_file_in_folder(
    folder: str = Depends(path_folder),
    filename: str = Depends(path_filename),
    grant: AccessGrant = Depends(require_download_access),
) -> FileResponse:
    return await _download(grant, folder, filename)


@router.delete("/files/{filename}", response_model=DeleteFileResponse)
async def delete_file(
    filename: str = Depends(path_filename),
    folder: str = Depends(query_folder),
    grant: AccessGrant = Depends(require_admin),
) -> DeleteFileResponse:
    """永久删除文件（管理员），无回收站"""
    return await _delete(grant, folder, filename)


@router.delete("/files/{folder}/{filename}", response_model=DeleteFileResponse)
async def delete_file_in_folder(
    folder: str = Depends(path_folder),
    filename: str = Depends(path_filename),
    grant: AccessGrant = Depends(require_admin),
) -> DeleteFileResponse:
    return await _delete(grant, folder, filename)
