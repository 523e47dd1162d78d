import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from eventdrop.core.config import settings
from eventdrop.core.errors import ApiError, ErrorKey, ErrorResponse
from eventdrop.routers import config, events, files
from eventdrop.services.event_store import get_event_store

logger = logging.getLogger(__name__)

# 校验失败时按字段名决定错误码，其余字段统一为 INVALID_INPUT
_ERROR_KEY_BY_FIELD = {
    "eventId": ErrorKey.INVALID_EVENT_ID,
    "event_id": ErrorKey.INVALID_EVENT_ID,
    "filename": ErrorKey.INVALID_FILENAME,
    "folder": ErrorKey.INVALID_FOLDER,
    "from": ErrorKey.INVALID_FOLDER,
    "to": ErrorKey.INVALID_FOLDER,
}

_MIN_CTX_KEYS = ("min_length", "ge", "gt")
_MAX_CTX_KEYS = ("max_length", "le", "lt")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理器"""
    await get_event_store().ensure_base_dir()
    Path(settings.upload_temp_path).mkdir(parents=True, exist_ok=True)
    logger.info(f"Data root: {settings.data_root_path}, upload staging: {settings.upload_temp_path}")
    yield


def _error_json(status_code: int, error: ErrorResponse, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error.model_dump(by_alias=True, exclude_none=True),
        headers=headers,
    )


def validation_error_response(exc: RequestValidationError) -> ErrorResponse:
    """把第一个校验错误转换为统一的错误响应"""
    errors = exc.errors()
    issue = errors[0] if errors else {}
    loc = [str(part) for part in issue.get("loc", ())]
    fields = loc[1:] if len(loc) > 1 else loc
    field = next((part for part in reversed(fields) if not part.isdigit()), "")
    error_key = _ERROR_KEY_BY_FIELD.get(field, ErrorKey.INVALID_INPUT)

    additional_params: dict[str, int] = {}
    ctx = issue.get("ctx") or {}
    for key in _MIN_CTX_KEYS:
        if isinstance(ctx.get(key), int):
            additional_params["MIN_REQUIRED"] = ctx[key]
            break
    for key in _MAX_CTX_KEYS:
        if isinstance(ctx.get(key), int):
            additional_params["MAX_ALLOWED"] = ctx[key]
            break

    return ErrorResponse(
        message=issue.get("msg") or "Invalid input.",
        error_key=error_key,
        property=".".join(fields) or None,
        additional_params=additional_params,
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        return _error_json(exc.status_code, exc.error, exc.headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error_json(400, validation_error_response(exc))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        error = ErrorResponse(message="Internal server error.", error_key=ErrorKey.INTERNAL_ERROR)
        return _error_json(500, error)


def create_app() -> FastAPI:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "Retry-After"],
    )

    @app.middleware("http")
    async def request_log_middleware(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f} ms)")
        return response

    register_exception_handlers(app)

    app.include_router(config.router)
    app.include_router(events.router)
    app.include_router(files.router)

    # 前端为单页应用，未知路径回退到 index.html
    static_dir = Path(__file__).parent.parent / "static"
    if static_dir.exists():
        index_file = static_dir / "index.html"

        @app.middleware("http")
        async def spa_fallback_middleware(request: Request, call_next):
            response = await call_next(request)
            path = request.url.path
            if (
                response.status_code == 404
                and request.method == "GET"
                and not path.startswith("/api/")
                and index_file.exists()
            ):
                return FileResponse(index_file)
            return response

        app.mount("/", StaticFiles(directory=str(static_dir), html=True), name="static")

    return app


app = create_app()
