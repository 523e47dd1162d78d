from pathlib import Path

from pydantic_settings import BaseSettings


BASE_DIR = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    app_name: str = "eventdrop"
    debug: bool = False
    log_level: str = "INFO"
    data_root_path: str = str(BASE_DIR / "data" / "events")
    upload_temp_path: str = str(BASE_DIR / "data" / "uploads")
    cors_origins: list[str] = []
    upload_max_file_size_bytes: int = 0  # 0 = 不限制
    upload_max_total_size_bytes: int = 0
    allow_event_creation: bool = True
    allowed_domains: list[str] = []
    support_subdomain: bool = True
    # 认证失败限流，max_attempts <= 0 时关闭
    auth_rate_limit_max_attempts: int = 10
    auth_rate_limit_window_seconds: int = 600
    auth_rate_limit_block_seconds: int = 300

    class Config:
        env_prefix = "EVENTDROP_"


settings = Settings()
