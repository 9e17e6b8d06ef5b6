from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Autodesk Platform Services (required, no defaults: fail at startup)
    aps_client_id: str
    aps_client_secret: str
    aps_base_url: str = "https://developer.api.autodesk.com"
    aps_bucket_prefix: str = "autocad-viewer"
    aps_bucket_policy: str = "temporary"
    aps_scopes: str = "data:read data:write data:create bucket:create bucket:read"
    aps_request_timeout_seconds: float = 30.0

    # Conversion
    max_upload_bytes: int = 50 * 1024 * 1024
    poll_interval_seconds: float = 10.0
    max_poll_attempts: int = 30
    standard_processing_delay_seconds: float = 1.0

    # Blob storage
    blob_backend: Literal["local", "s3"] = "local"
    upload_dir: Path = Path("uploads")
    aws_region: str = "ap-southeast-2"
    aws_access_key_id: str = Field(default="")
    aws_secret_access_key: str = Field(default="")
    s3_bucket_name: str = Field(default="cad-viewer-uploads-dev")
    s3_prefix: str = "uploads/"

    # App
    app_env: str = "development"
    log_level: str = "INFO"

    # CORS (comma-separated origins, e.g. "http://localhost:5173,https://viewer.example.com")
    cors_origins: list[str] = Field(default=["*"])

    @field_validator("aps_client_id", "aps_client_secret")
    @classmethod
    def require_credentials(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("APS_CLIENT_ID and APS_CLIENT_SECRET must be set")
        return v.strip()

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors(cls, v: str | list) -> list[str]:
        if isinstance(v, str):
            return [o.strip() for o in v.split(",") if o.strip()]
        return v


settings = Settings()
