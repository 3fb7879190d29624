"""
Application configuration management.
Centralizes all configuration settings for the screen clip service.
"""

import shutil
from pathlib import Path
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings


def get_app_data_dir() -> Path:
    """Get the default data directory (next to this file in development)."""
    return Path(__file__).parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Screen Clip"
    debug: bool = False

    # Paths
    base_dir: Path = get_app_data_dir()
    upload_dir: Path = base_dir / "uploads"
    database_url: str = f"sqlite:///{base_dir / 'videos.db'}"

    # FFmpeg auto-detection with fallback to PATH lookup at spawn time
    ffmpeg_path: str = shutil.which("ffmpeg") or "ffmpeg"
    ffprobe_path: str = ""

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list[str] = ["*"]
    public_base_url: str = "http://localhost:8000"

    # Upload limits
    max_upload_mb: int = 200
    max_request_seconds: float = 60.0

    # Object storage (S3 / R2 / MinIO). Leave unset for local filesystem storage.
    s3_endpoint: Optional[str] = None
    s3_access_key_id: Optional[str] = None
    s3_secret_access_key: Optional[str] = None
    s3_bucket_name: str = ""
    s3_public_url: str = ""
    s3_region: str = "auto"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @model_validator(mode="after")
    def _derive_ffprobe_path(self) -> "Settings":
        if not self.ffprobe_path:
            ffmpeg = Path(self.ffmpeg_path)
            self.ffprobe_path = str(ffmpeg.with_name(ffmpeg.name.replace("ffmpeg", "ffprobe")))
        self.public_base_url = self.public_base_url.rstrip("/")
        self.s3_public_url = self.s3_public_url.rstrip("/")
        return self

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @property
    def use_object_storage(self) -> bool:
        """Remote storage is selected only when endpoint and credentials are configured."""
        return bool(self.s3_endpoint and self.s3_access_key_id)


settings = Settings()
