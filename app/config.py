"""
Application configuration using environment variables.
"""
from functools import lru_cache
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "MediaGen API"
    debug: bool = False
    environment: str = "development"

    # AWS / Bedrock
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_session_token: Optional[str] = None
    aws_region: str = "us-east-1"
    assume_role_arn: str = ""
    assume_role_session_name: str = "nova-reel-media-generator"
    assume_role_duration_seconds: int = 3600  # 1 hour
    output_s3_bucket: str = "nova-reel-output-videos"
    video_model_id: str = "amazon.nova-reel-v1:0"
    image_model_id: str = "amazon.nova-canvas-v1:0"

    # Storage
    media_path: str = "./media"
    database_url: str = "sqlite:///./data/app.db"

    # Generation
    max_file_size_mb: int = 10
    max_prompt_tokens: int = 512
    generation_timeout_seconds: float = 300  # 5 minutes
    poll_interval_seconds: float = 15
    poll_max_attempts: int = 120  # ~30 minutes at 15s
    default_video_duration_seconds: int = 6
    video_fps: int = 24

    # Housekeeping
    job_max_age_seconds: float = 3600
    job_sweep_interval_seconds: float = 600
    history_retention_days: int = 0  # 0 disables the retention sweep
    record_failed_generations: bool = False

    # CORS
    cors_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:5174",
        "http://localhost:5175",
        "http://localhost:3000",
    ]

    # Rate limiting
    generate_rate_limit: str = "10/minute"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @property
    def output_s3_uri(self) -> str:
        return f"s3://{self.output_s3_bucket}"

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
