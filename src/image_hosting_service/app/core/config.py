from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


def get_project_root() -> Path:
    current_path = Path(__file__).parent
    while current_path != current_path.parent:
        if (current_path / "pyproject.toml").exists():
            return current_path
        current_path = current_path.parent
    return Path(".")


class Settings(BaseSettings):
    # Application Settings
    APP_NAME: str = Field(default="Image Hosting Service")
    DEBUG: bool = Field(default=False)
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=5000)
    PUBLIC_BASE_URL: str = Field(default="http://localhost:5000")

    # CORS Settings
    ALLOWED_ORIGINS: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5000"]
    )

    # DB Settings
    DATABASE_URL: str = Field(default="sqlite:///./storage/databases/image_hosting.db")

    # Auth Settings
    JWT_SECRET: str = Field(default="change-me-in-production")
    JWT_ALGORITHM: str = Field(default="HS256")
    JWT_EXPIRES_HOURS: int = Field(default=24 * 7)
    API_KEY_PREFIX: str = Field(default="iv_")
    REQUIRE_EMAIL_VERIFICATION: bool = Field(default=True)

    # Upload Settings
    MAX_UPLOAD_SIZE: int = Field(default=50 * 1024 * 1024)  # 50MiB
    ALLOWED_CONTENT_TYPES: list[str] = Field(
        default=[
            "image/jpeg",
            "image/jpg",
            "image/png",
            "image/webp",
            "image/gif",
            "image/svg+xml",
            "image/tiff",
            "image/avif",
            "image/bmp",
        ]
    )
    DEFAULT_STORAGE_LIMIT: int = Field(default=1024 * 1024 * 1024)  # 1GiB

    # Object Storage Settings
    B2_KEY_ID: str = Field(default="")
    B2_APPLICATION_KEY: str = Field(default="")
    B2_BUCKET_ID: str = Field(default="")
    B2_BUCKET_NAME: str = Field(default="")
    B2_ENDPOINT: str = Field(default="https://api.backblazeb2.com")
    B2_AUTH_TTL_SECONDS: int = Field(default=23 * 60 * 60)
    CDN_BASE_URL: str | None = Field(default=None)
    STORAGE_TIMEOUT_SECONDS: float = Field(default=30.0)
    STORAGE_FAILURE_POLICY: Literal["fail", "degrade"] = Field(default="fail")
    LOCAL_STORAGE_DIR: str = Field(default="./storage/uploads")

    # Persistence Settings
    PERSISTENCE_TIMEOUT_SECONDS: float = Field(default=10.0)

    # Event Log Settings
    EVENT_LOG_TIMEOUT_SECONDS: float = Field(default=2.0)
    EVENT_LOG_RETENTION_DAYS: int = Field(default=30)

    # Reconciliation Settings
    ORPHAN_GRACE_PERIOD_HOURS: int = Field(default=24)

    # Logging Settings
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE: str = Field(default="./logs/image_hosting.log")

    model_config = {
        "env_file": get_project_root() / ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore",
    }

    @property
    def absolute_database_url(self) -> str:
        """Get absolute database URL based on project root."""
        if self.DATABASE_URL.startswith("sqlite:///./"):
            relative_path = self.DATABASE_URL.replace("sqlite:///./", "")
            absolute_path = get_project_root() / relative_path
            return f"sqlite:///{absolute_path}"
        return self.DATABASE_URL

    @property
    def absolute_local_storage_dir(self) -> str:
        """Get absolute path for the local fallback storage directory."""
        return str(get_project_root() / self.LOCAL_STORAGE_DIR)

    @property
    def absolute_log_file(self) -> str:
        return str(get_project_root() / self.LOG_FILE)

    @property
    def b2_configured(self) -> bool:
        return bool(self.B2_KEY_ID and self.B2_APPLICATION_KEY and self.B2_BUCKET_ID)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
