from pydantic_settings import BaseSettings, NoDecode
from pydantic import field_validator
from typing import List, Union
from typing_extensions import Annotated
import json

DEFAULT_JWT_SECRET = "mosquito-alert-jwt-secret-change-in-production-32"


class Settings(BaseSettings):
    PROJECT_NAME: str = "Mosquito Alert API"
    API_V1_STR: str = "/api"
    LOG_LEVEL: str = "INFO"

    # Database - set DATABASE_URL to a PostgreSQL URL in production
    DATABASE_URL: str = "sqlite:///./mosquito_alert.db"

    # CORS Configuration
    # BACKEND_CORS_ORIGINS=https://app.example.com (single URL)
    # OR: BACKEND_CORS_ORIGINS=https://url1.com,https://url2.com (comma-separated)
    # OR: BACKEND_CORS_ORIGINS=["https://app.example.com"] (JSON array)
    BACKEND_CORS_ORIGINS: Annotated[List[str], NoDecode] = [
        "http://localhost:3000",
    ]

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse CORS origins from various formats: JSON array, comma-separated, or single URL."""
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            if v.startswith("["):
                try:
                    parsed = json.loads(v)
                    if isinstance(parsed, list):
                        return parsed
                except json.JSONDecodeError:
                    pass
            if "," in v:
                return [url.strip() for url in v.split(",") if url.strip()]
            if v.strip():
                return [v.strip()]
        return []

    @property
    def is_production(self) -> bool:
        return not self.DATABASE_URL.startswith("sqlite") and "localhost" not in self.DATABASE_URL

    # JWT Authentication
    JWT_SECRET_KEY: str = DEFAULT_JWT_SECRET
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 30  # 30 days

    # Report lifecycle
    CREATION_POLICY: str = "ai_gated"      # ai_gated | manual_review
    AI_FAILURE_POLICY: str = "reject"      # reject | provisional

    # Roboflow workflow (breeding-site classifier)
    ROBOFLOW_WORKFLOW_URL: str = "https://serverless.roboflow.com/mosquito-breeding-sites/workflows/custom-workflow"
    ROBOFLOW_API_KEY: str = ""
    AI_TIMEOUT_SECONDS: float = 35.0

    # Cloudinary image host
    CLOUDINARY_CLOUD_NAME: str = ""
    CLOUDINARY_API_KEY: str = ""
    CLOUDINARY_API_SECRET: str = ""
    CLOUDINARY_FOLDER: str = "mosquito-reports"
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024

    # Admin seeding (scripts/seed_admins.py)
    ADMIN_SEED_NAME: str = "Admin User"
    ADMIN_SEED_EMAIL: str = ""
    ADMIN_SEED_PASSWORD: str = ""

    class Config:
        case_sensitive = True
        env_file = ".env"


settings = Settings()
