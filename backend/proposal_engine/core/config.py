"""Application configuration"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # API
    API_PREFIX: str = "/api"
    PROJECT_NAME: str = "Proposal Engine API"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Security
    # WHY: Owner identity arrives as a signed JWT; the issuer shares this secret
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_MINUTES: int = 1440  # 24 hours

    # Database
    DATABASE_URL: str = "postgresql://localhost:5432/proposals"

    # URLs
    FRONTEND_URL: str = "http://localhost:3000"
    PUBLIC_PROPOSAL_PATH: str = "/sow"

    # Proposals
    # WHY: 32 bytes of entropy makes public tokens unguessable
    PROPOSAL_TOKEN_BYTES: int = 32
    SOW_NUMBER_MAX_RETRIES: int = 5

    # Signature images
    SIGNATURE_MAX_BYTES: int = 2 * 1024 * 1024  # 2MB

    # S3 / AWS
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_REGION: str = "us-east-1"
    S3_ENDPOINT: Optional[str] = None
    S3_BUCKET_NAME: str = "proposal-signatures"

    # Slack Notifications
    SLACK_WEBHOOK_URL: Optional[str] = None
    SLACK_WEBHOOK_ENABLED: bool = False

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    @property
    def async_database_url(self) -> str:
        """Get async database URL"""
        return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")

    @property
    def public_proposal_base_url(self) -> str:
        """Base URL recipients open, the token is appended."""
        return f"{self.FRONTEND_URL.rstrip('/')}{self.PUBLIC_PROPOSAL_PATH}"


settings = Settings()
