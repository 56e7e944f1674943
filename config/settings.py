"""
Relationship Intelligence Engine - Configuration

Loads settings from environment variables with sensible defaults.
"""

from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

# Load .env file
load_dotenv()

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = Field(
        default=f"sqlite:///{PROJECT_ROOT}/data/relationship_intel.db"
    )

    @property
    def project_root(self) -> Path:
        """Return project root directory."""
        return PROJECT_ROOT

    # Application
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: str = Field(default="INFO")
    LOG_TO_FILE: bool = Field(default=True)

    # Vendor APIs (keys loaded from environment)
    SWARM_API_KEY: str = Field(default="")
    PDL_API_KEY: str = Field(default="")
    HTTP_REQUEST_DELAY_MS: int = Field(default=250)
    HTTP_TIMEOUT_SECONDS: float = Field(default=10.0)

    # External classifier (LLM)
    ANTHROPIC_API_KEY: str = Field(default="")
    CLASSIFIER_MODEL: str = Field(default="claude-sonnet-4-20250514")
    CLASSIFIER_TIMEOUT_SECONDS: float = Field(default=10.0)
    CLASSIFIER_MAX_RETRIES: int = Field(default=2)
    CLASSIFIER_DELAY_MS: int = Field(default=250)

    # Batch processing
    BATCH_CONCURRENCY: int = Field(default=5)
    MAX_BATCH_ERRORS: int = Field(default=50)

    # Categorization
    CATEGORY_CONFIDENCE_THRESHOLD: float = Field(default=0.7)
    TITLE_CACHE_SIZE: int = Field(default=2048)
    TITLE_CACHE_TTL_SECONDS: int = Field(default=3600)

    # Prospect matching
    WARM_INTRO_STRENGTH_THRESHOLD: float = Field(default=0.7)
    WARM_INTRO_SCORE_THRESHOLD: int = Field(default=50)
    MAX_MATCHES_PER_PROSPECT: int = Field(default=10)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
