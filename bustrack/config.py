"""Application configuration management."""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# Load environment variables from project-level .env if available
PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=PROJECT_ROOT / ".env")


class Settings:
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = os.getenv("APP_NAME", "Bus Fleet Tracker")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    environment: str = os.getenv("ENVIRONMENT", "development")
    debug: bool = os.getenv("DEBUG", "False") == "True"

    # Server
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8000"))
    reload: bool = os.getenv("RELOAD", "True") == "True"

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./bustrack.db")

    # CORS
    cors_origins: List[str] = [
        origin.strip()
        for origin in os.getenv(
            "CORS_ALLOW_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:8000",
        ).split(",")
        if origin.strip()
    ]
    cors_allow_credentials: bool = True

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    centralized_logging_enabled: bool = os.getenv("CENTRALIZED_LOGGING_ENABLED", "False") == "True"
    centralized_log_level: str = os.getenv("CENTRALIZED_LOG_LEVEL", "INFO")
    centralized_log_queue_size: int = int(os.getenv("CENTRALIZED_LOG_QUEUE_SIZE", "1000"))

    # Security
    admin_api_token: str = os.getenv("ADMIN_API_TOKEN", "")

    # Arrival prediction
    prediction_default_base_minutes: float = float(os.getenv("PREDICTION_DEFAULT_BASE_MINUTES", "30"))
    prediction_baseline_speed_kmh: float = float(os.getenv("PREDICTION_BASELINE_SPEED_KMH", "30"))
    prediction_accurate_threshold: int = int(os.getenv("PREDICTION_ACCURATE_THRESHOLD", "80"))
    prediction_model_version: str = os.getenv("PREDICTION_MODEL_VERSION", "1.0.0")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment.lower() == "development"


# Global settings instance
settings = Settings()
