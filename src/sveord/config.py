"""Configuration settings for sveord."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Define data directories from environment variables
DATA_DIR = Path(os.getenv("DATA_DIR", "./data"))
EXPORT_DIR = Path(os.getenv("EXPORT_DIR", str(DATA_DIR / "exports")))

# Level settings
CEFR_LEVELS = ["A1", "A2", "B1", "B2", "C1", "C2"]
UNKNOWN_LEVEL = "Unknown"


def ensure_directories() -> None:
    """Ensure all required directories exist."""
    directories = [
        DATA_DIR,
        EXPORT_DIR,
    ]

    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)


@dataclass
class PathSettings:
    """Path configuration settings."""
    data_dir: Path = DATA_DIR
    export_dir: Path = EXPORT_DIR


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", "sqlite:///sveord.db")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR", None)
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass
class BackendSettings:
    """Hosted backend (PostgREST) settings."""
    url: str = os.getenv("SUPABASE_URL", "")
    anon_key: str = os.getenv("SUPABASE_ANON_KEY", "")
    access_token: Optional[str] = os.getenv("SUPABASE_ACCESS_TOKEN") or None
    page_size: int = int(os.getenv("BACKEND_PAGE_SIZE", "1000"))
    timeout: float = float(os.getenv("BACKEND_TIMEOUT", "30"))


@dataclass
class EnrichmentSettings:
    """AI enrichment settings."""
    api_key: str = os.getenv("GEMINI_API_KEY", "")
    model: str = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
    api_version: str = os.getenv("GEMINI_API_VERSION", "v1")
    batch_size: int = int(os.getenv("ENRICH_BATCH_SIZE", "50"))
    range_start: int = int(os.getenv("ENRICH_RANGE_START", "1"))
    range_end: int = int(os.getenv("ENRICH_RANGE_END", "15000"))
    overwrite: bool = os.getenv("ENRICH_OVERWRITE", "false").lower() == "true"
    timeout: float = float(os.getenv("ENRICH_TIMEOUT", "60"))


@dataclass
class QuizSettings:
    """Quiz generation settings."""
    question_count: int = int(os.getenv("QUIZ_QUESTION_COUNT", "10"))
    min_pool: int = int(os.getenv("QUIZ_MIN_POOL", "4"))
    option_count: int = int(os.getenv("QUIZ_OPTION_COUNT", "4"))
    max_target_uses: int = int(os.getenv("QUIZ_MAX_TARGET_USES", "0"))  # 0 = unlimited


@dataclass
class MonitoringSettings:
    """Metrics settings."""
    enabled: bool = os.getenv("METRICS_ENABLED", "false").lower() == "true"
    port: int = int(os.getenv("METRICS_PORT", "9090"))


def get_path_settings() -> PathSettings:
    """Get path settings."""
    return PathSettings()


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_backend_settings() -> BackendSettings:
    """Get backend settings."""
    return BackendSettings()


def get_enrichment_settings() -> EnrichmentSettings:
    """Get enrichment settings."""
    return EnrichmentSettings()


def get_quiz_settings() -> QuizSettings:
    """Get quiz settings."""
    return QuizSettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    paths: PathSettings = field(default_factory=get_path_settings)
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    backend: BackendSettings = field(default_factory=get_backend_settings)
    enrichment: EnrichmentSettings = field(default_factory=get_enrichment_settings)
    quiz: QuizSettings = field(default_factory=get_quiz_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if self.quiz.question_count < 1:
            raise ValueError("QUIZ_QUESTION_COUNT must be positive")

        if self.quiz.option_count < 2:
            raise ValueError("QUIZ_OPTION_COUNT must be at least 2")

        if self.quiz.min_pool < self.quiz.option_count:
            raise ValueError("QUIZ_MIN_POOL cannot be smaller than QUIZ_OPTION_COUNT")

        if self.quiz.max_target_uses < 0:
            raise ValueError("QUIZ_MAX_TARGET_USES cannot be negative")

        if self.backend.page_size < 1:
            raise ValueError("BACKEND_PAGE_SIZE must be positive")

        if self.enrichment.batch_size < 1:
            raise ValueError("ENRICH_BATCH_SIZE must be positive")

        if self.enrichment.range_start > self.enrichment.range_end:
            raise ValueError("ENRICH_RANGE_START cannot be greater than ENRICH_RANGE_END")


# Create global settings instance
settings = Settings()
settings.validate()
