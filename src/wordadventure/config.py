"""Configuration settings for the word adventure engine."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Define base directory
BASE_DIR = Path(__file__).parent.parent.parent

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Define data directories from environment variables
DATA_DIR = Path(os.getenv("DATA_DIR", "./data"))
CATALOG_FILE = Path(os.getenv("CATALOG_FILE", str(DATA_DIR / "words.json")))

# Difficulty progression (completed words)
EASY_THRESHOLD = 50
MEDIUM_THRESHOLD = 100
DIFFICULTY_MULTIPLIERS = {"easy": 1.0, "medium": 1.5, "hard": 2.0}


def ensure_directories() -> None:
    """Ensure all required directories exist."""
    directories = [
        DATA_DIR,
    ]

    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)


@dataclass
class PathSettings:
    """Path configuration settings."""
    base_dir: Path = BASE_DIR
    data_dir: Path = DATA_DIR
    catalog_file: Path = CATALOG_FILE


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", "sqlite:///wordadventure.db")
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
class SchedulerSettings:
    """Word scheduling settings."""
    batch_size: int = int(os.getenv("BATCH_SIZE", "20"))
    review_cap: float = float(os.getenv("REVIEW_CAP", "0.6"))
    easy_threshold: int = int(os.getenv("EASY_THRESHOLD", str(EASY_THRESHOLD)))
    medium_threshold: int = int(os.getenv("MEDIUM_THRESHOLD", str(MEDIUM_THRESHOLD)))
    mastery_threshold: float = float(os.getenv("MASTERY_THRESHOLD", "0.5"))
    mastery_half_life_hours: float = float(os.getenv("MASTERY_HALF_LIFE_HOURS", "72"))
    min_cooldown_hours: float = float(os.getenv("MIN_COOLDOWN_HOURS", "4"))
    max_cooldown_hours: float = float(os.getenv("MAX_COOLDOWN_HOURS", "72"))
    difficulty_multipliers: dict[str, float] = field(default_factory=lambda: dict(DIFFICULTY_MULTIPLIERS))


@dataclass
class DashboardSettings:
    """Dashboard session settings."""
    words_per_session: int = int(os.getenv("DASHBOARD_WORDS_PER_SESSION", "20"))
    regeneration_interval: int = int(os.getenv("DASHBOARD_REGENERATION_INTERVAL", "10"))
    review_ratio: float = float(os.getenv("DASHBOARD_REVIEW_RATIO", "0.3"))
    challenge_span: int = int(os.getenv("DASHBOARD_CHALLENGE_SPAN", "50"))


@dataclass
class PersistenceSettings:
    """Snapshot persistence settings."""
    storage_key_prefix: str = os.getenv("STORAGE_KEY_PREFIX", "wordAdventure.session")
    debounce_seconds: float = float(os.getenv("SAVE_DEBOUNCE_SECONDS", "1.0"))
    low_priority_factor: float = float(os.getenv("LOW_PRIORITY_DEBOUNCE_FACTOR", "2.0"))
    max_retries: int = int(os.getenv("SAVE_MAX_RETRIES", "3"))
    max_snapshot_bytes: int = int(os.getenv("MAX_SNAPSHOT_BYTES", str(1024 * 1024)))
    poll_interval_seconds: float = float(os.getenv("STORAGE_POLL_INTERVAL", "2.0"))


@dataclass
class LifecycleSettings:
    """Session lifecycle settings."""
    auto_restore_minutes: int = int(os.getenv("AUTO_RESTORE_MINUTES", "30"))


@dataclass
class ProgressSettings:
    """Progress and streak settings."""
    day_start_hour: int = int(os.getenv("DAY_START_HOUR", "0"))


@dataclass
class MonitoringSettings:
    """Prometheus exporter settings."""
    enabled: bool = os.getenv("MONITORING_ENABLED", "false").lower() == "true"
    port: int = int(os.getenv("MONITORING_PORT", "9090"))


def get_path_settings() -> PathSettings:
    """Get path settings."""
    return PathSettings()


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_scheduler_settings() -> SchedulerSettings:
    """Get scheduler settings."""
    return SchedulerSettings()


def get_dashboard_settings() -> DashboardSettings:
    """Get dashboard settings."""
    return DashboardSettings()


def get_persistence_settings() -> PersistenceSettings:
    """Get persistence settings."""
    return PersistenceSettings()


def get_lifecycle_settings() -> LifecycleSettings:
    """Get lifecycle settings."""
    return LifecycleSettings()


def get_progress_settings() -> ProgressSettings:
    """Get progress settings."""
    return ProgressSettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    paths: PathSettings = field(default_factory=get_path_settings)
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    scheduler: SchedulerSettings = field(default_factory=get_scheduler_settings)
    dashboard: DashboardSettings = field(default_factory=get_dashboard_settings)
    persistence: PersistenceSettings = field(default_factory=get_persistence_settings)
    lifecycle: LifecycleSettings = field(default_factory=get_lifecycle_settings)
    progress: ProgressSettings = field(default_factory=get_progress_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if self.scheduler.batch_size < 1:
            raise ValueError("BATCH_SIZE must be positive")

        if self.scheduler.review_cap < 0 or self.scheduler.review_cap > 1:
            raise ValueError("REVIEW_CAP must be between 0 and 1")

        if self.scheduler.easy_threshold > self.scheduler.medium_threshold:
            raise ValueError("EASY_THRESHOLD cannot be greater than MEDIUM_THRESHOLD")

        if self.scheduler.min_cooldown_hours > self.scheduler.max_cooldown_hours:
            raise ValueError("MIN_COOLDOWN_HOURS cannot be greater than MAX_COOLDOWN_HOURS")

        if self.scheduler.mastery_half_life_hours <= 0:
            raise ValueError("MASTERY_HALF_LIFE_HOURS must be positive")

        if self.dashboard.words_per_session < 1:
            raise ValueError("DASHBOARD_WORDS_PER_SESSION must be positive")

        if self.dashboard.regeneration_interval < 1:
            raise ValueError("DASHBOARD_REGENERATION_INTERVAL must be positive")

        if self.persistence.debounce_seconds < 0:
            raise ValueError("SAVE_DEBOUNCE_SECONDS cannot be negative")

        if self.persistence.max_retries < 0:
            raise ValueError("SAVE_MAX_RETRIES cannot be negative")

        if self.progress.day_start_hour < 0 or self.progress.day_start_hour > 23:
            raise ValueError("DAY_START_HOUR must be between 0 and 23")


# Create global settings instance
settings = Settings()
settings.validate()
