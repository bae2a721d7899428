"""
Configuration management - loads settings from YAML and environment variables
"""

from pathlib import Path
from functools import lru_cache
from typing import Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class BrowserConfig(BaseModel):
    """Browser automation settings"""
    type: str = "chromium"
    headless: bool = True
    slow_mo: int = 0
    viewport: dict = Field(default_factory=lambda: {"width": 1920, "height": 1080})
    user_agent: str = ""
    launch_args: list[str] = Field(default_factory=lambda: [
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-blink-features=AutomationControlled",
        "--disable-dev-shm-usage",
        "--disable-gpu",
        "--window-size=1920,1080",
    ])


class DatabaseConfig(BaseModel):
    """Database settings"""
    path: str = "data/listings.db"
    echo: bool = False


class LoggingConfig(BaseModel):
    """Logging settings"""
    level: str = "INFO"
    file: str = "logs/jobpipe.log"
    max_size: int = 10
    backup_count: int = 5
    memory_capacity: int = 1000   # lines kept for /api/logs


class ScrapingConfig(BaseModel):
    """Extraction manager behaviour"""
    inter_run_delay: float = 5.0   # seconds between sources in run_all
    chunk_delay: float = 10.0      # seconds between concurrent chunks
    max_concurrent: int = 2
    stale_after_days: int = 90


class SourceOverride(BaseModel):
    """Per-source tunables layered over the built-in source definitions"""
    enabled: bool = True
    max_pages: Optional[int] = None
    max_retries: Optional[int] = None
    request_delay: Optional[float] = None
    base_delay: Optional[float] = None


class QueueConfig(BaseModel):
    """Task queue settings"""
    poll_interval: float = 1.0
    retention_minutes: int = 60
    max_attempts: int = 3


class TaskOverride(BaseModel):
    """Scheduled task overrides"""
    schedule: Optional[str] = None
    enabled: Optional[bool] = None


class SchedulerConfig(BaseModel):
    """Scheduler settings"""
    timezone: str = "Asia/Hong_Kong"
    log_retention_days: int = 30
    tasks: dict[str, TaskOverride] = Field(default_factory=dict)


class ApiConfig(BaseModel):
    """HTTP API settings"""
    host: str = "127.0.0.1"
    port: int = 8000


class Settings(BaseSettings):
    """
    Main settings class that combines YAML config with environment variables.
    Environment variables take precedence.
    """
    # From environment variables
    headless: Optional[bool] = Field(default=None, alias="HEADLESS")
    log_level: Optional[str] = Field(default=None, alias="LOG_LEVEL")
    database_path: Optional[str] = Field(default=None, alias="DATABASE_PATH")
    scheduler_timezone: Optional[str] = Field(default=None, alias="SCHEDULER_TIMEZONE")

    # From YAML config
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    scraping: ScrapingConfig = Field(default_factory=ScrapingConfig)
    sources: dict[str, SourceOverride] = Field(default_factory=dict)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True

    def model_post_init(self, __context) -> None:
        # Environment variables win over the YAML sections
        if self.headless is not None:
            self.browser.headless = self.headless
        if self.log_level:
            self.logging.level = self.log_level
        if self.database_path:
            self.database.path = self.database_path
        if self.scheduler_timezone:
            self.scheduler.timezone = self.scheduler_timezone

    @classmethod
    def load(cls, config_path: Optional[str | Path] = None) -> "Settings":
        """
        Load settings from YAML file and merge with environment variables.
        """
        if config_path is None:
            config_path = Path("config/settings.yaml")
        else:
            config_path = Path(config_path)

        yaml_config = {}
        if config_path.exists():
            with open(config_path, 'r') as f:
                yaml_config = yaml.safe_load(f) or {}

        return cls(**yaml_config)

    def source_override(self, name: str) -> SourceOverride:
        """Overrides for one source; keys in the sources section are case-insensitive"""
        for key, override in self.sources.items():
            if key.lower() == name.lower():
                return override
        return SourceOverride()

    def ensure_directories(self) -> None:
        """Create necessary directories if they don't exist"""
        directories = [
            Path(self.database.path).parent,
            Path(self.logging.file).parent,
            Path("config"),
        ]
        for dir_path in directories:
            dir_path.mkdir(parents=True, exist_ok=True)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Call this function to access settings throughout the application.
    """
    settings = Settings.load()
    settings.ensure_directories()
    return settings
