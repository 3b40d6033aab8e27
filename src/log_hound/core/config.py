from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field, validator


class Settings(BaseSettings):
    # Application
    debug: bool = Field(False, description="Trace queries and remote commands to stderr")

    # Query-poll backend
    poll_interval: float = Field(0.5, gt=0)

    # Follow mode
    follow_poll_interval: float = Field(0.1, gt=0)
    follow_buffer_size: int = Field(1000, ge=1)

    # SSH
    ssh_connect_timeout: float = Field(10.0, gt=0)
    ssh_strict_host_keys: bool = False
    ssh_default_user: str = "root"

    # Batch over-fetch heuristic (client-side filtering discards most lines)
    overfetch_multiplier: int = Field(10, ge=1)
    overfetch_minimum: int = Field(1000, ge=1)

    # Search defaults
    default_limit: int = Field(100, ge=1)
    default_time_range: str = "1h"
    config_path: Optional[str] = None

    @validator("default_time_range")
    def validate_time_range(cls, v):
        if not v or not v.strip():
            raise ValueError("default_time_range must not be empty")
        return v.strip().lower()

    class Config:
        env_prefix = "LOG_HOUND_"
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
