"""
Common Configuration

Settings shared by the worker backends and the logging setup. Values come from
the environment or a local .env file.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class BaseAppConfig(BaseSettings):
    """
    Common application settings.
    """

    # ===== Logging =====
    LOG_LEVEL: str = Field(default="INFO", description="Level of the worker loggers")
    LOG_CONFIG_PATH: str = Field(
        default="config/worker_log.yaml", description="YAML dictConfig loaded by setup_logging"
    )

    # ===== HTTP =====
    VERIFY_SSL: bool = Field(default=False, description="Whether to verify SSL certificates")

    # ===== Lambda Container Defaults =====
    LAMBDA_PORT: int = Field(default=8080, description="Port the RIE listens on inside the container")
    READINESS_TIMEOUT: float = Field(
        default=10.0, description="Budget in seconds for container readiness polling"
    )

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )
