import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Annotated, List, Optional, Tuple, Type
from urllib.parse import urlsplit

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from pulse.constants import CONFIG_FILE_ENV, DEFAULT_CONFIG_FILE

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    """
    Monitor settings, shared by the agent, the aggregator and the presenter.

    Values are read from the environment first, then from the YAML file named
    by `PULSE_CONFIG_FILE` (`pulse.yaml` by default), then fall back to the
    defaults below.
    """

    endpoints: Annotated[List[str], NoDecode] = Field(
        default_factory=list, description="Monitored URLs, in probe order"
    )
    interval_ms: int = Field(5000, gt=0, description="Pause between two sweeps")
    timeout_ms: int = Field(5000, gt=0, description="Timeout of a single probe")
    window_size: int = Field(120, gt=0, description="Latency samples kept per URL")

    broker_url: str = "redis://localhost:6379/0"
    queue_name: str = "urlstatus"
    summary_channel: str = "stats"
    prefetch: int = Field(1, gt=0)

    listen_host: str = "0.0.0.0"
    listen_port: int = 17657
    subscriber_queue_size: int = Field(64, gt=0)
    send_timeout_ms: int = Field(1000, gt=0)

    shutdown_grace_ms: Optional[int] = Field(None, gt=0)

    debug: bool = False
    log_level: str = "INFO"
    log_file: Optional[str] = None

    model_config = SettingsConfigDict(
        # Prefix the environment variable not to mix up with other variables
        # used by the OS or other software.
        env_prefix="pulse_",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        yaml_file = os.environ.get(CONFIG_FILE_ENV, DEFAULT_CONFIG_FILE)
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file),
        )

    @field_validator("endpoints", mode="before")
    @classmethod
    def split_endpoints(cls, value):
        if isinstance(value, str):
            value = value.split(",")
        return value

    @field_validator("endpoints")
    @classmethod
    def check_endpoints(cls, value: List[str]) -> List[str]:
        endpoints = []
        for url in value:
            url = url.strip()
            if not url or url in endpoints:
                continue
            parsed = urlsplit(url)
            if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
                raise ValueError(f"not an absolute http(s) URL: {url!r}")
            endpoints.append(url)
        return endpoints

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {value!r}")
        return level

    @property
    def interval(self) -> float:
        return self.interval_ms / 1000

    @property
    def timeout(self) -> float:
        return self.timeout_ms / 1000

    @property
    def send_timeout(self) -> float:
        return self.send_timeout_ms / 1000

    @property
    def shutdown_grace(self) -> float:
        if self.shutdown_grace_ms is None:
            return self.timeout
        return self.shutdown_grace_ms / 1000


def setup_logging(level: str = "INFO", log_file: Optional[str] = None):
    """
    Configure the root logger with a console handler and, when `log_file` is
    given, a rotating file handler (5MB per file, 3 backups).
    """

    formatter = logging.Formatter(LOG_FORMAT)

    logger = logging.getLogger()
    logger.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = RotatingFileHandler(
            log_file, maxBytes=5 * 1024 * 1024, backupCount=3
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


settings = Settings()
