"""Configuration for scenario-sync."""

import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .control.retry import RetryConfig

ENV_PREFIX = "SCENARIO_SYNC_"


class SyncConfig(BaseModel):
    """Settings shared by the editor and its remote collaborators.

    ``endpoint`` None means no remote service: the editor then uses the
    in-memory adapter and the built-in defaults.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    endpoint: str | None = None
    timeout: float = Field(default=30.0, gt=0)
    page_size: int = Field(default=100, ge=1)
    defaults_variant: str | None = None
    retry: RetryConfig = Field(default_factory=RetryConfig)
    log_level: str = "INFO"

    @field_validator("endpoint")
    @classmethod
    def _strip_endpoint(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip().rstrip("/")
        return value or None

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @classmethod
    def from_env(cls, **overrides: Any) -> "SyncConfig":
        """Build a config from ``SCENARIO_SYNC_*`` variables.

        Explicit ``overrides`` win over the environment; None overrides are
        ignored.
        """
        values: dict[str, Any] = {}
        env = {
            "endpoint": os.environ.get(f"{ENV_PREFIX}ENDPOINT"),
            "timeout": os.environ.get(f"{ENV_PREFIX}TIMEOUT"),
            "page_size": os.environ.get(f"{ENV_PREFIX}PAGE_SIZE"),
            "log_level": os.environ.get(f"{ENV_PREFIX}LOG_LEVEL"),
            "defaults_variant": os.environ.get(f"{ENV_PREFIX}DEFAULTS_VARIANT"),
        }
        for key, value in env.items():
            if value not in (None, ""):
                values[key] = value

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)
