import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class ValidatorConfig(BaseModel):
    """
    Configuration for circular dependency validation.
    """
    rollup_marker: str = Field(
        default="RollUp",
        description="Elements whose name contains this marker are never used as walk roots"
    )
    exclude_intermediate_rollups: bool = Field(
        default=False,
        description="Also drop part edges leading into roll-up elements"
    )
    run_in_thread: bool = Field(
        default=True,
        description="Run extraction and walking in a worker thread instead of on the event loop"
    )
    log_level: str = Field(
        default="INFO",
        description="Level applied to the validator loggers"
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    def is_rollup(self, name: Optional[str]) -> bool:
        return bool(self.rollup_marker) and name is not None and self.rollup_marker in name

    @classmethod
    def from_env(cls) -> "ValidatorConfig":
        """Build a config from CIRCDEP_* environment variables (and a .env file if present)."""
        load_dotenv()
        defaults = cls()
        return cls(
            rollup_marker=os.getenv("CIRCDEP_ROLLUP_MARKER", defaults.rollup_marker),
            exclude_intermediate_rollups=_env_flag(
                "CIRCDEP_EXCLUDE_INTERMEDIATE_ROLLUPS", defaults.exclude_intermediate_rollups
            ),
            run_in_thread=_env_flag("CIRCDEP_RUN_IN_THREAD", defaults.run_in_thread),
            log_level=os.getenv("CIRCDEP_LOG_LEVEL", defaults.log_level),
        )
