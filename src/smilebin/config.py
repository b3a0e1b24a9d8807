"""Runtime configuration read from the environment (and a .env file)."""

import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

ENV_PREFIX = "SMILEBIN_"
DEFAULT_BACKEND_URL = "http://localhost:4000"


class Config(BaseModel):
    """
    Settings shared by the CLI, the TUI and the web app.

    Built once by `load_config` and passed down, rather than read from
    the environment in the middle of an operation.
    """

    backend_url: str = DEFAULT_BACKEND_URL
    token: str | None = None
    user_id: str | None = None
    git_timeout: float = Field(default=30.0, gt=0)
    retry_interval: float = Field(default=180.0, gt=0)
    max_concurrency: int = Field(default=8, gt=0)
    log_level: str | None = None
    offline: bool = False

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("backend_url")
    @classmethod
    def _check_backend_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("must start with http:// or https://")
        return value


def _load_env_overrides() -> dict[str, Any]:
    """Map SMILEBIN_* environment variables onto Config fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX) or not value.strip():
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Config.model_fields:
            overrides[field_name] = value.strip()
    return overrides


def load_config(offline: bool = False) -> Config:
    """
    Load settings from SMILEBIN_* environment variables.

    Raises ValueError naming each variable that holds an invalid value.
    """
    load_dotenv()
    data = _load_env_overrides()
    if offline:
        data["offline"] = True
    try:
        return Config(**data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{ENV_PREFIX}{str(error['loc'][0]).upper()}: {error['msg']}"
            for error in exc.errors()
        )
        raise ValueError(f"Invalid configuration: {problems}") from None
