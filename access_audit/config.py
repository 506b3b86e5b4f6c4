"""Runtime settings and run configuration loading."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError
from pydantic_settings import BaseSettings

from access_audit.errors import ConfigurationError
from access_audit.models import RunConfig


class AuditSettings(BaseSettings):
    """Audit engine tuning.

    All settings can be overridden via environment variables prefixed
    with ``AUDIT_`` (e.g., AUDIT_RETRIEVE_BATCH_SIZE).
    """

    # Share retrieved metadata between policies of one run
    cache_metadata: bool = True
    # Maximum number of components per metadata retrieve
    retrieve_batch_size: int = 50
    # Login history window when the users policy does not configure one
    default_login_history_days: int = 30

    model_config = {"env_prefix": "AUDIT_", "case_sensitive": False}


settings = AuditSettings()


def load_run_config(data: Mapping[str, Any]) -> RunConfig:
    """Validate raw configuration content into a RunConfig.

    Raises:
        ConfigurationError: If the content does not match the schema.
    """
    try:
        return RunConfig.model_validate(dict(data))
    except ValidationError as exc:
        first = exc.errors()[0]
        raise ConfigurationError(
            f"Invalid audit config: {first['msg']}",
            [str(p) for p in first["loc"]],
        ) from exc
