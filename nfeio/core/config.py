"""Client configuration and its validation."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Any

from nfeio.api.http.retry import RetryPolicy
from nfeio.core.constants import (
    DEFAULT_BASE_URL,
    DEFAULT_ENVIRONMENT,
    DEFAULT_HTTP_TIMEOUT_SEC,
    ENVIRONMENTS,
    HTTP_MAX_RETRIES,
)
from nfeio.core.exceptions import ConfigurationError


def _get_env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _get_number_env(name: str, default: float, cast: type = float) -> Any:
    value = _get_env(name)
    if value is None:
        return default
    try:
        return cast(value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be numeric, got {value!r}") from exc


@dataclass(frozen=True)
class ClientConfig:
    """Configuracao imutavel do cliente.

    Reconfiguring produces a new instance (see :meth:`with_overrides`); a
    running request never sees a half-updated config.
    """

    api_key: str | None = None
    environment: str = DEFAULT_ENVIRONMENT
    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_HTTP_TIMEOUT_SEC
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self) -> None:
        if self.api_key is not None:
            object.__setattr__(self, "api_key", self.api_key.strip() or None)
        validate_config(self)

    @classmethod
    def from_env(cls, **overrides: Any) -> "ClientConfig":
        """Build a config from ``NFE_*`` environment variables.

        Explicit keyword arguments win over the environment.
        """
        values: dict[str, Any] = {
            "api_key": _get_env("NFE_API_KEY"),
            "environment": _get_env("NFE_ENVIRONMENT") or DEFAULT_ENVIRONMENT,
            "base_url": _get_env("NFE_BASE_URL") or DEFAULT_BASE_URL,
            "timeout": _get_number_env("NFE_TIMEOUT_SEC", DEFAULT_HTTP_TIMEOUT_SEC),
            "retry_policy": RetryPolicy(
                max_retries=_get_number_env("NFE_MAX_RETRIES", HTTP_MAX_RETRIES, int)
            ),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    def with_overrides(self, **changes: Any) -> "ClientConfig":
        return replace(self, **changes)


def validate_config(config: ClientConfig) -> None:
    """Raise ConfigurationError when ``config`` cannot be used.

    The API key is not checked here: resources that need it check it when they
    are first used.
    """
    if config.environment not in ENVIRONMENTS:
        raise ConfigurationError(
            f"Invalid environment: {config.environment}. "
            f"Must be one of {', '.join(sorted(ENVIRONMENTS))}."
        )

    if not config.base_url or not config.base_url.startswith(("http://", "https://")):
        raise ConfigurationError(f"Invalid base_url: {config.base_url!r}")

    if config.timeout <= 0:
        raise ConfigurationError(f"timeout must be > 0, got {config.timeout}")

    if not isinstance(config.retry_policy, RetryPolicy):
        raise ConfigurationError("retry_policy must be a RetryPolicy")
