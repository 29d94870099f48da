"""Broker configuration settings.

BrokerSettings is the single configuration object accepted by create_app().
It is a plain dataclass (not env-coupled) so tests can inject config without
touching os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from .broker.credentials import (
    DEFAULT_ATTEMPT_WINDOW_SECONDS,
    DEFAULT_POLL_INTERVAL_SECONDS,
)
from .broker.registry import DEFAULT_CONFIG_MAP_NAME, DEFAULT_CONFIG_NAMESPACE

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
_TRUTHY = frozenset({"1", "true", "yes", "on"})


@dataclass(frozen=True, slots=True)
class BrokerSettings:
    """Configuration for the broker FastAPI application.

    All fields have defaults for local development, where the object store
    is in-memory. Non-local environments talk to the Kubernetes API through
    ``KubernetesClient.from_config`` (in-cluster service account or KUBECONFIG).
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, dev, staging, production."""

    # ── Broker behaviour ───────────────────────────────────────────
    async_enabled: bool = False
    """Answer 202 to callers that send accepts_incomplete=true."""

    # ── Instance registry ──────────────────────────────────────────
    config_namespace: str = DEFAULT_CONFIG_NAMESPACE
    config_map_name: str = DEFAULT_CONFIG_MAP_NAME

    # ── Credentials ────────────────────────────────────────────────
    credential_window_seconds: float = DEFAULT_ATTEMPT_WINDOW_SECONDS
    """Deadline for secret creation and verification retry loops."""

    credential_poll_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS

    # ── Logging ────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if not self.config_namespace:
            errors.append("config_namespace is required")
        if not self.config_map_name:
            errors.append("config_map_name is required")
        if self.credential_window_seconds <= 0:
            errors.append("credential_window_seconds must be > 0")
        if self.credential_poll_seconds <= 0:
            errors.append("credential_poll_seconds must be > 0")
        if self.log_level.upper() not in _LOG_LEVELS:
            errors.append(f"log_level must be one of {sorted(_LOG_LEVELS)}")
        return errors

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> BrokerSettings:
        """Build settings from environment variables.

        Tests should construct BrokerSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        def _float(name: str, default: float) -> float:
            raw = env.get(name, "")
            return float(raw) if raw else default

        return cls(
            environment=env.get("ENVIRONMENT", "local"),
            async_enabled=env.get("BROKER_ASYNC", "").lower() in _TRUTHY,
            config_namespace=env.get("BROKER_CONFIG_NAMESPACE", DEFAULT_CONFIG_NAMESPACE),
            config_map_name=env.get("BROKER_CONFIG_MAP_NAME", DEFAULT_CONFIG_MAP_NAME),
            credential_window_seconds=_float(
                "BROKER_CREDENTIAL_WINDOW_SECONDS", DEFAULT_ATTEMPT_WINDOW_SECONDS,
            ),
            credential_poll_seconds=_float(
                "BROKER_CREDENTIAL_POLL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS,
            ),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            log_json=env.get("LOG_FORMAT", "").lower() == "json",
        )
