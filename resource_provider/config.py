"""
Environment configuration and logging setup.

Values are read from the process environment after ``.env`` in the working
directory has been loaded with python-dotenv (existing variables win).
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional, Tuple

from dotenv import load_dotenv

from resource_provider.db import DEFAULT_DATABASE_URL
from resource_provider.exceptions import SignatureConfigurationError
from resource_provider.models import RESOURCE_QUEUE
from resource_provider.queue import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_RETRY_DELAYS,
)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_SECRET_KEYS = frozenset({"provider_secret"})


def _redact(value: str) -> str:
    """Mask a secret, keeping the first 4 and last 2 characters of long values."""
    if len(value) < 8:
        return "***"
    return f"{value[:4]}***{value[-2:]}"


def _parse_delays(raw: str) -> Tuple[float, ...]:
    delays = tuple(float(part) for part in raw.split(",") if part.strip())
    if any(delay < 0 for delay in delays):
        raise ValueError(f"Retry delays must not be negative: {raw}")
    return delays or DEFAULT_RETRY_DELAYS


class AppConfig:
    """Provider settings sourced from environment variables."""

    def __init__(self, env: Optional[Dict[str, str]] = None) -> None:
        if env is None:
            load_dotenv()
            env = dict(os.environ)
        self.database_url = env.get("DATABASE_URL", DEFAULT_DATABASE_URL)
        self.service_uuid = env.get("PROVIDER_SERVICE_UUID", "")
        self.provider_secret = env.get("PROVIDER_SECRET", "")
        self.queue_name = env.get("RESOURCE_QUEUE", RESOURCE_QUEUE)
        self.delivery_timeout = float(env.get("DELIVERY_TIMEOUT", "10.0"))
        self.max_attempts = int(env.get("DELIVERY_MAX_ATTEMPTS", str(DEFAULT_MAX_ATTEMPTS)))
        self.retry_delays = _parse_delays(
            env.get("DELIVERY_RETRY_DELAYS", ",".join(str(d) for d in DEFAULT_RETRY_DELAYS))
        )
        self.poll_interval = float(
            env.get("DISPATCHER_POLL_INTERVAL", str(DEFAULT_POLL_INTERVAL))
        )
        self.log_level = env.get("LOG_LEVEL", "info").lower()

    def validate(self) -> None:
        """Fail fast on settings the provider cannot run without."""
        if not self.provider_secret:
            raise SignatureConfigurationError("PROVIDER_SECRET must be set")
        if not self.service_uuid:
            raise SignatureConfigurationError("PROVIDER_SERVICE_UUID must be set")
        if self.max_attempts < 1:
            raise ValueError("DELIVERY_MAX_ATTEMPTS must be at least 1")

    def to_dict(self) -> Dict[str, Any]:
        """Settings as a dict with secrets redacted."""
        result: Dict[str, Any] = {}
        for key, value in vars(self).items():
            if key in _SECRET_KEYS and isinstance(value, str):
                value = _redact(value)
            result[key] = value
        return result


def configure_logging(level: str = "info") -> None:
    """Configure root logging with the provider's format."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
