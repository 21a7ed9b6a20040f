"""
Client configuration.

The core never reads configuration on its own: callers build a
``ClientConfig`` and inject it into ``LedgerClient``. Three sources are
supported:

    - ``ClientConfig.from_mapping(d)`` — a plain dict.
    - ``load_config(path)`` — a JSON file.
    - ``ClientConfig.from_env()`` — ``FACTOR_*`` environment variables.

Every source, and direct construction, is validated against
``CONFIG_SCHEMA`` (JSON Schema) so a bad value fails with ``ConfigError``
naming the offending key.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import jsonschema  # type: ignore[import-untyped]

from factor_client.errors import ConfigError

DEFAULT_SERVICE_ID = 128
DEFAULT_SERVICE_NAME = "factor"

CONFIG_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["endpoint"],
    "additionalProperties": False,
    "properties": {
        "endpoint": {"type": "string", "pattern": "^https?://"},
        "service_id": {"type": "integer", "minimum": 0, "maximum": 65535},
        "service_name": {"type": "string", "minLength": 1},
        "schema_dir": {"type": ["string", "null"]},
        "poll_interval": {"type": "number", "exclusiveMinimum": 0},
        "poll_timeout": {"type": "number", "exclusiveMinimum": 0},
        "request_timeout": {"type": "number", "exclusiveMinimum": 0},
        "strict_poll": {"type": "boolean"},
    },
}

# Environment variable → (config key, converter)
_ENV_KEYS: dict[str, tuple[str, Any]] = {
    "FACTOR_ENDPOINT": ("endpoint", str),
    "FACTOR_SERVICE_ID": ("service_id", int),
    "FACTOR_SERVICE_NAME": ("service_name", str),
    "FACTOR_SCHEMA_DIR": ("schema_dir", str),
    "FACTOR_POLL_INTERVAL": ("poll_interval", float),
    "FACTOR_POLL_TIMEOUT": ("poll_timeout", float),
    "FACTOR_REQUEST_TIMEOUT": ("request_timeout", float),
    "FACTOR_STRICT_POLL": ("strict_poll", lambda v: v.strip().lower() in {"1", "true", "yes"}),
}


@dataclass(frozen=True)
class ClientConfig:
    """Connection and polling settings for one ledger service.

    Attributes:
        endpoint: Base API URL, e.g. ``http://127.0.0.1:13007/api``.
        service_id: Service namespace id stamped into every transaction.
        service_name: Service path segment for read endpoints.
        schema_dir: Directory of schema descriptors, if the caller wants
            ``LedgerClient.from_config`` to load them.
        poll_interval: Minimum seconds between status requests.
        poll_timeout: Default commitment deadline in seconds.
        request_timeout: Per-request HTTP timeout in seconds.
        strict_poll: If True, a poll deadline raises instead of
            returning ``Unknown``.
    """

    endpoint: str
    service_id: int = DEFAULT_SERVICE_ID
    service_name: str = DEFAULT_SERVICE_NAME
    schema_dir: str | None = None
    poll_interval: float = 0.2
    poll_timeout: float = 10.0
    request_timeout: float = 30.0
    strict_poll: bool = False

    def __post_init__(self) -> None:
        validate_config(asdict(self))
        object.__setattr__(self, "endpoint", self.endpoint.rstrip("/"))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ClientConfig:
        """Build a config from a dict, validating it first."""
        validate_config(data)
        return cls(**dict(data))

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ClientConfig:
        """Build a config from ``FACTOR_*`` environment variables."""
        env = os.environ if environ is None else environ
        data: dict[str, Any] = {}
        for var, (key, convert) in _ENV_KEYS.items():
            raw = env.get(var)
            if raw is None or raw == "":
                continue
            try:
                data[key] = convert(raw)
            except ValueError as exc:
                raise ConfigError(
                    f"{var}: cannot parse {raw!r}: {exc}",
                    details={"key": key, "variable": var},
                ) from exc
        return cls.from_mapping(data)

    @property
    def transactions_url(self) -> str:
        return f"{self.endpoint}/explorer/v1/transactions"

    def service_url(self, path: str) -> str:
        """URL of a service read endpoint (``path`` starts with '/')."""
        return f"{self.endpoint}/services/{self.service_name}/v1{path}"


def validate_config(data: Mapping[str, Any]) -> None:
    """Validate a raw config mapping against ``CONFIG_SCHEMA``.

    Raises:
        ConfigError: With the failing key path in ``details["key"]``.
    """
    try:
        jsonschema.validate(instance=dict(data), schema=CONFIG_SCHEMA)
    except jsonschema.ValidationError as exc:
        key = ".".join(str(p) for p in exc.absolute_path)
        raise ConfigError(
            f"invalid config{f' at {key}' if key else ''}: {exc.message}",
            details={"key": key},
        ) from exc


def load_config(path: str | Path) -> ClientConfig:
    """Load and validate a JSON config file."""
    p = Path(path)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"cannot read config {p}: {exc}", details={"path": str(p)}) from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config {p} must be a JSON object", details={"path": str(p)})
    return ClientConfig.from_mapping(data)
