"""Configuration for the ILEusion client.

Configuration can be built directly, loaded from environment variables,
or loaded from a YAML file.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Union

import yaml

DEFAULT_HTTP_TIMEOUT = 10000  # milliseconds

_TRUE_VALUES = {"1", "true", "yes", "y", "on"}
_FALSE_VALUES = {"0", "false", "no", "n", "off"}


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


@dataclass
class ServiceConfig:
    """Connection settings for one ILEusion service instance."""

    # Service
    service_url: str = ""
    http_timeout: int = DEFAULT_HTTP_TIMEOUT

    # IBM i credentials
    user: str = ""
    password: str = ""

    # HTTP basic auth (falls back to the IBM i credentials when blank)
    http_user: str = ""
    http_password: str = ""
    use_http_credentials: bool = False
    encode_auth_base64: bool = True

    # TLS
    allow_invalid_certificates: bool = False

    @property
    def auth_user(self) -> str:
        return self.http_user or self.user

    @property
    def auth_password(self) -> str:
        return self.http_password if self.http_user else self.password

    @property
    def timeout_seconds(self) -> float:
        return self.http_timeout / 1000.0

    def endpoint(self, name: str) -> str:
        """Join an endpoint name like ``/sql`` onto the service URL."""
        base = self.service_url.strip().rstrip("/")
        name = name.strip()
        if not name.startswith("/"):
            name = "/" + name
        return base + name

    def redacted(self) -> Dict[str, Any]:
        """Settings as a dict with passwords masked, for logging."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        for key in ("password", "http_password"):
            if values[key]:
                values[key] = "******"
        return values

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        """Load configuration from environment variables."""
        return cls(
            service_url=os.environ.get("ILEUSION_URL", ""),
            http_timeout=int(os.environ.get("ILEUSION_HTTP_TIMEOUT", str(DEFAULT_HTTP_TIMEOUT))),
            user=os.environ.get("ILEUSION_USER", ""),
            password=os.environ.get("ILEUSION_PASSWORD", ""),
            http_user=os.environ.get("ILEUSION_HTTP_USER", ""),
            http_password=os.environ.get("ILEUSION_HTTP_PASSWORD", ""),
            use_http_credentials=_env_flag("ILEUSION_USE_HTTP_CREDENTIALS", False),
            encode_auth_base64=_env_flag("ILEUSION_ENCODE_AUTH_BASE64", True),
            allow_invalid_certificates=_env_flag("ILEUSION_ALLOW_INVALID_CERTS", False),
        )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ServiceConfig":
        """Load configuration from a YAML file.

        Keys match the field names. Unknown keys raise ``ValueError`` so a
        typo in a profile does not silently fall back to a default.
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")

        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config keys in {path}: {', '.join(sorted(unknown))}")

        if "http_timeout" in data:
            data["http_timeout"] = _yaml_timeout(path, data["http_timeout"])
        for key in ("service_url", "user", "password", "http_user", "http_password"):
            if key in data:
                data[key] = "" if data[key] is None else str(data[key])
        for key in ("use_http_credentials", "encode_auth_base64", "allow_invalid_certificates"):
            if key in data:
                data[key] = _yaml_flag(path, key, data[key])

        return cls(**data)


def _yaml_timeout(path: Union[str, Path], value: Any) -> int:
    if isinstance(value, bool) or value is None:
        raise ValueError(f"http_timeout in {path} must be a whole number of milliseconds, got {value!r}")
    try:
        timeout = int(str(value).strip())
    except ValueError:
        raise ValueError(f"http_timeout in {path} must be a whole number of milliseconds, got {value!r}")
    if timeout <= 0:
        raise ValueError(f"http_timeout in {path} must be positive, got {timeout}")
    return timeout


def _yaml_flag(path: Union[str, Path], key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
    raise ValueError(f"{key} in {path} must be true or false, got {value!r}")
