from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - STORE_BACKEND: 'tcp' (default) or 'memory'
    - STORE_HOST / STORE_PORT: address of the key-value cache. Default 127.0.0.1:5142
    - STORE_USERNAME / STORE_PASSWORD: credentials sent with LIN on connect (optional)
    - STORE_AUTH_TOKEN: token sent with AUTH on connect (optional)
    - STORE_TIMEOUT: socket timeout in seconds. Default 5.0
    - STORE_DURABLE: 'true' (default) to request '-&save' on every write
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - PORT: HTTP port used by `python -m todo_api`. Default 3000
    - LOG_LEVEL: root log level. Default INFO
    """

    store_backend: str
    store_host: str
    store_port: int
    store_username: Optional[str]
    store_password: Optional[str]
    store_auth_token: Optional[str]
    store_timeout: float
    store_durable: bool
    cors_allow_origins: List[str]
    port: int
    log_level: str


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _get_optional(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _parse_bool(value: str, default: bool = False) -> bool:
    v = value.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_int(value: str, default: int) -> int:
    try:
        return int(value.strip())
    except ValueError:
        return default


def _parse_float(value: str, default: float) -> float:
    try:
        parsed = float(value.strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables."""
    backend = _get_env("STORE_BACKEND", "tcp").strip().lower()
    if backend not in {"tcp", "memory"}:
        backend = "tcp"

    return Settings(
        store_backend=backend,
        store_host=_get_env("STORE_HOST", "127.0.0.1").strip(),
        store_port=_parse_int(_get_env("STORE_PORT", "5142"), 5142),
        store_username=_get_optional("STORE_USERNAME"),
        store_password=_get_optional("STORE_PASSWORD"),
        store_auth_token=_get_optional("STORE_AUTH_TOKEN"),
        store_timeout=_parse_float(_get_env("STORE_TIMEOUT", "5.0"), 5.0),
        store_durable=_parse_bool(_get_env("STORE_DURABLE", "true"), True),
        cors_allow_origins=_parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*")),
        port=_parse_int(_get_env("PORT", "3000"), 3000),
        log_level=_get_env("LOG_LEVEL", "INFO").strip().upper(),
    )
