"""Configuration — Pydantic models for wsterm settings."""

from __future__ import annotations

import os
from typing import Any
from urllib.parse import urlsplit

from pydantic import BaseModel, Field

from wsterm.protocol.encoder import InputMode

DEFAULT_PATH = "/ws"

_SECURE_SCHEMES = {"https": "wss", "wss": "wss"}
_PLAIN_SCHEMES = {"http": "ws", "ws": "ws"}


def endpoint_url(origin: str, secure: bool = False, path: str = DEFAULT_PATH) -> str:
    """Derive the WebSocket endpoint for a hosting origin.

    The scheme mirrors the origin's security context:
        "https://example.com"      -> "wss://example.com/ws"
        "http://localhost:8080"    -> "ws://localhost:8080/ws"
        "localhost:8080"           -> "ws://localhost:8080/ws" (or wss if secure)

    ``ws://`` and ``wss://`` URLs that already carry a path are returned as is.
    """
    origin = origin.strip()
    if "://" not in origin:
        scheme = "wss" if secure else "ws"
        host = origin.rstrip("/")
        return f"{scheme}://{host}{path}"

    parts = urlsplit(origin)
    scheme = parts.scheme.lower()
    if scheme in ("ws", "wss") and parts.path not in ("", "/"):
        return origin
    if scheme in _SECURE_SCHEMES:
        ws_scheme = _SECURE_SCHEMES[scheme]
    elif scheme in _PLAIN_SCHEMES:
        ws_scheme = _PLAIN_SCHEMES[scheme]
    else:
        raise ValueError(f"Unsupported origin scheme: {parts.scheme!r}")
    return f"{ws_scheme}://{parts.netloc}{path}"


class ConnectionConfig(BaseModel):
    """Where and how to connect."""

    url: str = Field(
        default="localhost:8080",
        description="Hosting origin (http/https/host) or a full ws/wss URL",
    )
    secure: bool = Field(
        default=False, description="Use wss:// when url is a bare host"
    )
    path: str = Field(default=DEFAULT_PATH, description="Shell endpoint path")
    open_timeout: float = Field(
        default=10.0, description="Seconds to wait for the opening handshake"
    )
    binary_frames: bool = Field(
        default=False,
        description="Send outbound frames as binary instead of text messages",
    )

    @property
    def endpoint(self) -> str:
        return endpoint_url(self.url, secure=self.secure, path=self.path)


class ReconnectConfig(BaseModel):
    """Reconnection policy configuration."""

    max_attempts: int = Field(default=5, ge=0)
    base_delay: float = Field(
        default=2.0, gt=0, description="Delay before the first retry (seconds)"
    )
    max_delay: float = Field(
        default=30.0, gt=0, description="Upper bound for the backoff delay"
    )


class InputConfig(BaseModel):
    """Input handling configuration."""

    mode: InputMode = Field(
        default=InputMode.RAW,
        description="'raw' sends each keystroke, 'line' sends whole lines",
    )


class WstermConfig(BaseModel):
    """Top-level wsterm configuration."""

    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    reconnect: ReconnectConfig = Field(default_factory=ReconnectConfig)
    input: InputConfig = Field(default_factory=InputConfig)

    @classmethod
    def load(cls, config_path: str | None = None) -> WstermConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            WSTERM_URL           - Hosting origin or ws/wss URL
            WSTERM_SECURE        - "1"/"true" to use wss:// for bare hosts
            WSTERM_MODE          - Input mode (raw/line)
            WSTERM_MAX_ATTEMPTS  - Max reconnection attempts
            WSTERM_BASE_DELAY    - First retry delay in seconds
            WSTERM_MAX_DELAY     - Backoff ceiling in seconds
        """
        try:
            from dotenv import load_dotenv

            load_dotenv(override=True)
        except ImportError:
            pass

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            import json

            with open(config_path) as f:
                config_data = json.load(f)

        connection = config_data.get("connection", {})
        reconnect = config_data.get("reconnect", {})
        input_cfg = config_data.get("input", {})

        env_url = os.environ.get("WSTERM_URL")
        if env_url:
            connection["url"] = env_url

        env_secure = os.environ.get("WSTERM_SECURE")
        if env_secure:
            connection["secure"] = env_secure.lower() in ("1", "true", "yes")

        env_mode = os.environ.get("WSTERM_MODE")
        if env_mode:
            input_cfg["mode"] = env_mode.lower()

        env_max_attempts = os.environ.get("WSTERM_MAX_ATTEMPTS")
        if env_max_attempts:
            reconnect["max_attempts"] = int(env_max_attempts)

        env_base_delay = os.environ.get("WSTERM_BASE_DELAY")
        if env_base_delay:
            reconnect["base_delay"] = float(env_base_delay)

        env_max_delay = os.environ.get("WSTERM_MAX_DELAY")
        if env_max_delay:
            reconnect["max_delay"] = float(env_max_delay)

        if connection:
            config_data["connection"] = connection
        if reconnect:
            config_data["reconnect"] = reconnect
        if input_cfg:
            config_data["input"] = input_cfg

        return cls.model_validate(config_data)
