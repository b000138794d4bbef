"""
Environment-driven configuration with validation.
"""

from __future__ import annotations

import logging
import os
import socket
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from dashsync.core.errors import ConfigError

AUTH_MODES = ("session", "api_key")
BOARD_SCOPES = ("default", "writable")


def env_bool(key: str, default: bool) -> bool:
    val = os.getenv(key)
    if val is None:
        return default
    return val.lower() in {"1", "true", "yes", "y"}


def _default_asset_server_url() -> str:
    # mDNS name so other machines on the LAN can load the icons
    return f"http://{socket.gethostname() or 'localhost'}.local:8771"


@dataclass(frozen=True)
class Settings:
    homarr_url: str
    asset_server_url: str
    branding_file: str
    state_file: str
    registry_dir: str
    docker_enabled: bool
    docker_socket: str
    label_prefix: str
    auth_mode: str  # session, api_key
    bootstrap_key_file: str
    board_scope: str  # default, writable
    sync_interval_sec: float
    retry_backoff_sec: float
    http_timeout: float
    onboarding_max_steps: int
    metrics_port: int  # 0 disables the exporter
    log_file: Optional[str]
    debug: bool

    def dump(self) -> dict:
        """Return a dict of settings for sanity checks/logging."""
        return self.__dict__.copy()

    @classmethod
    def load(cls, env_file: Optional[str] = None) -> "Settings":
        load_dotenv(env_file)

        def _int_env(key: str, default: int) -> int:
            raw = os.getenv(key)
            if raw is None or raw == "":
                return default
            try:
                return int(raw)
            except ValueError:
                raise ConfigError(f"{key} must be an integer, got {raw!r}") from None

        def _float_env(key: str, default: float) -> float:
            raw = os.getenv(key)
            if raw is None or raw == "":
                return default
            try:
                return float(raw)
            except ValueError:
                raise ConfigError(f"{key} must be a number, got {raw!r}") from None

        cfg = cls(
            homarr_url=os.getenv("DASHSYNC_HOMARR_URL", "http://localhost:80").rstrip("/"),
            asset_server_url=os.getenv("DASHSYNC_ASSET_SERVER_URL", _default_asset_server_url()).rstrip("/"),
            branding_file=os.getenv("DASHSYNC_BRANDING_FILE", "/etc/halos-homarr-branding/branding.yaml"),
            state_file=os.getenv("DASHSYNC_STATE_FILE", "/var/lib/dashsync/state.json"),
            registry_dir=os.getenv("DASHSYNC_REGISTRY_DIR", "/etc/halos/webapps.d"),
            docker_enabled=env_bool("DASHSYNC_DOCKER_ENABLED", False),
            docker_socket=os.getenv("DASHSYNC_DOCKER_SOCKET", "/var/run/docker.sock"),
            label_prefix=os.getenv("DASHSYNC_LABEL_PREFIX", "homarr"),
            auth_mode=os.getenv("DASHSYNC_AUTH_MODE", "session").lower(),
            bootstrap_key_file=os.getenv("DASHSYNC_BOOTSTRAP_KEY_FILE", "/var/lib/dashsync/bootstrap.key"),
            board_scope=os.getenv("DASHSYNC_BOARD_SCOPE", "default").lower(),
            sync_interval_sec=_float_env("DASHSYNC_SYNC_INTERVAL_SEC", 300.0),
            retry_backoff_sec=_float_env("DASHSYNC_RETRY_BACKOFF_SEC", 30.0),
            http_timeout=_float_env("DASHSYNC_HTTP_TIMEOUT", 10.0),
            onboarding_max_steps=_int_env("DASHSYNC_ONBOARDING_MAX_STEPS", 25),
            metrics_port=_int_env("DASHSYNC_METRICS_PORT", 0),
            log_file=os.getenv("DASHSYNC_LOG_FILE") or None,
            debug=env_bool("DASHSYNC_DEBUG", False),
        )
        cfg._validate()
        _sanity_check(cfg)
        return cfg

    def _validate(self) -> None:
        if not self.homarr_url.startswith(("http://", "https://")):
            raise ConfigError("DASHSYNC_HOMARR_URL must be an http(s) URL")
        if self.auth_mode not in AUTH_MODES:
            raise ConfigError(f"DASHSYNC_AUTH_MODE must be one of {AUTH_MODES}")
        if self.board_scope not in BOARD_SCOPES:
            raise ConfigError(f"DASHSYNC_BOARD_SCOPE must be one of {BOARD_SCOPES}")
        if self.sync_interval_sec <= 0:
            raise ConfigError("DASHSYNC_SYNC_INTERVAL_SEC must be > 0")
        if self.retry_backoff_sec <= 0:
            raise ConfigError("DASHSYNC_RETRY_BACKOFF_SEC must be > 0")
        if self.http_timeout <= 0:
            raise ConfigError("DASHSYNC_HTTP_TIMEOUT must be > 0")
        if self.onboarding_max_steps <= 0:
            raise ConfigError("DASHSYNC_ONBOARDING_MAX_STEPS must be > 0")
        if not 0 <= self.metrics_port <= 65535:
            raise ConfigError("DASHSYNC_METRICS_PORT must be a TCP port or 0")
        if self.retry_backoff_sec > self.sync_interval_sec:
            logging.getLogger("dashsync").warning(
                "WARNING: DASHSYNC_RETRY_BACKOFF_SEC exceeds DASHSYNC_SYNC_INTERVAL_SEC; "
                "a failed cycle will wait longer than a normal one."
            )


def _sanity_check(cfg: Settings) -> None:
    """Log the effective settings once at startup so overrides are obvious."""
    from dashsync.infra.logging_cfg import log_event

    log_event(
        logging.getLogger("dashsync"),
        "config_loaded",
        homarr_url=cfg.homarr_url,
        auth_mode=cfg.auth_mode,
        board_scope=cfg.board_scope,
        registry_dir=cfg.registry_dir,
        docker_enabled=cfg.docker_enabled,
        sync_interval_sec=cfg.sync_interval_sec,
    )
