"""Runtime configuration for pytelesync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pytelesync.exceptions import TelesyncConfigError

PRODUCTION_BUILD = "production"

_LIVE_TRANSPORTS = frozenset({"mqtt", "http"})


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class MqttFeedSettings:
    """Broker settings for the MQTT live feed."""

    host: str = "localhost"
    port: int = 1883
    topic: str = "vehicle/telemetry"
    client_id: str = "pytelesync"
    username: str | None = None
    password: str | None = None
    keepalive: int = 60
    tls: bool = False


@dataclasses.dataclass(frozen=True)
class HttpFeedSettings:
    """Endpoint settings for the HTTP polling live feed."""

    url: str = "http://127.0.0.1:35000/api/telemetry"
    poll_interval: float = 0.5
    timeout: float = 2.0


@dataclasses.dataclass(frozen=True)
class TelesyncConfig:
    """Core configuration.

    Parameters
    ----------
    build_mode : str
        Build the process runs as (``"production"``, ``"development"``,
        ...). Only used to derive the simulation default.
    simulate_on_start : bool or None
        Explicit initial simulation mode. ``None`` derives it from
        ``build_mode``: non-production builds simulate, production
        attaches the live feed.
    liveness_timeout : float
        Seconds without a live reading while connected before the
        connection is declared in error.
    reconnect_delay : float
        Seconds before an automatic reattach after a source or liveness
        fault. ``0`` disables automatic retries.
    simulator_interval : float
        Seconds between simulator ticks.
    simulator_seed : int or None
        Seed for the simulator's random generator.
    unit_system : str
        Default display unit system (``"metric"`` or ``"imperial"``).
    live_transport : str
        Live feed adapter, ``"mqtt"`` or ``"http"``.
    audit_capacity : int
        Maximum number of audit entries kept in memory.
    mqtt : MqttFeedSettings
        MQTT live feed settings.
    http : HttpFeedSettings
        HTTP live feed settings.
    """

    build_mode: str = "development"
    simulate_on_start: bool | None = None
    liveness_timeout: float = 5.0
    reconnect_delay: float = 0.0
    simulator_interval: float = 0.1
    simulator_seed: int | None = None
    unit_system: str = "metric"
    live_transport: str = "mqtt"
    audit_capacity: int = 200
    mqtt: MqttFeedSettings = dataclasses.field(default_factory=MqttFeedSettings)
    http: HttpFeedSettings = dataclasses.field(default_factory=HttpFeedSettings)

    def __post_init__(self) -> None:
        if self.liveness_timeout <= 0:
            raise TelesyncConfigError("liveness_timeout must be positive")
        if self.reconnect_delay < 0:
            raise TelesyncConfigError("reconnect_delay must not be negative")
        if self.simulator_interval <= 0:
            raise TelesyncConfigError("simulator_interval must be positive")
        if self.audit_capacity <= 0:
            raise TelesyncConfigError("audit_capacity must be positive")
        if self.live_transport not in _LIVE_TRANSPORTS:
            raise TelesyncConfigError(f"Unknown live transport: {self.live_transport!r}")
        if self.unit_system not in {"metric", "imperial"}:
            raise TelesyncConfigError(f"Unknown unit system: {self.unit_system!r}")

    @property
    def simulate_by_default(self) -> bool:
        """Initial simulation mode after applying the build-mode policy."""
        if self.simulate_on_start is not None:
            return self.simulate_on_start
        return self.build_mode.strip().lower() != PRODUCTION_BUILD

    @classmethod
    def from_env(cls, **overrides: Any) -> TelesyncConfig:
        """Create configuration from environment variables.

        Reads optional ``TELESYNC_*`` variables. Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        TelesyncConfig
            Populated configuration.
        """
        env = os.environ

        mqtt_kwargs: dict[str, Any] = {}
        _ENV_MQTT_MAP = {
            "TELESYNC_MQTT_HOST": "host",
            "TELESYNC_MQTT_TOPIC": "topic",
            "TELESYNC_MQTT_CLIENT_ID": "client_id",
            "TELESYNC_MQTT_USERNAME": "username",
            "TELESYNC_MQTT_PASSWORD": "password",
        }
        for env_key, field_name in _ENV_MQTT_MAP.items():
            val = env.get(env_key)
            if val is not None:
                mqtt_kwargs[field_name] = val
        port_env = env.get("TELESYNC_MQTT_PORT")
        if port_env is not None:
            mqtt_kwargs["port"] = int(port_env)
        keepalive_env = env.get("TELESYNC_MQTT_KEEPALIVE")
        if keepalive_env is not None:
            mqtt_kwargs["keepalive"] = int(keepalive_env)
        if "TELESYNC_MQTT_TLS" in env:
            mqtt_kwargs["tls"] = _env_bool(env.get("TELESYNC_MQTT_TLS"), False)

        http_kwargs: dict[str, Any] = {}
        url_env = env.get("TELESYNC_HTTP_URL")
        if url_env is not None:
            http_kwargs["url"] = url_env
        poll_env = env.get("TELESYNC_HTTP_POLL_INTERVAL")
        if poll_env is not None:
            http_kwargs["poll_interval"] = float(poll_env)
        http_timeout_env = env.get("TELESYNC_HTTP_TIMEOUT")
        if http_timeout_env is not None:
            http_kwargs["timeout"] = float(http_timeout_env)

        config_kwargs: dict[str, Any] = {
            "mqtt": MqttFeedSettings(**mqtt_kwargs),
            "http": HttpFeedSettings(**http_kwargs),
        }

        _ENV_CONFIG_MAP = {
            "TELESYNC_BUILD_MODE": "build_mode",
            "TELESYNC_UNIT_SYSTEM": "unit_system",
            "TELESYNC_LIVE_TRANSPORT": "live_transport",
        }
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val.strip().lower()

        if "TELESYNC_SIMULATE" in env and "simulate_on_start" not in overrides:
            config_kwargs["simulate_on_start"] = _env_bool(env.get("TELESYNC_SIMULATE"), True)

        # Numeric settings, handled separately
        _ENV_FLOAT_MAP = {
            "TELESYNC_LIVENESS_TIMEOUT": "liveness_timeout",
            "TELESYNC_RECONNECT_DELAY": "reconnect_delay",
            "TELESYNC_SIMULATOR_INTERVAL": "simulator_interval",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = float(val)

        seed_env = env.get("TELESYNC_SIMULATOR_SEED")
        if seed_env is not None and "simulator_seed" not in overrides:
            config_kwargs["simulator_seed"] = int(seed_env)

        capacity_env = env.get("TELESYNC_AUDIT_CAPACITY")
        if capacity_env is not None and "audit_capacity" not in overrides:
            config_kwargs["audit_capacity"] = int(capacity_env)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
