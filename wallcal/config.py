"""wallcal.config

Configuration loader for wallcal.

- YAML file (PyYAML ``safe_load``) with defaults for anything missing.
- ``WALLCAL_*`` environment variables override file values.
- Exposes a typed dataclass ``Config`` and a ``load_config()`` helper that
  accepts an optional path override.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .proxy_fetcher import DEFAULT_PROXY_TEMPLATES

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config") / "config.yaml"

# Environment variable -> config key
ENV_OVERRIDES: dict[str, str] = {
    "WALLCAL_ICAL_URL": "ical_url",
    "WALLCAL_PROXY_BASE_URL": "proxy_base_url",
    "WALLCAL_TIMEZONE": "timezone",
    "WALLCAL_PORT": "server_port",
    "WALLCAL_LOG_LEVEL": "log_level",
    "WALLCAL_GOOGLE_TOKEN": "google_access_token",
    "WALLCAL_OUTLOOK_TOKEN": "outlook_access_token",
}


@dataclass
class Config:
    """Typed configuration for wallcal.

    Fields:
        ical_url: remote calendar feed; None disables remote aggregation
        proxy_base_url: origin serving /api/calendar-proxy, tried first
        proxy_templates: public CORS relay URL templates with a {url} placeholder
        timezone: IANA display timezone; None uses the host zone
        request_timeout: HTTP read timeout in seconds
        cache_ttl_seconds: how long fetched feed text is reused (0..3600)
        events_path: JSON file for custom events
        projects_path: JSON file for projects
        server_bind: host to bind the HTTP server to
        server_port: port for the HTTP server
        log_level: logging level name
        google_access_token: optional bearer token for Google Calendar
        outlook_access_token: optional bearer token for Microsoft Graph
    """

    ical_url: str | None = None
    proxy_base_url: str | None = None
    proxy_templates: list[str] = field(default_factory=lambda: list(DEFAULT_PROXY_TEMPLATES))
    timezone: str | None = None
    request_timeout: int = 30
    cache_ttl_seconds: int = 300
    events_path: str = "data/events.json"
    projects_path: str = "data/projects.json"
    server_bind: str = "127.0.0.1"
    server_port: int = 8080
    log_level: str = "INFO"
    google_access_token: str | None = None
    outlook_access_token: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Config:
        """Create Config from a plain mapping, applying defaults and coercion.

        Numeric values are coerced to int (falling back to defaults with a
        warning), blank strings become None for optional fields, and
        ``cache_ttl_seconds`` is clamped to 0..3600.
        """
        if data is None:
            data = {}

        def _optional_str(key: str) -> str | None:
            raw = data.get(key)
            if raw is None:
                return None
            text = str(raw).strip()
            return text or None

        def _coerce_int(key: str, default: int) -> int:
            raw = data.get(key, default)
            try:
                return int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default

        templates_raw = data.get("proxy_templates")
        if templates_raw is None:
            templates = list(DEFAULT_PROXY_TEMPLATES)
        elif isinstance(templates_raw, (list, tuple)):
            templates = [str(t) for t in templates_raw if str(t).strip()]
        else:
            logger.warning("Config `proxy_templates` is not a list; coercing to single-item list")
            templates = [str(templates_raw)]
        for template in templates:
            if "{url}" not in template:
                logger.warning("Proxy template %r has no {url} placeholder", template)

        cache_ttl = _coerce_int("cache_ttl_seconds", 300)
        if cache_ttl < 0:
            logger.warning("cache_ttl_seconds %d below minimum; coercing to 0", cache_ttl)
            cache_ttl = 0
        elif cache_ttl > 3600:
            logger.warning("cache_ttl_seconds %d above maximum; coercing to 3600", cache_ttl)
            cache_ttl = 3600

        log_level = data.get("log_level", "INFO")
        log_level = str(log_level).upper() if log_level is not None else "INFO"

        return cls(
            ical_url=_optional_str("ical_url"),
            proxy_base_url=_optional_str("proxy_base_url"),
            proxy_templates=templates,
            timezone=_optional_str("timezone"),
            request_timeout=_coerce_int("request_timeout", 30),
            cache_ttl_seconds=cache_ttl,
            events_path=_optional_str("events_path") or "data/events.json",
            projects_path=_optional_str("projects_path") or "data/projects.json",
            server_bind=_optional_str("server_bind") or "127.0.0.1",
            server_port=_coerce_int("server_port", 8080),
            log_level=log_level,
            google_access_token=_optional_str("google_access_token"),
            outlook_access_token=_optional_str("outlook_access_token"),
        )


def apply_env_overrides(
    data: dict[str, Any], environ: dict[str, str] | None = None
) -> dict[str, Any]:
    """Return a copy of ``data`` with ``WALLCAL_*`` environment values applied."""
    env = os.environ if environ is None else environ
    merged = dict(data)
    for env_name, key in ENV_OVERRIDES.items():
        value = env.get(env_name)
        if value:
            logger.debug("Config %s overridden from %s", key, env_name)
            merged[key] = value
    return merged


def load_config(path: str | None = None, environ: dict[str, str] | None = None) -> Config:
    """Load configuration from a YAML file and the environment.

    Args:
        path: Optional path to the config file. Defaults to
            ./config/config.yaml (relative to the working directory).
        environ: Environment mapping, ``os.environ`` when omitted.

    Returns:
        Config dataclass instance.

    Behavior:
    - If the file is missing: defaults plus environment overrides.
    - If the file exists but top-level is not a mapping: raises ValueError.
    """
    p = Path(path) if path else Path.cwd() / DEFAULT_CONFIG_PATH
    logger.debug("Attempting to load config from %s", p)

    raw: Any = {}
    if p.exists():
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, raw)
            raise ValueError("Config file must contain a mapping at top level")  # noqa: TRY004
        logger.info("Loaded configuration from %s", p)
    else:
        logger.info("Config file %s not found; using defaults", p)

    cfg = Config.from_dict(apply_env_overrides(raw, environ))
    logger.debug("Configuration values: %s", _redacted(cfg))
    return cfg


def _redacted(cfg: Config) -> dict[str, Any]:
    values = dict(cfg.__dict__)
    for key in ("google_access_token", "outlook_access_token"):
        if values.get(key):
            values[key] = "***"
    return values
