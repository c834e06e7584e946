"""Service configuration: defaults, optional JSON file, then environment."""

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Mapping, Optional

from .fetcher import DEFAULT_FLARESOLVERR_URL, DIRECT_TIMEOUT, FETCH_MODES, FLARESOLVERR_TIMEOUT, MODE_DIRECT

logger = logging.getLogger(__name__)

ENV_KEYS = {
    'port': 'PORT',
    'host': 'HOST',
    'fetch_mode': 'FETCH_MODE',
    'flaresolverr_url': 'FLARESOLVERR_URL',
    'direct_timeout': 'DIRECT_TIMEOUT',
    'flaresolverr_timeout': 'FLARESOLVERR_TIMEOUT',
    'cache_ttl_minutes': 'CACHE_TTL_MINUTES',
}


@dataclass
class ServiceConfig:
    port: int = 3000
    host: str = '0.0.0.0'
    fetch_mode: str = MODE_DIRECT
    flaresolverr_url: str = DEFAULT_FLARESOLVERR_URL
    direct_timeout: int = DIRECT_TIMEOUT
    flaresolverr_timeout: int = FLARESOLVERR_TIMEOUT
    cache_ttl_minutes: int = 60

    def validate(self) -> 'ServiceConfig':
        if self.fetch_mode not in FETCH_MODES:
            raise ValueError(f"fetch_mode must be one of {', '.join(FETCH_MODES)}, got {self.fetch_mode!r}")
        for name in ('port', 'direct_timeout', 'flaresolverr_timeout', 'cache_ttl_minutes'):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        return self


def _coerce(config: ServiceConfig, values: Mapping, source: str) -> ServiceConfig:
    """Apply known keys from values, converting to each field's type."""
    updates = {}
    for field in fields(ServiceConfig):
        if field.name not in values or values[field.name] in (None, ''):
            continue
        raw = values[field.name]
        if field.type is int:
            try:
                updates[field.name] = int(raw)
            except (TypeError, ValueError):
                raise ValueError(f"{source}: {field.name} must be an integer, got {raw!r}")
        else:
            updates[field.name] = str(raw)
    return replace(config, **updates)


def load_config(path: Optional[str] = None, environ: Optional[Mapping] = None) -> ServiceConfig:
    """Build the service config. Later sources win: defaults, file, environment."""
    config = ServiceConfig()

    if path:
        with open(path) as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a JSON object")
        config = _coerce(config, data, path)
        logger.info(f"Loaded config from {path}")

    env = os.environ if environ is None else environ
    from_env = {name: env.get(key) for name, key in ENV_KEYS.items() if env.get(key)}
    config = _coerce(config, from_env, 'environment')

    return config.validate()
