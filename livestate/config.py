"""
Environment configuration for the live-state engine and its workers.

Values are read once at startup into a frozen EngineConfig which is handed to
the engine explicitly; components never read the environment themselves.
Unparseable values raise ValueError so misconfiguration fails fast.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from livestate.notifications import DEFAULT_COOLDOWN_SECS
from livestate.proximity import DEFAULT_NOTIFY_RADIUS_MI, DEFAULT_OVERPASS_MI, SiteLocation
from livestate.quality import DEFAULT_LOW_NAC, DEFAULT_LOW_NIC, DEFAULT_STALE_SECS
from livestate.rates import DEFAULT_RATE_MIN_SECS
from livestate.routes import (
    DEFAULT_ROUTE_BATCH,
    DEFAULT_ROUTE_ERROR_SECS,
    DEFAULT_ROUTE_REFRESH_SECS,
    DEFAULT_ROUTE_TTL_SECS,
)
from livestate.smoothing import DEFAULT_UI_FPS
from livestate.trails import DEFAULT_TRAIL_LEN

DEFAULT_URL = "http://adsb.local/data/aircraft.json"
DEFAULT_REFRESH_SECS = 2.0
DEFAULT_TIMEOUT_SECS = 5.0
DEFAULT_RATE_WINDOW_MS = 300
DEFAULT_ROUTE_BASE = "https://api.airplanes.live"
DEFAULT_ROUTE_TIMEOUT_SECS = 6.0
MIN_ROUTE_TIMEOUT_SECS = 2.0
DEFAULT_METRICS_PORT = 0
DEFAULT_LOG_LEVEL = "INFO"

TRUE_VALUES = ("1", "true", "yes", "on")
FALSE_VALUES = ("0", "false", "no", "off")


@dataclass(frozen=True)
class EngineConfig:
    # Feed
    feed_urls: Tuple[str, ...] = (DEFAULT_URL,)
    refresh_secs: float = DEFAULT_REFRESH_SECS
    timeout_secs: float = DEFAULT_TIMEOUT_SECS

    # Display
    stale_secs: float = DEFAULT_STALE_SECS
    low_nic: int = DEFAULT_LOW_NIC
    low_nac: int = DEFAULT_LOW_NAC
    trail_len: int = DEFAULT_TRAIL_LEN
    ui_fps: int = DEFAULT_UI_FPS
    smooth_mode: bool = True
    smooth_merge: bool = True

    # Rates
    rate_window_ms: int = DEFAULT_RATE_WINDOW_MS
    rate_min_secs: float = DEFAULT_RATE_MIN_SECS

    # Notifications
    site: Optional[SiteLocation] = None
    notify_radius_mi: float = DEFAULT_NOTIFY_RADIUS_MI
    overpass_mi: float = DEFAULT_OVERPASS_MI
    notify_cooldown_secs: float = DEFAULT_COOLDOWN_SECS

    # Routes
    route_enabled: bool = True
    route_base: str = DEFAULT_ROUTE_BASE
    route_ttl_secs: float = DEFAULT_ROUTE_TTL_SECS
    route_refresh_secs: float = DEFAULT_ROUTE_REFRESH_SECS
    route_batch: int = DEFAULT_ROUTE_BATCH
    route_timeout_secs: float = DEFAULT_ROUTE_TIMEOUT_SECS
    route_error_secs: float = DEFAULT_ROUTE_ERROR_SECS

    # Process
    metrics_port: int = DEFAULT_METRICS_PORT
    log_level: str = DEFAULT_LOG_LEVEL

    @property
    def rate_window_secs(self) -> float:
        return self.rate_window_ms / 1000.0


def _raw(env: Mapping[str, str], name: str) -> Optional[str]:
    value = env.get(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    value = _raw(env, name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


def _optional_float(env: Mapping[str, str], name: str) -> Optional[float]:
    if _raw(env, name) is None:
        return None
    return _float(env, name, 0.0)


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    value = _raw(env, name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    value = _raw(env, name)
    if value is None:
        return default
    lowered = value.lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


def _feed_urls(env: Mapping[str, str]) -> Tuple[str, ...]:
    urls = _raw(env, "ADSB_URLS")
    if urls is not None:
        parsed = tuple(url.strip() for url in urls.split(",") if url.strip())
        if parsed:
            return parsed
    return (_raw(env, "ADSB_URL") or DEFAULT_URL,)


def _site(env: Mapping[str, str]) -> Optional[SiteLocation]:
    lat = _optional_float(env, "ADSB_SITE_LAT")
    lon = _optional_float(env, "ADSB_SITE_LON")
    if lat is None or lon is None:
        return None
    if not -90.0 <= lat <= 90.0 or not -180.0 <= lon <= 180.0:
        raise ValueError(f"Site location out of range: {lat}, {lon}")
    return SiteLocation(lat=lat, lon=lon, alt_m=_float(env, "ADSB_SITE_ALT_M", 0.0))


def load_config(env: Optional[Mapping[str, str]] = None) -> EngineConfig:
    """
    Build the engine configuration from environment variables.

    Args:
        env: Mapping to read from (defaults to os.environ)

    Raises:
        ValueError: if a variable is set but cannot be parsed
    """
    if env is None:
        env = os.environ

    return EngineConfig(
        feed_urls=_feed_urls(env),
        refresh_secs=max(_float(env, "ADSB_REFRESH_SECS", DEFAULT_REFRESH_SECS), 0.1),
        timeout_secs=max(_float(env, "ADSB_TIMEOUT_SECS", DEFAULT_TIMEOUT_SECS), 0.1),
        stale_secs=_float(env, "ADSB_STALE_SECS", DEFAULT_STALE_SECS),
        low_nic=_int(env, "ADSB_LOW_NIC", DEFAULT_LOW_NIC),
        low_nac=_int(env, "ADSB_LOW_NAC", DEFAULT_LOW_NAC),
        trail_len=max(_int(env, "ADSB_TRAIL_LEN", DEFAULT_TRAIL_LEN), 1),
        ui_fps=max(_int(env, "ADSB_UI_FPS", DEFAULT_UI_FPS), 0),
        smooth_mode=_bool(env, "ADSB_SMOOTH_MODE", True),
        smooth_merge=_bool(env, "ADSB_SMOOTH_MERGE", True),
        rate_window_ms=max(_int(env, "ADSB_RATE_WINDOW_MS", DEFAULT_RATE_WINDOW_MS), 0),
        rate_min_secs=_float(env, "ADSB_RATE_MIN_SECS", DEFAULT_RATE_MIN_SECS),
        site=_site(env),
        notify_radius_mi=_float(env, "ADSB_NOTIFY_RADIUS_MI", DEFAULT_NOTIFY_RADIUS_MI),
        overpass_mi=_float(env, "ADSB_OVERPASS_MI", DEFAULT_OVERPASS_MI),
        notify_cooldown_secs=_float(env, "ADSB_NOTIFY_COOLDOWN_SECS", DEFAULT_COOLDOWN_SECS),
        route_enabled=_bool(env, "ADSB_ROUTE_ENABLED", True),
        route_base=(_raw(env, "ADSB_ROUTE_BASE") or DEFAULT_ROUTE_BASE).rstrip("/"),
        route_ttl_secs=max(_float(env, "ADSB_ROUTE_TTL_SECS", DEFAULT_ROUTE_TTL_SECS), 0.0),
        route_refresh_secs=max(_float(env, "ADSB_ROUTE_REFRESH_SECS", DEFAULT_ROUTE_REFRESH_SECS), 0.0),
        route_batch=max(_int(env, "ADSB_ROUTE_BATCH", DEFAULT_ROUTE_BATCH), 1),
        route_timeout_secs=max(
            _float(env, "ADSB_ROUTE_TIMEOUT_SECS", DEFAULT_ROUTE_TIMEOUT_SECS), MIN_ROUTE_TIMEOUT_SECS
        ),
        route_error_secs=_float(env, "ADSB_ROUTE_ERROR_SECS", DEFAULT_ROUTE_ERROR_SECS),
        metrics_port=_int(env, "METRICS_PORT", DEFAULT_METRICS_PORT),
        log_level=(_raw(env, "LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
    )
