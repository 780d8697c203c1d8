"""
Live aircraft state engine.

Turns raw feed snapshots into a smoothed display snapshot plus derived
per-aircraft state (rates, trends, trails, alerts, routes).
"""

from livestate.config import EngineConfig, load_config
from livestate.engine import LiveStateEngine
from livestate.notifications import Notification
from livestate.proximity import SiteLocation
from livestate.routes import RouteInfo
from livestate.trails import TrailPoint
from livestate.trends import Trend, TrendDir

__all__ = [
    "EngineConfig",
    "load_config",
    "LiveStateEngine",
    "Notification",
    "SiteLocation",
    "RouteInfo",
    "TrailPoint",
    "Trend",
    "TrendDir",
]
