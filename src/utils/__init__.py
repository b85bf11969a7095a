"""Utilities package for the Cake Order Tracker application."""

from .config import Config, get_config, reset_config
from .datetime_utils import utc_now, local_today

__all__ = [
    "Config",
    "get_config",
    "reset_config",
    "utc_now",
    "local_today",
]
