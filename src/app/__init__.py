"""Application shell: configuration, logging and the ``fscreen`` CLI."""

from app.config import get_config, get_value, load_config
from app.logging import get_logger, setup_logging

__all__ = ["get_config", "get_logger", "get_value", "load_config", "setup_logging"]
