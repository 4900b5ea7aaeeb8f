"""Utility modules for waha-relay."""

from .logging import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
