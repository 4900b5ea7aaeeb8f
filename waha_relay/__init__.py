"""waha-relay - webhook event pipeline and cached resources for a WAHA gateway."""
__version__ = "0.1.0"
