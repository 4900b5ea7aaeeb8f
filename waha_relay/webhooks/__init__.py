"""Inbound WAHA webhook pipeline: listener, dispatcher, handlers, tunnel."""
