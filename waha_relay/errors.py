"""Exception taxonomy for the webhook pipeline and resource layer."""

from __future__ import annotations


class WahaRelayError(Exception):
    """Base class for all waha-relay errors."""


class AuthenticationFailure(WahaRelayError):
    """Raised when a webhook signature is missing or does not match.

    Maps to HTTP 401. The request is never dispatched.
    """


class ValidationFailure(WahaRelayError, ValueError):
    """Raised when a webhook body or resource request is malformed.

    Maps to HTTP 400 on the webhook listener.
    """


class InvalidResourceUri(ValidationFailure):
    """Raised when a resource URI or one of its parameters is malformed."""


class TunnelFailure(WahaRelayError):
    """Raised when the tunnel provider cannot supply a public URL.

    Fatal to webhook startup only; the orchestrator keeps running
    without webhooks.
    """


class NoProducerFound(WahaRelayError, LookupError):
    """Raised when no registered resource matches a URI."""

    def __init__(self, uri: str, templates: list[str]) -> None:
        self.uri = uri
        self.templates = list(templates)
        listing = "\n".join(f"  - {t}" for t in self.templates) or "  (none)"
        super().__init__(
            f"No resource handler found for URI: {uri}\n"
            f"Available resources:\n{listing}"
        )


class GatewayError(WahaRelayError):
    """Raised when the WAHA gateway rejects a call or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
