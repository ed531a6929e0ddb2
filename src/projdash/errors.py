"""Error taxonomy shared by adapters, services and the UI."""

from __future__ import annotations


class DashboardError(Exception):
    """Base class for every error surfaced to the dashboard."""

    default_message = "Something went wrong."

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.default_message)

    @property
    def user_message(self) -> str:
        """Text suitable for a toast."""
        return str(self)


class StoreError(DashboardError):
    """Failure reported by the backing data store."""

    default_message = "The data store rejected the request."


class TransientNetworkError(StoreError):
    """Timeout, connection failure or server-side 5xx. Safe to re-try by hand."""

    default_message = "The server could not be reached. Please try again."


class PermissionDeniedError(StoreError):
    """The caller lacks rights for the requested operation."""

    default_message = "You do not have permission to do that."


class NotFoundError(StoreError):
    """The addressed record does not exist (any more)."""

    default_message = "The requested item no longer exists."


class ValidationError(DashboardError):
    """Malformed input or malformed row from the store."""

    default_message = "The data was not valid."


class AuthenticationError(DashboardError):
    """Sign-in, sign-up or session refresh failed."""

    default_message = "Authentication failed."


class WebhookError(DashboardError):
    """Outbound webhook failed. Never fatal; callers log and move on."""

    default_message = "Webhook notification failed."
