"""Python client for the Mentra API and notification socket."""

from mentra.client.api import ApiError, AuthenticationError, MentraClient
from mentra.client.socket import NotificationSocket

__all__ = ["ApiError", "AuthenticationError", "MentraClient", "NotificationSocket"]
