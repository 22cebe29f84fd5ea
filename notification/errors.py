"""Exception taxonomy for notification delivery."""

from typing import Optional


class NotificationError(Exception):
    """Base class for notification engine errors."""


class DeliverySkipError(NotificationError):
    """
    Permanent precondition failure for an endpoint.

    Raised by channel adapters when required configuration is missing or
    invalid. The reliability wrapper records the attempt as ``skipped`` and
    never retries it.
    """


class DeliveryError(NotificationError):
    """Transient/operational delivery failure (non-2xx, transport error)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NoTargetEndpointsError(NotificationError):
    """Raised by admin-facing actions when no endpoint is eligible."""

    def __init__(self, message: str = "No target endpoints found"):
        super().__init__(message)
