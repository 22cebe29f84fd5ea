"""
Event catalogue for the notification engine.

Every event kind belongs to a family (system alert, issue, request). The
family decides which context model describes the event, which message
templates render it, and how an endpoint with an empty event list is treated.
"""

from enum import Enum, IntFlag
from typing import Dict, Union


class EventFamily(str, Enum):
    SYSTEM = "system"
    ISSUE = "issue"
    REQUEST = "request"


class EventKind(str, Enum):
    """Named categories of occurrence that can trigger delivery."""
    # System alerts
    SYSTEM_ALERT_HIGH_LATENCY = "system_alert_high_latency"
    SYSTEM_ALERT_SERVICE_UNREACHABLE = "system_alert_service_unreachable"
    SYSTEM_ALERT_INDEXERS_UNAVAILABLE = "system_alert_indexers_unavailable"
    TEST_NOTIFICATION = "test_notification"

    # Issues
    ISSUE_REPORTED = "issue_reported"
    ISSUE_RESOLVED = "issue_resolved"

    # Request status changes
    REQUEST_PENDING = "request_pending"
    REQUEST_SUBMITTED = "request_submitted"
    REQUEST_DENIED = "request_denied"
    REQUEST_FAILED = "request_failed"
    REQUEST_ALREADY_EXISTS = "request_already_exists"
    REQUEST_PARTIALLY_AVAILABLE = "request_partially_available"
    REQUEST_DOWNLOADING = "request_downloading"
    REQUEST_AVAILABLE = "request_available"
    REQUEST_REMOVED = "request_removed"


class NotificationTypeBit(IntFlag):
    """Bits used by endpoints that filter events with a ``types`` bitmask."""
    NONE = 0
    REQUEST_PENDING = 2
    REQUEST_SUBMITTED = 4
    REQUEST_AVAILABLE = 8
    REQUEST_FAILED = 16
    TEST_NOTIFICATION = 32
    REQUEST_DENIED = 64
    REQUEST_PARTIALLY_AVAILABLE = 128
    REQUEST_DOWNLOADING = 256
    SYSTEM_ALERT_HIGH_LATENCY = 2048
    SYSTEM_ALERT_SERVICE_UNREACHABLE = 4096
    SYSTEM_ALERT_INDEXERS_UNAVAILABLE = 8192


_FAMILIES: Dict[EventKind, EventFamily] = {
    EventKind.SYSTEM_ALERT_HIGH_LATENCY: EventFamily.SYSTEM,
    EventKind.SYSTEM_ALERT_SERVICE_UNREACHABLE: EventFamily.SYSTEM,
    EventKind.SYSTEM_ALERT_INDEXERS_UNAVAILABLE: EventFamily.SYSTEM,
    EventKind.TEST_NOTIFICATION: EventFamily.SYSTEM,
    EventKind.ISSUE_REPORTED: EventFamily.ISSUE,
    EventKind.ISSUE_RESOLVED: EventFamily.ISSUE,
    EventKind.REQUEST_PENDING: EventFamily.REQUEST,
    EventKind.REQUEST_SUBMITTED: EventFamily.REQUEST,
    EventKind.REQUEST_DENIED: EventFamily.REQUEST,
    EventKind.REQUEST_FAILED: EventFamily.REQUEST,
    EventKind.REQUEST_ALREADY_EXISTS: EventFamily.REQUEST,
    EventKind.REQUEST_PARTIALLY_AVAILABLE: EventFamily.REQUEST,
    EventKind.REQUEST_DOWNLOADING: EventFamily.REQUEST,
    EventKind.REQUEST_AVAILABLE: EventFamily.REQUEST,
    EventKind.REQUEST_REMOVED: EventFamily.REQUEST,
}

# Several request events share a bit with a related status. Issue events have
# no bit, so endpoints filter them by event list only.
EVENT_TYPE_MASKS: Dict[EventKind, int] = {
    EventKind.SYSTEM_ALERT_HIGH_LATENCY: NotificationTypeBit.SYSTEM_ALERT_HIGH_LATENCY,
    EventKind.SYSTEM_ALERT_SERVICE_UNREACHABLE: NotificationTypeBit.SYSTEM_ALERT_SERVICE_UNREACHABLE,
    EventKind.SYSTEM_ALERT_INDEXERS_UNAVAILABLE: NotificationTypeBit.SYSTEM_ALERT_INDEXERS_UNAVAILABLE,
    EventKind.TEST_NOTIFICATION: NotificationTypeBit.TEST_NOTIFICATION,
    EventKind.ISSUE_REPORTED: NotificationTypeBit.NONE,
    EventKind.ISSUE_RESOLVED: NotificationTypeBit.NONE,
    EventKind.REQUEST_PENDING: NotificationTypeBit.REQUEST_PENDING,
    EventKind.REQUEST_SUBMITTED: NotificationTypeBit.REQUEST_SUBMITTED,
    EventKind.REQUEST_DENIED: NotificationTypeBit.REQUEST_DENIED,
    EventKind.REQUEST_FAILED: NotificationTypeBit.REQUEST_FAILED,
    EventKind.REQUEST_ALREADY_EXISTS: NotificationTypeBit.REQUEST_PENDING,
    EventKind.REQUEST_PARTIALLY_AVAILABLE: NotificationTypeBit.REQUEST_PARTIALLY_AVAILABLE,
    EventKind.REQUEST_DOWNLOADING: NotificationTypeBit.REQUEST_DOWNLOADING,
    EventKind.REQUEST_AVAILABLE: NotificationTypeBit.REQUEST_AVAILABLE,
    EventKind.REQUEST_REMOVED: NotificationTypeBit.REQUEST_FAILED,
}

# An endpoint with an empty explicit event list receives every issue and
# request event, but no system alerts.
EMPTY_EVENT_LIST_MATCHES_ALL: Dict[EventFamily, bool] = {
    EventFamily.SYSTEM: False,
    EventFamily.ISSUE: True,
    EventFamily.REQUEST: True,
}

_LABELS: Dict[EventKind, str] = {
    EventKind.SYSTEM_ALERT_HIGH_LATENCY: "High Latency",
    EventKind.SYSTEM_ALERT_SERVICE_UNREACHABLE: "Service Unreachable",
    EventKind.SYSTEM_ALERT_INDEXERS_UNAVAILABLE: "Indexers Unavailable",
    EventKind.TEST_NOTIFICATION: "Test Notification",
    EventKind.ISSUE_REPORTED: "Issue Reported",
    EventKind.ISSUE_RESOLVED: "Issue Resolved",
    EventKind.REQUEST_PENDING: "Pending approval",
    EventKind.REQUEST_SUBMITTED: "Approved / submitted",
    EventKind.REQUEST_DENIED: "Denied",
    EventKind.REQUEST_FAILED: "Failed",
    EventKind.REQUEST_ALREADY_EXISTS: "Already exists",
    EventKind.REQUEST_PARTIALLY_AVAILABLE: "Partially available",
    EventKind.REQUEST_DOWNLOADING: "Downloading",
    EventKind.REQUEST_AVAILABLE: "Available",
    EventKind.REQUEST_REMOVED: "Removed",
}


def parse_event_kind(value: Union[str, EventKind]) -> EventKind:
    """
    Normalize an event kind given as a string.

    Raises:
        ValueError: If the value does not name a known event kind
    """
    if isinstance(value, EventKind):
        return value
    try:
        return EventKind(str(value).strip().lower())
    except ValueError:
        raise ValueError(f"Unknown event kind: {value}") from None


def event_family(event_kind: Union[str, EventKind]) -> EventFamily:
    return _FAMILIES[parse_event_kind(event_kind)]


def event_type_mask(event_kind: Union[str, EventKind]) -> int:
    """Bitmask for an event kind (0 when the event has no bit)."""
    return int(EVENT_TYPE_MASKS.get(parse_event_kind(event_kind), NotificationTypeBit.NONE))


def event_label(event_kind: Union[str, EventKind]) -> str:
    return _LABELS[parse_event_kind(event_kind)]
