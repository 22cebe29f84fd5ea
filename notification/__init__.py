"""
Notification Module

Event-driven delivery of system alerts, issue updates and request status
changes to configured endpoints, with per-endpoint retries and an audit
record of every attempt.

Usage:
    from notification import NotificationService, InMemoryEndpointStore, InMemoryAttemptRecorder

    service = NotificationService(InMemoryEndpointStore(), InMemoryAttemptRecorder())
    result = await service.trigger_event('issue_reported', issue_context)

    # Get a channel
    channel = NotificationChannelFactory.get_channel('discord')
"""

from notification.errors import (
    NotificationError,
    DeliverySkipError,
    DeliveryError,
    NoTargetEndpointsError,
)

from notification.events import (
    EventFamily,
    EventKind,
    NotificationTypeBit,
    event_family,
    event_label,
    event_type_mask,
    parse_event_kind,
)

from notification.models import (
    NotificationEndpoint,
    DeliveryAttempt,
    DeliveryResult,
    DeliveryStatus,
    DeliveryOptions,
    FanoutResult,
    SystemAlertContext,
    IssueContext,
    RequestContext,
    RenderedMessage,
)

from notification.channels import (
    NotificationChannel,
    DiscordChannel,
    SlackChannel,
    WebhookChannel,
    TelegramChannel,
    EmailChannel,
    GotifyChannel,
    NtfyChannel,
    PushbulletChannel,
    PushoverChannel,
    NotificationChannelFactory,
)

from notification.message_builder import NotificationMessageBuilder
from notification.reliability import ReliableDelivery, RetryPolicy
from notification.store import (
    EndpointStore,
    AttemptRecorder,
    InMemoryEndpointStore,
    InMemoryAttemptRecorder,
)
from notification.tracker import AlertStateTracker
from notification.service import NotificationService, is_endpoint_eligible, dedupe_endpoints

__all__ = [
    # Errors
    'NotificationError',
    'DeliverySkipError',
    'DeliveryError',
    'NoTargetEndpointsError',
    # Events
    'EventFamily',
    'EventKind',
    'NotificationTypeBit',
    'event_family',
    'event_label',
    'event_type_mask',
    'parse_event_kind',
    # Models
    'NotificationEndpoint',
    'DeliveryAttempt',
    'DeliveryResult',
    'DeliveryStatus',
    'DeliveryOptions',
    'FanoutResult',
    'SystemAlertContext',
    'IssueContext',
    'RequestContext',
    'RenderedMessage',
    # Channels
    'NotificationChannel',
    'DiscordChannel',
    'SlackChannel',
    'WebhookChannel',
    'TelegramChannel',
    'EmailChannel',
    'GotifyChannel',
    'NtfyChannel',
    'PushbulletChannel',
    'PushoverChannel',
    'NotificationChannelFactory',
    # Delivery
    'NotificationMessageBuilder',
    'ReliableDelivery',
    'RetryPolicy',
    'EndpointStore',
    'AttemptRecorder',
    'InMemoryEndpointStore',
    'InMemoryAttemptRecorder',
    'AlertStateTracker',
    'NotificationService',
    'is_endpoint_eligible',
    'dedupe_endpoints',
]
