from .base import Base
from .notification import NotificationEndpointRecord, UserNotificationEndpoint, NotificationDeliveryAttemptRecord

__all__ = [
    'Base',
    'NotificationEndpointRecord',
    'UserNotificationEndpoint',
    'NotificationDeliveryAttemptRecord',
]
