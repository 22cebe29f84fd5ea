import logging
from typing import Any, Dict, Iterable, List, Optional
from sqlalchemy import select

from database.models import (
    NotificationEndpointRecord,
    UserNotificationEndpoint,
    NotificationDeliveryAttemptRecord,
)
from database.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class NotificationRepository(BaseRepository):
    def list_global_endpoints(self) -> List[NotificationEndpointRecord]:
        stmt = select(NotificationEndpointRecord).where(
            NotificationEndpointRecord.is_global.is_(True)
        ).order_by(NotificationEndpointRecord.id)
        return self.db.execute(stmt).scalars().all()

    def list_endpoints_for_user(self, user_id: int) -> List[NotificationEndpointRecord]:
        stmt = (
            select(NotificationEndpointRecord)
            .join(UserNotificationEndpoint,
                  UserNotificationEndpoint.endpoint_id == NotificationEndpointRecord.id)
            .where(UserNotificationEndpoint.user_id == user_id)
            .order_by(NotificationEndpointRecord.id)
        )
        return self.db.execute(stmt).scalars().all()

    def get_endpoint(self, endpoint_id: int) -> Optional[NotificationEndpointRecord]:
        return self.db.get(NotificationEndpointRecord, endpoint_id)

    def create_endpoint(
        self,
        name: str,
        type: str,
        config: Optional[Dict[str, Any]] = None,
        events: Optional[List[str]] = None,
        types: int = 0,
        enabled: bool = True,
        is_global: bool = False,
        owner_user_ids: Iterable[int] = ()
    ) -> NotificationEndpointRecord:
        endpoint = NotificationEndpointRecord(
            name=name,
            type=type,
            config=dict(config or {}),
            events=list(events or []),
            types=types,
            enabled=enabled,
            is_global=is_global,
        )
        self.save(endpoint)

        for user_id in owner_user_ids:
            self.link_user(user_id, endpoint.id)

        logger.debug(f"Created notification endpoint {endpoint.id} ({type})")
        return endpoint

    def link_user(self, user_id: int, endpoint_id: int) -> None:
        existing = self.db.get(UserNotificationEndpoint, (user_id, endpoint_id))
        if existing is None:
            self.save(UserNotificationEndpoint(user_id=user_id, endpoint_id=endpoint_id))

    def record_attempt(
        self,
        endpoint_id: int,
        endpoint_type: str,
        event_type: str,
        attempt_number: int,
        status: str,
        duration_ms: int,
        error_message: Optional[str] = None,
        target_user_id: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> NotificationDeliveryAttemptRecord:
        record = NotificationDeliveryAttemptRecord(
            endpoint_id=endpoint_id,
            endpoint_type=endpoint_type,
            event_type=event_type,
            attempt_number=attempt_number,
            status=status,
            duration_ms=duration_ms,
            error_message=error_message,
            target_user_id=target_user_id,
            attempt_metadata=dict(metadata or {}),
        )
        return self.save(record)

    def list_recent_attempts(
        self,
        endpoint_id: Optional[int] = None,
        limit: int = 50
    ) -> List[NotificationDeliveryAttemptRecord]:
        stmt = select(NotificationDeliveryAttemptRecord)
        if endpoint_id is not None:
            stmt = stmt.where(NotificationDeliveryAttemptRecord.endpoint_id == endpoint_id)
        stmt = stmt.order_by(NotificationDeliveryAttemptRecord.id.desc()).limit(limit)
        return self.db.execute(stmt).scalars().all()
