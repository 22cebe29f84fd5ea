"""
SQL-backed endpoint store and attempt recorder.

Blocking SQLAlchemy work runs in a worker thread; each call opens its own
unit of work, so concurrent deliveries never share a Session.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from database.models import NotificationEndpointRecord
from database.uow import notification_uow
from notification.models import DeliveryAttempt, NotificationEndpoint
from notification.store import AttemptRecorder, EndpointStore

logger = logging.getLogger(__name__)


def to_endpoint(record: NotificationEndpointRecord) -> NotificationEndpoint:
    return NotificationEndpoint(
        id=record.id,
        name=record.name,
        type=record.type,
        enabled=record.enabled,
        is_global=record.is_global,
        events=list(record.events or []),
        types=record.types or 0,
        config=dict(record.config or {}),
    )


class SqlEndpointStore(EndpointStore):

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self.session_factory = session_factory

    def _list_global(self) -> List[NotificationEndpoint]:
        with notification_uow(self.session_factory) as repo:
            return [to_endpoint(r) for r in repo.list_global_endpoints()]

    def _list_for_user(self, user_id: int) -> List[NotificationEndpoint]:
        with notification_uow(self.session_factory) as repo:
            return [to_endpoint(r) for r in repo.list_endpoints_for_user(user_id)]

    async def list_global_endpoints(self) -> List[NotificationEndpoint]:
        return await asyncio.to_thread(self._list_global)

    async def list_endpoints_for_user(self, user_id: int) -> List[NotificationEndpoint]:
        return await asyncio.to_thread(self._list_for_user, user_id)


class SqlAttemptRecorder(AttemptRecorder):

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self.session_factory = session_factory

    def _write(self, attempt: DeliveryAttempt) -> None:
        with notification_uow(self.session_factory) as repo:
            repo.record_attempt(
                endpoint_id=attempt.endpoint_id,
                endpoint_type=attempt.endpoint_type,
                event_type=attempt.event_type,
                attempt_number=attempt.attempt_number,
                status=attempt.status.value,
                duration_ms=attempt.duration_ms,
                error_message=attempt.error_message,
                target_user_id=attempt.target_user_id,
                metadata=attempt.metadata,
            )

    async def record_attempt(self, attempt: DeliveryAttempt) -> None:
        await asyncio.to_thread(self._write, attempt)
