"""
Storage collaborator interfaces.

The engine reads endpoints through an ``EndpointStore`` and writes attempt
records through an ``AttemptRecorder``. Both are async so that SQL-backed
implementations can run their blocking work off the event loop. The
in-memory versions here back the tests and simple embeddings; the SQL
versions live in ``database.notification_store``.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from notification.models import DeliveryAttempt, NotificationEndpoint


class EndpointStore(ABC):

    @abstractmethod
    async def list_global_endpoints(self) -> List[NotificationEndpoint]:
        pass

    @abstractmethod
    async def list_endpoints_for_user(self, user_id: int) -> List[NotificationEndpoint]:
        pass


class AttemptRecorder(ABC):
    """Append-only sink for delivery attempts; must tolerate concurrent writes."""

    @abstractmethod
    async def record_attempt(self, attempt: DeliveryAttempt) -> None:
        pass


class InMemoryEndpointStore(EndpointStore):

    def __init__(self, endpoints: Optional[Iterable[NotificationEndpoint]] = None,
                 user_links: Optional[Dict[int, List[int]]] = None):
        self.endpoints: Dict[int, NotificationEndpoint] = {e.id: e for e in endpoints or []}
        self.user_links: Dict[int, List[int]] = {k: list(v) for k, v in (user_links or {}).items()}

    def add(self, endpoint: NotificationEndpoint, user_ids: Iterable[int] = ()) -> None:
        self.endpoints[endpoint.id] = endpoint
        for user_id in user_ids:
            self.link(user_id, endpoint.id)

    def link(self, user_id: int, endpoint_id: int) -> None:
        ids = self.user_links.setdefault(user_id, [])
        if endpoint_id not in ids:
            ids.append(endpoint_id)

    async def list_global_endpoints(self) -> List[NotificationEndpoint]:
        return [e for e in self.endpoints.values() if e.is_global]

    async def list_endpoints_for_user(self, user_id: int) -> List[NotificationEndpoint]:
        return [self.endpoints[i] for i in self.user_links.get(user_id, []) if i in self.endpoints]


class InMemoryAttemptRecorder(AttemptRecorder):

    def __init__(self):
        self.attempts: List[DeliveryAttempt] = []

    async def record_attempt(self, attempt: DeliveryAttempt) -> None:
        self.attempts.append(attempt)

    def for_endpoint(self, endpoint_id: int) -> List[DeliveryAttempt]:
        return [a for a in self.attempts if a.endpoint_id == endpoint_id]
