import contextlib
from typing import Callable, Optional

from sqlalchemy.orm import Session

from database.database import db_session_scope
from database.repositories.notification import NotificationRepository


@contextlib.contextmanager
def notification_uow(session_factory: Optional[Callable[[], Session]] = None):
    """Per-unit-of-work transaction scope.

    Yields a NotificationRepository bound to a fresh Session from
    ``db_session_scope``: commits on success, rolls back on exception,
    always closes.

    Usage:
        with notification_uow() as repo:
            endpoints = repo.list_global_endpoints()
        # commit happens automatically on successful exit
    """
    with db_session_scope(session_factory) as session:
        yield NotificationRepository(session)
