"""
System Alert Tracker - Cooldown Service

Suppresses repeated system alerts for the same condition so that a service
that stays down does not page every endpoint on every health check.

Usage:
    from notification.tracker import AlertStateTracker

    tracker = AlertStateTracker(cooldown=timedelta(minutes=30))

    key = "system_alert_service_unreachable:radarr:1"
    if tracker.should_emit(key):
        await service.notify_system_alert(...)
        tracker.mark_active(key)

    # condition recovered
    tracker.clear_active(key)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN = timedelta(minutes=30)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AlertStateEntry:
    """Last known state of one alert key."""
    active: bool = False
    last_sent_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'active': self.active,
            'last_sent_at': self.last_sent_at.isoformat() if self.last_sent_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AlertStateEntry":
        last_sent_at = None
        raw = data.get('last_sent_at')
        if raw:
            try:
                last_sent_at = datetime.fromisoformat(raw)
            except (TypeError, ValueError):
                logger.warning(f"Ignoring malformed alert timestamp: {raw!r}")
        return cls(active=bool(data.get('active', False)), last_sent_at=last_sent_at)


class AlertStateTracker:
    """
    Per-key cooldown for system alerts.

    An alert is emitted when its key was never sent, or when the cooldown has
    elapsed since the last send. Clearing a key keeps its timestamp, so a
    flapping service still respects the cooldown.
    """

    def __init__(self, cooldown: timedelta = DEFAULT_COOLDOWN,
                 state: Optional[Dict[str, AlertStateEntry]] = None):
        self.cooldown = cooldown
        self._state: Dict[str, AlertStateEntry] = dict(state or {})

    def should_emit(self, key: str, now: Optional[datetime] = None) -> bool:
        entry = self._state.get(key)
        if entry is None or entry.last_sent_at is None:
            return True
        now = now or _utcnow()
        return now - entry.last_sent_at >= self.cooldown

    def mark_active(self, key: str, now: Optional[datetime] = None) -> None:
        self._state[key] = AlertStateEntry(active=True, last_sent_at=now or _utcnow())

    def clear_active(self, key: str) -> None:
        entry = self._state.get(key)
        if entry is None:
            return
        entry.active = False

    def is_active(self, key: str) -> bool:
        entry = self._state.get(key)
        return bool(entry and entry.active)

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        """JSON-serialisable snapshot, suitable for storing as a setting."""
        return {key: entry.to_dict() for key, entry in self._state.items()}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]],
                  cooldown: timedelta = DEFAULT_COOLDOWN) -> "AlertStateTracker":
        state = {}
        for key, value in (data or {}).items():
            if isinstance(value, dict):
                state[key] = AlertStateEntry.from_dict(value)
        return cls(cooldown=cooldown, state=state)
