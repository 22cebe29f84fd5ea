"""
Notification Service - Endpoint Fan-out

Resolves the endpoints that should receive an event, renders the event once
and delivers it to every eligible endpoint concurrently through the
reliability wrapper.

Usage:
    from notification.service import NotificationService

    service = NotificationService(store, recorder, config=app_config.notifications)

    result = await service.trigger_event(
        "system_alert_service_unreachable",
        {"title": "Radarr is unreachable", "service_name": "Radarr"},
    )
    print(f"{result.delivered}/{result.eligible}")
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from core.config_loader import NotificationConfig
from notification.channels import NotificationChannel, NotificationChannelFactory
from notification.errors import DeliverySkipError, NoTargetEndpointsError
from notification.events import (
    EMPTY_EVENT_LIST_MATCHES_ALL,
    EventFamily,
    EventKind,
    event_family,
    event_type_mask,
    parse_event_kind,
)
from notification.message_builder import EventContext, NotificationMessageBuilder
from notification.models import (
    DeliveryOptions,
    DeliveryResult,
    DeliveryStatus,
    DeliveryTarget,
    FanoutResult,
    NotificationEndpoint,
    RenderedMessage,
    SystemAlertContext,
)
from notification.reliability import ReliableDelivery, RetryPolicy, SleepFn
from notification.store import AttemptRecorder, EndpointStore
from notification.tracker import AlertStateTracker

logger = logging.getLogger(__name__)

ContextInput = Union[EventContext, Mapping[str, Any]]


def _positive_ids(user_ids: Iterable[Any]) -> List[int]:
    ids = []
    for value in user_ids or []:
        try:
            user_id = int(value)
        except (TypeError, ValueError):
            continue
        if user_id > 0 and user_id not in ids:
            ids.append(user_id)
    return ids


def dedupe_endpoints(endpoints: Iterable[NotificationEndpoint]) -> List[NotificationEndpoint]:
    """Drop repeated endpoint ids, keeping the first occurrence."""
    seen = set()
    unique = []
    for endpoint in endpoints:
        if endpoint.id in seen:
            continue
        seen.add(endpoint.id)
        unique.append(endpoint)
    return unique


def is_endpoint_eligible(endpoint: NotificationEndpoint,
                         event_kind: Union[str, EventKind],
                         ignore_event_filters: bool = False) -> bool:
    """
    Decide whether an endpoint accepts an event.

    Order of checks:
    1. Disabled endpoints never receive anything.
    2. ``ignore_event_filters`` accepts every enabled endpoint.
    3. A non-zero ``types`` bitmask must fully contain the event's bit. Issue
       events carry no bit and skip this check.
    4. A non-empty ``events`` list must contain the event kind.
    5. An endpoint with neither filter falls back to the family default:
       issue and request events match, system alerts do not.
    """
    if not endpoint.enabled:
        return False
    if ignore_event_filters:
        return True

    kind = parse_event_kind(event_kind)
    mask = event_type_mask(kind)
    if endpoint.types > 0 and mask > 0:
        return (endpoint.types & mask) == mask

    events = {str(e).strip().lower() for e in endpoint.events if e}
    if events:
        return kind.value in events

    return EMPTY_EVENT_LIST_MATCHES_ALL[event_family(kind)]


class NotificationService:
    """
    Main notification service.

    This service coordinates:
    1. Candidate lookup (global endpoints plus endpoints owned by target users)
    2. Eligibility filtering per event kind
    3. Rendering the message once per event
    4. Concurrent delivery via channel adapters wrapped in retries
    """

    def __init__(
        self,
        store: EndpointStore,
        recorder: AttemptRecorder,
        config: Optional[NotificationConfig] = None,
        channels: Optional[Dict[str, NotificationChannel]] = None,
        sleep: SleepFn = asyncio.sleep,
        alert_tracker: Optional[AlertStateTracker] = None,
    ):
        self.store = store
        self.recorder = recorder
        self.config = config or NotificationConfig()

        if channels is None:
            channels = NotificationChannelFactory.build_channels(
                timeout=self.config.delivery.request_timeout_seconds,
                module_paths=self.config.channel_modules,
            )
        self.channels = {k.lower(): v for k, v in channels.items()}

        self.delivery = ReliableDelivery(
            recorder,
            policy=RetryPolicy.from_config(self.config.delivery),
            sleep=sleep,
        )
        self.alert_tracker = alert_tracker or AlertStateTracker(
            cooldown=timedelta(minutes=self.config.system_alerts.cooldown_minutes)
        )

    async def resolve_endpoints(self, event_kind: Union[str, EventKind],
                                options: Optional[DeliveryOptions] = None) -> List[NotificationEndpoint]:
        """Eligible endpoints for an event; storage read errors propagate."""
        kind = parse_event_kind(event_kind)
        options = options or DeliveryOptions()

        lookups = []
        if options.include_global_endpoints:
            lookups.append(self.store.list_global_endpoints())
        for user_id in _positive_ids(options.target_user_ids):
            lookups.append(self.store.list_endpoints_for_user(user_id))

        if not lookups:
            return []

        batches = await asyncio.gather(*lookups)
        candidates = dedupe_endpoints(e for batch in batches for e in batch)
        return [e for e in candidates if is_endpoint_eligible(e, kind, options.ignore_event_filters)]

    async def _deliver_to(self, endpoint: NotificationEndpoint, kind: EventKind,
                          context: EventContext, message: RenderedMessage,
                          max_retries: Optional[int],
                          base_backoff_ms: Optional[int]) -> DeliveryResult:
        target = DeliveryTarget(
            endpoint_id=endpoint.id,
            endpoint_type=endpoint.type,
            event_type=kind.value,
            target_user_id=context.target_user_id,
            metadata=context.audit_metadata(),
        )
        channel = self.channels.get(endpoint.type.lower())

        async def send() -> None:
            if channel is None:
                raise DeliverySkipError(f"Unsupported endpoint type: {endpoint.type}")
            await channel.send(endpoint.config, message)

        return await self.delivery.deliver(target, send, max_retries, base_backoff_ms)

    async def trigger_event(
        self,
        event_kind: Union[str, EventKind],
        context: ContextInput,
        options: Optional[DeliveryOptions] = None,
        max_retries: Optional[int] = None,
        base_backoff_ms: Optional[int] = None,
    ) -> FanoutResult:
        """
        Deliver one event to every eligible endpoint.

        Args:
            event_kind: Event kind name or ``EventKind``
            context: Event context model, or a dict validated into one
            options: Which endpoints to consider and whether to bypass filters
            max_retries: Per-call retry budget override
            base_backoff_ms: Per-call first backoff override

        Returns:
            FanoutResult with eligible and delivered counts and per-endpoint results
        """
        kind = parse_event_kind(event_kind)
        options = options or DeliveryOptions()

        if not self.config.enabled:
            logger.info(f"Notifications disabled, dropping {kind.value}")
            return FanoutResult()

        ctx = NotificationMessageBuilder.coerce_context(kind, context)
        endpoints = await self.resolve_endpoints(kind, options)
        if not endpoints:
            logger.info(f"No eligible endpoints for {kind.value}")
            return FanoutResult()

        message = NotificationMessageBuilder.render(
            kind, ctx, app_name=self.config.app_name, base_url=self.config.base_url
        )

        outcomes = await asyncio.gather(
            *(self._deliver_to(e, kind, ctx, message, max_retries, base_backoff_ms) for e in endpoints),
            return_exceptions=True,
        )

        results: Dict[int, DeliveryResult] = {}
        for endpoint, outcome in zip(endpoints, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    f"Unexpected error delivering {kind.value} to endpoint {endpoint.id}: {outcome!r}"
                )
                outcome = DeliveryResult(DeliveryStatus.FAILURE, 0, str(outcome) or type(outcome).__name__)
            results[endpoint.id] = outcome

        delivered = sum(1 for r in results.values() if r.status == DeliveryStatus.SUCCESS)
        logger.info(f"Notification {kind.value}: delivered {delivered}/{len(endpoints)}")
        return FanoutResult(eligible=len(endpoints), delivered=delivered, results=results)

    # ============ Event family helpers ============

    @staticmethod
    def _require_family(kind: EventKind, family: EventFamily) -> None:
        if event_family(kind) != family:
            raise ValueError(f"{kind.value} is not a {family.value} event")

    async def notify_system_alert(
        self,
        event_kind: Union[str, EventKind],
        context: ContextInput,
        options: Optional[DeliveryOptions] = None,
        alert_key: Optional[str] = None,
    ) -> FanoutResult:
        """
        Fire a system alert, honouring the per-key cooldown when ``alert_key`` is given.
        """
        kind = parse_event_kind(event_kind)
        self._require_family(kind, EventFamily.SYSTEM)

        if alert_key and not self.alert_tracker.should_emit(alert_key):
            logger.info(f"System alert {alert_key} suppressed by cooldown")
            return FanoutResult()

        if options is None:
            alerts = self.config.system_alerts
            options = DeliveryOptions(
                include_global_endpoints=alerts.include_global_endpoints,
                target_user_ids=list(alerts.target_user_ids),
            )

        result = await self.trigger_event(kind, context, options)
        if alert_key:
            self.alert_tracker.mark_active(alert_key)
        return result

    def resolve_system_alert(self, alert_key: str) -> None:
        """Mark an alert condition as recovered."""
        self.alert_tracker.clear_active(alert_key)

    async def notify_issue_event(self, event_kind: Union[str, EventKind], context: ContextInput,
                                 options: Optional[DeliveryOptions] = None) -> FanoutResult:
        """Global endpoints hear about new issues; the reporter hears about both."""
        kind = parse_event_kind(event_kind)
        self._require_family(kind, EventFamily.ISSUE)
        ctx = NotificationMessageBuilder.coerce_context(kind, context)

        if options is None:
            options = DeliveryOptions(
                include_global_endpoints=kind == EventKind.ISSUE_REPORTED,
                target_user_ids=_positive_ids([ctx.user_id]),
            )
        return await self.trigger_event(kind, ctx, options)

    async def notify_request_event(self, event_kind: Union[str, EventKind], context: ContextInput,
                                   options: Optional[DeliveryOptions] = None) -> FanoutResult:
        kind = parse_event_kind(event_kind)
        self._require_family(kind, EventFamily.REQUEST)
        ctx = NotificationMessageBuilder.coerce_context(kind, context)

        if options is None:
            options = DeliveryOptions(
                include_global_endpoints=True,
                target_user_ids=_positive_ids([ctx.user_id]),
            )
        return await self.trigger_event(kind, ctx, options)

    async def send_test_notification(self, options: Optional[DeliveryOptions] = None,
                                     context: Optional[ContextInput] = None) -> FanoutResult:
        """
        Admin action: send a test message to every reachable endpoint.

        Raises:
            NoTargetEndpointsError: If no endpoint is eligible
        """
        options = options or DeliveryOptions()
        options = DeliveryOptions(
            include_global_endpoints=options.include_global_endpoints,
            target_user_ids=list(options.target_user_ids),
            ignore_event_filters=True,
        )
        if context is None:
            context = SystemAlertContext(
                title=f"{self.config.app_name} test notification",
                details="If you can read this, the endpoint is configured correctly.",
            )

        result = await self.trigger_event(EventKind.TEST_NOTIFICATION, context, options)
        if result.eligible == 0:
            raise NoTargetEndpointsError()
        return result
