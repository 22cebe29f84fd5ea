"""
Message builders for notification events.

Pure functions that render one event context into the payload shapes the
channel adapters consume: a plain-text summary, a rich (Discord-style) embed
and a JSON webhook body. Given the same input they return the same output;
the only clock read is the ``sent_at`` timestamp, which callers may pin.
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from notification.events import EventFamily, EventKind, event_family, event_label, parse_event_kind
from notification.models import IssueContext, RenderedMessage, RequestContext, SystemAlertContext

MAX_TEXT_LENGTH = 2000
MAX_TITLE_LENGTH = 256
DEFAULT_APP_NAME = "MediaPortal"

DISCORD_COLORS = {
    'BLUE': 5814783,
    'ORANGE': 15105570,
    'PURPLE': 10181046,
    'GREEN': 3066993,
    'RED': 15158332,
    'GREY': 9807270,
}

EventContext = Union[SystemAlertContext, IssueContext, RequestContext]

CONTEXT_MODELS = {
    EventFamily.SYSTEM: SystemAlertContext,
    EventFamily.ISSUE: IssueContext,
    EventFamily.REQUEST: RequestContext,
}

_REQUEST_COLORS = {
    EventKind.REQUEST_PENDING: DISCORD_COLORS['ORANGE'],
    EventKind.REQUEST_SUBMITTED: DISCORD_COLORS['PURPLE'],
    EventKind.REQUEST_PARTIALLY_AVAILABLE: DISCORD_COLORS['PURPLE'],
    EventKind.REQUEST_DOWNLOADING: DISCORD_COLORS['ORANGE'],
    EventKind.REQUEST_AVAILABLE: DISCORD_COLORS['GREEN'],
    EventKind.REQUEST_DENIED: DISCORD_COLORS['RED'],
    EventKind.REQUEST_FAILED: DISCORD_COLORS['RED'],
    EventKind.REQUEST_REMOVED: DISCORD_COLORS['GREY'],
    EventKind.REQUEST_ALREADY_EXISTS: DISCORD_COLORS['GREY'],
}


def clamp_text(value: Optional[str], max_length: int = MAX_TEXT_LENGTH) -> str:
    """Truncate text to ``max_length`` characters, marking the cut with '...'."""
    if not value:
        return ""
    if len(value) <= max_length:
        return value
    return value[:max_length - 3] + "..."


def app_slug(app_name: str) -> str:
    """Lowercase identifier used as the webhook payload type prefix."""
    slug = re.sub(r'[^a-z0-9]+', '', app_name.lower())
    return slug or "notify"


def _format_ms(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value)} ms"
    return f"{value} ms"


def _compact(mapping: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in mapping.items() if value is not None}


class NotificationMessageBuilder:
    """Renders event contexts into channel-independent payloads."""

    @staticmethod
    def coerce_context(
        event_kind: Union[str, EventKind],
        context: Union[EventContext, Mapping[str, Any]]
    ) -> EventContext:
        """
        Validate a context against the model of the event's family.

        Raises:
            pydantic.ValidationError: If a dict context does not fit the model
            TypeError: If a model of the wrong family is given
        """
        model = CONTEXT_MODELS[event_family(event_kind)]
        if isinstance(context, model):
            return context
        if isinstance(context, Mapping):
            return model.model_validate(dict(context))
        raise TypeError(
            f"{type(context).__name__} is not a valid context for event {parse_event_kind(event_kind).value}"
        )

    @staticmethod
    def request_href(ctx: RequestContext, base_url: Optional[str] = None) -> str:
        path = f"/movie/{ctx.tmdb_id}" if ctx.request_type == 'movie' else f"/tv/{ctx.tmdb_id}"
        base = (base_url or "").strip().rstrip('/')
        return f"{base}{path}" if base else path

    @staticmethod
    def _request_title(ctx: RequestContext) -> str:
        return ctx.title or f"{ctx.request_type.upper()} {ctx.tmdb_id}"

    # ============ Plain text ============

    @staticmethod
    def build_summary(
        event_kind: Union[str, EventKind],
        context: Union[EventContext, Mapping[str, Any]],
        base_url: Optional[str] = None
    ) -> str:
        """Plain-text summary, clamped to the shared platform limit."""
        kind = parse_event_kind(event_kind)
        ctx = NotificationMessageBuilder.coerce_context(kind, context)
        family = event_family(kind)

        if family == EventFamily.SYSTEM:
            service_line = ""
            if ctx.service_name:
                suffix = f" ({ctx.service_type})" if ctx.service_type else ""
                service_line = f"Service: {ctx.service_name}{suffix}"
            lines = [
                f"[{event_label(kind)}] {ctx.title}",
                service_line,
                f"Latency: {_format_ms(ctx.latency_ms)}" if ctx.latency_ms is not None else "",
                f"Threshold: {_format_ms(ctx.threshold_ms)}" if ctx.threshold_ms is not None else "",
                ctx.details or "",
            ]
        elif family == EventFamily.ISSUE:
            verb = "resolved" if kind == EventKind.ISSUE_RESOLVED else "reported"
            lines = [
                f"Issue {verb}: {ctx.title}",
                f"{ctx.media_type.upper()} • TMDB {ctx.tmdb_id}",
                f"Category: {ctx.category}",
                f"Details: {ctx.description}" if ctx.description else "",
                f"Reported by: {ctx.username}",
                ctx.url or "",
            ]
        else:
            title = NotificationMessageBuilder._request_title(ctx)
            headlines = []
            if ctx.year:
                headlines.append(str(ctx.year))
            if ctx.rating:
                headlines.append(f"⭐ {ctx.rating:.1f}/10")
            lines = [
                f"{event_label(kind)}: {title}",
                " • ".join(headlines),
                f"Overview: {ctx.overview}" if ctx.overview else "",
                f"![{title}]({ctx.image_url})" if ctx.image_url else "",
                f"Requested by: {ctx.username}",
                NotificationMessageBuilder.request_href(ctx, base_url),
            ]

        return clamp_text("\n".join(line for line in lines if line))

    @staticmethod
    def build_subject(
        event_kind: Union[str, EventKind],
        context: Union[EventContext, Mapping[str, Any]],
        app_name: str = DEFAULT_APP_NAME
    ) -> str:
        """Email subject line."""
        kind = parse_event_kind(event_kind)
        ctx = NotificationMessageBuilder.coerce_context(kind, context)
        family = event_family(kind)

        if kind == EventKind.TEST_NOTIFICATION:
            return f"[{app_name}] Test notification"
        if family == EventFamily.SYSTEM:
            service = f" ({ctx.service_name})" if ctx.service_name else ""
            return f"[{app_name}] System alert: {event_label(kind)}{service}"
        if family == EventFamily.ISSUE:
            verb = "resolved" if kind == EventKind.ISSUE_RESOLVED else "reported"
            return f"[{app_name}] Issue {verb}: {ctx.title}"
        return f"[{app_name}] {event_label(kind)}: {NotificationMessageBuilder._request_title(ctx)}"

    # ============ Rich embed ============

    @staticmethod
    def build_rich_embed(
        event_kind: Union[str, EventKind],
        context: Union[EventContext, Mapping[str, Any]],
        app_name: str = DEFAULT_APP_NAME,
        base_url: Optional[str] = None,
        timestamp: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Structured embed (Discord embed schema).

        The embed carries a ``timestamp`` only when one is passed in, so the
        output stays deterministic.
        """
        kind = parse_event_kind(event_kind)
        ctx = NotificationMessageBuilder.coerce_context(kind, context)
        family = event_family(kind)
        fields: List[Dict[str, Any]]

        if family == EventFamily.SYSTEM:
            fields = [
                {'name': "Alert", 'value': event_label(kind), 'inline': True},
                {'name': "Service", 'value': ctx.service_name or "System", 'inline': True},
            ]
            if ctx.latency_ms is not None:
                fields.append({'name': "Latency", 'value': _format_ms(ctx.latency_ms), 'inline': True})
            if ctx.threshold_ms is not None:
                fields.append({'name': "Threshold", 'value': _format_ms(ctx.threshold_ms), 'inline': True})

            if kind == EventKind.TEST_NOTIFICATION:
                color = DISCORD_COLORS['BLUE']
            elif kind == EventKind.SYSTEM_ALERT_HIGH_LATENCY:
                color = DISCORD_COLORS['ORANGE']
            else:
                color = DISCORD_COLORS['RED']

            embed = {
                'title': clamp_text(ctx.title, MAX_TITLE_LENGTH),
                'description': clamp_text(ctx.details) or None,
                'color': color,
                'author': {'name': f"{app_name} System Alerts"},
                'fields': fields,
            }
        elif family == EventFamily.ISSUE:
            resolved = kind == EventKind.ISSUE_RESOLVED
            fields = [
                {'name': "Reported By", 'value': ctx.username, 'inline': True},
                {'name': "Issue Type", 'value': ctx.category, 'inline': True},
                {'name': "Issue Status", 'value': "Resolved" if resolved else "Open", 'inline': True},
            ]
            embed = {
                'title': clamp_text(f"{event_label(kind)}: {ctx.title}", MAX_TITLE_LENGTH),
                'description': clamp_text(ctx.description),
                'url': ctx.url,
                'color': DISCORD_COLORS['GREEN'] if resolved else DISCORD_COLORS['RED'],
                'author': {'name': event_label(kind)},
                'fields': fields,
                'thumbnail': {'url': ctx.image_url} if ctx.image_url else None,
            }
        else:
            status = event_label(kind)
            fields = [
                {'name': "Requested By", 'value': ctx.username, 'inline': True},
                {'name': "Request Status", 'value': status, 'inline': True},
            ]
            if ctx.year:
                fields.append({'name': "Year", 'value': str(ctx.year), 'inline': True})
            if ctx.rating:
                fields.append({'name': "Rating", 'value': f"⭐ {ctx.rating:.1f}/10", 'inline': True})
            embed = {
                'title': clamp_text(ctx.title or status, MAX_TITLE_LENGTH),
                'description': clamp_text(ctx.overview),
                'url': NotificationMessageBuilder.request_href(ctx, base_url),
                'color': _REQUEST_COLORS.get(kind, DISCORD_COLORS['GREY']),
                'author': {'name': status},
                'fields': fields,
                'thumbnail': {'url': ctx.image_url} if ctx.image_url else None,
            }

        if timestamp is not None:
            embed['timestamp'] = timestamp.isoformat()
        return _compact(embed)

    # ============ Webhook JSON ============

    @staticmethod
    def build_webhook_payload(
        event_kind: Union[str, EventKind],
        context: Union[EventContext, Mapping[str, Any]],
        app_name: str = DEFAULT_APP_NAME,
        base_url: Optional[str] = None,
        sent_at: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """JSON body for generic webhooks; ``sent_at`` defaults to now (UTC)."""
        kind = parse_event_kind(event_kind)
        ctx = NotificationMessageBuilder.coerce_context(kind, context)
        family = event_family(kind)
        prefix = app_slug(app_name)
        sent_at = sent_at or datetime.now(timezone.utc)

        if family == EventFamily.SYSTEM:
            payload = {
                'type': f"{prefix}.system_alert",
                'event': kind.value,
                'title': ctx.title,
                'service_name': ctx.service_name,
                'service_type': ctx.service_type,
                'latency_ms': ctx.latency_ms,
                'threshold_ms': ctx.threshold_ms,
                'details': ctx.details,
                'metadata': dict(ctx.metadata),
            }
        elif family == EventFamily.ISSUE:
            payload = {
                'type': f"{prefix}.{kind.value}",
                'event': kind.value,
                'issue_id': ctx.issue_id,
                'media_type': ctx.media_type,
                'tmdb_id': ctx.tmdb_id,
                'title': ctx.title,
                'category': ctx.category,
                'description': ctx.description,
                'reported_by': {'username': ctx.username, 'user_id': ctx.user_id},
                'image_url': ctx.image_url,
                'url': ctx.url,
            }
        else:
            payload = {
                'type': f"{prefix}.request_event",
                'event': kind.value,
                'status': event_label(kind),
                'title': NotificationMessageBuilder._request_title(ctx),
                'tmdb_id': ctx.tmdb_id,
                'request_type': ctx.request_type,
                'request_id': ctx.request_id,
                'requested_by': {'username': ctx.username, 'user_id': ctx.user_id},
                'image_url': ctx.image_url,
                'rating': ctx.rating,
                'year': ctx.year,
                'overview': ctx.overview,
                'sonarr_series_id': ctx.sonarr_series_id,
                'tvdb_id': ctx.tvdb_id,
                'url': NotificationMessageBuilder.request_href(ctx, base_url),
            }

        payload['sent_at'] = sent_at.isoformat()
        return payload

    # ============ Bundle ============

    @staticmethod
    def render(
        event_kind: Union[str, EventKind],
        context: Union[EventContext, Mapping[str, Any]],
        app_name: str = DEFAULT_APP_NAME,
        base_url: Optional[str] = None,
        sent_at: Optional[datetime] = None
    ) -> RenderedMessage:
        """Render every payload shape for one event in a single pass."""
        kind = parse_event_kind(event_kind)
        ctx = NotificationMessageBuilder.coerce_context(kind, context)
        sent_at = sent_at or datetime.now(timezone.utc)

        url = None
        discord_content = None
        discord_user_id = None
        recipient_email = None
        title = getattr(ctx, 'title', "")

        if isinstance(ctx, IssueContext):
            url = ctx.url
            recipient_email = ctx.user_email
        elif isinstance(ctx, RequestContext):
            url = NotificationMessageBuilder.request_href(ctx, base_url)
            title = NotificationMessageBuilder._request_title(ctx)
            recipient_email = ctx.user_email
            discord_user_id = ctx.discord_user_id
            line = f"{event_label(kind)}: {title} - {url}"
            discord_content = f"<@{discord_user_id}> {line}" if discord_user_id else line

        return RenderedMessage(
            app_name=app_name,
            title=title,
            subject=NotificationMessageBuilder.build_subject(kind, ctx, app_name),
            summary=NotificationMessageBuilder.build_summary(kind, ctx, base_url),
            embed=NotificationMessageBuilder.build_rich_embed(kind, ctx, app_name, base_url, timestamp=sent_at),
            webhook_payload=NotificationMessageBuilder.build_webhook_payload(
                kind, ctx, app_name, base_url, sent_at=sent_at
            ),
            url=url,
            discord_content=discord_content,
            discord_user_id=discord_user_id,
            recipient_email=recipient_email,
        )
