#!/usr/bin/env python3
"""
Tests for NotificationMessageBuilder rendering.

Usage:
    python -m pytest tests/unit/notification/test_message_builder.py -v
"""

import unittest
from datetime import datetime, timezone

from notification.message_builder import (
    DISCORD_COLORS,
    MAX_TEXT_LENGTH,
    MAX_TITLE_LENGTH,
    NotificationMessageBuilder,
    app_slug,
    clamp_text,
)
from notification.models import IssueContext, RequestContext, SystemAlertContext

SENT_AT = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestClampText(unittest.TestCase):

    def test_short_text_unchanged(self):
        self.assertEqual(clamp_text("hello"), "hello")

    def test_empty(self):
        self.assertEqual(clamp_text(None), "")
        self.assertEqual(clamp_text(""), "")

    def test_long_text_truncated_with_ellipsis(self):
        clamped = clamp_text("x" * 5000)
        self.assertEqual(len(clamped), MAX_TEXT_LENGTH)
        self.assertTrue(clamped.endswith("..."))

    def test_custom_limit(self):
        self.assertEqual(clamp_text("abcdefghij", 8), "abcde...")

    def test_app_slug(self):
        self.assertEqual(app_slug("Media Portal"), "mediaportal")
        self.assertEqual(app_slug("!!!"), "notify")


class TestSystemAlertMessages(unittest.TestCase):

    def setUp(self):
        self.context = SystemAlertContext(
            title="Sonarr latency exceeded threshold",
            service_name="Sonarr",
            service_type="sonarr",
            latency_ms=2400,
            threshold_ms=1500,
            details="Health check took 2400 ms.",
            metadata={'serviceId': 2},
        )

    def test_summary(self):
        summary = NotificationMessageBuilder.build_summary('system_alert_high_latency', self.context)
        self.assertEqual(summary.split("\n"), [
            "[High Latency] Sonarr latency exceeded threshold",
            "Service: Sonarr (sonarr)",
            "Latency: 2400 ms",
            "Threshold: 1500 ms",
            "Health check took 2400 ms.",
        ])

    def test_summary_skips_missing_fields(self):
        summary = NotificationMessageBuilder.build_summary(
            'system_alert_service_unreachable', {'title': 'Radarr is unreachable'}
        )
        self.assertEqual(summary, "[Service Unreachable] Radarr is unreachable")

    def test_subject(self):
        subject = NotificationMessageBuilder.build_subject('system_alert_high_latency', self.context, "Portal")
        self.assertEqual(subject, "[Portal] System alert: High Latency (Sonarr)")

    def test_embed_colors(self):
        latency = NotificationMessageBuilder.build_rich_embed('system_alert_high_latency', self.context)
        down = NotificationMessageBuilder.build_rich_embed('system_alert_service_unreachable', self.context)

        self.assertEqual(latency['color'], DISCORD_COLORS['ORANGE'])
        self.assertEqual(down['color'], DISCORD_COLORS['RED'])
        self.assertEqual(latency['author'], {'name': "MediaPortal System Alerts"})
        self.assertNotIn('timestamp', latency)

    def test_webhook_payload(self):
        payload = NotificationMessageBuilder.build_webhook_payload(
            'system_alert_high_latency', self.context, "MediaPortal", sent_at=SENT_AT
        )
        self.assertEqual(payload, {
            'type': 'mediaportal.system_alert',
            'event': 'system_alert_high_latency',
            'title': "Sonarr latency exceeded threshold",
            'service_name': "Sonarr",
            'service_type': "sonarr",
            'latency_ms': 2400.0,
            'threshold_ms': 1500.0,
            'details': "Health check took 2400 ms.",
            'metadata': {'serviceId': 2},
            'sent_at': SENT_AT.isoformat(),
        })

    def test_test_notification_subject(self):
        subject = NotificationMessageBuilder.build_subject('test_notification', {'title': 'hi'}, "Portal")
        self.assertEqual(subject, "[Portal] Test notification")


class TestEmbedTitles(unittest.TestCase):

    def test_system_alert_title_clamped(self):
        embed = NotificationMessageBuilder.build_rich_embed(
            'system_alert_service_unreachable', SystemAlertContext(title="Radarr " * 80))
        self.assertEqual(len(embed['title']), MAX_TITLE_LENGTH)

    def test_request_title_clamped(self):
        context = RequestContext(request_id='req-1', request_type='movie', tmdb_id=1,
                                 title="T" * 300, username='cobb')
        embed = NotificationMessageBuilder.build_rich_embed('request_available', context)
        self.assertEqual(len(embed['title']), MAX_TITLE_LENGTH)

    def test_short_title_untouched(self):
        embed = NotificationMessageBuilder.build_rich_embed(
            'system_alert_high_latency', SystemAlertContext(title="Sonarr is slow"))
        self.assertEqual(embed['title'], "Sonarr is slow")


class TestIssueMessages(unittest.TestCase):

    def setUp(self):
        self.context = IssueContext(
            issue_id='iss-1',
            media_type='movie',
            tmdb_id=603,
            title='The Matrix',
            category='Audio',
            description='Audio is out of sync',
            username='neo',
            user_id=3,
            url='https://portal.example.com/issues/iss-1',
        )

    def test_summary(self):
        summary = NotificationMessageBuilder.build_summary('issue_reported', self.context)
        self.assertEqual(summary.split("\n"), [
            "Issue reported: The Matrix",
            "MOVIE • TMDB 603",
            "Category: Audio",
            "Details: Audio is out of sync",
            "Reported by: neo",
            "https://portal.example.com/issues/iss-1",
        ])

    def test_resolved_embed(self):
        embed = NotificationMessageBuilder.build_rich_embed('issue_resolved', self.context)
        self.assertEqual(embed['color'], DISCORD_COLORS['GREEN'])
        status = [f for f in embed['fields'] if f['name'] == "Issue Status"][0]
        self.assertEqual(status['value'], "Resolved")
        self.assertNotIn('thumbnail', embed)

    def test_long_title_clamped_in_embed(self):
        context = self.context.model_copy(update={'title': "M" * 400})
        embed = NotificationMessageBuilder.build_rich_embed('issue_reported', context)
        self.assertEqual(len(embed['title']), MAX_TITLE_LENGTH)
        self.assertTrue(embed['title'].startswith("Issue Reported: MMM"))
        self.assertTrue(embed['title'].endswith("..."))

    def test_reported_embed(self):
        embed = NotificationMessageBuilder.build_rich_embed('issue_reported', self.context)
        self.assertEqual(embed['color'], DISCORD_COLORS['RED'])
        self.assertEqual([f['name'] for f in embed['fields']], ["Reported By", "Issue Type", "Issue Status"])

    def test_long_description_clamped(self):
        context = self.context.model_copy(update={'description': 'y' * 3000})
        embed = NotificationMessageBuilder.build_rich_embed('issue_reported', context)
        summary = NotificationMessageBuilder.build_summary('issue_reported', context)
        self.assertEqual(len(embed['description']), MAX_TEXT_LENGTH)
        self.assertLessEqual(len(summary), MAX_TEXT_LENGTH)

    def test_webhook_payload(self):
        payload = NotificationMessageBuilder.build_webhook_payload('issue_resolved', self.context, sent_at=SENT_AT)
        self.assertEqual(payload['type'], 'mediaportal.issue_resolved')
        self.assertEqual(payload['reported_by'], {'username': 'neo', 'user_id': 3})
        self.assertEqual(payload['tmdb_id'], 603)


class TestRequestMessages(unittest.TestCase):

    def setUp(self):
        self.context = RequestContext(
            request_id='req-9',
            request_type='episode',
            tmdb_id=1399,
            title='Game of Thrones',
            username='arya',
            user_id=4,
            user_email='arya@example.com',
            discord_user_id='42',
            rating=9.2,
            year=2011,
            overview='Nine noble families fight for control.',
        )

    def test_href(self):
        self.assertEqual(NotificationMessageBuilder.request_href(self.context), "/tv/1399")
        self.assertEqual(
            NotificationMessageBuilder.request_href(self.context, "https://portal.example.com/"),
            "https://portal.example.com/tv/1399",
        )

    def test_summary(self):
        summary = NotificationMessageBuilder.build_summary('request_downloading', self.context,
                                                           "https://portal.example.com")
        self.assertEqual(summary.split("\n"), [
            "Downloading: Game of Thrones",
            "2011 • ⭐ 9.2/10",
            "Overview: Nine noble families fight for control.",
            "Requested by: arya",
            "https://portal.example.com/tv/1399",
        ])

    def test_embed_colors_by_status(self):
        colors = {
            kind: NotificationMessageBuilder.build_rich_embed(kind, self.context)['color']
            for kind in ['request_pending', 'request_submitted', 'request_available',
                         'request_denied', 'request_removed']
        }
        self.assertEqual(colors, {
            'request_pending': DISCORD_COLORS['ORANGE'],
            'request_submitted': DISCORD_COLORS['PURPLE'],
            'request_available': DISCORD_COLORS['GREEN'],
            'request_denied': DISCORD_COLORS['RED'],
            'request_removed': DISCORD_COLORS['GREY'],
        })

    def test_render_bundle(self):
        message = NotificationMessageBuilder.render(
            'request_available', self.context, "MediaPortal", "https://portal.example.com", sent_at=SENT_AT
        )
        self.assertEqual(message.title, "Game of Thrones")
        self.assertEqual(message.subject, "[MediaPortal] Available: Game of Thrones")
        self.assertEqual(message.url, "https://portal.example.com/tv/1399")
        self.assertEqual(message.recipient_email, "arya@example.com")
        self.assertEqual(message.discord_content,
                         "<@42> Available: Game of Thrones - https://portal.example.com/tv/1399")
        self.assertEqual(message.embed['timestamp'], SENT_AT.isoformat())
        self.assertEqual(message.webhook_payload['type'], 'mediaportal.request_event')
        self.assertEqual(message.webhook_payload['sent_at'], SENT_AT.isoformat())

    def test_render_is_deterministic_for_fixed_timestamp(self):
        first = NotificationMessageBuilder.render('request_failed', self.context, sent_at=SENT_AT)
        second = NotificationMessageBuilder.render('request_failed', self.context, sent_at=SENT_AT)
        self.assertEqual(first, second)

    def test_wrong_context_type(self):
        with self.assertRaises(TypeError):
            NotificationMessageBuilder.build_summary('request_available', SystemAlertContext(title="x"))


if __name__ == '__main__':
    unittest.main()
