#!/usr/bin/env python3
"""Tests for the system alert cooldown tracker."""

import json
import unittest
from datetime import datetime, timedelta, timezone

from notification.tracker import AlertStateTracker

NOW = datetime(2026, 5, 4, 8, 30, tzinfo=timezone.utc)
KEY = "system_alert_service_unreachable:radarr:1"


class TestAlertStateTracker(unittest.TestCase):

    def setUp(self):
        self.tracker = AlertStateTracker(cooldown=timedelta(minutes=30))

    def test_new_key_emits(self):
        self.assertTrue(self.tracker.should_emit(KEY, NOW))
        self.assertFalse(self.tracker.is_active(KEY))

    def test_cooldown_suppresses_until_elapsed(self):
        self.tracker.mark_active(KEY, NOW)

        self.assertTrue(self.tracker.is_active(KEY))
        self.assertFalse(self.tracker.should_emit(KEY, NOW + timedelta(minutes=29)))
        self.assertTrue(self.tracker.should_emit(KEY, NOW + timedelta(minutes=30)))

    def test_clear_keeps_last_sent(self):
        self.tracker.mark_active(KEY, NOW)
        self.tracker.clear_active(KEY)

        self.assertFalse(self.tracker.is_active(KEY))
        self.assertFalse(self.tracker.should_emit(KEY, NOW + timedelta(minutes=5)))

    def test_clear_unknown_key_is_noop(self):
        self.tracker.clear_active("missing")
        self.assertEqual(self.tracker.to_dict(), {})

    def test_state_round_trips_through_json(self):
        self.tracker.mark_active(KEY, NOW)
        raw = json.dumps(self.tracker.to_dict())

        restored = AlertStateTracker.from_dict(json.loads(raw), cooldown=timedelta(minutes=30))

        self.assertTrue(restored.is_active(KEY))
        self.assertFalse(restored.should_emit(KEY, NOW + timedelta(minutes=1)))

    def test_malformed_state_is_tolerated(self):
        with self.assertLogs('notification.tracker', level='WARNING'):
            restored = AlertStateTracker.from_dict({
                KEY: {'active': True, 'last_sent_at': 'yesterday'},
                'junk': 'not a dict',
            })

        self.assertTrue(restored.should_emit(KEY, NOW))
        self.assertNotIn('junk', restored.to_dict())


if __name__ == '__main__':
    unittest.main()
