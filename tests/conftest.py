"""
Pytest configuration and fixtures.

This file provides pytest-specific configuration and fixtures.
For standard test utilities, see tests/__init__.py
"""

import pytest


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "db: marks tests as requiring database (deselect with '-m \"not db\"')"
    )


@pytest.fixture(autouse=True)
def restore_channel_registry():
    """Undo channel registrations made by a test."""
    from notification.channels import NotificationChannelFactory

    saved = dict(NotificationChannelFactory._channels)
    loaded = NotificationChannelFactory._custom_channels_loaded
    yield
    NotificationChannelFactory._channels = saved
    NotificationChannelFactory._custom_channels_loaded = loaded
