"""
Notification Channels

One adapter per endpoint type. Each adapter turns a rendered message plus the
endpoint's stored config into a single outbound call (HTTP via ``requests``
or SMTP via ``smtplib``). The blocking call runs in a worker thread so that
deliveries to many endpoints proceed concurrently.

Adapters signal outcomes with exceptions:
- ``DeliverySkipError`` when the endpoint config cannot work (never retried)
- ``DeliveryError`` for transport failures and non-2xx responses

Usage:
    from notification.channels import NotificationChannelFactory

    channel = NotificationChannelFactory.get_channel('discord')
    await channel.send(endpoint.config, message)
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, List, Mapping
import asyncio
import importlib
import inspect
import logging
import os
import urllib.parse

import requests
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import formataddr

from notification.errors import DeliveryError, DeliverySkipError
from notification.models import RenderedMessage

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_NTFY_URL = "https://ntfy.sh"
TELEGRAM_API_URL = "https://api.telegram.org"
PUSHBULLET_API_URL = "https://api.pushbullet.com/v2/pushes"
PUSHOVER_API_URL = "https://api.pushover.net/1/messages.json"
TELEGRAM_MAX_LENGTH = 4096


def _config_str(config: Mapping[str, Any], *keys: str) -> str:
    """First non-empty string value among ``keys``."""
    for key in keys:
        value = config.get(key)
        if value is None:
            continue
        value = str(value).strip()
        if value:
            return value
    return ""


def _is_http_url(url: str) -> bool:
    parsed = urllib.parse.urlparse(url)
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


def _safe_url(url: str) -> str:
    """URL without query string or credentials, for logging."""
    parsed = urllib.parse.urlparse(url)
    return f"{parsed.scheme}://{parsed.hostname}{parsed.path}"


def _mask_email(email: str) -> str:
    """
    Mask email address for safe logging (PII protection).

    Shows only domain, e.g., "***@example.com"
    """
    if '@' not in email:
        return "***"
    _, domain = email.rsplit('@', 1)
    return f"***@{domain}"


class NotificationChannel(ABC):
    """
    Abstract base class for all notification channels.

    Subclasses implement ``validate_config`` and ``_deliver``; ``send`` is the
    async entry point used by the delivery engine.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.timeout = timeout

    @property
    @abstractmethod
    def channel_type(self) -> str:
        """Return the endpoint type this channel serves."""
        pass

    def validate_config(self, config: Mapping[str, Any], message: RenderedMessage) -> None:
        """
        Check that the endpoint config is usable for this message.

        Raises:
            DeliverySkipError: If required configuration is missing or invalid
        """

    async def send(self, config: Mapping[str, Any], message: RenderedMessage) -> None:
        """
        Deliver one message to one endpoint.

        Raises:
            DeliverySkipError: Config precondition failed
            DeliveryError: The remote call failed
        """
        config = config or {}
        self.validate_config(config, message)
        await asyncio.to_thread(self._deliver, config, message)

    @abstractmethod
    def _deliver(self, config: Mapping[str, Any], message: RenderedMessage) -> None:
        """Blocking delivery call, executed in a worker thread."""
        pass

    def _post(self, url: str, **kwargs) -> requests.Response:
        """POST and translate transport errors and non-2xx statuses to DeliveryError."""
        try:
            response = requests.post(url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise DeliveryError(f"{self.channel_type} request failed: {e}") from e

        if not response.ok:
            raise DeliveryError(
                f"{self.channel_type} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response


class DiscordChannel(NotificationChannel):
    """Discord webhook channel (rich embed)."""

    @property
    def channel_type(self) -> str:
        return 'discord'

    def validate_config(self, config, message):
        if not _config_str(config, 'webhookUrl'):
            raise DeliverySkipError("Discord webhook URL is not configured")

    def _deliver(self, config, message):
        payload: Dict[str, Any] = {'embeds': [message.embed]}
        if message.discord_content:
            payload['content'] = message.discord_content
        if message.discord_user_id:
            payload['allowed_mentions'] = {'users': [message.discord_user_id]}
        username = _config_str(config, 'botUsername')
        if username:
            payload['username'] = username
        avatar = _config_str(config, 'botAvatarUrl')
        if avatar:
            payload['avatar_url'] = avatar

        url = _config_str(config, 'webhookUrl')
        self._post(url, json=payload)
        logger.debug(f"Discord notification sent to {_safe_url(url)}")


class SlackChannel(NotificationChannel):
    """Slack incoming-webhook channel."""

    @property
    def channel_type(self) -> str:
        return 'slack'

    def validate_config(self, config, message):
        if not _config_str(config, 'webhookUrl'):
            raise DeliverySkipError("Slack webhook URL is not configured")

    def _deliver(self, config, message):
        payload = {
            'text': f"[{message.app_name}] {message.title}",
            'blocks': [
                {'type': 'section', 'text': {'type': 'mrkdwn', 'text': message.summary}},
            ],
        }
        self._post(_config_str(config, 'webhookUrl'), json=payload)


class WebhookChannel(NotificationChannel):
    """Generic JSON webhook channel."""

    @property
    def channel_type(self) -> str:
        return 'webhook'

    def validate_config(self, config, message):
        url = _config_str(config, 'url', 'webhookUrl')
        if not url:
            raise DeliverySkipError("Webhook URL is not configured")
        if not _is_http_url(url):
            raise DeliverySkipError("Webhook URL must use http or https")

    def _deliver(self, config, message):
        url = _config_str(config, 'url', 'webhookUrl')
        headers = {'Content-Type': 'application/json'}
        auth_header = _config_str(config, 'authHeader')
        if auth_header:
            headers['Authorization'] = auth_header

        self._post(url, json=message.webhook_payload, headers=headers)
        logger.debug(f"Webhook sent to {_safe_url(url)}")


class TelegramChannel(NotificationChannel):
    """Telegram Bot API channel."""

    @property
    def channel_type(self) -> str:
        return 'telegram'

    def validate_config(self, config, message):
        if not _config_str(config, 'botToken') or not _config_str(config, 'chatId'):
            raise DeliverySkipError("Telegram bot token or chat ID missing")

    def _deliver(self, config, message):
        payload: Dict[str, Any] = {
            'chat_id': _config_str(config, 'chatId'),
            'text': message.summary[:TELEGRAM_MAX_LENGTH],
            'disable_web_page_preview': False,
            'disable_notification': bool(config.get('sendSilently', False)),
        }
        thread_id = _config_str(config, 'messageThreadId')
        if thread_id:
            payload['message_thread_id'] = thread_id

        url = f"{TELEGRAM_API_URL}/bot{_config_str(config, 'botToken')}/sendMessage"
        response = self._post(url, json=payload)

        try:
            body = response.json()
        except ValueError:
            body = {}
        if isinstance(body, dict) and body.get('ok') is False:
            raise DeliveryError(f"Telegram API error: {body.get('description', 'unknown error')}")


class EmailChannel(NotificationChannel):
    """Email notification channel via SMTP."""

    @property
    def channel_type(self) -> str:
        return 'email'

    @staticmethod
    def resolve_recipient(config: Mapping[str, Any], message: RenderedMessage) -> str:
        if config.get('userEmailRequired') and not message.recipient_email:
            raise DeliverySkipError("Endpoint requires user email, but user has no email")
        recipient = _config_str(config, 'to') or (message.recipient_email or "")
        if not recipient:
            raise DeliverySkipError("No recipient email configured")
        return recipient

    def validate_config(self, config, message):
        if not _config_str(config, 'smtpHost'):
            raise DeliverySkipError("SMTP host is not configured")
        if not _config_str(config, 'senderAddress', 'emailFrom'):
            raise DeliverySkipError("Sender email address is not configured")
        self.resolve_recipient(config, message)

    def _build_message(self, config, message: RenderedMessage, recipient: str) -> MIMEMultipart:
        sender = _config_str(config, 'senderAddress', 'emailFrom')
        sender_name = _config_str(config, 'senderName') or message.app_name

        msg = MIMEMultipart()
        msg['From'] = formataddr((sender_name, sender))
        msg['To'] = recipient
        msg['Subject'] = message.subject
        body = message.summary
        if message.url and message.url not in body:
            body = f"{body}\n\n{message.url}"
        msg.attach(MIMEText(body, 'plain', 'utf-8'))
        return msg

    @staticmethod
    def tls_mode(config: Mapping[str, Any]):
        """
        Resolve ``(secure, require_tls, ignore_tls)`` for an SMTP endpoint.

        ``encryption`` wins over the individual ``secure`` / ``requireTls`` /
        ``ignoreTls`` flags when it is set.
        """
        secure = bool(config.get('secure'))
        require_tls = bool(config.get('requireTls'))
        ignore_tls = bool(config.get('ignoreTls'))
        encryption = _config_str(config, 'encryption').lower()
        if encryption in ('tls', 'implicit'):
            return True, False, False
        if encryption == 'none':
            return False, False, True
        if encryption == 'opportunistic':
            return False, True, False
        if encryption:
            return False, False, False
        return secure, require_tls, ignore_tls

    def _deliver(self, config, message):
        recipient = self.resolve_recipient(config, message)
        host = _config_str(config, 'smtpHost')
        secure, require_tls, ignore_tls = self.tls_mode(config)
        try:
            port = int(config.get('smtpPort') or (465 if secure else 587))
        except (TypeError, ValueError):
            raise DeliverySkipError(f"Invalid SMTP port: {config.get('smtpPort')}") from None

        msg = self._build_message(config, message, recipient)
        user = _config_str(config, 'authUser')
        password = _config_str(config, 'authPass')

        try:
            if secure:
                server = smtplib.SMTP_SSL(host, port, timeout=self.timeout)
            else:
                server = smtplib.SMTP(host, port, timeout=self.timeout)
            with server:
                if not secure and not ignore_tls:
                    server.ehlo()
                    if server.has_extn('starttls'):
                        server.starttls()
                        server.ehlo()
                    elif require_tls:
                        raise DeliveryError(f"SMTP server {host} does not offer STARTTLS")
                if user and password:
                    server.login(user, password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"SMTP delivery failed: {e}") from e

        logger.debug(f"Email sent to {_mask_email(recipient)}")


class GotifyChannel(NotificationChannel):
    """Gotify server channel."""

    @property
    def channel_type(self) -> str:
        return 'gotify'

    def validate_config(self, config, message):
        if not _config_str(config, 'url', 'baseUrl') or not _config_str(config, 'token'):
            raise DeliverySkipError("Gotify URL or token missing")

    def _deliver(self, config, message):
        base = _config_str(config, 'url', 'baseUrl').rstrip('/')
        try:
            priority = int(config.get('priority', 8))
        except (TypeError, ValueError):
            priority = 8
        self._post(
            f"{base}/message",
            params={'token': _config_str(config, 'token')},
            json={'title': message.subject, 'message': message.summary, 'priority': priority},
        )


class NtfyChannel(NotificationChannel):
    """ntfy topic channel (plain-text body)."""

    @property
    def channel_type(self) -> str:
        return 'ntfy'

    def validate_config(self, config, message):
        if not _config_str(config, 'topic'):
            raise DeliverySkipError("ntfy topic is not configured")
        method = _config_str(config, 'authMethod').lower() or 'none'
        if method == 'basic' and not _config_str(config, 'username'):
            raise DeliverySkipError("ntfy basic auth requires a username")
        if method == 'token' and not _config_str(config, 'token'):
            raise DeliverySkipError("ntfy token auth requires a token")

    def _deliver(self, config, message):
        base = (_config_str(config, 'url', 'baseUrl') or DEFAULT_NTFY_URL).rstrip('/')
        topic = urllib.parse.quote(_config_str(config, 'topic'), safe='')
        # HTTP headers must be latin-1 encodable
        headers = {
            'Content-Type': 'text/plain; charset=utf-8',
            'Title': message.subject.encode('latin-1', 'replace').decode('latin-1'),
        }
        priority = _config_str(config, 'priority')
        if priority:
            headers['Priority'] = priority
        if message.url:
            headers['Click'] = message.url

        kwargs: Dict[str, Any] = {}
        method = _config_str(config, 'authMethod').lower()
        if method == 'basic':
            kwargs['auth'] = (_config_str(config, 'username'), _config_str(config, 'password'))
        elif method == 'token':
            headers['Authorization'] = f"Bearer {_config_str(config, 'token')}"

        self._post(f"{base}/{topic}", data=message.summary.encode('utf-8'), headers=headers, **kwargs)


class PushbulletChannel(NotificationChannel):
    """Pushbullet note channel."""

    @property
    def channel_type(self) -> str:
        return 'pushbullet'

    def validate_config(self, config, message):
        if not _config_str(config, 'accessToken'):
            raise DeliverySkipError("Pushbullet access token missing")

    def _deliver(self, config, message):
        payload = {'type': 'note', 'title': message.subject, 'body': message.summary}
        channel_tag = _config_str(config, 'channelTag')
        if channel_tag:
            payload['channel_tag'] = channel_tag
        self._post(
            PUSHBULLET_API_URL,
            json=payload,
            headers={'Access-Token': _config_str(config, 'accessToken')},
        )


class PushoverChannel(NotificationChannel):
    """Pushover message channel."""

    @property
    def channel_type(self) -> str:
        return 'pushover'

    def validate_config(self, config, message):
        if not _config_str(config, 'apiToken') or not _config_str(config, 'userKey'):
            raise DeliverySkipError("Pushover API token or user key missing")

    def _deliver(self, config, message):
        form = {
            'token': _config_str(config, 'apiToken'),
            'user': _config_str(config, 'userKey'),
            'title': message.subject,
            'message': message.summary,
        }
        if message.url:
            form['url'] = message.url
        priority = _config_str(config, 'priority')
        if priority:
            form['priority'] = priority
        sound = _config_str(config, 'sound')
        if sound:
            form['sound'] = sound
        self._post(PUSHOVER_API_URL, data=form)


class NotificationChannelFactory:
    """
    Factory for creating notification channels.

    Extra channels can be registered in code or loaded from importable
    modules listed in ``NOTIFICATION_CHANNEL_MODULES`` (comma-separated
    ``package.module:ClassName`` entries; the class part is optional).
    """

    # Registry of available channels
    _channels: Dict[str, type] = {
        'discord': DiscordChannel,
        'slack': SlackChannel,
        'webhook': WebhookChannel,
        'telegram': TelegramChannel,
        'email': EmailChannel,
        'gotify': GotifyChannel,
        'ntfy': NtfyChannel,
        'pushbullet': PushbulletChannel,
        'pushover': PushoverChannel,
    }

    _custom_channels_loaded = False

    @classmethod
    def load_custom_channels(cls, module_paths: Optional[List[str]] = None):
        """Load channels from the environment once, plus any explicit module paths."""
        if not cls._custom_channels_loaded:
            cls._custom_channels_loaded = True
            env_modules = os.environ.get('NOTIFICATION_CHANNEL_MODULES', '')
            for module_path in env_modules.split(','):
                module_path = module_path.strip()
                if module_path:
                    cls._load_channel_from_module(module_path)

        for module_path in module_paths or []:
            cls._load_channel_from_module(module_path)

    @classmethod
    def _load_channel_from_module(cls, module_path: str):
        """Load a channel class from an installed module."""
        try:
            if ':' in module_path:
                module_name, class_name = module_path.split(':', 1)
            else:
                module_name, class_name = module_path, None

            module = importlib.import_module(module_name)

            if class_name:
                candidates = [getattr(module, class_name)]
            else:
                candidates = [obj for _, obj in inspect.getmembers(module, inspect.isclass)]

            for obj in candidates:
                if (inspect.isclass(obj) and issubclass(obj, NotificationChannel)
                        and not inspect.isabstract(obj) and obj.__module__ == module.__name__):
                    channel_type = obj().channel_type
                    cls._channels[channel_type.lower()] = obj
                    logger.info(f"Loaded custom channel '{channel_type}' from {module_path}")

        except (ImportError, AttributeError, TypeError) as e:
            logger.error(f"Failed to load custom channel from module {module_path}: {e}")

    @classmethod
    def get_channel(cls, channel_type: str, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> NotificationChannel:
        """
        Get a notification channel instance by type.

        Raises:
            ValueError: If channel type is not registered
        """
        cls.load_custom_channels()

        channel_class = cls._channels.get(channel_type.lower())
        if not channel_class:
            raise ValueError(f"Unknown channel type: {channel_type}. "
                             f"Available: {', '.join(cls._channels.keys())}")

        return channel_class(timeout=timeout)

    @classmethod
    def register_channel(cls, channel_type: str, channel_class: type):
        """
        Register a new notification channel.

        Raises:
            ValueError: If the class does not extend NotificationChannel
        """
        if not (inspect.isclass(channel_class) and issubclass(channel_class, NotificationChannel)):
            raise ValueError("Channel class must extend NotificationChannel")

        cls._channels[channel_type.lower()] = channel_class
        logger.info(f"Registered new channel type: {channel_type}")

    @classmethod
    def list_channels(cls) -> list:
        """List all available channel types."""
        cls.load_custom_channels()
        return list(cls._channels.keys())

    @classmethod
    def build_channels(cls, timeout: float = DEFAULT_TIMEOUT_SECONDS,
                       module_paths: Optional[List[str]] = None) -> Dict[str, NotificationChannel]:
        """One instance per registered type, sharing a request timeout."""
        cls.load_custom_channels(module_paths)
        return {channel_type: channel_class(timeout=timeout)
                for channel_type, channel_class in cls._channels.items()}
