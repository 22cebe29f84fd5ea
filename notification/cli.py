#!/usr/bin/env python3
"""
Command-line entry point for the notification engine.

Usage:
    python -m notification.cli test
    python -m notification.cli test --user-id 3 --no-global
    python -m notification.cli alert system_alert_service_unreachable --title "Radarr is unreachable" --service Radarr
    python -m notification.cli attempts --endpoint-id 4 --limit 20
"""

import argparse
import asyncio
import logging
import sys

from core.config_loader import AppConfig, load_config
from database.database import get_session_factory
from database.notification_store import SqlAttemptRecorder, SqlEndpointStore
from database.uow import notification_uow
from notification.errors import NoTargetEndpointsError
from notification.models import DeliveryOptions, SystemAlertContext
from notification.service import NotificationService

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_service(config: AppConfig) -> NotificationService:
    session_factory = get_session_factory(config.database.url)
    return NotificationService(
        SqlEndpointStore(session_factory),
        SqlAttemptRecorder(session_factory),
        config=config.notifications,
    )


async def run_test(config: AppConfig, args) -> int:
    service = build_service(config)
    options = DeliveryOptions(
        include_global_endpoints=not args.no_global,
        target_user_ids=args.user_id or [],
    )
    try:
        result = await service.send_test_notification(options)
    except NoTargetEndpointsError as e:
        logger.error(str(e))
        return 1

    print(f"Delivered {result.delivered}/{result.eligible}")
    for endpoint_id, outcome in sorted(result.results.items()):
        suffix = f" ({outcome.error})" if outcome.error else ""
        print(f"  endpoint {endpoint_id}: {outcome.status.value} after {outcome.attempts} attempt(s){suffix}")
    return 0 if result.delivered == result.eligible else 2


async def run_alert(config: AppConfig, args) -> int:
    service = build_service(config)
    context = SystemAlertContext(
        title=args.title,
        service_name=args.service,
        service_type=args.service_type,
        latency_ms=args.latency_ms,
        threshold_ms=args.threshold_ms,
        details=args.details,
    )
    result = await service.notify_system_alert(args.event, context)
    print(f"Delivered {result.delivered}/{result.eligible}")
    return 0


def run_attempts(config: AppConfig, args) -> int:
    with notification_uow(get_session_factory(config.database.url)) as repo:
        attempts = repo.list_recent_attempts(endpoint_id=args.endpoint_id, limit=args.limit)
        for a in attempts:
            error = f" {a.error_message}" if a.error_message else ""
            print(f"{a.created_at} endpoint={a.endpoint_id} type={a.endpoint_type} "
                  f"event={a.event_type} attempt={a.attempt_number} {a.status} {a.duration_ms}ms{error}")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Notification delivery engine')
    parser.add_argument('--config', default='config.yaml')
    parser.add_argument('--verbose', action='store_true')
    subparsers = parser.add_subparsers(dest='command', required=True)

    test_parser = subparsers.add_parser('test', help='Send a test notification')
    test_parser.add_argument('--user-id', type=int, action='append')
    test_parser.add_argument('--no-global', action='store_true')

    alert_parser = subparsers.add_parser('alert', help='Fire a system alert')
    alert_parser.add_argument('event', choices=[
        'system_alert_high_latency',
        'system_alert_service_unreachable',
        'system_alert_indexers_unavailable',
    ])
    alert_parser.add_argument('--title', required=True)
    alert_parser.add_argument('--service')
    alert_parser.add_argument('--service-type')
    alert_parser.add_argument('--latency-ms', type=float)
    alert_parser.add_argument('--threshold-ms', type=float)
    alert_parser.add_argument('--details')

    attempts_parser = subparsers.add_parser('attempts', help='List recent delivery attempts')
    attempts_parser.add_argument('--endpoint-id', type=int)
    attempts_parser.add_argument('--limit', type=int, default=50)

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config = load_config(args.config)

    if args.command == 'test':
        return asyncio.run(run_test(config, args))
    if args.command == 'alert':
        return asyncio.run(run_alert(config, args))
    return run_attempts(config, args)


if __name__ == "__main__":
    sys.exit(main())
