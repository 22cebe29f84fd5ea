"""
Reliability wrapper around a single endpoint delivery.

Runs a zero-argument async ``send`` up to ``max_retries + 1`` times with
exponential backoff, records every attempt through the attempt recorder and
always returns a ``DeliveryResult``; it never raises to the caller.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.config_loader import MAX_BACKOFF_MS, DeliveryConfig
from notification.errors import DeliverySkipError
from notification.models import DeliveryAttempt, DeliveryResult, DeliveryStatus, DeliveryTarget
from notification.store import AttemptRecorder

logger = logging.getLogger(__name__)

MIN_BASE_BACKOFF_MS = 100

SendFn = Callable[[], Awaitable[None]]
SleepFn = Callable[[float], Awaitable[None]]


def _error_message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 1
    base_backoff_ms: int = 600
    max_backoff_ms: int = MAX_BACKOFF_MS

    @classmethod
    def from_config(cls, delivery: DeliveryConfig) -> "RetryPolicy":
        return cls(
            max_retries=delivery.max_retries,
            base_backoff_ms=delivery.base_backoff_ms,
            max_backoff_ms=delivery.max_backoff_ms,
        )

    @property
    def backoff_ceiling_ms(self) -> int:
        return min(MAX_BACKOFF_MS, self.max_backoff_ms)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def resolve(self, max_retries: Optional[int] = None,
                base_backoff_ms: Optional[int] = None) -> "RetryPolicy":
        """Apply per-call overrides on top of this policy."""
        policy = self
        if max_retries is not None:
            policy = replace(policy, max_retries=max(0, int(max_retries)))
        if base_backoff_ms is not None:
            policy = replace(policy, base_backoff_ms=max(MIN_BASE_BACKOFF_MS, int(base_backoff_ms)))
        return policy

    def backoff_ms(self, attempt_number: int) -> int:
        """Delay after failed attempt ``attempt_number`` (1-based)."""
        return min(self.backoff_ceiling_ms, self.base_backoff_ms * 2 ** (attempt_number - 1))


class ReliableDelivery:
    """
    Retry loop with skip/failure classification and attempt persistence.

    ``sleep`` and ``clock`` are injectable so tests can observe the backoff
    schedule without waiting.
    """

    def __init__(
        self,
        recorder: AttemptRecorder,
        policy: Optional[RetryPolicy] = None,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.recorder = recorder
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._clock = clock

    async def _record(self, target: DeliveryTarget, attempt_number: int,
                      status: DeliveryStatus, started: float,
                      error: Optional[str] = None) -> None:
        attempt = DeliveryAttempt(
            endpoint_id=target.endpoint_id,
            endpoint_type=target.endpoint_type,
            event_type=target.event_type,
            attempt_number=attempt_number,
            status=status,
            duration_ms=max(0, int(round((self._clock() - started) * 1000))),
            error_message=error,
            target_user_id=target.target_user_id,
            metadata=dict(target.metadata),
        )
        try:
            await self.recorder.record_attempt(attempt)
        except Exception:
            logger.exception(
                f"Failed to record delivery attempt endpoint={target.endpoint_id} "
                f"event={target.event_type} attempt={attempt_number}"
            )

    def _retrying(self, target: DeliveryTarget, policy: RetryPolicy) -> AsyncRetrying:
        def log_retry(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0
            logger.warning(
                f"Delivery attempt {retry_state.attempt_number}/{policy.max_attempts} failed "
                f"endpoint={target.endpoint_id} type={target.endpoint_type} "
                f"event={target.event_type}: {exc}; retrying in {delay:.2f}s"
            )

        return AsyncRetrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_exponential(
                multiplier=policy.base_backoff_ms / 1000,
                max=policy.backoff_ceiling_ms / 1000,
            ),
            retry=retry_if_exception_type(Exception) & retry_if_not_exception_type(DeliverySkipError),
            sleep=self._sleep,
            before_sleep=log_retry,
            reraise=True,
        )

    async def deliver(
        self,
        target: DeliveryTarget,
        send: SendFn,
        max_retries: Optional[int] = None,
        base_backoff_ms: Optional[int] = None,
    ) -> DeliveryResult:
        """
        Execute ``send`` with retries and return the aggregate outcome.

        Args:
            target: Endpoint/event identity stamped on every attempt record
            send: Zero-argument coroutine function performing one delivery
            max_retries: Per-call override of the retry budget
            base_backoff_ms: Per-call override of the first backoff delay
        """
        policy = self.policy.resolve(max_retries, base_backoff_ms)
        attempt_number = 0

        try:
            async for attempt in self._retrying(target, policy):
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    started = self._clock()
                    try:
                        await send()
                    except DeliverySkipError as e:
                        await self._record(target, attempt_number, DeliveryStatus.SKIPPED,
                                           started, _error_message(e))
                        raise
                    except Exception as e:
                        await self._record(target, attempt_number, DeliveryStatus.FAILURE,
                                           started, _error_message(e))
                        raise
                    await self._record(target, attempt_number, DeliveryStatus.SUCCESS, started)
        except DeliverySkipError as e:
            logger.warning(
                f"Delivery skipped endpoint={target.endpoint_id} type={target.endpoint_type} "
                f"event={target.event_type}: {e}"
            )
            return DeliveryResult(DeliveryStatus.SKIPPED, attempt_number, _error_message(e))
        except Exception as e:
            logger.error(
                f"Delivery failed endpoint={target.endpoint_id} type={target.endpoint_type} "
                f"event={target.event_type} attempts={attempt_number}: {e}"
            )
            return DeliveryResult(DeliveryStatus.FAILURE, attempt_number, _error_message(e))

        return DeliveryResult(DeliveryStatus.SUCCESS, attempt_number)
