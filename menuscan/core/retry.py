"""
Retry policy for upstream model calls.

Classifies failures as transient or fatal and retries transient ones with
capped exponential backoff. Sleep and the jitter source are injectable so
tests run without real delays.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from menuscan.config.settings import RetrySettings
from menuscan.core.exceptions import UpstreamFatalError, UpstreamTransientError

logger = logging.getLogger(__name__)

T = TypeVar('T')

RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_seconds: float = 0.5
    max_delay_seconds: float = 8.0
    jitter: bool = True

    @classmethod
    def from_settings(cls, retry_settings: RetrySettings) -> "RetryPolicy":
        return cls(
            max_attempts=retry_settings.max_attempts,
            base_delay_seconds=retry_settings.base_delay_seconds,
            max_delay_seconds=retry_settings.max_delay_seconds,
            jitter=retry_settings.jitter,
        )

    def backoff_delay(
        self,
        attempt: int,
        retry_after: Optional[float] = None,
        rng: Optional[Callable[[], float]] = None
    ) -> float:
        """
        Delay before the attempt following ``attempt`` (1-based).

        A server-provided Retry-After wins over the computed backoff but is
        still capped at ``max_delay_seconds``.
        """
        if retry_after is not None and retry_after >= 0:
            return min(retry_after, self.max_delay_seconds)

        delay = min(self.base_delay_seconds * (2 ** (attempt - 1)), self.max_delay_seconds)
        if self.jitter and delay > 0:
            # full jitter over the upper half keeps a floor on spacing
            draw = (rng or random.random)()
            delay = delay / 2 + draw * delay / 2
        return delay


def is_retryable_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS or 500 <= status_code < 600


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Retry-After in delta-seconds form; HTTP-date values are ignored."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def classify_http_error(operation: str, response: httpx.Response, attempts: int = 1) -> Exception:
    """Map a non-2xx upstream response to a transient or fatal error."""
    reason = f"HTTP {response.status_code}"
    if is_retryable_status(response.status_code):
        return UpstreamTransientError(
            operation=operation,
            reason=reason,
            upstream_status=response.status_code,
            attempts=attempts,
            retry_after=parse_retry_after(response.headers.get("retry-after")),
        )
    return UpstreamFatalError(
        operation=operation,
        reason=reason,
        upstream_status=response.status_code,
        attempts=attempts,
    )


def classify_transport_error(operation: str, exc: Exception, attempts: int = 1) -> UpstreamTransientError:
    """Timeouts and connection failures are always transient."""
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        reason = "timeout"
    else:
        reason = f"transport error: {type(exc).__name__}"
    return UpstreamTransientError(operation=operation, reason=reason, attempts=attempts)


async def call_with_retry(
    operation: str,
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: Optional[Callable[[], float]] = None,
    request_id: Optional[str] = None
) -> T:
    """
    Run ``func`` until it succeeds, fails fatally, or attempts run out.

    ``func`` must raise UpstreamTransientError or UpstreamFatalError for
    upstream failures. Anything else propagates untouched on the first
    attempt. The error raised after the last attempt carries the attempt
    count.
    """
    attempt = 1
    while True:
        try:
            return await func()
        except UpstreamFatalError as e:
            e.attempts = attempt
            e.details["attempts"] = attempt
            logger.warning(
                f"{operation} rejected upstream, not retrying: {e.reason}",
                extra={'request_id': request_id, 'operation': operation,
                       'upstream_status': e.upstream_status, 'attempt': attempt}
            )
            raise
        except UpstreamTransientError as e:
            e.attempts = attempt
            e.details["attempts"] = attempt
            if attempt >= policy.max_attempts:
                logger.error(
                    f"{operation} failed after {attempt} attempts: {e.reason}",
                    extra={'request_id': request_id, 'operation': operation,
                           'upstream_status': e.upstream_status, 'attempt': attempt}
                )
                raise

            delay = policy.backoff_delay(attempt, e.retry_after, rng)
            logger.warning(
                f"{operation} transient failure ({e.reason}), retrying in {delay:.2f}s",
                extra={'request_id': request_id, 'operation': operation,
                       'upstream_status': e.upstream_status, 'attempt': attempt}
            )
            await sleep(delay)
            attempt += 1
