"""
Concurrency manager for outbound model calls.

Bounds how many upstream requests run at once across the whole process, so
a burst of scans cannot exhaust the provider's rate limits. Callers that
cannot get a slot within the queue timeout fail with a transient error.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from menuscan.config.settings import ConcurrencySettings
from menuscan.core.exceptions import UpstreamTransientError

logger = logging.getLogger(__name__)


@dataclass
class CallMetrics:
    """Counters for upstream calls made through the manager."""
    started: int = 0
    completed: int = 0
    failed: int = 0
    queue_timeouts: int = 0
    total_time_ms: float = 0.0
    by_operation: Dict[str, int] = field(default_factory=dict)

    def average_time_ms(self) -> float:
        finished = self.completed + self.failed
        return self.total_time_ms / finished if finished else 0.0


class ConcurrencyManager:
    """
    Semaphore-based limiter shared by every upstream model call.

    Usage:
        result = await manager.run("extraction", lambda: client.post(...))
    """

    def __init__(self, config: ConcurrencySettings):
        self.config = config
        self.semaphore = asyncio.Semaphore(config.max_concurrent_upstream_calls)
        self.metrics = CallMetrics()
        self._active = 0
        self.logger = logging.getLogger(__name__)

    async def run(
        self,
        operation: str,
        func: Callable[[], Awaitable[Any]],
        request_id: Optional[str] = None
    ) -> Any:
        """
        Execute ``func`` once a slot is free.

        Raises:
            UpstreamTransientError: If no slot frees up within the queue timeout
        """
        if not await self._acquire_slot():
            self.metrics.queue_timeouts += 1
            self.logger.warning(
                f"No upstream slot available for {operation}",
                extra={'request_id': request_id, 'operation': operation,
                       'active_calls': self._active}
            )
            raise UpstreamTransientError(operation=operation, reason="local concurrency queue timeout")

        start_time = time.monotonic()
        self._active += 1
        self.metrics.started += 1
        self.metrics.by_operation[operation] = self.metrics.by_operation.get(operation, 0) + 1
        try:
            result = await func()
            self.metrics.completed += 1
            return result
        except BaseException:
            self.metrics.failed += 1
            raise
        finally:
            self._active -= 1
            self.metrics.total_time_ms += (time.monotonic() - start_time) * 1000
            self.semaphore.release()

    async def _acquire_slot(self) -> bool:
        """Wait up to the queue timeout for a permit; False if none came."""
        acquire = asyncio.ensure_future(self.semaphore.acquire())
        try:
            done, _ = await asyncio.wait({acquire}, timeout=self.config.queue_timeout_seconds)
        except asyncio.CancelledError:
            self._abandon(acquire)
            raise
        if done:
            return True
        self._abandon(acquire)
        return False

    def _abandon(self, acquire: "asyncio.Future[bool]") -> None:
        # a permit granted after the deadline goes straight back
        acquire.cancel()
        acquire.add_done_callback(self._release_if_acquired)

    def _release_if_acquired(self, acquire: "asyncio.Future[bool]") -> None:
        if not acquire.cancelled() and acquire.exception() is None:
            self.semaphore.release()

    def get_active_call_count(self) -> int:
        """Get number of upstream calls currently in flight."""
        return self._active

    def get_metrics_summary(self) -> Dict[str, Any]:
        return {
            "max_concurrent_calls": self.config.max_concurrent_upstream_calls,
            "active_calls": self._active,
            "started_calls": self.metrics.started,
            "completed_calls": self.metrics.completed,
            "failed_calls": self.metrics.failed,
            "queue_timeouts": self.metrics.queue_timeouts,
            "average_call_time_ms": round(self.metrics.average_time_ms(), 2),
            "calls_by_operation": dict(self.metrics.by_operation),
        }
