"""
🚌 Notification Dispatcher - Bounded fire-and-forget delivery

Every Discord send runs in its own task so a slow channel never stalls the
polling loop. Tasks are tracked so shutdown can wait for them (or cancel
them past a cutoff) instead of leaking unawaited work.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

LOGGER = logging.getLogger(__name__)


class NotificationDispatcher:
    """Task group for outbound notifications"""

    def __init__(self, max_in_flight: int = 10):
        """
        Args:
            max_in_flight: Maximum concurrent sends, extra sends wait their turn
        """
        self.max_in_flight = max_in_flight
        self._semaphore = asyncio.Semaphore(max_in_flight)
        self._task_group: Set[asyncio.Task] = set()
        self.sent_count = 0
        self.failed_count = 0

    def submit(self, description: str, send: Callable[[], Awaitable[Any]]) -> asyncio.Task:
        """
        Schedule a send without awaiting it.

        Args:
            description: Short label for logs ("live alice -> 123")
            send: Zero-arg coroutine function performing the delivery
        """
        task = asyncio.create_task(self._safe_send(description, send))
        self._task_group.add(task)
        task.add_done_callback(self._task_group.discard)
        return task

    async def _safe_send(self, description: str, send: Callable[[], Awaitable[Any]]) -> None:
        """Run one send, logging failures instead of raising"""
        async with self._semaphore:
            try:
                await send()
                self.sent_count += 1
                LOGGER.debug(f"📤 Notification sent: {description}")
            except asyncio.CancelledError:
                LOGGER.warning(f"🛑 Notification abandoned: {description}")
                raise
            except Exception as e:
                self.failed_count += 1
                LOGGER.error(f"❌ Error sending notification ({description}): {e}")

    async def wait_all(self, timeout: Optional[float] = None) -> int:
        """
        Wait for in-flight sends to finish.

        Args:
            timeout: Cutoff in seconds, remaining sends are cancelled after it

        Returns:
            Number of sends cancelled at the cutoff
        """
        pending = set(self._task_group)
        if not pending:
            return 0

        LOGGER.info(f"⏳ Waiting for {len(pending)} notifications...")
        _, still_pending = await asyncio.wait(pending, timeout=timeout)

        for task in still_pending:
            task.cancel()
        if still_pending:
            await asyncio.gather(*still_pending, return_exceptions=True)
            LOGGER.warning(f"⚠️ {len(still_pending)} notifications cancelled after {timeout}s")
        return len(still_pending)

    def get_stats(self) -> Dict[str, int]:
        return {
            "active_tasks": len(self._task_group),
            "sent": self.sent_count,
            "failed": self.failed_count,
        }
