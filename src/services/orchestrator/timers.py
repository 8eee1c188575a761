"""
Named, cancellable deferred actions.

One timer per concern (e.g. "auto_submit"). Arming a name that is already
armed cancels the old timer first, so at most one is pending per name.
A firing timer removes itself from the registry before running its
callback; the callback can therefore re-arm the same name.
"""

import asyncio
import inspect
from typing import Any, Callable, Dict

import structlog

log = structlog.get_logger(__name__)


class TimerRegistry:
    """Owns the orchestrator's pending timer tasks."""

    def __init__(self) -> None:
        self._timers: Dict[str, asyncio.Task] = {}

    def arm(self, name: str, delay_s: float, callback: Callable[[], Any]) -> None:
        """(Re)arm ``name`` to call ``callback`` after ``delay_s`` seconds."""
        self.cancel(name)
        task = asyncio.create_task(self._run(name, delay_s, callback))
        self._timers[name] = task

    def cancel(self, name: str) -> bool:
        """Cancel a pending timer. Returns True if one was pending."""
        task = self._timers.pop(name, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def cancel_all(self) -> None:
        for name in list(self._timers):
            self.cancel(name)

    def is_armed(self, name: str) -> bool:
        task = self._timers.get(name)
        return task is not None and not task.done()

    async def _run(self, name: str, delay_s: float, callback: Callable[[], Any]) -> None:
        await asyncio.sleep(delay_s)

        # Detach before firing
        if self._timers.get(name) is asyncio.current_task():
            del self._timers[name]

        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error("timer_callback_failed", timer=name, error=str(e), exc_info=True)
