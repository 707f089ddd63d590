"""
Cooperative polling used by the wait_for_* operations.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Tuple

from guibridge.errors import BridgeError, WaitCancelled, WaitTimeout

logger = logging.getLogger(__name__)

Predicate = Callable[[], Awaitable[Tuple[bool, Any]]]


class PollEngine:
    """Re-evaluates a predicate until it holds, times out, or is cancelled.

    Nothing is held between ticks, so other operations run freely while a
    wait is sleeping.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock

    async def wait_until(self, predicate: Predicate, timeout: float, interval: float,
                         cancel: Optional[asyncio.Event] = None) -> Any:
        """Poll `predicate` every `interval` seconds for at most `timeout` seconds.

        Args:
            predicate: Coroutine function returning (satisfied, observation)
            timeout: Overall budget in seconds
            interval: Delay between evaluations in seconds
            cancel: Optional event that aborts the wait when set

        Returns:
            The observation from the evaluation that succeeded

        Raises:
            WaitTimeout: carrying the last observation when the budget expires
            WaitCancelled: when the cancel event is set
        """
        if interval <= 0:
            raise ValueError("interval must be positive")

        deadline = self.clock() + max(timeout, 0.0)
        last_observation = None
        attempts = 0

        while True:
            if cancel is not None and cancel.is_set():
                raise WaitCancelled("Wait was cancelled")

            attempts += 1
            try:
                satisfied, last_observation = await predicate()
            except BridgeError as e:
                # The thing being waited for may simply not exist yet
                logger.debug(f"Wait predicate failed on attempt {attempts}: {e}")
                satisfied, last_observation = False, e.to_dict()

            if satisfied:
                logger.debug(f"Wait satisfied after {attempts} attempt(s)")
                return last_observation

            remaining = deadline - self.clock()
            if remaining <= 0:
                raise WaitTimeout(
                    f"Condition not met within {timeout:.3f}s after {attempts} attempt(s)",
                    observation=last_observation,
                )

            await self._sleep(min(interval, remaining), cancel)

    @staticmethod
    async def _sleep(seconds: float, cancel: Optional[asyncio.Event]):
        if cancel is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(cancel.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise WaitCancelled("Wait was cancelled")
