"""Exponential backoff with jitter for repeated gateway push failures."""

import random
import time
import logging
from typing import Callable, Optional

from ..config.models import PushBackoffConfig


class PushBackoff:
    """
    Decides whether the relay step should push on the current tick.

    Disabled (the default) means every tick pushes. When enabled, the n-th
    consecutive failure opens a window of ``min(base * 2**(n-1), max)`` seconds
    plus 0-10% jitter during which pushes are skipped. A success resets it.
    """

    def __init__(
        self,
        config: PushBackoffConfig,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.monotonic,
        rng: Callable[[float, float], float] = random.uniform
    ):
        self.enabled = config.enabled
        self.base_delay = config.base_delay_seconds
        self.max_delay = config.max_delay_seconds
        self.logger = (logger or logging.getLogger(__name__)).getChild(self.__class__.__name__)
        self._clock = clock
        self._rng = rng
        self.consecutive_failures = 0
        self.resume_at = 0.0

    def ready(self) -> bool:
        """True if a push should be attempted now."""
        if not self.enabled or self.consecutive_failures == 0:
            return True
        return self._clock() >= self.resume_at

    def record_success(self) -> None:
        if self.consecutive_failures:
            self.logger.info(f"Gateway push recovered after {self.consecutive_failures} failure(s)")
        self.consecutive_failures = 0
        self.resume_at = 0.0

    def record_failure(self) -> float:
        """
        Register a failed push.

        Returns:
            float: Seconds until the next push attempt (0.0 when disabled)
        """
        self.consecutive_failures += 1
        if not self.enabled:
            return 0.0

        delay = min(self.base_delay * (2 ** (self.consecutive_failures - 1)), self.max_delay)
        total_delay = delay + self._rng(0, delay * 0.1)
        self.resume_at = self._clock() + total_delay

        self.logger.warning(
            f"Push failed {self.consecutive_failures} time(s) in a row. "
            f"Skipping pushes for {total_delay:.2f}s"
        )
        return total_delay
