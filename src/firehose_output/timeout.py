from __future__ import annotations

import logging
from collections.abc import Callable
from time import monotonic

LOGGER = logging.getLogger(__name__)


class DeliveryTimeoutError(RuntimeError):
    """Raised once delivery has been failing for longer than the configured timeout."""

    def __init__(self, *, elapsed_s: float, timeout_s: float) -> None:
        super().__init__(
            f"Timeout threshold reached: failed to send logs for {elapsed_s:.1f}s "
            f"(threshold {timeout_s:.1f}s)"
        )
        self.elapsed_s = elapsed_s
        self.timeout_s = timeout_s


class FailureWatchdog:
    """Dead-man's switch over a continuous run of failed deliveries.

    ``start`` opens a failure window (no-op while one is open), ``reset`` closes
    it, and ``check`` reports expiry exactly once per window.
    """

    def __init__(
        self,
        *,
        timeout_s: float,
        on_timeout: Callable[[float], None] | None = None,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        if timeout_s <= 0:
            raise ValueError("timeout_s must be > 0")

        self._timeout_s = timeout_s
        self._on_timeout = on_timeout
        self._clock = clock
        self._failing_since: float | None = None
        self._fired = False

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    @property
    def failing_since(self) -> float | None:
        return self._failing_since

    @property
    def fired(self) -> bool:
        return self._fired

    def start(self) -> None:
        if self._failing_since is None:
            self._failing_since = self._clock()

    def reset(self) -> None:
        self._failing_since = None
        self._fired = False

    def elapsed_s(self) -> float:
        if self._failing_since is None:
            return 0.0
        return self._clock() - self._failing_since

    def check(self) -> bool:
        if self._failing_since is None or self._fired:
            return False

        elapsed = self.elapsed_s()
        if elapsed <= self._timeout_s:
            return False

        self._fired = True
        LOGGER.error(
            "delivery_timeout_reached",
            extra={"elapsed_s": round(elapsed, 3), "timeout_s": self._timeout_s},
        )
        if self._on_timeout is not None:
            self._on_timeout(elapsed)
        return True
