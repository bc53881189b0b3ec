"""Wall-clock implementation of :class:`~sqlrs.core.protocols.Clock`."""

from __future__ import annotations

import time


class SystemClock:
    """Real wall-clock implementation of :class:`Clock`."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)
