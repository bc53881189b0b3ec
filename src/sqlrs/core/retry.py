"""Bounded-retry helpers with an injectable clock.

Device state on virtualized block devices lags behind the commands
that change it (udev, ``blkid`` caches, VHDX attach).  Every polling
loop in the provisioning pipeline goes through these helpers so the
timing constants live in one place and tests can run them instantly
with a fake :class:`~sqlrs.core.protocols.Clock`.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from sqlrs.core.protocols import Clock

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Timing constants
# ---------------------------------------------------------------------------

FORMAT_VERIFY_ATTEMPTS: int = 5
FORMAT_VERIFY_INTERVAL: float = 0.2

MOUNT_VERIFY_ATTEMPTS: int = 5
MOUNT_VERIFY_INTERVAL: float = 0.1

UUID_WAIT_SECONDS: float = 5.0
UUID_WAIT_INTERVAL: float = 0.2


@dataclass(slots=True)
class PollOutcome(Generic[T]):
    """Result of :func:`poll`.

    ``value`` is the last value produced by the probe, ``error`` the
    last exception it raised (if any attempt raised).
    """

    satisfied: bool
    value: T | None = None
    error: Exception | None = None


def poll(
    probe: Callable[[], T],
    predicate: Callable[[T], bool],
    *,
    attempts: int,
    interval: float,
    clock: Clock,
    retry_on: tuple[type[Exception], ...] = (Exception,),
) -> PollOutcome[T]:
    """Call *probe* up to *attempts* times until *predicate* holds.

    Exceptions listed in *retry_on* are recorded and retried; anything
    else propagates.  The clock sleeps *interval* between attempts (not
    after the last one).
    """
    outcome: PollOutcome[T] = PollOutcome(satisfied=False)
    for attempt in range(max(1, attempts)):
        try:
            value = probe()
        except retry_on as exc:
            outcome.error = exc
        else:
            outcome.value = value
            if predicate(value):
                outcome.satisfied = True
                return outcome
        if attempt + 1 < attempts:
            clock.sleep(interval)
    return outcome


def wait_until(
    probe: Callable[[], T],
    predicate: Callable[[T], bool],
    *,
    timeout: float,
    interval: float,
    clock: Clock,
    retry_on: tuple[type[Exception], ...] = (Exception,),
) -> PollOutcome[T]:
    """Like :func:`poll`, bounded by a deadline instead of a count.

    The probe always runs at least once, and once more after the
    deadline has passed, mirroring "check, sleep, re-check" loops.
    """
    deadline = clock.monotonic() + timeout
    outcome: PollOutcome[T] = PollOutcome(satisfied=False)
    while True:
        try:
            value = probe()
        except retry_on as exc:
            outcome.error = exc
        else:
            outcome.value = value
            if predicate(value):
                outcome.satisfied = True
                return outcome
        if clock.monotonic() >= deadline:
            return outcome
        clock.sleep(interval)
