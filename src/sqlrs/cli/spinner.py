"""Delayed Rich spinner shown while an external command runs.

:class:`CommandSpinner` is passed to
:class:`~sqlrs.infra.runner.SubprocessRunner` as its ``activity``
factory.  The spinner appears only after :data:`SPINNER_DELAY` so quick
checks never flicker, and it is always torn down when the command
returns.  It never touches provisioning state.
"""

from __future__ import annotations

import threading
from typing import Any

from sqlrs.cli.console import get_rich_console

SPINNER_DELAY: float = 0.5


class CommandSpinner:
    """Context manager rendering ``label`` with a Rich status spinner.

    Usage::

        with CommandSpinner("format btrfs"):
            run_the_command()
    """

    def __init__(self, label: str, *, delay: float = SPINNER_DELAY) -> None:
        self._label = label
        self._delay = delay
        self._lock = threading.Lock()
        self._status: Any = None
        self._timer: threading.Timer | None = None
        self._stopped = False

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    def __enter__(self) -> CommandSpinner:
        self.start()
        return self

    def __exit__(self, *_args: object) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Arm the delay timer."""
        timer = threading.Timer(self._delay, self._show)
        timer.daemon = True
        self._timer = timer
        timer.start()

    def stop(self) -> None:
        """Cancel the timer and erase the spinner (idempotent)."""
        with self._lock:
            self._stopped = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if self._status is not None:
                self._status.stop()
                self._status = None

    def _show(self) -> None:
        with self._lock:
            if self._stopped:
                return
            status = get_rich_console().status(f"{self._label}...", spinner="dots")
            status.start()
            self._status = status


def spinner_activity(verbose: bool) -> Any:
    """Return a spinner factory, or ``None`` when it must stay silent.

    Verbose runs log command lines instead, and a non-terminal stderr
    (pipes, CI logs) gets no animation.
    """
    if verbose:
        return None
    if not get_rich_console().is_terminal:
        return None
    return CommandSpinner
