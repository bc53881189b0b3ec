"""Rich console helpers and logging setup for the CLI layer.

Rich is imported lazily so ``--help`` and ``--version`` stay cheap and
a broken install surfaces as a clean :class:`EnvironmentError`.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlrs.exceptions import EnvironmentError

LOGGER_NAME = "sqlrs"


def _load_rich_console_class() -> type[Any]:
	"""Return ``rich.console.Console`` class or raise ``EnvironmentError``."""
	try:
		from rich.console import Console
	except ModuleNotFoundError as exc:
		raise EnvironmentError(
			"rich is not installed. Install with: pip install rich",
		) from exc
	return Console


def get_rich_console(*, stderr: bool = True) -> Any:
	"""Create a Rich console writing to stderr (default) or stdout."""
	console_class = _load_rich_console_class()
	return console_class(stderr=stderr)


class _ConsoleProxy:
	"""``print``-compatible proxy that builds its Rich console on use."""

	def __init__(self, *, stderr: bool) -> None:
		self._stderr = stderr

	def print(self, *objects: object, **kwargs: Any) -> None:
		get_rich_console(stderr=self._stderr).print(*objects, **kwargs)


console = _ConsoleProxy(stderr=True)
"""Diagnostics, warnings and errors."""

out = _ConsoleProxy(stderr=False)
"""Command results."""


def configure_logging(verbose: bool) -> None:
	"""Route the ``sqlrs`` logger through a stderr :class:`RichHandler`.

	``-v`` shows every command line and debug detail; otherwise only
	warnings and above get through.
	"""
	from rich.logging import RichHandler

	logger = logging.getLogger(LOGGER_NAME)
	for handler in list(logger.handlers):
		logger.removeHandler(handler)
	handler = RichHandler(
		console=get_rich_console(),
		show_time=False,
		show_path=False,
		markup=False,
	)
	handler.setFormatter(logging.Formatter("%(message)s"))
	logger.addHandler(handler)
	logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
	logger.propagate = False
