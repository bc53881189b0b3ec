"""Shared pytest fixtures and fakes for the sqlrs test suite.

Guidelines
----------
* No test spawns a process: provisioning code talks to a
  :class:`ScriptedRunner` instead of the real subprocess runner.
* Polling runs instantly against a :class:`FakeClock`.
* Filesystem side effects stay under ``tmp_path``.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Union

import pytest

from sqlrs.core.models import CommandTarget
from sqlrs.exceptions import CommandError
from sqlrs.infra.wsl import NSENTER_PREFIX

Response = Union[str, CommandError, Callable[["Call"], str]]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def fail(returncode: int = 1, stderr: str = "", stdout: str = "", description: str = "cmd") -> CommandError:
    """Build the :class:`CommandError` a non-zero exit would produce."""
    return CommandError(
        description,
        f"exit status {returncode}",
        returncode=returncode,
        stdout=stdout,
        stderr=stderr,
    )


def missing(tool: str) -> CommandError:
    return CommandError(tool, f"{tool}: command not found", returncode=127)


@dataclass
class Call:
    """One recorded command invocation."""

    target: CommandTarget
    description: str
    command: tuple[str, ...]
    """Effective argv with any ``nsenter -t 1 -m --`` prefix removed."""
    distro: str | None
    stdin: str | None
    timeout: float | None
    nsenter: bool


class _Rule:
    def __init__(self, prefix: tuple[str, ...], responses: Sequence[Response]) -> None:
        self.prefix = prefix
        self._responses = list(responses)

    def respond(self, call: Call) -> str:
        response = self._responses[0]
        if len(self._responses) > 1:
            self._responses.pop(0)
        if isinstance(response, CommandError):
            raise response
        if callable(response):
            return response(call)
        return response


class ScriptedRunner:
    """Fake :class:`~sqlrs.core.protocols.CommandRunner`.

    Rules match on an argv prefix; the longest matching prefix wins and,
    among equal prefixes, the most recently registered.  A rule given a
    list of responses hands them out in order and repeats the last one.
    Unmatched commands succeed with empty output.
    """

    def __init__(self) -> None:
        self.calls: list[Call] = []
        self._rules: list[_Rule] = []
        self.nsenter_available = True

    def on(self, *prefix: str, output: Any = "", error: CommandError | None = None) -> ScriptedRunner:
        if error is not None:
            responses: list[Response] = [error]
        elif isinstance(output, list):
            responses = output
        else:
            responses = [output]
        self._rules.append(_Rule(tuple(prefix), responses))
        return self

    def run(
        self,
        target: CommandTarget,
        description: str,
        command: str,
        args: Sequence[str] = (),
        *,
        distro: str | None = None,
        stdin: str | None = None,
        timeout: float | None = None,
    ) -> str:
        argv = (command, *args)
        nsenter = command == "nsenter" and tuple(args[: len(NSENTER_PREFIX)]) == NSENTER_PREFIX
        if nsenter:
            argv = tuple(args[len(NSENTER_PREFIX):])
        call = Call(target, description, argv, distro, stdin, timeout, nsenter)
        self.calls.append(call)
        if nsenter and not self.nsenter_available:
            raise missing("nsenter")
        rule = self._match(argv)
        if rule is None:
            return ""
        return rule.respond(call)

    def _match(self, argv: tuple[str, ...]) -> _Rule | None:
        best: _Rule | None = None
        for rule in self._rules:
            if argv[: len(rule.prefix)] != rule.prefix:
                continue
            if best is None or len(rule.prefix) >= len(best.prefix):
                best = rule
        return best

    # ------------------------------------------------------------------
    # Assertions
    # ------------------------------------------------------------------

    def commands(self) -> list[tuple[str, ...]]:
        return [call.command for call in self.calls]

    def matching(self, *prefix: str) -> list[Call]:
        return [call for call in self.calls if call.command[: len(prefix)] == prefix]

    def count(self, *prefix: str) -> int:
        return len(self.matching(*prefix))

    def index(self, *prefix: str) -> int:
        """Position of the first call starting with *prefix*."""
        for position, call in enumerate(self.calls):
            if call.command[: len(prefix)] == prefix:
                return position
        raise AssertionError(f"{prefix} was never run; ran {self.commands()}")


class FakeClock:
    """Deterministic clock: ``sleep`` only advances ``now``."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def runner() -> ScriptedRunner:
    return ScriptedRunner()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()
