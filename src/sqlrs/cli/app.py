"""CLI application entry point and command routing for sqlrs.

This module is the **sole error boundary** for the entire application.
It catches :class:`~sqlrs.exceptions.SqlrsError`, ``KeyboardInterrupt``,
and any unexpected ``Exception``, rendering user-friendly messages via
Rich and returning well-defined exit codes.

Architecture notes
------------------
* No provisioning logic lives here; work is delegated to the command
  modules and the infrastructure layer.
* This module is the only place that translates between the domain
  world and the OS process exit code.
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import NoReturn

from sqlrs.cli import exit_codes
from sqlrs.cli.console import console
from sqlrs.exceptions import InvalidArgumentsError, SqlrsError, WorkspaceError
from sqlrs.version import __version__


class _ArgumentParser(argparse.ArgumentParser):
    """Reports usage errors through the error boundary (exit 64)."""

    def error(self, message: str) -> NoReturn:
        raise InvalidArgumentsError(
            f"Invalid arguments: {message}",
            hint=f"Run '{self.prog} --help' for usage.",
        )


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    """Construct the top-level argument parser.

    * ``sqlrs init [local] [...]`` — create a workspace, provision its store
    * ``sqlrs doctor`` — environment diagnostics
    * ``sqlrs --version``
    """
    from sqlrs.cli import init_command

    parser = _ArgumentParser(
        prog="sqlrs",
        description="Database snapshot client: workspace and store provisioning.",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    subparsers = parser.add_subparsers(dest="command", parser_class=_ArgumentParser)
    init_command.register(subparsers)
    subparsers.add_parser("doctor", help="Show which provisioning tools are available.")
    return parser


# ---------------------------------------------------------------------------
# Command dispatch
# ---------------------------------------------------------------------------

def _handle_init(args: argparse.Namespace) -> int:
    from sqlrs.cli.console import configure_logging
    from sqlrs.cli.init_command import options_from_args, run_init
    from sqlrs.cli.spinner import spinner_activity
    from sqlrs.infra.runner import SubprocessRunner

    opts = options_from_args(args)
    configure_logging(opts.verbose)
    runner = SubprocessRunner(verbose=opts.verbose, activity=spinner_activity(opts.verbose))
    return run_init(opts, cwd=os.getcwd(), runner=runner)


def _handle_doctor() -> int:
    from sqlrs.cli.doctor import run_doctor

    return run_doctor()


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    """Run the sqlrs CLI.

    Parameters
    ----------
    argv:
        Explicit argument list.  When ``None`` (default), ``sys.argv[1:]``
        is used.

    Returns
    -------
    int
        OS process exit code.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "init":
        return _handle_init(args)
    if args.command == "doctor":
        return _handle_doctor()

    parser.print_help()
    return exit_codes.SUCCESS


def exit_code_for(exc: SqlrsError) -> int:
    """Map a known error to its process exit code."""
    if isinstance(exc, WorkspaceError):
        return exc.exit_code
    if isinstance(exc, InvalidArgumentsError):
        return exit_codes.USAGE
    return exit_codes.GENERAL_ERROR


# ---------------------------------------------------------------------------
# Script-level error boundary
# ---------------------------------------------------------------------------

def cli(argv: list[str] | None = None) -> None:
    """Top-level error boundary invoked by the console-script entry point.

    This function wraps :func:`main` and guarantees the process never
    exits with a raw stack trace during normal usage.
    """
    try:
        code = main(argv)
        sys.exit(code)
    except SqlrsError as exc:
        console.print(f"[bold red]Error:[/bold red] {_escape(str(exc))}")
        if exc.hint:
            console.print(f"[yellow]Hint:[/yellow] {_escape(exc.hint)}")
        sys.exit(exit_code_for(exc))
    except KeyboardInterrupt:
        console.print("\n[yellow]Aborted by user.[/yellow]")
        sys.exit(exit_codes.KEYBOARD_INTERRUPT)
    except Exception as exc:  # noqa: BLE001
        console.print(
            "[bold red]Unexpected error.[/bold red] "
            "Please report this issue.\n"
            f"  {type(exc).__name__}: {_escape(str(exc))}"
        )
        sys.exit(exit_codes.UNEXPECTED_ERROR)


def _escape(text: str) -> str:
    from rich.markup import escape

    return escape(text)
