"""``sqlrs doctor`` — provisioning environment diagnostics.

Reports which of the external tools the store provisioning pipeline
drives are present on this host and renders them as a Rich table.
Nothing is executed: tools are only looked up on ``PATH``.
"""

from __future__ import annotations

import os
import platform
import shutil
import sys
from collections.abc import Callable

from sqlrs.cli import exit_codes
from sqlrs.cli.console import console
from sqlrs.infra.paths import default_store_root
from sqlrs.version import __version__

Check = tuple[str, str, str]

OK = "[green]OK[/green]"
WARN = "[yellow]WARN[/yellow]"
FAIL = "[red]FAIL[/red]"

LINUX_TOOLS: tuple[str, ...] = ("mkfs.btrfs", "mount", "umount", "truncate", "findmnt", "blkid")
WINDOWS_TOOLS: tuple[str, ...] = ("wsl.exe", "powershell")


# ---------------------------------------------------------------------------
# Diagnostic collectors
# ---------------------------------------------------------------------------

def _python_version_check() -> Check:
    version = platform.python_version()
    ok = sys.version_info[:2] >= (3, 10)
    return "Python", version, OK if ok else "[red]FAIL (>=3.10 required)[/red]"


def _os_check(system: str) -> Check:
    display = {"Darwin": "macOS"}.get(system, system)
    value = f"{display} {platform.release()} ({platform.machine()})"
    return "OS", value, OK


def _tool_checks(system: str, which: Callable[[str], str | None]) -> list[Check]:
    """One row per provisioning tool relevant to *system*.

    Missing tools only warn: ``dir`` stores work without any of them.
    """
    if system == "Windows":
        tools = WINDOWS_TOOLS
    elif system == "Linux":
        tools = LINUX_TOOLS
        if _euid() != 0:
            tools = (*tools, "sudo")
    else:
        return []
    rows: list[Check] = []
    for tool in tools:
        path = which(tool)
        rows.append((tool, path or "not found", OK if path else WARN))
    return rows


def _euid() -> int | None:
    geteuid = getattr(os, "geteuid", None)
    return geteuid() if geteuid is not None else None


def collect_checks(
    system: str | None = None,
    which: Callable[[str], str | None] = shutil.which,
) -> list[Check]:
    """Gather every diagnostic row for *system*."""
    system = system or platform.system()
    return [
        ("sqlrs", __version__, OK),
        _python_version_check(),
        _os_check(system),
        ("store root", default_store_root(system), OK),
        *_tool_checks(system, which),
    ]


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def run_doctor(
    system: str | None = None,
    which: Callable[[str], str | None] = shutil.which,
) -> int:
    """Render the diagnostics table.

    Returns
    -------
    int
        :data:`exit_codes.SUCCESS` unless a check failed outright.
    """
    from rich.table import Table

    checks = collect_checks(system, which)

    table = Table(
        title="sqlrs doctor",
        show_header=True,
        header_style="bold cyan",
        border_style="dim",
    )
    table.add_column("Component", style="bold", min_width=12)
    table.add_column("Value", min_width=20)
    table.add_column("Status", justify="center", min_width=8)
    for label, value, status in checks:
        table.add_row(label, value, status)

    console.print()
    console.print(table)
    console.print()

    if any("FAIL" in status for _, _, status in checks):
        console.print("[bold red]Some checks failed.[/bold red]")
        return exit_codes.GENERAL_ERROR
    if any("WARN" in status for _, _, status in checks):
        console.print("[yellow]Some tools are missing; btrfs stores may not be available.[/yellow]")
    else:
        console.print("[bold green]All checks passed.[/bold green]")
    return exit_codes.SUCCESS
