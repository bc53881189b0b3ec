"""Allow ``python -m sqlrs`` invocation.

This module simply delegates to the CLI error-boundary entry point so
that ``python -m sqlrs`` behaves identically to the ``sqlrs`` console
script.
"""

from __future__ import annotations

from sqlrs.cli.app import cli

if __name__ == "__main__":
    cli()
