"""sqlrs — client tooling for the sqlrs database-snapshot engine.

Provisions the btrfs copy-on-write store the engine clones into, on
native Linux and through WSL2 on Windows.
"""

from sqlrs.version import __version__

__all__: list[str] = ["__version__"]
