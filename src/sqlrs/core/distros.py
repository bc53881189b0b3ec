"""WSL distro list parsing and selection (pure).

Parses ``wsl.exe --list --verbose`` output::

      NAME            STATE           VERSION
    * Ubuntu          Running         2
      Debian          Stopped         2
"""

from __future__ import annotations

from sqlrs.core.models import Distro
from sqlrs.exceptions import WSLUnavailableError


def parse_distro_list(output: str) -> list[Distro]:
    """Parse the verbose distro listing.

    Raises
    ------
    WSLUnavailableError
        When no distro line could be parsed.
    """
    distros: list[Distro] = []
    for line in output.replace("\x00", "").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("NAME"):
            continue
        fields = stripped.split()
        default = fields[0] == "*"
        if default:
            fields = fields[1:]
        if len(fields) < 3:
            continue
        try:
            version = int(fields[2])
        except ValueError:
            continue
        distros.append(
            Distro(name=fields[0], default=default, state=fields[1], version=version)
        )
    if not distros:
        raise WSLUnavailableError("no WSL distros found")
    return distros


def select_distro(distros: list[Distro], preferred: str = "") -> str:
    """Pick the distro to provision into.

    An explicit *preferred* name must exist.  Otherwise a single distro
    wins, then the one marked default.

    Raises
    ------
    WSLUnavailableError
        When nothing can be selected.
    """
    if not distros:
        raise WSLUnavailableError("no WSL distros found")
    if preferred:
        for distro in distros:
            if distro.name == preferred:
                return distro.name
        raise WSLUnavailableError(
            f"requested WSL distro not found: {preferred}",
            hint="List installed distros with: wsl.exe --list --verbose",
        )
    if len(distros) == 1:
        return distros[0].name
    for distro in distros:
        if distro.default:
            return distro.name
    raise WSLUnavailableError(
        "multiple WSL distros found",
        hint="Pick one with --distro <name>.",
    )
