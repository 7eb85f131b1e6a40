"""Find a working native MySQL tool (mysqldump / mysql) on this machine."""

from __future__ import annotations

import glob
import logging
import os
import subprocess
from pathlib import Path

from posadmin.services.backup.errors import ToolNotFound

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 10


class ToolLocator:
    """Probe an ordered list of candidate executables for a database tool.

    Candidate order: explicit override, configured custom paths, well-known
    install locations, auto-discovered versioned install directories, then
    the bare command name (resolved through ``PATH``).
    """

    executable_suffix = ""
    well_known_dirs: tuple[str, ...] = ()
    versioned_dir_globs: tuple[str, ...] = ()

    def __init__(self, tool: str, override: str = "", custom_paths: list[str] | None = None) -> None:
        self.tool = tool
        self.override = override
        self.custom_paths = list(custom_paths or [])

    @property
    def executable(self) -> str:
        return f"{self.tool}{self.executable_suffix}"

    def well_known_paths(self) -> list[str]:
        return [str(Path(d) / self.executable) for d in self.well_known_dirs]

    def discovered_paths(self) -> list[str]:
        """Tool paths inside version-suffixed install directories, newest name first."""
        found: list[str] = []
        for pattern in self.versioned_dir_globs:
            for install_dir in sorted(glob.glob(pattern), reverse=True):
                bin_dir = Path(install_dir) / "bin"
                if bin_dir.is_dir():
                    found.append(str(bin_dir / self.executable))
        return found

    def candidates(self) -> list[str]:
        ordered: list[str] = []
        if self.override:
            ordered.append(self.override)
        ordered.extend(self.custom_paths)
        ordered.extend(self.well_known_paths())
        ordered.extend(self.discovered_paths())
        ordered.append(self.tool)

        seen: set[str] = set()
        unique = []
        for path in ordered:
            if path not in seen:
                seen.add(path)
                unique.append(path)
        return unique

    def probe(self, path: str) -> bool:
        """Run ``path --version`` and check the output names the tool."""
        try:
            result = subprocess.run(
                [path, "--version"],
                capture_output=True,
                text=True,
                timeout=PROBE_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"Probe of {path} failed: {e}")
            return False
        return self.tool in (result.stdout or "")

    def locate(self) -> str:
        """Return the first working candidate, or raise ToolNotFound."""
        for path in self.candidates():
            if self.probe(path):
                logger.info(f"Found working {self.tool} at: {path}")
                return path
        raise ToolNotFound(f"{self.tool} not found. Ensure MySQL client tools are installed and accessible.")


class PosixToolLocator(ToolLocator):
    well_known_dirs = (
        "/usr/bin",
        "/usr/local/bin",
        "/usr/local/mysql/bin",
        "/opt/lampp/bin",
        "/opt/homebrew/bin",
        "/usr/local/psa/bin",
    )
    versioned_dir_globs = (
        "/usr/local/opt/mysql*",
        "/opt/homebrew/opt/mysql*",
        "/usr/local/mysql-*",
    )


class WindowsToolLocator(ToolLocator):
    executable_suffix = ".exe"
    well_known_dirs = (
        "C:\\xampp\\mysql\\bin",
        "C:\\Program Files\\MySQL\\MySQL Server 8.4\\bin",
        "C:\\Program Files\\MySQL\\MySQL Server 8.0\\bin",
        "C:\\Program Files\\MySQL\\MySQL Server 5.7\\bin",
    )
    versioned_dir_globs = (
        "C:\\laragon\\bin\\mysql\\mysql-*",
        "C:\\wamp64\\bin\\mysql\\mysql*",
    )


def tool_locator(tool: str, override: str = "", custom_paths: list[str] | None = None) -> ToolLocator:
    """Create the locator for the current platform."""
    cls = WindowsToolLocator if os.name == "nt" else PosixToolLocator
    return cls(tool, override=override, custom_paths=custom_paths)
