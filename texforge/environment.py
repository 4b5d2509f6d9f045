from __future__ import annotations

import os
import shutil
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from texforge.errors import EnvironmentUnsupported

SUPPORTED_PLATFORM = "win32"
MIN_PYTHON = (3, 9)


@dataclass
class Environment:
    """
    Process context handed to the resolver and the builder.

    The search path is a private, mutable copy: amending it makes freshly
    installed tools discoverable for the rest of this run without touching
    os.environ. Tests build one directly instead of calling current().
    """

    search_path: List[str]
    temp_dir: Path
    platform: str = sys.platform
    python_version: Tuple[int, int] = (sys.version_info[0], sys.version_info[1])
    variables: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def current(cls) -> "Environment":
        variables = dict(os.environ)
        raw = variables.get("PATH", "")
        return cls(
            search_path=[p for p in raw.split(os.pathsep) if p],
            temp_dir=Path(tempfile.gettempdir()),
            variables=variables,
        )

    def get(self, name: str, default: str = "") -> str:
        return self.variables.get(name, default)

    def which(self, name: str) -> Optional[str]:
        """
        Look `name` up in the search path only. On Windows shutil.which
        checks the current directory first (before Python 3.12), so a hit
        outside the entry being searched is ignored.
        """
        for entry in self.search_path:
            found = shutil.which(name, path=entry)
            if found and _same_dir(os.path.dirname(found), entry):
                return found
        return None

    def add_to_path(self, directory: Path) -> bool:
        """Prepend `directory` unless already present. Returns True if added."""
        d = str(directory)
        if d in self.search_path:
            return False
        self.search_path.insert(0, d)
        return True

    def process_env(self) -> Dict[str, str]:
        """Variables for child processes, with PATH reflecting the amended search path."""
        env = dict(self.variables)
        env["PATH"] = os.pathsep.join(self.search_path)
        return env


def _same_dir(a: str, b: str) -> bool:
    return os.path.normcase(os.path.abspath(a)) == os.path.normcase(os.path.abspath(b))


def check_supported(env: Environment) -> None:
    if env.platform != SUPPORTED_PLATFORM:
        raise EnvironmentUnsupported(
            f"texforge only supports Windows (running on '{env.platform}')."
        )
    if tuple(env.python_version) < MIN_PYTHON:
        need = ".".join(str(x) for x in MIN_PYTHON)
        have = ".".join(str(x) for x in env.python_version)
        raise EnvironmentUnsupported(f"Python {need}+ is required (running {have}).")
