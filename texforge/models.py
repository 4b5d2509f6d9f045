from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from texforge.errors import BuildError

BASE_COMPILER = "pdflatex"
DRIVER_TOOL = "latexmk"
REQUIRED_TOOLS = (BASE_COMPILER, DRIVER_TOOL)


class InstallMethod(str, Enum):
    # Declaration order is the selection priority.
    WINGET = "winget"
    CHOCOLATEY = "choco"
    STANDALONE = "standalone"


class BuildStrategy(str, Enum):
    DRIVER_TOOL = "latexmk"
    DIRECT_TWO_PASS = "pdflatex"


@dataclass
class ToolchainState:
    """Resolved paths of the required executables; None when not found."""

    pdflatex: Optional[str] = None
    latexmk: Optional[str] = None

    @property
    def ready(self) -> bool:
        return bool(self.pdflatex and self.latexmk)

    @property
    def missing(self) -> List[str]:
        return [name for name in REQUIRED_TOOLS if not getattr(self, name)]


@dataclass
class BuildResult:
    """Outcome of one build call. Consumed for reporting, not persisted."""

    source: Path
    returncode: Optional[int] = None
    strategy: Optional[BuildStrategy] = None
    output_pdf: Optional[Path] = None
    log_file: Optional[Path] = None
    log_tail: List[str] = field(default_factory=list)
    error: Optional[BuildError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.returncode == 0
