# texforge/latex/runtime.py
from __future__ import annotations

from pathlib import Path
from typing import Iterator, List, Optional

from texforge.environment import Environment
from texforge.models import REQUIRED_TOOLS, ToolchainState


def install_roots(env: Environment, portable_dir: Path) -> List[Path]:
    """
    Places a MiKTeX tree may live, most specific first:
    project-local portable install, per-user install, machine-wide install.
    """
    roots: List[Path] = [portable_dir / "texmfs" / "install", portable_dir]
    local = env.get("LOCALAPPDATA")
    if local:
        roots.append(Path(local) / "Programs" / "MiKTeX")
    program_files = env.get("ProgramFiles") or env.get("PROGRAMFILES")
    if program_files:
        roots.append(Path(program_files) / "MiKTeX")
    return roots


def bin_dir_candidates(env: Environment, portable_dir: Path) -> Iterator[Path]:
    for root in install_roots(env, portable_dir):
        # 64-bit layout first, then the generic one
        yield root / "miktex" / "bin" / "x64"
        yield root / "miktex" / "bin"


def find_bin_dir(env: Environment, portable_dir: Path) -> Optional[Path]:
    for cand in bin_dir_candidates(env, portable_dir):
        if cand.is_dir():
            return cand
    return None


def probe_toolchain(env: Environment) -> ToolchainState:
    found = {name: env.which(name) for name in REQUIRED_TOOLS}
    return ToolchainState(**found)
