from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import Callable, List, Optional

import pytest

from texforge.environment import Environment
from texforge.process import ProcessResult


def make_tool(bin_dir: Path, name: str) -> Path:
    """An executable stub that shutil.which will accept (a .bat on Windows, where PATHEXT applies)."""
    bin_dir.mkdir(parents=True, exist_ok=True)
    if os.name == "nt":
        p = bin_dir / f"{name}.bat"
        p.write_text("@exit /b 0\r\n")
        return p
    p = bin_dir / name
    p.write_text("#!/bin/sh\nexit 0\n")
    p.chmod(p.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return p


def tool_name(exe: str) -> str:
    """`winget` for .../winget, .../winget.BAT and the like."""
    name = Path(exe).name.lower()
    return name[: -len(".bat")] if name.endswith(".bat") else name


class FakeRunner:
    """Records every command; `handler(cmd, cwd)` decides the result (default: exit 0)."""

    def __init__(self, handler: Optional[Callable[[List[str], Optional[Path]], object]] = None) -> None:
        self.handler = handler
        self.calls: List[List[str]] = []
        self.cwds: List[Optional[Path]] = []

    def run(self, cmd, cwd=None, env=None) -> ProcessResult:
        cmd = [str(x) for x in cmd]
        self.calls.append(cmd)
        self.cwds.append(cwd)
        if self.handler is None:
            return ProcessResult(0, "")
        res = self.handler(cmd, cwd)
        if res is None:
            return ProcessResult(0, "")
        if isinstance(res, int):
            return ProcessResult(res, "")
        return res

    def calls_to(self, name: str) -> List[List[str]]:
        return [c for c in self.calls if tool_name(c[0]) == name]


@pytest.fixture
def bin_dir(tmp_path: Path) -> Path:
    d = tmp_path / "bin"
    d.mkdir()
    return d


@pytest.fixture
def env(tmp_path: Path, bin_dir: Path) -> Environment:
    return Environment(
        search_path=[str(bin_dir)],
        temp_dir=tmp_path / "temp",
        platform="win32",
        python_version=(3, 11),
        variables={"PATH": str(bin_dir)},
    )


def assert_same_path(a, b) -> None:
    assert os.path.normcase(str(a)) == os.path.normcase(str(b))
