from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Protocol, Sequence

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    returncode: int
    output: str = ""


class ProcessRunner(Protocol):
    def run(
        self,
        cmd: Sequence[str],
        cwd: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> ProcessResult:
        ...


def format_command(cmd: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(x)) for x in cmd)


class SubprocessRunner:
    """
    Blocking runner on top of subprocess.run. No timeout: compilers and
    installers are awaited until they exit. Raises OSError when the
    executable cannot be started.
    """

    def run(
        self,
        cmd: Sequence[str],
        cwd: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> ProcessResult:
        argv = [str(x) for x in cmd]
        logger.debug(f"$ {format_command(argv)}" + (f"  (cwd={cwd})" if cwd else ""))
        proc = subprocess.run(
            argv,
            cwd=str(cwd) if cwd else None,
            env=dict(env) if env is not None else None,
            capture_output=True,
            text=True,
            errors="replace",
            check=False,
        )
        output = (proc.stdout or "") + (proc.stderr or "")
        return ProcessResult(returncode=proc.returncode, output=output)
