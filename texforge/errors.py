from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional

MANUAL_INSTALL_URL = "https://miktex.org/download"


class TexforgeError(Exception):
    """Base class for every error raised by texforge."""


class EnvironmentUnsupported(TexforgeError):
    """The host platform or interpreter cannot run the flow at all."""


# ─────────────────────────────────────────────────────────────────────────────
# Toolchain provisioning
# ─────────────────────────────────────────────────────────────────────────────
class InstallError(TexforgeError):
    hint = f"Install MiKTeX manually from {MANUAL_INSTALL_URL} and re-run setup."


class ManagerFailed(InstallError):
    def __init__(self, method: str, returncode: Optional[int], detail: str = "") -> None:
        self.method = method
        self.returncode = returncode
        msg = f"{method} could not install MiKTeX"
        if returncode is not None:
            msg += f" (exit code {returncode})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class StandaloneFailed(InstallError):
    def __init__(self, stage: str, returncode: Optional[int] = None, detail: str = "") -> None:
        self.stage = stage
        self.returncode = returncode
        msg = f"Standalone MiKTeX setup failed during {stage}"
        if returncode is not None:
            msg += f" (exit code {returncode})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class VerificationFailed(InstallError):
    hint = (
        "Add the MiKTeX bin directory (e.g. C:\\Program Files\\MiKTeX\\miktex\\bin\\x64) "
        "to PATH manually, open a new terminal and re-run setup."
    )

    def __init__(self, missing: Iterable[str]) -> None:
        self.missing: List[str] = list(missing)
        super().__init__(
            "Installation finished but these tools are still not on PATH: " + ", ".join(self.missing)
        )


# ─────────────────────────────────────────────────────────────────────────────
# Builds (reported through BuildResult, never raised to the caller)
# ─────────────────────────────────────────────────────────────────────────────
class BuildError(TexforgeError):
    pass


class SourceNotFound(BuildError):
    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Source document not found: {path}")


class ToolchainMissing(BuildError):
    def __init__(self, tool: str) -> None:
        self.tool = tool
        super().__init__(f"{tool} is not on PATH. Run texforge-setup first.")


class CompilationFailed(BuildError):
    def __init__(self, returncode: int, log_tail: Optional[List[str]] = None) -> None:
        self.returncode = returncode
        self.log_tail = log_tail or []
        super().__init__(f"Compilation failed with exit code {returncode}")
