# texforge/latex/builder.py
from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import List, Optional, Sequence

from texforge.environment import Environment
from texforge.errors import CompilationFailed, SourceNotFound, ToolchainMissing
from texforge.models import BASE_COMPILER, DRIVER_TOOL, BuildResult, BuildStrategy
from texforge.paths import ProjectLayout, ensure_dirs
from texforge.process import ProcessRunner

logger = logging.getLogger(__name__)

# MiKTeX prints this from `latexmk -v` when Perl is not installed.
SCRIPT_ENGINE_MISSING = "could not find the script engine"

LOG_EXTENSIONS = (".log",)
AUX_EXTENSIONS = (
    ".aux", ".toc", ".out", ".lof", ".lot", ".nav", ".snm", ".vrb",
    ".fls", ".fdb_latexmk", ".synctex.gz", ".bbl", ".blg", ".bcf",
    ".run.xml", ".idx", ".ilg", ".ind", ".xdv",
)
LOG_TAIL_LINES = 20
NOT_STARTED = 127


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def detect_main_tex(root: Path) -> Optional[Path]:
    """
    Find the main .tex inside `root`. Common names first, otherwise the
    largest .tex file (less likely to be a preamble fragment).
    """
    candidates = [
        "main.tex",
        "paper.tex",
        "manuscript.tex",
        "thesis.tex",
    ]
    for name in candidates:
        p = root / name
        if p.is_file():
            return p
    tex_files = sorted((p for p in root.rglob("*.tex") if p.is_file()), key=lambda x: x.stat().st_size, reverse=True)
    return tex_files[0] if tex_files else None


def _read_file_safely(p: Path) -> str:
    try:
        return p.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return ""


def tail_lines(p: Path, n: int = LOG_TAIL_LINES) -> List[str]:
    return _read_file_safely(p).splitlines()[-n:]


def _has_suffix(p: Path, suffixes: Sequence[str]) -> bool:
    name = p.name.lower()
    return any(name.endswith(s) for s in suffixes)


def select_build_strategy(driver_path: Optional[str], version_output: Optional[str]) -> BuildStrategy:
    """
    latexmk only counts when it is on PATH and its version check ran
    without reporting a missing script engine.
    """
    if not driver_path or version_output is None:
        return BuildStrategy.DIRECT_TWO_PASS
    if SCRIPT_ENGINE_MISSING in version_output.lower():
        return BuildStrategy.DIRECT_TWO_PASS
    return BuildStrategy.DRIVER_TOOL


def driver_command(exe: str, source_name: str, build_dir: Path) -> List[str]:
    return [
        exe,
        "-pdf",
        "-interaction=nonstopmode",
        f"-outdir={build_dir}",
        f"-auxdir={build_dir}",
        source_name,
    ]


def compiler_command(exe: str, source_name: str, build_dir: Path) -> List[str]:
    return [
        exe,
        "-interaction=nonstopmode",
        f"-output-directory={build_dir}",
        f"-aux-directory={build_dir}",
        source_name,
    ]


# -----------------------------------------------------------------------------
# Post-processing (best effort)
# -----------------------------------------------------------------------------
def relocate_logs(build_dir: Path, logs_dir: Path) -> List[Path]:
    """
    Move *.log files into logs_dir, replacing files of the same name.
    Logs in subfolders keep their relative path below logs_dir.
    Returns the destinations actually written.
    """
    moved: List[Path] = []
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
        for p in sorted(build_dir.rglob("*")):
            if not (p.is_file() and _has_suffix(p, LOG_EXTENSIONS)):
                continue
            dst = logs_dir / p.relative_to(build_dir)
            try:
                dst.parent.mkdir(parents=True, exist_ok=True)
                if dst.exists():
                    dst.unlink()
                shutil.move(str(p), str(dst))
                moved.append(dst)
            except OSError as e:
                logger.debug(f"Could not move {p}: {e}")
    except OSError as e:
        logger.debug(f"Log relocation skipped: {e}")
    return moved


def discard_aux_files(build_dir: Path) -> int:
    """Delete auxiliary files anywhere below build_dir; included chapters write theirs into subfolders."""
    removed = 0
    try:
        for p in list(build_dir.rglob("*")):
            if p.is_file() and _has_suffix(p, AUX_EXTENSIONS):
                try:
                    p.unlink()
                    removed += 1
                except OSError as e:
                    logger.debug(f"Could not delete {p}: {e}")
    except OSError as e:
        logger.debug(f"Aux cleanup skipped: {e}")
    return removed


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------
class BuildOrchestrator:
    """
    Compiles one document into the project's build directory.
    Never raises for build problems: everything ends up in the BuildResult.
    """

    def __init__(self, env: Environment, runner: ProcessRunner, layout: ProjectLayout) -> None:
        self.env = env
        self.runner = runner
        self.layout = layout

    def select_strategy(self) -> BuildStrategy:
        driver = self.env.which(DRIVER_TOOL)
        output: Optional[str] = None
        if driver:
            try:
                output = self.runner.run([driver, "-v"], env=self.env.process_env()).output
            except OSError as e:
                logger.debug(f"latexmk version check failed: {e}")
        strategy = select_build_strategy(driver, output)
        if strategy is BuildStrategy.DIRECT_TWO_PASS:
            reason = "not found" if not driver else "unusable (Perl script engine missing?)"
            logger.warning(f"latexmk {reason}; falling back to two pdflatex passes")
        return strategy

    def build(self, source: Path) -> BuildResult:
        source = Path(source)
        if source.is_dir():
            found = detect_main_tex(source)
            if found is None:
                return BuildResult(source=source, error=SourceNotFound(source / "*.tex"))
            source = found
        if not source.is_file():
            return BuildResult(source=source, error=SourceNotFound(source))

        source = source.resolve()
        build_dir = self.layout.build.resolve()
        result = BuildResult(source=source, output_pdf=build_dir / f"{source.stem}.pdf")

        compiler = self.env.which(BASE_COMPILER)
        if compiler is None:
            result.error = ToolchainMissing(BASE_COMPILER)
            return result

        ensure_dirs(build_dir, self.layout.logs)
        result.strategy = self.select_strategy()
        logger.info(f"Building {source.name} with {result.strategy.value}")

        if result.strategy is BuildStrategy.DRIVER_TOOL:
            driver = self.env.which(DRIVER_TOOL) or DRIVER_TOOL
            passes = [driver_command(driver, source.name, build_dir)]
        else:
            cmd = compiler_command(compiler, source.name, build_dir)
            # Always two passes so cross-references resolve.
            passes = [cmd, list(cmd)]

        result.returncode = self._run_passes(passes, cwd=source.parent)

        moved = relocate_logs(build_dir, self.layout.logs)
        discard_aux_files(build_dir)

        # Only a log written by this run may explain its outcome.
        log_file = self.layout.logs / f"{source.stem}.log"
        if log_file in moved:
            result.log_file = log_file
        if result.returncode != 0:
            if result.log_file:
                result.log_tail = tail_lines(result.log_file)
            result.error = CompilationFailed(result.returncode, result.log_tail)
        return result

    def _run_passes(self, passes: List[List[str]], cwd: Path) -> int:
        code = 0
        for cmd in passes:
            try:
                rc = self.runner.run(cmd, cwd=cwd, env=self.env.process_env()).returncode
            except OSError as e:
                logger.error(f"Could not start {cmd[0]}: {e}")
                rc = NOT_STARTED
            if code == 0:
                code = rc
        return code
