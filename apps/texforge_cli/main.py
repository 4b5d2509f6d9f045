# apps/texforge_cli/main.py
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rich.logging import RichHandler
from rich_argparse import RawDescriptionRichHelpFormatter

from texforge.config import ToolchainSettings, load_config
from texforge.environment import Environment, check_supported
from texforge.errors import EnvironmentUnsupported, InstallError
from texforge.latex.builder import BuildOrchestrator
from texforge.latex.toolchain import ToolchainResolver
from texforge.models import BuildResult
from texforge.paths import ProjectLayout, write_sample_document
from texforge.process import SubprocessRunner
from texforge.version import APP_VERSION

logger = logging.getLogger("texforge")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_UNSUPPORTED = 2


class LevelPrefixFormatter(logging.Formatter):
    """Plain-text level prefix; the handler hides its own level column."""

    def format(self, record: logging.LogRecord) -> str:
        msg = super().format(record)
        if record.levelno >= logging.ERROR:
            return f"Error: {msg}"
        if record.levelno >= logging.WARNING:
            return f"Warning: {msg}"
        return msg


def configure_logging(verbose: bool = False) -> None:
    handler = RichHandler(show_time=False, show_path=False, show_level=False, markup=False)
    handler.setFormatter(LevelPrefixFormatter("%(message)s"))
    logger.handlers[:] = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False


def _base_parser(prog: str, description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=prog,
        description=description,
        formatter_class=RawDescriptionRichHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="show external commands and their output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    return parser


def _supported(env: Environment) -> bool:
    try:
        check_supported(env)
    except EnvironmentUnsupported as e:
        logger.error(str(e))
        return False
    return True


def report(result: BuildResult) -> int:
    if result.ok:
        logger.info(f"Build succeeded: {result.output_pdf}")
        return EXIT_OK
    logger.error(str(result.error))
    if result.log_tail:
        logger.error(f"Last {len(result.log_tail)} lines of {result.log_file}:")
        for line in result.log_tail:
            logger.error(f"  {line}")
    return EXIT_FAILED


# ─────────────────────────────────────────────────────────────────────────────
# Entry points
# ─────────────────────────────────────────────────────────────────────────────
def setup_main(argv: Optional[List[str]] = None) -> int:
    parser = _base_parser(
        "texforge-setup",
        "Create the project folders and make sure MiKTeX (pdflatex + latexmk) is installed.\n"
        "Installs through winget, then Chocolatey, then the standalone MiKTeX setup.",
    )
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    env = Environment.current()
    if not _supported(env):
        return EXIT_UNSUPPORTED

    settings = ToolchainSettings.from_config(load_config())
    layout = ProjectLayout.at(Path.cwd(), settings.install_dir)
    layout.scaffold()
    if write_sample_document(layout.default_source):
        logger.info(f"Created sample document {layout.default_source}")

    resolver = ToolchainResolver(env, SubprocessRunner(), layout.toolchain, settings)
    try:
        resolver.ensure()
    except InstallError as e:
        logger.error(str(e))
        logger.error(e.hint)
        return EXIT_FAILED
    logger.info("Setup complete. Build with: texforge-build")
    return EXIT_OK


def build_main(argv: Optional[List[str]] = None) -> int:
    parser = _base_parser("texforge-build", "Compile a LaTeX document into build/ (logs go to logs/).")
    parser.add_argument("source", nargs="?", default=None, help="document to compile (default: src/main.tex)")
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    env = Environment.current()
    if not _supported(env):
        return EXIT_UNSUPPORTED

    settings = ToolchainSettings.from_config(load_config())
    layout = ProjectLayout.at(Path.cwd(), settings.install_dir)
    # Reuse a portable install from a previous setup run.
    resolver = ToolchainResolver(env, SubprocessRunner(), layout.toolchain, settings)
    if not resolver.probe().ready:
        resolver.activate_bin_dir()

    source = Path(args.source) if args.source else layout.default_source
    result = BuildOrchestrator(env, SubprocessRunner(), layout).build(source)
    return report(result)


if __name__ == "__main__":
    sys.exit(build_main())
