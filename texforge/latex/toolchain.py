# texforge/latex/toolchain.py
from __future__ import annotations

import logging
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import Callable, List, Optional

from texforge.config import ToolchainSettings, default_settings
from texforge.environment import Environment
from texforge.errors import ManagerFailed, StandaloneFailed, VerificationFailed
from texforge.models import InstallMethod, ToolchainState
from texforge.process import ProcessRunner, format_command

from .download import download_file, extract_zip, find_file
from .runtime import find_bin_dir, probe_toolchain

logger = logging.getLogger(__name__)

Fetcher = Callable[[str, Path], Path]


def select_install_method(is_available: Callable[[str], bool]) -> InstallMethod:
    """
    First manager whose executable is discoverable wins; the standalone
    download has no precondition and is the unconditional fallback.
    """
    for method in (InstallMethod.WINGET, InstallMethod.CHOCOLATEY):
        if is_available(method.value):
            return method
    return InstallMethod.STANDALONE


def manager_command(method: InstallMethod, settings: ToolchainSettings) -> List[str]:
    if method is InstallMethod.WINGET:
        return [
            "winget", "install",
            "--id", settings.winget_id,
            "--exact", "--silent",
            "--accept-package-agreements",
            "--accept-source-agreements",
        ]
    if method is InstallMethod.CHOCOLATEY:
        return ["choco", "install", settings.choco_package, "-y", "--no-progress"]
    raise ValueError(f"{method.value} is not a package manager")


class ToolchainResolver:
    """
    Makes sure pdflatex and latexmk are reachable, installing MiKTeX when
    they are not. Stateless across runs: every call re-probes.
    """

    def __init__(
        self,
        env: Environment,
        runner: ProcessRunner,
        portable_dir: Path,
        settings: Optional[ToolchainSettings] = None,
        fetch: Fetcher = download_file,
    ) -> None:
        self.env = env
        self.runner = runner
        self.portable_dir = portable_dir
        self.settings = settings or default_settings()
        self.fetch = fetch

    # ------------------------------------------------------------------ probing
    def probe(self) -> ToolchainState:
        return probe_toolchain(self.env)

    def select_method(self) -> InstallMethod:
        return select_install_method(lambda name: self.env.which(name) is not None)

    # ------------------------------------------------------------------- public
    def ensure(self) -> ToolchainState:
        state = self.probe()
        if state.ready:
            logger.info(f"LaTeX toolchain already available ({state.pdflatex}, {state.latexmk})")
            return state

        logger.info(f"Missing tools: {', '.join(state.missing)}")
        method = self.select_method()
        logger.info(f"Installing MiKTeX via {method.value}")
        if method is InstallMethod.STANDALONE:
            self._install_standalone()
        else:
            self._install_with_manager(method)

        self.activate_bin_dir()

        state = self.probe()
        if not state.ready:
            raise VerificationFailed(state.missing)
        logger.info("MiKTeX installed and verified")

        self._configure_packages()
        return state

    def activate_bin_dir(self) -> Optional[Path]:
        bin_dir = find_bin_dir(self.env, self.portable_dir)
        if bin_dir is None:
            logger.warning("No MiKTeX bin directory found in the usual install locations")
            return None
        if self.env.add_to_path(bin_dir):
            logger.info(f"Added {bin_dir} to PATH for this session")
        return bin_dir

    def _resolve(self, cmd: List[str]) -> List[str]:
        # child processes are looked up on our amended search path, not the parent PATH
        exe = self.env.which(cmd[0])
        return [exe or cmd[0]] + cmd[1:]

    # ------------------------------------------------------------ install paths
    def _install_with_manager(self, method: InstallMethod) -> None:
        cmd = self._resolve(manager_command(method, self.settings))
        try:
            res = self.runner.run(cmd, env=self.env.process_env())
        except OSError as e:
            raise ManagerFailed(method.value, None, str(e)) from e
        if res.returncode != 0:
            logger.debug(res.output)
            raise ManagerFailed(method.value, res.returncode)

    def _install_standalone(self) -> None:
        try:
            self.env.temp_dir.mkdir(parents=True, exist_ok=True)
            scratch = Path(tempfile.mkdtemp(prefix="texforge_setup_", dir=str(self.env.temp_dir)))
        except OSError as e:
            raise StandaloneFailed("download", detail=f"cannot create scratch directory: {e}") from e
        try:
            self._run_standalone(scratch)
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

    def _run_standalone(self, scratch: Path) -> None:
        s = self.settings
        archive = scratch / Path(s.standalone_url).name
        try:
            self.fetch(s.standalone_url, archive)
            extracted = extract_zip(archive, scratch)
        except (OSError, zipfile.BadZipFile) as e:
            raise StandaloneFailed("download", detail=str(e)) from e

        setup = find_file(extracted, s.setup_executable)
        if setup is None:
            raise StandaloneFailed("download", detail=f"{s.setup_executable} not found in archive")

        repository = scratch / "repository"
        common = [
            str(setup),
            "--verbose",
            f"--local-package-repository={repository}",
            f"--package-set={s.package_set}",
        ]
        stages = (
            ("package download", common + ["download"]),
            ("install", common + [f"--portable={self.portable_dir}", "install"]),
        )
        for stage, cmd in stages:
            logger.info(f"Running miktexsetup ({stage})")
            try:
                res = self.runner.run(cmd, cwd=setup.parent, env=self.env.process_env())
            except OSError as e:
                raise StandaloneFailed(stage, detail=str(e)) from e
            if res.returncode != 0:
                logger.debug(res.output)
                raise StandaloneFailed(stage, res.returncode)

    # ---------------------------------------------------------- best effort
    def _configure_packages(self) -> None:
        steps: List[List[str]] = [
            ["initexmf", "--set-config-value=[MPM]AutoInstall=1"],
            ["mpm", "--update-db"],
        ]
        steps += [["mpm", f"--install={pkg}"] for pkg in self.settings.auxiliary_packages]
        for cmd in steps:
            try:
                res = self.runner.run(self._resolve(cmd), env=self.env.process_env())
            except OSError as e:
                logger.warning(f"Skipped '{format_command(cmd)}': {e}")
                continue
            if res.returncode != 0:
                logger.warning(f"'{format_command(cmd)}' exited with {res.returncode} (non-critical)")
