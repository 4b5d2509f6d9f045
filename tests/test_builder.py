from pathlib import Path

import pytest

from conftest import FakeRunner, assert_same_path, make_tool
from texforge.environment import Environment
from texforge.errors import CompilationFailed, SourceNotFound, ToolchainMissing
from texforge.latex.builder import BuildOrchestrator, detect_main_tex, select_build_strategy
from texforge.models import BuildStrategy
from texforge.paths import ProjectLayout
from texforge.process import ProcessResult

PERL_MISSING = (
    "MiKTeX could not find the script engine 'perl' which is required to execute 'latexmk'.\n"
    "Remedy: Make sure 'perl' is installed and can be found via PATH.\n"
)
LATEXMK_VERSION = "Latexmk, John Collins, 7 Jan. 2023. Version 4.79\n"


def _project(tmp_path: Path) -> ProjectLayout:
    layout = ProjectLayout.at(tmp_path / "project")
    layout.scaffold()
    return layout


def _source(layout: ProjectLayout, name: str = "doc.tex") -> Path:
    src = layout.src / name
    src.write_text("\\documentclass{article}\\begin{document}x\\end{document}\n")
    return src


def _compiler(build_dir: Path, returncode: int = 0, log_lines: int = 5, latexmk_output: str = LATEXMK_VERSION):
    """Fake toolchain: writes the files a real run leaves in the build dir."""

    def handler(cmd, cwd):
        if cmd[1:] == ["-v"]:
            return ProcessResult(0, latexmk_output)
        stem = Path(cmd[-1]).stem
        (build_dir / f"{stem}.aux").write_text("\\relax")
        (build_dir / f"{stem}.fdb_latexmk").write_text("db")
        (build_dir / f"{stem}.synctex.gz").write_bytes(b"gz")
        (build_dir / f"{stem}.log").write_text("\n".join(f"line {i}" for i in range(1, log_lines + 1)))
        if returncode == 0:
            (build_dir / f"{stem}.pdf").write_bytes(b"%PDF-1.5")
        return returncode

    return handler


def _build_calls(runner: FakeRunner):
    return [c for c in runner.calls if c[1:] != ["-v"]]


# ─────────────────────────────────────────────────────────────────────────────
# Strategy selection
# ─────────────────────────────────────────────────────────────────────────────
def test_select_build_strategy():
    assert select_build_strategy("C:/x/latexmk.exe", LATEXMK_VERSION) is BuildStrategy.DRIVER_TOOL
    assert select_build_strategy("C:/x/latexmk.exe", PERL_MISSING) is BuildStrategy.DIRECT_TWO_PASS
    assert select_build_strategy("C:/x/latexmk.exe", None) is BuildStrategy.DIRECT_TWO_PASS
    assert select_build_strategy(None, None) is BuildStrategy.DIRECT_TWO_PASS


# ─────────────────────────────────────────────────────────────────────────────
# Source validation
# ─────────────────────────────────────────────────────────────────────────────
def test_missing_source_has_no_side_effects(tmp_path: Path, env: Environment, bin_dir: Path):
    make_tool(bin_dir, "pdflatex")
    make_tool(bin_dir, "latexmk")
    layout = ProjectLayout.at(tmp_path / "empty")
    runner = FakeRunner()

    result = BuildOrchestrator(env, runner, layout).build(tmp_path / "nope.tex")

    assert not result.ok
    assert isinstance(result.error, SourceNotFound)
    assert runner.calls == []
    assert not layout.build.exists()


def test_missing_compiler_is_reported(tmp_path: Path, env: Environment):
    layout = _project(tmp_path)
    runner = FakeRunner()

    result = BuildOrchestrator(env, runner, layout).build(_source(layout))

    assert isinstance(result.error, ToolchainMissing)
    assert runner.calls == []


def test_directory_source_uses_main_document(tmp_path: Path):
    root = tmp_path / "paper"
    (root / "sections").mkdir(parents=True)
    (root / "sections" / "intro.tex").write_text("x" * 500)
    (root / "notes.tex").write_text("x")
    assert detect_main_tex(root) == root / "sections" / "intro.tex"

    (root / "main.tex").write_text("x")
    assert detect_main_tex(root) == root / "main.tex"


# ─────────────────────────────────────────────────────────────────────────────
# Driver tool
# ─────────────────────────────────────────────────────────────────────────────
def test_healthy_driver_runs_once(tmp_path: Path, env: Environment, bin_dir: Path):
    make_tool(bin_dir, "pdflatex")
    latexmk = make_tool(bin_dir, "latexmk")
    layout = _project(tmp_path)
    src = _source(layout)
    runner = FakeRunner(_compiler(layout.build))

    result = BuildOrchestrator(env, runner, layout).build(src)

    assert result.ok
    assert result.strategy is BuildStrategy.DRIVER_TOOL
    assert result.output_pdf == layout.build / "doc.pdf"
    assert result.output_pdf.exists()

    calls = _build_calls(runner)
    assert len(calls) == 1
    assert_same_path(calls[0][0], latexmk)
    assert f"-outdir={layout.build}" in calls[0]
    assert "-pdf" in calls[0] and "-interaction=nonstopmode" in calls[0]
    assert calls[0][-1] == "doc.tex"
    # compiled from the document's own folder so relative \input works
    assert runner.cwds[-1] == src.parent

    assert not list(layout.build.glob("*.aux"))
    assert not list(layout.build.glob("*.fdb_latexmk"))
    assert not list(layout.build.glob("*.synctex.gz"))
    assert not list(layout.build.glob("*.log"))
    assert (layout.logs / "doc.log").exists()
    assert result.log_file == layout.logs / "doc.log"


# ─────────────────────────────────────────────────────────────────────────────
# Two-pass fallback
# ─────────────────────────────────────────────────────────────────────────────
def test_unhealthy_driver_falls_back_to_two_passes(tmp_path: Path, env: Environment, bin_dir: Path, caplog):
    pdflatex = make_tool(bin_dir, "pdflatex")
    make_tool(bin_dir, "latexmk")
    layout = _project(tmp_path)
    runner = FakeRunner(_compiler(layout.build, latexmk_output=PERL_MISSING))

    result = BuildOrchestrator(env, runner, layout).build(_source(layout))

    assert result.ok
    assert result.strategy is BuildStrategy.DIRECT_TWO_PASS
    calls = _build_calls(runner)
    assert len(calls) == 2
    assert calls[0] == calls[1]
    assert_same_path(calls[0][0], pdflatex)
    assert f"-output-directory={layout.build}" in calls[0]
    assert any("falling back" in r.getMessage() for r in caplog.records)


def test_no_driver_on_path_uses_two_passes(tmp_path: Path, env: Environment, bin_dir: Path):
    make_tool(bin_dir, "pdflatex")
    layout = _project(tmp_path)
    runner = FakeRunner(_compiler(layout.build))

    result = BuildOrchestrator(env, runner, layout).build(_source(layout))

    assert result.strategy is BuildStrategy.DIRECT_TWO_PASS
    assert len(runner.calls) == 2  # no version check without latexmk


def test_failing_first_pass_still_runs_second(tmp_path: Path, env: Environment, bin_dir: Path):
    make_tool(bin_dir, "pdflatex")
    layout = _project(tmp_path)
    codes = iter([1, 0])
    runner = FakeRunner(lambda cmd, cwd: next(codes))

    result = BuildOrchestrator(env, runner, layout).build(_source(layout))

    assert len(runner.calls) == 2
    assert result.returncode == 1
    assert isinstance(result.error, CompilationFailed)


# ─────────────────────────────────────────────────────────────────────────────
# Failure reporting and cleanup
# ─────────────────────────────────────────────────────────────────────────────
def test_failure_reports_last_20_log_lines(tmp_path: Path, env: Environment, bin_dir: Path):
    make_tool(bin_dir, "pdflatex")
    make_tool(bin_dir, "latexmk")
    layout = _project(tmp_path)
    runner = FakeRunner(_compiler(layout.build, returncode=1, log_lines=30))

    result = BuildOrchestrator(env, runner, layout).build(_source(layout))

    assert not result.ok
    assert result.returncode == 1
    assert isinstance(result.error, CompilationFailed)
    assert result.error.returncode == 1
    assert result.log_tail == [f"line {i}" for i in range(11, 31)]
    assert not list(layout.build.glob("*.aux"))
    assert (layout.logs / "doc.log").exists()


def test_failure_without_log(tmp_path: Path, env: Environment, bin_dir: Path):
    make_tool(bin_dir, "pdflatex")
    layout = _project(tmp_path)
    runner = FakeRunner(lambda cmd, cwd: 1)

    result = BuildOrchestrator(env, runner, layout).build(_source(layout))

    assert isinstance(result.error, CompilationFailed)
    assert result.log_file is None
    assert result.log_tail == []


def test_compiler_that_cannot_start(tmp_path: Path, env: Environment, bin_dir: Path):
    make_tool(bin_dir, "pdflatex")
    layout = _project(tmp_path)

    def handler(cmd, cwd):
        raise OSError("bad executable")

    result = BuildOrchestrator(env, FakeRunner(handler), layout).build(_source(layout))
    assert result.returncode == 127
    assert isinstance(result.error, CompilationFailed)


def test_previous_log_is_overwritten(tmp_path: Path, env: Environment, bin_dir: Path):
    make_tool(bin_dir, "pdflatex")
    make_tool(bin_dir, "latexmk")
    layout = _project(tmp_path)
    (layout.logs / "doc.log").write_text("old run")
    runner = FakeRunner(_compiler(layout.build, log_lines=3))

    BuildOrchestrator(env, runner, layout).build(_source(layout))

    assert (layout.logs / "doc.log").read_text() == "line 1\nline 2\nline 3"


@pytest.mark.parametrize("name", ["chapter.tex", "my paper.tex"])
def test_output_path_follows_source_name(tmp_path: Path, env: Environment, bin_dir: Path, name: str):
    make_tool(bin_dir, "pdflatex")
    make_tool(bin_dir, "latexmk")
    layout = _project(tmp_path)
    runner = FakeRunner(_compiler(layout.build))

    result = BuildOrchestrator(env, runner, layout).build(_source(layout, name))

    assert result.output_pdf == layout.build / (Path(name).stem + ".pdf")


def test_failure_ignores_log_from_earlier_run(tmp_path: Path, env: Environment, bin_dir: Path):
    make_tool(bin_dir, "pdflatex")
    layout = _project(tmp_path)
    stale = layout.logs / "doc.log"
    stale.write_text("OLD RUN from yesterday: all fine")

    def handler(cmd, cwd):
        raise OSError("bad executable")

    result = BuildOrchestrator(env, FakeRunner(handler), layout).build(_source(layout))

    assert result.returncode == 127
    assert result.log_file is None
    assert result.log_tail == []
    assert result.error.log_tail == []
    assert stale.read_text() == "OLD RUN from yesterday: all fine"


def test_nested_aux_and_log_files(tmp_path: Path, env: Environment, bin_dir: Path):
    make_tool(bin_dir, "pdflatex")
    layout = _project(tmp_path)
    compile_doc = _compiler(layout.build)

    def handler(cmd, cwd):
        chapters = layout.build / "chapters"
        chapters.mkdir(exist_ok=True)
        (chapters / "intro.aux").write_text("\\relax")
        (chapters / "intro.log").write_text("chapter log")
        return compile_doc(cmd, cwd)

    result = BuildOrchestrator(env, FakeRunner(handler), layout).build(_source(layout))

    assert result.ok
    assert not [p for p in layout.build.rglob("*") if p.suffix in (".aux", ".log")]
    assert (layout.logs / "chapters" / "intro.log").read_text() == "chapter log"
    assert result.log_file == layout.logs / "doc.log"
