from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

DEFAULT_DOCUMENT = "main.tex"

SAMPLE_DOCUMENT = r"""\documentclass{article}
\usepackage[utf8]{inputenc}

\title{Untitled}
\author{}
\date{\today}

\begin{document}
\maketitle

\section{Introduction}\label{sec:intro}
Start writing here. Section~\ref{sec:intro} resolves on the second pass.

\end{document}
"""


def ensure_dirs(*paths: Path) -> None:
    for p in paths:
        p.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class ProjectLayout:
    base: Path
    install_dir_name: str = "miktex"

    @classmethod
    def at(cls, base: Path, install_dir_name: str = "miktex") -> "ProjectLayout":
        return cls(base=base.resolve(), install_dir_name=install_dir_name)

    @property
    def src(self) -> Path:
        return self.base / "src"

    @property
    def build(self) -> Path:
        return self.base / "build"

    @property
    def logs(self) -> Path:
        return self.base / "logs"

    @property
    def templates(self) -> Path:
        return self.base / "templates"

    @property
    def toolchain(self) -> Path:
        return self.base / self.install_dir_name

    @property
    def default_source(self) -> Path:
        return self.src / DEFAULT_DOCUMENT

    def scaffold(self) -> None:
        # The portable toolchain dir is only created by the standalone installer.
        ensure_dirs(self.src, self.build, self.logs, self.templates)


def write_sample_document(dst: Path) -> bool:
    """Write a minimal document unless one already exists. Returns True if written."""
    if dst.exists():
        return False
    dst.parent.mkdir(parents=True, exist_ok=True)
    dst.write_text(SAMPLE_DOCUMENT, encoding="utf-8")
    return True
