# texforge/latex/download.py
from __future__ import annotations

import logging
import shutil
import zipfile
from pathlib import Path
from typing import Optional
from urllib.request import Request, urlopen

from texforge.version import USER_AGENT

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT = 180


# ─────────────────────────────────────────────────────────────────────────────
# HTTP
# ─────────────────────────────────────────────────────────────────────────────
def _request(url: str) -> Request:
    return Request(url, headers={"User-Agent": USER_AGENT})


def download_file(url: str, dest: Path) -> Path:
    """
    Stream `url` into `dest`. Network and HTTP errors propagate
    (urllib.error.URLError is an OSError subclass).
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    logger.info(f"Downloading {url}")
    with urlopen(_request(url), timeout=DOWNLOAD_TIMEOUT) as r, dest.open("wb") as out:
        shutil.copyfileobj(r, out)
    logger.debug(f"Saved {dest} ({dest.stat().st_size} bytes)")
    return dest


# ─────────────────────────────────────────────────────────────────────────────
# Archive helpers
# ─────────────────────────────────────────────────────────────────────────────
def extract_zip(archive: Path, dest_dir: Path) -> Path:
    """Extract into dest_dir/extracted. Raises zipfile.BadZipFile on a corrupt archive."""
    extract_dir = dest_dir / "extracted"
    extract_dir.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(str(archive), "r") as zf:
        zf.extractall(extract_dir)
    return extract_dir


def find_file(root: Path, name: str) -> Optional[Path]:
    """First file called `name` (case-insensitive) below root, in sorted order."""
    wanted = name.lower()
    for p in sorted(root.rglob("*")):
        if p.is_file() and p.name.lower() == wanted:
            return p
    return None
