from __future__ import annotations

import os

_DEFAULT_VERSION = "1.0.0"


def get_app_version() -> str:
    v = os.getenv("TEXFORGE_VERSION")
    if v and v.strip():
        return v.strip()
    return _DEFAULT_VERSION


APP_VERSION = get_app_version()
USER_AGENT = f"Texforge/{APP_VERSION} (+miktex-setup)"
