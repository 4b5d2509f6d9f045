from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from appdirs import user_config_dir

logger = logging.getLogger(__name__)

APP_NAME = "Texforge"
APP_AUTHOR = "Texforge"
CONFIG_DIR = Path(user_config_dir(APP_NAME, APP_AUTHOR))
CONFIG_FILE = CONFIG_DIR / "config.json"


def _default_cfg() -> Dict[str, Any]:
    return {
        "toolchain": {
            "winget_id": "MiKTeX.MiKTeX",
            "choco_package": "miktex",
            "standalone_url": "https://miktex.org/download/win/miktexsetup-x64.zip",
            "setup_executable": "miktexsetup_standalone.exe",
            "package_set": "basic",
            # portable install target, relative to the project base
            "install_dir": "miktex",
            "auxiliary_packages": ["latexmk", "perl"],
        },
    }


def _check_toolchain(section: Any) -> None:
    """Raise ValueError unless `section` has the shape of the toolchain defaults."""
    if not isinstance(section, dict):
        raise ValueError("'toolchain' must be an object")
    for key, default in _default_cfg()["toolchain"].items():
        if key not in section:
            continue
        value = section[key]
        if isinstance(default, list):
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ValueError(f"'toolchain.{key}' must be a list of strings")
        elif not isinstance(value, str) or not value.strip():
            raise ValueError(f"'toolchain.{key}' must be a non-empty string")


def _merge_defaults(cfg: Dict[str, Any]) -> Dict[str, Any]:
    merged = _default_cfg()
    for section, values in cfg.items():
        if isinstance(values, dict) and isinstance(merged.get(section), dict):
            merged[section].update(values)
        else:
            merged[section] = values
    return merged


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    cfg_file = path or CONFIG_FILE
    if not cfg_file.exists():
        cfg_file.parent.mkdir(parents=True, exist_ok=True)
        cfg = _default_cfg()
        cfg_file.write_text(json.dumps(cfg, indent=2), encoding="utf-8")
        return cfg
    try:
        data = json.loads(cfg_file.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("config root must be an object")
        merged = _merge_defaults(data)
        _check_toolchain(merged["toolchain"])
        return merged
    except ValueError:
        # If corrupt, back up and reset
        backup = cfg_file.with_suffix(".bak")
        cfg_file.replace(backup)
        logger.warning(f"Config file {cfg_file} was unreadable; reset to defaults (backup: {backup})")
        cfg = _default_cfg()
        cfg_file.write_text(json.dumps(cfg, indent=2), encoding="utf-8")
        return cfg


def save_config(cfg: Dict[str, Any], path: Optional[Path] = None) -> None:
    cfg_file = path or CONFIG_FILE
    cfg_file.parent.mkdir(parents=True, exist_ok=True)
    cfg_file.write_text(json.dumps(cfg, indent=2), encoding="utf-8")


@dataclass(frozen=True)
class ToolchainSettings:
    winget_id: str
    choco_package: str
    standalone_url: str
    setup_executable: str
    package_set: str
    install_dir: str
    auxiliary_packages: Tuple[str, ...]

    @classmethod
    def from_config(cls, cfg: Optional[Dict[str, Any]] = None) -> "ToolchainSettings":
        section = copy.deepcopy(_default_cfg()["toolchain"])
        overrides = (cfg or {}).get("toolchain", {})
        try:
            _check_toolchain(overrides)
            section.update(overrides)
        except ValueError as e:
            logger.warning(f"Ignoring toolchain settings ({e}); using defaults")
        return cls(
            winget_id=str(section["winget_id"]),
            choco_package=str(section["choco_package"]),
            standalone_url=str(section["standalone_url"]),
            setup_executable=str(section["setup_executable"]),
            package_set=str(section["package_set"]),
            install_dir=str(section["install_dir"]),
            auxiliary_packages=tuple(section["auxiliary_packages"]),
        )


def default_settings() -> ToolchainSettings:
    return ToolchainSettings.from_config()
