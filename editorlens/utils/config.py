import copy
import logging
import os
from pathlib import Path
from typing import Any

import tomli
import tomli_w

APP_NAME = "editorlens"


def _xdg_dir(variable: str, fallback: str) -> Path:
    base = os.environ.get(variable)
    return (Path(base) if base else Path.home() / fallback) / APP_NAME


def get_cache_dir() -> Path:
    return _xdg_dir("XDG_CACHE_HOME", ".cache")


def get_config_dir() -> Path:
    return _xdg_dir("XDG_CONFIG_HOME", ".config")


def get_config_path() -> Path:
    return get_config_dir() / "config.toml"


def get_socket_path() -> Path:
    return get_cache_dir() / "daemon.sock"


def get_pid_path() -> Path:
    return get_cache_dir() / "daemon.pid"


def get_log_dir() -> Path:
    return get_cache_dir() / "log"


DEFAULT_CONFIG: dict[str, Any] = {
    "daemon": {
        "log_level": "info",
        "request_timeout": 30,
    },
    "server": {
        "name": "pyright",
        "command": ["pyright-langserver", "--stdio"],
        "root": "",
        "initialization_options": {},
    },
    "editor": {
        "command": ["kak", "-p", "{session}"],
    },
    "encoding": {
        "preferred": ["utf-8", "utf-16"],
    },
}


def load_config() -> dict[str, Any]:
    config_path = get_config_path()
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path.exists():
        with open(config_path, "rb") as f:
            user_config = tomli.load(f)
            _merge_config(config, user_config)

    return config


def save_config(config: dict[str, Any]) -> None:
    config_path = get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "wb") as f:
        tomli_w.dump(config, f)


def _merge_config(base: dict, override: dict) -> None:
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _merge_config(base[key], value)
        else:
            base[key] = value


def get_log_level(config: dict) -> int:
    name = str(config.get("daemon", {}).get("log_level", "info")).upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        raise ValueError(f"Invalid daemon.log_level: {name.lower()}")
    return level


def get_preferred_encodings(config: dict) -> list[str]:
    preferred = config.get("encoding", {}).get("preferred", ["utf-16"])
    if isinstance(preferred, str):
        preferred = [preferred]
    return [str(e).lower() for e in preferred]


WORKSPACE_MARKERS = [
    ".git",
    "pyproject.toml",
    "setup.py",
    "Cargo.toml",
    "package.json",
    "go.mod",
    "Makefile",
]


def detect_workspace_root(path: Path) -> Path | None:
    """Walk up from path and return the closest directory holding a workspace marker."""
    path = path.resolve()
    if path.is_file():
        path = path.parent

    current = path
    while current != current.parent:
        for marker in WORKSPACE_MARKERS:
            if (current / marker).exists():
                return current
        current = current.parent

    return None


def get_server_root(config: dict, buffile: str | None = None) -> Path:
    """Root handed to the language server at initialize.

    An explicit [server] root wins; otherwise it is detected from the first
    buffer, falling back to the daemon's working directory.
    """
    configured = config.get("server", {}).get("root")
    if configured:
        return Path(configured).expanduser().resolve()
    if buffile:
        detected = detect_workspace_root(Path(buffile))
        if detected:
            return detected
        return Path(buffile).resolve().parent
    return Path.cwd().resolve()
