from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional, Union

ENV_PREFIX = "E2E_"

# E2E_<name> -> key inside the config's "server" object
SERVER_ENV_KEYS = {
    "APPIUM_HOST": "host",
    "APPIUM_PORT": "port",
    "APPIUM_BASE_PATH": "base_path",
}

_DOTENV_LOADED = False


def _default_dotenv_path() -> Path:
    explicit = os.environ.get(f"{ENV_PREFIX}DOTENV_PATH")
    if explicit and explicit.strip():
        return Path(explicit.strip()).expanduser().resolve()
    # e2e_harness/mobile/env.py -> checkout root holds the .env
    return Path(__file__).resolve().parents[2] / ".env"


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def parse_dotenv(text: str) -> dict[str, str]:
    """
    KEY=VALUE pairs from .env text, in file order; later duplicates win.

    Blank lines, `#` comments and a leading `export ` are ignored.
    """
    pairs: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        pairs[key] = _unquote(value.strip())
    return pairs


def load_dotenv(*, path: Optional[Union[str, Path]] = None, override: bool = False) -> dict[str, str]:
    """
    Export the pairs of a .env file into os.environ and return the ones that were set.

    Variables already present in the environment win unless override=True.
    A missing file is not an error.
    """
    dotenv_path = Path(path).expanduser().resolve() if path is not None else _default_dotenv_path()
    if not dotenv_path.exists():
        return {}
    if dotenv_path.is_dir():
        raise IsADirectoryError(f"Expected a .env file but found a directory: {dotenv_path}")

    loaded: dict[str, str] = {}
    for key, value in parse_dotenv(dotenv_path.read_text(encoding="utf-8")).items():
        if not override and os.environ.get(key) is not None:
            continue
        os.environ[key] = value
        loaded[key] = value
    return loaded


def ensure_dotenv_loaded() -> dict[str, str]:
    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return {}
    loaded = load_dotenv()
    _DOTENV_LOADED = True
    return loaded


def harness_env(name: str) -> Optional[str]:
    """Return E2E_<name> from the environment, or None when unset or blank."""
    raw = os.environ.get(f"{ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def harness_env_int(name: str) -> Optional[int]:
    raw = harness_env(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from e


def env_overrides() -> dict[str, Any]:
    """
    Config fragments set through the environment, shaped like the config JSON:
    {"server": {"host": ..., "port": ..., "base_path": ...}, "platform": ...}.
    Only variables that are actually set show up.
    """
    server: dict[str, Any] = {}
    for name, key in SERVER_ENV_KEYS.items():
        value = harness_env_int(name) if key == "port" else harness_env(name)
        if value is not None:
            server[key] = value

    overrides: dict[str, Any] = {}
    if server:
        overrides["server"] = server
    platform = harness_env("PLATFORM")
    if platform is not None:
        overrides["platform"] = platform
    return overrides
