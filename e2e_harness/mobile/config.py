from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from .env import ensure_dotenv_loaded, env_overrides
from .errors import CapabilityError

DEFAULT_SERVER_HOST = "127.0.0.1"
DEFAULT_SERVER_PORT = 4723
DEFAULT_BASE_PATH = "/"
DEFAULT_FIND_TIMEOUT_MS = 5000
DEFAULT_POLL_INTERVAL_MS = 250

GESTURE_STRATEGIES = ("native", "touch")

# Capabilities defined by W3C WebDriver; everything else needs a vendor prefix.
W3C_CAPABILITIES = frozenset(
    {
        "platformName",
        "browserName",
        "browserVersion",
        "acceptInsecureCerts",
        "pageLoadStrategy",
        "proxy",
        "setWindowRect",
        "timeouts",
        "strictFileInteractability",
        "unhandledPromptBehavior",
        "webSocketUrl",
    }
)

APP_IDENTIFIER_CAPABILITIES = ("app", "bundleId", "appPackage")


def load_json_file(path: str) -> dict[str, Any]:
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"JSON file not found: {file_path}")
    if file_path.is_dir():
        raise IsADirectoryError(f"Expected a JSON file but found a directory: {file_path}")

    raw = file_path.read_text(encoding="utf-8")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {file_path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Expected top-level JSON object in {file_path}")
    return data


def require_key(obj: dict[str, Any], key: str, *, context: str) -> Any:
    if key not in obj:
        raise ValueError(f"Missing required key '{key}' in {context}")
    return obj[key]


class Platform(str, Enum):
    IOS = "iOS"
    ANDROID = "Android"

    @classmethod
    def parse(cls, raw: Any) -> "Platform":
        if isinstance(raw, Platform):
            return raw
        normalized = str(raw or "").strip().lower()
        for member in cls:
            if member.value.lower() == normalized:
                return member
        raise CapabilityError(f"Unsupported platform {raw!r}; expected one of iOS/Android")


def _unprefixed(key: str) -> str:
    return key.split(":", 1)[1] if ":" in key else key


@dataclass(frozen=True)
class SessionConfig:
    platform: Platform
    capabilities: Mapping[str, Any] = field(default_factory=dict)
    server_host: str = DEFAULT_SERVER_HOST
    server_port: int = DEFAULT_SERVER_PORT
    base_path: str = DEFAULT_BASE_PATH
    find_timeout_ms: int = DEFAULT_FIND_TIMEOUT_MS
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    gesture_strategy: str = "native"
    request_timeout_s: float = 30.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "platform", Platform.parse(self.platform))
        object.__setattr__(self, "capabilities", MappingProxyType(dict(self.capabilities)))
        base_path = "/" + self.base_path.strip().strip("/")
        object.__setattr__(self, "base_path", base_path)
        if not self.server_host:
            raise ValueError("server_host must be a non-empty string")
        if not 0 < int(self.server_port) < 65536:
            raise ValueError(f"server_port out of range: {self.server_port}")
        if self.find_timeout_ms < 0:
            raise ValueError("find_timeout_ms must be >= 0")
        if self.poll_interval_ms <= 0:
            raise ValueError("poll_interval_ms must be > 0")
        if self.gesture_strategy not in GESTURE_STRATEGIES:
            raise ValueError(f"gesture_strategy must be one of {GESTURE_STRATEGIES}")

    @property
    def server_url(self) -> str:
        path = "" if self.base_path == "/" else self.base_path
        return f"http://{self.server_host}:{self.server_port}{path}"

    def validate_capabilities(self) -> None:
        for key in self.capabilities:
            if not isinstance(key, str) or not key.strip():
                raise CapabilityError(f"Capability keys must be non-empty strings, got {key!r}")
        names = {_unprefixed(key) for key in self.capabilities}
        if not names.intersection(APP_IDENTIFIER_CAPABILITIES):
            raise CapabilityError(
                "Capabilities must name the app under test via one of "
                + ", ".join(APP_IDENTIFIER_CAPABILITIES)
            )
        declared = self.capabilities.get("platformName")
        if declared is not None and Platform.parse(declared) is not self.platform:
            raise CapabilityError(
                f"platformName capability {declared!r} contradicts platform {self.platform.value!r}"
            )

    def session_payload(self) -> dict[str, Any]:
        always_match: dict[str, Any] = {"platformName": self.platform.value}
        for key, value in self.capabilities.items():
            if key == "platformName":
                continue
            name = key if (":" in key or key in W3C_CAPABILITIES) else f"appium:{key}"
            always_match[name] = value
        return {"capabilities": {"alwaysMatch": always_match, "firstMatch": [{}]}}


def session_config_from_dict(data: dict[str, Any], *, context: str = "config") -> SessionConfig:
    server = data.get("server") or {}
    if not isinstance(server, dict):
        raise ValueError(f"{context}: 'server' must be an object")
    capabilities = require_key(data, "capabilities", context=context)
    if not isinstance(capabilities, dict):
        raise ValueError(f"{context}: 'capabilities' must be an object")
    platform = data.get("platform") or capabilities.get("platformName")
    if not platform:
        raise ValueError(f"Missing required key 'platform' in {context}")

    return SessionConfig(
        platform=Platform.parse(platform),
        capabilities=capabilities,
        server_host=str(server.get("host") or DEFAULT_SERVER_HOST),
        server_port=int(server.get("port") or DEFAULT_SERVER_PORT),
        base_path=str(server.get("base_path") or DEFAULT_BASE_PATH),
        find_timeout_ms=int(data.get("find_timeout_ms", DEFAULT_FIND_TIMEOUT_MS)),
        poll_interval_ms=int(data.get("poll_interval_ms", DEFAULT_POLL_INTERVAL_MS)),
        gesture_strategy=str(data.get("gesture_strategy") or "native"),
        request_timeout_s=float(data.get("request_timeout_s", 30.0)),
    )


def apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of a raw config dict with E2E_APPIUM_* / E2E_PLATFORM applied."""
    ensure_dotenv_loaded()
    overrides = env_overrides()
    merged = dict(data)
    if "server" in overrides:
        server = merged.get("server") or {}
        if isinstance(server, dict):
            merged["server"] = {**server, **overrides["server"]}
    if "platform" in overrides:
        merged["platform"] = overrides["platform"]
    return merged


def load_session_config(path: str, *, use_env: bool = True) -> SessionConfig:
    data = load_json_file(path)
    if use_env:
        data = apply_env_overrides(data)
    return session_config_from_dict(data, context=path)

