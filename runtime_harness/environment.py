from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return bool(default)
    s = str(raw).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    # CI systems export arbitrary non-empty markers.
    return bool(s) or bool(default)


def _env_str(name: str) -> str:
    return str(os.getenv(name) or "").strip()


@dataclass(frozen=True)
class RunEnvironment:
    # Remote browser lab credentials.
    sauce_username: str = field(default_factory=lambda: _env_str("SAUCE_USERNAME"))
    sauce_access_key: str = field(default_factory=lambda: _env_str("SAUCE_ACCESS_KEY"))

    # Restricted downstream repository that only runs the integration suite.
    ampsauce_repo: bool = field(default_factory=lambda: _env_bool("AMPSAUCE_REPO", False))

    # Help messages are only printed for local development.
    travis: bool = field(default_factory=lambda: _env_bool("TRAVIS", False))


def set_serve_mode(compiled: bool) -> str:
    """Tell the fake-response server (and the runner) which assets to serve."""
    mode = "compiled" if compiled else "default"
    os.environ["SERVE_MODE"] = mode
    return mode


def get_serve_mode() -> str:
    return _env_str("SERVE_MODE") or "default"


def find_chromium_executable() -> str | None:
    env_path = os.getenv("CHROME_BIN") or os.getenv("CHROMIUM_PATH")
    if env_path and Path(env_path).exists():
        return env_path

    candidates = [
        "/usr/bin/chromium",
        "/usr/bin/chromium-browser",
        "/usr/bin/google-chrome",
        "/usr/bin/google-chrome-stable",
        "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    ]
    for path in candidates:
        if Path(path).exists():
            return path
    return None
