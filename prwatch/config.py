from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

CONFIG_DIR = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")) / "prwatch"
CONFIG_PATH = CONFIG_DIR / "config.json"

DEFAULT_REFRESH_SECONDS = 5


@dataclass
class AppConfig:
    repos: list[str] = field(default_factory=list)
    refresh_seconds: int = DEFAULT_REFRESH_SECONDS
    auth_token: str | None = None

    @staticmethod
    def from_dict(data: dict[str, Any]) -> AppConfig:
        """Create an `AppConfig` instance from a plain dictionary.

        Non-string repos are dropped and a missing or non-positive
        `refresh_seconds` falls back to the default.

        Args:
            data: A mapping parsed from JSON containing optional keys
                `repos` (list[str]), `refresh_seconds` (int) and
                `auth_token` (str | None).

        Returns:
            A populated `AppConfig` object.
        """
        repos = [r for r in data.get("repos", []) or [] if isinstance(r, str)]
        refresh = data.get("refresh_seconds")
        if isinstance(refresh, bool) or not isinstance(refresh, (int, float)) or refresh <= 0:
            refresh = DEFAULT_REFRESH_SECONDS
        token = data.get("auth_token")
        return AppConfig(
            repos=repos,
            refresh_seconds=int(refresh),
            auth_token=token if isinstance(token, str) and token else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize this configuration to a JSON-safe dictionary.

        Returns:
            A dictionary suitable for `json.dump`.
        """
        return {
            "repos": list(self.repos),
            "refresh_seconds": self.refresh_seconds,
            **({"auth_token": self.auth_token} if self.auth_token else {}),
        }

    def resolved_token(self) -> str | None:
        """Return the configured token, falling back to `GITHUB_TOKEN`."""
        return self.auth_token or os.environ.get("GITHUB_TOKEN") or None


def ensure_config_dir() -> None:
    """Ensure the configuration directory exists.

    Raises:
        OSError: If the directory cannot be created.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)


def load_config() -> AppConfig:
    """Load configuration from `CONFIG_PATH`, creating a default if missing.

    Returns:
        The loaded or newly created `AppConfig` instance.

    Raises:
        OSError: If reading the file fails.
        json.JSONDecodeError: If the file exists but contains invalid JSON.
    """
    ensure_config_dir()
    if not CONFIG_PATH.exists():
        cfg = AppConfig()
        save_config(cfg)
        return cfg
    with CONFIG_PATH.open("r", encoding="utf-8") as f:
        data = json.load(f)
    return AppConfig.from_dict(data if isinstance(data, dict) else {})


def save_config(cfg: AppConfig) -> None:
    """Persist configuration to `CONFIG_PATH` as JSON.

    Args:
        cfg: The configuration to save.

    Raises:
        OSError: If writing the file fails.
    """
    ensure_config_dir()
    with CONFIG_PATH.open("w", encoding="utf-8") as f:
        json.dump(cfg.to_dict(), f, indent=2)
