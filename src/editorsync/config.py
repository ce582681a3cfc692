from __future__ import annotations

import json
import logging
import os
import stat
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Protocol

from platformdirs import user_config_path

from .errors import EditorSyncError, MalformedConfigError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_TIMEOUT_S = 30.0
DEFAULT_SETTLE_DELAY_S = 5.0

STATE_FILENAME = "state.json"
SECRETS_FILENAME = "credentials.json"

GIST_ID_KEY = "settingsSyncGistId"
TOKEN_KEY = "github-token"


@dataclass(frozen=True)
class Config:
    api_url: str = DEFAULT_API_URL
    timeout_s: float = DEFAULT_TIMEOUT_S
    editor_cli: str | None = None  # e.g. "code" or "windsurf"; autodetected when unset
    alt_editor: bool = False
    settings_path: str | None = None  # overrides the platform default
    settle_delay_s: float = DEFAULT_SETTLE_DELAY_S


def config_path(path_override: str | Path | None = None) -> Path:
    if path_override is not None:
        return Path(path_override).expanduser()
    if env := os.getenv("EDITORSYNC_CONFIG_PATH"):
        return Path(env).expanduser()
    return user_config_path("editorsync") / "config.json"


def config_dir(path_override: str | Path | None = None) -> Path:
    return config_path(path_override).parent


def _read_json_object(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedConfigError(f"Invalid JSON in {path}: {e}") from e
    except OSError as e:
        raise EditorSyncError(f"Could not read {path}: {e}") from e
    if not isinstance(raw, dict):
        return {}
    return raw


def _write_json_atomic(path: Path, data: Any, *, private: bool = False) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")
        tmp.replace(path)
    except OSError as e:
        raise EditorSyncError(f"Could not write {path}: {e}") from e

    if private:
        # Best-effort permissions hardening (tokens).
        try:
            os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)
        except OSError:
            pass


def load_config(path_override: str | Path | None = None) -> Config:
    path = config_path(path_override)
    raw = _read_json_object(path)
    allowed = {f.name for f in Config.__dataclass_fields__.values()}  # type: ignore[attr-defined]
    filtered: dict[str, Any] = {k: v for k, v in raw.items() if k in allowed}
    return Config(**filtered)  # type: ignore[arg-type]


def save_config(cfg: Config, path_override: str | Path | None = None) -> Path:
    path = config_path(path_override)
    _write_json_atomic(path, asdict(cfg))
    return path


class DurableState(Protocol):
    def get(self, key: str) -> str | None:
        ...

    def update(self, key: str, value: str | None) -> None:
        ...


class SecretStore(Protocol):
    def get(self, key: str) -> str | None:
        ...

    def store(self, key: str, value: str) -> None:
        ...


class JsonFileState:
    """Process-wide durable key-value state backed by one JSON file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def get(self, key: str) -> str | None:
        value = _read_json_object(self.path).get(key)
        return value if isinstance(value, str) and value else None

    def update(self, key: str, value: str | None) -> None:
        data = _read_json_object(self.path)
        if value is None:
            data.pop(key, None)
        else:
            data[key] = value
        _write_json_atomic(self.path, data)
        logger.debug("Updated durable state key %s in %s", key, self.path)


class JsonFileSecretStore:
    """
    Secret storage backed by a user-only readable JSON file.

    `EDITORSYNC_TOKEN` in the environment takes precedence over the stored token
    so CI machines never need to write one to disk.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def get(self, key: str) -> str | None:
        if key == TOKEN_KEY and (env := os.getenv("EDITORSYNC_TOKEN")):
            return env
        value = _read_json_object(self.path).get(key)
        return value if isinstance(value, str) and value else None

    def store(self, key: str, value: str) -> None:
        data = _read_json_object(self.path)
        data[key] = value
        _write_json_atomic(self.path, data, private=True)
        # Never log the secret itself.
        logger.debug("Stored secret %s in %s", key, self.path)


def default_state(path_override: str | Path | None = None) -> JsonFileState:
    return JsonFileState(config_dir(path_override) / STATE_FILENAME)


def default_secrets(path_override: str | Path | None = None) -> JsonFileSecretStore:
    return JsonFileSecretStore(config_dir(path_override) / SECRETS_FILENAME)
