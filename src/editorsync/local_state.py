from __future__ import annotations

import json
import logging
import os
import platform as _platform
import shutil
import subprocess
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from .errors import EditorSyncError, MalformedConfigError, UnsupportedPlatformError

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "settings.json"
DEFAULT_APP_FOLDER = "Code"
ALT_APP_FOLDER = "windsurf"
DEFAULT_APP_NAME = "Visual Studio Code"
ALT_APP_NAME = "Windsurf"
DEFAULT_EDITOR_CLI = "code"
ALT_EDITOR_CLI = "windsurf"


class Platform(str, Enum):
    WINDOWS = "win32"
    MACOS = "darwin"
    LINUX = "linux"

    @classmethod
    def from_identifier(cls, value: str) -> "Platform":
        if value == "win32":
            return cls.WINDOWS
        if value == "darwin":
            return cls.MACOS
        if value.startswith("linux"):
            return cls.LINUX
        raise UnsupportedPlatformError(f"Unsupported platform: {value}")

    @classmethod
    def current(cls) -> "Platform":
        return cls.from_identifier(sys.platform)


@dataclass(frozen=True)
class PackageInfo:
    id: str
    version: str


@dataclass(frozen=True)
class EnvironmentInfo:
    is_alt_editor: bool
    platform: Platform
    architecture: str
    app_name: str
    app_host: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "isAltEditor": self.is_alt_editor,
            "platform": self.platform.value,
            "architecture": self.architecture,
            "appName": self.app_name,
            "appHost": self.app_host,
        }


def is_alt_editor(*, editor_cli: str | None = None, forced: bool = False) -> bool:
    if forced:
        return True
    if os.getenv("WINDSURF_APP", "").lower() == "true":
        return True
    if editor_cli and "windsurf" in Path(editor_cli).name.lower():
        return True
    return False


def _architecture() -> str:
    machine = _platform.machine().lower()
    # Node-style names, as stored by gists written from the editor itself.
    return {"x86_64": "x64", "amd64": "x64", "aarch64": "arm64", "i386": "ia32", "i686": "ia32"}.get(machine, machine)


def detect_environment(
    *,
    editor_cli: str | None = None,
    alt_editor: bool = False,
    platform: Platform | None = None,
) -> EnvironmentInfo:
    alt = is_alt_editor(editor_cli=editor_cli, forced=alt_editor)
    return EnvironmentInfo(
        is_alt_editor=alt,
        platform=platform or Platform.current(),
        architecture=_architecture(),
        app_name=ALT_APP_NAME if alt else DEFAULT_APP_NAME,
        app_host="desktop",
    )


def resolve_config_path(
    *,
    platform: Platform,
    alt_editor: bool,
    home: Path | None = None,
    appdata: str | None = None,
) -> Path:
    """
    Location of the editor's user settings file.

    `<app-data root>/<Code|windsurf>/User/settings.json`, where the root is
    %APPDATA% on Windows, ~/Library/Application Support on macOS and ~/.config on Linux.
    """
    home_dir = home if home is not None else Path.home()
    app_folder = ALT_APP_FOLDER if alt_editor else DEFAULT_APP_FOLDER

    if platform is Platform.WINDOWS:
        root = Path(appdata) if appdata else home_dir / "AppData" / "Roaming"
    elif platform is Platform.MACOS:
        root = home_dir / "Library" / "Application Support"
    elif platform is Platform.LINUX:
        root = home_dir / ".config"
    else:  # pragma: no cover
        raise UnsupportedPlatformError(f"Unsupported platform: {platform}")
    return root / app_folder / "User" / SETTINGS_FILENAME


def _ensure_parent(path: Path) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise EditorSyncError(f"Could not create directory {path.parent}: {e}") from e


def read_config(path: Path) -> dict[str, Any]:
    _ensure_parent(path)
    if not path.exists():
        return {}
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise MalformedConfigError(f"Settings file {path} is not valid UTF-8: {e}") from e
    except OSError as e:
        raise EditorSyncError(f"Could not read {path}: {e}") from e
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedConfigError(f"Settings file {path} is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise MalformedConfigError(f"Settings file {path} must contain a JSON object.")
    return raw


def write_config(path: Path, settings: dict[str, Any]) -> None:
    _ensure_parent(path)
    try:
        path.write_text(json.dumps(settings, indent=4, ensure_ascii=False) + "\n", encoding="utf-8")
    except OSError as e:
        raise EditorSyncError(f"Failed to apply settings: {e}") from e
    logger.debug("Wrote %d settings to %s", len(settings), path)


class LocalEnvironment(Protocol):
    def list_installed_packages(self) -> list[PackageInfo]:
        ...


def default_editor_cli(*, alt_editor: bool) -> str:
    return ALT_EDITOR_CLI if alt_editor else DEFAULT_EDITOR_CLI


def parse_extension_listing(output: str) -> list[PackageInfo]:
    packages: list[PackageInfo] = []
    for line in output.splitlines():
        entry = line.strip()
        if not entry or entry.startswith("Extensions installed"):
            continue
        ext_id, sep, version = entry.partition("@")
        if not ext_id:
            continue
        packages.append(PackageInfo(id=ext_id.strip(), version=version.strip() if sep else ""))
    return packages


class EditorCliEnvironment:
    """Enumerates user-installed (non built-in) extensions through the editor's launcher."""

    def __init__(self, editor_cli: str) -> None:
        self.editor_cli = editor_cli

    def _resolve_cli(self) -> str:
        resolved = shutil.which(self.editor_cli)
        if resolved is None:
            raise EditorSyncError(
                f"Editor command {self.editor_cli!r} not found on PATH. Set it with --editor-cli or EDITORSYNC_EDITOR_CLI."
            )
        return resolved

    def list_installed_packages(self) -> list[PackageInfo]:
        cmd = [self._resolve_cli(), "--list-extensions", "--show-versions"]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except OSError as e:
            raise EditorSyncError(f"Could not run {self.editor_cli}: {e}") from e
        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip()
            raise EditorSyncError(f"{self.editor_cli} --list-extensions failed (exit {result.returncode}): {detail}")
        return parse_extension_listing(result.stdout)
