from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from .errors import PayloadParseError, UnsupportedPlatformError
from .local_state import EnvironmentInfo, PackageInfo, Platform

GIST_FILENAME = "vscode-settings.json"


@dataclass(frozen=True)
class ExtensionEntry:
    id: str
    version: str
    enabled: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "version": self.version, "enabled": self.enabled}


@dataclass(frozen=True)
class SyncPayload:
    settings: dict[str, Any]
    extensions: tuple[ExtensionEntry, ...]
    timestamp: str
    environment: EnvironmentInfo

    def to_dict(self) -> dict[str, Any]:
        return {
            "settings": self.settings,
            "extensions": [e.to_dict() for e in self.extensions],
            "timestamp": self.timestamp,
            "environment": self.environment.to_dict(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)


def utc_timestamp(now: datetime | None = None) -> str:
    ts = now or datetime.now(timezone.utc)
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"


def unique_extensions(packages: Iterable[PackageInfo]) -> tuple[ExtensionEntry, ...]:
    seen: set[str] = set()
    out: list[ExtensionEntry] = []
    for pkg in packages:
        key = pkg.id.lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(ExtensionEntry(id=pkg.id, version=pkg.version, enabled=True))
    return tuple(out)


def build_payload(
    *,
    settings: dict[str, Any],
    packages: Iterable[PackageInfo],
    environment: EnvironmentInfo,
    now: datetime | None = None,
) -> SyncPayload:
    return SyncPayload(
        settings=dict(settings),
        extensions=unique_extensions(packages),
        timestamp=utc_timestamp(now),
        environment=environment,
    )


def _parse_extension(raw: Any, index: int) -> ExtensionEntry:
    if not isinstance(raw, dict):
        raise PayloadParseError(f"extensions[{index}] must be an object.")
    ext_id = raw.get("id")
    if not isinstance(ext_id, str) or not ext_id.strip():
        raise PayloadParseError(f"extensions[{index}].id must be a non-empty string.")
    version = raw.get("version", "")
    if version is None:
        version = ""
    if not isinstance(version, str):
        raise PayloadParseError(f"extensions[{index}].version must be a string.")
    enabled = raw.get("enabled", True)
    if not isinstance(enabled, bool):
        raise PayloadParseError(f"extensions[{index}].enabled must be a boolean.")
    return ExtensionEntry(id=ext_id.strip(), version=version, enabled=enabled)


def _parse_environment(raw: Any) -> EnvironmentInfo:
    if not isinstance(raw, dict):
        raise PayloadParseError("environment must be an object.")
    platform_raw = raw.get("platform")
    if not isinstance(platform_raw, str):
        raise PayloadParseError("environment.platform must be a string.")
    try:
        platform = Platform.from_identifier(platform_raw)
    except UnsupportedPlatformError as e:
        raise PayloadParseError(f"environment.platform: {e}") from e

    # Gists written by the editor extension use "isWindsurf" for the alt-editor flag.
    alt = raw.get("isAltEditor", raw.get("isWindsurf", False))
    if not isinstance(alt, bool):
        raise PayloadParseError("environment.isAltEditor must be a boolean.")
    strings: dict[str, str] = {}
    for key in ("architecture", "appName", "appHost"):
        value = raw.get(key, "")
        if value is None:
            value = ""
        if not isinstance(value, str):
            raise PayloadParseError(f"environment.{key} must be a string.")
        strings[key] = value
    return EnvironmentInfo(
        is_alt_editor=alt,
        platform=platform,
        architecture=strings["architecture"],
        app_name=strings["appName"],
        app_host=strings["appHost"],
    )


def payload_from_dict(raw: Any) -> SyncPayload:
    if not isinstance(raw, dict):
        raise PayloadParseError("Sync payload must be a JSON object.")
    settings = raw.get("settings")
    if not isinstance(settings, dict):
        raise PayloadParseError("Sync payload is missing a 'settings' object.")
    extensions_raw = raw.get("extensions")
    if not isinstance(extensions_raw, list):
        raise PayloadParseError("Sync payload is missing an 'extensions' list.")
    timestamp = raw.get("timestamp")
    if not isinstance(timestamp, str):
        raise PayloadParseError("Sync payload is missing a 'timestamp' string.")
    if "environment" not in raw:
        raise PayloadParseError("Sync payload is missing an 'environment' object.")

    extensions = [_parse_extension(item, i) for i, item in enumerate(extensions_raw)]
    seen: set[str] = set()
    for ext in extensions:
        key = ext.id.lower()
        if key in seen:
            raise PayloadParseError(f"Duplicate extension id in payload: {ext.id}")
        seen.add(key)

    return SyncPayload(
        settings=settings,
        extensions=tuple(extensions),
        timestamp=timestamp,
        environment=_parse_environment(raw["environment"]),
    )


def payload_from_json(text: str) -> SyncPayload:
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise PayloadParseError(f"Sync payload is not valid JSON: {e}") from e
    return payload_from_dict(raw)
