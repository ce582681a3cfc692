from __future__ import annotations

from dataclasses import dataclass


class EditorSyncError(RuntimeError):
    pass


class UnsupportedPlatformError(EditorSyncError):
    pass


class MalformedConfigError(EditorSyncError):
    pass


class RemoteAuthError(EditorSyncError):
    pass


class RemoteTransportError(EditorSyncError):
    pass


class RemoteNotFoundError(EditorSyncError):
    pass


class PayloadParseError(EditorSyncError):
    pass


@dataclass(frozen=True)
class InstallVerificationFailure(EditorSyncError):
    """Per-extension install failure. Collected into an InstallReport, never raised out of the installer."""

    package_id: str
    reason: str

    def __str__(self) -> str:
        return f"{self.package_id}: {self.reason}"
