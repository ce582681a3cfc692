from ._version import __version__
from .client import GistClient
from .errors import (
    EditorSyncError,
    InstallVerificationFailure,
    MalformedConfigError,
    PayloadParseError,
    RemoteAuthError,
    RemoteNotFoundError,
    RemoteTransportError,
    UnsupportedPlatformError,
)
from .installer import InstallReport, PackageInstaller
from .payload import ExtensionEntry, SyncPayload
from .reconciler import SyncContext, SyncOutcome, SyncResult, sync

__all__ = [
    "__version__",
    "EditorSyncError",
    "ExtensionEntry",
    "GistClient",
    "InstallReport",
    "InstallVerificationFailure",
    "MalformedConfigError",
    "PackageInstaller",
    "PayloadParseError",
    "RemoteAuthError",
    "RemoteNotFoundError",
    "RemoteTransportError",
    "SyncContext",
    "SyncOutcome",
    "SyncPayload",
    "SyncResult",
    "UnsupportedPlatformError",
    "sync",
]
