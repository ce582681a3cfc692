from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Protocol

from .config import GIST_ID_KEY, TOKEN_KEY, DurableState, SecretStore
from .errors import EditorSyncError, RemoteAuthError
from .installer import InstallReport, PackageInstaller
from .local_state import EnvironmentInfo, LocalEnvironment, PackageInfo, read_config, write_config
from .payload import SyncPayload, build_payload
from .prompts import Choice, UserPrompt

logger = logging.getLogger(__name__)

MIN_TOKEN_LENGTH = 40

PULL = Choice("Download from GitHub")
PUSH = Choice("Upload to GitHub")
PROCEED = Choice("Proceed with sync")
CANCEL = Choice("Cancel", "Abort the sync operation")


class RemoteStore(Protocol):
    def create(self, payload: SyncPayload) -> str:
        ...

    def fetch(self, handle: str) -> SyncPayload:
        ...

    def update(self, handle: str, payload: SyncPayload) -> None:
        ...


class SyncOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    APPLIED = "applied"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class SyncResult:
    outcome: SyncOutcome
    handle: str | None = None
    payload: SyncPayload | None = None
    install_report: InstallReport | None = None


@dataclass
class SyncContext:
    remote: RemoteStore
    state: DurableState
    local: LocalEnvironment
    installer: PackageInstaller
    prompt: UserPrompt
    settings_path: Path
    environment: EnvironmentInfo

    @property
    def editor_label(self) -> str:
        return "WindSurf" if self.environment.is_alt_editor else "VS Code"


def build_local_payload(ctx: SyncContext) -> SyncPayload:
    settings = read_config(ctx.settings_path)
    packages = ctx.local.list_installed_packages()
    payload = build_payload(settings=settings, packages=packages, environment=ctx.environment)
    logger.debug("Built payload with %d settings and %d extensions", len(payload.settings), len(payload.extensions))
    return payload


def _choose_direction(ctx: SyncContext) -> Choice | None:
    label = ctx.editor_label
    return ctx.prompt.choose(
        f"Syncing {label} Settings. Choose sync direction",
        [
            Choice(PULL.label, f"Override {label} settings with GitHub version"),
            Choice(PUSH.label, f"Override GitHub version with {label} settings"),
        ],
    )


def _confirm_pull(ctx: SyncContext, payload: SyncPayload) -> bool:
    picked = ctx.prompt.choose(
        "Confirm Synchronization",
        [
            Choice(PROCEED.label, f"{len(payload.extensions)} extensions and settings will be synchronized"),
            CANCEL,
        ],
    )
    return picked is not None and picked.label == PROCEED.label


def pull(ctx: SyncContext, handle: str) -> SyncResult:
    payload = ctx.remote.fetch(handle)
    if not _confirm_pull(ctx, payload):
        logger.info("Pull from gist %s cancelled at confirmation", handle)
        return SyncResult(SyncOutcome.CANCELLED, handle=handle, payload=payload)

    write_config(ctx.settings_path, payload.settings)
    ctx.prompt.info("Settings applied successfully! Restart required for some changes.")

    desired = [PackageInfo(id=e.id, version=e.version) for e in payload.extensions]
    report = ctx.installer.install_missing(desired)
    if report.installed_count > 0 or report.no_op:
        ctx.prompt.info(report.summary())
    else:
        ctx.prompt.error(report.summary())
    return SyncResult(SyncOutcome.APPLIED, handle=handle, payload=payload, install_report=report)


def push(ctx: SyncContext, handle: str) -> SyncResult:
    payload = build_local_payload(ctx)
    ctx.remote.update(handle, payload)
    ctx.prompt.info(f"Uploaded {ctx.editor_label} settings and {len(payload.extensions)} extensions to gist {handle}.")
    return SyncResult(SyncOutcome.UPDATED, handle=handle, payload=payload)


def initialize(ctx: SyncContext) -> SyncResult:
    payload = build_local_payload(ctx)
    handle = ctx.remote.create(payload)
    try:
        ctx.state.update(GIST_ID_KEY, handle)
    except EditorSyncError as e:
        raise EditorSyncError(
            f"Created gist {handle} but could not remember it: {e}. Run `editorsync link {handle}` once fixed."
        ) from e
    ctx.prompt.info(f"Created gist {handle} with {len(payload.extensions)} extensions.")
    return SyncResult(SyncOutcome.CREATED, handle=handle, payload=payload)


def sync(ctx: SyncContext) -> SyncResult:
    """
    Run one sync invocation.

    Without a remembered gist, local state is uploaded to a new gist and its id is
    persisted. Otherwise the user picks a direction: pull (confirm, write settings,
    install missing extensions) or push (overwrite the gist with local state).
    """
    handle = ctx.state.get(GIST_ID_KEY)
    if not handle:
        return initialize(ctx)

    choice = _choose_direction(ctx)
    if choice is None:
        return SyncResult(SyncOutcome.CANCELLED, handle=handle)
    if choice.label == PULL.label:
        return pull(ctx, handle)
    return push(ctx, handle)


def link_remote(ctx: SyncContext, handle: str) -> SyncPayload:
    payload = ctx.remote.fetch(handle)
    ctx.state.update(GIST_ID_KEY, handle)
    return payload


def validate_token(text: str) -> str | None:
    if text and len(text) >= MIN_TOKEN_LENGTH:
        return None
    return f"Token should be at least {MIN_TOKEN_LENGTH} characters long"


def configure_credential(
    prompt: UserPrompt,
    secrets: SecretStore,
    verify: Callable[[str], str],
) -> str | None:
    """Ask for a token, store it, then verify it. Returns the account login, or None if nothing was stored."""
    token = prompt.secret("Enter your GitHub Personal Access Token", validate_token)
    if token is None or validate_token(token) is not None:
        return None

    secrets.store(TOKEN_KEY, token)
    try:
        login = verify(token)
    except RemoteAuthError as e:
        raise RemoteAuthError(f"Failed to verify GitHub token: {e}") from e
    prompt.info("GitHub configuration saved and verified!")
    return login
