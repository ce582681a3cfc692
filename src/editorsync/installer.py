from __future__ import annotations

import logging
import shutil
import subprocess
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Protocol

from .config import DEFAULT_SETTLE_DELAY_S
from .errors import EditorSyncError, InstallVerificationFailure
from .local_state import LocalEnvironment, PackageInfo

logger = logging.getLogger(__name__)


class PackageRuntime(Protocol):
    def install(self, package_id: str) -> None:
        """Trigger installation. Raises InstallVerificationFailure when the trigger itself fails."""
        ...

    def list_installed(self) -> list[PackageInfo]:
        ...


@dataclass(frozen=True)
class InstallReport:
    installed_count: int
    failed_ids: tuple[str, ...]
    failures: tuple[InstallVerificationFailure, ...] = ()
    already_present: tuple[str, ...] = ()

    @property
    def no_op(self) -> bool:
        """Nothing was attempted because every desired package was already installed."""
        return self.installed_count == 0 and not self.failed_ids

    def summary(self) -> str:
        if self.no_op:
            return "All extensions are already installed!"
        if self.installed_count > 0:
            msg = f"Installed {self.installed_count} extensions."
            if self.failed_ids:
                msg += f" Failed to install: {', '.join(self.failed_ids)}"
            return msg + " Restart required to activate."
        return f"Failed to install any extensions. Failed items: {', '.join(self.failed_ids)}"


def _id_key(package_id: str) -> str:
    # Extension ids are case-insensitive ("ms-python.Python" == "ms-python.python").
    return package_id.strip().lower()


def _installed_keys(runtime: PackageRuntime) -> set[str]:
    return {_id_key(p.id) for p in runtime.list_installed()}


class PackageInstaller:
    def __init__(
        self,
        runtime: PackageRuntime,
        *,
        settle_delay_s: float = DEFAULT_SETTLE_DELAY_S,
        sleep: Callable[[float], None] = time.sleep,
        on_progress: Callable[[str], None] | None = None,
    ) -> None:
        self.runtime = runtime
        self.settle_delay_s = settle_delay_s
        self._sleep = sleep
        self._on_progress = on_progress

    def _progress(self, message: str) -> None:
        logger.info("%s", message)
        if self._on_progress is not None:
            self._on_progress(message)

    def install_missing(self, desired: Iterable[PackageInfo]) -> InstallReport:
        desired_list = list(desired)
        installed = _installed_keys(self.runtime)

        to_install: list[PackageInfo] = []
        present: list[str] = []
        queued: set[str] = set()
        for pkg in desired_list:
            key = _id_key(pkg.id)
            if not key or key in queued:
                continue
            queued.add(key)
            if key in installed:
                present.append(pkg.id)
            else:
                to_install.append(pkg)

        logger.debug("Installed extensions: %s", sorted(installed))
        logger.debug("Desired extensions: %s", sorted(_id_key(p.id) for p in desired_list))
        logger.debug("Extensions to install: %s", [p.id for p in to_install])

        if not to_install:
            return InstallReport(installed_count=0, failed_ids=(), already_present=tuple(present))

        total = len(to_install)
        installed_count = 0
        failures: list[InstallVerificationFailure] = []
        for current, pkg in enumerate(to_install, start=1):
            self._progress(f"Installing {pkg.id} ({current}/{total})")
            try:
                self.runtime.install(pkg.id)
            except InstallVerificationFailure as e:
                failures.append(e)
                logger.warning("Failed to install %s: %s", pkg.id, e.reason)
                continue

            self._sleep(self.settle_delay_s)

            try:
                verified = _id_key(pkg.id) in _installed_keys(self.runtime)
            except EditorSyncError as e:
                failures.append(InstallVerificationFailure(pkg.id, f"could not list installed extensions: {e}"))
                logger.warning("Failed to verify installation of %s: %s", pkg.id, e)
                continue

            if verified:
                installed_count += 1
                self._progress(f"Installed: {pkg.id}")
            else:
                failures.append(InstallVerificationFailure(pkg.id, "not listed as installed after install"))
                logger.warning("Failed to verify installation of %s", pkg.id)

        return InstallReport(
            installed_count=installed_count,
            failed_ids=tuple(f.package_id for f in failures),
            failures=tuple(failures),
            already_present=tuple(present),
        )


class EditorCliRuntime:
    """Installs extensions with `<editor> --install-extension <id>`."""

    def __init__(self, editor_cli: str, *, environment: LocalEnvironment) -> None:
        self.editor_cli = editor_cli
        self._environment = environment

    def list_installed(self) -> list[PackageInfo]:
        return self._environment.list_installed_packages()

    def install(self, package_id: str) -> None:
        cli = shutil.which(self.editor_cli)
        if cli is None:
            raise InstallVerificationFailure(package_id, f"editor command {self.editor_cli!r} not found on PATH")
        try:
            result = subprocess.run(
                [cli, "--install-extension", package_id],
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            raise InstallVerificationFailure(package_id, str(e)) from e
        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip() or f"exit code {result.returncode}"
            raise InstallVerificationFailure(package_id, detail)
