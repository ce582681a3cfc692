from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import textwrap
from dataclasses import asdict
from pathlib import Path
from typing import Any

from ._version import __version__
from .client import GistClient
from .config import (
    GIST_ID_KEY,
    TOKEN_KEY,
    Config,
    config_path,
    default_secrets,
    default_state,
    load_config,
    save_config,
)
from .errors import EditorSyncError
from .installer import EditorCliRuntime, PackageInstaller
from .local_state import (
    EditorCliEnvironment,
    Platform,
    default_editor_cli,
    detect_environment,
    is_alt_editor,
    resolve_config_path,
)
from .prompts import TerminalPrompt
from .reconciler import PROCEED, PULL, PUSH, SyncContext, SyncOutcome, configure_credential, link_remote, sync

logger = logging.getLogger(__name__)


def _merge_cfg(base: Config, args: argparse.Namespace) -> Config:
    # Env overrides config; CLI overrides both.
    api_url = getattr(args, "api_url", None) or os.getenv("EDITORSYNC_API_URL") or base.api_url
    editor_cli = getattr(args, "editor_cli", None) or os.getenv("EDITORSYNC_EDITOR_CLI") or base.editor_cli
    settings_path = getattr(args, "settings_path", None) or base.settings_path
    alt_editor = bool(getattr(args, "alt_editor", False)) or base.alt_editor

    timeout_s = getattr(args, "timeout_s", None) or os.getenv("EDITORSYNC_TIMEOUT_S") or base.timeout_s
    try:
        timeout_s_f = float(timeout_s)
    except (TypeError, ValueError):
        timeout_s_f = base.timeout_s

    settle_delay_s = getattr(args, "settle_delay_s", None)
    if settle_delay_s is None:
        settle_delay_s = base.settle_delay_s

    return Config(
        api_url=api_url,
        timeout_s=timeout_s_f,
        editor_cli=editor_cli,
        alt_editor=alt_editor,
        settings_path=settings_path,
        settle_delay_s=float(settle_delay_s),
    )


def _settings_path(cfg: Config, *, platform: Platform, alt_editor: bool) -> Path:
    if cfg.settings_path:
        return Path(cfg.settings_path).expanduser()
    return resolve_config_path(platform=platform, alt_editor=alt_editor, appdata=os.getenv("APPDATA"))


def _editor_cli(cfg: Config) -> str:
    if cfg.editor_cli:
        return cfg.editor_cli
    return default_editor_cli(alt_editor=is_alt_editor(forced=cfg.alt_editor))


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="editorsync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="Sync VS Code / Windsurf settings and extensions through a private GitHub gist.",
        epilog=textwrap.dedent(
            """\
            Environment variables:
              EDITORSYNC_CONFIG_PATH, EDITORSYNC_API_URL, EDITORSYNC_TOKEN,
              EDITORSYNC_TIMEOUT_S, EDITORSYNC_EDITOR_CLI, WINDSURF_APP
            """
        ),
    )

    def _add_runtime_overrides(parser: argparse.ArgumentParser) -> None:
        # Available both before and after subcommands, e.g.:
        #   editorsync --alt-editor sync
        #   editorsync sync --alt-editor
        parser.add_argument("--api-url", default=argparse.SUPPRESS, help="GitHub API base URL")
        parser.add_argument("--timeout-s", type=float, default=argparse.SUPPRESS, help="HTTP timeout in seconds")
        parser.add_argument("--editor-cli", default=argparse.SUPPRESS, help='Editor launcher, e.g. "code" or "windsurf"')
        parser.add_argument(
            "--alt-editor", action="store_true", default=argparse.SUPPRESS, help="Use the Windsurf settings folder"
        )
        parser.add_argument("--settings-path", default=argparse.SUPPRESS, help="Explicit settings.json path")
        parser.add_argument("-v", "--verbose", action="store_true", default=argparse.SUPPRESS, help="Debug logging")

    _add_runtime_overrides(p)
    p.add_argument("--version", action="version", version=f"editorsync {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # sync
    sync_p = sub.add_parser("sync", help="Sync settings and extensions with the gist")
    _add_runtime_overrides(sync_p)
    direction = sync_p.add_mutually_exclusive_group()
    direction.add_argument("--pull", action="store_true", help="Download from GitHub without asking for direction")
    direction.add_argument("--push", action="store_true", help="Upload to GitHub without asking for direction")
    sync_p.add_argument("--yes", "-y", action="store_true", help="Skip the pull confirmation")
    sync_p.add_argument(
        "--settle-delay-s",
        type=float,
        default=None,
        help="Seconds to wait after each extension install before verifying it",
    )

    # configure
    configure_p = sub.add_parser("configure", help="Store and verify the GitHub token")
    _add_runtime_overrides(configure_p)
    configure_p.add_argument("--token-stdin", action="store_true", help="Read the token from stdin instead of prompting")

    # link
    link_p = sub.add_parser("link", help="Use an existing gist (e.g. created on another machine)")
    _add_runtime_overrides(link_p)
    link_p.add_argument("gist_id", help="Gist id")

    # status
    status_p = sub.add_parser("status", help="Show environment, settings path and sync state")
    _add_runtime_overrides(status_p)
    status_p.add_argument("--json", action="store_true", help="Output JSON")

    # config
    cfg = sub.add_parser("config", help="Manage local config")
    cfg_sub = cfg.add_subparsers(dest="subcmd", required=True)
    cfg_sub.add_parser("path", help="Print config path")
    cfg_sub.add_parser("show", help="Show config")

    cfg_set = cfg_sub.add_parser("set", help="Set config fields")
    cfg_set.add_argument("--api-url")
    cfg_set.add_argument("--timeout-s", type=float)
    cfg_set.add_argument("--editor-cli")
    cfg_set.add_argument("--alt-editor", choices=["true", "false"])
    cfg_set.add_argument("--settings-path")
    cfg_set.add_argument("--settle-delay-s", type=float)

    return p


def _make_client(cfg: Config) -> GistClient:
    token = default_secrets().get(TOKEN_KEY)
    if not token:
        raise EditorSyncError("Please configure GitHub token first: run `editorsync configure`.")
    return GistClient(token=token, api_url=cfg.api_url, timeout_s=cfg.timeout_s)


def _make_context(cfg: Config, client: GistClient, prompt: TerminalPrompt) -> SyncContext:
    editor_cli = _editor_cli(cfg)
    env = detect_environment(editor_cli=editor_cli, alt_editor=cfg.alt_editor)
    local = EditorCliEnvironment(editor_cli)
    installer = PackageInstaller(
        EditorCliRuntime(editor_cli, environment=local),
        settle_delay_s=cfg.settle_delay_s,
        on_progress=prompt.info,
    )
    return SyncContext(
        remote=client,
        state=default_state(),
        local=local,
        installer=installer,
        prompt=prompt,
        settings_path=_settings_path(cfg, platform=env.platform, alt_editor=env.is_alt_editor),
        environment=env,
    )


def cmd_sync(args: argparse.Namespace) -> int:
    cfg = _merge_cfg(load_config(), args)
    preset: list[str] = []
    if args.pull:
        preset.append(PULL.label)
    if args.push:
        preset.append(PUSH.label)
    if args.yes:
        preset.append(PROCEED.label)
    prompt = TerminalPrompt(preset=preset)

    client = _make_client(cfg)
    try:
        ctx = _make_context(cfg, client, prompt)
        logger.debug("Environment: %s", ctx.environment)
        logger.debug("Settings path: %s", ctx.settings_path)
        result = sync(ctx)
    finally:
        client.close()

    if result.outcome is SyncOutcome.CANCELLED:
        print("Sync cancelled.", file=sys.stderr)
    return 0


def cmd_configure(args: argparse.Namespace) -> int:
    cfg = _merge_cfg(load_config(), args)

    def _read_stdin(_prompt: str) -> str:
        return sys.stdin.readline()

    prompt = TerminalPrompt(read_secret=_read_stdin if args.token_stdin else None)

    def _verify(token: str) -> str:
        with GistClient(token=token, api_url=cfg.api_url, timeout_s=cfg.timeout_s) as client:
            return client.verify_credential()

    login = configure_credential(prompt, default_secrets(), _verify)
    if login is None:
        print("Token not saved.", file=sys.stderr)
        return 1
    if login:
        print(f"Authenticated as {login}")
    return 0


def cmd_link(args: argparse.Namespace) -> int:
    cfg = _merge_cfg(load_config(), args)
    prompt = TerminalPrompt()
    client = _make_client(cfg)
    try:
        ctx = _make_context(cfg, client, prompt)
        payload = link_remote(ctx, args.gist_id.strip())
    finally:
        client.close()
    print(f"Linked gist {args.gist_id.strip()} ({len(payload.extensions)} extensions, saved {payload.timestamp}).")
    return 0


def _status_payload(cfg: Config) -> dict[str, Any]:
    editor_cli = _editor_cli(cfg)
    env = detect_environment(editor_cli=editor_cli, alt_editor=cfg.alt_editor)
    token = default_secrets().get(TOKEN_KEY)
    return {
        "environment": env.to_dict(),
        "editor_cli": editor_cli,
        "settings_path": str(_settings_path(cfg, platform=env.platform, alt_editor=env.is_alt_editor)),
        "gist_id": default_state().get(GIST_ID_KEY),
        "token_configured": bool(token),
        "config_path": str(config_path()),
    }


def cmd_status(args: argparse.Namespace) -> int:
    cfg = _merge_cfg(load_config(), args)
    payload = _status_payload(cfg)
    if args.json:
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 0
    env = payload["environment"]
    print(f"editor: {env['appName']} ({env['platform']}/{env['architecture']})")
    print(f"editor_cli: {payload['editor_cli']}")
    print(f"settings: {payload['settings_path']}")
    print(f"gist: {payload['gist_id'] or 'not created'}")
    print(f"token: {'configured' if payload['token_configured'] else 'not set'}")
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    if args.subcmd == "path":
        print(str(config_path()))
        return 0

    if args.subcmd == "show":
        print(json.dumps(asdict(load_config()), indent=2, sort_keys=True))
        return 0

    if args.subcmd == "set":
        cfg = load_config()
        alt_editor = cfg.alt_editor if args.alt_editor is None else args.alt_editor == "true"
        new_cfg = Config(
            api_url=args.api_url or cfg.api_url,
            timeout_s=args.timeout_s if args.timeout_s is not None else cfg.timeout_s,
            editor_cli=args.editor_cli if args.editor_cli is not None else cfg.editor_cli,
            alt_editor=alt_editor,
            settings_path=args.settings_path if args.settings_path is not None else cfg.settings_path,
            settle_delay_s=args.settle_delay_s if args.settle_delay_s is not None else cfg.settle_delay_s,
        )
        path = save_config(new_cfg)
        print(f"Saved: {path}")
        return 0

    raise AssertionError("unreachable")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if getattr(args, "verbose", False) else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        if args.cmd == "sync":
            return cmd_sync(args)
        if args.cmd == "configure":
            return cmd_configure(args)
        if args.cmd == "link":
            return cmd_link(args)
        if args.cmd == "status":
            return cmd_status(args)
        if args.cmd == "config":
            return cmd_config(args)
        raise AssertionError("unreachable")
    except EditorSyncError as e:
        print(f"error: Sync failed: {e}" if args.cmd == "sync" else f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
