import io
import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from editorsync.cli import _merge_cfg, build_parser, main
from editorsync.config import GIST_ID_KEY, TOKEN_KEY, Config, JsonFileState
from editorsync.errors import RemoteNotFoundError

TOKEN = "ghp_" + "x" * 36


class FakeStore:
    def __init__(self, values: dict[str, str] | None = None) -> None:
        self.values = dict(values or {})

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def update(self, key: str, value: str | None) -> None:
        if value is None:
            self.values.pop(key, None)
        else:
            self.values[key] = value

    def store(self, key: str, value: str) -> None:
        self.values[key] = value


class TestParser(unittest.TestCase):
    def test_runtime_overrides_before_and_after_subcommand(self) -> None:
        before = build_parser().parse_args(["--editor-cli", "windsurf", "sync"])
        after = build_parser().parse_args(["sync", "--editor-cli", "windsurf", "--push"])
        self.assertEqual(_merge_cfg(Config(), before).editor_cli, "windsurf")
        self.assertEqual(_merge_cfg(Config(), after).editor_cli, "windsurf")
        self.assertTrue(after.push)

    def test_pull_and_push_are_exclusive(self) -> None:
        with patch("sys.stderr", new=io.StringIO()):
            with self.assertRaises(SystemExit):
                build_parser().parse_args(["sync", "--pull", "--push"])

    def test_merge_cfg_env_overrides_file_and_flag_overrides_env(self) -> None:
        base = Config(timeout_s=10.0, settle_delay_s=2.0)
        with patch.dict(os.environ, {"EDITORSYNC_TIMEOUT_S": "20", "EDITORSYNC_API_URL": "https://ghe.example.com/api/v3"}):
            cfg = _merge_cfg(base, build_parser().parse_args(["status"]))
            self.assertEqual(cfg.timeout_s, 20.0)
            self.assertEqual(cfg.api_url, "https://ghe.example.com/api/v3")
            cfg = _merge_cfg(base, build_parser().parse_args(["sync", "--timeout-s", "5", "--settle-delay-s", "0"]))
            self.assertEqual(cfg.timeout_s, 5.0)
            self.assertEqual(cfg.settle_delay_s, 0.0)


class TestSyncCommand(unittest.TestCase):
    def test_sync_without_token_fails_with_hint(self) -> None:
        with (
            patch("editorsync.cli.load_config", return_value=Config()),
            patch("editorsync.cli.default_secrets", return_value=FakeStore()),
            patch("sys.stderr", new=io.StringIO()) as stderr,
        ):
            rc = main(["sync"])
        self.assertEqual(rc, 1)
        self.assertIn("editorsync configure", stderr.getvalue())

    def test_sync_push_updates_remembered_gist(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            settings_path = Path(td) / "settings.json"
            settings_path.write_text('{"editor.tabSize": 4}', encoding="utf-8")
            with (
                patch("editorsync.cli.load_config", return_value=Config()),
                patch("editorsync.cli.default_secrets", return_value=FakeStore({TOKEN_KEY: TOKEN})),
                patch("editorsync.cli.default_state", return_value=FakeStore({GIST_ID_KEY: "g1"})),
                patch("editorsync.cli.EditorCliEnvironment") as env_cls,
                patch("editorsync.cli.GistClient") as client_cls,
                patch("sys.stdout", new=io.StringIO()),
            ):
                env_cls.return_value.list_installed_packages.return_value = []
                rc = main(["sync", "--push", "--settings-path", str(settings_path), "--editor-cli", "code"])

        self.assertEqual(rc, 0)
        self.assertEqual(client_cls.call_args.kwargs["token"], TOKEN)
        client = client_cls.return_value
        handle, payload = client.update.call_args.args
        self.assertEqual(handle, "g1")
        self.assertEqual(payload.settings, {"editor.tabSize": 4})
        client.create.assert_not_called()
        client.fetch.assert_not_called()
        client.close.assert_called_once()

    def test_sync_errors_are_reported(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with (
                patch("editorsync.cli.load_config", return_value=Config()),
                patch("editorsync.cli.default_secrets", return_value=FakeStore({TOKEN_KEY: TOKEN})),
                patch("editorsync.cli.default_state", return_value=FakeStore({GIST_ID_KEY: "g1"})),
                patch("editorsync.cli.EditorCliEnvironment"),
                patch("editorsync.cli.GistClient") as client_cls,
                patch("sys.stderr", new=io.StringIO()) as stderr,
            ):
                client_cls.return_value.fetch.side_effect = RemoteNotFoundError("Not found: GET /gists/g1.")
                rc = main(["sync", "--pull", "--settings-path", str(Path(td) / "settings.json")])

        self.assertEqual(rc, 1)
        self.assertIn("error: Sync failed: Not found", stderr.getvalue())
        client_cls.return_value.close.assert_called_once()

    def test_created_gist_that_cannot_be_remembered_is_reported(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            blocker = Path(td) / "afile"
            blocker.write_text("not a directory", encoding="utf-8")
            with (
                patch("editorsync.cli.load_config", return_value=Config()),
                patch("editorsync.cli.default_secrets", return_value=FakeStore({TOKEN_KEY: TOKEN})),
                patch("editorsync.cli.default_state", return_value=JsonFileState(blocker / "state.json")),
                patch("editorsync.cli.EditorCliEnvironment") as env_cls,
                patch("editorsync.cli.GistClient") as client_cls,
                patch("sys.stdout", new=io.StringIO()),
                patch("sys.stderr", new=io.StringIO()) as stderr,
            ):
                env_cls.return_value.list_installed_packages.return_value = []
                client_cls.return_value.create.return_value = "gist-1"
                rc = main(["sync", "--settings-path", str(Path(td) / "settings.json"), "--editor-cli", "code"])

        self.assertEqual(rc, 1)
        self.assertIn("error: Sync failed: Created gist gist-1", stderr.getvalue())
        client_cls.return_value.create.assert_called_once()
        client_cls.return_value.close.assert_called_once()


class TestConfigureCommand(unittest.TestCase):
    def test_short_token_from_stdin_is_not_saved(self) -> None:
        secrets = FakeStore()
        with (
            patch("editorsync.cli.load_config", return_value=Config()),
            patch("editorsync.cli.default_secrets", return_value=secrets),
            patch("sys.stdin", new=io.StringIO("ghp_short\n")),
            patch("sys.stderr", new=io.StringIO()) as stderr,
        ):
            rc = main(["configure", "--token-stdin"])
        self.assertEqual(rc, 1)
        self.assertEqual(secrets.values, {})
        self.assertIn("at least 40 characters", stderr.getvalue())

    def test_valid_token_is_saved_and_verified(self) -> None:
        secrets = FakeStore()
        with (
            patch("editorsync.cli.load_config", return_value=Config()),
            patch("editorsync.cli.default_secrets", return_value=secrets),
            patch("editorsync.cli.GistClient") as client_cls,
            patch("sys.stdin", new=io.StringIO(TOKEN + "\n")),
            patch("sys.stdout", new=io.StringIO()) as stdout,
        ):
            client_cls.return_value.__enter__.return_value.verify_credential.return_value = "octocat"
            rc = main(["configure", "--token-stdin"])
        self.assertEqual(rc, 0)
        self.assertEqual(secrets.get(TOKEN_KEY), TOKEN)
        self.assertIn("Authenticated as octocat", stdout.getvalue())
        self.assertNotIn(TOKEN, stdout.getvalue())


class TestStatusAndConfig(unittest.TestCase):
    def test_status_json_reports_token_presence_only(self) -> None:
        with (
            patch("editorsync.cli.load_config", return_value=Config(settings_path="/tmp/settings.json", editor_cli="code")),
            patch("editorsync.cli.default_secrets", return_value=FakeStore({TOKEN_KEY: TOKEN})),
            patch("editorsync.cli.default_state", return_value=FakeStore({GIST_ID_KEY: "g1"})),
            patch("sys.stdout", new=io.StringIO()) as stdout,
        ):
            rc = main(["status", "--json"])
        self.assertEqual(rc, 0)
        data = json.loads(stdout.getvalue())
        self.assertEqual(data["gist_id"], "g1")
        self.assertEqual(data["settings_path"], "/tmp/settings.json")
        self.assertIs(data["token_configured"], True)
        self.assertNotIn("token", data)
        self.assertNotIn(TOKEN, stdout.getvalue())

    def test_config_set_then_show(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg_path = Path(td) / "config.json"
            with patch.dict(os.environ, {"EDITORSYNC_CONFIG_PATH": str(cfg_path)}):
                with patch("sys.stdout", new=io.StringIO()):
                    rc = main(["config", "set", "--editor-cli", "windsurf", "--alt-editor", "true", "--settle-delay-s", "2"])
                self.assertEqual(rc, 0)
                with patch("sys.stdout", new=io.StringIO()) as stdout:
                    main(["config", "show"])
        shown = json.loads(stdout.getvalue())
        self.assertEqual(shown["editor_cli"], "windsurf")
        self.assertTrue(shown["alt_editor"])
        self.assertEqual(shown["settle_delay_s"], 2.0)
