from __future__ import annotations

import io
import tempfile
from pathlib import Path
import unittest
from unittest.mock import patch

from startup_radar.cli import main
from startup_radar.config import AppConfig, OpenAIConfig, RedditConfig
from startup_radar.errors import ConfigError
from startup_radar.models import RunResult


def build_config(base_dir: Path) -> AppConfig:
    return AppConfig(
        subreddits=["saas", "startups"],
        post_limit=5,
        time_filter="day",
        reddit=RedditConfig("client", "secret", "test-agent"),
        openai=OpenAIConfig("sk-test", "gpt-4.1-nano", "https://api.openai.com/v1", 30),
        langsmith=None,
        db_path=base_dir / "radar.db",
    )


def run_result(status: str = "completed", exit_code: int = 0) -> RunResult:
    return RunResult(
        status=status,
        fetched=2,
        analyzed=2,
        saved=1,
        skipped=1,
        errors=0,
        warnings=0,
        started_utc=1_760_000_000,
        finished_utc=1_760_000_004,
        duration_seconds=4.2,
        exit_code=exit_code,
    )


class CliTests(unittest.TestCase):
    def test_missing_environment_is_reported_by_name(self) -> None:
        error = ConfigError(["OPENAI_API_KEY", "REDDIT_CLIENT_SECRET"])
        with patch("startup_radar.cli.load_config", side_effect=error):
            with patch("startup_radar.cli.run_once") as run_mock:
                stdout = io.StringIO()
                stderr = io.StringIO()
                with patch("sys.stdout", new=stdout), patch("sys.stderr", new=stderr):
                    rc = main(["run"])

        self.assertEqual(rc, 1)
        run_mock.assert_not_called()
        self.assertIn("OPENAI_API_KEY", stderr.getvalue())
        self.assertIn("REDDIT_CLIENT_SECRET", stderr.getvalue())
        self.assertEqual(stdout.getvalue(), "")

    def test_run_applies_overrides_and_returns_exit_code(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config = build_config(Path(tmpdir))
            with patch("startup_radar.cli.load_config", return_value=config):
                with patch(
                    "startup_radar.cli.run_once", return_value=run_result("failed", 1)
                ) as run_mock:
                    stdout = io.StringIO()
                    with patch("sys.stdout", new=stdout):
                        rc = main(["run", "--subreddits", "startupideas,saas", "--limit", "1"])

        self.assertEqual(rc, 1)
        used = run_mock.call_args.args[0]
        self.assertEqual(used.subreddits, ["startupideas", "saas"])
        self.assertEqual(used.post_limit, 1)
        self.assertIn("Run failed", stdout.getvalue())

    def test_default_command_is_run(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config = build_config(Path(tmpdir))
            with patch("startup_radar.cli.load_config", return_value=config):
                with patch("startup_radar.cli.run_once", return_value=run_result()) as run_mock:
                    with patch("sys.stdout", new=io.StringIO()):
                        rc = main([])

        self.assertEqual(rc, 0)
        self.assertEqual(run_mock.call_args.args[0].subreddits, ["saas", "startups"])

    def test_prompt_command_reports_fallback(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with patch("startup_radar.cli.load_config", return_value=build_config(Path(tmpdir))):
                stdout = io.StringIO()
                with patch("sys.stdout", new=stdout):
                    rc = main(["prompt"])

        self.assertEqual(rc, 0)
        self.assertIn("Version: fallback", stdout.getvalue())

    def test_digest_and_runs_on_empty_database(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            output = Path(tmpdir) / "digest.md"
            with patch("startup_radar.cli.load_config", return_value=build_config(Path(tmpdir))):
                stdout = io.StringIO()
                with patch("sys.stdout", new=stdout):
                    digest_rc = main(["digest", "--output", str(output)])
                    runs_rc = main(["runs"])
                self.assertTrue(output.exists())
                self.assertIn("No analyzed posts yet.", output.read_text(encoding="utf-8"))

        self.assertEqual((digest_rc, runs_rc), (0, 0))
        self.assertIn("No runs recorded yet.", stdout.getvalue())


if __name__ == "__main__":
    unittest.main()
