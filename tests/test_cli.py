import json
from unittest.mock import MagicMock

import pytest

from speechbatch import cli
from speechbatch.settings import Settings

from .conftest import OPENAI_TEST_KEY


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", MagicMock())


@pytest.fixture
def env_settings(monkeypatch):
    """Re-read the environment after a test has patched it"""

    def apply():
        monkeypatch.setattr("speechbatch.core.config.default_settings", Settings())

    return apply


class TestParser:

    def test_run_arguments(self):
        args = cli.build_parser().parse_args([
            "run", "batch.csv", "--provider", "openai", "--voice", "nova",
            "--format", "wav", "--concurrency", "3", "--deadline", "5", "--json",
        ])

        assert args.command == "run"
        assert args.audio_format == "wav"
        assert args.concurrency == 3
        assert args.deadline == 5.0
        assert args.json is True

    def test_provider_is_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["voices"])


class TestValidateCommand:

    def test_valid_configuration(self, monkeypatch, env_settings, tmp_path, capsys):
        monkeypatch.setenv("OPENAI_API_KEY", OPENAI_TEST_KEY)
        env_settings()

        code = cli.main(["validate", "--provider", "openai", "--voice", "alloy", "--output-dir", str(tmp_path)])

        assert code == cli.EXIT_OK
        assert "is valid" in capsys.readouterr().out

    def test_missing_credentials(self, monkeypatch, env_settings, tmp_path, capsys):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        env_settings()

        code = cli.main(["validate", "--provider", "openai", "--output-dir", str(tmp_path)])

        assert code == cli.EXIT_USAGE
        assert "ERROR" in capsys.readouterr().out

    def test_unknown_provider(self, capsys):
        assert cli.main(["validate", "--provider", "festival"]) == cli.EXIT_USAGE
        assert "festival" in capsys.readouterr().err

    def test_timeout_above_limit(self, capsys):
        assert cli.main(["validate", "--provider", "openai", "--timeout", "90"]) == cli.EXIT_USAGE


class TestRunCommand:

    def test_run_writes_artifacts(self, monkeypatch, env_settings, fake_registry, tmp_path, capsys):
        monkeypatch.setenv("OPENAI_API_KEY", OPENAI_TEST_KEY)
        env_settings()
        monkeypatch.setattr("speechbatch.batch.scheduler.provider_registry", fake_registry)
        batch_file = tmp_path / "batch.csv"
        batch_file.write_text("SCRIPT,FILENAME\nHello,greeting\nBye,farewell\n", encoding="utf-8")
        out = tmp_path / "out"

        code = cli.main([
            "run", str(batch_file), "--provider", "openai", "--voice", "alloy",
            "--output-dir", str(out), "--json",
        ])

        assert code == cli.EXIT_OK
        summary = json.loads(capsys.readouterr().out)
        assert summary["ratio"] == "2/2"
        assert sorted(p.name for p in out.iterdir()) == [
            "farewell_openai_alloy.mp3", "greeting_openai_alloy.mp3"
        ]

    def test_bad_batch_file(self, tmp_path, capsys):
        batch_file = tmp_path / "batch.csv"
        batch_file.write_text("SCRIPT,FILENAME\n,missing\n", encoding="utf-8")

        code = cli.main(["run", str(batch_file), "--provider", "openai"])

        assert code == cli.EXIT_USAGE
        assert "SCRIPT is empty" in capsys.readouterr().err
