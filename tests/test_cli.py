"""Tests for the command line entry point."""
import argparse
import os
import subprocess
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from pulse import cli


class TestParseListen:
    def test_host_and_port(self):
        assert cli.parse_listen("127.0.0.1:8080") == ("127.0.0.1", 8080)

    def test_port_only(self):
        assert cli.parse_listen(":17657") == ("0.0.0.0", 17657)

    @pytest.mark.parametrize("value", ["localhost", "localhost:http", ""])
    def test_invalid(self, value):
        with pytest.raises(argparse.ArgumentTypeError):
            cli.parse_listen(value)


def test_command_is_required():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_agent_without_endpoints(monkeypatch):
    from pulse.settings import settings

    monkeypatch.setattr(settings, "endpoints", [])

    with patch("pulse.settings.setup_logging"):
        assert cli.main(["agent"]) == 2


def test_presenter_uses_listen_address():
    with patch("pulse.settings.setup_logging"), patch("uvicorn.run") as run:
        assert cli.main(["presenter", "--listen", "127.0.0.1:9000"]) == 0

    args, kwargs = run.call_args
    assert args == ("pulse.main:app",)
    assert kwargs["host"] == "127.0.0.1"
    assert kwargs["port"] == 9000


def run_cli(*args, env=None):
    # Settings load on first import, each configuration needs a fresh process
    root = Path(__file__).resolve().parent.parent
    return subprocess.run(
        [sys.executable, "-m", "pulse.cli", *args],
        cwd=root,
        env={**os.environ, **(env or {})},
        capture_output=True,
        text=True,
        timeout=60,
    )


@pytest.mark.parametrize(
    "content",
    [
        "endpoints: [http://a\n",
        "log_level: info: debug\n",
        "endpoints:\n  - ftp://a\n",
        "interval_ms: -1\n",
    ],
)
def test_invalid_config_file_exits_with_status_2(tmp_path, content):
    config = tmp_path / "pulse.yaml"
    config.write_text(content)

    result = run_cli("--config", str(config), "agent")

    assert result.returncode == 2
    assert "Invalid configuration" in result.stderr
    assert "Traceback" not in result.stderr


def test_config_flag_sets_the_variable_read_by_settings(tmp_path):
    from pulse import settings as settings_module

    assert cli.CONFIG_FILE_ENV == settings_module.CONFIG_FILE_ENV

    config = tmp_path / "pulse.yaml"
    config.write_text("interval_ms: 0\n")

    result = run_cli("--config", str(config), "agent", env={cli.CONFIG_FILE_ENV: ""})

    assert result.returncode == 2
    assert "interval_ms" in result.stderr
