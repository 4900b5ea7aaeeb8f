"""Tests for the click command-line entry point."""

from click.testing import CliRunner

from waha_relay import __version__
from waha_relay import main
from waha_relay.main import cli


def test_version():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_resources_lists_templates(tmp_path, monkeypatch):
    monkeypatch.setenv("WAHA_RELAY_CONFIG_DIR", str(tmp_path))
    monkeypatch.delenv("WAHA_RELAY_CONFIG", raising=False)
    logging_calls = []
    monkeypatch.setattr(
        main, "setup_logging", lambda **kwargs: logging_calls.append(kwargs)
    )

    result = CliRunner().invoke(cli, ["resources"])

    assert result.exit_code == 0
    lines = result.stdout.strip().splitlines()
    assert lines == [
        "waha://chats/overview\tWhatsApp Chats Overview",
        "waha://chat/{chatId}/messages\tWhatsApp Chat Messages",
    ]
    assert logging_calls == [{"level": "INFO", "json_output": False}]
