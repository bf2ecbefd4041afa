from __future__ import annotations

from typer.testing import CliRunner

from poller.app.main import app

runner = CliRunner()


def test_send_inmemory_with_count_exits_cleanly(monkeypatch):
    monkeypatch.setenv("SOURCE_BACKEND", "servicebus")

    result = runner.invoke(app, ["send", "--backend", "inmemory", "--count", "2", "--interval", "0"])

    assert result.exit_code == 0, result.output


def test_unknown_backend_exits_non_zero():
    result = runner.invoke(app, ["receive", "--backend", "kafka"])

    assert result.exit_code == 1


def test_process_is_an_alias_of_receive():
    result = runner.invoke(app, ["process", "--help"])

    assert result.exit_code == 0
    assert "--batch-size" in result.output


def test_negative_count_rejected_by_cli():
    result = runner.invoke(app, ["send", "--backend", "inmemory", "--count", "-1"])

    assert result.exit_code == 2
