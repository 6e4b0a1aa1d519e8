"""Tests for argument parsing and configuration."""

import pytest

from kubelog import cli
from kubelog.exceptions import ConfigurationError


def test_defaults(monkeypatch):
    for var in ('KUBELOG_HOST', 'KUBELOG_PORT', 'KUBELOG_TAIL_LINES', 'KUBELOG_LOG_LEVEL', 'KUBELOG_UVICORN_LEVEL'):
        monkeypatch.delenv(var, raising=False)
    config = cli.build_config(cli.build_parser().parse_args(['serve']))
    assert config.host == 'localhost'
    assert config.port == 8080
    assert config.tail_lines == 100
    assert config.log_level == 'INFO'
    assert config.uvicorn_log_level == 'info'
    assert config.kubeconfig is None and config.context is None


def test_environment_defaults(monkeypatch):
    monkeypatch.setenv('KUBELOG_PORT', '9090')
    monkeypatch.setenv('KUBELOG_TAIL_LINES', '500')
    config = cli.build_config(cli.build_parser().parse_args(['serve']))
    assert config.port == 9090
    assert config.tail_lines == 500


def test_flags_override_environment(monkeypatch):
    monkeypatch.setenv('KUBELOG_PORT', '9090')
    args = cli.build_parser().parse_args([
        'serve', '--port', '7000', '--context', 'prod', '--kubeconfig', '/tmp/kc', '--log-level', 'debug'])
    config = cli.build_config(args)
    assert config.port == 7000
    assert config.context == 'prod'
    assert config.kubeconfig == '/tmp/kc'
    assert config.log_level == 'DEBUG'


@pytest.mark.parametrize("flags", [['--port', 'http'], ['--port', '0'], ['--tail-lines', '0'], ['--log-level', 'loud']])
def test_invalid_configuration(flags):
    with pytest.raises(ConfigurationError):
        cli.build_config(cli.build_parser().parse_args(['serve'] + flags))


def test_main_exits_on_bad_config(capsys):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(['serve', '--port', 'nope'])
    assert exc_info.value.code == 2
    assert 'Configuration error' in capsys.readouterr().err


def test_main_runs_server(monkeypatch):
    seen = []

    async def fake_run_server(config):
        seen.append(config)

    monkeypatch.setattr(cli, 'run_server', fake_run_server)
    monkeypatch.setattr(cli, 'configure_logging', lambda level: None)
    cli.main(['serve', '--port', '8181'])
    assert seen[0].port == 8181


def test_main_reports_server_error(monkeypatch, capsys):
    async def failing_run_server(config):
        raise OSError("address already in use")

    monkeypatch.setattr(cli, 'run_server', failing_run_server)
    monkeypatch.setattr(cli, 'configure_logging', lambda level: None)
    with pytest.raises(SystemExit) as exc_info:
        cli.main(['serve'])
    assert exc_info.value.code == 1
    assert 'address already in use' in capsys.readouterr().err
