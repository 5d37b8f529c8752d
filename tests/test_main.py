"""
Tests for the hostel-client command line entry point.
"""

import json
from unittest.mock import patch

import pytest

from hostel_shared.exceptions import AuthRejectedError, TransportError, ErrorCode
from hostel_client import main as cli
from hostel_client.config import ClientConfiguration


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    for env_var in ClientConfiguration.ENV_MAPPINGS:
        monkeypatch.delenv(env_var, raising=False)

    path = tmp_path / "client.conf"
    path.write_text(
        "[server]\n"
        "url = http://127.0.0.1:1/api\n"
        "timeout = 2\n"
        "\n"
        "[storage]\n"
        "backend = memory\n"
        f"cookie_file = {tmp_path / 'cookies.pickle'}\n"
    )
    return path


def test_parse_request_command():
    args = cli.parse_arguments(['--server-url', 'http://hostel:5000/api', 'request', 'POST', '/booking',
                                '--data', '{"roomId": "42"}'])

    assert args.command == 'request'
    assert args.method == 'POST'
    assert args.path == '/booking'
    assert json.loads(args.data) == {'roomId': '42'}
    assert args.server_url == 'http://hostel:5000/api'


def test_command_is_required():
    with pytest.raises(SystemExit):
        cli.parse_arguments([])


def test_status_json_when_logged_out(config_file, capsys):
    exit_code = cli.main(['--config', str(config_file), '-q', 'status', '--json'])

    status = json.loads(capsys.readouterr().out)
    assert exit_code == cli.EXIT_OK
    assert status['authenticated'] is False
    assert status['server_url'] == 'http://127.0.0.1:1/api'


def test_server_url_override(config_file, capsys):
    cli.main(['--config', str(config_file), '--server-url', 'http://10.0.0.9/api', '-q', 'status', '--json'])

    assert json.loads(capsys.readouterr().out)['server_url'] == 'http://10.0.0.9/api'


def test_unreachable_server_exits_with_transport_code(config_file, capsys):
    exit_code = cli.main(['--config', str(config_file), '-q', 'request', 'GET', '/rooms'])

    assert exit_code == cli.EXIT_TRANSPORT
    assert 'Network error' in capsys.readouterr().err


def test_invalid_json_data(config_file):
    assert cli.main(['--config', str(config_file), '-q', 'request', 'POST', '/booking', '--data', '{oops']) == cli.EXIT_USAGE


@pytest.mark.parametrize("error, expected", [
    (AuthRejectedError("Invalid or expired refresh token", status=403, error_code=ErrorCode.AUTH_RENEWAL_FAILED),
     cli.EXIT_AUTH),
    (TransportError("connection refused"), cli.EXIT_TRANSPORT),
])
def test_errors_map_to_exit_codes(config_file, error, expected):
    with patch.object(cli, 'run_command', side_effect=error):
        assert cli.main(['--config', str(config_file), '-q', 'status']) == expected
