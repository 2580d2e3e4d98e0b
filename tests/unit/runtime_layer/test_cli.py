"""
Unit Tests for the Command Line Interface
"""

import argparse
from unittest.mock import AsyncMock, MagicMock, patch

import orjson
import pytest

from request_relay.__main__ import _parse_body, _parse_header, build_parser, main
from request_relay.core.config.constants import RequestStatus
from request_relay.core.exceptions import BrokerConnectionError, ConfigurationError
from request_relay.models.intent import RequestIntent
from request_relay.models.job import ScheduledJob
from request_relay.models.record import RequestRecord
from tests.test_fixtures import BASE_TIME, RequestFactory


@pytest.fixture
def mock_components():
    components = MagicMock()
    components.bus = AsyncMock()
    components.connection = AsyncMock()
    components.job_store = AsyncMock()
    return components


@pytest.fixture
def cli(settings, mock_components):
    with patch("request_relay.__main__.get_settings", return_value=settings), \
         patch("request_relay.__main__.setup_logging"), \
         patch("request_relay.__main__.Components") as components_cls:
        components_cls.create.return_value = mock_components
        yield mock_components


@pytest.mark.unit
class TestArgumentParsing:
    def test_header_parsing(self):
        assert _parse_header("X-Token: abc:def") == ("X-Token", "abc:def")

    @pytest.mark.parametrize("value", ["no-separator", ": value"])
    def test_bad_header_rejected(self, value):
        with pytest.raises(argparse.ArgumentTypeError):
            _parse_header(value)

    def test_body_parsing(self):
        assert _parse_body('{"a": 1}') == {"a": 1}
        assert _parse_body("plain text") == "plain text"

    def test_submit_arguments(self):
        args = build_parser().parse_args(
            [
                "submit", "--tenant", "acme", "--name", "ping", "--method", "GET",
                "--url", "https://example.com", "--header", "A: 1", "--header", "B: 2",
                "--schedule", "2030-01-01T00:00:00Z",
            ]
        )

        assert args.command == "submit"
        assert args.header == [("A", "1"), ("B", "2")]
        assert args.schedule == "2030-01-01T00:00:00Z"
        assert args.execute_now is False

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


@pytest.mark.unit
class TestMain:
    @pytest.mark.parametrize("service", ["scheduler", "executor", "reconciler"])
    def test_service_commands_delegate_to_runner(self, settings, service):
        with patch("request_relay.__main__.get_settings", return_value=settings), \
             patch("request_relay.__main__.run_service", return_value=0) as run_service:
            assert main([service]) == 0

        run_service.assert_called_once_with(service, settings)

    def test_submit_prints_record(self, cli, capsys):
        intent = RequestIntent.from_message(RequestFactory.intent())
        record = RequestRecord.from_intent(intent, RequestStatus.PENDING, BASE_TIME)
        cli.intake.return_value.submit = AsyncMock(return_value=record)

        code = main(
            ["submit", "--tenant", "acme", "--name", "ping", "--method", "POST",
             "--url", "https://api.example.com/hooks", "--body", '{"hello": "world"}']
        )

        assert code == 0
        printed = orjson.loads(capsys.readouterr().out)
        assert printed["id"] == "r1"
        assert printed["status"] == "pending"
        submit_kwargs = cli.intake.return_value.submit.await_args.kwargs
        assert submit_kwargs["body"] == {"hello": "world"}
        assert submit_kwargs["headers"] == {}
        cli.bus.close.assert_awaited_once()

    def test_submit_broker_unreachable(self, cli, capsys):
        cli.bus.connect.side_effect = BrokerConnectionError("Failed to connect to Redis")

        code = main(["submit", "--tenant", "acme", "--name", "ping", "--method", "GET", "--url", "https://x.io"])

        assert code == 1
        assert "Failed to connect to Redis" in capsys.readouterr().err
        cli.bus.close.assert_awaited_once()

    def test_failed_jobs_listed(self, cli, capsys):
        intent = RequestIntent.from_message(RequestFactory.intent(schedule="2024-01-01T00:05:00Z"))
        job = ScheduledJob.for_intent(intent).model_copy(update={"failed_at": BASE_TIME, "fail_reason": "boom"})
        cli.job_store.list_failed.return_value = [job]

        assert main(["failed-jobs", "--limit", "5"]) == 0

        (listed,) = orjson.loads(capsys.readouterr().out)
        assert listed["job_id"] == job.job_id
        assert listed["fail_reason"] == "boom"
        cli.job_store.list_failed.assert_awaited_once_with(5)
        cli.connection.disconnect.assert_awaited_once()

    def test_invalid_configuration_exits_fatal(self, capsys):
        error = ConfigurationError("Invalid configuration", details={"errors": []})
        with patch("request_relay.__main__.get_settings", side_effect=error), \
             patch("request_relay.__main__.run_service") as run_service:
            assert main(["executor"]) == 1

        run_service.assert_not_called()
        assert "Invalid configuration" in capsys.readouterr().err
