import asyncio
import json
import threading

import pytest
from loguru import logger
from typer.testing import CliRunner
from validation_server import ValidationServer
from bagpack_validate_client import cli
from bagpack_validate_client.bagpack_validate_client import BagPackValidateClient
from bagpack_validate_client.errors import JobFailed, MalformedLocator
from bagpack_validate_client.models import ValidationOutcome

LOCATOR = "http://localhost:20375/validate/550e8400-e29b-41d4-a716-446655440000"

runner = CliRunner()


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    logger.remove()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("validate_bagpack:\n  url: http://validator.test:8080\n")
    return path


@pytest.fixture
def scripted():
    return {"outcome": None, "error": None}


@pytest.fixture
def calls(monkeypatch, scripted):
    """Replace the network workflow with a scripted one and record its calls."""
    recorded = []

    async def _validate(self, bag_path, wait=True):
        recorded.append(
            {
                "base_url": self.base_url,
                "bag_path": bag_path,
                "wait": wait,
                "interval": self.config.interval,
            }
        )
        if scripted["error"] is not None:
            raise scripted["error"]
        return scripted["outcome"]

    monkeypatch.setattr(BagPackValidateClient, "validate", _validate)
    return recorded


def test_wait_prints_result_as_json(config_file, calls, scripted):
    scripted["outcome"] = ValidationOutcome(
        locator=LOCATOR, result={"isCompliant": True}, waited=True
    )

    result = runner.invoke(cli.app, ["/data/bag", "--config", str(config_file)])

    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"isCompliant": True}
    assert calls == [
        {
            "base_url": "http://validator.test:8080",
            "bag_path": "/data/bag",
            "wait": True,
            "interval": 1.0,
        }
    ]


def test_no_wait_prints_locator(config_file, calls, scripted):
    scripted["outcome"] = ValidationOutcome(locator=LOCATOR)

    result = runner.invoke(
        cli.app, ["/data/bag", "-n", "-i", "250", "--config", str(config_file)]
    )

    assert result.exit_code == 0
    assert result.stdout.strip() == LOCATOR
    assert calls[0]["wait"] is False
    assert calls[0]["interval"] == 0.25


@pytest.mark.parametrize(
    "error, message",
    [
        (JobFailed("checksum mismatch"), "Validation failed: checksum mismatch"),
        (MalformedLocator("No Location header in response"), "No Location header in response"),
    ],
)
def test_failure_exits_with_one(config_file, calls, scripted, error, message):
    scripted["error"] = error

    result = runner.invoke(cli.app, ["/data/bag", "--config", str(config_file)])

    assert result.exit_code == 1
    assert message in result.stderr
    assert result.stdout == ""


def test_poll_interval_must_be_positive(config_file, calls):
    result = runner.invoke(cli.app, ["/data/bag", "-i", "0", "--config", str(config_file)])

    assert result.exit_code != 0
    assert calls == []


def test_missing_config_file(tmp_path, calls):
    result = runner.invoke(
        cli.app, ["/data/bag", "--config", str(tmp_path / "missing.yml")]
    )

    assert result.exit_code == 1
    assert "Config file does not exist" in result.output
    assert calls == []


def test_invalid_config(tmp_path, calls):
    path = tmp_path / "config.yml"
    path.write_text("validate_bagpack:\n  url: not a url\n")

    result = runner.invoke(cli.app, ["/data/bag", "--config", str(path)])

    assert result.exit_code == 1
    assert calls == []


@pytest.fixture
def live_server(unused_tcp_port_factory, tmp_path):
    """Yield a factory that runs a ValidationServer on its own event loop thread.

    The CLI calls asyncio.run itself, so the server cannot share its loop.
    Each call returns the server and a config file pointing at it.
    """
    running = []

    def _start(**kwargs):
        loop = asyncio.new_event_loop()
        thread = threading.Thread(target=loop.run_forever, daemon=True)
        thread.start()
        port = unused_tcp_port_factory()
        server_instance = ValidationServer(**kwargs)
        asyncio.run_coroutine_threadsafe(server_instance.start(port=port), loop).result(timeout=5)
        running.append((server_instance, loop, thread))

        path = tmp_path / f"server-{port}.yml"
        path.write_text(f"validate_bagpack:\n  url: http://localhost:{port}\n")
        return server_instance, path

    try:
        yield _start
    finally:
        for server_instance, loop, thread in running:
            asyncio.run_coroutine_threadsafe(server_instance.stop(), loop).result(timeout=5)
            loop.call_soon_threadsafe(loop.stop)
            thread.join(timeout=5)
            loop.close()


def test_missing_location_against_server(live_server):
    server, config_path = live_server(send_location=False)

    result = runner.invoke(cli.app, ["/data/bag", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "No Location header in response" in result.stderr
    assert server.poll_count == 0
    assert result.stdout == ""


def test_poll_failure_against_server_reports_once(live_server):
    server, config_path = live_server(poll_error_status=503)

    result = runner.invoke(cli.app, ["/data/bag", "--config", str(config_path)])

    assert result.exit_code == 1
    assert server.poll_count == 1
    assert result.stdout == ""
    assert result.stderr.count("failed with HTTP 503") == 1
    assert "HTTP error 503" not in result.stderr


def test_failed_job_against_server(live_server):
    server, config_path = live_server(
        script=[{"status": "RUNNING"}, {"status": "FAILED", "error": "checksum mismatch"}]
    )

    result = runner.invoke(cli.app, ["/data/bag", "-i", "10", "--config", str(config_path)])

    assert result.exit_code == 1
    assert server.poll_count == 2
    assert "Validation failed: checksum mismatch" in result.stderr
    assert result.stdout == ""


def test_done_job_against_server(live_server):
    server, config_path = live_server(
        script=[{"status": "PENDING"}, {"status": "DONE", "result": {"isCompliant": True}}]
    )

    result = runner.invoke(cli.app, ["/data/bag", "-i", "10", "--config", str(config_path)])

    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"isCompliant": True}
    assert "Status: PENDING" in result.stderr
    assert "Validation completed successfully." in result.stderr
