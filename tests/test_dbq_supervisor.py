import allure
import pytest
from click.testing import CliRunner

from dbq_supervisor import __version__
from dbq_supervisor import main as cli_main
from dbq_supervisor.http.client import SubmissionError
from dbq_supervisor.main import dbq_supervisor
from dbq_supervisor.supervisor.controllers import SupervisorCliController
from support import (
    RecordingSink,
    RecordingSleep,
    ScriptedClient,
    completed,
    completed_without_result,
    failure,
)

pytestmark = [
    allure.epic("Job Supervision"),
    allure.feature("CLI"),
]

QUERY = '{"range":{"lastIndexingDate":{"lte":"now-3y"}}}'


@pytest.fixture()
def scripted(monkeypatch):
    """Route the CLI controller to a scripted client without real sleeps."""

    def _install(client: ScriptedClient) -> RecordingSink:
        sink = RecordingSink()
        monkeypatch.setattr(
            cli_main,
            "SUPERVISOR_CONTROLLER",
            SupervisorCliController(
                client_factory=lambda _settings: client,
                sink_factory=lambda: sink,
                sleep=RecordingSleep(),
                tick_seconds=0,
            ),
        )
        return sink

    return _install


def test_version():
    assert __version__


def test_version_option():
    runner = CliRunner()
    result = runner.invoke(dbq_supervisor, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_invalid_query_json_is_usage_error():
    result = CliRunner().invoke(dbq_supervisor, ["{not json"])
    assert result.exit_code == 2
    assert "not valid JSON" in result.output


def test_successful_run_after_restart(scripted):
    client = ScriptedClient(
        polls=[
            completed(deleted=7, failures=(failure("n1", "logs-1", "rejected"),)),
            completed(deleted=3),
        ],
    )
    sink = scripted(client)

    result = CliRunner().invoke(
        dbq_supervisor,
        ["-u", "http://es:9200", "-i", "logs-*", "-r", "250", "-p", "1", "-s", "500", QUERY],
    )

    assert result.exit_code == 0, result.output
    assert "Restarts: 1" in result.output
    assert "Deleted 10 documents in total." in result.output
    query, index, options = client.submitted[0]
    assert query == {"range": {"lastIndexingDate": {"lte": "now-3y"}}}
    assert index == "logs-*"
    assert options.requests_per_second == 250
    assert options.scroll_size == 500
    assert "Error, will retry in 1s" in sink.messages


def test_submission_error_exits_one(scripted):
    scripted(ScriptedClient(submit_error=SubmissionError("HTTP 400 parsing_exception")))

    result = CliRunner().invoke(dbq_supervisor, [QUERY])

    assert result.exit_code == 1
    assert "parsing_exception" in result.output


def test_anomaly_exits_four(scripted):
    scripted(ScriptedClient(polls=[completed_without_result()]))

    result = CliRunner().invoke(dbq_supervisor, [QUERY])

    assert result.exit_code == 4
    assert "without a result payload" in result.output


def test_invalid_option_value_exits_one(scripted):
    scripted(ScriptedClient())

    result = CliRunner().invoke(dbq_supervisor, ["-i", "_all", QUERY])

    assert result.exit_code == 1
    assert "Invalid index pattern" in result.output
