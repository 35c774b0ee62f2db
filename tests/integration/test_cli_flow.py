import pytest
from typer.testing import CliRunner
from unittest.mock import MagicMock

from callguard import main
from callguard.core.command_handler import CommandHandler
from callguard.domain.models.calls import GatewayStats, TransportResponse
from callguard.infrastructure.ai.claude_client import ClaudeClient
from callguard.infrastructure.config.settings import set_config_for_testing
from callguard.infrastructure.graphql.monday_client import MondayClient
from callguard.infrastructure.resilience.error_classifier import classify_graphql_outcome
from callguard.main import app
from tests.fakes import ScriptedTransport, error_response, ok_response

# These fixtures are defined in tests/conftest.py:
# runner: CliRunner
# make_gateway: factory for gateways on a fake clock
# transport: ScriptedTransport shared by those gateways
# mock_console_display: MagicMock (stands in for ConsoleDisplay)


@pytest.fixture
def wired_app(mocker, make_gateway, mock_console_display):
    """Installs real clients and gateways over a scripted transport into main's container."""
    gateways = {
        "claude": make_gateway(upstream="claude"),
        "monday": make_gateway(upstream="monday", classifier=classify_graphql_outcome),
    }
    handler = CommandHandler(
        gateways=gateways,
        ui=mock_console_display,
        claude_client=ClaudeClient(gateway=gateways["claude"], api_key="test-key", api_url="https://claude.test"),
        monday_client=MondayClient(gateway=gateways["monday"], api_token="test-token", api_url="https://monday.test"),
    )
    mocker.patch.object(main, "_dependencies", {"command_handler": handler, "gateways": gateways})
    return handler


def test_send_command_flow(runner: CliRunner, wired_app, transport: ScriptedTransport, mock_console_display: MagicMock):
    """Test the full flow for the 'send' command through the gateway."""
    transport.script(error_response(503), ok_response({"content": [{"type": "text", "text": "Mocked reply"}]}))

    result = runner.invoke(app, ["send", "Hello Claude", "--system", "Be brief", "--max-tokens", "64"])

    assert result.exit_code == 0, f"CLI command failed: {result.stdout}"
    assert len(transport.calls) == 2
    body = transport.calls[-1]["body"]
    assert body["system"] == "Be brief"
    assert body["max_tokens"] == 64
    assert body["messages"][-1]["content"][0]["text"] == "Hello Claude"
    mock_console_display.display_output.assert_called_once_with("Mocked reply", title="Claude")
    mock_console_display.display_error.assert_not_called()
    assert transport.closed


def test_send_command_failure_exits_nonzero(runner: CliRunner, wired_app, transport, mock_console_display):
    transport.script(error_response(401, {"error": {"type": "authentication_error"}}))

    result = runner.invoke(app, ["send", "Hello"])

    assert result.exit_code == 1
    assert len(transport.calls) == 1
    message = mock_console_display.display_error.call_args.args[0]
    assert message.startswith("Claude request failed (Unauthorized, status 401, 0 retries)")


def test_graphql_command_flow(runner: CliRunner, wired_app, transport, mock_console_display):
    transport.script(TransportResponse(status=200, body={"data": {"boards": [{"id": "42"}]}}))

    result = runner.invoke(app, ["graphql", "query ($limit: Int) { boards(limit: $limit) { id } }", "-v", '{"limit": 1}'])

    assert result.exit_code == 0, f"CLI command failed: {result.stdout}"
    assert transport.calls[0]["body"]["variables"] == {"limit": 1}
    assert transport.calls[0]["headers"]["Authorization"] == "test-token"
    assert '"42"' in mock_console_display.display_output.call_args.args[0]


def test_status_command_flow(runner: CliRunner, wired_app, mock_console_display):
    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    stats = mock_console_display.display_stats.call_args.args[0]
    assert [s.upstream for s in stats] == ["claude", "monday"]
    assert all(isinstance(s, GatewayStats) for s in stats)


def test_status_help_scopes_state_to_this_process(runner: CliRunner):
    result = runner.invoke(app, ["status", "--help"])

    assert result.exit_code == 0
    assert "state of this process" in " ".join(result.output.split())


def test_create_dependencies_wires_configured_clients(mocker):
    """Test the composition root with only Claude configured."""
    mocker.patch.object(main, "load_configuration")
    mocker.patch.object(main, "setup_logging")
    set_config_for_testing({"claude.api_key": "k", "monday.api_token": None})

    deps = main.create_dependencies()

    assert isinstance(deps["claude_client"], ClaudeClient)
    assert deps["monday_client"] is None
    gateways = deps["gateways"]
    assert set(gateways) == {"claude", "monday"}
    assert gateways["monday"].classifier is classify_graphql_outcome
    assert gateways["claude"].transport is gateways["monday"].transport
    assert gateways["claude"].circuit_breaker is not gateways["monday"].circuit_breaker
    assert gateways["monday"].base_delay_s == 0.1
    assert isinstance(deps["command_handler"], CommandHandler)
