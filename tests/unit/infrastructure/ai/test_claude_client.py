from unittest.mock import AsyncMock, MagicMock

import pytest

from callguard.domain.models.calls import CallRequest, TransportResponse
from callguard.domain.models.common import TRUNCATION_NOTICE
from callguard.infrastructure.ai.claude_client import ClaudeClient, ClaudePayload
from callguard.infrastructure.resilience.api_retry import ApiRetryService
from tests.fakes import error_response

API_URL = "https://claude.test/v1/messages"


@pytest.fixture
def mock_gateway():
    gateway = MagicMock(spec=ApiRetryService)
    gateway.invoke = AsyncMock(return_value=TransportResponse(
        status=200, body={"content": [{"type": "text", "text": "Hello"}, {"type": "text", "text": " there"}]},
    ))
    return gateway


@pytest.fixture
def claude_client(mock_gateway):
    return ClaudeClient(gateway=mock_gateway, api_key="test-key", api_url=API_URL, model="claude-test")


@pytest.mark.asyncio
async def test_send_message_builds_request(claude_client: ClaudeClient, mock_gateway: MagicMock):
    """Test that send_message hands a complete Messages request to the gateway."""
    body = await claude_client.send_message("Summarize this", system_text="Be brief", max_tokens=200)

    assert ClaudeClient.extract_text(body) == "Hello there"
    request: CallRequest = mock_gateway.invoke.await_args.args[0]
    assert request.url == API_URL
    assert request.headers == {"x-api-key": "test-key", "anthropic-version": "2023-06-01"}
    assert request.request_id.startswith("claude-request-")
    assert request.timeout == 30.0
    assert request.priority is None
    assert request.payload.to_body() == {
        "model": "claude-test",
        "max_tokens": 200,
        "messages": [{"role": "user", "content": [{"type": "text", "text": "Summarize this"}]}],
        "system": "Be brief",
    }


@pytest.mark.asyncio
async def test_optional_fields_are_forwarded(claude_client: ClaudeClient, mock_gateway: MagicMock):
    tools = [{"name": "lookup", "input_schema": {"type": "object"}}]
    history = [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}]

    await claude_client.send_message(
        "next", tools=tools, tool_choice={"type": "auto"}, history=history, model="other-model",
        timeout=12, priority=0,
    )

    request: CallRequest = mock_gateway.invoke.await_args.args[0]
    body = request.payload.to_body()
    assert body["model"] == "other-model"
    assert body["max_tokens"] == ClaudeClient.DEFAULT_MAX_TOKENS
    assert body["tools"] == tools
    assert body["tool_choice"] == {"type": "auto"}
    assert body["messages"][:2] == history
    assert "system" not in body
    assert request.timeout == 12
    assert request.priority == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("api_key, prompt, message", [
    (None, "hi", "Claude API key is required"),
    ("key", "", "Prompt is required"),
])
async def test_missing_inputs_raise_value_error(mock_gateway, api_key, prompt, message):
    client = ClaudeClient(gateway=mock_gateway, api_key=api_key)

    with pytest.raises(ValueError, match=message):
        await client.send_message(prompt)
    mock_gateway.invoke.assert_not_awaited()


def test_truncation_keeps_everything_but_the_prompt():
    history = [{"role": "user", "content": "earlier"}]
    payload = ClaudePayload("y" * 1000, model="m", max_tokens=10, system_text="sys", history=history)

    shrunk = payload.truncated(800, TRUNCATION_NOTICE)

    assert shrunk.size <= 800
    assert shrunk.prompt.endswith(TRUNCATION_NOTICE)
    assert shrunk.system_text == "sys"
    assert shrunk.history == history
    assert payload.size == 1000


@pytest.mark.asyncio
async def test_oversized_prompt_is_resent_truncated(make_gateway, transport):
    """Test the client end to end through a real gateway and a scripted transport."""
    client = ClaudeClient(gateway=make_gateway(), api_key="test-key", api_url=API_URL)
    transport.script(error_response(400, {"error": {"type": "invalid_request_error", "message": "prompt is too long"}}))

    await client.send_message("z" * 2000)

    sent = [call["body"]["messages"][-1]["content"][0]["text"] for call in transport.calls]
    assert len(sent[0]) == 2000
    assert len(sent[1]) <= 1600
    assert sent[1].endswith(TRUNCATION_NOTICE)
    assert transport.calls[1]["headers"]["x-api-key"] == "test-key"


@pytest.mark.parametrize("body, expected", [
    ({"content": [{"type": "tool_use", "id": "t1"}, {"type": "text", "text": "done"}]}, "done"),
    ({"content": []}, ""),
    ("not a dict", ""),
])
def test_extract_text(body, expected):
    assert ClaudeClient.extract_text(body) == expected
