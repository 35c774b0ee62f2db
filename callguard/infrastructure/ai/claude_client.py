"""Client for the Claude Messages API, guarded by a resilience gateway.

Builds the request body (conversation history, the new user message,
optional system text, tools and tool choice) and hands it to the
ApiRetryService, which decides whether, when and how often it is sent.
"""

import logging
from typing import Any, Dict, List, Optional

from callguard.domain.interfaces.payload import RequestPayload, truncate_text
from callguard.domain.models.calls import CallRequest, new_request_id
from callguard.infrastructure.config.settings import (
    DEFAULT_CLAUDE_API_URL, DEFAULT_CLAUDE_API_VERSION, DEFAULT_CLAUDE_MODEL,
)
from callguard.infrastructure.resilience.api_retry import ApiRetryService

logger = logging.getLogger(__name__)


class ClaudePayload(RequestPayload):
    """Messages-API request whose prompt text is the shrinkable part."""

    def __init__(
        self,
        prompt: str,
        model: str,
        max_tokens: int,
        system_text: Optional[str] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: Optional[Dict[str, Any]] = None,
        history: Optional[List[Dict[str, Any]]] = None,
    ):
        self.prompt = prompt
        self.model = model
        self.max_tokens = max_tokens
        self.system_text = system_text
        self.tools = tools
        self.tool_choice = tool_choice
        self.history = list(history or [])

    @property
    def size(self) -> int:
        return len(self.prompt)

    def truncated(self, target_size: int, notice: str) -> "ClaudePayload":
        return ClaudePayload(
            prompt=truncate_text(self.prompt, target_size, notice),
            model=self.model,
            max_tokens=self.max_tokens,
            system_text=self.system_text,
            tools=self.tools,
            tool_choice=self.tool_choice,
            history=self.history,
        )

    def to_body(self) -> Dict[str, Any]:
        messages = list(self.history)
        messages.append({
            "role": "user",
            "content": [{"type": "text", "text": self.prompt}],
        })
        body: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": messages,
        }
        if self.system_text:
            body["system"] = self.system_text
        if self.tools:
            body["tools"] = self.tools
        if self.tool_choice:
            body["tool_choice"] = self.tool_choice
        return body


class ClaudeClient:
    """Sends prompts to Claude through the upstream's gateway."""

    DEFAULT_MAX_TOKENS = 1000

    def __init__(
        self,
        gateway: ApiRetryService,
        api_key: Optional[str],
        api_url: str = DEFAULT_CLAUDE_API_URL,
        api_version: str = DEFAULT_CLAUDE_API_VERSION,
        model: str = DEFAULT_CLAUDE_MODEL,
        default_timeout: float = 30.0,
    ):
        """Initializes the Claude client.

        Args:
            gateway: The ApiRetryService owning this upstream's resilience state.
            api_key: Claude API key.
            api_url: Messages endpoint.
            api_version: Value of the anthropic-version header.
            model: The default model to use.
            default_timeout: Request timeout in seconds when none is given.
        """
        self.gateway = gateway
        self.api_key = api_key
        self.api_url = api_url
        self.api_version = api_version
        self.model = model
        self.default_timeout = default_timeout
        logger.info(f"ClaudeClient initialized for model: {self.model}")

    async def send_message(
        self,
        prompt: str,
        *,
        max_tokens: Optional[int] = None,
        system_text: Optional[str] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: Optional[Dict[str, Any]] = None,
        history: Optional[List[Dict[str, Any]]] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        priority: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Sends a prompt and returns Claude's response body.

        Args:
            prompt: User's prompt; truncated on retry if the input is too large.
            max_tokens: Output-size hint (defaults to DEFAULT_MAX_TOKENS).
            system_text: Optional system prompt.
            tools: Optional tool definitions.
            tool_choice: Optional tool choice object.
            history: Optional prior conversation messages.
            model: Overrides the client's default model.
            timeout: Request timeout in seconds.
            priority: Queue priority (lower first); retries are favoured if None.

        Raises:
            ValueError: If the API key or prompt is missing.
            GatewayError: If the gateway surfaces a failure.
        """
        if not self.api_key:
            raise ValueError("Claude API key is required")
        if not prompt:
            raise ValueError("Prompt is required")

        payload = ClaudePayload(
            prompt=prompt,
            model=model or self.model,
            max_tokens=max_tokens or self.DEFAULT_MAX_TOKENS,
            system_text=system_text,
            tools=tools,
            tool_choice=tool_choice,
            history=history,
        )
        request = CallRequest(
            url=self.api_url,
            payload=payload,
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": self.api_version,
            },
            timeout=timeout or self.default_timeout,
            priority=priority,
            request_id=new_request_id("claude-request"),
        )
        logger.info(
            f"Sending message to Claude: model={payload.model}, max_tokens={payload.max_tokens}, "
            f"system={bool(system_text)}, tools={bool(tools)}, history={len(payload.history)}"
        )
        response = await self.gateway.invoke(request)
        return response.body

    @staticmethod
    def extract_text(response_body: Dict[str, Any]) -> str:
        """Joins the text blocks of a Messages-API response."""
        if not isinstance(response_body, dict):
            return ""
        blocks = response_body.get("content") or []
        return "".join(
            block.get("text", "") for block in blocks
            if isinstance(block, dict) and block.get("type") == "text"
        )
