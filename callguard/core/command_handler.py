"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py) and delegates the
work to the upstream clients, rendering results and gateway failures
through the UserInterface.
"""

import json
import logging
from typing import Dict, Optional

from callguard.domain.interfaces.user_interface import UserInterface
from callguard.domain.models.errors import GatewayError
from callguard.infrastructure.ai.claude_client import ClaudeClient
from callguard.infrastructure.graphql.monday_client import MondayClient
from callguard.infrastructure.resilience.api_retry import ApiRetryService

logger = logging.getLogger(__name__)


class CommandHandler:
    """Handles incoming commands and delegates to the upstream clients."""

    def __init__(
        self,
        gateways: Dict[str, ApiRetryService],
        ui: UserInterface,
        claude_client: Optional[ClaudeClient] = None,
        monday_client: Optional[MondayClient] = None,
    ):
        """Initializes the CommandHandler with the composed clients and gateways."""
        self.gateways = gateways
        self.ui = ui
        self.claude_client = claude_client
        self.monday_client = monday_client

    def _report_gateway_error(self, action: str, error: GatewayError) -> None:
        details = f"{error.kind.value}"
        if error.status is not None:
            details += f", status {error.status}"
        details += f", {error.retries_attempted} retries"
        logger.error(f"{action} failed: {error!r}")
        self.ui.display_error(f"{action} failed ({details}): {error}")

    async def handle_send(
        self,
        prompt: str,
        system_text: Optional[str] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> bool:
        """Handles the 'send' command. Returns True on success."""
        logger.info(f"Handling 'send' command (prompt length {len(prompt)})")
        if self.claude_client is None:
            self.ui.display_error("Claude is not configured. Set CLAUDE_API_KEY.")
            return False
        try:
            body = await self.claude_client.send_message(
                prompt, system_text=system_text, max_tokens=max_tokens, timeout=timeout,
            )
        except GatewayError as e:
            self._report_gateway_error("Claude request", e)
            return False
        except ValueError as e:
            self.ui.display_error(str(e))
            return False

        text = ClaudeClient.extract_text(body)
        if text:
            self.ui.display_output(text, title="Claude")
        else:
            self.ui.display_output(json.dumps(body, indent=2), title="Claude (raw)", markdown=False)
        return True

    async def handle_graphql(self, query: str, variables_json: Optional[str] = None) -> bool:
        """Handles the 'graphql' command. Returns True on success."""
        logger.info("Handling 'graphql' command")
        if self.monday_client is None:
            self.ui.display_error("monday.com is not configured. Set MONDAY_API_TOKEN.")
            return False
        try:
            variables = json.loads(variables_json) if variables_json else None
        except json.JSONDecodeError as e:
            self.ui.display_error(f"Invalid variables JSON: {e}")
            return False
        try:
            body = await self.monday_client.execute_graphql(query, variables)
        except GatewayError as e:
            self._report_gateway_error("GraphQL operation", e)
            return False
        except ValueError as e:
            self.ui.display_error(str(e))
            return False

        self.ui.display_output(json.dumps(body, indent=2), title="monday.com", markdown=False)
        return True

    def handle_status(self) -> None:
        """Handles the 'status' command."""
        logger.info("Handling 'status' command")
        self.ui.display_stats([gateway.snapshot() for gateway in self.gateways.values()])

    async def close(self) -> None:
        for gateway in self.gateways.values():
            await gateway.close()
