"""Client for the monday.com GraphQL API, guarded by its own gateway.

GraphQL reports most failures inside 200 responses; the gateway for this
upstream is built with classify_graphql_outcome so those are classified
(validation vs. complexity/rate budget) like any HTTP failure.
"""

import logging
from typing import Any, Dict, Optional

from callguard.domain.interfaces.payload import RequestPayload
from callguard.domain.models.calls import CallRequest, new_request_id
from callguard.infrastructure.config.settings import DEFAULT_MONDAY_API_URL
from callguard.infrastructure.resilience.api_retry import ApiRetryService

logger = logging.getLogger(__name__)


class GraphQLPayload(RequestPayload):
    """A GraphQL operation; queries cannot be truncated safely."""

    shrinkable = False

    def __init__(self, query: str, variables: Optional[Dict[str, Any]] = None):
        self.query = query
        self.variables = variables or {}

    @property
    def size(self) -> int:
        return len(self.query)

    def truncated(self, target_size: int, notice: str) -> "GraphQLPayload":
        raise ValueError("GraphQL operations cannot be truncated; a cut query would no longer parse")

    def to_body(self) -> Dict[str, Any]:
        return {"query": self.query, "variables": self.variables}

    @property
    def operation_type(self) -> str:
        return "mutation" if self.query.strip().startswith("mutation") else "query"


class MondayClient:
    """Executes GraphQL operations against monday.com."""

    def __init__(
        self,
        gateway: ApiRetryService,
        api_token: Optional[str],
        api_url: str = DEFAULT_MONDAY_API_URL,
        default_timeout: float = 10.0,
    ):
        self.gateway = gateway
        self.api_token = api_token
        self.api_url = api_url
        self.default_timeout = default_timeout

    async def execute_graphql(
        self,
        query: str,
        variables: Optional[Dict[str, Any]] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Executes a query or mutation and returns the response body.

        Args:
            query: GraphQL query or mutation string.
            variables: Variables for the operation.
            token: API token overriding the client's default.
            timeout: Request timeout in seconds.

        Raises:
            ValueError: If no token is available or the query is empty.
            GatewayError: If the gateway surfaces a failure.
        """
        api_token = token or self.api_token
        if not api_token:
            raise ValueError("Monday.com API token is required")
        if not query or not query.strip():
            raise ValueError("GraphQL query is required")

        payload = GraphQLPayload(query, variables)
        request = CallRequest(
            url=self.api_url,
            payload=payload,
            headers={"Authorization": api_token},
            timeout=timeout or self.default_timeout,
            request_id=new_request_id("monday-request"),
        )
        logger.info(
            f"Executing GraphQL {payload.operation_type}: variables={bool(payload.variables)}"
        )
        response = await self.gateway.invoke(request)
        logger.info("GraphQL operation completed successfully")
        return response.body
