"""Rewriter GraphQL API client.

Wraps the three calls the transfer engine needs:

- export_page(cursor)     query ListRedirects      -> ExportPage
- import_batch(redirects) mutation SaveMany        -> bool
- delete_batch(paths)     mutation DeleteMany      -> bool

Error Mapping:
-------------
Every failure leaves this module as one of the typed exceptions below, so
nothing above the client needs to know about httpx:

- HTTP 429                  -> RateLimitError (headers kept for Retry-After)
- other HTTP >= 400         -> RemoteAPIError / GraphQLError with status_code
- connection, timeout, DNS  -> RemoteNetworkError
- "errors" in a 200 body    -> GraphQLError (status_code None, not retried)

Requests are made exactly once; retries belong to execution.retry.
"""

from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from ..config import RemoteConfig
from ..models.redirect import Redirect
from ..utils.exceptions import GraphQLError, RateLimitError, RemoteAPIError, RemoteNetworkError
from .response_models import ExportPage, GraphQLResponse, ListRedirectsData, MutationData

logger = structlog.get_logger(__name__)

LIST_REDIRECTS_QUERY = """
query ListRedirects($next: String) {
  redirect {
    listRedirects(next: $next) {
      next
      routes {
        from
        to
        type
        endDate
        binding
      }
    }
  }
}
"""

SAVE_MANY_MUTATION = """
mutation SaveMany($routes: [RedirectInput!]!) {
  redirect {
    saveMany(routes: $routes)
  }
}
"""

DELETE_MANY_MUTATION = """
mutation DeleteMany($paths: [String!]!) {
  redirect {
    deleteMany(paths: $paths)
  }
}
"""


class RewriterClient:
    """
    Async client for the Rewriter redirect API.

    Features:
    - Lazy httpx.AsyncClient creation
    - Bearer token authentication (static token)
    - Response validation with pydantic models
    - Typed exceptions for the retry classifier
    """

    def __init__(self, config: RemoteConfig) -> None:
        """
        Initialize RewriterClient.

        Args:
            config: Endpoint, token and timeout settings
        """
        self.config = config
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "RewriterClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """HTTP client, created on first use."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                verify=self.config.verify_ssl,
                timeout=self.config.timeout,
            )
        return self._client

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "cache-control": "no-cache",
        }
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    async def execute(
        self,
        query: str,
        variables: dict[str, Any] | None = None,
        operation: str = "graphql",
    ) -> dict[str, Any]:
        """
        POST one GraphQL document and return its `data` object.

        Args:
            query: GraphQL query or mutation text
            variables: Variables for the document
            operation: Name used in log messages

        Returns:
            The response's data object ({} when absent)

        Raises:
            RateLimitError: For HTTP 429
            GraphQLError: If the response carries an errors array
            RemoteAPIError: For other HTTP error statuses or unparseable bodies
            RemoteNetworkError: For connection failures and timeouts
        """
        try:
            response = await self.client.post(
                self.config.url,
                json={"query": query, "variables": variables or {}},
                headers=self._headers(),
            )
        except httpx.TransportError as e:
            logger.warning("Rewriter request failed", operation=operation, error=str(e))
            raise RemoteNetworkError(f"Request to {self.config.url} failed: {e}", e) from e

        headers = dict(response.headers.items())

        if response.status_code == 429:
            logger.warning(
                "Rate limited by Rewriter API",
                operation=operation,
                retry_after=response.headers.get("Retry-After"),
            )
            raise RateLimitError("Too many requests", headers=headers)

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code >= 400:
            errors = payload.get("errors") if isinstance(payload, dict) else None
            logger.error(
                "Rewriter API error",
                operation=operation,
                status=response.status_code,
                response=response.text[:500],
            )
            if errors:
                raise GraphQLError(errors, status_code=response.status_code)
            raise RemoteAPIError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
                headers=headers,
            )

        if not isinstance(payload, dict):
            raise RemoteAPIError("Invalid JSON in Rewriter response", status_code=response.status_code)

        try:
            envelope = GraphQLResponse.model_validate(payload)
        except ValidationError as e:
            raise RemoteAPIError(f"Unexpected Rewriter response: {e}") from e

        if envelope.errors:
            error = GraphQLError(envelope.errors)
            logger.error("GraphQL errors", operation=operation, messages=error.messages)
            raise error

        return envelope.data or {}

    async def export_page(self, cursor: str | None = None) -> ExportPage:
        """
        Fetch one page of redirects.

        Args:
            cursor: Cursor returned with the previous page (None for the first page)

        Returns:
            ExportPage; an empty page with no cursor when the server sent no data
        """
        data = await self.execute(LIST_REDIRECTS_QUERY, {"next": cursor}, operation="list_redirects")
        try:
            page = ListRedirectsData.model_validate(data).page()
        except ValidationError as e:
            raise RemoteAPIError(f"Unexpected listRedirects response: {e}") from e

        logger.debug("Fetched redirect page", routes=len(page.routes), has_next=page.next is not None)
        return page

    async def import_batch(self, redirects: list[Redirect]) -> bool | None:
        """
        Save a batch of redirects.

        Args:
            redirects: Validated records

        Returns:
            The server's saveMany result (None if the server omitted it)
        """
        routes = [r.to_input() for r in redirects]
        data = await self.execute(SAVE_MANY_MUTATION, {"routes": routes}, operation="save_many")
        result = MutationData.model_validate(data)
        return result.redirect.saveMany if result.redirect else None

    async def delete_batch(self, paths: list[str]) -> bool | None:
        """
        Delete redirects by source path.

        Args:
            paths: Source paths, sent as given

        Returns:
            The server's deleteMany result (None if the server omitted it)
        """
        data = await self.execute(DELETE_MANY_MUTATION, {"paths": paths}, operation="delete_many")
        result = MutationData.model_validate(data)
        return result.redirect.deleteMany if result.redirect else None
