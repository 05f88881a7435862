"""
Query client for the remote knowledge service.

Covers the calls the UI makes against ingested data:
- Natural-language query, returning a session for follow-ups
- Follow-up chat within a session
- Native index term search
- Schema mutations

Authentication reuses the headers the ingestion calls send. Failures are
raised as transfer errors and are not retried: a query is user-driven and
the caller decides whether to ask again.
"""

from typing import Any, Optional, Type, TypeVar

import httpx
from loguru import logger
from pydantic import BaseModel, ValidationError

from app.models.schemas import ChatResponse, MutateResponse, RunQueryResponse, SearchResponse
from app.utils.config import Settings
from domains.file_ingest.errors import NetworkError, PipelineConfigError, RemoteProtocolError


QUERY_TIMEOUT = 120.0  # seconds

M = TypeVar("M", bound=BaseModel)


class QueryClient:
    """Thin async client for the query, search and mutation endpoints."""

    def __init__(self, timeout: float = QUERY_TIMEOUT, client: Optional[httpx.AsyncClient] = None):
        self.client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> "QueryClient":
        return cls(timeout=settings.upload_timeout_seconds, client=client)

    async def close(self):
        """Close the underlying HTTP client."""
        await self.client.aclose()

    async def _post(self, settings: Settings, label: str, path: str, body: dict, model: Type[M]) -> M:
        if not settings.api_url() or not settings.api_key:
            raise PipelineConfigError("App not configured. Set API URL and API key.")

        try:
            response = await self.client.post(
                f"{settings.api_url()}{path}",
                headers=settings.auth_headers(),
                json=body,
            )
        except httpx.HTTPError as e:
            raise NetworkError(f"{label} request failed: {e}") from e

        if not response.is_success:
            raise RemoteProtocolError(f"{label} failed ({response.status_code}): {response.text}")

        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise RemoteProtocolError(f"Failed to parse {label.lower()} response: {e}") from e

    async def run_query(self, settings: Settings, query: str, session_id: Optional[str] = None) -> RunQueryResponse:
        """
        Run a natural-language query over the ingested data.

        Args:
            settings: Configuration snapshot (base URL + auth)
            query: Question in plain language
            session_id: Continue an existing session instead of starting one

        Returns:
            Matching records, an optional summary and the session id
        """
        body = {"query": query}
        if session_id:
            body["session_id"] = session_id

        logger.info(f"Running query ({len(query)} chars)")
        return await self._post(settings, "Query", "/api/llm-query/run", body, RunQueryResponse)

    async def chat_followup(self, settings: Settings, session_id: str, question: str) -> ChatResponse:
        """Ask a follow-up question about the results of a previous query."""
        return await self._post(
            settings,
            "Chat",
            "/api/llm-query/chat",
            {"session_id": session_id, "question": question},
            ChatResponse,
        )

    async def search_index(self, settings: Settings, term: str) -> SearchResponse:
        return await self._post(settings, "Search", "/api/native-index/search", {"term": term}, SearchResponse)

    async def mutate(self, settings: Settings, schema: str, operation: str, data: Any) -> MutateResponse:
        """Apply ``operation`` to ``schema`` with ``data`` as its payload."""
        result = await self._post(
            settings,
            "Mutate",
            "/api/mutation/execute",
            {"schema": schema, "operation": operation, "data": data},
            MutateResponse,
        )
        if not result.success:
            logger.warning(f"Mutation {operation} on {schema} rejected: {result.message}")
        return result
