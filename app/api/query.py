"""
Query endpoints over the ingested data.

Includes:
- Natural-language query and follow-up chat
- Native index search
- Schema mutations
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field

from app.models.schemas import ChatResponse, MutateResponse, RunQueryResponse, SearchResponse
from app.utils.config import Settings
from domains.knowledge_query.client import QueryClient

router = APIRouter()


class QueryRequest(BaseModel):
    query: str
    session_id: Optional[str] = None


class ChatRequest(BaseModel):
    session_id: str
    question: str


class SearchRequest(BaseModel):
    term: str


class MutateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    schema_name: str = Field(alias="schema")
    operation: str
    data: Any = None


def get_query_client(request: Request) -> QueryClient:
    return request.app.state.query_client


def get_current_settings(request: Request) -> Settings:
    """Settings as last updated through ``/sync/config``."""
    return request.app.state.pipeline.get_settings()


@router.post("/run", response_model=RunQueryResponse)
async def run_query(
    request: QueryRequest,
    client: QueryClient = Depends(get_query_client),
    settings: Settings = Depends(get_current_settings),
):
    """
    Ask a question about the ingested data.

    Pass the returned ``session_id`` to ``/query/chat`` for follow-ups.
    """
    return await client.run_query(settings, request.query, request.session_id)


@router.post("/chat", response_model=ChatResponse)
async def chat_followup(
    request: ChatRequest,
    client: QueryClient = Depends(get_query_client),
    settings: Settings = Depends(get_current_settings),
):
    """Follow-up question within a query session."""
    return await client.chat_followup(settings, request.session_id, request.question)


@router.post("/search", response_model=SearchResponse)
async def search_index(
    request: SearchRequest,
    client: QueryClient = Depends(get_query_client),
    settings: Settings = Depends(get_current_settings),
):
    return await client.search_index(settings, request.term)


@router.post("/mutate", response_model=MutateResponse)
async def mutate(
    request: MutateRequest,
    client: QueryClient = Depends(get_query_client),
    settings: Settings = Depends(get_current_settings),
):
    """Create, update or delete records of a schema."""
    return await client.mutate(settings, request.schema_name, request.operation, request.data)
