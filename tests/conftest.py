import asyncio
import json
from typing import List, Optional

import httpx
import pytest

from app.utils.config import Settings
from domains.file_ingest.processors.progress import ProgressPoller
from domains.file_ingest.processors.uploader import Uploader
from domains.knowledge_query.client import QueryClient

API_URL = "https://api.test"
UPLOAD_HOST = "https://objects.test"


class FakeIngestionService:
    """In-memory stand-in for the ingestion API and the object store."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.slot_failures = 0
        self.slot_status = 200
        self.slot_bucket: Optional[str] = "user-bucket"
        self.put_delay = 0.0
        self.progress_statuses = ["completed"]
        self.progress_failures = 0
        self.query_status = 200
        self.active_puts = 0
        self.peak_puts = 0
        self._polls = 0

    def paths(self, method: Optional[str] = None) -> List[str]:
        return [r.url.path for r in self.requests if method is None or r.method == method]

    def requests_to(self, suffix: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(suffix)]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/api/ingestion/upload-url":
            if self.slot_failures > 0:
                self.slot_failures -= 1
                raise httpx.ConnectError("connection refused", request=request)
            if self.slot_status != 200:
                return httpx.Response(self.slot_status, text="bad request")
            body = json.loads(request.content)
            payload = {
                "upload_url": f"{UPLOAD_HOST}/put/{body['filename']}",
                "s3_key": f"uploads/{body['filename']}",
            }
            if self.slot_bucket:
                payload["s3_bucket"] = self.slot_bucket
            return httpx.Response(200, json=payload)

        if request.url.host == "objects.test" and request.method == "PUT":
            self.active_puts += 1
            self.peak_puts = max(self.peak_puts, self.active_puts)
            try:
                await asyncio.sleep(self.put_delay)
            finally:
                self.active_puts -= 1
            return httpx.Response(200)

        if path == "/api/ingestion/ingest-s3":
            body = json.loads(request.content)
            return httpx.Response(200, json={"progress_id": f"srv-{body['progress_id']}"})

        if path.startswith("/api/ingestion/progress/"):
            if self.progress_failures > 0:
                self.progress_failures -= 1
                raise httpx.ReadTimeout("timed out", request=request)
            progress_id = path.rsplit("/", 1)[-1]
            index = min(self._polls, len(self.progress_statuses) - 1)
            self._polls += 1
            status = self.progress_statuses[index]
            return httpx.Response(200, json={
                "progress_id": progress_id,
                "status": status,
                "percent": 100.0 if status == "completed" else 40.0,
                "message": None,
            })

        if path.startswith(("/api/llm-query/", "/api/native-index/", "/api/mutation/")):
            if self.query_status != 200:
                return httpx.Response(self.query_status, text="query backend down")
            return httpx.Response(200, json=self._answer_query(path, json.loads(request.content)))

        return httpx.Response(404)

    @staticmethod
    def _answer_query(path: str, body: dict) -> dict:
        if path == "/api/llm-query/run":
            return {
                "session_id": body.get("session_id", "sess-1"),
                "results": [{"file": "report.pdf"}],
                "summary": f"1 match for {body['query']}",
            }
        if path == "/api/llm-query/chat":
            return {"answer": f"re: {body['question']}", "context_used": True}
        if path == "/api/native-index/search":
            return {"results": [{"file": "report.pdf"}], "count": 1, "term": body["term"]}
        return {"success": True, "message": None, "data": body["data"]}


def build_settings(**overrides) -> Settings:
    values = dict(
        api_base_url=API_URL,
        api_key="test-key",
        auto_ingest=True,
        auto_approve_watched=True,
        environment="custom",
        _env_file=None,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def fake_service() -> FakeIngestionService:
    return FakeIngestionService()


@pytest.fixture
def make_settings():
    return build_settings


@pytest.fixture
def settings(tmp_path) -> Settings:
    return build_settings(watched_folder=tmp_path)


@pytest.fixture
def make_uploader(fake_service):
    """Build an uploader wired to the fake service, with no retry delay."""

    def _make(max_concurrent: int = 3) -> Uploader:
        client = httpx.AsyncClient(transport=httpx.MockTransport(fake_service.handler))
        return Uploader(max_concurrent=max_concurrent, retry_base_delay=0, client=client)

    return _make


@pytest.fixture
def make_poller():
    def _make(uploader: Uploader, max_polls: int = 5) -> ProgressPoller:
        return ProgressPoller(uploader, interval=0, max_polls=max_polls)

    return _make


@pytest.fixture
def query_client(fake_service) -> QueryClient:
    return QueryClient(client=httpx.AsyncClient(transport=httpx.MockTransport(fake_service.handler)))
