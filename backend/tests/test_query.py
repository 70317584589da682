"""
Query endpoint tests.

The process-wide query service is replaced with in-process backends so the
tests never leave the machine.
"""

import pytest
from fastapi.testclient import TestClient

from polydict.api import query as query_api
from polydict.api import stream as stream_api
from polydict.main import create_app
from polydict.services.arbitration import ArbitrationPolicy
from polydict.services.detection import DetectorPool, SimpleDetector
from polydict.services.dispatcher import ProviderDispatcher
from polydict.services.languages import Backend
from polydict.services.models import ProviderPayload
from polydict.services.orchestrator import QueryOrchestrator
from polydict.services.stats import DispatchMetrics

from fakes import FakeProvider


class FakeQueryService:
    def __init__(self, metrics: DispatchMetrics):
        self.metrics = metrics
        self.providers = [
            FakeProvider("google", Backend.GOOGLE, payload=ProviderPayload(translations=["こんにちは"])),
            FakeProvider("caiyun", Backend.CAIYUN, payload=ProviderPayload(translations=["你好"])),
        ]

    def new_session(self) -> QueryOrchestrator:
        return QueryOrchestrator(
            pool=DetectorPool([SimpleDetector()]),
            dispatcher=ProviderDispatcher(self.providers, timeout_s=1.0, metrics=self.metrics),
            policy=ArbitrationPolicy(deadline_s=0.5),
        )


@pytest.fixture
def metrics(monkeypatch):
    metrics = DispatchMetrics()
    service = FakeQueryService(metrics)
    monkeypatch.setattr(query_api, "query_service", service)
    monkeypatch.setattr(query_api, "dispatch_metrics", metrics)
    monkeypatch.setattr(stream_api, "query_service", service)
    return metrics


@pytest.fixture
def client(metrics):
    """Create test client."""
    app = create_app()
    return TestClient(app)


def test_query_requires_text(client):
    response = client.post("/api/query", json={"target_lang": "en"})
    assert response.status_code == 422  # Validation error


def test_query_rejects_blank_text(client):
    response = client.post("/api/query", json={"text": "   "})
    assert response.status_code == 400


def test_query_rejects_unknown_language(client):
    response = client.post("/api/query", json={"text": "hello", "target_lang": "tlh"})
    assert response.status_code == 400
    assert "tlh" in response.json()["detail"]


def test_query_returns_sections_and_notices(client):
    response = client.post("/api/query", json={"text": "hello", "target_lang": "ja"})
    assert response.status_code == 200
    data = response.json()
    assert data["source_lang"] == "en"
    assert data["detected_by"] == "simple"
    assert data["target_lang"] == "ja"
    assert data["detection_pending"] is False
    assert [section["provider"] for section in data["sections"]] == ["google", "caiyun"]
    assert data["sections"][0]["title"] == "Google Translate"
    assert data["sections"][0]["rows"] == [{"text": "こんにちは", "subtitle": None}]
    assert data["notices"] == []


def test_unsupported_provider_becomes_notice(client):
    response = client.post("/api/query", json={"text": "bonjour", "source_lang": "fr", "target_lang": "en"})
    assert response.status_code == 200
    data = response.json()
    assert [section["provider"] for section in data["sections"]] == ["google"]
    assert data["notices"][0]["provider"] == "caiyun"
    assert data["notices"][0]["error_kind"] == "unsupported_language_pair"


def test_metrics_endpoint(client, metrics):
    client.post("/api/query", json={"text": "hello", "target_lang": "ja"})
    response = client.get("/api/metrics")
    assert response.status_code == 200
    providers = response.json()["providers"]
    assert providers["google"]["outcomes"] == {"success": 1}

    assert client.post("/api/metrics/reset").status_code == 200
    assert client.get("/api/metrics").json()["providers"] == {}


def _receive_until_sections(websocket, count):
    for _ in range(10):
        message = websocket.receive_json()
        assert message["type"] == "sections"
        if len(message["sections"]) == count:
            return message
    raise AssertionError(f"never received {count} sections")


def test_stream_publishes_progressive_sections(client):
    with client.websocket_connect("/api/query/stream") as websocket:
        websocket.send_json({"type": "query", "text": "hello", "targetLang": "ja"})
        first = websocket.receive_json()
        assert first["type"] == "sections"
        assert first["detection_pending"] is True

        final = _receive_until_sections(websocket, 2)
        assert final["source_lang"] == "en"
        assert [section["provider"] for section in final["sections"]] == ["google", "caiyun"]


def test_stream_language_override(client):
    with client.websocket_connect("/api/query/stream") as websocket:
        websocket.send_json({"type": "query", "text": "hello", "targetLang": "ja"})
        first = _receive_until_sections(websocket, 2)

        websocket.send_json({"type": "language", "targetLang": "zh-CHS"})
        message = _receive_until_sections(websocket, 2)
        assert message["sequence"] == first["sequence"] + 1
        assert message["target_lang"] == "zh-CHS"


def test_stream_reports_bad_messages(client):
    with client.websocket_connect("/api/query/stream") as websocket:
        websocket.send_text("not json")
        assert websocket.receive_json() == {"type": "error", "message": "Invalid JSON"}

        websocket.send_json(["query"])
        assert websocket.receive_json()["type"] == "error"

        websocket.send_json({"type": "shout"})
        assert "shout" in websocket.receive_json()["message"]

        websocket.send_json({"type": "query", "text": "hello", "targetLang": "xx"})
        assert websocket.receive_json() == {"type": "error", "message": "Unknown language: xx"}


def test_stream_rejects_mistyped_fields(client):
    with client.websocket_connect("/api/query/stream") as websocket:
        websocket.send_json({"type": "query", "text": 123})
        error = websocket.receive_json()
        assert error["type"] == "error"
        assert error["message"].startswith("text:")

        websocket.send_json({"type": "language", "targetLang": ["ja"]})
        error = websocket.receive_json()
        assert error["type"] == "error"
        assert error["message"].startswith("targetLang:")

        websocket.send_json({"type": "query", "text": "hello", "targetLang": "ja"})
        assert websocket.receive_json()["type"] == "sections"
