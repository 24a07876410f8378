"""Tests for the post refresh / preview HTTP API."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import importlib

from fastapi.testclient import TestClient

from core import Article, Feed, GenerationResult, Prompt, RawProbeResult
from generation.backoff import BackoffPolicy
from generation.preview import PreviewBuilder
from orchestrator.coordinator import GenerationRunCoordinator
from storage.memory import InMemoryArticleStore, InMemoryPromptStore, SettingsOwnerConfigSource

webapp_module = importlib.import_module("webapp.app")

OWNER_HEADERS = {"X-Owner-Key": "owner-1"}
ADMIN_HEADERS = {"X-Owner-Key": "owner-1", "X-Owner-Role": "admin"}


class FakeGenerationClient:
    def __init__(self, probe_body=None, probe_status: int = 200) -> None:
        self.calls = []
        self.probe_body = probe_body if probe_body is not None else {"id": "resp_1", "output_text": "hi"}
        self.probe_status = probe_status

    async def generate(self, article, assembled_prompt, model, *, feed=None):
        self.calls.append(article.id)
        return GenerationResult(content=f"Post about {article.title}", tokens_input=5, tokens_output=9)

    async def probe_raw(self, payload):
        return RawProbeResult(
            status_code=self.probe_status,
            ok=self.probe_status < 400,
            body=self.probe_body,
            model=payload["model"],
        )


def _client(monkeypatch, fake=None):
    now = datetime.now(timezone.utc)
    store = InMemoryArticleStore()
    prompts = InMemoryPromptStore()
    store.add_feed(Feed(id=1, owner_key="owner-1", title="Tech", url="https://tech.test/rss"))
    store.add_article(Article(id=1, feed_id=1, title="Launch", published_at=now - timedelta(hours=3)))
    store.add_article(Article(id=2, feed_id=1, title="Funding", published_at=now - timedelta(hours=2)))
    prompts.add_prompt(Prompt(id=1, owner_key="owner-1", title="Voice", content="Crisp", position=0))
    config_source = SettingsOwnerConfigSource({"window_days": 7, "cooldown_seconds": 3600, "model": "gpt-test"})
    fake = fake or FakeGenerationClient()

    coordinator = GenerationRunCoordinator(
        store=store,
        prompts=prompts,
        config_source=config_source,
        client=fake,
        backoff=BackoffPolicy(base_delay_ms=1, max_delay_ms=2, max_attempts=2),
    )
    preview_builder = PreviewBuilder(store=store, prompts=prompts, config_source=config_source, client=fake)
    monkeypatch.setattr(webapp_module, "get_coordinator", lambda: coordinator)
    monkeypatch.setattr(webapp_module, "get_preview_builder", lambda: preview_builder)
    return TestClient(webapp_module.app), fake


def test_health(monkeypatch):
    client, _ = _client(monkeypatch)
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


def test_refresh_requires_owner_header(monkeypatch):
    client, fake = _client(monkeypatch)

    assert client.post("/posts/refresh").status_code == 401
    assert client.get("/posts/refresh-status").json()["detail"]["code"] == "UNAUTHENTICATED"
    assert fake.calls == []


def test_refresh_runs_then_cooldown_rejects(monkeypatch):
    client, fake = _client(monkeypatch)

    first = client.post("/posts/refresh", headers=OWNER_HEADERS)
    assert first.status_code == 200
    body = first.json()
    assert body["phase"] == "completed"
    assert body["articles_created"] == 2
    assert body["generation"]["generated_count"] == 2
    assert body["feeds"][0]["feed_id"] == 1
    assert fake.calls == [1, 2]

    second = client.post("/posts/refresh", headers=OWNER_HEADERS)
    assert second.status_code == 429
    detail = second.json()["detail"]
    assert detail["code"] == "COOLDOWN_ACTIVE"
    assert 0 < detail["seconds_remaining"] <= 3600
    assert detail["outcome"]["feeds"][0]["skipped_by_cooldown"] is True
    assert fake.calls == [1, 2]


def test_refresh_status_is_null_when_idle(monkeypatch):
    client, _ = _client(monkeypatch)

    resp = client.get("/posts/refresh-status", headers=OWNER_HEADERS)

    assert resp.status_code == 200
    assert resp.json() == {"owner_key": "owner-1", "status": None}


def test_preview_requires_admin_role(monkeypatch):
    client, _ = _client(monkeypatch)

    assert client.get("/posts/preview", headers={"X-Owner-Key": "owner-1"}).status_code == 403
    assert client.get("/posts/preview/raw", headers={"X-Owner-Key": "owner-1", "X-Owner-Role": "member"}).status_code == 403


def test_preview_returns_prompt_and_payload(monkeypatch):
    client, fake = _client(monkeypatch)

    resp = client.get("/posts/preview", params={"newsId": 2}, headers=ADMIN_HEADERS)

    assert resp.status_code == 200
    body = resp.json()
    assert body["model"] == "gpt-test"
    assert len(body["prompt_base_hash"]) == 64
    assert body["news_payload"]["article"]["id"] == 2
    assert fake.calls == []


def test_preview_unknown_news_is_404(monkeypatch):
    client, _ = _client(monkeypatch)

    resp = client.get("/posts/preview", params={"newsId": 404}, headers=ADMIN_HEADERS)

    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "NEWS_NOT_FOUND"


def test_raw_probe_passes_through_upstream_status_and_body(monkeypatch):
    upstream = {"error": {"code": "rate_limit_exceeded", "message": "slow down"}}
    client, _ = _client(monkeypatch, FakeGenerationClient(probe_body=upstream, probe_status=429))

    resp = client.get("/posts/preview/raw", params={"newsId": 1}, headers=ADMIN_HEADERS)

    assert resp.status_code == 429
    assert resp.json() == upstream


def test_raw_probe_plain_text_body(monkeypatch):
    client, _ = _client(monkeypatch, FakeGenerationClient(probe_body="Bad Gateway", probe_status=502))

    resp = client.get("/posts/preview/raw", headers=ADMIN_HEADERS)

    assert resp.status_code == 502
    assert resp.text == "Bad Gateway"
