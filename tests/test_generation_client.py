from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

import httpx
import openai
import pytest

from core import Article, GenerationErrorKind, GenerationResult
from generation.client import GenerationClient, extract_output_text, extract_usage, translate_exception
from utils.exceptions import ConfigurationError, GenerationError


_REQUEST = httpx.Request("POST", "https://api.openai.test/v1/responses")


def _status_error(status: int, body) -> openai.APIStatusError:
    response = httpx.Response(status, json=body, request=_REQUEST)
    return openai.APIStatusError("upstream error", response=response, body=body)


def _article() -> Article:
    return Article(
        id=7,
        feed_id=1,
        title="Chip export rules tighten",
        content_snippet="New rules take effect next month.",
        published_at=datetime(2026, 10, 15, 9, 0, tzinfo=timezone.utc),
    )


class _FakeResponses:
    def __init__(self, outcomes) -> None:
        self._outcomes = list(outcomes)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def _client(*outcomes):
    responses = _FakeResponses(outcomes)
    return GenerationClient(api_key="test-key", client=SimpleNamespace(responses=responses)), responses


def test_extract_output_text_variants() -> None:
    assert extract_output_text({"output_text": "  direct  "}) == "direct"
    assert (
        extract_output_text(
            {
                "output": [
                    {"content": [{"type": "output_text", "text": "first"}, {"type": "refusal", "text": "x"}]},
                    {"content": [{"type": "text", "text": "second"}]},
                ]
            }
        )
        == "first\n\nsecond"
    )
    assert extract_output_text({"choices": [{"message": {"content": " chat "}}]}) == "chat"
    assert extract_output_text({"output": []}) == ""


def test_extract_usage_supports_both_naming_schemes() -> None:
    assert extract_usage({"usage": {"input_tokens": 10, "output_tokens": 20}}) == (10, 20)
    assert extract_usage({"usage": {"prompt_tokens": 3, "completion_tokens": 4}}) == (3, 4)
    assert extract_usage({}) == (None, None)


@pytest.mark.parametrize(
    ("status", "body", "kind"),
    [
        (429, {"error": {"message": "slow down"}}, GenerationErrorKind.RATE_LIMITED),
        (400, {"error": {"code": "rate_limit_exceeded", "message": "quota"}}, GenerationErrorKind.RATE_LIMITED),
        (422, {"error": {"message": "bad model"}}, GenerationErrorKind.INVALID_MODEL),
        (504, {"error": {"message": "gateway"}}, GenerationErrorKind.TIMEOUT),
        (503, {"error": {"message": "down"}}, GenerationErrorKind.SERVICE_UNAVAILABLE),
        (418, {"error": {"message": "teapot"}}, GenerationErrorKind.UNKNOWN),
    ],
)
def test_translate_status_errors(status, body, kind) -> None:
    error = translate_exception(_status_error(status, body))

    assert isinstance(error, GenerationError)
    assert error.kind == kind
    assert error.status == status
    assert error.raw_payload == body


def test_translate_transport_errors() -> None:
    timeout = translate_exception(openai.APITimeoutError(request=_REQUEST))
    network = translate_exception(openai.APIConnectionError(request=_REQUEST))

    assert timeout.kind == GenerationErrorKind.TIMEOUT
    assert network.kind == GenerationErrorKind.NETWORK
    assert translate_exception(httpx.ReadTimeout("slow", request=_REQUEST)).kind == GenerationErrorKind.TIMEOUT
    assert translate_exception(ValueError("not an api error")) is None


@pytest.mark.asyncio
async def test_generate_success_returns_result_with_usage() -> None:
    client, responses = _client(
        {"output_text": "Draft post", "usage": {"input_tokens": 12, "output_tokens": 34}, "model": "gpt-4o-mini-2024"}
    )

    result = await client.generate(_article(), "SYSTEM", "gpt-4o-mini")

    assert isinstance(result, GenerationResult)
    assert result.content == "Draft post"
    assert (result.tokens_input, result.tokens_output) == (12, 34)
    assert result.model_used == "gpt-4o-mini-2024"
    sent = responses.calls[0]
    assert sent["model"] == "gpt-4o-mini"
    assert sent["input"][0]["content"][0]["text"] == "SYSTEM"
    assert "News internal ID: 7" in sent["input"][1]["content"][0]["text"]


@pytest.mark.asyncio
async def test_generate_returns_error_value_instead_of_raising() -> None:
    client, _ = _client(_status_error(503, {"error": {"message": "upstream down"}}))

    result = await client.generate(_article(), "SYSTEM", "gpt-4o-mini")

    assert isinstance(result, GenerationError)
    assert result.kind == GenerationErrorKind.SERVICE_UNAVAILABLE
    assert result.message == "Generation service unavailable (HTTP 503): upstream down"


@pytest.mark.asyncio
async def test_generate_empty_output_is_unknown_failure() -> None:
    client, _ = _client({"output": []})

    result = await client.generate(_article(), "SYSTEM", "gpt-4o-mini")

    assert isinstance(result, GenerationError)
    assert result.kind == GenerationErrorKind.UNKNOWN


@pytest.mark.asyncio
async def test_generate_without_api_key_raises_configuration_error() -> None:
    client = GenerationClient(api_key=None)

    with pytest.raises(ConfigurationError):
        await client.generate(_article(), "SYSTEM", "gpt-4o-mini")


@pytest.mark.asyncio
async def test_probe_raw_returns_upstream_status_and_body() -> None:
    body = {"error": {"code": "model_not_found", "message": "no such model"}}
    client, _ = _client(_status_error(404, body))

    result = await client.probe_raw({"model": "nope", "input": []})

    assert result.status_code == 404
    assert result.ok is False
    assert result.body == body
    assert result.model == "nope"


@pytest.mark.asyncio
async def test_probe_raw_success_and_timeout() -> None:
    client, _ = _client({"output_text": "hi", "id": "resp_1"}, openai.APITimeoutError(request=_REQUEST))

    ok = await client.probe_raw({"model": "m", "input": []})
    timed_out = await client.probe_raw({"model": "m", "input": []})

    assert ok.status_code == 200 and ok.ok is True
    assert ok.body["id"] == "resp_1"
    assert timed_out.status_code == 504
    assert timed_out.body["error"]["type"] == "timeout"
