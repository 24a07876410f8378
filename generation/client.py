"""
Generation Client
Single-call adapter over the OpenAI Responses API
"""
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
import asyncio
import inspect
import logging

import httpx
import openai

from config import get_openai_settings
from core import Article, Feed, GenerationErrorKind, GenerationResult, RawProbeResult
from utils.exceptions import ConfigurationError, GenerationError
from .classifier import classify_status, extract_error_message
from .prompts import build_generation_payload


logger = logging.getLogger(__name__)

TEXTUAL_TYPES = {"text", "output_text"}

KIND_LABELS = {
    GenerationErrorKind.RATE_LIMITED: "Generation service is receiving too many requests",
    GenerationErrorKind.INVALID_MODEL: "Invalid generation model",
    GenerationErrorKind.TIMEOUT: "Generation request timed out",
    GenerationErrorKind.SERVICE_UNAVAILABLE: "Generation service unavailable",
    GenerationErrorKind.NETWORK: "Network error reaching the generation service",
    GenerationErrorKind.UNKNOWN: "Generation request failed",
}


def _as_payload(response: Any) -> Dict[str, Any]:
    if isinstance(response, Mapping):
        return dict(response)
    dump = getattr(response, "model_dump", None)
    if callable(dump):
        return dump()
    return {}


def _first_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _text_from_entry(entry: Any) -> Optional[str]:
    if isinstance(entry, str):
        return _first_text(entry)
    if not isinstance(entry, Mapping) or entry.get("type") not in TEXTUAL_TYPES:
        return None
    for key in ("text", "data", "output_text", "value"):
        text = _first_text(entry.get(key))
        if text:
            return text
    return None


def extract_output_text(response: Any) -> str:
    """
    Pull generated text out of a Responses (or Chat Completions) payload.

    Checks ``output_text`` first, then ``output[].content[]`` entries of a
    textual type, then ``choices[0].message.content``.
    """
    direct = _first_text(getattr(response, "output_text", None))
    if direct:
        return direct

    payload = _as_payload(response)
    direct = _first_text(payload.get("output_text"))
    if direct:
        return direct

    parts: List[str] = []
    for chunk in payload.get("output") or []:
        if not isinstance(chunk, Mapping):
            continue
        for entry in chunk.get("content") or []:
            text = _text_from_entry(entry)
            if text:
                parts.append(text)
    if parts:
        return "\n\n".join(parts).strip()

    choices = payload.get("choices") or []
    if choices and isinstance(choices[0], Mapping):
        message = choices[0].get("message") or {}
        content = message.get("content") if isinstance(message, Mapping) else None
        if isinstance(content, str):
            return content.strip()
        if isinstance(content, list):
            collected = [text for text in (_text_from_entry(item) for item in content) if text]
            return "\n".join(collected).strip()

    return ""


def extract_usage(response: Any) -> Tuple[Optional[int], Optional[int]]:
    usage = _as_payload(response).get("usage") or {}
    if not isinstance(usage, Mapping):
        return None, None
    tokens_in = usage.get("input_tokens", usage.get("prompt_tokens"))
    tokens_out = usage.get("output_tokens", usage.get("completion_tokens"))
    return tokens_in, tokens_out


def _response_body(response: Optional[httpx.Response]) -> Any:
    if response is None:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _describe(kind: GenerationErrorKind, status: Optional[int], detail: Optional[str]) -> str:
    label = KIND_LABELS[kind]
    if status is not None:
        label = f"{label} (HTTP {status})"
    return f"{label}: {detail}" if detail else label


def translate_exception(exc: BaseException) -> Optional[GenerationError]:
    """
    Turn an SDK / transport exception into a GenerationError.

    Returns None for exceptions that are not upstream API failures, which the
    caller should let propagate.
    """
    if isinstance(exc, openai.APITimeoutError):
        kind, status, payload = GenerationErrorKind.TIMEOUT, None, None
    elif isinstance(exc, openai.APIStatusError):
        status = exc.status_code
        payload = _response_body(exc.response)
        if payload is None:
            payload = exc.body
        kind = classify_status(status, payload)
    elif isinstance(exc, openai.APIConnectionError):
        kind, status, payload = GenerationErrorKind.NETWORK, None, None
    elif isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        kind, status, payload = GenerationErrorKind.TIMEOUT, None, None
    elif isinstance(exc, httpx.TransportError):
        kind, status, payload = GenerationErrorKind.NETWORK, None, None
    else:
        return None

    detail = extract_error_message(payload) or str(exc) or None
    return GenerationError(_describe(kind, status, detail), kind=kind, status=status, raw_payload=payload)


class GenerationClient:
    """
    OpenAI Responses adapter for one article per call.

    SDK-level retries are disabled; rate-limit retries belong to the caller's
    backoff policy.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        client: Any = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self._async_client = client

    @property
    def provider(self) -> str:
        return "openai"

    @classmethod
    def from_settings(cls) -> "GenerationClient":
        settings = get_openai_settings()
        return cls(
            api_key=settings.api_key,
            base_url=settings.base_url,
            timeout=settings.timeout_seconds,
        )

    def _get_async_client(self):
        """Create the SDK client on first use"""
        if self._async_client is None:
            if not str(self.api_key or "").strip():
                raise ConfigurationError("OPENAI_API_KEY is not configured")
            self._async_client = openai.AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._async_client

    async def generate(
        self,
        article: Article,
        assembled_prompt: str,
        model: str,
        *,
        feed: Optional[Feed] = None,
    ) -> Union[GenerationResult, GenerationError]:
        """
        Generate a post for one article.

        Args:
            article: source article
            assembled_prompt: system prompt built from the owner's prompts
            model: model name
            feed: optional feed, included in the article context

        Returns:
            GenerationResult, or a GenerationError value for upstream failures
        """
        payload = build_generation_payload(article, assembled_prompt, model, feed)
        client = self._get_async_client()

        try:
            response = await client.responses.create(**payload)
        except Exception as exc:
            error = translate_exception(exc)
            if error is None:
                raise
            logger.debug(f"[{self.provider}] article {article.id} failed: {error.kind.value} status={error.status}")
            return error

        content = extract_output_text(response)
        if not content:
            return GenerationError(
                _describe(GenerationErrorKind.UNKNOWN, None, "response did not contain text output"),
                kind=GenerationErrorKind.UNKNOWN,
                raw_payload=_as_payload(response),
            )

        tokens_in, tokens_out = extract_usage(response)
        model_used = _as_payload(response).get("model") or model
        logger.debug(f"[{self.provider}] usage model={model_used} input={tokens_in} output={tokens_out}")
        return GenerationResult(
            content=content,
            tokens_input=tokens_in,
            tokens_output=tokens_out,
            model_used=model_used,
        )

    async def probe_raw(self, payload: Dict[str, Any]) -> RawProbeResult:
        """Execute one call and return the upstream status and body untouched."""
        client = self._get_async_client()
        model = payload.get("model")

        try:
            response = await client.responses.create(**payload)
        except openai.APIStatusError as exc:
            return RawProbeResult(
                status_code=exc.status_code,
                ok=False,
                body=_response_body(exc.response),
                model=model,
            )
        except openai.APITimeoutError as exc:
            return RawProbeResult(
                status_code=504,
                ok=False,
                body={"error": {"type": "timeout", "message": str(exc)}},
                model=model,
            )
        except openai.APIConnectionError as exc:
            return RawProbeResult(
                status_code=502,
                ok=False,
                body={"error": {"type": "network_error", "message": str(exc)}},
                model=model,
            )

        return RawProbeResult(status_code=200, ok=True, body=_as_payload(response), model=model)

    async def aclose(self) -> None:
        client = self._async_client
        if client is None:
            return
        close_fn = getattr(client, "close", None)
        if callable(close_fn):
            maybe_awaitable = close_fn()
            if inspect.isawaitable(maybe_awaitable):
                await maybe_awaitable
        self._async_client = None
