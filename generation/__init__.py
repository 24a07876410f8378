"""
Generation Module
Backoff, error classification, prompt assembly, API adapter and preview
"""
from .backoff import BackoffPolicy
from .classifier import classify_status, is_rate_limit_payload
from .client import GenerationClient, extract_output_text, translate_exception
from .preview import PreviewBuilder
from .prompts import PromptBase, build_generation_payload, build_news_payload, build_prompt_base
from .selection import Candidate, collect_candidates

__all__ = [
    "BackoffPolicy",
    "classify_status",
    "is_rate_limit_payload",
    "GenerationClient",
    "extract_output_text",
    "translate_exception",
    "PreviewBuilder",
    "PromptBase",
    "build_generation_payload",
    "build_news_payload",
    "build_prompt_base",
    "Candidate",
    "collect_candidates",
]
