"""LLM provider access, response parsing and AI rate limiting."""

from src.llm.factory import get_default_llm, get_llm
from src.llm.parsing import estimate_tokens, extract_json
from src.llm.rate_limiter import (
    TokenBucketRateLimiter,
    get_ai_rate_limiter,
    reset_ai_rate_limiter,
)

__all__ = [
    "TokenBucketRateLimiter",
    "estimate_tokens",
    "extract_json",
    "get_ai_rate_limiter",
    "get_default_llm",
    "get_llm",
    "reset_ai_rate_limiter",
]
