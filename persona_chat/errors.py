from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


class ErrorKind(Enum):
    NETWORK = "network"
    ZERO_QUOTA = "zero_quota"
    RATE_LIMIT = "rate_limit"
    QUOTA_EXHAUSTED = "quota_exhausted"
    SAFETY_BLOCKED = "safety_blocked"
    OTHER = "other"


class GenerationError(Exception):
    """Base class for every failure raised by the generation layer."""

    kind = ErrorKind.OTHER


class NetworkError(GenerationError):
    kind = ErrorKind.NETWORK


class ZeroQuotaError(GenerationError):
    """The account has no quota at all (billing/config problem). Never retried."""

    kind = ErrorKind.ZERO_QUOTA


class RateLimitError(GenerationError):
    kind = ErrorKind.RATE_LIMIT

    def __init__(self, message: str = "", retry_hint: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_hint = retry_hint


class QuotaExhaustedError(RateLimitError):
    """Hard quota hit; the fallback chain should move on instead of retrying."""

    kind = ErrorKind.QUOTA_EXHAUSTED


class SafetyBlockedError(GenerationError):
    kind = ErrorKind.SAFETY_BLOCKED


@dataclass
class ProviderAttempt:
    provider: str
    kind: ErrorKind
    detail: str = ""


class ExhaustionError(GenerationError):
    """Raised only once every provider in the chain has failed."""

    def __init__(self, attempts: Optional[List[ProviderAttempt]] = None) -> None:
        self.attempts = list(attempts or [])
        names = ", ".join(f"{a.provider}={a.kind.value}" for a in self.attempts) or "none"
        super().__init__(f"all providers failed ({names})")


_BILLING_RE = re.compile(
    r"account is not active|billing details|insufficient funds|payment required|\"?quota_limit_value\"?\s*:\s*\"?0\"?(?!\d)",
    re.IGNORECASE,
)
_NETWORK_RE = re.compile(
    r"networkerror|failed to fetch|socket hang up|econnreset|econnrefused|connection error|"
    r"connection refused|connection reset|name or service not known|\bcors\b",
    re.IGNORECASE,
)
_QUOTA_EXHAUSTED_RE = re.compile(
    r"resource_exhausted|quota exceeded|quota exhausted|exceeded your current quota|"
    r"insufficient_quota|generaterequestsperdayperprojectpermodel",
    re.IGNORECASE,
)
_RATE_LIMIT_RE = re.compile(
    r"\b429\b|\b503\b|rate limit|rate_limit|too many requests|overloaded|\bunavailable\b|\bquota\b",
    re.IGNORECASE,
)
_SAFETY_RE = re.compile(r"\bsafety\b|content_filter|content filter|prompt_blocked|blocked by", re.IGNORECASE)

_RETRY_DELAY_RE = re.compile(r"retryDelay\\?\"?\s*:\s*\\?\"?(\d+(?:\.\d+)?)s", re.IGNORECASE)
_RETRY_IN_RE = re.compile(r"retry in\s+([0-9.]+)\s*s", re.IGNORECASE)


def error_text(error: BaseException) -> str:
    return str(error) or error.__class__.__name__


def classify_error(error: BaseException) -> ErrorKind:
    """Map an arbitrary exception onto the generation error taxonomy.

    Typed errors keep their kind. Anything else is classified by message
    markers, checked from most to least specific.
    """
    if isinstance(error, ExhaustionError):
        return ErrorKind.OTHER
    if isinstance(error, GenerationError) and error.kind is not ErrorKind.OTHER:
        return error.kind
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return ErrorKind.NETWORK

    text = error_text(error)
    if _BILLING_RE.search(text):
        return ErrorKind.ZERO_QUOTA
    if _NETWORK_RE.search(text):
        return ErrorKind.NETWORK
    if _QUOTA_EXHAUSTED_RE.search(text):
        return ErrorKind.QUOTA_EXHAUSTED
    if _RATE_LIMIT_RE.search(text):
        return ErrorKind.RATE_LIMIT
    if _SAFETY_RE.search(text):
        return ErrorKind.SAFETY_BLOCKED
    return ErrorKind.OTHER


def parse_retry_hint(error: BaseException) -> Optional[float]:
    """Seconds the provider asked us to wait, if the error says so."""
    hint = getattr(error, "retry_hint", None)
    if hint is not None:
        return float(hint)
    text = error_text(error)
    m = _RETRY_DELAY_RE.search(text) or _RETRY_IN_RE.search(text)
    if not m:
        return None
    try:
        return float(m.group(1))
    except ValueError:
        return None


def as_generation_error(error: BaseException, kind: Optional[ErrorKind] = None) -> BaseException:
    """Wrap a raw provider exception in the matching taxonomy class.

    Errors of kind OTHER are returned untouched so they propagate as-is.
    """
    kind = kind or classify_error(error)
    if isinstance(error, GenerationError) and error.kind is kind:
        return error
    text = error_text(error)
    if kind is ErrorKind.NETWORK:
        return NetworkError(text)
    if kind is ErrorKind.ZERO_QUOTA:
        return ZeroQuotaError(text)
    if kind is ErrorKind.QUOTA_EXHAUSTED:
        return QuotaExhaustedError(text, retry_hint=parse_retry_hint(error))
    if kind is ErrorKind.RATE_LIMIT:
        return RateLimitError(text, retry_hint=parse_retry_hint(error))
    if kind is ErrorKind.SAFETY_BLOCKED:
        return SafetyBlockedError(text)
    return error
