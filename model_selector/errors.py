"""Error taxonomy and failure classification for the fallback chain.

Categories, in precedence order:
  - RATE_LIMIT: no retry, fall back (quota exhausted)
  - AUTH: no retry, fall back (credentials invalid)
  - INVALID_REQUEST: no retry, no fallback (bad input fails everywhere)
  - TRANSIENT: retry with backoff, then fall back
  - UNKNOWN: treated as transient
"""

import re
from dataclasses import dataclass
from enum import Enum


class ModelSelectorError(Exception):
    pass


# ---------- Query / ranking ----------
class QueryError(ModelSelectorError, ValueError):
    pass


class EmptyQuery(QueryError):
    def __init__(self, message="Empty query"):
        super().__init__(message)


class InvalidCondition(QueryError):
    def __init__(self, token: str):
        self.token = token
        super().__init__(f'Invalid query condition: "{token}"')


class NoCandidates(ModelSelectorError, ValueError):
    def __init__(self, message="No models configured or all models are disabled"):
        super().__init__(message)


class NoCandidatesAvailable(NoCandidates):
    def __init__(self, message="No models available to try"):
        super().__init__(message)


# ---------- Execution ----------
class AttemptTimeoutError(ModelSelectorError, TimeoutError):
    def __init__(self, timeout_ms: float):
        self.timeout_ms = timeout_ms
        super().__init__(f"Request timed out after {timeout_ms:g}ms")


class AllCandidatesFailedError(ModelSelectorError, RuntimeError):
    def __init__(self, failures, attempts=()):
        self.failures = list(failures)
        self.attempts = list(attempts)
        names = ", ".join(name for name, _ in self.failures)
        super().__init__(f"All models failed: {names}")

    @property
    def errors(self) -> list[BaseException]:
        return [err for _, err in self.failures]


class ObjectParseError(ModelSelectorError):
    """A model answered, but its output does not fit the requested schema."""

    def __init__(self, schema_name: str, details=()):
        self.schema_name = schema_name
        self.details = list(details)
        super().__init__(
            f"Model output did not parse as {schema_name} ({len(self.details)} problem(s))"
        )


# ---------- Config / providers ----------
class ConfigError(ModelSelectorError):
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    PARSE_ERROR = "PARSE_ERROR"
    INVALID_CONFIG = "INVALID_CONFIG"
    INVALID_MODEL = "INVALID_MODEL"
    INVALID_ALIAS = "INVALID_ALIAS"
    UNKNOWN_PROVIDER = "UNKNOWN_PROVIDER"

    def __init__(self, message: str, code: str = INVALID_CONFIG):
        self.code = code
        super().__init__(message)


class ProviderError(ModelSelectorError):
    pass


# ---------- Classification ----------
class ErrorCategory(str, Enum):
    RATE_LIMIT = "RATE_LIMIT"
    AUTH = "AUTH"
    TRANSIENT = "TRANSIENT"
    INVALID_REQUEST = "INVALID_REQUEST"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class ClassificationRule:
    category: ErrorCategory
    patterns: tuple[re.Pattern, ...]
    should_retry: bool
    should_fallback: bool
    label: str = ""

    def matches(self, text: str) -> bool:
        return any(p.search(text) for p in self.patterns)


def _rx(*patterns: str) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


DEFAULT_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        ErrorCategory.RATE_LIMIT,
        _rx(
            r"rate.?limit",
            r"too.?many.?requests",
            r"quota.?exceeded",
            r"capacity",
            r"overloaded",
            r"429",
        ),
        should_retry=False,
        should_fallback=True,
        label="Rate limit",
    ),
    ClassificationRule(
        ErrorCategory.AUTH,
        _rx(
            r"unauthori[sz]ed",
            r"invalid.?api.?key",
            r"api.?key.?invalid",
            r"authentication",
            r"forbidden",
            r"401",
            r"403",
        ),
        should_retry=False,
        should_fallback=True,
        label="Authentication error",
    ),
    ClassificationRule(
        ErrorCategory.INVALID_REQUEST,
        _rx(
            r"invalid.?request",
            r"bad.?request",
            r"validation",
            r"malformed",
            r"400",
            r"context.?length",
            r"token.?limit",
            r"max.?tokens",
            r"content.?filter",
            r"safety",
        ),
        should_retry=False,
        should_fallback=False,
        label="Invalid request",
    ),
    ClassificationRule(
        ErrorCategory.TRANSIENT,
        _rx(
            r"timeout",
            r"timed.?out",
            r"network",
            r"connection",
            r"econnrefused",
            r"econnreset",
            r"enotfound",
            r"socket",
            r"50[0234]",
            r"service.?unavailable",
            r"internal.?server.?error",
            r"temporarily",
        ),
        should_retry=True,
        should_fallback=True,
        label="Transient error",
    ),
)


@dataclass(frozen=True)
class ClassifiedError:
    category: ErrorCategory
    original: object
    message: str
    should_retry: bool
    should_fallback: bool


def _field(error, name: str):
    if isinstance(error, dict):
        return error.get(name)
    return getattr(error, name, None)


def _message(error) -> str:
    if not isinstance(error, BaseException):
        message = _field(error, "message")
        if isinstance(message, str):
            return message
    return str(error)


def error_text(error) -> str:
    """Flatten an error (or any error-like object) into one searchable string."""
    parts = [_message(error)]
    for attr in ("status", "status_code", "statusCode"):
        value = _field(error, attr)
        if isinstance(value, int) and not isinstance(value, bool):
            parts.append(str(value))
    code = _field(error, "code")
    if isinstance(code, str):
        parts.append(code)

    for cause in (_field(error, "cause"), getattr(error, "__cause__", None)):
        if cause is None:
            continue
        if isinstance(cause, BaseException):
            parts.append(str(cause))
        elif isinstance(_field(cause, "message"), str):
            parts.append(_field(cause, "message"))
    return " ".join(p for p in parts if p)


def _first_rule(text: str, rules) -> ClassificationRule | None:
    return next((rule for rule in rules if rule.matches(text)), None)


def classify(error, rules: tuple[ClassificationRule, ...] = DEFAULT_RULES) -> ClassifiedError:
    """
    Map any failure onto a retry/fallback policy. First matching rule wins.

    The exception class name (e.g. an SDK's `RateLimitError`) is consulted
    only when the message, status, code and cause match no rule.
    """
    rule = _first_rule(error_text(error), rules) or _first_rule(type(error).__name__, rules)
    if rule is None:
        return ClassifiedError(
            category=ErrorCategory.UNKNOWN,
            original=error,
            message=_message(error),
            should_retry=True,
            should_fallback=True,
        )
    return ClassifiedError(
        category=rule.category,
        original=error,
        message=f"{rule.label}: {_message(error)}" if rule.label else _message(error),
        should_retry=rule.should_retry,
        should_fallback=rule.should_fallback,
    )
