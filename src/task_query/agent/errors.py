"""Error taxonomy and LLM error classification."""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Literal

logger = logging.getLogger(__name__)

ErrorCategory = Literal[
    "context_length",
    "model_not_found",
    "bad_request",
    "invalid_credentials",
    "rate_limit",
    "server",
    "connectivity",
    "malformed_response",
    "generic",
]
Operation = Literal["parser", "analysis"]

_STATUS_IN_MESSAGE = re.compile(r"\b(400|401|403|404|429|500|502|503)\b")


@dataclass(slots=True)
class StructuredError:
    """User-facing description of an LLM failure with a remediation hint."""

    category: ErrorCategory
    operation: Operation
    message: str
    details: str
    solution: str
    model: str = ""
    status_code: int | None = None
    fallback_used: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class TaskQueryError(Exception):
    """Base class for pipeline errors."""


class ConfigurationError(TaskQueryError):
    """Invalid or incomplete configuration; surfaced immediately, never retried."""


class QueryCancelledError(TaskQueryError):
    def __init__(self, message: str = "Search cancelled by user") -> None:
        super().__init__(message)


class LLMError(TaskQueryError):
    """An LLM call failed; `structured` carries the classification."""

    def __init__(self, structured: StructuredError) -> None:
        super().__init__(structured.message)
        self.structured = structured


class SemanticParseError(LLMError):
    pass


class SummaryError(LLMError):
    pass


def malformed_response(details: str, *, model: str) -> SemanticParseError:
    return SemanticParseError(
        StructuredError(
            category="malformed_response",
            operation="parser",
            message="Model returned an unusable query analysis",
            details=details,
            solution=(
                "1. Retry the query\n"
                "2. Switch to a model that follows JSON instructions reliably\n"
                "3. Lower the number of expansions per language"
            ),
            model=model,
        )
    )


def classify_llm_error(exc: BaseException, *, model: str, operation: Operation) -> StructuredError:
    """Map any exception raised by a chat model call to a StructuredError.

    Checks run from most to least specific; the first match wins.
    """
    if isinstance(exc, LLMError):
        return exc.structured

    message = str(exc) or exc.__class__.__name__
    lowered = message.lower()
    body_code = _error_body_code(exc)
    status = _extract_status_code(exc, message)
    logger.debug(
        f"Classifying {operation} error for {model}: status={status} message={message[:200]}"
    )

    if (
        "context length" in lowered
        or "context_length" in lowered
        or "maximum context" in lowered
        or "too many tokens" in lowered
        or body_code == "context_length_exceeded"
    ):
        return _build(
            "context_length",
            operation,
            "Context length exceeded",
            _context_details(message),
            "1. Reduce the maximum number of tasks sent for analysis\n"
            "2. Start a new session to drop chat history\n"
            "3. Switch to a model with a larger context window",
            model,
            status,
        )

    if "model" in lowered and (
        "not found" in lowered
        or "does not exist" in lowered
        or "not available" in lowered
        or status == 404
    ):
        return _build(
            "model_not_found",
            operation,
            "Model not found",
            message,
            _model_not_found_hint(model),
            model,
            status,
        )

    if (
        status == 400
        or "bad request" in lowered
        or "invalid request" in lowered
        or body_code == "invalid_request_error"
    ):
        return _build(
            "bad_request",
            operation,
            "Bad request (400)",
            message,
            "1. Check the model name is correct\n"
            "2. Verify request parameters are valid\n"
            "3. Check the API endpoint configuration\n"
            "4. Try a different model",
            model,
            status or 400,
        )

    if (
        status in {401, 403}
        or "api key" in lowered
        or "authentication" in lowered
        or "unauthorized" in lowered
        or body_code == "invalid_api_key"
    ):
        return _build(
            "invalid_credentials",
            operation,
            "Invalid or missing API key",
            message,
            "1. Check the API key (no extra spaces)\n"
            "2. Verify the key is active in the provider dashboard\n"
            "3. Generate a new key if needed\n"
            "4. Make sure the provider matches the key",
            model,
            status or 401,
        )

    if (
        status == 429
        or "rate limit" in lowered
        or "too many requests" in lowered
        or body_code == "rate_limit_exceeded"
    ):
        return _build(
            "rate_limit",
            operation,
            "Rate limit exceeded",
            message,
            "1. Wait a few minutes and try again\n"
            "2. Upgrade the plan for higher limits\n"
            "3. Try another provider\n"
            "4. Reduce request frequency",
            model,
            status or 429,
        )

    if status in {500, 502, 503} or "server error" in lowered or "overloaded" in lowered:
        return _build(
            "server",
            operation,
            "Provider server error",
            message,
            "1. Wait a moment and try again\n"
            "2. Check the provider status page\n"
            "3. Try another model or provider",
            model,
            status or 500,
        )

    if (
        isinstance(exc, (ConnectionError, TimeoutError))
        or "connection" in lowered
        or "connect" in lowered
        or "network" in lowered
        or "timed out" in lowered
        or "econnrefused" in lowered
    ):
        return _build(
            "connectivity",
            operation,
            "Could not reach the model provider",
            message,
            _connectivity_hint(model),
            model,
            status,
        )

    return _build(
        "generic",
        operation,
        "Query analysis failed" if operation == "parser" else "Result analysis failed",
        message,
        "1. Retry the request\n"
        "2. Check the provider configuration\n"
        "3. Try another model",
        model,
        status,
    )


def _build(
    category: ErrorCategory,
    operation: Operation,
    message: str,
    details: str,
    solution: str,
    model: str,
    status: int | None,
) -> StructuredError:
    return StructuredError(
        category=category,
        operation=operation,
        message=message,
        details=details,
        solution=solution,
        model=model,
        status_code=status,
    )


def _extract_status_code(exc: BaseException, message: str) -> int | None:
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    for attr in ("status_code", "status"):
        value = getattr(response, attr, None)
        if isinstance(value, int):
            return value
    match = _STATUS_IN_MESSAGE.search(message)
    return int(match.group(1)) if match else None


def _error_body_code(exc: BaseException) -> str | None:
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict):
            code = error.get("code")
            return str(code) if code is not None else None
    return None


def _context_details(message: str) -> str:
    maximum = re.search(r"maximum.*?(\d+)", message, re.IGNORECASE)
    requested = re.search(r"requested.*?(\d+)", message, re.IGNORECASE)
    if maximum and requested:
        return (
            f"Maximum context: {maximum.group(1)} tokens, "
            f"but the request used: {requested.group(1)} tokens"
        )
    return message


def _model_not_found_hint(model: str) -> str:
    label = model.lower()
    if "ollama" in label:
        return (
            "1. Pull the model: ollama pull <model-name>\n"
            "2. Check available models: ollama list\n"
            "3. Verify the model name matches exactly"
        )
    if "openrouter" in label:
        return (
            "1. Check the model format: provider/model-name\n"
            "2. Verify the model exists on OpenRouter"
        )
    if "anthropic" in label or "claude" in label:
        return (
            "1. Check the model name (case-sensitive)\n"
            "2. Verify the API key has access to this model"
        )
    return (
        "1. Check the model name (case-sensitive)\n"
        "2. Verify the model exists for your provider"
    )


def _connectivity_hint(model: str) -> str:
    if "ollama" in model.lower():
        return (
            "1. Start the server: ollama serve\n"
            "2. Check the base URL (default http://localhost:11434)\n"
            "3. Verify the model is pulled: ollama list"
        )
    return (
        "1. Check your internet connection\n"
        "2. Verify the base URL of the provider\n"
        "3. Check proxy or firewall settings"
    )
