"""Security utilities for preventing information disclosure."""

import re

from admin_agent.errors import ExpiredRun, NotFoundError, ProvidersExhausted, ValidationError

_AUTH_SCHEME = re.compile(r"(?i)\b(bearer|basic)\s+[A-Za-z0-9._~+/=-]+")
_SECRET_PARAM = re.compile(r"(?i)\b(api[_-]?key|token|password|cookie)=([^&\s]+)")


def redact_secrets(text: str) -> str:
    """Mask credentials that may appear in URLs, headers, or error strings."""
    text = _AUTH_SCHEME.sub(lambda m: f"{m.group(1)} [redacted]", text)
    return _SECRET_PARAM.sub(lambda m: f"{m.group(1)}=[redacted]", text)


def sanitize_error_message(error: Exception) -> str:
    """Create a user-friendly error message without exposing sensitive details.

    The agent's own error types carry messages written for operators and are
    returned as-is (minus credentials). Everything else is categorized.

    Args:
        error: The exception that occurred

    Returns:
        A sanitized, user-friendly error message
    """
    if isinstance(error, (NotFoundError, ExpiredRun, ValidationError)):
        return redact_secrets(str(error))
    if isinstance(error, ProvidersExhausted):
        return "The language model service is busy. Please wait a moment and try again."

    error_type = type(error).__name__
    error_str = redact_secrets(str(error))
    error_str = re.sub(r"/[^\s]+", "[path]", error_str)
    error_str = re.sub(r"0x[0-9a-fA-F]+", "[address]", error_str)
    lowered = error_str.lower()

    if "Connection" in error_type or "connection" in lowered:
        return "Unable to reach a required service. Please try again in a moment."
    elif "Timeout" in error_type or "timeout" in lowered:
        return "The request took too long to process. Please try again with a simpler request."
    elif "RateLimit" in error_type or "rate limit" in lowered:
        return "Too many requests. Please wait a moment and try again."
    elif "Permission" in error_type or "forbidden" in lowered or "unauthorized" in lowered:
        return "Permission denied for this operation."
    elif "Config" in error_type:
        return "Service configuration error. Please contact support."
    else:
        return "An error occurred while processing your request. Please try again."
