"""Transport-side error helpers.

SDK exceptions are mapped into ``TransportError`` with retry metadata at the
transport boundary so callers never handle raw ``botocore`` exceptions.
"""

from __future__ import annotations

from typing import Any

from botocore.exceptions import (
    ConnectionError as BotoConnectionError,
)
from botocore.exceptions import (
    HTTPClientError,
    NoCredentialsError,
    NoRegionError,
    PartialCredentialsError,
)

from bedrock_chat.errors import (
    ThrottlingError,
    TransportError,
    _walk_exception_chain,
)

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})

# Error codes that Bedrock reports either as ClientError codes or as
# exception frames inside an open response stream.
RETRYABLE_ERROR_CODES: frozenset[str] = frozenset(
    {
        "ThrottlingException",
        "ServiceUnavailableException",
        "InternalServerException",
        "ModelTimeoutException",
    }
)

STREAM_EXCEPTION_STATUS: dict[str, int] = {
    "internalServerException": 500,
    "modelStreamErrorException": 424,
    "throttlingException": 429,
    "validationException": 400,
    "modelTimeoutException": 408,
    "serviceUnavailableException": 503,
}


def extract_status_code(exc: BaseException) -> int | None:
    """Walk the exception chain to find an HTTP status code."""
    for e in _walk_exception_chain(exc):
        value = getattr(e, "status_code", None)
        if isinstance(value, int) and 100 <= value <= 599:
            return value
        response: Any = getattr(e, "response", None)
        if isinstance(response, dict):
            meta = response.get("ResponseMetadata")
            value = meta.get("HTTPStatusCode") if isinstance(meta, dict) else None
            if isinstance(value, int) and 100 <= value <= 599:
                return value
    return None


def normalize_error_code(code: str) -> str:
    """Capitalize the first letter of a service error code.

    Errors raised mid-stream spell codes in lower camel case
    (``throttlingException``); call errors use ``ThrottlingException``.
    """
    return code[:1].upper() + code[1:]


def extract_error_code(exc: BaseException) -> str | None:
    """Walk the exception chain to find a service error code, normalized."""
    for e in _walk_exception_chain(exc):
        response: Any = getattr(e, "response", None)
        if isinstance(response, dict):
            error = response.get("Error")
            code = error.get("Code") if isinstance(error, dict) else None
            if isinstance(code, str) and code:
                return normalize_error_code(code)
    return None


def _hint_for(exc: BaseException, status_code: int | None, error_code: str | None) -> str | None:
    if isinstance(exc, (NoCredentialsError, PartialCredentialsError)):
        return "Configure AWS credentials (aws configure, AWS_PROFILE or AWS_ACCESS_KEY_ID)."
    if isinstance(exc, NoRegionError):
        return "Pass --region or set AWS_REGION."
    if status_code in {401, 403} or error_code == "AccessDeniedException":
        return "Check IAM permissions and that model access is enabled in this region."
    if error_code == "ResourceNotFoundException" or status_code == 404:
        return "Model not found in this region; run `chat-cli models --list`."
    if status_code == 429:
        return "Request rate exceeded; wait and retry."
    return None


def wrap_transport_error(
    exc: BaseException,
    *,
    provider: str,
    phase: str,
    message: str | None = None,
) -> TransportError:
    """Map SDK exceptions into TransportError with stable retry metadata."""
    # Already wrapped: fill in missing context only.
    if isinstance(exc, TransportError):
        if exc.provider is None:
            exc.provider = provider
        if exc.phase is None:
            exc.phase = phase
        return exc

    status_code = extract_status_code(exc)
    error_code = extract_error_code(exc)

    retryable = False
    if isinstance(status_code, int) and status_code in RETRYABLE_STATUS_CODES:
        retryable = True
    elif error_code in RETRYABLE_ERROR_CODES:
        retryable = True
    else:
        for e in _walk_exception_chain(exc):
            if isinstance(e, (BotoConnectionError, HTTPClientError)):
                retryable = True
                break

    err_cls: type[TransportError] = TransportError
    if status_code == 429 or error_code == "ThrottlingException":
        err_cls = ThrottlingError

    msg = message or f"{provider} {phase} failed"
    status_note = f" (status={status_code})" if isinstance(status_code, int) else ""
    cause = str(exc)
    return err_cls(
        f"{msg}{status_note}: {cause}" if cause else f"{msg}{status_note}",
        hint=_hint_for(exc, status_code, error_code),
        retryable=retryable,
        status_code=status_code,
        error_code=error_code,
        provider=provider,
        phase=phase,
    )


def stream_exception_error(tag: str, raw: Any, *, provider: str) -> TransportError:
    """Build the terminal error for an exception frame inside a response stream."""
    detail = raw.get("message") if isinstance(raw, dict) else None
    status_code = STREAM_EXCEPTION_STATUS.get(tag)
    error_code = normalize_error_code(tag)
    err_cls: type[TransportError] = (
        ThrottlingError if error_code == "ThrottlingException" else TransportError
    )
    return err_cls(
        f"{provider} stream failed ({error_code}): {detail or raw!r}",
        retryable=error_code in RETRYABLE_ERROR_CODES,
        status_code=status_code,
        error_code=error_code,
        provider=provider,
        phase="stream",
    )
