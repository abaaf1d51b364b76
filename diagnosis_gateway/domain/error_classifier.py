"""Error classification for gateway failures.

This module maps any failure raised while serving a request to a stable
``ClassifiedError``: an HTTP status code, a public message, and whether the
failure is operational (expected, safe to show the caller) or internal.

Classification is a pure function. The failure is first tagged with an
explicit ``ErrorSource`` derived from its exception type; the tag, plus the
ledger's own message text for ledger-originated failures, decides the result.

Security Impact:
    - Internal errors never expose their message or stack in production
    - Debug detail (stack, raw error) is attached only outside production
    - Distinct causes always map to distinct messages
"""

import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from diagnosis_gateway.domain.errors import (
    DataFormatError,
    FormNotFoundError,
    IdentityNotFoundError,
    InputValidationError,
    InvalidIdentityError,
    InvalidTokenError,
    LedgerConnectivityError,
    LedgerError,
    LedgerPayloadError,
    MalformedBodyError,
    PayloadTooLargeError,
    RouteNotFoundError,
    TokenExpiredError,
)

INTERNAL_ERROR_MESSAGE = "Internal server error"

# Literal marker the ledger SDK puts in contract-originated failures.
CHAINCODE_MARKER = "chaincode"


class ErrorSource(str, Enum):
    """Where a failure came from, derived from its exception type."""
    VALIDATION = "validation"
    DATA_FORMAT = "data_format"
    INVALID_TOKEN = "invalid_token"
    EXPIRED_TOKEN = "expired_token"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    MALFORMED_BODY = "malformed_body"
    IDENTITY = "identity"
    INVALID_IDENTITY = "invalid_identity"
    LEDGER = "ledger"
    LEDGER_CONNECTIVITY = "ledger_connectivity"
    LEDGER_PAYLOAD = "ledger_payload"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"


class ErrorKind(str, Enum):
    """Taxonomy of classified failures."""
    INPUT_VALIDATION = "InputValidationError"
    DATA_FORMAT = "DataFormatError"
    AUTHENTICATION = "AuthenticationError"
    IDENTITY = "IdentityError"
    NOT_FOUND = "NotFoundError"
    LEDGER_NOT_FOUND = "LedgerNotFoundError"
    LEDGER_CONFLICT = "LedgerConflictError"
    LEDGER_DUPLICATE = "LedgerDuplicateError"
    LEDGER_CONNECTIVITY = "LedgerConnectivityError"
    INTERNAL = "InternalError"


# Order matters: subclasses before their bases.
_SOURCE_BY_TYPE: tuple[tuple[type, ErrorSource], ...] = (
    (InputValidationError, ErrorSource.VALIDATION),
    (DataFormatError, ErrorSource.DATA_FORMAT),
    (TokenExpiredError, ErrorSource.EXPIRED_TOKEN),
    (InvalidTokenError, ErrorSource.INVALID_TOKEN),
    (PayloadTooLargeError, ErrorSource.PAYLOAD_TOO_LARGE),
    (MalformedBodyError, ErrorSource.MALFORMED_BODY),
    (IdentityNotFoundError, ErrorSource.IDENTITY),
    (InvalidIdentityError, ErrorSource.INVALID_IDENTITY),
    (LedgerConnectivityError, ErrorSource.LEDGER_CONNECTIVITY),
    (LedgerError, ErrorSource.LEDGER),
    (LedgerPayloadError, ErrorSource.LEDGER_PAYLOAD),
    (FormNotFoundError, ErrorSource.NOT_FOUND),
    (RouteNotFoundError, ErrorSource.NOT_FOUND),
)

# (substring, status, message, kind), first match wins.
_LEDGER_PATTERNS: tuple[tuple[str, int, str, ErrorKind], ...] = (
    ("does not exist", 404, "Resource not found on blockchain", ErrorKind.LEDGER_NOT_FOUND),
    ("already exists", 409, "Resource already exists on blockchain", ErrorKind.LEDGER_DUPLICATE),
    ("MVCC_READ_CONFLICT", 409, "Concurrent modification error", ErrorKind.LEDGER_CONFLICT),
    ("Failed to connect", 503, "Blockchain service temporarily unavailable",
     ErrorKind.LEDGER_CONNECTIVITY),
)


@dataclass(frozen=True)
class ClassifiedError:
    """Stable, caller-facing description of a failure.

    Attributes:
        status_code: HTTP status code
        message: Public message (masked in production for internal errors)
        is_operational: True for expected failures the caller can act on
        kind: Taxonomy entry
        timestamp: When the failure was classified (UTC)
        request_id: Caller-supplied correlation id, if any
        details: Validation messages, or raw error detail outside production
        stack: Formatted traceback, only outside production
    """
    status_code: int
    message: str
    is_operational: bool
    kind: ErrorKind
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    request_id: Optional[str] = None
    details: Optional[Any] = None
    stack: Optional[str] = None

    def to_envelope(self) -> dict[str, Any]:
        """Render the shared error envelope returned by every endpoint."""
        error: dict[str, Any] = {
            "message": self.message,
            "statusCode": self.status_code,
            "timestamp": self.timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        }
        if self.stack is not None:
            error["stack"] = self.stack
        if self.details is not None:
            error["details"] = self.details
        if self.request_id:
            error["requestId"] = self.request_id
        return {"success": False, "error": error}


def tag_error(error: BaseException) -> ErrorSource:
    """Derive the explicit source tag for an exception.

    Parameters:
        error: Any exception raised while serving a request

    Returns:
        ErrorSource for the first matching exception type, UNKNOWN otherwise
    """
    for error_type, source in _SOURCE_BY_TYPE:
        if isinstance(error, error_type):
            return source
    return ErrorSource.UNKNOWN


def _classify_ledger_message(message: str) -> Optional[tuple[int, str, ErrorKind]]:
    for pattern, status_code, public_message, kind in _LEDGER_PATTERNS:
        if pattern in message:
            return status_code, public_message, kind
    return None


def classify(
    error: BaseException,
    is_production: bool,
    request_id: Optional[str] = None,
) -> ClassifiedError:
    """Classify a failure into a stable status code and public message.

    Rules are applied in a fixed order; the first match wins:

    1. Validation failure -> 400 ``Validation Error: ...``
    2. Data cast failure -> 400 ``Invalid data format``
    3. Token failure -> 401 ``Invalid token`` / ``Token expired``
    4. Oversized payload -> 400 ``File size too large``
    5. Malformed body -> 400 ``Invalid JSON format``
    6. Ledger message (ledger-raised, or containing ``chaincode``) refined by
       sub-pattern into 404 / 409 / 409 / 503
    7. Missing or unloadable identity -> 503, connectivity -> 503, missing
       form or route -> 404 with the error's own message
    8. Anything else, including an undecodable ledger result -> 500,
       non-operational

    Parameters:
        error: The failure to classify
        is_production: Mask internal messages and omit debug detail when True
        request_id: Caller-supplied correlation id to echo back

    Returns:
        ClassifiedError describing the failure
    """
    source = tag_error(error)
    message = str(error)
    details: Optional[Any] = None
    status_code = 500
    public_message = message or INTERNAL_ERROR_MESSAGE
    kind = ErrorKind.INTERNAL
    is_operational = False
    matched = True

    if source is ErrorSource.VALIDATION:
        status_code, public_message, kind = 400, f"Validation Error: {message}", ErrorKind.INPUT_VALIDATION
        details = list(error.details)
    elif source is ErrorSource.DATA_FORMAT:
        status_code, public_message, kind = 400, "Invalid data format", ErrorKind.DATA_FORMAT
    elif source is ErrorSource.INVALID_TOKEN:
        status_code, public_message, kind = 401, "Invalid token", ErrorKind.AUTHENTICATION
    elif source is ErrorSource.EXPIRED_TOKEN:
        status_code, public_message, kind = 401, "Token expired", ErrorKind.AUTHENTICATION
    elif source is ErrorSource.PAYLOAD_TOO_LARGE:
        status_code, public_message, kind = 400, "File size too large", ErrorKind.INPUT_VALIDATION
    elif source is ErrorSource.MALFORMED_BODY:
        status_code, public_message, kind = 400, "Invalid JSON format", ErrorKind.INPUT_VALIDATION
    else:
        matched = False

    if matched:
        is_operational = True
    elif source in (ErrorSource.LEDGER, ErrorSource.LEDGER_CONNECTIVITY) or CHAINCODE_MARKER in message:
        ledger_match = _classify_ledger_message(message)
        if ledger_match is not None:
            status_code, public_message, kind = ledger_match
            is_operational = True

    if not is_operational:
        if source is ErrorSource.IDENTITY:
            status_code, public_message, kind = 503, "Blockchain identity not found", ErrorKind.IDENTITY
            is_operational = True
        elif source is ErrorSource.INVALID_IDENTITY:
            status_code, public_message, kind = (
                503, "Blockchain identity could not be loaded", ErrorKind.IDENTITY
            )
            is_operational = True
        elif source is ErrorSource.LEDGER_CONNECTIVITY:
            status_code, public_message, kind = (
                503, "Blockchain service temporarily unavailable", ErrorKind.LEDGER_CONNECTIVITY
            )
            is_operational = True
        elif source is ErrorSource.NOT_FOUND:
            status_code, public_message, kind = 404, message, ErrorKind.NOT_FOUND
            is_operational = True

    if is_production and not is_operational:
        public_message = INTERNAL_ERROR_MESSAGE

    stack = None
    if not is_production:
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        if details is None:
            details = {"type": type(error).__name__, "message": message}

    return ClassifiedError(
        status_code=status_code,
        message=public_message,
        is_operational=is_operational,
        kind=kind,
        request_id=request_id,
        details=details,
        stack=stack,
    )
