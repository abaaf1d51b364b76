"""Gateway exception hierarchy.

Every failure the gateway can produce is raised as one of these types so the
error classifier can tag it explicitly instead of probing attribute names.

Architecture:
    - Pure domain module with no framework dependencies
    - HTTP adapters convert framework errors (request validation, JSON
      decoding, oversized bodies) into these types before classification
"""

from typing import Optional


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputValidationError(GatewayError):
    """Raised when a domain record is malformed or incomplete.

    Attributes:
        details: Human-readable list of validation failures, preserved for
            the caller
    """

    def __init__(self, message: str, details: Optional[list[str]] = None):
        super().__init__(message)
        self.details = details or []


class DataFormatError(GatewayError):
    """Raised when a value cannot be cast to the expected domain shape."""


class AuthenticationError(GatewayError):
    """Base class for credential token failures."""


class InvalidTokenError(AuthenticationError):
    """Raised when a caller token cannot be verified."""


class TokenExpiredError(AuthenticationError):
    """Raised when a caller token is past its expiry."""


class PayloadTooLargeError(GatewayError):
    """Raised when a request body exceeds the configured size limit.

    Attributes:
        limit: Maximum accepted body size in bytes
        size: Declared size of the rejected body in bytes
    """

    def __init__(self, message: str, limit: int, size: int):
        super().__init__(message)
        self.limit = limit
        self.size = size


class MalformedBodyError(GatewayError):
    """Raised when a request body is not parseable JSON."""


class IdentityError(GatewayError):
    """Base class for wallet identity failures.

    These are deployment misconfigurations: the identity must be enrolled
    and readable before the gateway can transact.
    """


class IdentityNotFoundError(IdentityError):
    """Raised when the application identity is missing from the wallet."""

    def __init__(self, label: str):
        super().__init__(
            f'An identity for the user "{label}" does not exist in the wallet. '
            "Run the enrollment script first."
        )
        self.label = label


class InvalidIdentityError(IdentityError):
    """Raised when a wallet entry exists but cannot be loaded (corrupt or unreadable)."""

    def __init__(self, label: str, reason: str):
        super().__init__(f'The identity for the user "{label}" could not be loaded from the wallet: {reason}')
        self.label = label


class LedgerError(GatewayError):
    """Raised when the ledger rejects or fails a transaction.

    The message is the ledger's own failure text (for example a chaincode
    error such as ``the form DIAG-1 already exists``).
    """


class LedgerConnectivityError(LedgerError):
    """Raised when the ledger network cannot be reached or times out."""


class LedgerPayloadError(GatewayError):
    """Raised when a ledger result cannot be decoded into its domain shape.

    This is a server-side fault (a misbehaving peer or proxy), never the
    caller's, so it is classified as an internal error.
    """


class FormNotFoundError(GatewayError):
    """Raised when a diagnosis form is absent from the ledger."""

    def __init__(self, form_id: str):
        super().__init__(f"Diagnosis form with ID {form_id} does not exist")
        self.form_id = form_id


class RouteNotFoundError(GatewayError):
    """Raised when no HTTP route matches the request."""
