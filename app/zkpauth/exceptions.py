"""
ZKP Auth custom exceptions.

Every exception carries an error code from ErrorCode and a human-readable
message. The HTTP layer converts them to ErrorDetail bodies using
ERROR_HTTP_STATUS; nothing here knows about HTTP.
"""

from enum import Enum
from typing import Any, List, Optional

from app.zkpauth.api_models import ErrorCode


class ZKPAuthError(Exception):
    """Base exception for classified service failures."""

    def __init__(self, code: str, message: str, details: Any = None):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)


# =============================================================================
# Issuer Service failures
# =============================================================================

class IssuerErrorKind(str, Enum):
    """Classification of a failed Issuer Service call."""
    UNREACHABLE = "Unreachable"    # Connection refused, DNS, network
    UNAUTHORIZED = "Unauthorized"  # 401/403 from the issuer node
    TIMEOUT = "Timeout"            # Per-operation timeout expired
    SERVER_ERROR = "ServerError"   # 5xx from the issuer node
    UNKNOWN = "Unknown"            # Anything else (4xx, malformed body)


_KIND_CODES = {
    IssuerErrorKind.UNREACHABLE: ErrorCode.ISSUER_UNREACHABLE,
    IssuerErrorKind.UNAUTHORIZED: ErrorCode.ISSUER_UNAUTHORIZED,
    IssuerErrorKind.TIMEOUT: ErrorCode.ISSUER_TIMEOUT,
    IssuerErrorKind.SERVER_ERROR: ErrorCode.ISSUER_SERVER_ERROR,
    IssuerErrorKind.UNKNOWN: ErrorCode.ISSUER_ERROR,
}

_KIND_CAUSES = {
    IssuerErrorKind.UNREACHABLE: "The issuer node is not running or is not reachable.",
    IssuerErrorKind.UNAUTHORIZED: "The issuer node rejected the service credentials.",
    IssuerErrorKind.TIMEOUT: "The issuer node took too long to respond.",
    IssuerErrorKind.SERVER_ERROR: "The issuer node hit an internal error while processing the request.",
    IssuerErrorKind.UNKNOWN: "The issuer node returned an unexpected response.",
}


class IssuerError(ZKPAuthError):
    """A classified failure of an Issuer Service call.

    Attributes:
        kind: IssuerErrorKind classification.
        detail: Diagnostic detail (exception text or issuer message).
        operation: Name of the IssuerClient operation that failed.
        status_code: HTTP status returned by the issuer, if any.
    """

    def __init__(
        self,
        kind: IssuerErrorKind,
        detail: str,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.kind = kind
        self.detail = detail
        self.operation = operation
        self.status_code = status_code
        super().__init__(_KIND_CODES[kind], f"{_KIND_CAUSES[kind]} ({detail})")

    @property
    def cause(self) -> str:
        """User-presentable cause without diagnostic detail."""
        return _KIND_CAUSES[self.kind]

    @classmethod
    def unreachable(cls, detail: str, operation: Optional[str] = None) -> "IssuerError":
        return cls(IssuerErrorKind.UNREACHABLE, detail, operation)

    @classmethod
    def timeout(cls, operation: str, seconds: float) -> "IssuerError":
        return cls(
            IssuerErrorKind.TIMEOUT,
            f"{operation} exceeded {seconds:g}s",
            operation,
        )

    @classmethod
    def from_status(
        cls, status_code: int, detail: str, operation: Optional[str] = None
    ) -> "IssuerError":
        """Classify a non-success HTTP status."""
        if status_code in (401, 403):
            kind = IssuerErrorKind.UNAUTHORIZED
        elif status_code >= 500:
            kind = IssuerErrorKind.SERVER_ERROR
        else:
            kind = IssuerErrorKind.UNKNOWN
        return cls(kind, detail, operation, status_code)


# =============================================================================
# Request-level failures (raised before any issuer call)
# =============================================================================

class InvalidInputError(ZKPAuthError):
    """Missing or malformed registration, login or query fields."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(ErrorCode.INVALID_INPUT, message, self.errors or None)

    @classmethod
    def missing(cls, *fields: str) -> "InvalidInputError":
        return cls(
            "Missing required fields",
            [f"{name} is required" for name in fields],
        )

    @classmethod
    def invalid(cls, reason: str, errors: Optional[List[str]] = None) -> "InvalidInputError":
        return cls(reason, errors)


class DuplicatePrincipalError(ZKPAuthError):
    """A principal with this login key is already registered."""

    def __init__(self, login_key: str):
        self.login_key = login_key
        super().__init__(
            ErrorCode.DUPLICATE_PRINCIPAL,
            "This email is already registered. Please log in instead.",
        )


# =============================================================================
# Login denials
# =============================================================================

class LoginDeniedError(ZKPAuthError):
    """Access denied during login.

    Attributes:
        stage: Verification stage that produced the denial, if any.
        reason: Machine-readable reason tag (e.g. NO_CREDENTIAL).
        credential_id: Id of the stored credential, if any.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: Any = None,
        stage: Optional[str] = None,
        reason: Optional[str] = None,
        credential_id: Optional[str] = None,
    ):
        self.stage = stage
        self.reason = reason
        self.credential_id = credential_id
        super().__init__(code, message, details)

    @classmethod
    def principal_not_found(cls) -> "LoginDeniedError":
        return cls(
            ErrorCode.PRINCIPAL_NOT_FOUND,
            "User not found. Please register first.",
            reason="PRINCIPAL_NOT_FOUND",
        )

    @classmethod
    def password_mismatch(cls) -> "LoginDeniedError":
        return cls(
            ErrorCode.PASSWORD_MISMATCH,
            "Incorrect password.",
            reason="PASSWORD_MISMATCH",
        )

    @classmethod
    def no_credential(cls) -> "LoginDeniedError":
        return cls(
            ErrorCode.CREDENTIAL_MISSING,
            "Your account has no registered ZKP credential. The credential is "
            "required to authenticate. Contact the system administrator.",
            reason="NO_CREDENTIAL",
        )

    @classmethod
    def invalid_credential_structure(cls, credential_id: Optional[str]) -> "LoginDeniedError":
        return cls(
            ErrorCode.CREDENTIAL_STRUCTURE_INVALID,
            "Your account has no valid ZKP credential. The credential is "
            "required to authenticate. Contact the system administrator.",
            reason="INVALID_CREDENTIAL_STRUCTURE",
            credential_id=credential_id,
        )
