"""
ZKP Auth API models.

Request bodies are deliberately permissive (every field optional) so that
missing or malformed fields are rejected by the service layer with an
INVALID_INPUT error instead of a framework-level 422.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# =============================================================================
# Error Models
# =============================================================================

class ErrorDetail(BaseModel):
    """Error body returned for every classified failure."""
    code: str
    message: str
    stage: Optional[str] = None
    reason: Optional[str] = None
    details: Optional[Any] = None


class ErrorCode:
    """Error code registry."""
    # Issuer Service failures
    ISSUER_UNREACHABLE = "ISSUER_UNREACHABLE"
    ISSUER_UNAUTHORIZED = "ISSUER_UNAUTHORIZED"
    ISSUER_TIMEOUT = "ISSUER_TIMEOUT"
    ISSUER_SERVER_ERROR = "ISSUER_SERVER_ERROR"
    ISSUER_ERROR = "ISSUER_ERROR"

    # Request layer
    INVALID_INPUT = "INVALID_INPUT"
    DUPLICATE_PRINCIPAL = "DUPLICATE_PRINCIPAL"

    # Login layer
    PRINCIPAL_NOT_FOUND = "PRINCIPAL_NOT_FOUND"
    PASSWORD_MISMATCH = "PASSWORD_MISMATCH"

    # Credential verification layer
    CREDENTIAL_MISSING = "CREDENTIAL_MISSING"
    CREDENTIAL_STRUCTURE_INVALID = "CREDENTIAL_STRUCTURE_INVALID"
    CREDENTIAL_NOT_FOUND = "CREDENTIAL_NOT_FOUND"
    CREDENTIAL_REVOKED = "CREDENTIAL_REVOKED"
    CREDENTIAL_DATA_MISMATCH = "CREDENTIAL_DATA_MISMATCH"
    ISSUER_VERIFICATION_UNAVAILABLE = "ISSUER_VERIFICATION_UNAVAILABLE"

    # Proof verification layer
    PROOF_VERIFICATION_UNAVAILABLE = "PROOF_VERIFICATION_UNAVAILABLE"


# HTTP status per error code
ERROR_HTTP_STATUS: Dict[str, int] = {
    ErrorCode.ISSUER_UNREACHABLE: 503,
    ErrorCode.ISSUER_UNAUTHORIZED: 502,
    ErrorCode.ISSUER_TIMEOUT: 504,
    ErrorCode.ISSUER_SERVER_ERROR: 502,
    ErrorCode.ISSUER_ERROR: 502,
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.DUPLICATE_PRINCIPAL: 409,
    ErrorCode.PRINCIPAL_NOT_FOUND: 401,
    ErrorCode.PASSWORD_MISMATCH: 401,
    ErrorCode.CREDENTIAL_MISSING: 401,
    ErrorCode.CREDENTIAL_STRUCTURE_INVALID: 401,
    ErrorCode.CREDENTIAL_NOT_FOUND: 401,
    ErrorCode.CREDENTIAL_REVOKED: 401,
    ErrorCode.CREDENTIAL_DATA_MISMATCH: 401,
    ErrorCode.ISSUER_VERIFICATION_UNAVAILABLE: 401,
    ErrorCode.PROOF_VERIFICATION_UNAVAILABLE: 503,
}


# =============================================================================
# Request Models
# =============================================================================

class RegisterRequest(BaseModel):
    """Request body for POST /api/register."""
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    """Request body for POST /api/login."""
    email: Optional[str] = None
    password: Optional[str] = None


class WalletAuthRequest(BaseModel):
    """Request body for POST /api/wallet-auth."""
    walletAddress: Optional[str] = None


class VerifyCredentialRequest(BaseModel):
    """Request body for POST /api/verify-credential."""
    credential: Optional[Dict[str, Any]] = None
    issuerDID: Optional[str] = None


class ProofQueryRequest(BaseModel):
    """Request body for POST /api/proof-query.

    When issuerDID is supplied the response also carries the full proof
    request envelope for the issuer node.
    """
    kind: Optional[str] = None
    params: Dict[str, Any] = Field(default_factory=dict)
    issuerDID: Optional[str] = None
    userDID: Optional[str] = None
    proofType: str = "MTP"


class VerifyProofRequest(BaseModel):
    """Request body for POST /verify-proof."""
    proof: Optional[Dict[str, Any]] = None
    pub_signals: Optional[List[Any]] = None
    circuitId: Optional[str] = None


class LogLevelRequest(BaseModel):
    level: str
