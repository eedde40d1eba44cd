"""ZKP credential issuance and login verification over a Polygon ID issuer node.

Issuance: DID -> credential -> state publish -> re-fetch (orchestrator).
Login: password check, then mandatory staged verification (gate).
"""

from .exceptions import (
    ZKPAuthError,
    IssuerError,
    IssuerErrorKind,
    InvalidInputError,
    DuplicatePrincipalError,
    LoginDeniedError,
)
from .issuer_client import CredentialRef, CredentialLookup, IssuerClient, IssuerIdentityResolver
from .orchestrator import CredentialIssuanceOrchestrator, IssuanceResult, IssuanceState
from .verification import ProofSummary, VerificationGate, VerificationStage, VerificationVerdict
from .store import InMemoryPrincipalStore, PrincipalRecord, PrincipalStore
from .proof_query import build_proof_query, build_proof_request
from .service import AuthService

__all__ = [
    # Exceptions
    "ZKPAuthError",
    "IssuerError",
    "IssuerErrorKind",
    "InvalidInputError",
    "DuplicatePrincipalError",
    "LoginDeniedError",
    # Issuer node
    "CredentialRef",
    "CredentialLookup",
    "IssuerClient",
    "IssuerIdentityResolver",
    # Issuance
    "CredentialIssuanceOrchestrator",
    "IssuanceResult",
    "IssuanceState",
    # Verification
    "ProofSummary",
    "VerificationGate",
    "VerificationStage",
    "VerificationVerdict",
    # Storage
    "InMemoryPrincipalStore",
    "PrincipalRecord",
    "PrincipalStore",
    # Queries
    "build_proof_query",
    "build_proof_request",
    # Use cases
    "AuthService",
]
