"""
Registration and login use cases.

AuthService wires the issuance orchestrator, the verification gate and the
principal store together:

- register: validate input, reject duplicates, issue DID + credential, verify
  the fresh credential, store the principal.
- login: check the password, then require a positive verdict from the gate.
  A principal without a credential is denied before any issuer call.

Responses never contain the password digest or raw proof material; proofs are
reported through redacted summaries only.
"""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from app.core.config import BCRYPT_ROUNDS
from app.zkpauth.api_models import ErrorCode
from app.zkpauth.credentials import (
    build_subject_attributes,
    is_valid_email,
    is_valid_wallet_address,
    validate_subject_data,
)
from app.zkpauth.events import EventRecorder, get_event_recorder
from app.zkpauth.exceptions import (
    DuplicatePrincipalError,
    InvalidInputError,
    IssuerError,
    LoginDeniedError,
    ZKPAuthError,
)
from app.zkpauth.issuer_client import IssuerClient, get_issuer_client
from app.zkpauth.orchestrator import CredentialIssuanceOrchestrator
from app.zkpauth.passwords import MAX_PASSWORD_BYTES, hash_password, password_too_long, verify_password
from app.zkpauth.proof_query import build_proof_query, build_proof_request
from app.zkpauth.store import PrincipalRecord, PrincipalStore, get_principal_store, normalize_login_key
from app.zkpauth.verification import (
    VerificationGate,
    VerificationStage,
    VerificationVerdict,
    extract_zkp_data,
)

log = logging.getLogger(__name__)


# Login denial per failed verification stage: (code, message, explanation)
STAGE_DENIALS = {
    VerificationStage.STRUCTURE_VALIDATION: (
        ErrorCode.CREDENTIAL_STRUCTURE_INVALID,
        "The credential structure is not valid.",
        "The credential does not follow the W3C Verifiable Credential format.",
    ),
    VerificationStage.ISSUER_NODE_CONNECTION: (
        ErrorCode.ISSUER_VERIFICATION_UNAVAILABLE,
        "The issuer node could not be contacted to verify the credential.",
        "The verification server (issuer node) is unavailable. Try again later.",
    ),
    VerificationStage.CREDENTIAL_RETRIEVAL: (
        ErrorCode.CREDENTIAL_NOT_FOUND,
        "The credential does not exist on the issuer node.",
        "Your credential was not found in the issuer's registry. It may have "
        "been removed or never published correctly.",
    ),
    VerificationStage.REVOCATION_CHECK: (
        ErrorCode.CREDENTIAL_REVOKED,
        "The credential has been revoked.",
        "Your credential was revoked by the issuer and is no longer valid for authentication.",
    ),
    VerificationStage.DATA_COMPARISON: (
        ErrorCode.CREDENTIAL_DATA_MISMATCH,
        "The credential data does not match.",
        "The locally held credential does not match the issuer node's record.",
    ),
}

_ACCESS_DENIED = "Access denied: your ZKP credential did not pass verification. "


def denial_from_verdict(verdict: VerificationVerdict) -> LoginDeniedError:
    """Stage-specific, user-presentable login denial for a negative verdict."""
    code, message, explanation = STAGE_DENIALS.get(
        verdict.stage,
        (
            ErrorCode.CREDENTIAL_STRUCTURE_INVALID,
            "Unknown verification error.",
            "The credential could not be verified.",
        ),
    )
    return LoginDeniedError(
        code,
        _ACCESS_DENIED + message,
        details={"explanation": explanation, "credentialId": verdict.credential_id},
        stage=verdict.stage.value if verdict.stage else None,
        reason=verdict.reason,
        credential_id=verdict.credential_id,
    )


def public_credential(credential: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Credential as returned to callers: raw proof material removed."""
    if credential is None:
        return None
    return {k: v for k, v in credential.items() if k != "proof"}


class AuthService:
    """Registration, login and credential utilities over the issuer node."""

    def __init__(
        self,
        client: IssuerClient,
        store: PrincipalStore,
        orchestrator: Optional[CredentialIssuanceOrchestrator] = None,
        gate: Optional[VerificationGate] = None,
        recorder: Optional[EventRecorder] = None,
        password_rounds: int = BCRYPT_ROUNDS,
    ):
        recorder = recorder or get_event_recorder()
        self.client = client
        self.store = store
        self.orchestrator = orchestrator or CredentialIssuanceOrchestrator(client, recorder)
        self.gate = gate or VerificationGate(client, recorder)
        self.password_rounds = password_rounds

    def _principal_response(self, record: PrincipalRecord, verdict: VerificationVerdict) -> Dict[str, Any]:
        return {
            "identity": record.identity,
            "credential": public_credential(record.credential),
            "verified": verdict.verified,
            "verification": verdict.to_dict(),
            "zkp_data": extract_zkp_data(record.credential, record.identity),
            "user": {
                "name": record.full_name,
                "email": record.login_key,
                "did": record.identity,
                "authMethod": record.auth_method,
                "accountState": record.account_state,
            },
        }

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def register(
        self, full_name: Optional[str], email: Optional[str], password: Optional[str]
    ) -> Dict[str, Any]:
        """Register a principal and issue its credential.

        Raises:
            InvalidInputError: Missing or malformed fields.
            DuplicatePrincipalError: Email already registered.
            IssuerError: Identity or credential creation failed; nothing stored.
        """
        missing = [name for name, value in (("name", full_name), ("email", email), ("password", password)) if not value]
        if missing:
            raise InvalidInputError.missing(*missing)
        if not is_valid_email(email):
            raise InvalidInputError.invalid("Invalid email format")
        if password_too_long(password):
            raise InvalidInputError.invalid(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
        errors = validate_subject_data(full_name, "email")
        if errors:
            raise InvalidInputError.invalid("Invalid registration data", errors)

        login_key = normalize_login_key(email)
        if await self.store.exists(login_key):
            raise DuplicatePrincipalError(login_key)

        log.info(f"Registering principal {login_key}")
        attributes = build_subject_attributes(full_name, email=email, auth_method="email")
        result = await self.orchestrator.issue(attributes)

        credential = result.credential
        verdict = await self.gate.verify(credential, credential.get("issuer") or result.issuer_identity)
        if not verdict.verified:
            log.warning(
                f"Post-issuance verification failed for {login_key} at "
                f"{verdict.stage.value if verdict.stage else 'unknown'}: {verdict.reason}"
            )

        now = datetime.now(timezone.utc)
        record = PrincipalRecord(
            login_key=login_key,
            full_name=full_name,
            password_digest=hash_password(password, self.password_rounds),
            identity=result.identity,
            credential=credential,
            last_verification=verdict,
            created_at=now,
            verified_at=now if verdict.verified else None,
        )
        await self.store.save(login_key, record)

        response = self._principal_response(record, verdict)
        response["confirmed"] = result.confirmed
        response["published"] = result.published
        return response

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    async def login(self, email: Optional[str], password: Optional[str]) -> Dict[str, Any]:
        """Authenticate a principal; requires a positive credential verdict.

        Raises:
            InvalidInputError: Missing fields.
            LoginDeniedError: Unknown principal, wrong password, missing or
                invalid credential, or any failed verification stage.
        """
        missing = [name for name, value in (("email", email), ("password", password)) if not value]
        if missing:
            raise InvalidInputError.missing(*missing)

        login_key = normalize_login_key(email)
        record = await self.store.find(login_key)
        if record is None:
            raise LoginDeniedError.principal_not_found()
        if not verify_password(password, record.password_digest):
            log.info(f"Password mismatch for {login_key}")
            raise LoginDeniedError.password_mismatch()

        credential = record.credential
        if not credential:
            log.warning(f"Login denied for {login_key}: no credential on record")
            raise LoginDeniedError.no_credential()
        if not isinstance(credential.get("credentialSubject"), dict):
            raise LoginDeniedError.invalid_credential_structure(credential.get("id"))

        verdict = await self.gate.verify(credential, credential.get("issuer"))
        if not verdict.verified:
            await self.store.save(login_key, replace(record, last_verification=verdict))
            log.warning(f"Login denied for {login_key} at {verdict.stage.value}: {verdict.reason}")
            raise denial_from_verdict(verdict)

        record = replace(record, last_verification=verdict, verified_at=datetime.now(timezone.utc))
        await self.store.save(login_key, record)
        log.info(f"Login succeeded for {login_key}")
        return self._principal_response(record, verdict)

    # ------------------------------------------------------------------
    # Wallet authentication
    # ------------------------------------------------------------------

    async def wallet_auth(self, wallet_address: Optional[str]) -> Dict[str, Any]:
        """Issue a DID and a wallet credential. The principal is not stored."""
        if not wallet_address:
            raise InvalidInputError.missing("walletAddress")
        if not is_valid_wallet_address(wallet_address):
            raise InvalidInputError.invalid("Invalid wallet address format")

        attributes = build_subject_attributes(
            f"Wallet {wallet_address[:6]}...",
            wallet_address=wallet_address,
            auth_method="wallet",
            is_verified=True,
        )
        result = await self.orchestrator.issue(attributes)
        return {
            "identity": result.identity,
            "credential": public_credential(result.credential),
            "confirmed": result.confirmed,
            "zkp_data": extract_zkp_data(result.credential, result.identity),
            "user": {
                "walletAddress": wallet_address,
                "did": result.identity,
                "authMethod": "wallet",
                "accountState": "active",
            },
        }

    # ------------------------------------------------------------------
    # Credential and proof utilities
    # ------------------------------------------------------------------

    async def verify_credential(
        self, credential: Optional[Dict[str, Any]], issuer_did: Optional[str] = None
    ) -> VerificationVerdict:
        if not credential:
            raise InvalidInputError.missing("credential")
        return await self.gate.verify(credential, credential.get("issuer") or issuer_did)

    def proof_query(
        self,
        kind: Optional[str],
        params: Optional[Dict[str, Any]] = None,
        issuer_did: Optional[str] = None,
        user_did: Optional[str] = None,
        proof_type: str = "MTP",
    ) -> Dict[str, Any]:
        if not kind:
            raise InvalidInputError.missing("kind")
        query = build_proof_query(kind, params)
        response: Dict[str, Any] = {"kind": kind, "query": query}
        if issuer_did:
            response["proofRequest"] = build_proof_request(query, issuer_did, user_did, proof_type)
        return response

    async def verify_proof(
        self,
        circuit_id: Optional[str],
        proof: Optional[Dict[str, Any]],
        pub_signals: Optional[List[Any]],
    ) -> Dict[str, Any]:
        """Issuer-side ZK proof verification; fails closed."""
        missing = [
            name
            for name, value in (("proof", proof), ("pub_signals", pub_signals), ("circuitId", circuit_id))
            if not value
        ]
        if missing:
            raise InvalidInputError.missing(*missing)

        try:
            result = await self.client.verify_proof(circuit_id, proof, pub_signals)
        except IssuerError as e:
            log.error(f"Proof verification unavailable: {e.kind.value}: {e.detail}")
            raise ZKPAuthError(
                ErrorCode.PROOF_VERIFICATION_UNAVAILABLE,
                "Proof verification is unavailable. The proof was not accepted.",
                {"kind": e.kind.value, "cause": e.cause},
            ) from e

        return {
            "verified": bool(result.get("verified")),
            "circuitId": circuit_id,
            "result": result,
        }

    async def issuer_info(self) -> Dict[str, Any]:
        identities = await self.client.list_identities()
        issuer_did = await self.client.issuer_identity()
        return {
            "issuerNodeUrl": self.client.base_url,
            "issuerDID": issuer_did,
            "identities": identities,
        }


# Global service instance
_auth_service: Optional[AuthService] = None


def get_auth_service() -> AuthService:
    """Get or create the global auth service."""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService(get_issuer_client(), get_principal_store())
    return _auth_service


def reset_auth_service() -> None:
    """Reset the global service (for testing)."""
    global _auth_service
    _auth_service = None
