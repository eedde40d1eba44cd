"""
Credential verification gate.

verify(credential, issuer_identity) runs these stages in order and stops at
the first failure:

1. structure_validation   required fields, VerifiableCredential type, subject id
2. issuer_node_connection lookup of the credential on the issuer node
   credential_retrieval   the issuer does not know the credential (404)
3. revocation_check       issuer reports the credential revoked
4. data_comparison        id, issuer and subject id match the issuer record
5. proof_extraction       redacted summary of the first issuer-side proof

There is no local fallback: if the issuer node cannot be reached the verdict
is negative. Cryptographic signature validation is delegated to the issuer
node and is not re-derived here; a record without proof still passes stage 5.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from app.zkpauth.events import EventRecorder, StageEvent, StageTimer, get_event_recorder
from app.zkpauth.exceptions import IssuerError
from app.zkpauth.issuer_client import IssuerClient

log = logging.getLogger(__name__)

VERIFIABLE_CREDENTIAL_TYPE = "VerifiableCredential"
REQUIRED_FIELDS = ("id", "type", "issuer", "issuanceDate", "credentialSubject")
STRING_FIELDS = ("id", "issuer")


class VerificationStage(str, Enum):
    STRUCTURE_VALIDATION = "structure_validation"
    ISSUER_NODE_CONNECTION = "issuer_node_connection"
    CREDENTIAL_RETRIEVAL = "credential_retrieval"
    REVOCATION_CHECK = "revocation_check"
    DATA_COMPARISON = "data_comparison"
    PROOF_EXTRACTION = "proof_extraction"


# =============================================================================
# Structure and data checks
# =============================================================================

def validate_credential_structure(credential: Any) -> List[str]:
    """Check the fields every verifiable credential must carry.

    Returns:
        List of error strings, empty when the structure is valid.
    """
    if not isinstance(credential, dict) or not credential:
        return ["credential is missing"]

    errors = [f"missing field: {name}" for name in REQUIRED_FIELDS if not credential.get(name)]

    # id and issuer become issuer-node lookup path segments
    for name in STRING_FIELDS:
        value = credential.get(name)
        if value and not isinstance(value, str):
            errors.append(f"{name} must be a string")

    types = credential.get("type")
    if types and (not isinstance(types, list) or VERIFIABLE_CREDENTIAL_TYPE not in types):
        errors.append(f"type must include {VERIFIABLE_CREDENTIAL_TYPE}")

    subject = credential.get("credentialSubject")
    if subject:
        subject_id = subject.get("id") if isinstance(subject, dict) else None
        if not subject_id:
            errors.append("missing field: credentialSubject.id")
        elif not isinstance(subject_id, str):
            errors.append("credentialSubject.id must be a string")

    return errors


def compare_credential_data(local: Dict[str, Any], stored: Optional[Dict[str, Any]]) -> Optional[str]:
    """Compare the locally held credential against the issuer record.

    Returns:
        Description of the first mismatch, or None when they agree.
    """
    if not isinstance(stored, dict):
        return "issuer record carries no credential"
    if local.get("id") != stored.get("id"):
        return "credential id does not match the issuer record"
    if local.get("issuer") != stored.get("issuer"):
        return "credential issuer does not match the issuer record"

    local_subject = local.get("credentialSubject") or {}
    stored_subject = stored.get("credentialSubject")
    if not isinstance(stored_subject, dict) or local_subject.get("id") != stored_subject.get("id"):
        return "credential subject does not match the issuer record"
    return None


# =============================================================================
# Proof summary
# =============================================================================

def _truncate(value: Any, length: int) -> Optional[str]:
    if not isinstance(value, str) or not value:
        return None
    return value[:length] + "..." if len(value) > length else value


def _first_proof(credential: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not isinstance(credential, dict):
        return None
    proof = credential.get("proof")
    if isinstance(proof, list):
        proof = proof[0] if proof else None
    return proof if isinstance(proof, dict) and proof else None


@dataclass(frozen=True)
class ProofSummary:
    """Redacted view of a credential's first proof.

    Hashes are truncated and Merkle siblings are reduced to a count; raw
    proof material never leaves this object.
    """

    present: bool = False
    proof_type: Optional[str] = None
    proof_types: Tuple[str, ...] = ()
    signature: Optional[str] = None
    core_claim: Optional[str] = None
    issuer_id: Optional[str] = None
    state_value: Optional[str] = None
    claims_tree_root: Optional[str] = None
    auth_core_claim: Optional[str] = None
    mtp_existence: Optional[bool] = None
    siblings_count: int = 0

    @classmethod
    def from_credential(
        cls, credential: Optional[Dict[str, Any]], proof_types: Tuple[str, ...] = ()
    ) -> "ProofSummary":
        proof = _first_proof(credential)
        if proof is None:
            return cls(proof_types=tuple(proof_types))

        issuer_data = proof.get("issuerData") or {}
        state = issuer_data.get("state") or {}
        mtp = issuer_data.get("mtp") or {}
        siblings = mtp.get("siblings") or []

        return cls(
            present=True,
            proof_type=proof.get("type"),
            proof_types=tuple(proof_types),
            signature=_truncate(proof.get("signature"), 20),
            core_claim=_truncate(proof.get("coreClaim"), 40),
            issuer_id=issuer_data.get("id"),
            state_value=_truncate(state.get("value"), 20),
            claims_tree_root=_truncate(state.get("claimsTreeRoot"), 20),
            auth_core_claim=_truncate(issuer_data.get("authCoreClaim"), 40),
            mtp_existence=mtp.get("existence"),
            siblings_count=len(siblings) if isinstance(siblings, list) else 0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "present": self.present,
            "proofType": self.proof_type,
            "proofTypes": list(self.proof_types),
            "signature": self.signature,
            "coreClaim": self.core_claim,
            "issuerData": {
                "id": self.issuer_id,
                "state": {
                    "value": self.state_value,
                    "claimsTreeRoot": self.claims_tree_root,
                },
                "authCoreClaim": self.auth_core_claim,
                "mtp": {
                    "existence": self.mtp_existence,
                    "siblingsCount": self.siblings_count,
                },
            } if self.present else None,
        }


def extract_zkp_data(credential: Optional[Dict[str, Any]], identity: Optional[str]) -> Dict[str, Any]:
    """Displayable ZKP data for a principal's credential."""
    summary = ProofSummary.from_credential(credential)
    if not summary.present:
        return {"identifier": identity, "state": "no-proof", "proofType": None}
    return {"identifier": identity, "state": "verified", **summary.to_dict()}


# =============================================================================
# Verdict and gate
# =============================================================================

@dataclass(frozen=True)
class VerificationVerdict:
    """Single verified/denied decision for one credential."""

    verified: bool
    stage: Optional[VerificationStage] = None
    reason: str = ""
    evidence: Optional[ProofSummary] = None
    credential_id: Optional[str] = None
    issuer: Optional[str] = None
    subject: Optional[str] = None

    @classmethod
    def passed(
        cls, evidence: ProofSummary, credential_id: str, issuer: str, subject: str
    ) -> "VerificationVerdict":
        return cls(
            verified=True,
            reason="Credential verified with the issuer node",
            evidence=evidence,
            credential_id=credential_id,
            issuer=issuer,
            subject=subject,
        )

    @classmethod
    def denied(
        cls, stage: VerificationStage, reason: str, credential_id: Optional[str] = None
    ) -> "VerificationVerdict":
        return cls(verified=False, stage=stage, reason=reason, credential_id=credential_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verified": self.verified,
            "stage": self.stage.value if self.stage else None,
            "reason": self.reason,
            "evidence": self.evidence.to_dict() if self.evidence else None,
            "credentialId": self.credential_id,
            "issuer": self.issuer,
            "subject": self.subject,
        }


@dataclass
class _Run:
    timer: StageTimer = field(default_factory=StageTimer)
    identity: Optional[str] = None


class VerificationGate:
    """Mandatory verification of a credential against the issuer node."""

    COMPONENT = "verification"

    def __init__(self, client: IssuerClient, recorder: Optional[EventRecorder] = None):
        self.client = client
        self.recorder = recorder or get_event_recorder()

    def _emit(self, run: _Run, stage: VerificationStage, outcome: str, detail: Optional[str] = None) -> None:
        self.recorder.emit(
            StageEvent(
                component=self.COMPONENT,
                stage=stage.value,
                outcome=outcome,
                elapsed_ms=run.timer.lap(),
                detail=detail,
                identity=run.identity,
            )
        )

    def _deny(
        self, run: _Run, stage: VerificationStage, reason: str, credential_id: Optional[str] = None
    ) -> VerificationVerdict:
        self._emit(run, stage, "failed", reason)
        return VerificationVerdict.denied(stage, reason, credential_id)

    async def verify(
        self, credential: Optional[Dict[str, Any]], issuer_identity: Optional[str]
    ) -> VerificationVerdict:
        """Verify a credential; never raises for issuer failures."""
        run = _Run()

        errors = validate_credential_structure(credential)
        if errors:
            return self._deny(run, VerificationStage.STRUCTURE_VALIDATION, "; ".join(errors))
        credential_id = credential["id"]
        run.identity = credential["credentialSubject"]["id"]
        self._emit(run, VerificationStage.STRUCTURE_VALIDATION, "success")

        issuer_identity = issuer_identity or credential["issuer"]
        try:
            lookup = await self.client.verify_credential_exists(issuer_identity, credential_id)
        except IssuerError as e:
            log.warning(f"Issuer lookup failed for {credential_id}: {e.kind.value}: {e.detail}")
            return self._deny(
                run,
                VerificationStage.ISSUER_NODE_CONNECTION,
                f"Could not verify with the issuer node: {e.message}",
                credential_id,
            )
        if not lookup.exists:
            return self._deny(
                run,
                VerificationStage.CREDENTIAL_RETRIEVAL,
                "Credential not found on the issuer node",
                credential_id,
            )
        self._emit(run, VerificationStage.ISSUER_NODE_CONNECTION, "success")

        if lookup.revoked:
            return self._deny(
                run, VerificationStage.REVOCATION_CHECK, "Credential has been revoked", credential_id
            )
        self._emit(run, VerificationStage.REVOCATION_CHECK, "success")

        mismatch = compare_credential_data(credential, lookup.stored_credential)
        if mismatch:
            return self._deny(run, VerificationStage.DATA_COMPARISON, mismatch, credential_id)
        self._emit(run, VerificationStage.DATA_COMPARISON, "success")

        # Signature validity is the issuer node's responsibility
        evidence = ProofSummary.from_credential(lookup.stored_credential, tuple(lookup.proof_types))
        self._emit(
            run,
            VerificationStage.PROOF_EXTRACTION,
            "success",
            None if evidence.present else "issuer record has no proof",
        )

        return VerificationVerdict.passed(
            evidence, credential_id, credential["issuer"], run.identity
        )
