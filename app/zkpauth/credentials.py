"""Credential shaping and input validation.

Builds the JSON bodies sent to the issuer node (DID metadata, credential
subject, credential request) and validates the user-supplied fields that end
up in a credential subject.
"""

import re
import time
from typing import Any, Dict, List, Optional

from app.core.config import (
    AUTH_METHODS,
    CREDENTIAL_SCHEMA_URL,
    CREDENTIAL_TYPE,
    CREDENTIAL_VALIDITY_SECONDS,
    DID_BLOCKCHAIN,
    DID_KEY_TYPE,
    DID_METHOD,
    DID_NETWORK,
)

EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
WALLET_ADDRESS_PATTERN = re.compile(r"0x[a-fA-F0-9]{40}")

# Issuer-assigned credential ids may carry a URN prefix the lookup path omits
_URN_UUID_PREFIX = "urn:uuid:"


def is_valid_email(email: str) -> bool:
    return bool(email) and EMAIL_PATTERN.fullmatch(email) is not None


def is_valid_wallet_address(address: str) -> bool:
    return bool(address) and WALLET_ADDRESS_PATTERN.fullmatch(address) is not None


def is_valid_did(did: str, method: str = DID_METHOD, network: str = DID_BLOCKCHAIN) -> bool:
    """Check a DID has the did:method:network:subnet:payload shape."""
    if not did:
        return False
    pattern = rf"did:{re.escape(method)}:{re.escape(network)}:[^:]+:.+"
    return re.fullmatch(pattern, did) is not None


def validate_subject_data(full_name: Optional[str], auth_method: Optional[str]) -> List[str]:
    """Validate the fields every credential subject needs.

    Returns:
        List of error strings, empty when valid.
    """
    errors = []
    if not full_name:
        errors.append("fullName is required")
    if not auth_method:
        errors.append("authMethod is required")
    elif auth_method not in AUTH_METHODS:
        errors.append(f"authMethod must be one of: {', '.join(sorted(AUTH_METHODS))}")
    return errors


def build_identity_request() -> Dict[str, Any]:
    """Body for POST /identities."""
    return {
        "didMetadata": {
            "method": DID_METHOD,
            "blockchain": DID_BLOCKCHAIN,
            "network": DID_NETWORK,
            "type": DID_KEY_TYPE,
        }
    }


def build_subject_attributes(
    full_name: str,
    email: Optional[str] = None,
    wallet_address: Optional[str] = None,
    auth_method: str = "email",
    account_state: str = "active",
    is_verified: bool = False,
    now: Optional[float] = None,
) -> Dict[str, Any]:
    """Build the domain attributes of a credentialSubject.

    The subject `id` is attached by the issuer client once the subject DID
    exists. Optional attributes are only included when they have a value,
    since the issuer's schema rejects explicit nulls.
    """
    subject: Dict[str, Any] = {
        "fullName": full_name or "Unknown User",
        "authMethod": auth_method,
        "accountState": account_state,
        "registrationDate": int(now if now is not None else time.time()),
        "isVerified": is_verified,
    }
    if email:
        subject["email"] = email
    if wallet_address:
        subject["walletAddress"] = wallet_address
    return subject


def build_credential_request(
    subject: Dict[str, Any], now: Optional[float] = None
) -> Dict[str, Any]:
    """Body for POST /identities/{issuer}/credentials."""
    issued_at = int(now if now is not None else time.time())
    return {
        "credentialSchema": CREDENTIAL_SCHEMA_URL,
        "type": CREDENTIAL_TYPE,
        "credentialSubject": subject,
        "expiration": issued_at + CREDENTIAL_VALIDITY_SECONDS,
    }


def lookup_id(credential_id: str) -> str:
    """Credential id as used in issuer lookup paths."""
    if credential_id.startswith(_URN_UUID_PREFIX):
        return credential_id[len(_URN_UUID_PREFIX):]
    return credential_id


def has_proof(credential: Optional[Dict[str, Any]]) -> bool:
    """True when the credential carries at least one proof object.

    A credential without proof is unconfirmed: the issuer has not yet
    published the state that anchors it.
    """
    if not isinstance(credential, dict):
        return False
    proof = credential.get("proof")
    if isinstance(proof, list):
        return len(proof) > 0
    return isinstance(proof, dict) and bool(proof)
