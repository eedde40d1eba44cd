"""
Selective-disclosure proof queries.

A ProofQuery maps a credential attribute name to a predicate object built from
a fixed operator vocabulary, e.g. {"isVerified": {"$eq": True}}. All
constructors are pure; timestamps are epoch seconds relative to `now`.

The combined constructor is conjunctive only (every recognised condition must
hold) and silently ignores condition keys it does not recognise.
"""

import math
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

from app.core.config import CREDENTIAL_CONTEXT, CREDENTIAL_TYPE
from app.zkpauth.exceptions import InvalidInputError

ProofQuery = Dict[str, Dict[str, Any]]

SECONDS_PER_DAY = 24 * 60 * 60
DAYS_PER_YEAR = 365


class Operator(str, Enum):
    """Predicate operators understood by the issuer's query circuits."""
    EQUAL = "$eq"
    NOT_EQUAL = "$ne"
    LESS_THAN = "$lt"
    GREATER_THAN = "$gt"
    IN = "$in"
    NOT_IN = "$nin"
    EXISTS = "$exists"


OPERATORS: Dict[str, str] = {
    Operator.EQUAL.value: "Equal to",
    Operator.NOT_EQUAL.value: "Not equal to",
    Operator.LESS_THAN.value: "Less than",
    Operator.GREATER_THAN.value: "Greater than",
    Operator.IN.value: "In list",
    Operator.NOT_IN.value: "Not in list",
    Operator.EXISTS.value: "Field exists",
}

# Circuit per proof type
CIRCUIT_IDS: Dict[str, str] = {
    "MTP": "credentialAtomicQueryMTPV2",
    "SIG": "credentialAtomicQuerySigV2",
}
DEFAULT_CIRCUIT_ID = CIRCUIT_IDS["MTP"]


def _now(now: Optional[float]) -> int:
    return int(now if now is not None else time.time())


def _to_epoch(value: Union[int, float, str, datetime], name: str) -> int:
    """Accept epoch seconds, an ISO-8601 string or a datetime."""
    if isinstance(value, bool):
        raise InvalidInputError.invalid(f"{name} must be a date or epoch seconds")
    if isinstance(value, (int, float)):
        return int(_number(value, name))
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise InvalidInputError.invalid(f"{name} is not a valid ISO-8601 date") from e
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp())
    raise InvalidInputError.invalid(f"{name} must be a date or epoch seconds")


def _number(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InvalidInputError.invalid(f"{name} must be a number")
    return value


# =============================================================================
# Constructors
# =============================================================================

def age_at_least(min_age: float, now: Optional[float] = None) -> ProofQuery:
    """registrationDate earlier than `min_age` years before now."""
    cutoff = _now(now) - int(_number(min_age, "minAge") * DAYS_PER_YEAR * SECONDS_PER_DAY)
    return {"registrationDate": {Operator.LESS_THAN.value: cutoff}}


def account_state_equals(state: str = "active") -> ProofQuery:
    return {"accountState": {Operator.EQUAL.value: state}}


def is_verified(flag: bool = True) -> ProofQuery:
    return {"isVerified": {Operator.EQUAL.value: flag}}


def auth_method_equals(method: str = "wallet") -> ProofQuery:
    return {"authMethod": {Operator.EQUAL.value: method}}


def has_email() -> ProofQuery:
    """Registered by email, without revealing the address."""
    return {
        "email": {Operator.EXISTS.value: True},
        "authMethod": {Operator.EQUAL.value: "email"},
    }


def has_wallet() -> ProofQuery:
    """Registered by wallet, without revealing the address."""
    return {
        "walletAddress": {Operator.EXISTS.value: True},
        "authMethod": {Operator.EQUAL.value: "wallet"},
    }


def account_age_at_least(min_days: float, now: Optional[float] = None) -> ProofQuery:
    """registrationDate earlier than `min_days` days before now."""
    cutoff = _now(now) - int(_number(min_days, "minDays") * SECONDS_PER_DAY)
    return {"registrationDate": {Operator.LESS_THAN.value: cutoff}}


def registration_date_between(start: Any, end: Any) -> ProofQuery:
    """registrationDate strictly between start and end.

    An end earlier than start is kept as authored; such a query simply
    cannot be satisfied.
    """
    return {
        "registrationDate": {
            Operator.GREATER_THAN.value: _to_epoch(start, "start"),
            Operator.LESS_THAN.value: _to_epoch(end, "end"),
        }
    }


def combined(conditions: Dict[str, Any], now: Optional[float] = None) -> ProofQuery:
    """Conjunction of the recognised conditions.

    Recognised keys: isVerified, accountState, authMethod, minAge (in days),
    hasEmail, hasWallet. Anything else is ignored.
    """
    if not isinstance(conditions, dict):
        raise InvalidInputError.invalid("conditions must be an object")
    query: ProofQuery = {}

    if conditions.get("isVerified") is not None:
        query["isVerified"] = {Operator.EQUAL.value: conditions["isVerified"]}
    if conditions.get("accountState"):
        query["accountState"] = {Operator.EQUAL.value: conditions["accountState"]}
    if conditions.get("authMethod"):
        query["authMethod"] = {Operator.EQUAL.value: conditions["authMethod"]}
    if conditions.get("minAge"):
        query.update(account_age_at_least(conditions["minAge"], now))
    if conditions.get("hasEmail"):
        query["email"] = {Operator.EXISTS.value: True}
    if conditions.get("hasWallet"):
        query["walletAddress"] = {Operator.EXISTS.value: True}

    return query


def custom(query: Dict[str, Any]) -> ProofQuery:
    """Caller-authored query; only the operator vocabulary is checked."""
    if not isinstance(query, dict) or not query:
        raise InvalidInputError.invalid("query must be a non-empty object")

    errors = []
    for attribute, predicate in query.items():
        if not isinstance(predicate, dict) or not predicate:
            errors.append(f"{attribute}: predicate must be a non-empty object")
            continue
        for op in predicate:
            if op not in OPERATORS:
                errors.append(f"{attribute}: unsupported operator {op}")
    if errors:
        raise InvalidInputError.invalid("Invalid proof query", errors)
    return {attribute: dict(predicate) for attribute, predicate in query.items()}


# =============================================================================
# Dispatch by kind
# =============================================================================

_BUILDERS: Dict[str, Callable[[Dict[str, Any], Optional[float]], ProofQuery]] = {
    "ageAtLeast": lambda p, now: age_at_least(p.get("minAge", 18), now),
    "accountState": lambda p, now: account_state_equals(p.get("state", "active")),
    "verification": lambda p, now: is_verified(p.get("isVerified", True)),
    "authMethod": lambda p, now: auth_method_equals(p.get("method", "wallet")),
    "emailRegistration": lambda p, now: has_email(),
    "walletRegistration": lambda p, now: has_wallet(),
    "accountAge": lambda p, now: account_age_at_least(p.get("minDays", 30), now),
    "registrationDateRange": lambda p, now: _date_range(p),
    "combined": lambda p, now: combined(p.get("conditions", p), now),
    "custom": lambda p, now: custom(p.get("query")),
}


def _date_range(params: Dict[str, Any]) -> ProofQuery:
    missing = [name for name in ("start", "end") if params.get(name) is None]
    if missing:
        raise InvalidInputError.missing(*missing)
    return registration_date_between(params["start"], params["end"])


def build_proof_query(
    kind: str, params: Optional[Dict[str, Any]] = None, now: Optional[float] = None
) -> ProofQuery:
    """Build a ProofQuery by kind name.

    Raises:
        InvalidInputError: Unknown kind or malformed parameters.
    """
    builder = _BUILDERS.get(kind)
    if builder is None:
        raise InvalidInputError.invalid(
            f"Unknown proof query kind: {kind}",
            [f"kind must be one of: {', '.join(_BUILDERS)}"],
        )
    if params is not None and not isinstance(params, dict):
        raise InvalidInputError.invalid("params must be an object")
    return builder(params or {}, now)


def build_proof_request(
    query: ProofQuery,
    issuer_did: Optional[str] = None,
    user_did: Optional[str] = None,
    proof_type: str = "MTP",
    credential_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Wrap a query in the issuer node's proof-request envelope."""
    circuit_id = CIRCUIT_IDS.get(proof_type.upper(), CIRCUIT_IDS["SIG"])
    request: Dict[str, Any] = {
        "circuitId": circuit_id,
        "query": {
            "allowedIssuers": [issuer_did] if issuer_did else ["*"],
            "context": CREDENTIAL_CONTEXT,
            "type": CREDENTIAL_TYPE,
            "credentialSubject": query,
        },
    }
    if user_did:
        request["accountAddress"] = user_did
    if credential_id:
        request["credentialId"] = credential_id
    return request


# =============================================================================
# Proof-schema catalogue
# =============================================================================

PROOF_SCHEMAS: Dict[str, Dict[str, Any]] = {
    "verification": {
        "description": "Prove the user is verified without revealing personal data",
        "example_params": {},
        "use_case": "Restrict premium content to verified users",
    },
    "accountState": {
        "description": "Prove the account is active",
        "example_params": {"state": "active"},
        "use_case": "Check the user is not suspended or banned",
    },
    "authMethod": {
        "description": "Prove which authentication method was used (wallet or email)",
        "example_params": {"method": "wallet"},
        "use_case": "Grant wallet users special privileges",
    },
    "emailRegistration": {
        "description": "Prove registration by email without revealing the address",
        "example_params": {},
        "use_case": "Check an email is on file for notifications",
    },
    "walletRegistration": {
        "description": "Prove registration by wallet without revealing the address",
        "example_params": {},
        "use_case": "Check the user can interact with smart contracts",
    },
    "ageAtLeast": {
        "description": "Prove the registration date is more than N years ago",
        "example_params": {"minAge": 18},
        "use_case": "Age-gated access without disclosing the date",
    },
    "accountAge": {
        "description": "Prove the account is more than N days old",
        "example_params": {"minDays": 30},
        "use_case": "Discounts for users registered more than 90 days",
    },
    "registrationDateRange": {
        "description": "Prove registration happened between two dates",
        "example_params": {"start": "2024-01-01T00:00:00Z", "end": "2025-01-01T00:00:00Z"},
        "use_case": "Early-adopter campaigns",
    },
    "combined": {
        "description": "Combine several conditions in one proof (logical AND only)",
        "example_params": {
            "conditions": {
                "isVerified": True,
                "accountState": "active",
                "authMethod": "wallet",
                "minAge": 30,
            }
        },
        "params": {
            "isVerified": "boolean (optional)",
            "accountState": "string (optional)",
            "authMethod": "string (optional)",
            "minAge": "number (days, optional)",
            "hasEmail": "boolean (optional)",
            "hasWallet": "boolean (optional)",
        },
        "use_case": "Verified, active wallet user older than 30 days",
    },
    "custom": {
        "description": "Custom query using the ZKP operator vocabulary",
        "example_params": {"query": {"fieldName": {"$eq": "value"}}},
        "operators": OPERATORS,
        "use_case": "Anything the predefined kinds do not cover",
    },
}


def describe_proof_schema(kind: str, now: Optional[float] = None) -> Dict[str, Any]:
    """Catalogue entry for one kind, with its example query evaluated."""
    entry = PROOF_SCHEMAS[kind]
    described = {k: v for k, v in entry.items() if k != "example_params"}
    described["params_example"] = entry["example_params"]
    described["query"] = build_proof_query(kind, entry["example_params"], now)
    described["circuitId"] = DEFAULT_CIRCUIT_ID
    return described


def describe_proof_schemas(now: Optional[float] = None) -> Dict[str, Dict[str, Any]]:
    return {kind: describe_proof_schema(kind, now) for kind in PROOF_SCHEMAS}
