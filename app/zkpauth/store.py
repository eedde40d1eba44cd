"""Principal storage.

PrincipalStore is the interface the service depends on. The default
InMemoryPrincipalStore is per-process and loses every record on restart;
a durable implementation only needs to provide the same three methods.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from app.zkpauth.verification import VerificationVerdict

log = logging.getLogger(__name__)


# =============================================================================
# PRINCIPAL RECORD
# =============================================================================


@dataclass(frozen=True)
class PrincipalRecord:
    """A registered principal.

    Records are immutable: updates replace the whole record with
    dataclasses.replace() followed by save().

    Attributes:
        login_key: Lower-cased login key (email)
        full_name: Display name
        password_digest: bcrypt digest, never returned to callers
        identity: Subject DID
        credential: Credential held for the principal (None if never issued)
        last_verification: Most recent verdict from the verification gate
        auth_method: email, wallet or hybrid
        account_state: Account state written into the credential
        created_at: Registration time
        verified_at: Time of the last positive verification
    """

    login_key: str
    full_name: str
    password_digest: str
    identity: str | None = None
    credential: dict[str, Any] | None = None
    last_verification: VerificationVerdict | None = None
    auth_method: str = "email"
    account_state: str = "active"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    verified_at: datetime | None = None


def normalize_login_key(login_key: str) -> str:
    return login_key.strip().lower()


# =============================================================================
# STORE INTERFACE
# =============================================================================


class PrincipalStore(ABC):
    """Abstract interface for principal storage.

    Single writer per key is assumed; concurrent saves are last-write-wins.
    Callers perform their own existence pre-check before save().
    """

    @abstractmethod
    async def save(self, login_key: str, record: PrincipalRecord) -> None:
        """Store a record, replacing any record under the same key."""
        ...

    @abstractmethod
    async def find(self, login_key: str) -> PrincipalRecord | None:
        """Look up a record; None if the key is unknown."""
        ...

    @abstractmethod
    async def exists(self, login_key: str) -> bool:
        ...


# =============================================================================
# IN-MEMORY STORE
# =============================================================================


class InMemoryPrincipalStore(PrincipalStore):
    """Ephemeral dict-backed store keyed by lower-cased login key."""

    def __init__(self) -> None:
        self._records: dict[str, PrincipalRecord] = {}

    async def save(self, login_key: str, record: PrincipalRecord) -> None:
        key = normalize_login_key(login_key)
        self._records[key] = record
        log.debug(f"Saved principal {key}")

    async def find(self, login_key: str) -> PrincipalRecord | None:
        return self._records.get(normalize_login_key(login_key))

    async def exists(self, login_key: str) -> bool:
        return normalize_login_key(login_key) in self._records

    def count(self) -> int:
        return len(self._records)


# =============================================================================
# GLOBAL INSTANCE
# =============================================================================


_principal_store: PrincipalStore | None = None


def get_principal_store() -> PrincipalStore:
    """Get the global principal store instance."""
    global _principal_store
    if _principal_store is None:
        _principal_store = InMemoryPrincipalStore()
    return _principal_store


def reset_principal_store() -> None:
    """Reset the global principal store (for testing)."""
    global _principal_store
    _principal_store = None
