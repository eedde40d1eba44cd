"""
Issuer node API client.

Typed async wrapper around the Identity Issuer Service REST API:
- GET  /identities                                  issuer identity lookup
- POST /identities                                  DID creation
- POST /identities/{issuer}/credentials             credential creation
- POST /identities/{issuer}/state/publish           state publication
- GET  /identities/{issuer}/credentials/{id}        credential fetch / lookup
- POST /proofs/verify                               ZK proof verification

Every operation carries its own timeout. Transport and HTTP failures are
raised as IssuerError with a kind classification; the caller decides whether
a failure is fatal.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import httpx

from app.core.config import (
    CREATE_CREDENTIAL_TIMEOUT_SECONDS,
    CREATE_IDENTITY_TIMEOUT_SECONDS,
    FETCH_CREDENTIAL_TIMEOUT_SECONDS,
    ISSUER_API_PREFIX,
    ISSUER_NODE_BASE_URL,
    ISSUER_NODE_PASSWORD,
    ISSUER_NODE_USER,
    LIST_IDENTITIES_TIMEOUT_SECONDS,
    PUBLISH_STATE_TIMEOUT_SECONDS,
    VERIFY_CREDENTIAL_TIMEOUT_SECONDS,
    VERIFY_PROOF_TIMEOUT_SECONDS,
)
from app.zkpauth.credentials import build_credential_request, build_identity_request, lookup_id
from app.zkpauth.exceptions import IssuerError, IssuerErrorKind

log = logging.getLogger(__name__)

ISSUER_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


@dataclass
class CredentialRef:
    """Issuer acknowledgement of a created credential.

    Attributes:
        id: Issuer-assigned credential id.
        credential_subject: The subject that was submitted for signing.
        raw: Response body of the creation call.
    """

    id: str
    credential_subject: Dict[str, Any]
    raw: Dict[str, Any] = field(default_factory=dict)

    def as_credential(self) -> Dict[str, Any]:
        """Unconfirmed credential view of this reference (never has a proof)."""
        credential = {k: v for k, v in self.raw.items() if k != "proof"}
        credential.setdefault("id", self.id)
        credential.setdefault("credentialSubject", dict(self.credential_subject))
        return credential


@dataclass
class CredentialLookup:
    """Issuer-side view of a credential, as seen by the verification gate."""

    exists: bool
    revoked: bool = False
    stored_credential: Optional[Dict[str, Any]] = None
    proof_types: List[str] = field(default_factory=list)


class IssuerIdentityResolver:
    """Resolves the issuer node's own DID once and caches it.

    Contract: resolve once, never invalidate. The first successful resolution
    is kept for the lifetime of the resolver; a failed resolution caches
    nothing and raises IssuerError(Unreachable) so every dependent call fails
    the same way.
    """

    def __init__(self, fetch_identities: Callable[[], Awaitable[List[Dict[str, Any]]]]):
        self._fetch_identities = fetch_identities
        self._identity: Optional[str] = None

    @property
    def identity(self) -> Optional[str]:
        """The cached issuer DID, or None if not yet resolved."""
        return self._identity

    async def resolve(self) -> str:
        if self._identity is not None:
            return self._identity

        try:
            identities = await self._fetch_identities()
        except IssuerError as e:
            log.error(f"Issuer identity resolution failed: {e.kind.value}: {e.detail}")
            raise IssuerError.unreachable(
                f"issuer identity unavailable: {e.detail}", "resolve_issuer_identity"
            ) from e

        identifier = None
        if identities and isinstance(identities[0], dict):
            identifier = identities[0].get("identifier")
        if not identifier:
            raise IssuerError.unreachable(
                "issuer node reports no identities", "resolve_issuer_identity"
            )

        # Write once: a concurrent resolution may have landed first
        if self._identity is None:
            self._identity = identifier
            log.info(f"Issuer DID resolved: {identifier}")
        return self._identity


def _error_detail(resp: httpx.Response) -> str:
    """Extract a short diagnostic message from an error response."""
    try:
        data = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}: {resp.text[:200]}"
    if isinstance(data, dict) and data.get("message"):
        return f"HTTP {resp.status_code}: {data['message']}"
    return f"HTTP {resp.status_code}"


class IssuerClient:
    """HTTP client for the issuer node API.

    Uses a persistent httpx.AsyncClient for connection reuse. All requests
    authenticate with the shared Basic-auth credential.
    """

    def __init__(
        self,
        base_url: str = ISSUER_NODE_BASE_URL,
        user: str = ISSUER_NODE_USER,
        password: str = ISSUER_NODE_PASSWORD,
        api_prefix: str = ISSUER_API_PREFIX,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the issuer client.

        Args:
            base_url: Issuer node base URL.
            user: Basic-auth user.
            password: Basic-auth password.
            api_prefix: API version prefix (e.g. "/v2").
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        self.base_url = base_url.rstrip("/")
        prefix = api_prefix.strip("/")
        self.api_prefix = f"/{prefix}" if prefix else ""
        self._auth = httpx.BasicAuth(user, password)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.resolver = IssuerIdentityResolver(self.list_identities)

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the persistent HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                auth=self._auth,
                headers=ISSUER_HEADERS,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the persistent client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def _path(self, *segments: str) -> str:
        return self.api_prefix + "/" + "/".join(segments)

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        timeout: float,
        json: Optional[Any] = None,
        allow_not_found: bool = False,
    ) -> Optional[httpx.Response]:
        """Send one request and classify failures.

        Returns:
            The response, or None for a 404 when allow_not_found is set.

        Raises:
            IssuerError: On timeout, transport failure or non-success status.
        """
        client = self._get_client()
        log.debug(f"{operation}: {method} {path}")
        try:
            resp = await client.request(method, path, json=json, timeout=timeout)
        except httpx.TimeoutException as e:
            log.warning(f"{operation}: timeout after {timeout:g}s")
            raise IssuerError.timeout(operation, timeout) from e
        except httpx.RequestError as e:
            log.warning(f"{operation}: request error {type(e).__name__}: {e}")
            raise IssuerError.unreachable(f"{type(e).__name__}: {e}", operation) from e

        if allow_not_found and resp.status_code == 404:
            return None
        if resp.is_error:
            detail = _error_detail(resp)
            log.warning(f"{operation}: {detail}")
            raise IssuerError.from_status(resp.status_code, detail, operation)
        return resp

    @staticmethod
    def _json(resp: httpx.Response, operation: str) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise IssuerError(
                IssuerErrorKind.UNKNOWN, "malformed JSON response", operation, resp.status_code
            ) from e

    async def issuer_identity(self) -> str:
        """The issuer node's own DID (resolved once, then cached)."""
        return await self.resolver.resolve()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def list_identities(self) -> List[Dict[str, Any]]:
        """List identities managed by the issuer node."""
        resp = await self._request(
            "GET", self._path("identities"), "list_identities", LIST_IDENTITIES_TIMEOUT_SECONDS
        )
        data = self._json(resp, "list_identities")
        if not isinstance(data, list):
            raise IssuerError(IssuerErrorKind.UNKNOWN, "identity list is not an array", "list_identities")
        return data

    async def create_identity(self, did_config: Optional[Dict[str, Any]] = None) -> str:
        """Create a new DID on the issuer node.

        Args:
            did_config: Request body; defaults to the configured DID metadata.

        Returns:
            The new DID.
        """
        resp = await self._request(
            "POST",
            self._path("identities"),
            "create_identity",
            CREATE_IDENTITY_TIMEOUT_SECONDS,
            json=did_config or build_identity_request(),
        )
        data = self._json(resp, "create_identity")
        identifier = data.get("identifier") if isinstance(data, dict) else None
        if not identifier:
            raise IssuerError(IssuerErrorKind.UNKNOWN, "response has no identifier", "create_identity")
        return identifier

    async def create_credential(
        self,
        identity: str,
        subject_attributes: Dict[str, Any],
        issuer_id: Optional[str] = None,
    ) -> CredentialRef:
        """Ask the issuer to sign a credential for a subject identity.

        Args:
            identity: Subject DID.
            subject_attributes: Domain attributes of the credential subject.
            issuer_id: Issuer DID; resolved when omitted.
        """
        issuer_id = issuer_id or await self.issuer_identity()
        subject = {"id": identity}
        subject.update({k: v for k, v in subject_attributes.items() if k != "id"})

        resp = await self._request(
            "POST",
            self._path("identities", issuer_id, "credentials"),
            "create_credential",
            CREATE_CREDENTIAL_TIMEOUT_SECONDS,
            json=build_credential_request(subject),
        )
        data = self._json(resp, "create_credential")
        credential_id = data.get("id") if isinstance(data, dict) else None
        if not credential_id:
            raise IssuerError(IssuerErrorKind.UNKNOWN, "response has no credential id", "create_credential")
        return CredentialRef(id=credential_id, credential_subject=subject, raw=data)

    async def publish_state(self, issuer_id: Optional[str] = None) -> Dict[str, Any]:
        """Publish the issuer state so pending credentials receive proofs."""
        issuer_id = issuer_id or await self.issuer_identity()
        resp = await self._request(
            "POST",
            self._path("identities", issuer_id, "state", "publish"),
            "publish_state",
            PUBLISH_STATE_TIMEOUT_SECONDS,
            json={},
        )
        if not resp.content:
            return {}
        data = self._json(resp, "publish_state")
        return data if isinstance(data, dict) else {"result": data}

    async def fetch_credential(
        self,
        credential_ref: Union[CredentialRef, str],
        issuer_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Fetch the full credential, including proofs once published.

        The issuer answers either {id, vc: {...}} or the bare credential.
        """
        issuer_id = issuer_id or await self.issuer_identity()
        credential_id = credential_ref.id if isinstance(credential_ref, CredentialRef) else credential_ref
        resp = await self._request(
            "GET",
            self._path("identities", issuer_id, "credentials", lookup_id(credential_id)),
            "fetch_credential",
            FETCH_CREDENTIAL_TIMEOUT_SECONDS,
        )
        data = self._json(resp, "fetch_credential")
        if not isinstance(data, dict):
            raise IssuerError(IssuerErrorKind.UNKNOWN, "credential is not an object", "fetch_credential")
        vc = data.get("vc")
        return vc if isinstance(vc, dict) else data

    async def verify_credential_exists(self, issuer_id: str, credential_id: str) -> CredentialLookup:
        """Look up a credential for verification.

        A 404 is an answer (the credential does not exist), not a failure.
        """
        resp = await self._request(
            "GET",
            self._path("identities", issuer_id, "credentials", lookup_id(credential_id)),
            "verify_credential_exists",
            VERIFY_CREDENTIAL_TIMEOUT_SECONDS,
            allow_not_found=True,
        )
        if resp is None:
            return CredentialLookup(exists=False)

        data = self._json(resp, "verify_credential_exists")
        if not isinstance(data, dict):
            raise IssuerError(
                IssuerErrorKind.UNKNOWN, "credential record is not an object", "verify_credential_exists"
            )
        stored = data.get("vc")
        return CredentialLookup(
            exists=True,
            revoked=bool(data.get("revoked", False)),
            stored_credential=stored if isinstance(stored, dict) else None,
            proof_types=list(data.get("proofTypes") or []),
        )

    async def verify_proof(
        self, circuit_id: str, proof: Dict[str, Any], pub_signals: List[Any]
    ) -> Dict[str, Any]:
        """Have the issuer node verify a client-generated ZK proof."""
        resp = await self._request(
            "POST",
            self._path("proofs", "verify"),
            "verify_proof",
            VERIFY_PROOF_TIMEOUT_SECONDS,
            json={"circuitId": circuit_id, "proof": proof, "pub_signals": pub_signals},
        )
        data = self._json(resp, "verify_proof")
        return data if isinstance(data, dict) else {"verified": False, "result": data}


# Global client instance
_client: Optional[IssuerClient] = None


def get_issuer_client() -> IssuerClient:
    """Get or create the global issuer client."""
    global _client
    if _client is None:
        _client = IssuerClient()
    return _client


async def close_issuer_client() -> None:
    """Close the global client's connections."""
    if _client is not None:
        await _client.close()


def reset_issuer_client() -> None:
    """Reset the global client (for testing)."""
    global _client
    _client = None
