"""Shared fixtures: an in-process issuer node behind httpx.MockTransport."""

import json
import uuid

import httpx
import pytest

from app.zkpauth.events import EventRecorder, reset_event_recorder
from app.zkpauth.issuer_client import IssuerClient, reset_issuer_client
from app.zkpauth.orchestrator import CredentialIssuanceOrchestrator
from app.zkpauth.service import AuthService, reset_auth_service
from app.zkpauth.store import InMemoryPrincipalStore, reset_principal_store
from app.zkpauth.verification import VerificationGate

ISSUER_DID = "did:polygonid:polygon:amoy:2qQ68JkRcf3xrHPQPWZei3YeVzHPP58wYNxx2mEouR"
ISSUER_BASE_URL = "http://issuer.test"


def make_proof(issuer_did: str = ISSUER_DID) -> dict:
    return {
        "type": "BJJSignature2021",
        "signature": "a1" * 64,
        "coreClaim": "c0" * 64,
        "issuerData": {
            "id": issuer_did,
            "state": {"value": "5e" * 32, "claimsTreeRoot": "7d" * 32},
            "authCoreClaim": "ca" * 64,
            "mtp": {"existence": True, "siblings": ["0", "1", "2"]},
            "credentialStatus": {"type": "Iden3ReverseSparseMerkleTreeProof"},
        },
    }


class FakeIssuerNode:
    """Minimal issuer node: identities, credentials, publish, proof verify.

    Set `fail[operation]` to an httpx.Response or an exception to make that
    operation fail. Operations: list_identities, create_identity,
    create_credential, publish_state, get_credential, verify_proof.
    """

    def __init__(self):
        self.identities = [{"identifier": ISSUER_DID, "state": {"status": "confirmed"}}]
        self.credentials: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []
        self.fail: dict[str, object] = {}
        self._dids = 0

    # -- helpers for tests ---------------------------------------------------

    def calls(self, operation: str) -> int:
        return sum(1 for r in self.requests if self._operation(r) == operation)

    def add_credential(self, subject: dict, published: bool = True, revoked: bool = False) -> dict:
        """Store a credential as the issuer would and return its vc."""
        credential_id = str(uuid.uuid4())
        vc = {
            "@context": ["https://www.w3.org/2018/credentials/v1"],
            "id": f"urn:uuid:{credential_id}",
            "type": ["VerifiableCredential", "ZKPAuthCredential"],
            "issuer": ISSUER_DID,
            "issuanceDate": "2026-01-01T00:00:00Z",
            "expirationDate": "2027-01-01T00:00:00Z",
            "credentialSubject": dict(subject),
        }
        if published:
            vc["proof"] = [make_proof()]
        self.credentials[credential_id] = {"id": credential_id, "revoked": revoked, "vc": vc}
        return vc

    def revoke_all(self) -> None:
        for record in self.credentials.values():
            record["revoked"] = True

    # -- transport handler ---------------------------------------------------

    @staticmethod
    def _operation(request: httpx.Request) -> str:
        parts = request.url.path.strip("/").split("/")
        if parts[-2:] == ["proofs", "verify"]:
            return "verify_proof"
        if parts[-1] == "identities":
            return "list_identities" if request.method == "GET" else "create_identity"
        if parts[-1] == "credentials":
            return "create_credential"
        if parts[-2:] == ["state", "publish"]:
            return "publish_state"
        return "get_credential"

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        operation = self._operation(request)

        failure = self.fail.get(operation)
        if isinstance(failure, Exception):
            raise failure
        if failure is not None:
            return httpx.Response(failure.status_code, headers=failure.headers, content=failure.content)

        body = json.loads(request.content) if request.content else None
        return getattr(self, f"_{operation}")(request, body)

    def _list_identities(self, request, body):
        return httpx.Response(200, json=self.identities)

    def _create_identity(self, request, body):
        self._dids += 1
        identifier = f"did:polygonid:polygon:amoy:2qUser{self._dids:040d}"
        return httpx.Response(201, json={"identifier": identifier, "state": {"status": "created"}})

    def _create_credential(self, request, body):
        vc = self.add_credential(body["credentialSubject"], published=False)
        return httpx.Response(201, json={"id": vc["id"].removeprefix("urn:uuid:")})

    def _publish_state(self, request, body):
        for record in self.credentials.values():
            record["vc"].setdefault("proof", [make_proof()])
        return httpx.Response(202, json={"txID": "0x" + "ab" * 32})

    def _get_credential(self, request, body):
        credential_id = request.url.path.rsplit("/", 1)[-1]
        record = self.credentials.get(credential_id)
        if record is None:
            return httpx.Response(404, json={"message": "credential not found"})
        proof_types = ["BJJSignature2021"] if record["vc"].get("proof") else []
        return httpx.Response(200, json={**record, "proofTypes": proof_types})

    def _verify_proof(self, request, body):
        return httpx.Response(200, json={"verified": True, "circuitId": body["circuitId"]})


@pytest.fixture
def issuer_node():
    return FakeIssuerNode()


@pytest.fixture
def issuer_client(issuer_node):
    return IssuerClient(
        base_url=ISSUER_BASE_URL,
        user="user-issuer",
        password="issuer-secret",
        api_prefix="/v2",
        transport=httpx.MockTransport(issuer_node.handler),
    )


@pytest.fixture
def recorder():
    return EventRecorder(max_events=200)


@pytest.fixture
def orchestrator(issuer_client, recorder):
    return CredentialIssuanceOrchestrator(issuer_client, recorder, settle_delay=0)


@pytest.fixture
def gate(issuer_client, recorder):
    return VerificationGate(issuer_client, recorder)


@pytest.fixture
def store():
    return InMemoryPrincipalStore()


@pytest.fixture
def service(issuer_client, store, orchestrator, gate, recorder):
    return AuthService(issuer_client, store, orchestrator, gate, recorder, password_rounds=4)


@pytest.fixture(autouse=True)
def reset_globals():
    yield
    reset_event_recorder()
    reset_principal_store()
    reset_auth_service()
    reset_issuer_client()
