"""
Credential issuance pipeline.

Drives DID creation, credential creation, state publication and the
credential re-fetch for a registering principal:

    START -> IDENTITY_CREATED -> CREDENTIAL_CREATED
          -> PUBLISHED | PUBLISH_SKIPPED -> ISSUED
    (any fatal step) -> FAILED

Identity and credential creation are fatal: their IssuerError propagates
unchanged and nothing is fabricated locally. Publication and re-fetch are
best-effort: the pipeline still reaches ISSUED, possibly with an unconfirmed
(proof-less) credential. No retries are performed here.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from app.core.config import PUBLISH_SETTLE_DELAY_SECONDS
from app.zkpauth.credentials import has_proof, is_valid_did
from app.zkpauth.events import EventRecorder, StageEvent, StageTimer, get_event_recorder
from app.zkpauth.exceptions import IssuerError
from app.zkpauth.issuer_client import CredentialRef, IssuerClient

log = logging.getLogger(__name__)


class IssuanceState(str, Enum):
    START = "start"
    IDENTITY_CREATED = "identity_created"
    CREDENTIAL_CREATED = "credential_created"
    PUBLISHED = "published"
    PUBLISH_SKIPPED = "publish_skipped"
    ISSUED = "issued"
    FAILED = "failed"


@dataclass
class IssuanceResult:
    """Outcome of one issuance run.

    Attributes:
        state: Last state reached (ISSUED for a returned result).
        identity: Subject DID created by the issuer.
        credential: Fetched credential, or the CredentialRef view on fallback.
        credential_ref: Issuer acknowledgement of credential creation.
        issuer_identity: Issuer DID that signed the credential.
        published: True when state publication succeeded.
        confirmed: True when the credential carries a proof.
        events: Stage events emitted during the run.
    """

    state: IssuanceState = IssuanceState.START
    identity: Optional[str] = None
    credential: Optional[Dict[str, Any]] = None
    credential_ref: Optional[CredentialRef] = None
    issuer_identity: Optional[str] = None
    published: bool = False
    confirmed: bool = False
    events: List[StageEvent] = field(default_factory=list)


class CredentialIssuanceOrchestrator:
    """Runs the issuance pipeline against an IssuerClient."""

    COMPONENT = "issuance"

    def __init__(
        self,
        client: IssuerClient,
        recorder: Optional[EventRecorder] = None,
        settle_delay: float = PUBLISH_SETTLE_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the orchestrator.

        Args:
            client: Issuer node client.
            recorder: Stage event sink (defaults to the global recorder).
            settle_delay: Seconds to wait between publish and re-fetch.
            sleep: Awaitable sleep used for the settle delay.
        """
        self.client = client
        self.recorder = recorder or get_event_recorder()
        self.settle_delay = settle_delay
        self._sleep = sleep

    def _emit(
        self,
        result: IssuanceResult,
        timer: StageTimer,
        stage: str,
        outcome: str,
        detail: Optional[str] = None,
    ) -> None:
        event = StageEvent(
            component=self.COMPONENT,
            stage=stage,
            outcome=outcome,
            elapsed_ms=timer.lap(),
            detail=detail,
            identity=result.identity,
        )
        result.events.append(event)
        self.recorder.emit(event)

    def _fail(self, result: IssuanceResult, timer: StageTimer, stage: str, error: IssuerError) -> None:
        result.state = IssuanceState.FAILED
        self._emit(result, timer, stage, "failed", f"{error.kind.value}: {error.detail}")

    async def issue(self, subject_attributes: Dict[str, Any]) -> IssuanceResult:
        """Provision a DID and a signed credential for a new principal.

        Args:
            subject_attributes: credentialSubject attributes without `id`.

        Returns:
            IssuanceResult in state ISSUED.

        Raises:
            IssuerError: Issuer resolution, identity creation or credential
                creation failed. No partial identity is returned.
        """
        result = IssuanceResult()
        timer = StageTimer()

        try:
            result.issuer_identity = await self.client.issuer_identity()
        except IssuerError as e:
            self._fail(result, timer, "resolve_issuer", e)
            raise
        self._emit(result, timer, "resolve_issuer", "success")

        # Fatal: an identity without issuer-backed keys can never be verified
        try:
            result.identity = await self.client.create_identity()
        except IssuerError as e:
            self._fail(result, timer, "create_identity", e)
            raise
        if not is_valid_did(result.identity):
            log.warning(f"Issuer returned DID with unexpected shape: {result.identity}")
        result.state = IssuanceState.IDENTITY_CREATED
        self._emit(result, timer, "create_identity", "success")

        try:
            result.credential_ref = await self.client.create_credential(
                result.identity, subject_attributes, result.issuer_identity
            )
        except IssuerError as e:
            self._fail(result, timer, "create_credential", e)
            raise
        result.state = IssuanceState.CREDENTIAL_CREATED
        self._emit(result, timer, "create_credential", "success", result.credential_ref.id)

        try:
            await self.client.publish_state(result.issuer_identity)
        except IssuerError as e:
            log.warning(f"State publication failed, credential stays unconfirmed: {e.message}")
            result.state = IssuanceState.PUBLISH_SKIPPED
            self._emit(result, timer, "publish_state", "skipped", f"{e.kind.value}: {e.detail}")
        else:
            result.published = True
            result.state = IssuanceState.PUBLISHED
            self._emit(result, timer, "publish_state", "success")

        # Heuristic wait for publication to propagate; no completion polling
        if self.settle_delay > 0:
            await self._sleep(self.settle_delay)

        try:
            result.credential = await self.client.fetch_credential(
                result.credential_ref, result.issuer_identity
            )
        except IssuerError as e:
            log.warning(f"Credential re-fetch failed, using creation response: {e.message}")
            result.credential = result.credential_ref.as_credential()
            self._emit(result, timer, "fetch_credential", "fallback", f"{e.kind.value}: {e.detail}")
        else:
            self._emit(result, timer, "fetch_credential", "success")

        result.confirmed = has_proof(result.credential)
        result.state = IssuanceState.ISSUED
        self._emit(
            result, timer, "issued", "success",
            "confirmed" if result.confirmed else "unconfirmed",
        )
        return result
