import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.logging_config import configure_logging
from app.zkpauth.api_models import (
    ERROR_HTTP_STATUS,
    ErrorDetail,
    LoginRequest,
    LogLevelRequest,
    ProofQueryRequest,
    RegisterRequest,
    VerifyCredentialRequest,
    VerifyProofRequest,
    WalletAuthRequest,
)
from app.zkpauth.events import get_event_recorder
from app.zkpauth.exceptions import IssuerError, LoginDeniedError, ZKPAuthError
from app.zkpauth.issuer_client import close_issuer_client
from app.zkpauth.proof_query import PROOF_SCHEMAS, describe_proof_schema, describe_proof_schemas
from app.zkpauth.service import get_auth_service

configure_logging()
log = logging.getLogger("zkpauth")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    from app.core.config import ISSUER_NODE_BASE_URL

    log.info(f"Starting ZKP Auth service (issuer node: {ISSUER_NODE_BASE_URL})")
    yield
    log.info("Shutting down ZKP Auth service...")
    await close_issuer_client()
    log.info("ZKP Auth service stopped")


app = FastAPI(title="ZKP Auth", version="0.1.0", lifespan=lifespan)


@app.exception_handler(ZKPAuthError)
async def zkpauth_error_handler(request: Request, exc: ZKPAuthError):
    """Convert classified failures to ErrorDetail bodies."""
    detail = ErrorDetail(code=exc.code, message=exc.message, details=exc.details)
    if isinstance(exc, LoginDeniedError):
        detail.stage = exc.stage
        detail.reason = exc.reason
    elif isinstance(exc, IssuerError):
        detail.message = exc.cause
        detail.details = {"kind": exc.kind.value, "operation": exc.operation}
    return JSONResponse(
        status_code=ERROR_HTTP_STATUS.get(exc.code, 500),
        content=detail.model_dump(),
    )


@app.middleware("http")
async def req_log(request: Request, call_next):
    start = time.time()
    route = request.url.path
    remote = request.client.host if request.client else "-"
    resp = await call_next(request)
    duration_ms = int((time.time() - start) * 1000)
    log.info(f"request_complete status={resp.status_code} duration_ms={duration_ms}",
             extra={"request_id": "-", "route": route, "remote_addr": remote})
    return resp


@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.get("/health")
async def health():
    """Service health including issuer node reachability."""
    service = get_auth_service()
    try:
        identities = await service.client.list_identities()
    except IssuerError as e:
        log.warning(f"Health check: issuer node {e.kind.value}")
        return {
            "status": "degraded",
            "issuerNode": {"reachable": False, "kind": e.kind.value, "cause": e.cause},
        }
    return {
        "status": "ok",
        "issuerNode": {"reachable": True, "identities": len(identities)},
    }


# -----------------------------------------------------------------------------
# Registration and login
# -----------------------------------------------------------------------------

@app.post("/api/register")
async def register(req: RegisterRequest):
    result = await get_auth_service().register(req.name, req.email, req.password)
    return {"success": True, "message": "Registration complete", **result}


@app.post("/api/login")
async def login(req: LoginRequest):
    """Password check followed by mandatory credential verification.

    Any failed verification stage denies access with 401 and a stage tag.
    """
    result = await get_auth_service().login(req.email, req.password)
    return {"success": True, "message": "Login successful", **result}


@app.post("/api/wallet-auth")
async def wallet_auth(req: WalletAuthRequest):
    result = await get_auth_service().wallet_auth(req.walletAddress)
    return {"success": True, **result}


# -----------------------------------------------------------------------------
# Credentials and proofs
# -----------------------------------------------------------------------------

@app.post("/api/verify-credential")
async def verify_credential(req: VerifyCredentialRequest):
    verdict = await get_auth_service().verify_credential(req.credential, req.issuerDID)
    return verdict.to_dict()


@app.get("/api/issuer/info")
async def issuer_info():
    return await get_auth_service().issuer_info()


@app.post("/api/proof-query")
def proof_query(req: ProofQueryRequest):
    return get_auth_service().proof_query(
        req.kind, req.params, req.issuerDID, req.userDID, req.proofType
    )


@app.get("/proof-schema")
def proof_schema(type: str | None = None):
    """Proof-schema catalogue; one entry when `type` names a known kind."""
    if type and type in PROOF_SCHEMAS:
        return {
            "type": type,
            **describe_proof_schema(type),
            "availableTypes": list(PROOF_SCHEMAS),
        }
    return {
        "message": "Available ZKP proof schemas",
        "schemas": describe_proof_schemas(),
        "usage": "/proof-schema?type=verification",
    }


@app.post("/verify-proof")
async def verify_proof(req: VerifyProofRequest):
    return await get_auth_service().verify_proof(req.circuitId, req.proof, req.pub_signals)


# -----------------------------------------------------------------------------
# Admin
# -----------------------------------------------------------------------------

@app.get("/admin")
def admin():
    """Return all configurable items for operator visibility.

    Gated by ADMIN_ENDPOINT_ENABLED (default: True for dev, False for prod).
    """
    from app.core.config import (
        ADMIN_ENDPOINT_ENABLED,
        AUTH_METHODS,
        BCRYPT_ROUNDS,
        CREATE_CREDENTIAL_TIMEOUT_SECONDS,
        CREATE_IDENTITY_TIMEOUT_SECONDS,
        CREDENTIAL_SCHEMA_URL,
        CREDENTIAL_TYPE,
        CREDENTIAL_VALIDITY_SECONDS,
        DID_BLOCKCHAIN,
        DID_KEY_TYPE,
        DID_METHOD,
        DID_NETWORK,
        FETCH_CREDENTIAL_TIMEOUT_SECONDS,
        ISSUER_API_PREFIX,
        ISSUER_NODE_BASE_URL,
        LIST_IDENTITIES_TIMEOUT_SECONDS,
        PUBLISH_SETTLE_DELAY_SECONDS,
        PUBLISH_STATE_TIMEOUT_SECONDS,
        VERIFY_CREDENTIAL_TIMEOUT_SECONDS,
        VERIFY_PROOF_TIMEOUT_SECONDS,
    )

    if not ADMIN_ENDPOINT_ENABLED:
        return JSONResponse(
            status_code=404,
            content={"detail": "Admin endpoint disabled"}
        )

    service = get_auth_service()
    return {
        "issuer_node": {
            "base_url": ISSUER_NODE_BASE_URL,
            "api_prefix": ISSUER_API_PREFIX,
            "issuer_did": service.client.resolver.identity,
        },
        "timeouts": {
            "list_identities_seconds": LIST_IDENTITIES_TIMEOUT_SECONDS,
            "create_identity_seconds": CREATE_IDENTITY_TIMEOUT_SECONDS,
            "create_credential_seconds": CREATE_CREDENTIAL_TIMEOUT_SECONDS,
            "publish_state_seconds": PUBLISH_STATE_TIMEOUT_SECONDS,
            "fetch_credential_seconds": FETCH_CREDENTIAL_TIMEOUT_SECONDS,
            "verify_credential_seconds": VERIFY_CREDENTIAL_TIMEOUT_SECONDS,
            "verify_proof_seconds": VERIFY_PROOF_TIMEOUT_SECONDS,
        },
        "policy": {
            "publish_settle_delay_seconds": PUBLISH_SETTLE_DELAY_SECONDS,
            "did_metadata": {
                "method": DID_METHOD,
                "blockchain": DID_BLOCKCHAIN,
                "network": DID_NETWORK,
                "type": DID_KEY_TYPE,
            },
            "credential_schema": CREDENTIAL_SCHEMA_URL,
            "credential_type": CREDENTIAL_TYPE,
            "credential_validity_seconds": CREDENTIAL_VALIDITY_SECONDS,
            "auth_methods": sorted(AUTH_METHODS),
            "bcrypt_rounds": BCRYPT_ROUNDS,
        },
        "features": {
            "admin_endpoint_enabled": ADMIN_ENDPOINT_ENABLED,
        },
        "environment": {
            "log_level": logging.getLogger().getEffectiveLevel(),
            "log_level_name": logging.getLevelName(logging.getLogger().getEffectiveLevel()),
        },
        "events": get_event_recorder().get_buffer_stats(),
    }


@app.post("/admin/log-level")
def set_log_level(req: LogLevelRequest):
    """Change log level at runtime (DEBUG, INFO, WARNING, ERROR, CRITICAL).

    Gated by ADMIN_ENDPOINT_ENABLED.
    """
    from app.core.config import ADMIN_ENDPOINT_ENABLED

    if not ADMIN_ENDPOINT_ENABLED:
        return JSONResponse(
            status_code=404,
            content={"detail": "Admin endpoint disabled"}
        )

    valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    level_upper = req.level.upper()

    if level_upper not in valid_levels:
        return JSONResponse(
            status_code=400,
            content={"detail": f"Invalid log level. Must be one of: {valid_levels}"}
        )

    # Set level on root logger and the zkpauth logger
    logging.getLogger().setLevel(getattr(logging, level_upper))
    logging.getLogger("zkpauth").setLevel(getattr(logging, level_upper))

    log.info(f"Log level changed to {level_upper}")

    return {
        "success": True,
        "log_level": level_upper,
        "message": f"Log level set to {level_upper}"
    }


@app.get("/admin/events")
def admin_events(limit: int = 100, component: str | None = None, outcome: str | None = None):
    """Recent issuance and verification stage events, newest first.

    Gated by ADMIN_ENDPOINT_ENABLED.
    """
    from app.core.config import ADMIN_ENDPOINT_ENABLED

    if not ADMIN_ENDPOINT_ENABLED:
        return JSONResponse(
            status_code=404,
            content={"detail": "Admin endpoint disabled"}
        )

    recorder = get_event_recorder()
    return {
        "events": recorder.get_recent_events(limit=limit, component=component, outcome=outcome),
        **recorder.get_buffer_stats(),
    }
