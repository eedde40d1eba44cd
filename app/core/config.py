"""
ZKP Auth service configuration constants.

Constants are organized into:
- ISSUER NODE: Connection to the Identity Issuer Service (env vars)
- TIMEOUTS: Per-operation budgets reflecting each call's latency class
- POLICY: Implementation choices for issuance and credential shaping
- OPERATIONAL: Deployment-specific settings (env vars)
"""

import os

# =============================================================================
# ISSUER NODE CONNECTION
# =============================================================================

# Base URL of the issuer node (Polygon ID / Privado ID issuer API)
ISSUER_NODE_BASE_URL: str = os.getenv("ISSUER_NODE_BASE_URL", "http://localhost:3001").rstrip("/")

# API version prefix prepended to every issuer path
ISSUER_API_PREFIX: str = os.getenv("ISSUER_API_PREFIX", "/v2")

# Shared Basic-auth credential for the issuer node
ISSUER_NODE_USER: str = os.getenv("ISSUER_NODE_USER", "user-issuer")
ISSUER_NODE_PASSWORD: str = os.getenv("ISSUER_NODE_PASSWORD", "")


# =============================================================================
# TIMEOUTS (seconds)
# =============================================================================

# Issuer identity lookup (GET /identities)
LIST_IDENTITIES_TIMEOUT_SECONDS: float = float(os.getenv("ZKPAUTH_LIST_IDENTITIES_TIMEOUT", "10.0"))

# DID creation
CREATE_IDENTITY_TIMEOUT_SECONDS: float = float(os.getenv("ZKPAUTH_CREATE_IDENTITY_TIMEOUT", "15.0"))

# Credential creation
CREATE_CREDENTIAL_TIMEOUT_SECONDS: float = float(os.getenv("ZKPAUTH_CREATE_CREDENTIAL_TIMEOUT", "15.0"))

# State publication anchors proof material on chain and is the slowest call
PUBLISH_STATE_TIMEOUT_SECONDS: float = float(os.getenv("ZKPAUTH_PUBLISH_STATE_TIMEOUT", "30.0"))

# Re-fetch of the full credential after publication
FETCH_CREDENTIAL_TIMEOUT_SECONDS: float = float(os.getenv("ZKPAUTH_FETCH_CREDENTIAL_TIMEOUT", "10.0"))

# Credential lookup performed by the verification gate
VERIFY_CREDENTIAL_TIMEOUT_SECONDS: float = float(os.getenv("ZKPAUTH_VERIFY_CREDENTIAL_TIMEOUT", "5.0"))

# Issuer-side ZK proof verification
VERIFY_PROOF_TIMEOUT_SECONDS: float = float(os.getenv("ZKPAUTH_VERIFY_PROOF_TIMEOUT", "10.0"))


# =============================================================================
# POLICY CONSTANTS
# =============================================================================

# Fixed wait between state publication and credential re-fetch.
# Heuristic only: there is no polling for publication completion.
PUBLISH_SETTLE_DELAY_SECONDS: float = float(os.getenv("ZKPAUTH_PUBLISH_SETTLE_DELAY", "3.0"))

# DID metadata sent with every identity creation request
DID_METHOD: str = os.getenv("ZKPAUTH_DID_METHOD", "polygonid")
DID_BLOCKCHAIN: str = os.getenv("ZKPAUTH_DID_BLOCKCHAIN", "polygon")
DID_NETWORK: str = os.getenv("ZKPAUTH_DID_NETWORK", "amoy")
DID_KEY_TYPE: str = os.getenv("ZKPAUTH_DID_KEY_TYPE", "BJJ")

# Credential schema and type registered on the issuer node
CREDENTIAL_SCHEMA_URL: str = os.getenv(
    "ZKPAUTH_CREDENTIAL_SCHEMA",
    "ipfs://QmXAHpXSPcj2J7wreCkKkvvXgT67tbQDvFxmTHudXQYBEp",
)
CREDENTIAL_TYPE: str = os.getenv("ZKPAUTH_CREDENTIAL_TYPE", "ZKPAuthCredential")

# JSON-LD context used in proof requests against the credential schema
CREDENTIAL_CONTEXT: str = os.getenv("ZKPAUTH_CREDENTIAL_CONTEXT", CREDENTIAL_SCHEMA_URL)

# Credential expiration relative to issuance (default: one year)
CREDENTIAL_VALIDITY_SECONDS: int = int(
    os.getenv("ZKPAUTH_CREDENTIAL_VALIDITY_SECONDS", str(365 * 24 * 60 * 60))
)

# Accepted authentication methods for credential subjects
AUTH_METHODS: frozenset[str] = frozenset({"email", "wallet", "hybrid"})

# bcrypt cost factor for password digests (2^12 = 4096 iterations)
BCRYPT_ROUNDS: int = int(os.getenv("ZKPAUTH_BCRYPT_ROUNDS", "12"))


# =============================================================================
# OPERATIONAL SETTINGS (deployment-specific, via environment variables)
# =============================================================================

# Admin endpoint visibility
# Default: True for dev, set to False in production deployments
ADMIN_ENDPOINT_ENABLED: bool = os.getenv("ADMIN_ENDPOINT_ENABLED", "true").lower() == "true"

# Number of stage events retained for /admin/events
EVENT_BUFFER_SIZE: int = int(os.getenv("ZKPAUTH_EVENT_BUFFER_SIZE", "1000"))

# Log level and optional debug log file
LOG_LEVEL: str = os.getenv("ZKPAUTH_LOG_LEVEL", "INFO")
LOG_FILE: str = os.getenv("ZKPAUTH_LOG_FILE", "")
