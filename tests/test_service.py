"""Tests for registration, login and the credential utilities."""

from dataclasses import replace

import httpx
import pytest

from app.zkpauth.api_models import ErrorCode
from app.zkpauth.exceptions import (
    DuplicatePrincipalError,
    InvalidInputError,
    IssuerError,
    IssuerErrorKind,
    LoginDeniedError,
    ZKPAuthError,
)
from app.zkpauth.store import PrincipalRecord
from app.zkpauth.passwords import hash_password
from app.zkpauth.verification import VerificationStage


async def register_ana(service):
    return await service.register("Ana Ruiz", "ana@example.com", "s3cr3t")


class TestRegister:
    """Tests for AuthService.register."""

    @pytest.mark.asyncio
    async def test_ana_ruiz(self, service, store):
        result = await register_ana(service)

        assert result["identity"]
        assert result["credential"]["credentialSubject"]["email"] == "ana@example.com"
        assert result["verified"] is True
        assert result["verification"]["evidence"]["present"] is True

        record = await store.find("ana@example.com")
        assert record.credential["credentialSubject"]["id"] == result["identity"]
        assert record.last_verification.verified is True
        assert record.verified_at is not None

    @pytest.mark.asyncio
    async def test_response_has_no_secrets(self, service, store):
        result = await register_ana(service)

        record = await store.find("ana@example.com")
        assert record.password_digest.startswith("$2b$")
        assert record.password_digest not in str(result)
        assert "s3cr3t" not in str(result)
        assert "proof" not in result["credential"]
        assert record.credential["proof"][0]["signature"] not in str(result)

    @pytest.mark.asyncio
    async def test_subject_attributes(self, service):
        result = await register_ana(service)

        subject = result["credential"]["credentialSubject"]
        assert subject["fullName"] == "Ana Ruiz"
        assert subject["authMethod"] == "email"
        assert subject["accountState"] == "active"
        assert subject["isVerified"] is False
        assert "walletAddress" not in subject

    @pytest.mark.asyncio
    async def test_missing_fields_fail_before_issuer(self, service, issuer_node):
        with pytest.raises(InvalidInputError) as exc:
            await service.register("Ana Ruiz", None, "")

        assert exc.value.errors == ["email is required", "password is required"]
        assert issuer_node.requests == []

    @pytest.mark.asyncio
    async def test_invalid_email(self, service, issuer_node):
        with pytest.raises(InvalidInputError):
            await service.register("Ana Ruiz", "ana@example", "s3cr3t")
        assert issuer_node.requests == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("password", ["x" * 73, "ñ" * 37])
    async def test_overlong_password_fails_before_issuer(self, service, store, issuer_node, password):
        with pytest.raises(InvalidInputError):
            await service.register("Ana Ruiz", "ana@example.com", password)

        assert issuer_node.calls("create_identity") == 0
        assert issuer_node.requests == []
        assert await store.exists("ana@example.com") is False

    @pytest.mark.asyncio
    async def test_password_at_bcrypt_limit(self, service):
        response = await service.register("Ana Ruiz", "ana@example.com", "x" * 72)

        assert response["verified"] is True

    @pytest.mark.asyncio
    async def test_duplicate_fails_before_issuer(self, service, issuer_node):
        await register_ana(service)
        issuer_node.requests.clear()

        with pytest.raises(DuplicatePrincipalError):
            await service.register("Ana Again", "ANA@example.com", "other")
        assert issuer_node.requests == []

    @pytest.mark.asyncio
    async def test_identity_failure_stores_nothing(self, service, store, issuer_node):
        issuer_node.fail["create_identity"] = httpx.Response(503, json={})

        with pytest.raises(IssuerError) as exc:
            await register_ana(service)

        assert exc.value.kind == IssuerErrorKind.SERVER_ERROR
        assert await store.exists("ana@example.com") is False

    @pytest.mark.asyncio
    async def test_credential_failure_stores_nothing(self, service, store, issuer_node):
        issuer_node.fail["create_credential"] = httpx.ReadTimeout("timed out")

        with pytest.raises(IssuerError):
            await register_ana(service)

        assert await store.exists("ana@example.com") is False

    @pytest.mark.asyncio
    async def test_publish_failure_degrades(self, service, store, issuer_node):
        issuer_node.fail["publish_state"] = httpx.Response(500, json={})

        result = await register_ana(service)

        assert result["confirmed"] is False
        assert result["zkp_data"]["state"] == "no-proof"
        assert (await store.find("ana@example.com")).credential["credentialSubject"]["id"] == result["identity"]

    @pytest.mark.asyncio
    async def test_verification_failure_still_registers(self, service, store, issuer_node):
        issuer_node.fail["get_credential"] = httpx.ConnectError("Connection refused")

        result = await register_ana(service)

        assert result["verified"] is False
        record = await store.find("ana@example.com")
        assert record.verified_at is None
        assert record.last_verification.verified is False


class TestLogin:
    """Tests for AuthService.login."""

    @pytest.mark.asyncio
    async def test_success(self, service, store):
        registered = await register_ana(service)

        result = await service.login("Ana@Example.com", "s3cr3t")

        assert result["verified"] is True
        assert result["identity"] == registered["identity"]
        assert result["user"]["email"] == "ana@example.com"
        assert result["zkp_data"]["state"] == "verified"

    @pytest.mark.asyncio
    async def test_unknown_principal(self, service):
        with pytest.raises(LoginDeniedError) as exc:
            await service.login("nobody@example.com", "x")
        assert exc.value.code == ErrorCode.PRINCIPAL_NOT_FOUND

    @pytest.mark.asyncio
    async def test_wrong_password(self, service, issuer_node):
        await register_ana(service)
        issuer_node.requests.clear()

        with pytest.raises(LoginDeniedError) as exc:
            await service.login("ana@example.com", "wrong")

        assert exc.value.code == ErrorCode.PASSWORD_MISMATCH
        assert issuer_node.requests == []

    @pytest.mark.asyncio
    async def test_missing_fields(self, service):
        with pytest.raises(InvalidInputError):
            await service.login("ana@example.com", None)

    @pytest.mark.asyncio
    async def test_no_credential_denied_without_issuer_call(self, service, store, issuer_node):
        await store.save(
            "ana@example.com",
            PrincipalRecord(
                login_key="ana@example.com",
                full_name="Ana Ruiz",
                password_digest=hash_password("s3cr3t", rounds=4),
            ),
        )

        with pytest.raises(LoginDeniedError) as exc:
            await service.login("ana@example.com", "s3cr3t")

        assert exc.value.reason == "NO_CREDENTIAL"
        assert exc.value.code == ErrorCode.CREDENTIAL_MISSING
        assert issuer_node.requests == []

    @pytest.mark.asyncio
    async def test_credential_without_subject(self, service, store, issuer_node):
        await store.save(
            "ana@example.com",
            PrincipalRecord(
                login_key="ana@example.com",
                full_name="Ana Ruiz",
                password_digest=hash_password("s3cr3t", rounds=4),
                credential={"id": "urn:uuid:1"},
            ),
        )

        with pytest.raises(LoginDeniedError) as exc:
            await service.login("ana@example.com", "s3cr3t")

        assert exc.value.reason == "INVALID_CREDENTIAL_STRUCTURE"
        assert exc.value.credential_id == "urn:uuid:1"
        assert issuer_node.requests == []

    @pytest.mark.asyncio
    async def test_revoked_denied_despite_password(self, service, issuer_node):
        await register_ana(service)
        issuer_node.revoke_all()

        with pytest.raises(LoginDeniedError) as exc:
            await service.login("ana@example.com", "s3cr3t")

        assert exc.value.stage == "revocation_check"
        assert exc.value.code == ErrorCode.CREDENTIAL_REVOKED

    @pytest.mark.asyncio
    async def test_subject_mismatch_denied_at_data_comparison(self, service, store):
        await register_ana(service)
        record = await store.find("ana@example.com")
        credential = dict(record.credential)
        credential["credentialSubject"] = {
            **credential["credentialSubject"],
            "id": "did:polygonid:polygon:amoy:2qImpostor",
        }
        await store.save("ana@example.com", replace(record, credential=credential))

        with pytest.raises(LoginDeniedError) as exc:
            await service.login("ana@example.com", "s3cr3t")

        assert exc.value.stage == "data_comparison"
        assert exc.value.code == ErrorCode.CREDENTIAL_DATA_MISMATCH

    @pytest.mark.asyncio
    async def test_issuer_down_denies(self, service, store, issuer_node):
        await register_ana(service)
        issuer_node.fail["get_credential"] = httpx.ConnectError("Connection refused")

        with pytest.raises(LoginDeniedError) as exc:
            await service.login("ana@example.com", "s3cr3t")

        assert exc.value.stage == "issuer_node_connection"
        record = await store.find("ana@example.com")
        assert record.last_verification.stage == VerificationStage.ISSUER_NODE_CONNECTION

    @pytest.mark.asyncio
    async def test_denial_message_is_stage_specific(self, service, issuer_node):
        await register_ana(service)
        issuer_node.credentials.clear()

        with pytest.raises(LoginDeniedError) as exc:
            await service.login("ana@example.com", "s3cr3t")

        assert exc.value.stage == "credential_retrieval"
        assert "does not exist" in exc.value.message
        assert exc.value.details["explanation"]


class TestWalletAuth:
    """Tests for AuthService.wallet_auth."""

    WALLET = "0x" + "aB" * 20

    @pytest.mark.asyncio
    async def test_issues_wallet_credential(self, service, store):
        result = await service.wallet_auth(self.WALLET)

        subject = result["credential"]["credentialSubject"]
        assert subject["authMethod"] == "wallet"
        assert subject["isVerified"] is True
        assert subject["walletAddress"] == self.WALLET
        assert subject["fullName"] == "Wallet 0xaBaB..."
        assert "email" not in subject
        assert store.count() == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("address", [None, "", "0x123", "aB" * 21])
    async def test_invalid_address(self, service, issuer_node, address):
        with pytest.raises(InvalidInputError):
            await service.wallet_auth(address)
        assert issuer_node.requests == []


class TestCredentialUtilities:
    """Tests for verify_credential, proof queries, proof verification."""

    @pytest.mark.asyncio
    async def test_verify_presented_credential(self, service, issuer_node):
        credential = issuer_node.add_credential({"id": "did:polygonid:polygon:amoy:2qSubject"})

        verdict = await service.verify_credential(credential)

        assert verdict.verified is True

    @pytest.mark.asyncio
    async def test_verify_requires_credential(self, service):
        with pytest.raises(InvalidInputError):
            await service.verify_credential(None)

    def test_proof_query_with_envelope(self, service):
        result = service.proof_query("verification", {}, issuer_did="did:issuer", user_did="did:user")

        assert result["query"] == {"isVerified": {"$eq": True}}
        assert result["proofRequest"]["circuitId"] == "credentialAtomicQueryMTPV2"

    def test_proof_query_requires_kind(self, service):
        with pytest.raises(InvalidInputError):
            service.proof_query(None)

    @pytest.mark.asyncio
    async def test_verify_proof(self, service):
        result = await service.verify_proof("credentialAtomicQuerySigV2", {"pi_a": ["1"]}, ["0"])

        assert result["verified"] is True
        assert result["circuitId"] == "credentialAtomicQuerySigV2"

    @pytest.mark.asyncio
    async def test_verify_proof_fails_closed(self, service, issuer_node):
        issuer_node.fail["verify_proof"] = httpx.ConnectError("Connection refused")

        with pytest.raises(ZKPAuthError) as exc:
            await service.verify_proof("credentialAtomicQuerySigV2", {"pi_a": ["1"]}, ["0"])

        assert exc.value.code == ErrorCode.PROOF_VERIFICATION_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_issuer_info(self, service):
        info = await service.issuer_info()

        assert info["issuerDID"] == info["identities"][0]["identifier"]
        assert info["issuerNodeUrl"] == "http://issuer.test"
