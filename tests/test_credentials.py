"""Tests for credential shaping, input validation and password digests."""

import pytest

from app.zkpauth.credentials import (
    build_credential_request,
    build_identity_request,
    build_subject_attributes,
    has_proof,
    is_valid_did,
    is_valid_email,
    is_valid_wallet_address,
    lookup_id,
    validate_subject_data,
)
from app.zkpauth.issuer_client import CredentialRef
from app.zkpauth.passwords import hash_password, password_too_long, verify_password


class TestValidation:
    """Tests for user-supplied field validation."""

    @pytest.mark.parametrize("email", ["ana@example.com", "a.b+c@sub.example.org"])
    def test_valid_email(self, email):
        assert is_valid_email(email)

    @pytest.mark.parametrize(
        "email", ["", "ana", "ana@example", "ana @example.com", "@example.com", "ana@example.com\n"]
    )
    def test_invalid_email(self, email):
        assert not is_valid_email(email)

    def test_wallet_address(self):
        assert is_valid_wallet_address("0x" + "aF09" * 10)
        assert not is_valid_wallet_address("0x" + "g" * 40)
        assert not is_valid_wallet_address("0x" + "a" * 39)
        assert not is_valid_wallet_address("0x" + "a" * 40 + "\n")

    def test_did_shape(self):
        assert is_valid_did("did:polygonid:polygon:amoy:2qQ68JkRcf3xrHPQPWZei3YeVzHPP58wYNxx2mEouR")
        assert not is_valid_did("did:polygonid:polygon:amoy")
        assert not is_valid_did("did:key:z6Mkabc")
        assert not is_valid_did("did:polygonid:polygon:amoy:2qSubject\n")
        assert not is_valid_did("")

    def test_subject_data(self):
        assert validate_subject_data("Ana Ruiz", "email") == []
        assert validate_subject_data("", "sms") == [
            "fullName is required",
            "authMethod must be one of: email, hybrid, wallet",
        ]


class TestShaping:
    """Tests for issuer request bodies."""

    def test_identity_request(self):
        assert build_identity_request() == {
            "didMetadata": {"method": "polygonid", "blockchain": "polygon", "network": "amoy", "type": "BJJ"}
        }

    def test_subject_omits_empty_optionals(self):
        subject = build_subject_attributes("Ana Ruiz", email="ana@example.com", now=1000)

        assert subject == {
            "fullName": "Ana Ruiz",
            "authMethod": "email",
            "accountState": "active",
            "registrationDate": 1000,
            "isVerified": False,
            "email": "ana@example.com",
        }

    def test_credential_request_expires_in_a_year(self):
        request = build_credential_request({"id": "did:x"}, now=1000)

        assert request["expiration"] == 1000 + 365 * 24 * 60 * 60
        assert request["credentialSubject"] == {"id": "did:x"}

    def test_lookup_id(self):
        assert lookup_id("urn:uuid:1234") == "1234"
        assert lookup_id("1234") == "1234"

    def test_has_proof(self):
        assert has_proof({"proof": [{"type": "BJJSignature2021"}]})
        assert has_proof({"proof": {"type": "BJJSignature2021"}})
        assert not has_proof({"proof": []})
        assert not has_proof({})
        assert not has_proof(None)

    def test_reference_view_never_has_proof(self):
        ref = CredentialRef(id="1234", credential_subject={"id": "did:x"}, raw={"id": "1234", "proof": [{}]})

        credential = ref.as_credential()

        assert credential == {"id": "1234", "credentialSubject": {"id": "did:x"}}
        assert not has_proof(credential)


class TestPasswords:
    """Tests for bcrypt password digests."""

    def test_round_trip(self):
        digest = hash_password("s3cr3t", rounds=4)

        assert digest.startswith("$2b$04$")
        assert verify_password("s3cr3t", digest)
        assert not verify_password("S3CR3T", digest)

    def test_empty_digest(self):
        assert verify_password("s3cr3t", "") is False

    def test_malformed_digest(self):
        assert verify_password("s3cr3t", "not-a-bcrypt-digest") is False

    def test_length_limit_counts_utf8_bytes(self):
        assert not password_too_long("x" * 72)
        assert password_too_long("x" * 73)
        assert password_too_long("ñ" * 37)

    def test_overlong_password_never_matches(self):
        digest = hash_password("s3cr3t", rounds=4)

        assert verify_password("x" * 100, digest) is False
