"""Tests for the credential handshake — stage ordering, failure capture, transitions."""

import pytest

from conftest import ADMIN, BASE_URL, TOKEN, WHOAMI
from mmr_admin.exceptions import ProtocolError, TransportError
from mmr_admin.services.credential_validator import (
    CredentialValidator,
    Handshake,
    ValidationState,
)


@pytest.fixture
def validator(settings, homeserver):
    return CredentialValidator(settings=settings, transport=homeserver.transport)


class TestIdentityStage:
    @pytest.mark.asyncio
    async def test_uses_bearer_header(self, validator, homeserver):
        homeserver.route("GET", WHOAMI, json={"user_id": "@admin:example.org", "device_id": "ABC"})
        check = await validator.validate_identity(BASE_URL, TOKEN)

        assert check.ok is True
        assert check.identity.user_id == "@admin:example.org"
        assert homeserver.last.headers["authorization"] == f"Bearer {TOKEN}"
        assert "access_token" not in str(homeserver.last.url)

    @pytest.mark.asyncio
    async def test_401_captured(self, validator, homeserver):
        homeserver.route(
            "GET", WHOAMI, status=401,
            json={"errcode": "M_UNKNOWN_TOKEN", "error": "Invalid access token passed."},
        )
        check = await validator.validate_identity(BASE_URL, TOKEN)
        assert check.ok is False
        assert isinstance(check.error, ProtocolError)
        assert check.error.status_code == 401
        assert check.error.message == "Invalid access token passed."

    @pytest.mark.asyncio
    async def test_unparseable_identity_fails(self, validator, homeserver):
        homeserver.route("GET", WHOAMI, json={"something": "else"})
        check = await validator.validate_identity(BASE_URL, TOKEN)
        assert check.ok is False
        assert isinstance(check.error, ProtocolError)

    @pytest.mark.asyncio
    async def test_transport_failure(self, validator, homeserver):
        homeserver.fail("GET", WHOAMI)
        check = await validator.validate_identity(BASE_URL, TOKEN)
        assert check.ok is False
        assert isinstance(check.error, TransportError)


class TestHandshake:
    @pytest.mark.asyncio
    async def test_identity_failure_skips_capability(self, validator, homeserver):
        homeserver.route("GET", WHOAMI, status=401, json={"errcode": "M_UNKNOWN_TOKEN", "error": "nope"})
        homeserver.route("GET", f"{ADMIN}/datastores", json={})

        result = await validator.validate(BASE_URL, TOKEN)

        assert result.state == ValidationState.FAILED
        assert result.stage == ValidationState.VALIDATING_IDENTITY
        assert result.ok is False
        assert homeserver.call_count == 1
        assert all(r.url.path == WHOAMI for r in homeserver.requests)

    @pytest.mark.asyncio
    async def test_capability_failure_captured(self, validator, homeserver):
        homeserver.route("GET", WHOAMI, json={"user_id": "@user:example.org"})
        homeserver.route(
            "GET", f"{ADMIN}/datastores", status=403,
            json={"errcode": "M_FORBIDDEN", "error": "User is not a repository administrator"},
        )

        result = await validator.validate(BASE_URL, TOKEN)

        assert result.state == ValidationState.FAILED
        assert result.stage == ValidationState.VALIDATING_CAPABILITY
        assert result.error.status_code == 403
        assert result.reason == "User is not a repository administrator"
        assert result.user_id == "@user:example.org"
        assert homeserver.call_count == 2

    @pytest.mark.asyncio
    async def test_success(self, validator, homeserver):
        homeserver.route("GET", WHOAMI, json={"user_id": "@admin:example.org"})
        homeserver.route("GET", f"{ADMIN}/datastores", json={"ds1": {"type": "file", "uri": "/m"}})

        result = await validator.validate(BASE_URL, TOKEN)

        assert result.ok is True
        assert result.state == ValidationState.VALIDATED
        assert result.error is None
        assert result.user_id == "@admin:example.org"
        # Stage 2 uses the admin convention: token on the query string
        assert homeserver.raw_targets()[1] == f"{ADMIN}/datastores?access_token={TOKEN}"

    @pytest.mark.asyncio
    async def test_no_retries(self, validator, homeserver):
        homeserver.route("GET", WHOAMI, json={"user_id": "@admin:example.org"})
        homeserver.fail("GET", f"{ADMIN}/datastores")

        result = await validator.validate(BASE_URL, TOKEN)

        assert isinstance(result.error, TransportError)
        assert homeserver.call_count == 2


class TestTransitions:
    def test_starts_unvalidated(self):
        assert Handshake().state == ValidationState.UNVALIDATED

    def test_cannot_skip_identity(self):
        h = Handshake()
        assert h.transition(ValidationState.VALIDATING_CAPABILITY) is False
        assert h.transition(ValidationState.VALIDATED) is False
        assert h.state == ValidationState.UNVALIDATED

    def test_failed_is_terminal(self):
        h = Handshake()
        h.transition(ValidationState.VALIDATING_IDENTITY)
        assert h.transition(ValidationState.FAILED) is True
        assert h.transition(ValidationState.VALIDATING_CAPABILITY) is False
        assert h.state == ValidationState.FAILED

    def test_full_path(self):
        h = Handshake()
        for state in (
            ValidationState.VALIDATING_IDENTITY,
            ValidationState.VALIDATING_CAPABILITY,
            ValidationState.VALIDATED,
        ):
            assert h.transition(state) is True
        assert h.state == ValidationState.VALIDATED
