"""Tests for the credential store, token service and authorization gate."""

import pytest
from jose import jwt

from white_duck.auth import AuthorizationGate, CredentialStore, Principal, TokenService
from white_duck.errors import (
    InvalidApiKey,
    InvalidCredentials,
    InvalidOrExpiredToken,
    MissingCredential,
)

SECRET = "unit-test-secret"
API_KEY = "unit-test-api-key"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def store():
    credentials = CredentialStore()
    credentials.set_principal("alice", "wonderland")
    return credentials


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tokens(clock):
    return TokenService(SECRET, ttl_seconds=3600, clock=clock)


@pytest.fixture
def gate(tokens, store):
    return AuthorizationGate(tokens, store, API_KEY)


# Credential store


def test_validate_credentials_returns_principal(store):
    assert store.validate_credentials("alice", "wonderland") == Principal("alice")


def test_validate_credentials_wrong_password(store):
    with pytest.raises(InvalidCredentials):
        store.validate_credentials("alice", "looking-glass")


def test_validate_credentials_wrong_username(store):
    with pytest.raises(InvalidCredentials):
        store.validate_credentials("bob", "wonderland")


def test_validate_credentials_without_principal():
    with pytest.raises(InvalidCredentials):
        CredentialStore().validate_credentials("alice", "wonderland")


def test_set_principal_replaces_previous(store):
    store.set_principal("bob", "builder")

    assert store.active_principal == Principal("bob")
    with pytest.raises(InvalidCredentials):
        store.validate_credentials("alice", "wonderland")
    assert store.validate_credentials("bob", "builder") == Principal("bob")


def test_password_is_stored_hashed(store):
    credential = store._credential
    assert "wonderland" not in credential.password_hash
    assert credential.password_hash.startswith("$argon2")
    assert "wonderland" not in repr(credential)


# Token service


def test_issue_then_verify_round_trips(tokens):
    token = tokens.issue_token(Principal("alice"))
    assert tokens.verify_token(token) == Principal("alice")


def test_token_claims(tokens, clock):
    token = tokens.issue_token(Principal("alice"))
    claims = jwt.get_unverified_claims(token)

    assert claims["sub"] == "alice"
    assert claims["iat"] == int(clock.now)
    assert claims["exp"] == int(clock.now) + 3600


def test_expired_token_verifies_to_none(tokens, clock):
    token = tokens.issue_token(Principal("alice"))
    clock.now += 3601
    assert tokens.verify_token(token) is None


def test_token_valid_just_before_expiry(tokens, clock):
    token = tokens.issue_token(Principal("alice"))
    clock.now += 3599
    assert tokens.verify_token(token) == Principal("alice")


def test_tampered_signature_verifies_to_none(tokens):
    token = tokens.issue_token(Principal("alice"))
    header, payload, signature = token.split(".")
    first = "B" if signature[0] == "A" else "A"
    tampered = f"{header}.{payload}.{first}{signature[1:]}"
    assert tokens.verify_token(tampered) is None


def test_token_signed_with_other_secret_verifies_to_none(clock):
    forged = TokenService("another-secret", clock=clock).issue_token(Principal("alice"))
    assert TokenService(SECRET, clock=clock).verify_token(forged) is None


@pytest.mark.parametrize("garbage", ["", "not-a-token", "a.b.c", "Bearer xyz"])
def test_malformed_token_verifies_to_none(tokens, garbage):
    assert tokens.verify_token(garbage) is None


def test_token_without_subject_verifies_to_none(tokens, clock):
    token = jwt.encode({"exp": int(clock.now) + 60}, SECRET, algorithm="HS256")
    assert tokens.verify_token(token) is None


# Authorization gate


def test_gate_accepts_correct_api_key(gate):
    assert gate.authorize(api_key=API_KEY) is None


def test_gate_correct_api_key_ignores_bad_bearer(gate):
    assert gate.authorize(api_key=API_KEY, bearer_token="garbage") is None


def test_gate_wrong_api_key_rejected_even_with_valid_bearer(gate, tokens):
    token = tokens.issue_token(Principal("alice"))
    with pytest.raises(InvalidApiKey):
        gate.authorize(api_key="wrong", bearer_token=token)


def test_gate_resolves_bearer_principal(gate, tokens):
    token = tokens.issue_token(Principal("alice"))
    assert gate.authorize(bearer_token=token) == Principal("alice")


def test_gate_rejects_invalid_bearer(gate):
    with pytest.raises(InvalidOrExpiredToken):
        gate.authorize(bearer_token="garbage")


def test_gate_rejects_missing_credentials(gate):
    with pytest.raises(MissingCredential):
        gate.authorize()


def test_gate_disabled_allows_everything(tokens, store):
    gate = AuthorizationGate(tokens, store, API_KEY, enabled=False)
    assert gate.authorize() is None
    assert gate.authorize(api_key="wrong") is None


def test_gate_rejects_any_key_when_none_configured(tokens, store):
    gate = AuthorizationGate(tokens, store, "")
    with pytest.raises(InvalidApiKey):
        gate.authorize(api_key="")


def test_token_survives_password_change(gate, tokens, store):
    token = tokens.issue_token(Principal("alice"))
    store.set_principal("alice", "new-password")
    assert gate.authorize(bearer_token=token) == Principal("alice")


def test_token_for_replaced_principal_rejected(gate, tokens, store):
    token = tokens.issue_token(Principal("alice"))
    store.set_principal("bob", "builder")
    with pytest.raises(InvalidOrExpiredToken):
        gate.authorize(bearer_token=token)
