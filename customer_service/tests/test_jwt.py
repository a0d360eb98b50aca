"""
Test cases for token issuing and validation.
"""
from datetime import datetime, timedelta, timezone

import jwt as pyjwt
import pytest

from customer_service.auth.jwt import (
    ALGORITHM,
    InvalidSignature,
    IssuerMismatch,
    JWTSettings,
    MalformedToken,
    TokenClaims,
    TokenCodec,
    TokenExpired,
)
from customer_service.auth.models import Role

SECRET = "unit-test-secret-key-with-at-least-32-bytes!!"
OTHER_SECRET = "a-completely-different-secret-key-of-32-bytes+"
ISSUER = "api-gateway"


def make_codec(secret=SECRET, issuer=ISSUER, ttl=timedelta(hours=1)):
    return TokenCodec(JWTSettings(secret_key=secret, issuer=issuer, expiration=ttl))


def make_claims(issued_at=None, ttl=timedelta(hours=1), issuer=ISSUER, role=Role.CUSTOMER):
    issued_at = issued_at or datetime.now(timezone.utc).replace(microsecond=0)
    return TokenClaims(
        subject_id="5",
        email="a@b.com",
        role=role,
        issuer=issuer,
        issued_at=issued_at,
        expires_at=issued_at + ttl,
    )


@pytest.mark.parametrize("role", list(Role))
def test_round_trip_returns_identical_claims(role):
    codec = make_codec()
    claims = make_claims(role=role)
    assert codec.validate(codec.encode(claims)) == claims


def test_issue_embeds_identity_and_lifetime():
    codec = make_codec(ttl=timedelta(minutes=10))
    before = datetime.now(timezone.utc).replace(microsecond=0)

    claims = codec.validate(codec.issue("42", "x@example.com", Role.ADMIN))

    assert claims.subject_id == "42"
    assert claims.email == "x@example.com"
    assert claims.role == Role.ADMIN
    assert claims.issuer == ISSUER
    assert claims.issued_at >= before
    assert claims.expires_at - claims.issued_at == timedelta(minutes=10)


def test_payload_uses_gateway_claim_names():
    codec = make_codec()
    payload = pyjwt.decode(codec.issue("7", "c@d.com", Role.CUSTOMER), SECRET, algorithms=[ALGORITHM], issuer=ISSUER)
    assert payload["sub"] == "7"
    assert payload["userId"] == "7"
    assert payload["email"] == "c@d.com"
    assert payload["role"] == "CUSTOMER"
    assert payload["iss"] == ISSUER
    assert {"iat", "exp"} <= payload.keys()


def test_expired_token_is_rejected():
    codec = make_codec()
    past = datetime.now(timezone.utc).replace(microsecond=0) - timedelta(hours=2)
    token = codec.encode(make_claims(issued_at=past, ttl=timedelta(hours=1)))

    with pytest.raises(TokenExpired):
        codec.validate(token)


def test_expired_token_with_foreign_signature_reports_expiry():
    past = datetime.now(timezone.utc).replace(microsecond=0) - timedelta(hours=2)
    token = make_codec(secret=OTHER_SECRET).encode(make_claims(issued_at=past, ttl=timedelta(hours=1)))

    with pytest.raises(TokenExpired):
        make_codec().validate(token)


def test_foreign_secret_is_rejected():
    token = make_codec(secret=OTHER_SECRET).issue("5", "a@b.com", Role.CUSTOMER)

    with pytest.raises(InvalidSignature):
        make_codec().validate(token)


def test_issuer_mismatch_is_rejected():
    token = make_codec(issuer="someone-else").issue("5", "a@b.com", Role.CUSTOMER)

    with pytest.raises(IssuerMismatch):
        make_codec().validate(token)


@pytest.mark.parametrize("token", ["", "not-a-token", "a.b.c", "Bearer x.y.z"])
def test_garbage_is_malformed(token):
    with pytest.raises(MalformedToken):
        make_codec().validate(token)


def _signed(payload):
    return pyjwt.encode(payload, SECRET, algorithm=ALGORITHM)


def _base_payload(**overrides):
    now = int(datetime.now(timezone.utc).timestamp())
    payload = {"sub": "5", "email": "a@b.com", "role": "CUSTOMER", "iss": ISSUER, "iat": now, "exp": now + 600}
    payload.update(overrides)
    return {k: v for k, v in payload.items() if v is not None}


@pytest.mark.parametrize("overrides", [
    {"exp": None},
    {"sub": None},
    {"role": None},
    {"role": "OWNER"},
    {"email": None},
])
def test_missing_or_invalid_claims_are_malformed(overrides):
    with pytest.raises(MalformedToken):
        make_codec().validate(_signed(_base_payload(**overrides)))


def test_role_claim_is_case_insensitive():
    claims = make_codec().validate(_signed(_base_payload(role="admin")))
    assert claims.role == Role.ADMIN


def test_short_secret_is_refused():
    with pytest.raises(ValueError):
        JWTSettings(secret_key="too-short")


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("JWT_SECRET_KEY", OTHER_SECRET)
    monkeypatch.setenv("JWT_ISSUER", "issuer-x")
    monkeypatch.setenv("JWT_EXPIRATION_MS", "60000")

    settings = JWTSettings.from_env()

    assert settings.secret_key == OTHER_SECRET
    assert settings.issuer == "issuer-x"
    assert settings.expiration == timedelta(minutes=1)


@pytest.mark.parametrize("overrides", [
    {"sub": ""},
    {"email": 42},
    {"iat": "yesterday"},
])
def test_claims_with_wrong_types_are_malformed(overrides):
    with pytest.raises(MalformedToken):
        make_codec().validate(_signed(_base_payload(**overrides)))


def test_claims_parse_from_gateway_payload():
    claims = TokenClaims.model_validate(_base_payload(role="customer", userId="5"))

    assert claims.subject_id == "5"
    assert claims.role == Role.CUSTOMER
    assert claims.issued_at.tzinfo is not None


def test_expiration_is_whole_seconds():
    settings = JWTSettings(secret_key=SECRET, expiration=timedelta(milliseconds=2500))
    assert settings.expiration == timedelta(seconds=2)

    codec = TokenCodec(settings)
    now = datetime.now(timezone.utc).replace(microsecond=0)
    claims = make_claims(issued_at=now, ttl=settings.expiration)
    assert codec.validate(codec.encode(claims)) == claims

    issued = codec.validate(codec.issue("5", "a@b.com", Role.CUSTOMER))
    assert issued.expires_at - issued.issued_at == timedelta(seconds=2)


@pytest.mark.parametrize("ttl", [timedelta(0), timedelta(milliseconds=500), timedelta(seconds=-5)])
def test_sub_second_expiration_is_refused(ttl):
    with pytest.raises(ValueError):
        JWTSettings(secret_key=SECRET, expiration=ttl)
