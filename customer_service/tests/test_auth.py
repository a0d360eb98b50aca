"""
Test cases for request authentication and authorization.
"""
from datetime import datetime, timedelta, timezone

import pytest

from customer_service.auth.jwt import JWTSettings, TokenClaims, TokenCodec
from customer_service.auth.models import Role

GENERIC_TOKEN_ERROR = "Invalid or expired token"


def _expired_token(codec):
    issued = datetime.now(timezone.utc).replace(microsecond=0) - timedelta(hours=2)
    return codec.encode(TokenClaims(
        subject_id="5",
        email="a@b.com",
        role=Role.CUSTOMER,
        issuer=codec.settings.issuer,
        issued_at=issued,
        expires_at=issued + timedelta(hours=1),
    ))


def _foreign_token(codec):
    other = TokenCodec(JWTSettings(
        secret_key="some-other-secret-key-that-is-at-least-32-bytes",
        issuer=codec.settings.issuer,
    ))
    return other.issue("5", "a@b.com", Role.ADMIN)


def _wrong_issuer_token(codec):
    other = TokenCodec(JWTSettings(
        secret_key=codec.settings.secret_key,
        issuer="someone-else",
    ))
    return other.issue("5", "a@b.com", Role.ADMIN)


@pytest.mark.asyncio
async def test_protected_endpoint_without_token_is_unauthorized(client):
    response = await client.get("/customers/5")

    assert response.status_code == 401
    body = response.json()
    assert body["status"] == 401
    assert body["error"] == "UnauthorizedException"
    assert body["path"] == "/customers/5"
    assert "timestamp" in body


@pytest.mark.asyncio
@pytest.mark.parametrize("make_token", [
    lambda codec: "invalid.token.here",
    _expired_token,
    _foreign_token,
    _wrong_issuer_token,
])
async def test_rejected_tokens_get_the_same_generic_401(client, codec, make_token):
    response = await client.get(
        "/customers/5",
        headers={"Authorization": f"Bearer {make_token(codec)}"}
    )

    assert response.status_code == 401
    assert response.json()["message"] == GENERIC_TOKEN_ERROR
    assert response.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_invalid_token_is_rejected_on_public_routes_too(client):
    response = await client.post(
        "/customers",
        json={"email": "a@b.com", "password": "pw123456"},
        headers={"Authorization": "Bearer invalid.token.here"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_non_bearer_authorization_is_treated_as_anonymous(client):
    response = await client.get("/customers/ping", headers={"Authorization": "Basic dXNlcjpwYXNz"})
    assert response.status_code == 200

    response = await client.get("/customers/5", headers={"Authorization": "Basic dXNlcjpwYXNz"})
    assert response.status_code == 401


@pytest.mark.asyncio
@pytest.mark.parametrize("method,path", [
    ("GET", "/customers"),
    ("DELETE", "/customers/5"),
    ("PUT", "/customers/5/role"),
])
async def test_customer_role_cannot_reach_admin_routes(client, auth_headers, method, path):
    response = await client.request(
        method, path,
        headers=auth_headers("5", role=Role.CUSTOMER),
        json={"role": "ADMIN"} if path.endswith("/role") else None,
    )

    assert response.status_code == 403
    assert response.json()["error"] == "ForbiddenException"


@pytest.mark.asyncio
async def test_customer_can_read_only_own_record(client, auth_headers, create_customer):
    five = None
    for n in range(1, 8):
        created = await create_customer(f"user{n}@example.com")
        if created["id"] == "5":
            five = created
    assert five is not None

    headers = auth_headers("5", five["email"], Role.CUSTOMER)

    response = await client.get("/customers/7", headers=headers)
    assert response.status_code == 403

    response = await client.get("/customers/5", headers=headers)
    assert response.status_code == 200
    assert response.json()["id"] == "5"


@pytest.mark.asyncio
async def test_customer_cannot_update_another_record(client, auth_headers, create_customer):
    first = await create_customer("first@example.com")
    second = await create_customer("second@example.com")

    response = await client.put(
        f"/customers/{second['id']}",
        json={"firstName": "Mallory"},
        headers=auth_headers(first["id"], first["email"], Role.CUSTOMER),
    )

    assert response.status_code == 403
    stored = await client.get(
        f"/customers/{second['id']}",
        headers=auth_headers(second["id"], second["email"], Role.CUSTOMER),
    )
    assert stored.json()["firstName"] == "A"


@pytest.mark.asyncio
async def test_ownership_is_checked_before_existence(client, auth_headers):
    response = await client.get("/customers/12345", headers=auth_headers("5"))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_can_read_any_record(client, admin_headers, create_customer):
    created = await create_customer("someone@example.com")

    response = await client.get(f"/customers/{created['id']}", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["email"] == "someone@example.com"


@pytest.mark.asyncio
async def test_email_lookup_is_limited_to_own_email(client, auth_headers, admin_headers, create_customer):
    mine = await create_customer("mine@example.com")
    await create_customer("theirs@example.com")
    headers = auth_headers(mine["id"], "mine@example.com", Role.CUSTOMER)

    response = await client.get("/customers/email/mine@example.com", headers=headers)
    assert response.status_code == 200
    assert response.json()["id"] == mine["id"]

    response = await client.get("/customers/email/theirs@example.com", headers=headers)
    assert response.status_code == 403

    response = await client.get("/customers/email/theirs@example.com", headers=admin_headers)
    assert response.status_code == 200

    response = await client.get("/customers/email/nobody@example.com", headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_emails_differing_only_in_case_are_one_account(client, auth_headers, create_customer):
    victim = await create_customer("Victim@example.com")
    assert victim["email"] == "victim@example.com"

    response = await client.post("/customers", json={"email": "victim@example.com", "password": "pw123456"})
    assert response.status_code == 400

    other = await create_customer("other@example.com")
    headers = auth_headers(other["id"], other["email"], Role.CUSTOMER)
    for path_email in ("Victim@example.com", "victim@example.com", "VICTIM@EXAMPLE.COM"):
        response = await client.get(f"/customers/email/{path_email}", headers=headers)
        assert response.status_code == 403


@pytest.mark.asyncio
async def test_email_lookup_ignores_case_for_the_owner(client, auth_headers, create_customer):
    mine = await create_customer("Mixed.Case@Example.com")
    headers = auth_headers(mine["id"], mine["email"], Role.CUSTOMER)

    response = await client.get("/customers/email/MIXED.case@example.COM", headers=headers)

    assert response.status_code == 200
    assert response.json()["id"] == mine["id"]
