import httpx
import pytest
import pytest_asyncio

from main import app


pytestmark = pytest.mark.asyncio

PREFIX = "/api/v1/user-center"


@pytest_asyncio.fixture
async def client(database):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def _login(client, username: str, password: str = "secret1") -> str:
    resp = await client.post(f"{PREFIX}/auth/login", json={"username": username, "password": password})
    body = resp.json()
    assert body["code"] == 200, body
    return body["data"]["token"]


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "healthy"


async def test_register_login_me_logout_flow(client):
    resp = await client.post(
        f"{PREFIX}/auth/register",
        json={"username": "bob", "email": "bob@example.com", "password": "secret1"},
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["code"] == 201
    assert body["data"]["username"] == "bob"
    assert "hashed_password" not in body["data"]
    assert "X-Request-ID" in resp.headers

    token = await _login(client, "bob")

    me = await client.get(f"{PREFIX}/auth/me", headers=_auth(token))
    assert me.status_code == 200
    assert me.json()["data"]["username"] == "bob"

    out = await client.post(f"{PREFIX}/auth/logout", headers=_auth(token))
    assert out.json()["data"]["revoked"] == 1

    again = await client.get(f"{PREFIX}/auth/me", headers=_auth(token))
    assert again.status_code == 401
    assert again.json()["code"] == 401
    assert again.json()["message"] == "Invalid or expired credential"


async def test_failed_login_returns_transport_200(client, make_user):
    await make_user("alice")

    wrong = await client.post(f"{PREFIX}/auth/login", json={"username": "alice", "password": "wrongpass"})
    missing = await client.post(f"{PREFIX}/auth/login", json={"username": "nobody", "password": "x"})

    assert wrong.status_code == missing.status_code == 200
    assert wrong.json()["code"] == missing.json()["code"] == 401
    assert wrong.json()["message"] == missing.json()["message"]
    assert wrong.json()["data"] is None


async def test_credential_header_rules(client):
    missing = await client.get(f"{PREFIX}/auth/me")
    assert missing.status_code == 401
    assert missing.json()["message"] == "no credential supplied"

    malformed = await client.get(f"{PREFIX}/auth/me", headers={"Authorization": "Token abc"})
    assert malformed.status_code == 401
    assert malformed.json()["message"] == "invalid credential format"

    garbage = await client.get(f"{PREFIX}/auth/me", headers=_auth("not-a-jwt"))
    assert garbage.status_code == 401
    assert garbage.json()["message"] == "Invalid or expired credential"


async def test_duplicate_registration_is_conflict(client):
    payload = {"username": "bob", "email": "bob@example.com", "password": "secret1"}
    assert (await client.post(f"{PREFIX}/auth/register", json=payload)).status_code == 201

    resp = await client.post(f"{PREFIX}/auth/register", json={**payload, "email": "b2@example.com"})
    assert resp.status_code == 409
    assert resp.json()["error"]["field"] == "username"


async def test_admin_routes_require_admin(client, make_user):
    await make_user("alice")
    await make_user("root", role="admin")
    user_token = await _login(client, "alice")
    admin_token = await _login(client, "root")

    forbidden = await client.get(f"{PREFIX}/users", headers=_auth(user_token))
    assert forbidden.status_code == 403

    listing = await client.get(f"{PREFIX}/users", params={"username": "ali"}, headers=_auth(admin_token))
    assert listing.status_code == 200
    data = listing.json()["data"]
    assert data["total"] == 1
    assert data["items"][0]["username"] == "alice"


async def test_admin_create_failure_returns_transport_200(client, make_user):
    await make_user("root", role="admin")
    token = await _login(client, "root")

    ok = await client.post(
        f"{PREFIX}/users",
        json={"username": "carol", "email": "carol@example.com", "password": "secret1"},
        headers=_auth(token),
    )
    assert ok.status_code == 201
    assert ok.json()["data"]["source"] == "admin-created"

    dup = await client.post(
        f"{PREFIX}/users",
        json={"username": "carol", "email": "c2@example.com", "password": "secret1"},
        headers=_auth(token),
    )
    assert dup.status_code == 200
    assert dup.json()["code"] == 400

    short = await client.post(
        f"{PREFIX}/users",
        json={"username": "dave", "email": "dave@example.com", "password": "123"},
        headers=_auth(token),
    )
    assert short.status_code == 200
    assert short.json()["code"] == 400


async def test_change_password_route_revokes_token(client, make_user):
    await make_user("alice")
    token = await _login(client, "alice")

    resp = await client.put(
        f"{PREFIX}/users/change-password",
        json={"current_password": "secret1", "new_password": "secret2"},
        headers=_auth(token),
    )
    assert resp.status_code == 200

    assert (await client.get(f"{PREFIX}/auth/me", headers=_auth(token))).status_code == 401
    await _login(client, "alice", "secret2")


async def test_wrong_current_password_keeps_token_valid(client, make_user):
    await make_user("alice")
    token = await _login(client, "alice")

    resp = await client.put(
        f"{PREFIX}/users/change-password",
        json={"current_password": "nope!!", "new_password": "secret2"},
        headers=_auth(token),
    )
    assert resp.status_code == 400
    assert "WWW-Authenticate" not in resp.headers
    assert resp.json()["code"] == 400
    assert resp.json()["error"]["field"] == "current_password"

    assert (await client.get(f"{PREFIX}/auth/me", headers=_auth(token))).status_code == 200
    await _login(client, "alice", "secret1")


async def test_product_routes(client, make_user):
    alice = await make_user("alice")
    token = await _login(client, "alice")

    added = await client.post(
        f"{PREFIX}/users/{alice.id}/products",
        json={"id": "p1", "name": "One"},
        headers=_auth(token),
    )
    assert added.status_code == 200
    assert [p["id"] for p in added.json()["data"]["products"]] == ["p1"]

    dup = await client.post(f"{PREFIX}/users/{alice.id}/products", json={"id": "p1"}, headers=_auth(token))
    assert dup.status_code == 400

    removed = await client.delete(f"{PREFIX}/users/{alice.id}/products/p1", headers=_auth(token))
    assert removed.json()["data"]["products"] == []

    missing = await client.delete(f"{PREFIX}/users/{alice.id}/products/p1", headers=_auth(token))
    assert missing.status_code == 400


async def test_admin_delete_user(client, make_user):
    root = await make_user("root", role="admin")
    alice = await make_user("alice")
    admin_token = await _login(client, "root")
    alice_token = await _login(client, "alice")

    self_delete = await client.delete(f"{PREFIX}/users/{root.id}", headers=_auth(admin_token))
    assert self_delete.status_code == 400

    resp = await client.delete(f"{PREFIX}/users/{alice.id}", headers=_auth(admin_token))
    assert resp.status_code == 200
    assert (await client.get(f"{PREFIX}/auth/me", headers=_auth(alice_token))).status_code == 401
    assert (await client.get(f"{PREFIX}/users/{alice.id}", headers=_auth(admin_token))).status_code == 404
