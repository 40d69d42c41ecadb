from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from presale.main import create_app
from presale.store import ADMINS, PROGRESS_BAR, WALLET_ADDRESSES
from tests.conftest import ADMIN_PASSWORD, UnreachableClient


# -- Admin bootstrap ----------------------------------------------------------

def test_init_admin_acknowledges(client, db):
    resp = client.get("/api/init-admin")

    assert resp.status_code == 200
    assert resp.text == "Tried initializing admin"
    assert db[ADMINS].find_one()["initialized"] is True


def test_init_admin_hides_config_errors_by_default(client, config, db):
    config["auth"]["admin_password"] = "short"

    resp = client.get("/api/init-admin")

    assert resp.status_code == 200
    assert db[ADMINS].count_documents({}) == 0


def test_init_admin_hides_store_errors_by_default(config):
    client = TestClient(create_app(config, client_factory=UnreachableClient))

    resp = client.get("/api/init-admin")

    assert resp.status_code == 200
    assert resp.text == "Tried initializing admin"


def test_strict_init_admin_reports_config_errors(client, config):
    config["admin"]["strict_init"] = True
    config["auth"]["admin_password"] = ""

    assert client.get("/api/init-admin").status_code == 503


def test_strict_init_admin_reports_store_errors(config):
    config["admin"]["strict_init"] = True
    client = TestClient(create_app(config, client_factory=UnreachableClient))

    assert client.get("/api/init-admin").status_code == 500


def test_init_admin_hides_unexpected_errors_by_default(client, config, db):
    config["auth"]["bcrypt_rounds"] = 99

    resp = client.get("/api/init-admin")

    assert resp.status_code == 200
    assert resp.text == "Tried initializing admin"
    assert db[ADMINS].count_documents({}) == 0


def test_strict_init_admin_reports_unexpected_errors(client, config):
    config["admin"]["strict_init"] = True
    config["auth"]["bcrypt_rounds"] = 99

    assert client.get("/api/init-admin").status_code == 500


# -- Authentication -----------------------------------------------------------

def test_authenticate_and_verify(client, token):
    resp = client.get("/api/verify-token", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 200
    assert resp.json() == {"message": "Token valid"}


def test_authenticate_short_password(client):
    resp = client.post("/api/authenticate", json={"password": "abc"})

    assert resp.status_code == 400
    assert resp.json() == {"message": "Password must be at least 8 characters"}


def test_authenticate_without_body(client):
    assert client.post("/api/authenticate").status_code == 400


def test_authenticate_before_init(client):
    resp = client.post("/api/authenticate", json={"password": ADMIN_PASSWORD})

    assert resp.status_code == 401
    assert resp.json() == {"message": "Admin account not initialized"}


def test_authenticate_wrong_password(client):
    client.get("/api/init-admin")

    resp = client.post("/api/authenticate", json={"password": "not-the-password"})

    assert resp.status_code == 401
    assert resp.json() == {"message": "Invalid password"}


def test_verify_token_missing(client):
    resp = client.get("/api/verify-token")

    assert resp.status_code == 401
    assert resp.json() == {"message": "Unauthorized"}


def test_verify_token_non_bearer_scheme(client, token):
    resp = client.get("/api/verify-token", headers={"Authorization": f"Basic {token}"})

    assert resp.status_code == 401
    assert resp.json() == {"message": "Unauthorized"}


def test_verify_token_invalid(client):
    resp = client.get("/api/verify-token", headers={"Authorization": "Bearer nonsense"})

    assert resp.status_code == 403
    assert resp.json() == {"message": "Invalid token"}


def test_verify_token_expired(client, auth_manager):
    issued = datetime.now(timezone.utc) - timedelta(hours=2)
    stale = auth_manager.create_token(issued_at=issued)

    resp = client.get("/api/verify-token", headers={"Authorization": f"Bearer {stale}"})

    assert resp.status_code == 403


# -- Presale end --------------------------------------------------------------

def test_presale_end_placeholder(client):
    resp = client.get("/api/presale-end")

    assert resp.status_code == 200
    assert resp.json() == {"message": "No presale end date set yet"}


def test_presale_end_save_and_read(client, auth_headers):
    body = {"endDateTime": "2026-12-31T18:00:00Z"}

    resp = client.post("/api/presale-end", json=body, headers=auth_headers)

    assert resp.status_code == 200
    assert resp.json()["message"] == "Presale end date saved"
    assert resp.json()["data"]["endDateTime"] == "2026-12-31T18:00:00+00:00"

    record = client.get("/api/presale-end").json()
    assert record["endDateTime"] == "2026-12-31T18:00:00+00:00"
    assert "createdAt" in record and "updatedAt" in record


def test_presale_end_requires_token(client):
    resp = client.post("/api/presale-end", json={"endDateTime": "2026-12-31T18:00:00Z"})
    assert resp.status_code == 401


@pytest.mark.parametrize("body", [{}, {"endDateTime": ""}, {"endDateTime": None}])
def test_presale_end_missing_field(client, auth_headers, body):
    resp = client.post("/api/presale-end", json=body, headers=auth_headers)

    assert resp.status_code == 400
    assert resp.json() == {"message": "endDateTime is required"}


def test_presale_end_malformed_date(client, auth_headers):
    resp = client.post("/api/presale-end", json={"endDateTime": "next tuesday"},
                       headers=auth_headers)
    assert resp.status_code == 400


# -- Progress bar -------------------------------------------------------------

def test_progress_bar_placeholder(client):
    assert client.get("/api/progress-bar").json() == {"message": "No progress bar value set yet"}


@pytest.mark.parametrize("posted, stored", [
    (-5, 0),
    (150, 100),
    (42, 42),
    (0, 0),
    (100, 100),
    (12.5, 12.5),
    ("55", 55),
    ("-1", 0),
])
def test_progress_bar_is_clamped(client, auth_headers, posted, stored):
    resp = client.post("/api/progress-bar", json={"value": posted}, headers=auth_headers)

    assert resp.status_code == 200
    assert resp.json()["data"]["value"] == stored
    assert client.get("/api/progress-bar").json()["value"] == stored


def test_progress_bar_updates_in_place(client, auth_headers, db):
    client.post("/api/progress-bar", json={"value": 10}, headers=auth_headers)
    client.post("/api/progress-bar", json={"value": 20}, headers=auth_headers)

    assert db[PROGRESS_BAR].count_documents({}) == 1
    assert client.get("/api/progress-bar").json()["value"] == 20


def test_progress_bar_missing_value(client, auth_headers):
    resp = client.post("/api/progress-bar", json={}, headers=auth_headers)

    assert resp.status_code == 400
    assert resp.json() == {"message": "value is required"}


@pytest.mark.parametrize("value", ["lots", True, [1], "nan"])
def test_progress_bar_rejects_non_numbers(client, auth_headers, value):
    resp = client.post("/api/progress-bar", json={"value": value}, headers=auth_headers)
    assert resp.status_code == 400


def test_progress_bar_bad_token(client):
    resp = client.post("/api/progress-bar", json={"value": 5},
                       headers={"Authorization": "Bearer forged"})
    assert resp.status_code == 403


# -- Wallet addresses ---------------------------------------------------------

def test_wallet_address_is_lowercased_and_unique(client, db):
    first = client.post("/api/wallet-address", json={"address": "0xABC"})
    second = client.post("/api/wallet-address", json={"address": "0xabc"})

    assert first.status_code == 200
    assert first.json()["message"] == "Wallet address saved"
    assert first.json()["data"]["address"] == "0xabc"

    assert second.status_code == 409
    assert second.json()["message"] == "Address already exists"
    assert second.json()["data"]["_id"] == first.json()["data"]["_id"]

    assert db[WALLET_ADDRESSES].count_documents({}) == 1


@pytest.mark.parametrize("body", [{}, {"address": ""}, {"address": "   "}])
def test_wallet_address_missing(client, body):
    resp = client.post("/api/wallet-address", json=body)

    assert resp.status_code == 400
    assert resp.json() == {"message": "Address is required"}


def test_wallet_address_must_be_a_string(client):
    assert client.post("/api/wallet-address", json={"address": 12345}).status_code == 400


def test_wallet_addresses_listed_newest_first(client):
    for address in ("0xA1", "0xB2", "0xC3"):
        client.post("/api/wallet-address", json={"address": address})

    listed = client.get("/api/wallet-address").json()

    assert [w["address"] for w in listed] == ["0xc3", "0xb2", "0xa1"]


def test_concurrent_wallet_posts_all_succeed(app):
    addresses = [f"0xFeed{i:02d}" for i in range(12)]

    def post(address):
        return TestClient(app).post("/api/wallet-address", json={"address": address})

    with ThreadPoolExecutor(max_workers=4) as pool:
        responses = list(pool.map(post, addresses))

    assert all(r.status_code == 200 for r in responses)

    listed = TestClient(app).get("/api/wallet-address").json()
    assert {w["address"] for w in listed} == {a.lower() for a in addresses}
    created = [datetime.fromisoformat(w["createdAt"]) for w in listed]
    assert created == sorted(created, reverse=True)


# -- Store failures -----------------------------------------------------------

@pytest.mark.parametrize("path", ["/api/presale-end", "/api/progress-bar", "/api/wallet-address"])
def test_unreachable_store_is_a_generic_500(config, path):
    client = TestClient(create_app(config, client_factory=UnreachableClient))

    resp = client.get(path)

    assert resp.status_code == 500
    assert resp.json() == {"message": "Server error"}


def test_cors_headers(client):
    resp = client.get("/api/progress-bar", headers={"Origin": "https://presale.example"})
    assert resp.headers["access-control-allow-origin"] in ("*", "https://presale.example")


# -- Data left by earlier deployments ------------------------------------------

def test_duplicate_wallets_in_store_do_not_take_the_service_down(client, db):
    db[WALLET_ADDRESSES].insert_many([{"address": "0xaa"}, {"address": "0xaa"}])

    assert client.get("/api/progress-bar").status_code == 200
    assert client.post("/api/wallet-address", json={"address": "0xBB"}).status_code == 200
    assert client.post("/api/wallet-address", json={"address": "0xAA"}).status_code == 409


def test_progress_post_updates_record_with_object_id(client, auth_headers, db):
    db[PROGRESS_BAR].insert_one({"value": 5, "createdAt": datetime(2024, 6, 1)})

    resp = client.post("/api/progress-bar", json={"value": 10}, headers=auth_headers)

    assert resp.status_code == 200
    assert db[PROGRESS_BAR].count_documents({}) == 1
    assert client.get("/api/progress-bar").json()["value"] == 10


# -- Lifespan -------------------------------------------------------------------

def test_startup_connects_eagerly(app):
    with TestClient(app):
        assert app.state.connection.is_connected
    assert not app.state.connection.is_connected


def test_startup_survives_unreachable_store(config):
    app = create_app(config, client_factory=UnreachableClient)

    with TestClient(app) as client:
        assert not app.state.connection.is_connected
        assert client.get("/api/progress-bar").status_code == 500
