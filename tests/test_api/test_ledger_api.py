"""
HTTP API tests (TestClient against an in-memory database)
"""
import pytest

PASSWORD = "5e884898da28047151d0e56f8dc6292773603d0d6aabbdd62a11ef721d1542d8"


def _register_and_login(client, username: str, ip: str) -> tuple[str, dict]:
    headers = {"X-Forwarded-For": ip}
    resp = client.post("/api/register", json={"username": username, "passwordHash": PASSWORD}, headers=headers)
    assert resp.status_code == 200, resp.text
    resp = client.post("/api/login", json={"username": username, "passwordHash": PASSWORD}, headers=headers)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    return body["userId"], {"Authorization": f"Bearer {body['sessionId']}"}


@pytest.fixture
def alice(client):
    return _register_and_login(client, "alice", "10.0.0.1")


@pytest.fixture
def bob(client):
    return _register_and_login(client, "bob", "10.0.0.2")


def test_health(client):
    assert client.get("/health").text == "ok"
    assert client.get("/ready").status_code == 200


def test_protected_routes_need_session(client):
    requests = [
        ("/api/claim", None),
        ("/api/transfer", {"toId": "1", "amount": "1"}),
        ("/api/card", None),
        ("/api/logout", None),
    ]
    for path, body in requests:
        resp = client.post(path, json=body)
        assert resp.status_code == 403
        assert resp.json() == {"error": "operation failed"}
    resp = client.get("/api/rank", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 403


def test_login_wrong_password_then_lock(client, alice):
    headers = {"X-Forwarded-For": "10.9.9.9"}
    for _ in range(3):
        resp = client.post("/api/login", json={"username": "alice", "passwordHash": "bad"}, headers=headers)
        assert resp.json() == {"sessionCreated": False, "passwordCorrect": False}

    resp = client.post("/api/login", json={"username": "alice", "passwordHash": PASSWORD}, headers=headers)
    assert resp.status_code == 429
    assert resp.json()["error"].startswith("IP blocked. Try again in ")


def test_register_rules(client, alice):
    resp = client.post("/api/register", json={"username": "carol", "passwordHash": PASSWORD},
                       headers={"X-Forwarded-For": "10.0.0.1"})
    assert resp.status_code == 429

    resp = client.post("/api/register", json={"username": "alice", "passwordHash": PASSWORD},
                       headers={"X-Forwarded-For": "10.0.0.50"})
    assert resp.status_code == 409


def test_malformed_body_is_400(client):
    resp = client.post("/api/login", json={"username": "x"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid parameters"}


def test_claim_transfer_and_history(client, alice, bob, funded, monkeypatch):
    from coinledger.config import get_settings

    monkeypatch.setattr(get_settings(), "TRANSFER_MIN_INTERVAL_MS", 60_000)
    alice_id, alice_auth = alice
    bob_id, _ = bob
    funded(alice_id, 100_000_000)

    resp = client.post("/api/transfer", json={"toId": bob_id, "amount": "0.5"}, headers=alice_auth)
    assert resp.status_code == 200, resp.text
    tx_id = resp.json()["txId"]

    resp = client.post("/api/transfer", json={"toId": bob_id, "amount": "0.1"}, headers=alice_auth)
    assert resp.status_code == 429
    assert resp.json()["retryAfterMs"] > 0

    saldo = client.get(f"/api/user/{bob_id}/saldo", headers=alice_auth).json()
    assert saldo == {"userId": bob_id, "saldo": "0.50000000", "sats": 50_000_000}

    tx = client.get(f"/api/tx/{tx_id}").json()["tx"]
    assert (tx["from_id"], tx["to_id"], tx["amountSats"]) == (alice_id, bob_id, 50_000_000)
    assert client.get("/api/tx/unknown").status_code == 404

    history = client.get("/api/transactions", headers=alice_auth).json()
    assert [t["id"] for t in history["transactions"]] == [tx_id]


@pytest.mark.parametrize("amount", ["0", "-1", "0.000000001", "abc"])
def test_transfer_invalid_amount(client, alice, bob, funded, amount):
    alice_id, alice_auth = alice
    funded(alice_id, 100)
    resp = client.post("/api/transfer", json={"toId": bob[0], "amount": amount}, headers=alice_auth)
    assert resp.status_code == 400


def test_transfer_insufficient_funds(client, alice, bob):
    resp = client.post("/api/transfer", json={"toId": bob[0], "amount": "1"}, headers=alice[1])
    assert resp.status_code == 400
    assert resp.json()["code"] == "INSUFFICIENT_FUNDS"


def test_claim_status_after_registration(client, alice):
    _, auth = alice
    status = client.get("/api/claim/status", headers=auth).json()
    assert status["ready"] is False
    assert client.post("/api/claim", headers=auth).status_code == 429


def test_bill_flow(client, alice, bob, funded):
    alice_id, alice_auth = alice
    bob_id, bob_auth = bob
    funded(bob_id, 10_000_000)

    resp = client.post("/api/bill/create", json={"fromId": bob_id, "toId": alice_id, "amount": "0.01", "time": "1h"},
                       headers=alice_auth)
    bill_id = resp.json()["billId"]

    to_pay = client.post("/api/bill/list/from", json={"page": 1}, headers=bob_auth).json()["bills"]
    assert [b["id"] for b in to_pay] == [bill_id]
    assert client.post("/api/bill/list/to", json={}, headers=bob_auth).json()["bills"] == []

    resp = client.post("/api/bill/pay", json={"billId": bill_id}, headers=bob_auth)
    assert resp.status_code == 200
    assert client.get(f"/api/tx/{bill_id}").status_code == 200
    assert client.post("/api/bill/pay", json={"billId": bill_id}, headers=bob_auth).status_code == 404


def test_card_routes(client, alice, bob, funded, no_transfer_throttle):
    alice_id, alice_auth = alice
    bob_id, bob_auth = bob
    funded(alice_id, 100_000_000)
    alice_card = client.post("/api/card", headers=alice_auth).json()["cardCode"]
    bob_card = client.post("/api/card", headers=bob_auth).json()["cardCode"]

    info = client.post("/api/card/info", json={"cardCode": alice_card}).json()
    assert info["userId"] == alice_id
    assert info["sats"] == 100_000_000

    resp = client.post("/api/card/pay", json={"fromCard": alice_card, "toCard": bob_card, "amount": "0.123456789"})
    assert resp.status_code == 200
    assert client.post("/api/card/info", json={"cardCode": bob_card}).json()["sats"] == 12_345_678

    resp = client.post("/api/transfer/card", json={"cardCode": alice_card, "toId": "999", "amount": "0.1"})
    assert resp.status_code == 200

    new_code = client.post("/api/card/reset", headers=alice_auth).json()["newCode"]
    assert client.post("/api/card/info", json={"cardCode": alice_card}).status_code == 403
    assert client.post("/api/card/info", json={"cardCode": new_code}).status_code == 200


def test_backup_routes(client, alice, bob, funded):
    alice_id, alice_auth = alice
    _, bob_auth = bob
    funded(alice_id, 25_000_000)

    assert client.post("/api/backup/create", headers=alice_auth).json() == {"success": True, "count": 12}
    code = client.post("/api/backup/list", headers=alice_auth).json()["backups"][0]

    resp = client.post("/api/backup/restore", json={"backupId": code}, headers=bob_auth)
    assert resp.json() == {"success": True, "amount": "0.25000000"}
    assert client.post("/api/backup/restore", json={"backupId": code}, headers=bob_auth).status_code == 404


def test_logout_and_totals(client, alice, bob):
    _, auth = alice
    assert client.get("/api/totalusers").json() == {"totalUsers": 2}
    assert client.post("/api/logout", headers=auth).json() == {"success": True}
    assert client.get("/api/claim/status", headers=auth).status_code == 403
