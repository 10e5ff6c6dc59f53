"""HTTP surface: operations, error mapping, decrypt flow."""

import pytest
from fastapi.testclient import TestClient

from predledger.api.main import create_app
from predledger.ledger import MarketOperationProcessor
from predledger.storage.event_log import EventLog


@pytest.fixture
def client():
    with TestClient(create_app(MarketOperationProcessor())) as c:
        yield c


def as_(principal):
    return {"X-Principal": principal}


def encrypt(client, value, principal):
    r = client.post("/encrypt", json={"value": value}, headers=as_(principal))
    assert r.status_code == 200
    return r.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "backend": "mock", "event_sink_failures": 0}


def test_market_lifecycle_over_http(client):
    r = client.post("/markets", json={"title": "Weather", "options": ["Sunny", "Rainy", "Snow"]}, headers=as_("carol"))
    assert r.status_code == 200
    assert r.json() == {"market_id": 0}

    choice = encrypt(client, 1, "alice")
    r = client.post("/markets/0/bets", json={"choice": choice, "amount": 100}, headers=as_("alice"))
    assert r.status_code == 200

    market = client.get("/markets/0").json()
    assert market["total_stake"] == 100
    assert market["participant_count"] == 1
    assert market["creator"] == "carol"
    assert market["status"] == "active"

    assert client.post("/markets/0/access/tallies", headers=as_("alice")).status_code == 200
    tallies = client.get("/markets/0/tallies").json()["tallies"]
    values = [
        client.post("/decrypt", json={"cipher": t, "credential": "alice"}, headers=as_("alice")).json()["value"]
        for t in tallies
    ]
    assert values == [0, 1, 0]

    assert client.post("/markets/0/close", json={"winning_option": 1}, headers=as_("bob")).status_code == 200
    market = client.get("/markets/0").json()
    assert market["status"] == "closed"
    assert market["result"] == 1

    r = client.post("/markets/0/bets", json={"choice": encrypt(client, 0, "dave"), "amount": 5}, headers=as_("dave"))
    assert r.status_code == 409
    assert r.json()["code"] == "invalid_state"

    kinds = [e["kind"] for e in client.get("/events").json()["events"]]
    assert kinds == ["MarketCreated", "BetPlaced", "OptionCountAccessGranted", "PredictionClosed"]


def test_bet_access_and_denied(client):
    client.post("/markets", json={"title": "Winner", "options": ["A", "B"]}, headers=as_("c"))
    client.post("/markets/0/bets", json={"choice": encrypt(client, 1, "alice"), "amount": 3}, headers=as_("alice"))
    bet = client.get("/markets/0/bets/alice").json()
    assert bet["amount"] == 3

    r = client.post("/decrypt", json={"cipher": bet["choice"], "credential": "alice"}, headers=as_("alice"))
    assert r.status_code == 403
    assert r.json()["code"] == "denied"

    assert client.post("/markets/0/access/bet", headers=as_("alice")).status_code == 200
    r = client.post("/decrypt", json={"cipher": bet["choice"], "credential": "alice"}, headers=as_("alice"))
    assert r.json()["value"] == 1
    r = client.post("/decrypt", json={"cipher": bet["choice"], "credential": "bob"}, headers=as_("bob"))
    assert r.status_code == 403

    r = client.post("/markets/0/access/bet", headers=as_("bob"))
    assert r.status_code == 404
    assert r.json()["code"] == "no_such_bet"
    assert client.get("/markets/0/bets/bob").json() is None


def test_error_mapping(client):
    r = client.post("/markets", json={"title": "Q", "options": ["only"]}, headers=as_("c"))
    assert r.status_code == 422
    assert r.json()["code"] == "invalid_argument"
    assert client.get("/markets/0").json()["code"] == "not_found"

    client.post("/markets", json={"title": "Q", "options": ["Yes", "No"]}, headers=as_("c"))
    choice = encrypt(client, 0, "a")
    assert client.post("/markets/0/bets", json={"choice": choice, "amount": 0}, headers=as_("a")).status_code == 422
    assert client.post("/markets/0/bets", json={"choice": choice, "amount": 1}, headers=as_("a")).status_code == 200
    r = client.post("/markets/0/bets", json={"choice": choice, "amount": 1}, headers=as_("a"))
    assert r.status_code == 409
    assert r.json()["code"] == "already_exists"
    assert client.post("/markets/0/close", json={"winning_option": 2}, headers=as_("a")).status_code == 422
    # Caller identity is required for mutations
    assert client.post("/markets/0/access/tallies").status_code == 422


def test_list_and_count(client):
    for i in range(3):
        client.post("/markets", json={"title": f"Q{i}", "options": ["Yes", "No"]}, headers=as_("c"))
    assert client.get("/markets/count").json() == {"count": 3}
    body = client.get("/markets", params={"limit": 2, "offset": 1}).json()
    assert body["total"] == 3
    assert [m["title"] for m in body["markets"]] == ["Q1", "Q2"]


def test_encrypt_binds_choice_to_caller(client):
    client.post("/markets", json={"title": "Winner", "options": ["A", "B"]}, headers=as_("c"))
    assert client.post("/encrypt", json={"value": 1}).status_code == 422

    alices = encrypt(client, 1, "alice")
    r = client.post("/markets/0/bets", json={"choice": alices, "amount": 3}, headers=as_("bob"))
    assert r.status_code == 422
    assert r.json()["code"] == "invalid_argument"
    assert client.get("/markets/0/bets/bob").json() is None
    assert client.get("/markets/0").json()["participant_count"] == 0

    ghost = {"handle": "ffff", "type": "euint32"}
    r = client.post("/markets/0/bets", json={"choice": ghost, "amount": 3}, headers=as_("bob"))
    assert r.status_code == 422
    assert r.json()["code"] == "invalid_argument"


def test_health_reports_failing_event_sink():
    def broken(event):
        raise RuntimeError("disk full")

    events = EventLog()
    events.subscribe(broken)
    with TestClient(create_app(MarketOperationProcessor(events=events))) as c:
        c.post("/markets", json={"title": "Q", "options": ["Yes", "No"]}, headers=as_("c"))
        assert c.get("/markets/count").json() == {"count": 1}
        assert c.get("/health").json() == {"status": "degraded", "backend": "mock", "event_sink_failures": 1}
