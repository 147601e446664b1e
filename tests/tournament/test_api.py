"""HTTP binding tests using FastAPI's TestClient."""

import random

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from pokerclub.config import Settings
from pokerclub.main import create_app
from pokerclub.tournament.api import (
    register_exception_handlers,
    router,
    set_lifecycle,
)
from pokerclub.tournament.distributed_lock import DistributedLockManager, make_lock_key
from pokerclub.tournament.engine import TournamentLifecycle
from pokerclub.tournament.seating import SeatingAllocator
from pokerclub.tournament.store import InMemoryTournamentStore

BASE = "/api/v1/tournaments"


@pytest.fixture
def client(settings):
    lifecycle = TournamentLifecycle(
        InMemoryTournamentStore(),
        allocator=SeatingAllocator(random.Random(1)),
        settings=settings,
    )
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(router)
    set_lifecycle(lifecycle)
    with TestClient(app) as test_client:
        yield test_client
    set_lifecycle(None)


def create_open_tournament(client, **body) -> str:
    body.setdefault("name", "Friday Freezeout")
    response = client.post(BASE, json=body)
    assert response.status_code == 201
    tid = response.json()["tournament_id"]
    assert client.post(f"{BASE}/{tid}/open-registration").status_code == 200
    return tid


def register_and_pay(client, tid, *player_ids):
    for player_id in player_ids:
        response = client.post(f"{BASE}/{tid}/registrations", json={"player_id": player_id})
        assert response.status_code == 201
        response = client.post(
            f"{BASE}/{tid}/players/{player_id}/payment",
            json={"amount": "50", "method": "cash"},
        )
        assert response.status_code == 200


class TestTournamentApi:
    def test_full_flow(self, client):
        tid = create_open_tournament(client, capacity=10, buy_in="50")
        register_and_pay(client, tid, "alice", "bob", "carol")

        assert client.post(f"{BASE}/{tid}/check-in").json()["lifecycle_state"] == "check_in"
        seating = client.post(f"{BASE}/{tid}/start").json()["seating"]
        assert set(seating) == {"alice", "bob", "carol"}

        first = client.post(f"{BASE}/{tid}/players/alice/eliminate").json()
        assert first["finished"] is False
        assert first["eliminated"]["finish_place"] == 3

        last = client.post(
            f"{BASE}/{tid}/players/bob/eliminate", json={"finish_place": 2}
        ).json()
        assert last["finished"] is True
        assert last["winner"]["player_id"] == "carol"

        results = client.get(f"{BASE}/{tid}/results").json()["results"]
        assert [r["player_id"] for r in results] == ["carol", "bob", "alice"]

        detail = client.get(f"{BASE}/{tid}").json()
        assert detail["lifecycle_state"] == "finished"
        assert len(detail["registrations"]) == 3

    def test_actor_header_recorded(self, client):
        tid = create_open_tournament(client)
        client.post(
            f"{BASE}/{tid}/registrations",
            json={"player_id": "alice"},
            headers={"X-Actor-Id": "desk-3"},
        )

        actions = client.get(f"{BASE}/{tid}/actions").json()["actions"]
        assert actions[-1]["action_type"] == "register"
        assert actions[-1]["actor_id"] == "desk-3"
        assert actions[-1]["target_player_id"] == "alice"

    def test_stats_and_seating(self, client):
        tid = create_open_tournament(client)
        register_and_pay(client, tid, "alice", "bob")
        client.post(f"{BASE}/{tid}/check-in")
        client.post(f"{BASE}/{tid}/start")

        stats = client.get(f"{BASE}/{tid}/stats").json()
        assert stats["counts"]["playing"] == 2
        assert stats["payments"]["total_amount"] == "100"

        seating = client.get(f"{BASE}/{tid}/seating").json()["seating"]
        assert {s["table_number"] for s in seating.values()} == {1}

    def test_points_mode(self, client):
        tid = create_open_tournament(client)

        response = client.put(
            f"{BASE}/{tid}/points-mode", json={"kind": "manual", "table": {"1": 100}}
        )
        assert response.status_code == 200
        assert response.json()["points_mode"] == {"kind": "manual", "table": {"1": 100}}

        response = client.put(
            f"{BASE}/{tid}/points-mode", json={"kind": "computed", "table": {"1": 5}}
        )
        assert response.status_code == 400
        assert response.json()["errorCode"] == "INVALID_ARGUMENT"

    def test_delete(self, client):
        response = client.post(BASE, json={"name": "Scratch"})
        tid = response.json()["tournament_id"]

        assert client.delete(f"{BASE}/{tid}").status_code == 204
        assert client.get(f"{BASE}/{tid}").status_code == 404
        assert client.get(BASE).json() == []


class TestErrorMapping:
    def test_not_found(self, client):
        response = client.get(f"{BASE}/missing")

        assert response.status_code == 404
        body = response.json()
        assert body["errorCode"] == "NOT_FOUND"
        assert body["details"] == {"tournamentId": "missing"}

    def test_start_without_paid_players(self, client):
        response = client.post(BASE, json={"name": "Empty"})
        tid = response.json()["tournament_id"]

        response = client.post(f"{BASE}/{tid}/start")

        assert response.status_code == 409
        assert response.json()["errorCode"] == "NO_PLAYERS"

    def test_invalid_transition(self, client):
        tid = create_open_tournament(client)
        response = client.post(f"{BASE}/{tid}/open-registration")

        assert response.status_code == 409
        assert response.json()["errorCode"] == "INVALID_TRANSITION"

    def test_duplicate_registration(self, client):
        tid = create_open_tournament(client)
        client.post(f"{BASE}/{tid}/registrations", json={"player_id": "alice"})
        response = client.post(f"{BASE}/{tid}/registrations", json={"player_id": "alice"})

        assert response.status_code == 409
        assert response.json()["errorCode"] == "ALREADY_REGISTERED"

    def test_invalid_amount(self, client):
        tid = create_open_tournament(client)
        client.post(f"{BASE}/{tid}/registrations", json={"player_id": "alice"})

        response = client.post(
            f"{BASE}/{tid}/players/alice/payment", json={"amount": "0", "method": "cash"}
        )

        assert response.status_code == 400
        assert response.json()["errorCode"] == "INVALID_ARGUMENT"

    def test_seat_occupied(self, client):
        tid = create_open_tournament(client)
        register_and_pay(client, tid, "alice")
        client.post(f"{BASE}/{tid}/check-in")
        client.post(f"{BASE}/{tid}/start")

        response = client.post(
            f"{BASE}/{tid}/registrations/late",
            json={
                "player_id": "bob",
                "amount": "50",
                "method": "cash",
                "table_number": 1,
                "seat_number": 1,
            },
        )

        assert response.status_code == 409
        assert response.json()["errorCode"] == "SEAT_OCCUPIED"

    def test_engine_not_initialized(self):
        set_lifecycle(None)
        app = FastAPI()
        app.include_router(router)

        with TestClient(app) as client:
            response = client.get(BASE)

        assert response.status_code == 503


class TestEditAndWithdraw:
    def test_patch_tournament(self, client):
        tid = create_open_tournament(client, capacity=4)

        response = client.patch(f"{BASE}/{tid}", json={"capacity": 8, "buy_in": "25"})

        assert response.status_code == 200
        body = response.json()
        assert body["capacity"] == 8
        assert body["buy_in"] == "25"
        assert body["name"] == "Friday Freezeout"

    def test_patch_capacity_below_registered(self, client):
        tid = create_open_tournament(client, capacity=4)
        register_and_pay(client, tid, "a", "b")

        response = client.patch(f"{BASE}/{tid}", json={"capacity": 1})

        assert response.status_code == 409
        assert response.json()["errorCode"] == "CAPACITY_EXCEEDED"

    def test_unregister(self, client):
        tid = create_open_tournament(client, capacity=1)
        client.post(f"{BASE}/{tid}/registrations", json={"player_id": "alice"})

        response = client.delete(f"{BASE}/{tid}/registrations/alice")
        assert response.status_code == 200
        assert response.json()["player_id"] == "alice"

        again = client.post(f"{BASE}/{tid}/registrations", json={"player_id": "bob"})
        assert again.status_code == 201
        assert client.delete(f"{BASE}/{tid}/registrations/alice").status_code == 404


class TestApplication:
    def test_app_with_sqlite_backend(self):
        settings = Settings(
            _env_file=None,
            database_url="sqlite+aiosqlite:///:memory:",
            log_level="WARNING",
        )
        app = create_app(settings)

        with TestClient(app) as client:
            assert client.get("/health").json() == {"status": "healthy"}

            response = client.post(BASE, json={"name": "Persisted", "capacity": 4})
            assert response.status_code == 201
            tid = response.json()["tournament_id"]

            client.post(f"{BASE}/{tid}/open-registration")
            client.post(f"{BASE}/{tid}/registrations", json={"player_id": "alice"})
            detail = client.get(f"{BASE}/{tid}").json()
            assert detail["registrations"][0]["status"] == "registered"

    def test_request_id_echoed(self):
        settings = Settings(
            _env_file=None,
            database_url="sqlite+aiosqlite:///:memory:",
            log_level="WARNING",
        )
        app = create_app(settings)

        with TestClient(app) as client:
            given = client.get("/health", headers={"X-Request-ID": "req-42"})
            generated = client.get("/health")

        assert given.headers["X-Request-ID"] == "req-42"
        assert generated.headers["X-Request-ID"]


class TestBusyTournament:
    def test_lock_timeout_is_503(self, settings, mock_redis):
        lifecycle = TournamentLifecycle(
            InMemoryTournamentStore(),
            lock_manager=DistributedLockManager(
                mock_redis, default_acquire_timeout_ms=20, retry_interval_ms=5
            ),
            settings=settings,
        )
        app = FastAPI()
        register_exception_handlers(app)
        app.include_router(router)
        set_lifecycle(lifecycle)
        try:
            with TestClient(app) as client:
                tid = client.post(BASE, json={"name": "Busy"}).json()["tournament_id"]
                mock_redis._data[make_lock_key(tid)] = "other-worker"

                response = client.post(f"{BASE}/{tid}/open-registration")
        finally:
            set_lifecycle(None)

        assert response.status_code == 503
        assert response.json()["errorCode"] == "LOCK_TIMEOUT"
