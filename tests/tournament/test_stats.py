"""Statistics projection tests."""

from decimal import Decimal

from pokerclub.tournament.ledger import RegistrationLedger
from pokerclub.tournament.models import (
    LifecycleState,
    RegistrationStatus,
    Seat,
    Tournament,
    TournamentSnapshot,
)
from pokerclub.tournament.stats import StatsProjector


def build_snapshot() -> TournamentSnapshot:
    """
    Six registrations:
        a, b, c  paid cash/card/cash, playing on tables 1 and 2
        d        paid transfer, eliminated 4th
        e        paid cash, then no-show
        f        registered, unpaid
    """
    snapshot = TournamentSnapshot(
        tournament=Tournament(
            name="Stats",
            capacity=20,
            seats_per_table=6,
            lifecycle_state=LifecycleState.STARTED,
        )
    )
    ledger = RegistrationLedger(snapshot)
    for player_id in "abcdef":
        ledger.register(player_id)
    for player_id, amount, method in (
        ("a", 50, "cash"),
        ("b", 50, "card"),
        ("c", 40, "cash"),
        ("d", 50, "transfer"),
        ("e", 50, "cash"),
    ):
        ledger.confirm_payment(player_id, amount, method)
    ledger.mark_no_show("e")
    ledger.check_in()

    snapshot.seating.update(
        {
            "a": Seat(2, 4),
            "b": Seat(1, 3),
            "c": Seat(1, 1),
            "d": Seat(2, 1),
        }
    )
    ledger.eliminate("d")
    ledger.add_bonus("a", 7)
    return snapshot


class TestStatsProjector:
    def test_status_counts_cover_every_status(self):
        stats = StatsProjector().project(build_snapshot())

        assert stats.counts == {
            RegistrationStatus.REGISTERED: 1,
            RegistrationStatus.PAID: 0,
            RegistrationStatus.NO_SHOW: 1,
            RegistrationStatus.PLAYING: 3,
            RegistrationStatus.ELIMINATED: 1,
        }
        assert stats.total_registrations == 6
        assert stats.active_players == 3

    def test_table_occupancy(self):
        stats = StatsProjector().project(build_snapshot())

        assert [t.table_number for t in stats.tables] == [1, 2]
        assert stats.tables[0].players == ["c", "b"]
        assert stats.tables[1].players == ["a"]
        assert stats.tables[0].free == 4
        assert stats.occupied_seats == 3
        assert stats.free_seats == 9

    def test_leaderboard_order(self):
        stats = StatsProjector().project(build_snapshot())
        rows = stats.leaderboard

        # still playing first, highest total on top
        assert rows[0].player_id == "a"
        assert rows[0].total_points == 7
        assert [r.player_id for r in rows[1:3]] == ["b", "c"]
        assert rows[-1].player_id == "d"
        assert rows[-1].finish_place == 4

    def test_payments_skip_no_shows(self):
        stats = StatsProjector().project(build_snapshot())
        payments = stats.payments

        assert payments.count == 4
        assert payments.total_amount == Decimal("190")
        assert payments.by_method["cash"] == {"count": 2, "amount": Decimal("90")}
        assert payments.by_method["card"]["count"] == 1
        assert payments.by_method["transfer"]["amount"] == Decimal("50")

    def test_empty_tournament(self):
        snapshot = TournamentSnapshot(tournament=Tournament(name="Empty"))
        stats = StatsProjector().project(snapshot)

        assert stats.total_registrations == 0
        assert stats.tables == []
        assert stats.leaderboard == []
        assert stats.payments.count == 0
        assert set(stats.payments.by_method) == {"cash", "card", "transfer"}

    def test_to_dict(self):
        data = StatsProjector().project(build_snapshot()).to_dict()

        assert data["lifecycle_state"] == "started"
        assert data["counts"]["playing"] == 3
        assert data["payments"]["total_amount"] == "190"
        assert data["payments"]["by_method"]["cash"] == {"count": 2, "amount": "90"}
        assert data["tables"][0] == {
            "table_number": 1,
            "seats": 6,
            "occupied": 2,
            "free": 4,
            "players": ["c", "b"],
        }
