"""Registration ledger tests: player status machine, payments and places."""

from decimal import Decimal

import pytest

from pokerclub.tournament.ledger import (
    RegistrationLedger,
    parse_amount,
    parse_method,
)
from pokerclub.tournament.models import (
    PaymentMethod,
    PointsMode,
    RegistrationStatus,
    RegistrationType,
    Seat,
    Tournament,
    TournamentSnapshot,
)
from pokerclub.utils.errors import (
    AlreadyRegistered,
    DuplicatePlace,
    InvalidArgument,
    InvalidTransition,
    NotFound,
    TournamentFull,
)


def make_ledger(capacity: int = 90, points_mode: PointsMode = None) -> RegistrationLedger:
    tournament = Tournament(
        name="Test",
        capacity=capacity,
        points_mode=points_mode or PointsMode.computed(),
    )
    return RegistrationLedger(TournamentSnapshot(tournament=tournament))


def playing_ledger(count: int, **kwargs) -> RegistrationLedger:
    """Ledger with `count` players paid and checked in, each on table 1."""
    ledger = make_ledger(**kwargs)
    for i in range(1, count + 1):
        player_id = f"p{i:02d}"
        ledger.register(player_id)
        ledger.confirm_payment(player_id, 50, "cash")
    ledger.check_in()
    for i, player_id in enumerate(ledger.snapshot.active_players, start=1):
        ledger.snapshot.seating[player_id] = Seat(1, i)
    return ledger


# =============================================================================
# Input parsing
# =============================================================================


class TestParsing:
    @pytest.mark.parametrize("value", [50, "50.00", Decimal("12.5"), 0.5])
    def test_valid_amounts(self, value):
        assert parse_amount(value) > 0

    @pytest.mark.parametrize("value", [0, -1, "abc", "NaN", "Infinity", ""])
    def test_invalid_amounts(self, value):
        with pytest.raises(InvalidArgument):
            parse_amount(value)

    def test_method_from_string(self):
        assert parse_method("card") == PaymentMethod.CARD

    def test_unknown_method(self):
        with pytest.raises(InvalidArgument) as exc_info:
            parse_method("crypto")
        assert "cash" in exc_info.value.details["allowed"]


# =============================================================================
# Registration
# =============================================================================


class TestRegister:
    def test_creates_registered_entry(self):
        ledger = make_ledger()
        registration = ledger.register("alice")

        assert registration.status == RegistrationStatus.REGISTERED
        assert registration.registration_type == RegistrationType.STANDARD
        assert ledger.get("alice") is registration

    def test_duplicate_registration_rejected(self):
        ledger = make_ledger()
        ledger.register("alice")

        with pytest.raises(AlreadyRegistered):
            ledger.register("alice")

    def test_no_show_can_register_again(self):
        ledger = make_ledger()
        ledger.register("alice")
        ledger.mark_no_show("alice")

        assert ledger.register("alice").status == RegistrationStatus.REGISTERED
        assert len(ledger.snapshot.registrations) == 1

    def test_capacity_enforced(self):
        ledger = make_ledger(capacity=2)
        ledger.register("a")
        ledger.register("b")

        with pytest.raises(TournamentFull) as exc_info:
            ledger.register("c")
        assert exc_info.value.details == {"capacity": 2}

    def test_no_show_frees_capacity(self):
        ledger = make_ledger(capacity=2)
        ledger.register("a")
        ledger.register("b")
        ledger.mark_no_show("a")

        ledger.register("c")
        assert ledger.holding_capacity() == 2

    def test_capacity_can_be_skipped(self):
        ledger = make_ledger(capacity=1)
        ledger.register("a")
        ledger.register("b", RegistrationType.LATE, enforce_capacity=False)

        assert ledger.get("b").registration_type == RegistrationType.LATE

    def test_unknown_player_not_found(self):
        with pytest.raises(NotFound):
            make_ledger().get("ghost")

    @pytest.mark.parametrize("pay", [False, True])
    def test_unregister_frees_slot(self, pay):
        ledger = make_ledger(capacity=1)
        ledger.register("alice")
        if pay:
            ledger.confirm_payment("alice", 50, "cash")

        removed = ledger.unregister("alice")

        assert removed.player_id == "alice"
        assert "alice" not in ledger.snapshot.registrations
        assert ledger.register("bob").status == RegistrationStatus.REGISTERED

    def test_unregister_no_show_rejected(self):
        ledger = make_ledger()
        ledger.register("alice")
        ledger.mark_no_show("alice")

        with pytest.raises(InvalidTransition):
            ledger.unregister("alice")

    def test_unregister_unknown_player(self):
        with pytest.raises(NotFound):
            make_ledger().unregister("ghost")


# =============================================================================
# Payment
# =============================================================================


class TestConfirmPayment:
    def test_registered_becomes_paid(self):
        ledger = make_ledger()
        ledger.register("alice")

        registration, changed = ledger.confirm_payment(
            "alice", "50", PaymentMethod.TRANSFER, notes="ref 123", confirmed_by="desk"
        )

        assert changed is True
        assert registration.status == RegistrationStatus.PAID
        assert registration.payment.amount == Decimal("50")
        assert registration.payment.method == PaymentMethod.TRANSFER
        assert registration.payment.notes == "ref 123"
        assert registration.payment.confirmed_by == "desk"

    def test_second_confirmation_is_noop(self):
        ledger = make_ledger()
        ledger.register("alice")
        first, _ = ledger.confirm_payment("alice", 50, "cash")

        second, changed = ledger.confirm_payment("alice", 70, "card")

        assert changed is False
        assert second is first
        assert second.payment.amount == Decimal("50")

    def test_no_show_cannot_pay(self):
        ledger = make_ledger()
        ledger.register("alice")
        ledger.mark_no_show("alice")

        with pytest.raises(InvalidTransition):
            ledger.confirm_payment("alice", 50, "cash")

    def test_bad_amount_checked_before_lookup(self):
        with pytest.raises(InvalidArgument):
            make_ledger().confirm_payment("ghost", 0, "cash")


# =============================================================================
# No-show and restore
# =============================================================================


class TestNoShowAndRestore:
    @pytest.mark.parametrize("pay", [False, True])
    def test_mark_no_show_from_registered_or_paid(self, pay):
        ledger = make_ledger()
        ledger.register("alice")
        if pay:
            ledger.confirm_payment("alice", 50, "cash")

        assert ledger.mark_no_show("alice").status == RegistrationStatus.NO_SHOW

    def test_mark_no_show_rejected_while_playing(self):
        ledger = playing_ledger(2)
        with pytest.raises(InvalidTransition):
            ledger.mark_no_show("p01")

    def test_exclude_all_no_show_only_touches_unpaid(self):
        ledger = make_ledger()
        for player_id in ("a", "b", "c"):
            ledger.register(player_id)
        ledger.confirm_payment("b", 50, "cash")

        affected = ledger.exclude_all_no_show()

        assert sorted(affected) == ["a", "c"]
        assert ledger.get("b").status == RegistrationStatus.PAID
        assert ledger.count(RegistrationStatus.NO_SHOW) == 2

    def test_restore_no_show(self):
        ledger = make_ledger()
        ledger.register("alice")
        ledger.mark_no_show("alice")

        assert ledger.restore("alice").status == RegistrationStatus.REGISTERED

    def test_restore_no_show_respects_capacity(self):
        ledger = make_ledger(capacity=2)
        ledger.register("a")
        ledger.register("b")
        ledger.mark_no_show("a")
        ledger.register("c")

        with pytest.raises(TournamentFull):
            ledger.restore("a")

        assert ledger.get("a").status == RegistrationStatus.NO_SHOW
        assert ledger.holding_capacity() == 2

    def test_restore_eliminated_clears_place(self):
        ledger = playing_ledger(4)
        ledger.eliminate("p01")

        restored = ledger.restore("p01")

        assert restored.status == RegistrationStatus.PLAYING
        assert restored.finish_place is None
        assert restored.points_earned == 0

    def test_restore_playing_rejected(self):
        ledger = playing_ledger(2)
        with pytest.raises(InvalidTransition):
            ledger.restore("p01")


# =============================================================================
# Check-in
# =============================================================================


class TestCheckIn:
    def test_only_paid_players_check_in(self):
        ledger = make_ledger()
        for player_id in ("a", "b", "c"):
            ledger.register(player_id)
        ledger.confirm_payment("a", 50, "cash")
        ledger.confirm_payment("c", 50, "cash")

        assert sorted(ledger.check_in()) == ["a", "c"]
        assert ledger.get("b").status == RegistrationStatus.REGISTERED

    def test_check_in_single_player_requires_paid(self):
        ledger = make_ledger()
        ledger.register("a")
        with pytest.raises(InvalidTransition):
            ledger.check_in_player("a")


# =============================================================================
# Elimination
# =============================================================================


class TestEliminate:
    def test_default_place_counts_down(self):
        ledger = playing_ledger(5)

        assert ledger.eliminate("p01").finish_place == 5
        assert ledger.eliminate("p02").finish_place == 4
        assert ledger.eliminate("p03").finish_place == 3

    def test_frees_seat(self):
        ledger = playing_ledger(3)
        ledger.eliminate("p02")

        assert "p02" not in ledger.snapshot.seating
        assert len(ledger.snapshot.seating) == 2

    def test_points_follow_percentage_table(self):
        ledger = playing_ledger(10)
        # Place 10 of 10: 750 * 3% = 22.5 -> 23
        assert ledger.eliminate("p01").points_earned == 23

    def test_manual_points(self):
        ledger = playing_ledger(3, points_mode=PointsMode.manual({3: 40, 1: 100}))

        assert ledger.eliminate("p01").points_earned == 40
        assert ledger.eliminate("p02").points_earned == 0

    def test_explicit_place(self):
        ledger = playing_ledger(5)
        assert ledger.eliminate("p01", finish_place=5).finish_place == 5

    def test_explicit_place_already_taken(self):
        ledger = playing_ledger(5)
        ledger.eliminate("p01")

        with pytest.raises(DuplicatePlace) as exc_info:
            ledger.eliminate("p02", finish_place=5)
        assert exc_info.value.details["holder"] == "p01"

    @pytest.mark.parametrize("place", [0, -2, 6])
    def test_explicit_place_out_of_range(self, place):
        ledger = playing_ledger(5)
        with pytest.raises(InvalidArgument):
            ledger.eliminate("p01", finish_place=place)

    def test_explicit_place_below_active_count(self):
        # 5 still playing: places 1-4 belong to players not yet out
        ledger = playing_ledger(5)
        with pytest.raises(InvalidArgument):
            ledger.eliminate("p01", finish_place=2)

    def test_default_place_skips_explicit_ones(self):
        ledger = playing_ledger(5)
        ledger.eliminate("p01", finish_place=5)
        ledger.eliminate("p02", finish_place=4)

        assert ledger.eliminate("p03").finish_place == 3

    def test_eliminated_player_cannot_be_eliminated_again(self):
        ledger = playing_ledger(3)
        ledger.eliminate("p01")
        with pytest.raises(InvalidTransition):
            ledger.eliminate("p01")

    def test_places_unique_when_run_to_the_end(self):
        ledger = playing_ledger(8)
        for player_id in list(ledger.snapshot.active_players):
            ledger.eliminate(player_id)

        places = sorted(ledger.used_places())
        assert places == list(range(1, 9))


# =============================================================================
# Bonus, recompute, reset
# =============================================================================


class TestBonusAndRecompute:
    def test_bonus_accumulates(self):
        ledger = playing_ledger(2)
        ledger.add_bonus("p01", 5)
        registration = ledger.add_bonus("p01", 10)

        assert registration.bonus_points == 15
        assert registration.total_points == 15

    @pytest.mark.parametrize("amount", [0, -5, 2.5, True, "10"])
    def test_bonus_must_be_positive_int(self, amount):
        ledger = playing_ledger(2)
        with pytest.raises(InvalidArgument):
            ledger.add_bonus("p01", amount)

    def test_recompute_uses_new_points_mode(self):
        ledger = playing_ledger(3)
        ledger.eliminate("p01")

        ledger.snapshot.tournament = ledger.snapshot.tournament.with_state(
            ledger.snapshot.tournament.lifecycle_state,
            points_mode=PointsMode.manual({3: 99}),
        )
        ledger.recompute_points()

        assert ledger.get("p01").points_earned == 99

    def test_reset_for_restart(self):
        ledger = playing_ledger(4)
        ledger.register("late")
        ledger.eliminate("p01")
        ledger.add_bonus("p02", 5)

        reset = ledger.reset_for_restart()

        assert sorted(reset) == ["p01", "p02", "p03", "p04"]
        assert ledger.count(RegistrationStatus.PAID) == 4
        assert ledger.get("late").status == RegistrationStatus.REGISTERED
        assert ledger.snapshot.seating == {}
        for registration in ledger.snapshot.registrations.values():
            assert registration.finish_place is None
            assert registration.total_points == 0
