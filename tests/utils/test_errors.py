"""Error hierarchy tests."""

import pytest

from pokerclub.tournament.models import LifecycleState
from pokerclub.utils.errors import (
    AlreadyRegistered,
    CapacityExceeded,
    Conflict,
    DuplicatePlace,
    ErrorCode,
    InvalidArgument,
    InvalidTransition,
    NoPlayers,
    SeatOccupied,
    StorageError,
    TournamentError,
    TournamentFull,
)


class TestTournamentErrors:
    def test_to_dict(self):
        error = InvalidArgument("bad amount", details={"amount": "-1"})

        assert error.to_dict() == {
            "errorCode": "INVALID_ARGUMENT",
            "errorMessage": "bad amount",
            "details": {"amount": "-1"},
        }
        assert str(error) == "bad amount"

    def test_code_override(self):
        error = Conflict("custom", code="SEAT_LOCKED")
        assert error.code == "SEAT_LOCKED"

    def test_for_state(self):
        error = InvalidTransition.for_state("start", LifecycleState.FINISHED)

        assert error.message == "Cannot start while finished"
        assert error.details == {"operation": "start", "state": "finished"}

    @pytest.mark.parametrize(
        "error,parent,code",
        [
            (NoPlayers("t1"), InvalidTransition, ErrorCode.NO_PLAYERS),
            (SeatOccupied(1, 2, "p1"), Conflict, ErrorCode.SEAT_OCCUPIED),
            (DuplicatePlace(3, "p2"), Conflict, ErrorCode.DUPLICATE_PLACE),
            (TournamentFull(90), CapacityExceeded, ErrorCode.TOURNAMENT_FULL),
            (AlreadyRegistered("p1", "paid"), Conflict, ErrorCode.ALREADY_REGISTERED),
            (StorageError("db down"), TournamentError, ErrorCode.STORAGE_ERROR),
        ],
    )
    def test_hierarchy_and_codes(self, error, parent, code):
        assert isinstance(error, parent)
        assert error.code == code.value

    def test_specific_details(self):
        assert SeatOccupied(1, 2, "p1").details == {
            "tableNumber": 1,
            "seatNumber": 2,
            "occupant": "p1",
        }
        assert NoPlayers("t1").details == {"tournamentId": "t1"}
