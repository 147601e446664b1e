"""Exception classes for tournament engine errors.

Every error carries a code for programmatic handling, a message and a
details dict. None of them are retried by the engine; the caller decides.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes."""

    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    NO_PLAYERS = "NO_PLAYERS"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    SEAT_OCCUPIED = "SEAT_OCCUPIED"
    ALREADY_SEATED = "ALREADY_SEATED"
    DUPLICATE_PLACE = "DUPLICATE_PLACE"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    TOURNAMENT_FULL = "TOURNAMENT_FULL"
    ALREADY_REGISTERED = "ALREADY_REGISTERED"
    STORAGE_ERROR = "STORAGE_ERROR"


class TournamentError(Exception):
    """Base exception for tournament engine errors.

    Attributes:
        code: Error code for programmatic handling
        message: Human readable message
        details: Additional error details
    """

    default_code = ErrorCode.CONFLICT

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        code: ErrorCode | str | None = None,
    ):
        code = code or self.default_code
        self.code = code.value if isinstance(code, ErrorCode) else code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "errorCode": self.code,
            "errorMessage": self.message,
            "details": self.details,
        }


class InvalidArgument(TournamentError):
    """Malformed input, e.g. non-positive amounts or places."""

    default_code = ErrorCode.INVALID_ARGUMENT


class InvalidTransition(TournamentError):
    """Operation not legal in the current status or lifecycle state."""

    default_code = ErrorCode.INVALID_TRANSITION

    @classmethod
    def for_state(cls, operation: str, state: Any) -> "InvalidTransition":
        value = getattr(state, "value", state)
        return cls(
            f"Cannot {operation} while {value}",
            details={"operation": operation, "state": value},
        )


class NoPlayers(InvalidTransition):
    """Raised by start when nobody has paid."""

    default_code = ErrorCode.NO_PLAYERS

    def __init__(self, tournament_id: str):
        super().__init__(
            "No paid players - cannot start tournament",
            details={"tournamentId": tournament_id},
        )


class NotFound(TournamentError):
    """Unknown tournament, player or registration."""

    default_code = ErrorCode.NOT_FOUND


class Conflict(TournamentError):
    """State conflict: seat taken, place used, capacity reached..."""

    default_code = ErrorCode.CONFLICT


class SeatOccupied(Conflict):
    default_code = ErrorCode.SEAT_OCCUPIED

    def __init__(self, table_number: int, seat_number: int, occupant: str):
        super().__init__(
            f"Seat {table_number}-{seat_number} is occupied",
            details={
                "tableNumber": table_number,
                "seatNumber": seat_number,
                "occupant": occupant,
            },
        )


class AlreadySeated(Conflict):
    default_code = ErrorCode.ALREADY_SEATED

    def __init__(self, player_id: str):
        super().__init__(
            f"Player {player_id} already has a seat",
            details={"playerId": player_id},
        )


class DuplicatePlace(Conflict):
    default_code = ErrorCode.DUPLICATE_PLACE

    def __init__(self, place: int, holder: str):
        super().__init__(
            f"Finish place {place} is already taken",
            details={"place": place, "holder": holder},
        )


class CapacityExceeded(Conflict):
    default_code = ErrorCode.CAPACITY_EXCEEDED


class TournamentFull(CapacityExceeded):
    default_code = ErrorCode.TOURNAMENT_FULL

    def __init__(self, capacity: int):
        super().__init__(
            "Tournament is full",
            details={"capacity": capacity},
        )


class AlreadyRegistered(Conflict):
    default_code = ErrorCode.ALREADY_REGISTERED

    def __init__(self, player_id: str, status: str):
        super().__init__(
            f"Player {player_id} is already registered",
            details={"playerId": player_id, "status": status},
        )


class StorageError(TournamentError):
    """Unexpected persistence failure, opaque to the caller."""

    default_code = ErrorCode.STORAGE_ERROR
