"""Database models."""

from pokerclub.models.base import Base, TimestampMixin
from pokerclub.models.tournament import (
    RegistrationRow,
    SeatAssignmentRow,
    TournamentActionRow,
    TournamentResultRow,
    TournamentRow,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # Tournament
    "TournamentRow",
    "RegistrationRow",
    "SeatAssignmentRow",
    "TournamentResultRow",
    "TournamentActionRow",
]
