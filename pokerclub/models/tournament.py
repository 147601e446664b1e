"""Tournament records for the SQL store."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from pokerclub.models.base import Base, TimestampMixin


class TournamentRow(Base, TimestampMixin):
    """One club tournament."""

    __tablename__ = "tournaments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    buy_in: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    scheduled_start: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    seats_per_table: Mapped[int] = mapped_column(Integer, nullable=False, default=10)

    lifecycle_state: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
    )

    points_mode: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    """
    {"kind": "computed", "table": {}}
    {"kind": "manual", "table": {"1": 300, "2": 200}}
    """

    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    finished_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Tournament {self.name} ({self.lifecycle_state})>"


class RegistrationRow(Base):
    """(tournament, player) registration with its payment record."""

    __tablename__ = "tournament_registrations"
    __table_args__ = (
        UniqueConstraint("tournament_id", "player_id", name="uq_registration_player"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tournament_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    player_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    registration_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="standard"
    )
    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    # Payment (manual recording only)
    payment_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payment_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_confirmed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payment_confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    finish_place: Mapped[int | None] = mapped_column(Integer, nullable=True)
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bonus_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class SeatAssignmentRow(Base):
    """Seat of one Playing player."""

    __tablename__ = "seat_assignments"
    __table_args__ = (
        UniqueConstraint(
            "tournament_id", "table_number", "seat_number", name="uq_seat_position"
        ),
        UniqueConstraint("tournament_id", "player_id", name="uq_seat_player"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tournament_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    player_id: Mapped[str] = mapped_column(String(64), nullable=False)
    table_number: Mapped[int] = mapped_column(Integer, nullable=False)
    seat_number: Mapped[int] = mapped_column(Integer, nullable=False)


class TournamentResultRow(Base):
    """Final standing, read by the season leaderboard."""

    __tablename__ = "tournament_results"
    __table_args__ = (
        UniqueConstraint("tournament_id", "player_id", name="uq_result_player"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tournament_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    player_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    finish_place: Mapped[int | None] = mapped_column(Integer, nullable=True)
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bonus_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class TournamentActionRow(Base):
    """Admin action log."""

    __tablename__ = "tournament_actions_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tournament_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    target_player_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
