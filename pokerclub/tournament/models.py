"""
Tournament Data Models.

Immutable state representations for tournament entities.
All mutations go through the TournamentLifecycle; the ledger and the seating
allocator only ever swap whole values inside a TournamentSnapshot.
"""

from enum import Enum, auto
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple
from uuid import uuid4
import json

from pokerclub.utils.errors import InvalidArgument


# A table needs at least two players
MIN_SEATS_PER_TABLE = 2


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LifecycleState(str, Enum):
    """Tournament lifecycle states."""

    UPCOMING = "upcoming"
    REGISTRATION_OPEN = "registration_open"
    CHECK_IN = "check_in"
    STARTED = "started"
    FINISHED = "finished"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (LifecycleState.FINISHED, LifecycleState.CANCELLED)


class RegistrationStatus(str, Enum):
    """Per-player status inside one tournament."""

    REGISTERED = "registered"
    PAID = "paid"
    NO_SHOW = "no_show"
    PLAYING = "playing"
    ELIMINATED = "eliminated"


class RegistrationType(str, Enum):
    STANDARD = "standard"
    ONSITE = "onsite"  # registered and paid at the check-in desk
    LATE = "late"  # joined after start


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"


class PointsModeKind(str, Enum):
    COMPUTED = "computed"
    MANUAL = "manual"


class TournamentEventType(Enum):
    """Event types for the tournament event sink."""

    # Lifecycle
    TOURNAMENT_CREATED = auto()
    TOURNAMENT_UPDATED = auto()
    REGISTRATION_OPENED = auto()
    CHECK_IN_STARTED = auto()
    TOURNAMENT_STARTED = auto()
    TOURNAMENT_START_CANCELLED = auto()
    TOURNAMENT_FINISHED = auto()
    TOURNAMENT_ABORTED = auto()
    TOURNAMENT_DELETED = auto()

    # Player
    PLAYER_REGISTERED = auto()
    PLAYER_UNREGISTERED = auto()
    PAYMENT_CONFIRMED = auto()
    PLAYER_NO_SHOW = auto()
    PLAYER_RESTORED = auto()
    PLAYER_SEATED = auto()
    PLAYER_ELIMINATED = auto()
    BONUS_AWARDED = auto()

    # Table
    TABLES_REBALANCED = auto()


class ActionType(str, Enum):
    """Admin action log entries."""

    UPDATE_TOURNAMENT = "update_tournament"
    OPEN_REGISTRATION = "open_registration"
    START_CHECK_IN = "start_check_in"
    REGISTER = "register"
    UNREGISTER = "unregister"
    ONSITE_REGISTRATION = "onsite_registration"
    LATE_REGISTRATION = "late_registration"
    CONFIRM_PAYMENT = "confirm_payment"
    MARK_NO_SHOW = "mark_no_show"
    RESTORE_PLAYER = "restore_player"
    START_TOURNAMENT = "start_tournament"
    ASSIGN_SEAT = "assign_seat"
    ELIMINATE_PLAYER = "eliminate_player"
    ADD_BONUS = "add_bonus"
    REBALANCE_TABLES = "rebalance_tables"
    SET_POINTS_MODE = "set_points_mode"
    FINISH_TOURNAMENT = "finish_tournament"
    CANCEL_TOURNAMENT = "cancel_tournament"
    ABORT_TOURNAMENT = "abort_tournament"


@dataclass(frozen=True)
class PointsMode:
    """
    Per-tournament points source.

    COMPUTED uses the pool percentage table; MANUAL uses an operator-entered
    place -> points table. Validated on construction.
    """

    kind: PointsModeKind = PointsModeKind.COMPUTED
    table: Tuple[Tuple[int, int], ...] = ()

    def __post_init__(self) -> None:
        if self.kind == PointsModeKind.COMPUTED:
            if self.table:
                raise InvalidArgument("Computed points mode takes no table")
            return

        if not self.table:
            raise InvalidArgument("Manual points mode needs at least one place")

        seen = set()
        for place, points in self.table:
            if isinstance(place, bool) or not isinstance(place, int) or place < 1:
                raise InvalidArgument(
                    f"Invalid place in points table: {place!r}",
                    details={"place": place},
                )
            if isinstance(points, bool) or not isinstance(points, int) or points < 0:
                raise InvalidArgument(
                    f"Invalid points for place {place}: {points!r}",
                    details={"place": place, "points": points},
                )
            if place in seen:
                raise InvalidArgument(
                    f"Place {place} appears twice in points table",
                    details={"place": place},
                )
            seen.add(place)

    @classmethod
    def computed(cls) -> "PointsMode":
        return cls(kind=PointsModeKind.COMPUTED)

    @classmethod
    def manual(cls, table: Mapping[int, int]) -> "PointsMode":
        return cls(
            kind=PointsModeKind.MANUAL,
            table=tuple(sorted(table.items())),
        )

    @property
    def is_manual(self) -> bool:
        return self.kind == PointsModeKind.MANUAL

    def manual_points(self, place: int) -> int:
        """Points for place from the manual table; unlisted places get 0."""
        return dict(self.table).get(place, 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "table": {str(place): points for place, points in self.table},
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "PointsMode":
        if not data or data.get("kind", "computed") == PointsModeKind.COMPUTED.value:
            return cls.computed()
        return cls.manual({int(k): v for k, v in data.get("table", {}).items()})


@dataclass(frozen=True, order=True)
class Seat:
    """(table_number, seat_number) coordinate, both 1-based."""

    table_number: int
    seat_number: int

    def to_dict(self) -> Dict[str, int]:
        return {"table_number": self.table_number, "seat_number": self.seat_number}


@dataclass(frozen=True)
class Tournament:
    """
    Tournament metadata and lifecycle state - immutable.

    Owned by the TournamentLifecycle; changed only through its transitions.
    """

    tournament_id: str = field(default_factory=lambda: str(uuid4()))
    name: str = "Tournament"
    capacity: int = 90
    buy_in: Decimal = Decimal("0")
    scheduled_start: Optional[datetime] = None
    seats_per_table: int = 10
    lifecycle_state: LifecycleState = LifecycleState.UPCOMING
    points_mode: PointsMode = field(default_factory=PointsMode.computed)

    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise InvalidArgument("capacity must be >= 1", {"capacity": self.capacity})
        if self.seats_per_table < MIN_SEATS_PER_TABLE:
            raise InvalidArgument(
                f"seats_per_table must be >= {MIN_SEATS_PER_TABLE}",
                {"seats_per_table": self.seats_per_table},
            )
        if self.buy_in < 0:
            raise InvalidArgument("buy_in must be >= 0", {"buy_in": str(self.buy_in)})

    def with_state(self, state: LifecycleState, **changes: Any) -> "Tournament":
        return replace(self, lifecycle_state=state, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tournament_id": self.tournament_id,
            "name": self.name,
            "capacity": self.capacity,
            "buy_in": str(self.buy_in),
            "scheduled_start": self.scheduled_start.isoformat()
            if self.scheduled_start
            else None,
            "seats_per_table": self.seats_per_table,
            "lifecycle_state": self.lifecycle_state.value,
            "points_mode": self.points_mode.to_dict(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass(frozen=True)
class PaymentRecord:
    """Manually recorded payment (cash, card or transfer)."""

    amount: Decimal
    method: PaymentMethod
    notes: Optional[str] = None
    confirmed_by: Optional[str] = None
    confirmed_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": str(self.amount),
            "method": self.method.value,
            "notes": self.notes,
            "confirmed_by": self.confirmed_by,
            "confirmed_at": self.confirmed_at.isoformat(),
        }


@dataclass(frozen=True)
class Registration:
    """
    (tournament, player) registration - immutable.

    Exactly one per pair. finish_place is only set while ELIMINATED.
    """

    tournament_id: str
    player_id: str
    status: RegistrationStatus = RegistrationStatus.REGISTERED
    registration_type: RegistrationType = RegistrationType.STANDARD
    registered_at: datetime = field(default_factory=utcnow)

    payment: Optional[PaymentRecord] = None
    finish_place: Optional[int] = None
    points_earned: int = 0
    bonus_points: int = 0

    @property
    def total_points(self) -> int:
        return self.points_earned + self.bonus_points

    @property
    def is_active(self) -> bool:
        return self.status == RegistrationStatus.PLAYING

    def with_status(self, status: RegistrationStatus, **changes: Any) -> "Registration":
        return replace(self, status=status, **changes)

    def eliminated(self, place: int, points: int) -> "Registration":
        return replace(
            self,
            status=RegistrationStatus.ELIMINATED,
            finish_place=place,
            points_earned=points,
        )

    def with_bonus(self, amount: int) -> "Registration":
        return replace(self, bonus_points=self.bonus_points + amount)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player_id": self.player_id,
            "status": self.status.value,
            "registration_type": self.registration_type.value,
            "registered_at": self.registered_at.isoformat(),
            "payment": self.payment.to_dict() if self.payment else None,
            "finish_place": self.finish_place,
            "points_earned": self.points_earned,
            "bonus_points": self.bonus_points,
            "total_points": self.total_points,
        }


@dataclass(frozen=True)
class TournamentResult:
    """Final standing row, the tournament-history record."""

    tournament_id: str
    player_id: str
    finish_place: Optional[int]
    points_earned: int
    bonus_points: int

    @property
    def total_points(self) -> int:
        return self.points_earned + self.bonus_points

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player_id": self.player_id,
            "finish_place": self.finish_place,
            "points_earned": self.points_earned,
            "bonus_points": self.bonus_points,
            "total_points": self.total_points,
        }


@dataclass(frozen=True)
class ActionLogEntry:
    """Who did what to which player."""

    tournament_id: str
    action_type: ActionType
    actor_id: Optional[str] = None
    target_player_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_type": self.action_type.value,
            "actor_id": self.actor_id,
            "target_player_id": self.target_player_id,
            "details": self.details,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class TournamentEvent:
    """
    Domain event for the event sink.

    Consumed by notification and leaderboard systems outside the engine.
    """

    event_id: str = field(default_factory=lambda: str(uuid4()))
    event_type: TournamentEventType = TournamentEventType.TOURNAMENT_CREATED
    tournament_id: str = ""
    timestamp: datetime = field(default_factory=utcnow)

    data: Dict[str, Any] = field(default_factory=dict)
    player_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.name,
            "tournament_id": self.tournament_id,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
            "player_id": self.player_id,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


@dataclass
class TournamentSnapshot:
    """
    Everything the engine knows about one tournament at one instant.

    The lifecycle works on a copy inside the lock and hands the whole copy
    back to the store, so a failed command never leaves a partial write.
    """

    tournament: Tournament
    registrations: Dict[str, Registration] = field(default_factory=dict)
    seating: Dict[str, Seat] = field(default_factory=dict)

    @property
    def tournament_id(self) -> str:
        return self.tournament.tournament_id

    def copy(self) -> "TournamentSnapshot":
        return TournamentSnapshot(
            tournament=self.tournament,
            registrations=dict(self.registrations),
            seating=dict(self.seating),
        )

    def players_with(self, *statuses: RegistrationStatus) -> List[str]:
        return [
            player_id
            for player_id, reg in self.registrations.items()
            if reg.status in statuses
        ]

    @property
    def active_players(self) -> List[str]:
        return self.players_with(RegistrationStatus.PLAYING)
