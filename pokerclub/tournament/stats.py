"""
Tournament statistics projection.

Read-only aggregates over one committed snapshot: status counts, table
occupancy, leaderboard contribution rows and payment totals. Nothing here is
stored; every read recomputes from the snapshot it is given.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .models import (
    LifecycleState,
    PaymentMethod,
    RegistrationStatus,
    TournamentSnapshot,
)


@dataclass(frozen=True)
class TableOccupancy:
    table_number: int
    seats: int
    players: List[str] = field(default_factory=list)

    @property
    def occupied(self) -> int:
        return len(self.players)

    @property
    def free(self) -> int:
        return self.seats - self.occupied

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table_number": self.table_number,
            "seats": self.seats,
            "occupied": self.occupied,
            "free": self.free,
            "players": list(self.players),
        }


@dataclass(frozen=True)
class LeaderboardRow:
    """Contribution of one participant to the season leaderboard."""

    player_id: str
    finish_place: Optional[int]
    points_earned: int
    bonus_points: int
    total_points: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player_id": self.player_id,
            "finish_place": self.finish_place,
            "points_earned": self.points_earned,
            "bonus_points": self.bonus_points,
            "total_points": self.total_points,
        }


@dataclass(frozen=True)
class PaymentStats:
    count: int = 0
    total_amount: Decimal = Decimal("0")
    by_method: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "total_amount": str(self.total_amount),
            "by_method": {
                method: {"count": v["count"], "amount": str(v["amount"])}
                for method, v in self.by_method.items()
            },
        }


@dataclass(frozen=True)
class TournamentStats:
    tournament_id: str
    lifecycle_state: LifecycleState
    capacity: int
    counts: Dict[RegistrationStatus, int]
    tables: List[TableOccupancy]
    leaderboard: List[LeaderboardRow]
    payments: PaymentStats

    @property
    def total_registrations(self) -> int:
        return sum(self.counts.values())

    @property
    def active_players(self) -> int:
        return self.counts[RegistrationStatus.PLAYING]

    @property
    def occupied_seats(self) -> int:
        return sum(t.occupied for t in self.tables)

    @property
    def free_seats(self) -> int:
        return sum(t.free for t in self.tables)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tournament_id": self.tournament_id,
            "lifecycle_state": self.lifecycle_state.value,
            "capacity": self.capacity,
            "total_registrations": self.total_registrations,
            "counts": {status.value: n for status, n in self.counts.items()},
            "tables": [t.to_dict() for t in self.tables],
            "occupied_seats": self.occupied_seats,
            "free_seats": self.free_seats,
            "leaderboard": [row.to_dict() for row in self.leaderboard],
            "payments": self.payments.to_dict(),
        }


class StatsProjector:
    """Pure projection from a snapshot to TournamentStats."""

    PAID_STATUSES = (
        RegistrationStatus.PAID,
        RegistrationStatus.PLAYING,
        RegistrationStatus.ELIMINATED,
    )

    def project(self, snapshot: TournamentSnapshot) -> TournamentStats:
        return TournamentStats(
            tournament_id=snapshot.tournament_id,
            lifecycle_state=snapshot.tournament.lifecycle_state,
            capacity=snapshot.tournament.capacity,
            counts=self.status_counts(snapshot),
            tables=self.table_occupancy(snapshot),
            leaderboard=self.leaderboard(snapshot),
            payments=self.payment_stats(snapshot),
        )

    def status_counts(self, snapshot: TournamentSnapshot) -> Dict[RegistrationStatus, int]:
        counts = {status: 0 for status in RegistrationStatus}
        for registration in snapshot.registrations.values():
            counts[registration.status] += 1
        return counts

    def table_occupancy(self, snapshot: TournamentSnapshot) -> List[TableOccupancy]:
        by_table: Dict[int, List[tuple]] = defaultdict(list)
        for player_id, seat in snapshot.seating.items():
            by_table[seat.table_number].append((seat.seat_number, player_id))

        seats = snapshot.tournament.seats_per_table
        return [
            TableOccupancy(
                table_number=table,
                seats=seats,
                players=[player_id for _, player_id in sorted(by_table[table])],
            )
            for table in sorted(by_table)
        ]

    def leaderboard(self, snapshot: TournamentSnapshot) -> List[LeaderboardRow]:
        """
        Rows for everyone who played.

        Players still in play come first, then finishing places ascending.
        """
        rows = [
            LeaderboardRow(
                player_id=reg.player_id,
                finish_place=reg.finish_place,
                points_earned=reg.points_earned,
                bonus_points=reg.bonus_points,
                total_points=reg.total_points,
            )
            for reg in snapshot.registrations.values()
            if reg.status
            in (RegistrationStatus.PLAYING, RegistrationStatus.ELIMINATED)
        ]
        rows.sort(
            key=lambda r: (
                r.finish_place is not None,
                r.finish_place or 0,
                -r.total_points,
                r.player_id,
            )
        )
        return rows

    def payment_stats(self, snapshot: TournamentSnapshot) -> PaymentStats:
        by_method: Dict[str, Dict[str, Any]] = {
            method.value: {"count": 0, "amount": Decimal("0")}
            for method in PaymentMethod
        }
        count = 0
        total = Decimal("0")
        for registration in snapshot.registrations.values():
            payment = registration.payment
            if payment is None or registration.status not in self.PAID_STATUSES:
                continue
            count += 1
            total += payment.amount
            bucket = by_method[payment.method.value]
            bucket["count"] += 1
            bucket["amount"] += payment.amount

        return PaymentStats(count=count, total_amount=total, by_method=by_method)
