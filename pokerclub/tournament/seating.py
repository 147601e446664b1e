"""
Table Seating and Rebalancing.

Seat coordinates only: (table_number, seat_number), both 1-based. Physical
layout of the room is not modelled.

Invariants kept by every operation:
1. At most one active player per (table, seat)
2. Every active player has exactly one seat
3. Rebalance never moves a player who sits on a retained table
"""

import math
import random
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Set

from pokerclub.utils.errors import AlreadySeated, InvalidArgument, SeatOccupied
from .models import MIN_SEATS_PER_TABLE, Seat


@dataclass(frozen=True)
class SeatMove:
    """Single player move instruction."""

    player_id: str
    from_seat: Seat
    to_seat: Seat

    def to_dict(self) -> Dict:
        return {
            "player_id": self.player_id,
            "from_table": self.from_seat.table_number,
            "from_seat": self.from_seat.seat_number,
            "to_table": self.to_seat.table_number,
            "to_seat": self.to_seat.seat_number,
        }


@dataclass
class RebalancePlan:
    """Moves needed to consolidate tables. Only players who move appear."""

    moves: List[SeatMove] = field(default_factory=list)
    tables_closed: List[int] = field(default_factory=list)
    released: List[str] = field(default_factory=list)  # eliminated, seat given up

    @property
    def total_moves(self) -> int:
        return len(self.moves)

    @property
    def is_empty(self) -> bool:
        return not (self.moves or self.tables_closed or self.released)

    def apply(self, seating: Mapping[str, Seat]) -> Dict[str, Seat]:
        updated = {p: s for p, s in seating.items() if p not in self.released}
        for move in self.moves:
            updated[move.player_id] = move.to_seat
        return updated

    def to_dict(self) -> Dict:
        return {
            "total_moves": self.total_moves,
            "tables_closed": list(self.tables_closed),
            "moves": [m.to_dict() for m in self.moves],
        }


def _check_seats_per_table(seats_per_table: int) -> None:
    if seats_per_table < MIN_SEATS_PER_TABLE:
        raise InvalidArgument(
            f"seats_per_table must be >= {MIN_SEATS_PER_TABLE}",
            details={"seats_per_table": seats_per_table},
        )


class SeatingAllocator:
    """
    Seat assignment engine.

    Random order comes from an injectable random.Random so tests can pin it.
    All methods are pure with respect to their inputs: they return new
    mappings or plans and never modify the seating passed in.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def assign_initial(
        self,
        players: Iterable[str],
        seats_per_table: int = 10,
    ) -> Dict[str, Seat]:
        """
        Seat players from scratch.

        Players are shuffled once, then fill table 1 seats 1..S, table 2, and
        so on, which leaves at most one partially filled table.
        """
        _check_seats_per_table(seats_per_table)

        order = list(players)
        if len(set(order)) != len(order):
            raise InvalidArgument("Duplicate player in seating request")
        self.rng.shuffle(order)

        return {
            player_id: Seat(
                table_number=index // seats_per_table + 1,
                seat_number=index % seats_per_table + 1,
            )
            for index, player_id in enumerate(order)
        }

    def tables_needed(self, active_count: int, seats_per_table: int) -> int:
        _check_seats_per_table(seats_per_table)
        return math.ceil(active_count / seats_per_table)

    def rebalance(
        self,
        seating: Mapping[str, Seat],
        eliminated: Iterable[str] = (),
        seats_per_table: int = 10,
    ) -> RebalancePlan:
        """
        Consolidate onto fewer tables when the field has shrunk.

        Keeps the lowest-numbered occupied tables, closes the rest and moves
        their occupants, in shuffled order, into the free seats of the kept
        tables taken in (table, seat) order.
        """
        _check_seats_per_table(seats_per_table)

        gone: Set[str] = set(eliminated)
        active = {p: s for p, s in seating.items() if p not in gone}
        released = sorted(p for p in seating if p in gone)

        occupied_tables = sorted({seat.table_number for seat in active.values()})
        needed = self.tables_needed(len(active), seats_per_table)
        if needed >= len(occupied_tables):
            return RebalancePlan(released=released)

        retained = occupied_tables[:needed]
        closed = occupied_tables[needed:]
        closed_set = set(closed)

        displaced = sorted(
            (p for p, s in active.items() if s.table_number in closed_set),
            key=lambda p: active[p],
        )
        self.rng.shuffle(displaced)

        taken = {s for s in active.values() if s.table_number not in closed_set}
        free_seats = [
            Seat(table, seat)
            for table in retained
            for seat in range(1, seats_per_table + 1)
            if Seat(table, seat) not in taken
        ]

        moves = [
            SeatMove(player_id=player_id, from_seat=active[player_id], to_seat=target)
            for player_id, target in zip(displaced, free_seats)
        ]
        return RebalancePlan(moves=moves, tables_closed=closed, released=released)

    def late_seat(
        self,
        seating: Mapping[str, Seat],
        player_id: str,
        table_number: int,
        seat_number: int,
        seats_per_table: int = 10,
    ) -> Dict[str, Seat]:
        """
        Put one player on a chosen seat.

        Raises:
            InvalidArgument: seat outside 1..seats_per_table or table < 1
            AlreadySeated: player already has a seat
            SeatOccupied: another active player sits there
        """
        _check_seats_per_table(seats_per_table)
        if table_number < 1:
            raise InvalidArgument(
                "table_number must be >= 1", details={"table_number": table_number}
            )
        if not 1 <= seat_number <= seats_per_table:
            raise InvalidArgument(
                f"seat_number must be between 1 and {seats_per_table}",
                details={"seat_number": seat_number},
            )
        if player_id in seating:
            raise AlreadySeated(player_id)

        target = Seat(table_number, seat_number)
        for occupant, seat in seating.items():
            if seat == target:
                raise SeatOccupied(table_number, seat_number, occupant)

        updated = dict(seating)
        updated[player_id] = target
        return updated

    def find_free_seat(
        self,
        seating: Mapping[str, Seat],
        seats_per_table: int = 10,
    ) -> Seat:
        """
        First free seat on an occupied table, tables ascending.

        With every occupied table full, seat 1 of the lowest table number
        not in use.
        """
        _check_seats_per_table(seats_per_table)

        taken = set(seating.values())
        tables = sorted({seat.table_number for seat in taken})
        for table in tables:
            for seat in range(1, seats_per_table + 1):
                if Seat(table, seat) not in taken:
                    return Seat(table, seat)

        table = 1
        while table in tables:
            table += 1
        return Seat(table, 1)
