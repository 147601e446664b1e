"""
Prize Points Calculation.

Every participant contributes a fixed amount to a virtual pool; finishing
places 1..15 take a percentage of it and everyone further down gets a flat
consolation value.

Example (10 participants, pool 750):
    1st: 750 * 24%  = 180
    6th: 750 * 6.6% = 49.5 -> 50

Rounding is half-up, done in Decimal so .5 boundaries are exact.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Dict

from pokerclub.utils.errors import InvalidArgument
from .models import PointsMode

POINTS_PER_PLAYER = 75
FLAT_POINTS_BEYOND_TABLE = 5

# Percent of pool per place. Does not sum to 100.
PLACE_PERCENTAGES: Dict[int, Decimal] = {
    1: Decimal("24"),
    2: Decimal("17"),
    3: Decimal("11"),
    4: Decimal("8.5"),
    5: Decimal("7.5"),
    6: Decimal("6.6"),
    7: Decimal("5.5"),
    8: Decimal("5"),
    9: Decimal("4.5"),
    10: Decimal("3"),
    11: Decimal("2"),
    12: Decimal("1.5"),
    13: Decimal("1.5"),
    14: Decimal("1.5"),
    15: Decimal("1"),
}

_ONE = Decimal("1")
_HUNDRED = Decimal("100")


class PointsCalculator:
    """Pure points function. Safe to share between tasks."""

    def __init__(
        self,
        points_per_player: int = POINTS_PER_PLAYER,
        percentages: Dict[int, Decimal] = PLACE_PERCENTAGES,
        flat_points: int = FLAT_POINTS_BEYOND_TABLE,
    ):
        self.points_per_player = points_per_player
        self.percentages = percentages
        self.flat_points = flat_points

    def pool(self, total_participants: int) -> int:
        return total_participants * self.points_per_player

    def points(self, place: int, total_participants: int) -> int:
        """
        Points for a finishing place.

        Raises:
            InvalidArgument: place or total_participants below 1
        """
        if place < 1:
            raise InvalidArgument("place must be >= 1", details={"place": place})
        if total_participants < 1:
            raise InvalidArgument(
                "total_participants must be >= 1",
                details={"total_participants": total_participants},
            )

        pct = self.percentages.get(place)
        if pct is None:
            return self.flat_points

        raw = Decimal(self.pool(total_participants)) * pct / _HUNDRED
        return int(raw.quantize(_ONE, rounding=ROUND_HALF_UP))


default_calculator = PointsCalculator()


def resolve_points(
    points_mode: PointsMode,
    place: int,
    total_participants: int,
    calculator: PointsCalculator = default_calculator,
) -> int:
    """Points from the tournament's own source: manual table or the pool."""
    if points_mode.is_manual:
        if place < 1:
            raise InvalidArgument("place must be >= 1", details={"place": place})
        return points_mode.manual_points(place)
    return calculator.points(place, total_participants)
