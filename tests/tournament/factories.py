"""Helpers that drive a tournament into a given state."""

from typing import List, Optional, Tuple

from pokerclub.tournament.engine import TournamentLifecycle


def player_ids(count: int, prefix: str = "p") -> List[str]:
    return [f"{prefix}{i:02d}" for i in range(1, count + 1)]


async def checked_in_tournament(
    lifecycle: TournamentLifecycle,
    players: int,
    paid: Optional[int] = None,
    capacity: Optional[int] = None,
    seats_per_table: int = 10,
) -> Tuple[str, List[str]]:
    """Tournament in CheckIn with `players` registered, the first `paid` paid."""
    tournament = await lifecycle.create_tournament(
        "Friday Freezeout",
        capacity=capacity or max(players, 1),
        buy_in=50,
        seats_per_table=seats_per_table,
    )
    tid = tournament.tournament_id
    await lifecycle.open_registration(tid)

    ids = player_ids(players)
    for player_id in ids:
        await lifecycle.register(tid, player_id)

    paid = players if paid is None else paid
    for player_id in ids[:paid]:
        await lifecycle.confirm_payment(tid, player_id, 50, "cash")

    await lifecycle.start_check_in(tid)
    return tid, ids


async def started_tournament(
    lifecycle: TournamentLifecycle,
    players: int,
    seats_per_table: int = 10,
) -> Tuple[str, List[str]]:
    tid, ids = await checked_in_tournament(
        lifecycle, players, seats_per_table=seats_per_table
    )
    await lifecycle.start(tid)
    return tid, ids
