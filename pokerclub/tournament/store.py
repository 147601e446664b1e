"""
Tournament persistence contract and in-memory store.

A store keeps one TournamentSnapshot per tournament plus two append-only
histories: the admin action log and the final results. save() writes all
three in one atomic unit.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from pokerclub.utils.errors import Conflict, NotFound
from .models import ActionLogEntry, Tournament, TournamentResult, TournamentSnapshot


def tournament_not_found(tournament_id: str) -> NotFound:
    return NotFound(
        f"Tournament {tournament_id} not found",
        details={"tournamentId": tournament_id},
    )


class TournamentStore(ABC):
    """Persistence Store contract used by TournamentLifecycle."""

    @abstractmethod
    async def create(self, snapshot: TournamentSnapshot) -> None:
        """Insert a new tournament. Conflict if the id exists."""

    @abstractmethod
    async def load(self, tournament_id: str) -> TournamentSnapshot:
        """Last committed snapshot. NotFound if unknown."""

    @abstractmethod
    async def save(
        self,
        snapshot: TournamentSnapshot,
        actions: Sequence[ActionLogEntry] = (),
        results: Optional[Sequence[TournamentResult]] = None,
    ) -> None:
        """
        Replace the tournament's state with snapshot, append actions and,
        when results is given, replace its results history. All or nothing.
        """

    @abstractmethod
    async def delete(self, tournament_id: str) -> None:
        """Remove the tournament and everything under it."""

    @abstractmethod
    async def list_tournaments(self) -> List[Tournament]:
        ...

    @abstractmethod
    async def list_results(self, tournament_id: str) -> List[TournamentResult]:
        ...

    @abstractmethod
    async def list_actions(self, tournament_id: str) -> List[ActionLogEntry]:
        ...


class InMemoryTournamentStore(TournamentStore):
    """
    Dict-backed store for tests and single-process use.

    Snapshots are copied in and out, so callers never share mutable state
    with the store.
    """

    def __init__(self) -> None:
        self._snapshots: Dict[str, TournamentSnapshot] = {}
        self._actions: Dict[str, List[ActionLogEntry]] = {}
        self._results: Dict[str, List[TournamentResult]] = {}

    async def create(self, snapshot: TournamentSnapshot) -> None:
        tournament_id = snapshot.tournament_id
        if tournament_id in self._snapshots:
            raise Conflict(
                f"Tournament {tournament_id} already exists",
                details={"tournamentId": tournament_id},
            )
        self._snapshots[tournament_id] = snapshot.copy()
        self._actions[tournament_id] = []
        self._results[tournament_id] = []

    async def load(self, tournament_id: str) -> TournamentSnapshot:
        snapshot = self._snapshots.get(tournament_id)
        if snapshot is None:
            raise tournament_not_found(tournament_id)
        return snapshot.copy()

    async def save(
        self,
        snapshot: TournamentSnapshot,
        actions: Sequence[ActionLogEntry] = (),
        results: Optional[Sequence[TournamentResult]] = None,
    ) -> None:
        tournament_id = snapshot.tournament_id
        if tournament_id not in self._snapshots:
            raise tournament_not_found(tournament_id)

        self._snapshots[tournament_id] = snapshot.copy()
        self._actions[tournament_id].extend(actions)
        if results is not None:
            self._results[tournament_id] = list(results)

    async def delete(self, tournament_id: str) -> None:
        if tournament_id not in self._snapshots:
            raise tournament_not_found(tournament_id)
        del self._snapshots[tournament_id]
        self._actions.pop(tournament_id, None)
        self._results.pop(tournament_id, None)

    async def list_tournaments(self) -> List[Tournament]:
        return [s.tournament for s in self._snapshots.values()]

    async def list_results(self, tournament_id: str) -> List[TournamentResult]:
        if tournament_id not in self._snapshots:
            raise tournament_not_found(tournament_id)
        return list(self._results[tournament_id])

    async def list_actions(self, tournament_id: str) -> List[ActionLogEntry]:
        if tournament_id not in self._snapshots:
            raise tournament_not_found(tournament_id)
        return list(self._actions[tournament_id])
