"""Player Directory: read-only identity lookup used by the lifecycle."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from pokerclub.utils.errors import NotFound


@dataclass(frozen=True)
class PlayerProfile:
    player_id: str
    display_name: str
    avatar: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "player_id": self.player_id,
            "display_name": self.display_name,
            "avatar": self.avatar,
        }


class PlayerDirectory(ABC):
    @abstractmethod
    async def get_player(self, player_id: str) -> PlayerProfile:
        """Profile for player_id. NotFound if unknown."""


class InMemoryPlayerDirectory(PlayerDirectory):
    def __init__(self, players: Iterable[PlayerProfile] = ()):
        self._players: Dict[str, PlayerProfile] = {p.player_id: p for p in players}

    def add(self, profile: PlayerProfile) -> None:
        self._players[profile.player_id] = profile

    async def get_player(self, player_id: str) -> PlayerProfile:
        profile = self._players.get(player_id)
        if profile is None:
            raise NotFound(
                f"Player {player_id} not found", details={"playerId": player_id}
            )
        return profile
