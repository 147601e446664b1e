"""
Club Tournament Lifecycle and Seat/Points Allocation Engine.

This module provides:
- Tournament state machine (registration, check-in, live play, finish)
- Registration ledger with idempotent payment recording
- Table seating and minimal-move table consolidation
- Prize points from a shared per-player pool
- Per-tournament locking (in-process or Redis) and a fire-and-forget event bus
"""

from .engine import EliminationOutcome, TournamentLifecycle
from .models import (
    ActionLogEntry,
    ActionType,
    LifecycleState,
    PaymentMethod,
    PaymentRecord,
    PointsMode,
    Registration,
    RegistrationStatus,
    RegistrationType,
    Seat,
    Tournament,
    TournamentEvent,
    TournamentEventType,
    TournamentResult,
    TournamentSnapshot,
)
from .points import PointsCalculator, resolve_points
from .seating import RebalancePlan, SeatingAllocator, SeatMove
from .ledger import RegistrationLedger
from .stats import StatsProjector, TournamentStats
from .store import InMemoryTournamentStore, TournamentStore
from .directory import InMemoryPlayerDirectory, PlayerDirectory, PlayerProfile
from .event_bus import TournamentEventBus
from .distributed_lock import DistributedLockManager, LocalLockManager, LockType

__all__ = [
    "TournamentLifecycle",
    "EliminationOutcome",
    "ActionLogEntry",
    "ActionType",
    "LifecycleState",
    "PaymentMethod",
    "PaymentRecord",
    "PointsMode",
    "Registration",
    "RegistrationStatus",
    "RegistrationType",
    "Seat",
    "Tournament",
    "TournamentEvent",
    "TournamentEventType",
    "TournamentResult",
    "TournamentSnapshot",
    "PointsCalculator",
    "resolve_points",
    "RebalancePlan",
    "SeatingAllocator",
    "SeatMove",
    "RegistrationLedger",
    "StatsProjector",
    "TournamentStats",
    "InMemoryTournamentStore",
    "TournamentStore",
    "InMemoryPlayerDirectory",
    "PlayerDirectory",
    "PlayerProfile",
    "TournamentEventBus",
    "DistributedLockManager",
    "LocalLockManager",
    "LockType",
]
