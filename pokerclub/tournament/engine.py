"""
Tournament Lifecycle Engine.

Drives one club tournament through its states and owns every mutation of
its registrations and seating:

    Upcoming --open_registration--> RegistrationOpen --start_check_in--> CheckIn
    CheckIn --start--> Started --finish / last elimination--> Finished
    Started --cancel--> Upcoming
    Upcoming/RegistrationOpen/CheckIn --abort--> Cancelled
    Upcoming --delete--> (removed)

Before the start the settings can be edited (update_tournament) and players
can withdraw (unregister).

Concurrency:
- Every command runs under the tournament's lock: load snapshot, mutate a
  private copy, save once. An exception anywhere before the save leaves
  the stored tournament untouched.
- Events are collected during the command and published after the lock is
  released. Event delivery failures are logged and never fail the command.
- Queries read the last committed snapshot without taking the lock.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union

from pokerclub.config import Settings, get_settings
from pokerclub.logging_config import get_logger
from pokerclub.utils.errors import (
    CapacityExceeded,
    InvalidArgument,
    InvalidTransition,
    NoPlayers,
)
from .directory import PlayerDirectory
from .distributed_lock import DistributedLockManager, LocalLockManager, LockType
from .event_bus import TournamentEventBus
from .ledger import RegistrationLedger
from .models import (
    ActionLogEntry,
    ActionType,
    LifecycleState,
    PaymentMethod,
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
    utcnow,
)
from .points import PointsCalculator, default_calculator
from .seating import RebalancePlan, SeatingAllocator
from .stats import StatsProjector, TournamentStats
from .store import TournamentStore

logger = get_logger(__name__)

Amount = Union[Decimal, int, float, str]

PRE_START_STATES = (
    LifecycleState.UPCOMING,
    LifecycleState.REGISTRATION_OPEN,
    LifecycleState.CHECK_IN,
)
REGISTRATION_STATES = (LifecycleState.REGISTRATION_OPEN, LifecycleState.CHECK_IN)
PAYMENT_STATES = REGISTRATION_STATES + (LifecycleState.STARTED,)


def _parse_buy_in(buy_in: Amount) -> Decimal:
    try:
        return Decimal(str(buy_in))
    except InvalidOperation:
        raise InvalidArgument(f"Invalid buy-in: {buy_in!r}") from None


@dataclass
class EliminationOutcome:
    """Result of eliminate_or_finish."""

    eliminated: Registration
    finished: bool = False
    winner: Optional[Registration] = None
    results: List[TournamentResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eliminated": self.eliminated.to_dict(),
            "finished": self.finished,
            "winner": self.winner.to_dict() if self.winner else None,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class _UnitOfWork:
    """Working copy of one tournament for the duration of one command."""

    snapshot: TournamentSnapshot
    ledger: RegistrationLedger
    actor_id: Optional[str] = None
    actions: List[ActionLogEntry] = field(default_factory=list)
    events: List[TournamentEvent] = field(default_factory=list)
    results: Optional[List[TournamentResult]] = None

    @property
    def tournament(self) -> Tournament:
        return self.snapshot.tournament

    @property
    def state(self) -> LifecycleState:
        return self.snapshot.tournament.lifecycle_state

    def require(self, operation: str, *states: LifecycleState) -> None:
        if self.state not in states:
            raise InvalidTransition.for_state(operation, self.state)

    def require_live(self, operation: str) -> None:
        if self.state.is_terminal:
            raise InvalidTransition.for_state(operation, self.state)

    def transition(self, state: LifecycleState, **changes: Any) -> Tournament:
        self.snapshot.tournament = self.snapshot.tournament.with_state(state, **changes)
        return self.snapshot.tournament

    def log(
        self,
        action_type: ActionType,
        player_id: Optional[str] = None,
        **details: Any,
    ) -> None:
        self.actions.append(
            ActionLogEntry(
                tournament_id=self.snapshot.tournament_id,
                action_type=action_type,
                actor_id=self.actor_id,
                target_player_id=player_id,
                details=details,
            )
        )

    def emit(
        self,
        event_type: TournamentEventType,
        player_id: Optional[str] = None,
        **data: Any,
    ) -> None:
        self.events.append(
            TournamentEvent(
                event_type=event_type,
                tournament_id=self.snapshot.tournament_id,
                player_id=player_id,
                data=data,
            )
        )


class TournamentLifecycle:
    """
    Command and query surface of the engine.

    Collaborators:
    - store: TournamentStore (snapshot persistence)
    - lock_manager: LocalLockManager or DistributedLockManager
    - event_bus: TournamentEventBus (fire-and-forget)
    - directory: optional PlayerDirectory; when set, registration checks
      that the player exists before taking the lock
    """

    def __init__(
        self,
        store: TournamentStore,
        lock_manager: Optional[Union[LocalLockManager, DistributedLockManager]] = None,
        event_bus: Optional[TournamentEventBus] = None,
        directory: Optional[PlayerDirectory] = None,
        allocator: Optional[SeatingAllocator] = None,
        calculator: PointsCalculator = default_calculator,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.lock_manager = lock_manager or LocalLockManager(
            self.settings.lock_acquire_timeout_ms
        )
        self.event_bus = event_bus or TournamentEventBus()
        self.directory = directory
        self.allocator = allocator or SeatingAllocator()
        self.calculator = calculator
        self.projector = StatsProjector()

    @classmethod
    def from_settings(
        cls,
        store: TournamentStore,
        settings: Optional[Settings] = None,
        redis_client=None,
        directory: Optional[PlayerDirectory] = None,
    ) -> "TournamentLifecycle":
        """Wire lock manager and event bus according to settings."""
        settings = settings or get_settings()
        if settings.lock_backend == "redis":
            if redis_client is None:
                raise InvalidArgument("redis lock backend needs a redis client")
            lock_manager = DistributedLockManager(
                redis_client,
                default_lock_timeout_ms=settings.lock_timeout_ms,
                default_acquire_timeout_ms=settings.lock_acquire_timeout_ms,
            )
        else:
            lock_manager = LocalLockManager(settings.lock_acquire_timeout_ms)

        event_bus = TournamentEventBus(
            redis_client,
            stream_key=settings.event_stream_key,
            stream_max_len=settings.event_stream_max_len,
        )
        return cls(
            store,
            lock_manager=lock_manager,
            event_bus=event_bus,
            directory=directory,
            settings=settings,
        )

    # =========================================================================
    # Unit of work plumbing
    # =========================================================================

    async def _begin(self, tournament_id: str, actor_id: Optional[str]) -> _UnitOfWork:
        snapshot = await self.store.load(tournament_id)
        return _UnitOfWork(
            snapshot=snapshot,
            ledger=RegistrationLedger(snapshot, self.calculator),
            actor_id=actor_id,
        )

    async def _commit(self, work: _UnitOfWork) -> None:
        await self.store.save(work.snapshot, work.actions, work.results)

    async def _publish(self, events: List[TournamentEvent]) -> None:
        """Deliver collected events in order. Never raises."""
        if not events:
            return
        try:
            await self.event_bus.publish_batch(events)
        except Exception as e:
            logger.exception(
                "event_publish_failed",
                tournament_id=events[0].tournament_id,
                event_types=[event.event_type.name for event in events],
                error=str(e),
            )

    async def _check_player(self, player_id: str) -> None:
        if not player_id:
            raise InvalidArgument("player_id is required")
        if self.directory is not None:
            await self.directory.get_player(player_id)

    # =========================================================================
    # Tournament Lifecycle
    # =========================================================================

    async def create_tournament(
        self,
        name: str,
        capacity: Optional[int] = None,
        buy_in: Amount = 0,
        scheduled_start=None,
        seats_per_table: Optional[int] = None,
        points_mode: Optional[PointsMode] = None,
        tournament_id: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Tournament:
        """Create a tournament in Upcoming."""
        if not name or not name.strip():
            raise InvalidArgument("Tournament name is required")

        kwargs: Dict[str, Any] = {}
        if tournament_id:
            kwargs["tournament_id"] = tournament_id
        tournament = Tournament(
            name=name.strip(),
            capacity=capacity if capacity is not None else self.settings.default_capacity,
            buy_in=_parse_buy_in(buy_in),
            scheduled_start=scheduled_start,
            seats_per_table=seats_per_table or self.settings.default_seats_per_table,
            points_mode=points_mode or PointsMode.computed(),
            **kwargs,
        )

        await self.store.create(TournamentSnapshot(tournament=tournament))

        logger.info(
            "tournament_created",
            tournament_id=tournament.tournament_id,
            capacity=tournament.capacity,
            actor_id=actor_id,
        )
        await self._publish(
            [
                TournamentEvent(
                    event_type=TournamentEventType.TOURNAMENT_CREATED,
                    tournament_id=tournament.tournament_id,
                    data=tournament.to_dict(),
                )
            ]
        )
        return tournament

    async def delete_tournament(
        self,
        tournament_id: str,
        actor_id: Optional[str] = None,
    ) -> None:
        """Remove a tournament that never left Upcoming."""
        async with self.lock_manager.lock(tournament_id, LockType.TOURNAMENT):
            work = await self._begin(tournament_id, actor_id)
            work.require("delete tournament", LifecycleState.UPCOMING)
            await self.store.delete(tournament_id)
            work.emit(TournamentEventType.TOURNAMENT_DELETED)

        logger.info("tournament_deleted", tournament_id=tournament_id, actor_id=actor_id)
        await self._publish(work.events)

    async def update_tournament(
        self,
        tournament_id: str,
        name: Optional[str] = None,
        capacity: Optional[int] = None,
        buy_in: Optional[Amount] = None,
        scheduled_start: Optional[datetime] = None,
        seats_per_table: Optional[int] = None,
        actor_id: Optional[str] = None,
    ) -> Tournament:
        """
        Edit tournament settings before the start. Omitted fields keep their
        current value.

        Raises:
            InvalidTransition: the tournament has started or is over
            CapacityExceeded: capacity below the registrations holding a slot
            InvalidArgument: nothing to change, or a value fails validation
        """
        changes: Dict[str, Any] = {}
        if name is not None:
            if not name.strip():
                raise InvalidArgument("Tournament name is required")
            changes["name"] = name.strip()
        if capacity is not None:
            changes["capacity"] = capacity
        if buy_in is not None:
            changes["buy_in"] = _parse_buy_in(buy_in)
        if scheduled_start is not None:
            changes["scheduled_start"] = scheduled_start
        if seats_per_table is not None:
            changes["seats_per_table"] = seats_per_table
        if not changes:
            raise InvalidArgument("No tournament fields to update")

        async with self.lock_manager.lock(tournament_id, LockType.TOURNAMENT):
            work = await self._begin(tournament_id, actor_id)
            work.require("update tournament", *PRE_START_STATES)

            holding = work.ledger.holding_capacity()
            if capacity is not None and capacity < holding:
                raise CapacityExceeded(
                    f"Capacity {capacity} is below the {holding} registered players",
                    details={"capacity": capacity, "registered": holding},
                )

            work.snapshot.tournament = replace(work.tournament, **changes)
            tournament = work.tournament
            updated = {key: tournament.to_dict()[key] for key in changes}
            work.log(ActionType.UPDATE_TOURNAMENT, **updated)
            work.emit(TournamentEventType.TOURNAMENT_UPDATED, **updated)
            await self._commit(work)

        logger.info(
            "tournament_updated",
            tournament_id=tournament_id,
            fields=sorted(changes),
            actor_id=actor_id,
        )
        await self._publish(work.events)
        return tournament

    async def open_registration(
        self,
        tournament_id: str,
        actor_id: Optional[str] = None,
    ) -> Tournament:
        async with self.lock_manager.lock(tournament_id, LockType.TOURNAMENT):
            work = await self._begin(tournament_id, actor_id)
            work.require("open registration", LifecycleState.UPCOMING)
            tournament = work.transition(LifecycleState.REGISTRATION_OPEN)
            work.log(ActionType.OPEN_REGISTRATION)
            work.emit(TournamentEventType.REGISTRATION_OPENED)
            await self._commit(work)

        logger.info("registration_opened", tournament_id=tournament_id)
        await self._publish(work.events)
        return tournament

    async def start_check_in(
        self,
        tournament_id: str,
        actor_id: Optional[str] = None,
    ) -> Tournament:
        async with self.lock_manager.lock(tournament_id, LockType.TOURNAMENT):
            work = await self._begin(tournament_id, actor_id)
            work.require("start check-in", LifecycleState.REGISTRATION_OPEN)
            tournament = work.transition(LifecycleState.CHECK_IN)
            work.log(ActionType.START_CHECK_IN)
            work.emit(TournamentEventType.CHECK_IN_STARTED)
            await self._commit(work)

        logger.info("check_in_started", tournament_id=tournament_id)
        await self._publish(work.events)
        return tournament

    async def start(
        self,
        tournament_id: str,
        actor_id: Optional[str] = None,
    ) -> Dict[str, Seat]:
        """
        Check in every Paid player and seat all Playing players.

        Also the way to restart a tournament after cancel().

        Raises:
            NoPlayers: nobody has paid
        """
        async with self.lock_manager.lock(tournament_id, LockType.TOURNAMENT):
            work = await self._begin(tournament_id, actor_id)
            work.require("start", LifecycleState.CHECK_IN, LifecycleState.UPCOMING)

            if not work.snapshot.players_with(
                RegistrationStatus.PAID, RegistrationStatus.PLAYING
            ):
                raise NoPlayers(tournament_id)

            work.ledger.check_in()
            seating = self.allocator.assign_initial(
                work.snapshot.active_players,
                work.tournament.seats_per_table,
            )
            work.snapshot.seating = dict(seating)
            work.transition(LifecycleState.STARTED, started_at=utcnow())

            tables = len({seat.table_number for seat in seating.values()})
            work.log(ActionType.START_TOURNAMENT, players=len(seating), tables=tables)
            work.emit(
                TournamentEventType.TOURNAMENT_STARTED,
                player_count=len(seating),
                table_count=tables,
                seating={p: s.to_dict() for p, s in seating.items()},
            )
            await self._commit(work)

        logger.info(
            "tournament_started",
            tournament_id=tournament_id,
            players=len(seating),
            tables=tables,
        )
        await self._publish(work.events)
        return dict(seating)

    async def cancel(
        self,
        tournament_id: str,
        actor_id: Optional[str] = None,
    ) -> Tournament:
        """
        Undo the start: seating cleared, Playing/Eliminated back to Paid.

        NoShow and Registered entries keep their status.
        """
        async with self.lock_manager.lock(tournament_id, LockType.TOURNAMENT):
            work = await self._begin(tournament_id, actor_id)
            work.require("cancel", LifecycleState.STARTED)

            reset = work.ledger.reset_for_restart()
            tournament = work.transition(LifecycleState.UPCOMING, started_at=None)
            work.log(ActionType.CANCEL_TOURNAMENT, players_reset=len(reset))
            work.emit(
                TournamentEventType.TOURNAMENT_START_CANCELLED,
                players_reset=len(reset),
            )
            await self._commit(work)

        logger.info("tournament_start_cancelled", tournament_id=tournament_id)
        await self._publish(work.events)
        return tournament

    async def abort(
        self,
        tournament_id: str,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Tournament:
        """Call the tournament off before it starts. Cancelled is terminal."""
        async with self.lock_manager.lock(tournament_id, LockType.TOURNAMENT):
            work = await self._begin(tournament_id, actor_id)
            work.require("abort", *PRE_START_STATES)
            tournament = work.transition(
                LifecycleState.CANCELLED, finished_at=utcnow()
            )
            work.log(ActionType.ABORT_TOURNAMENT, reason=reason)
            work.emit(TournamentEventType.TOURNAMENT_ABORTED, reason=reason)
            await self._commit(work)

        logger.info("tournament_aborted", tournament_id=tournament_id, reason=reason)
        await self._publish(work.events)
        return tournament

    async def finish(
        self,
        tournament_id: str,
        actor_id: Optional[str] = None,
    ) -> List[TournamentResult]:
        """
        Close a Started tournament with at most one player left.

        The remaining player takes place 1, final points are recomputed and
        written as the results history.
        """
        async with self.lock_manager.lock(tournament_id, LockType.TOURNAMENT):
            work = await self._begin(tournament_id, actor_id)
            work.require("finish", LifecycleState.STARTED)
            results = self._finish(work)
            await self._commit(work)

        logger.info(
            "tournament_finished",
            tournament_id=tournament_id,
            participants=len(results),
        )
        await self._publish(work.events)
        return results

    def _finish(self, work: _UnitOfWork) -> List[TournamentResult]:
        active = work.snapshot.active_players
        if len(active) > 1:
            raise InvalidTransition(
                f"Cannot finish with {len(active)} players still in play",
                details={"activePlayers": len(active)},
            )

        winner_id = None
        if active:
            winner_id = active[0]
            work.ledger.eliminate(winner_id, 1)
            work.log(ActionType.ELIMINATE_PLAYER, winner_id, finish_place=1)

        work.ledger.recompute_points()
        work.snapshot.seating.clear()
        work.transition(LifecycleState.FINISHED, finished_at=utcnow())

        placed = sorted(
            (
                reg
                for reg in work.snapshot.registrations.values()
                if reg.status == RegistrationStatus.ELIMINATED
            ),
            key=lambda reg: reg.finish_place or 0,
        )
        results = [
            TournamentResult(
                tournament_id=work.snapshot.tournament_id,
                player_id=reg.player_id,
                finish_place=reg.finish_place,
                points_earned=reg.points_earned,
                bonus_points=reg.bonus_points,
            )
            for reg in placed
        ]
        work.results = results

        work.log(ActionType.FINISH_TOURNAMENT, winner=winner_id, participants=len(results))
        work.emit(
            TournamentEventType.TOURNAMENT_FINISHED,
            player_id=winner_id,
            winner=winner_id,
            standings=[r.to_dict() for r in results],
        )
        return results

    # =========================================================================
    # Registration and payment
    # =========================================================================

    async def register(
        self,
        tournament_id: str,
        player_id: str,
        actor_id: Optional[str] = None,
    ) -> Registration:
        """
        Register a player while registration or check-in is open.

        Raises:
            AlreadyRegistered, TournamentFull, InvalidTransition
        """
        await self._check_player(player_id)

        async with self.lock_manager.lock(tournament_id, LockType.TOURNAMENT):
            work = await self._begin(tournament_id, actor_id)
            work.require("register", *REGISTRATION_STATES)
            registration = work.ledger.register(player_id)
            work.log(ActionType.REGISTER, player_id)
            work.emit(
                TournamentEventType.PLAYER_REGISTERED,
                player_id=player_id,
                registration_type=registration.registration_type.value,
            )
            await self._commit(work)

        logger.info("player_registered", tournament_id=tournament_id, player_id=player_id)
        await self._publish(work.events)
        return registration

    async def unregister(
        self,
        tournament_id: str,
        player_id: str,
        actor_id: Optional[str] = None,
    ) -> Registration:
        """
        Withdraw a Registered or Paid player before the start.

        The registration is removed, so the player may register again. A
        collected buy-in is recorded in the action log for refunding.
        """
        async with self.lock_manager.lock(tournament_id, LockType.TOURNAMENT):
            work = await self._begin(tournament_id, actor_id)
            work.require("unregister", *PRE_START_STATES)
            registration = work.ledger.unregister(player_id)
            payment = registration.payment
            work.log(
                ActionType.UNREGISTER,
                player_id,
                previous_status=registration.status.value,
                refund_amount=str(payment.amount) if payment else None,
            )
            work.emit(
                TournamentEventType.PLAYER_UNREGISTERED,
                player_id=player_id,
                previous_status=registration.status.value,
            )
            await self._commit(work)

        logger.info(
            "player_unregistered",
            tournament_id=tournament_id,
            player_id=player_id,
            previous_status=registration.status,
        )
        await self._publish(work.events)
        return registration

    async def register_onsite(
        self,
        tournament_id: str,
        player_id: str,
        amount: Amount,
        method: Union[PaymentMethod, str],
        notes: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Registration:
        """Register and record payment at the desk in one command."""
        await self._check_player(player_id)

        async with self.lock_manager.lock(tournament_id, LockType.TOURNAMENT):
            work = await self._begin(tournament_id, actor_id)
            work.require("register on site", *REGISTRATION_STATES)
            work.ledger.register(player_id, RegistrationType.ONSITE)
            registration, _ = work.ledger.confirm_payment(
                player_id, amount, method, notes, actor_id
            )
            work.log(
                ActionType.ONSITE_REGISTRATION,
                player_id,
                amount=str(registration.payment.amount),
                method=registration.payment.method.value,
            )
            work.emit(
                TournamentEventType.PLAYER_REGISTERED,
                player_id=player_id,
                registration_type=RegistrationType.ONSITE.value,
            )
            work.emit(
                TournamentEventType.PAYMENT_CONFIRMED,
                player_id=player_id,
                payment=registration.payment.to_dict(),
            )
            await self._commit(work)

        logger.info(
            "player_registered_onsite", tournament_id=tournament_id, player_id=player_id
        )
        await self._publish(work.events)
        return registration

    async def confirm_payment(
        self,
        tournament_id: str,
        player_id: str,
        amount: Amount,
        method: Union[PaymentMethod, str],
        notes: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Registration:
        """
        Record a payment. Idempotent for players who already paid.

        After start the payer is checked in and given the first free seat.
        """
        async with self.lock_manager.lock(tournament_id, LockType.TOURNAMENT):
            work = await self._begin(tournament_id, actor_id)
            work.require("confirm payment", *PAYMENT_STATES)
            registration, changed = work.ledger.confirm_payment(
                player_id, amount, method, notes, actor_id
            )
            if not changed:
                return registration

            work.log(
                ActionType.CONFIRM_PAYMENT,
                player_id,
                amount=str(registration.payment.amount),
                method=registration.payment.method.value,
            )
            work.emit(
                TournamentEventType.PAYMENT_CONFIRMED,
                player_id=player_id,
                payment=registration.payment.to_dict(),
            )
            if work.state == LifecycleState.STARTED:
                registration = work.ledger.check_in_player(player_id)
                self._seat(work, player_id)
            await self._commit(work)

        logger.info(
            "payment_confirmed",
            tournament_id=tournament_id,
            player_id=player_id,
            method=str(method),
        )
        await self._publish(work.events)
        return registration

    def _seat(
        self,
        work: _UnitOfWork,
        player_id: str,
        table_number: Optional[int] = None,
        seat_number: Optional[int] = None,
    ) -> Seat:
        """Seat one Playing player at a chosen seat or the first free one."""
        seats_per_table = work.tournament.seats_per_table
        if (table_number is None) != (seat_number is None):
            raise InvalidArgument("table_number and seat_number go together")
        if table_number is None:
            seat = self.allocator.find_free_seat(work.snapshot.seating, seats_per_table)
            table_number, seat_number = seat.table_number, seat.seat_number

        work.snapshot.seating = self.allocator.late_seat(
            work.snapshot.seating,
            player_id,
            table_number,
            seat_number,
            seats_per_table,
        )
        seat = work.snapshot.seating[player_id]
        work.log(ActionType.ASSIGN_SEAT, player_id, **seat.to_dict())
        work.emit(TournamentEventType.PLAYER_SEATED, player_id=player_id, **seat.to_dict())
        return seat

    async def mark_no_show(
        self,
        tournament_id: str,
        player_id: str,
        actor_id: Optional[str] = None,
    ) -> Registration:
        async with self.lock_manager.lock(tournament_id, LockType.TOURNAMENT):
            work = await self._begin(tournament_id, actor_id)
            work.require_live("mark no-show")
            registration = work.ledger.mark_no_show(player_id)
            work.log(ActionType.MARK_NO_SHOW, player_id)
            work.emit(TournamentEventType.PLAYER_NO_SHOW, player_id=player_id)
            await self._commit(work)

        logger.info("player_no_show", tournament_id=tournament_id, player_id=player_id)
        await self._publish(work.events)
        return registration

    async def exclude_all_no_show(
        self,
        tournament_id: str,
        actor_id: Optional[str] = None,
    ) -> List[str]:
        """Mark every unpaid Registered player as NoShow."""
        async with self.lock_manager.lock(tournament_id, LockType.TOURNAMENT):
            work = await self._begin(tournament_id, actor_id)
            work.require_live("exclude no-shows")
            excluded = work.ledger.exclude_all_no_show()
            for player_id in excluded:
                work.log(ActionType.MARK_NO_SHOW, player_id, bulk=True)
                work.emit(TournamentEventType.PLAYER_NO_SHOW, player_id=player_id)
            await self._commit(work)

        logger.info(
            "no_shows_excluded", tournament_id=tournament_id, count=len(excluded)
        )
        await self._publish(work.events)
        return excluded

    async def restore(
        self,
        tournament_id: str,
        player_id: str,
        table_number: Optional[int] = None,
        seat_number: Optional[int] = None,
        actor_id: Optional[str] = None,
    ) -> Registration:
        """
        NoShow -> Registered, or Eliminated -> Playing with a new seat.

        Bringing an eliminated player back is only possible while Started.
        """
        async with self.lock_manager.lock(tournament_id, LockType.TOURNAMENT):
            work = await self._begin(tournament_id, actor_id)
            work.require_live("restore player")

            current = work.ledger.get(player_id)
            if (
                current.status == RegistrationStatus.ELIMINATED
                and work.state != LifecycleState.STARTED
            ):
                raise InvalidTransition.for_state("restore eliminated player", work.state)

            registration = work.ledger.restore(player_id)
            work.log(
                ActionType.RESTORE_PLAYER,
                player_id,
                previous_status=current.status.value,
                previous_place=current.finish_place,
            )
            work.emit(
                TournamentEventType.PLAYER_RESTORED,
                player_id=player_id,
                status=registration.status.value,
            )
            if registration.status == RegistrationStatus.PLAYING:
                self._seat(work, player_id, table_number, seat_number)
            await self._commit(work)

        logger.info(
            "player_restored",
            tournament_id=tournament_id,
            player_id=player_id,
            status=registration.status.value,
        )
        await self._publish(work.events)
        return registration

    async def late_register(
        self,
        tournament_id: str,
        player_id: str,
        amount: Amount,
        method: Union[PaymentMethod, str],
        table_number: Optional[int] = None,
        seat_number: Optional[int] = None,
        notes: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Registration:
        """
        Register, pay and seat a player after start in one command.

        Capacity does not apply; seats do.
        """
        await self._check_player(player_id)

        async with self.lock_manager.lock(tournament_id, LockType.TOURNAMENT):
            work = await self._begin(tournament_id, actor_id)
            work.require("late register", LifecycleState.STARTED)

            work.ledger.register(player_id, RegistrationType.LATE, enforce_capacity=False)
            registration, _ = work.ledger.confirm_payment(
                player_id, amount, method, notes, actor_id
            )
            payment = registration.payment
            registration = work.ledger.check_in_player(player_id)
            seat = self._seat(work, player_id, table_number, seat_number)

            work.log(
                ActionType.LATE_REGISTRATION,
                player_id,
                amount=str(payment.amount),
                method=payment.method.value,
            )
            work.emit(
                TournamentEventType.PLAYER_REGISTERED,
                player_id=player_id,
                registration_type=RegistrationType.LATE.value,
            )
            work.emit(
                TournamentEventType.PAYMENT_CONFIRMED,
                player_id=player_id,
                payment=payment.to_dict(),
            )
            await self._commit(work)

        logger.info(
            "player_late_registered",
            tournament_id=tournament_id,
            player_id=player_id,
            table=seat.table_number,
            seat=seat.seat_number,
        )
        await self._publish(work.events)
        return registration

    # =========================================================================
    # Live play
    # =========================================================================

    async def eliminate_or_finish(
        self,
        tournament_id: str,
        player_id: str,
        finish_place: Optional[int] = None,
        actor_id: Optional[str] = None,
    ) -> EliminationOutcome:
        """
        Eliminate a player; finish the tournament if one player is left.

        Both steps are one write: the second-to-last elimination, the
        winner's place 1 and the Finished state are saved together or not
        at all.
        """
        async with self.lock_manager.lock(tournament_id, LockType.TOURNAMENT):
            work = await self._begin(tournament_id, actor_id)
            work.require("eliminate", LifecycleState.STARTED)

            seat = work.snapshot.seating.get(player_id)
            eliminated = work.ledger.eliminate(player_id, finish_place)
            work.log(
                ActionType.ELIMINATE_PLAYER,
                player_id,
                finish_place=eliminated.finish_place,
                points=eliminated.points_earned,
            )
            work.emit(
                TournamentEventType.PLAYER_ELIMINATED,
                player_id=player_id,
                finish_place=eliminated.finish_place,
                points_earned=eliminated.points_earned,
                seat=seat.to_dict() if seat else None,
            )

            outcome = EliminationOutcome(eliminated=eliminated)
            if len(work.snapshot.active_players) <= 1:
                remaining = work.snapshot.active_players
                outcome.results = self._finish(work)
                outcome.finished = True
                outcome.eliminated = work.snapshot.registrations[player_id]
                if remaining:
                    outcome.winner = work.snapshot.registrations[remaining[0]]
            await self._commit(work)

        logger.info(
            "player_eliminated",
            tournament_id=tournament_id,
            player_id=player_id,
            finish_place=outcome.eliminated.finish_place,
            finished=outcome.finished,
        )
        await self._publish(work.events)
        return outcome

    eliminate = eliminate_or_finish

    async def add_bonus(
        self,
        tournament_id: str,
        player_id: str,
        amount: int,
        reason: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Registration:
        async with self.lock_manager.lock(tournament_id, LockType.TOURNAMENT):
            work = await self._begin(tournament_id, actor_id)
            work.require_live("add bonus")
            registration = work.ledger.add_bonus(player_id, amount)
            work.log(ActionType.ADD_BONUS, player_id, amount=amount, reason=reason)
            work.emit(
                TournamentEventType.BONUS_AWARDED,
                player_id=player_id,
                amount=amount,
                bonus_points=registration.bonus_points,
            )
            await self._commit(work)

        logger.info(
            "bonus_awarded",
            tournament_id=tournament_id,
            player_id=player_id,
            amount=amount,
        )
        await self._publish(work.events)
        return registration

    async def rebalance(
        self,
        tournament_id: str,
        actor_id: Optional[str] = None,
    ) -> RebalancePlan:
        """Consolidate tables and apply the moves. Returns the plan."""
        async with self.lock_manager.lock(tournament_id, LockType.TOURNAMENT):
            work = await self._begin(tournament_id, actor_id)
            work.require("rebalance", LifecycleState.STARTED)

            plan = self.allocator.rebalance(
                work.snapshot.seating,
                seats_per_table=work.tournament.seats_per_table,
            )
            if plan.is_empty:
                return plan

            work.snapshot.seating = plan.apply(work.snapshot.seating)
            work.log(
                ActionType.REBALANCE_TABLES,
                moves=plan.total_moves,
                tables_closed=plan.tables_closed,
            )
            work.emit(TournamentEventType.TABLES_REBALANCED, **plan.to_dict())
            await self._commit(work)

        logger.info(
            "tables_rebalanced",
            tournament_id=tournament_id,
            moves=plan.total_moves,
            tables_closed=plan.tables_closed,
        )
        await self._publish(work.events)
        return plan

    async def set_points_mode(
        self,
        tournament_id: str,
        points_mode: PointsMode,
        actor_id: Optional[str] = None,
    ) -> Tournament:
        """Switch between computed and manual points; placed players are re-scored."""
        if not isinstance(points_mode, PointsMode):
            raise InvalidArgument("points_mode must be a PointsMode")

        async with self.lock_manager.lock(tournament_id, LockType.TOURNAMENT):
            work = await self._begin(tournament_id, actor_id)
            work.require_live("change points mode")
            tournament = work.transition(work.state, points_mode=points_mode)
            work.ledger.recompute_points()
            work.log(ActionType.SET_POINTS_MODE, **points_mode.to_dict())
            await self._commit(work)

        logger.info(
            "points_mode_changed",
            tournament_id=tournament_id,
            kind=points_mode.kind.value,
        )
        return tournament

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_snapshot(self, tournament_id: str) -> TournamentSnapshot:
        return await self.store.load(tournament_id)

    async def get_tournament(self, tournament_id: str) -> Tournament:
        return (await self.store.load(tournament_id)).tournament

    async def list_tournaments(self) -> List[Tournament]:
        return await self.store.list_tournaments()

    async def get_registration(self, tournament_id: str, player_id: str) -> Registration:
        snapshot = await self.store.load(tournament_id)
        return RegistrationLedger(snapshot).get(player_id)

    async def get_seating(self, tournament_id: str) -> Dict[str, Seat]:
        return dict((await self.store.load(tournament_id)).seating)

    async def get_stats(self, tournament_id: str) -> TournamentStats:
        return self.projector.project(await self.store.load(tournament_id))

    async def get_results(self, tournament_id: str) -> List[TournamentResult]:
        return await self.store.list_results(tournament_id)

    async def get_actions(self, tournament_id: str) -> List[ActionLogEntry]:
        return await self.store.list_actions(tournament_id)
