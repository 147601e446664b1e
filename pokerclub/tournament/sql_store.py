"""
SQLAlchemy tournament store.

One tournament snapshot maps to a tournaments row plus its registration and
seat rows. save() rewrites the registration and seat rows inside a single
transaction together with the appended action log and results.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pokerclub.logging_config import get_logger
from pokerclub.models.tournament import (
    RegistrationRow,
    SeatAssignmentRow,
    TournamentActionRow,
    TournamentResultRow,
    TournamentRow,
)
from pokerclub.utils.db import get_db_session
from pokerclub.utils.errors import Conflict, StorageError
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
    TournamentResult,
    TournamentSnapshot,
)
from .store import TournamentStore, tournament_not_found

logger = get_logger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _tournament_from_row(row: TournamentRow) -> Tournament:
    return Tournament(
        tournament_id=row.id,
        name=row.name,
        capacity=row.capacity,
        buy_in=Decimal(row.buy_in),
        scheduled_start=_aware(row.scheduled_start),
        seats_per_table=row.seats_per_table,
        lifecycle_state=LifecycleState(row.lifecycle_state),
        points_mode=PointsMode.from_dict(row.points_mode),
        created_at=_aware(row.created_at),
        started_at=_aware(row.started_at),
        finished_at=_aware(row.finished_at),
    )


def _copy_tournament_to_row(tournament: Tournament, row: TournamentRow) -> None:
    row.name = tournament.name
    row.capacity = tournament.capacity
    row.buy_in = tournament.buy_in
    row.scheduled_start = tournament.scheduled_start
    row.seats_per_table = tournament.seats_per_table
    row.lifecycle_state = tournament.lifecycle_state.value
    row.points_mode = tournament.points_mode.to_dict()
    row.started_at = tournament.started_at
    row.finished_at = tournament.finished_at


def _registration_from_row(row: RegistrationRow) -> Registration:
    payment = None
    if row.payment_amount is not None and row.payment_method:
        payment = PaymentRecord(
            amount=Decimal(row.payment_amount),
            method=PaymentMethod(row.payment_method),
            notes=row.payment_notes,
            confirmed_by=row.payment_confirmed_by,
            confirmed_at=_aware(row.payment_confirmed_at),
        )
    return Registration(
        tournament_id=row.tournament_id,
        player_id=row.player_id,
        status=RegistrationStatus(row.status),
        registration_type=RegistrationType(row.registration_type),
        registered_at=_aware(row.registered_at),
        payment=payment,
        finish_place=row.finish_place,
        points_earned=row.points_earned,
        bonus_points=row.bonus_points,
    )


def _registration_to_row(registration: Registration) -> RegistrationRow:
    payment = registration.payment
    return RegistrationRow(
        tournament_id=registration.tournament_id,
        player_id=registration.player_id,
        status=registration.status.value,
        registration_type=registration.registration_type.value,
        registered_at=registration.registered_at,
        payment_amount=payment.amount if payment else None,
        payment_method=payment.method.value if payment else None,
        payment_notes=payment.notes if payment else None,
        payment_confirmed_by=payment.confirmed_by if payment else None,
        payment_confirmed_at=payment.confirmed_at if payment else None,
        finish_place=registration.finish_place,
        points_earned=registration.points_earned,
        bonus_points=registration.bonus_points,
    )


class SqlAlchemyTournamentStore(TournamentStore):
    """
    TournamentStore on an async SQLAlchemy engine.

    Unexpected database errors surface as StorageError; the original
    exception is chained and logged.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    def _storage_error(self, operation: str, tournament_id: str, e: Exception) -> StorageError:
        logger.error(
            "tournament_store_failed",
            operation=operation,
            tournament_id=tournament_id,
            error=str(e),
        )
        return StorageError(
            f"Storage failure during {operation}",
            details={"tournamentId": tournament_id, "operation": operation},
        )

    async def create(self, snapshot: TournamentSnapshot) -> None:
        tournament = snapshot.tournament
        try:
            async with get_db_session(self.session_factory) as session:
                row = TournamentRow(
                    id=tournament.tournament_id,
                    created_at=tournament.created_at,
                )
                _copy_tournament_to_row(tournament, row)
                session.add(row)
                await session.flush()
                await self._write_children(session, snapshot)
        except IntegrityError:
            raise Conflict(
                f"Tournament {tournament.tournament_id} already exists",
                details={"tournamentId": tournament.tournament_id},
            ) from None
        except SQLAlchemyError as e:
            raise self._storage_error("create", tournament.tournament_id, e) from e

    async def load(self, tournament_id: str) -> TournamentSnapshot:
        try:
            async with get_db_session(self.session_factory) as session:
                row = await session.get(TournamentRow, tournament_id)
                if row is None:
                    raise tournament_not_found(tournament_id)

                registrations = (
                    await session.scalars(
                        select(RegistrationRow)
                        .where(RegistrationRow.tournament_id == tournament_id)
                        .order_by(RegistrationRow.id)
                    )
                ).all()
                seats = (
                    await session.scalars(
                        select(SeatAssignmentRow).where(
                            SeatAssignmentRow.tournament_id == tournament_id
                        )
                    )
                ).all()

                return TournamentSnapshot(
                    tournament=_tournament_from_row(row),
                    registrations={
                        r.player_id: _registration_from_row(r) for r in registrations
                    },
                    seating={
                        s.player_id: Seat(s.table_number, s.seat_number) for s in seats
                    },
                )
        except SQLAlchemyError as e:
            raise self._storage_error("load", tournament_id, e) from e

    async def save(
        self,
        snapshot: TournamentSnapshot,
        actions: Sequence[ActionLogEntry] = (),
        results: Optional[Sequence[TournamentResult]] = None,
    ) -> None:
        tournament_id = snapshot.tournament_id
        try:
            async with get_db_session(self.session_factory) as session:
                row = await session.get(TournamentRow, tournament_id)
                if row is None:
                    raise tournament_not_found(tournament_id)
                _copy_tournament_to_row(snapshot.tournament, row)

                await session.execute(
                    delete(SeatAssignmentRow).where(
                        SeatAssignmentRow.tournament_id == tournament_id
                    )
                )
                await session.execute(
                    delete(RegistrationRow).where(
                        RegistrationRow.tournament_id == tournament_id
                    )
                )
                await self._write_children(session, snapshot)

                session.add_all(
                    TournamentActionRow(
                        tournament_id=tournament_id,
                        action_type=entry.action_type.value,
                        actor_id=entry.actor_id,
                        target_player_id=entry.target_player_id,
                        details=entry.details,
                        created_at=entry.created_at,
                    )
                    for entry in actions
                )

                if results is not None:
                    await session.execute(
                        delete(TournamentResultRow).where(
                            TournamentResultRow.tournament_id == tournament_id
                        )
                    )
                    session.add_all(
                        TournamentResultRow(
                            tournament_id=tournament_id,
                            player_id=result.player_id,
                            finish_place=result.finish_place,
                            points_earned=result.points_earned,
                            bonus_points=result.bonus_points,
                            total_points=result.total_points,
                        )
                        for result in results
                    )
        except SQLAlchemyError as e:
            raise self._storage_error("save", tournament_id, e) from e

    async def _write_children(
        self,
        session: AsyncSession,
        snapshot: TournamentSnapshot,
    ) -> None:
        session.add_all(
            _registration_to_row(registration)
            for registration in snapshot.registrations.values()
        )
        session.add_all(
            SeatAssignmentRow(
                tournament_id=snapshot.tournament_id,
                player_id=player_id,
                table_number=seat.table_number,
                seat_number=seat.seat_number,
            )
            for player_id, seat in snapshot.seating.items()
        )
        await session.flush()

    async def delete(self, tournament_id: str) -> None:
        try:
            async with get_db_session(self.session_factory) as session:
                row = await session.get(TournamentRow, tournament_id)
                if row is None:
                    raise tournament_not_found(tournament_id)
                for model in (
                    SeatAssignmentRow,
                    RegistrationRow,
                    TournamentResultRow,
                    TournamentActionRow,
                ):
                    await session.execute(
                        delete(model).where(model.tournament_id == tournament_id)
                    )
                await session.delete(row)
        except SQLAlchemyError as e:
            raise self._storage_error("delete", tournament_id, e) from e

    async def list_tournaments(self) -> List[Tournament]:
        try:
            async with get_db_session(self.session_factory) as session:
                rows = (
                    await session.scalars(
                        select(TournamentRow).order_by(TournamentRow.created_at)
                    )
                ).all()
                return [_tournament_from_row(row) for row in rows]
        except SQLAlchemyError as e:
            raise self._storage_error("list_tournaments", "*", e) from e

    async def _require_exists(self, session: AsyncSession, tournament_id: str) -> None:
        if await session.get(TournamentRow, tournament_id) is None:
            raise tournament_not_found(tournament_id)

    async def list_results(self, tournament_id: str) -> List[TournamentResult]:
        try:
            async with get_db_session(self.session_factory) as session:
                await self._require_exists(session, tournament_id)
                rows = (
                    await session.scalars(
                        select(TournamentResultRow)
                        .where(TournamentResultRow.tournament_id == tournament_id)
                        .order_by(TournamentResultRow.finish_place)
                    )
                ).all()
                return [
                    TournamentResult(
                        tournament_id=row.tournament_id,
                        player_id=row.player_id,
                        finish_place=row.finish_place,
                        points_earned=row.points_earned,
                        bonus_points=row.bonus_points,
                    )
                    for row in rows
                ]
        except SQLAlchemyError as e:
            raise self._storage_error("list_results", tournament_id, e) from e

    async def list_actions(self, tournament_id: str) -> List[ActionLogEntry]:
        try:
            async with get_db_session(self.session_factory) as session:
                await self._require_exists(session, tournament_id)
                rows = (
                    await session.scalars(
                        select(TournamentActionRow)
                        .where(TournamentActionRow.tournament_id == tournament_id)
                        .order_by(TournamentActionRow.id)
                    )
                ).all()
                return [
                    ActionLogEntry(
                        tournament_id=row.tournament_id,
                        action_type=ActionType(row.action_type),
                        actor_id=row.actor_id,
                        target_player_id=row.target_player_id,
                        details=row.details or {},
                        created_at=_aware(row.created_at),
                    )
                    for row in rows
                ]
        except SQLAlchemyError as e:
            raise self._storage_error("list_actions", tournament_id, e) from e
