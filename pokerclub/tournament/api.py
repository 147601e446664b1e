"""
Tournament API Router.

Thin HTTP binding of the TournamentLifecycle command and query surface.
Acting staff member is taken from the X-Actor-Id header.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, Field

from pokerclub.logging_config import get_logger
from pokerclub.utils.errors import (
    Conflict,
    InvalidArgument,
    InvalidTransition,
    NotFound,
    TournamentError,
)
from .distributed_lock import LockAcquisitionError
from .engine import TournamentLifecycle
from .models import PaymentMethod, PointsMode, PointsModeKind

logger = get_logger(__name__)


# =============================================================================
# Request Models
# =============================================================================


class CreateTournamentRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    capacity: Optional[int] = Field(default=None, ge=1)
    buy_in: Decimal = Field(default=Decimal("0"), ge=0)
    scheduled_start: Optional[datetime] = None
    seats_per_table: Optional[int] = Field(default=None, ge=2)


class UpdateTournamentRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    capacity: Optional[int] = Field(default=None, ge=1)
    buy_in: Optional[Decimal] = Field(default=None, ge=0)
    scheduled_start: Optional[datetime] = None
    seats_per_table: Optional[int] = Field(default=None, ge=2)


class RegisterRequest(BaseModel):
    player_id: str = Field(..., min_length=1, max_length=64)


class PaymentRequest(BaseModel):
    amount: Decimal
    method: PaymentMethod
    notes: Optional[str] = Field(default=None, max_length=500)


class OnsiteRegisterRequest(PaymentRequest):
    player_id: str = Field(..., min_length=1, max_length=64)


class LateRegisterRequest(OnsiteRegisterRequest):
    table_number: Optional[int] = None
    seat_number: Optional[int] = None


class RestoreRequest(BaseModel):
    table_number: Optional[int] = None
    seat_number: Optional[int] = None


class EliminateRequest(BaseModel):
    finish_place: Optional[int] = None


class BonusRequest(BaseModel):
    amount: int
    reason: Optional[str] = Field(default=None, max_length=200)


class PointsModeRequest(BaseModel):
    kind: PointsModeKind
    table: Dict[int, int] = Field(default_factory=dict)

    def to_points_mode(self) -> PointsMode:
        if self.kind == PointsModeKind.MANUAL:
            return PointsMode.manual(self.table)
        if self.table:
            raise InvalidArgument("Computed points mode takes no table")
        return PointsMode.computed()


# =============================================================================
# Dependencies and error mapping
# =============================================================================

router = APIRouter(prefix="/api/v1/tournaments", tags=["Tournament"])

_lifecycle: Optional[TournamentLifecycle] = None


def set_lifecycle(lifecycle: Optional[TournamentLifecycle]) -> None:
    global _lifecycle
    _lifecycle = lifecycle


def get_lifecycle() -> TournamentLifecycle:
    if _lifecycle is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Tournament engine not initialized",
        )
    return _lifecycle


def get_actor_id(x_actor_id: Optional[str] = Header(default=None)) -> Optional[str]:
    return x_actor_id


def status_for_error(exc: TournamentError) -> int:
    if isinstance(exc, NotFound):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, (Conflict, InvalidTransition)):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, InvalidArgument):
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def tournament_error_handler(
    request: Request, exc: TournamentError
) -> ORJSONResponse:
    """Render engine errors as {errorCode, errorMessage, details}."""
    status_code = status_for_error(exc)
    if status_code >= 500:
        logger.error("tournament_error", code=exc.code, message=exc.message)
    else:
        logger.warning("tournament_error", code=exc.code, message=exc.message)
    return ORJSONResponse(status_code=status_code, content=exc.to_dict())


async def lock_error_handler(
    request: Request, exc: LockAcquisitionError
) -> ORJSONResponse:
    logger.warning("tournament_lock_timeout", lock_key=exc.lock_key, waited_ms=exc.waited_ms)
    return ORJSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "errorCode": "LOCK_TIMEOUT",
            "errorMessage": "Tournament is busy, try again",
            "details": {},
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TournamentError, tournament_error_handler)
    app.add_exception_handler(LockAcquisitionError, lock_error_handler)


# =============================================================================
# Tournament Lifecycle Endpoints
# =============================================================================


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_tournament(
    request: CreateTournamentRequest,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, Any]:
    tournament = await lifecycle.create_tournament(
        name=request.name,
        capacity=request.capacity,
        buy_in=request.buy_in,
        scheduled_start=request.scheduled_start,
        seats_per_table=request.seats_per_table,
        actor_id=actor_id,
    )
    return tournament.to_dict()


@router.get("")
async def list_tournaments(
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
) -> List[Dict[str, Any]]:
    return [t.to_dict() for t in await lifecycle.list_tournaments()]


@router.get("/{tournament_id}")
async def get_tournament(
    tournament_id: str,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
) -> Dict[str, Any]:
    snapshot = await lifecycle.get_snapshot(tournament_id)
    data = snapshot.tournament.to_dict()
    data["registrations"] = [r.to_dict() for r in snapshot.registrations.values()]
    return data


@router.patch("/{tournament_id}")
async def update_tournament(
    tournament_id: str,
    request: UpdateTournamentRequest,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, Any]:
    tournament = await lifecycle.update_tournament(
        tournament_id, actor_id=actor_id, **request.model_dump(exclude_unset=True)
    )
    return tournament.to_dict()


@router.delete("/{tournament_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tournament(
    tournament_id: str,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> None:
    await lifecycle.delete_tournament(tournament_id, actor_id=actor_id)


@router.post("/{tournament_id}/open-registration")
async def open_registration(
    tournament_id: str,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, Any]:
    return (await lifecycle.open_registration(tournament_id, actor_id)).to_dict()


@router.post("/{tournament_id}/check-in")
async def start_check_in(
    tournament_id: str,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, Any]:
    return (await lifecycle.start_check_in(tournament_id, actor_id)).to_dict()


@router.post("/{tournament_id}/start")
async def start_tournament(
    tournament_id: str,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, Any]:
    seating = await lifecycle.start(tournament_id, actor_id)
    return {"seating": {p: s.to_dict() for p, s in seating.items()}}


@router.post("/{tournament_id}/cancel")
async def cancel_tournament(
    tournament_id: str,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, Any]:
    return (await lifecycle.cancel(tournament_id, actor_id)).to_dict()


@router.post("/{tournament_id}/abort")
async def abort_tournament(
    tournament_id: str,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, Any]:
    return (await lifecycle.abort(tournament_id, actor_id)).to_dict()


@router.post("/{tournament_id}/finish")
async def finish_tournament(
    tournament_id: str,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, Any]:
    results = await lifecycle.finish(tournament_id, actor_id)
    return {"results": [r.to_dict() for r in results]}


@router.post("/{tournament_id}/rebalance")
async def rebalance_tables(
    tournament_id: str,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, Any]:
    return (await lifecycle.rebalance(tournament_id, actor_id)).to_dict()


@router.put("/{tournament_id}/points-mode")
async def set_points_mode(
    tournament_id: str,
    request: PointsModeRequest,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, Any]:
    tournament = await lifecycle.set_points_mode(
        tournament_id, request.to_points_mode(), actor_id
    )
    return tournament.to_dict()


# =============================================================================
# Registration Endpoints
# =============================================================================


@router.post("/{tournament_id}/registrations", status_code=status.HTTP_201_CREATED)
async def register_player(
    tournament_id: str,
    request: RegisterRequest,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, Any]:
    registration = await lifecycle.register(tournament_id, request.player_id, actor_id)
    return registration.to_dict()


@router.delete("/{tournament_id}/registrations/{player_id}")
async def unregister_player(
    tournament_id: str,
    player_id: str,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, Any]:
    registration = await lifecycle.unregister(tournament_id, player_id, actor_id)
    return registration.to_dict()


@router.post(
    "/{tournament_id}/registrations/onsite", status_code=status.HTTP_201_CREATED
)
async def register_onsite(
    tournament_id: str,
    request: OnsiteRegisterRequest,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, Any]:
    registration = await lifecycle.register_onsite(
        tournament_id,
        request.player_id,
        request.amount,
        request.method,
        notes=request.notes,
        actor_id=actor_id,
    )
    return registration.to_dict()


@router.post("/{tournament_id}/registrations/late", status_code=status.HTTP_201_CREATED)
async def late_register(
    tournament_id: str,
    request: LateRegisterRequest,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, Any]:
    registration = await lifecycle.late_register(
        tournament_id,
        request.player_id,
        request.amount,
        request.method,
        table_number=request.table_number,
        seat_number=request.seat_number,
        notes=request.notes,
        actor_id=actor_id,
    )
    return registration.to_dict()


@router.post("/{tournament_id}/exclude-no-shows")
async def exclude_no_shows(
    tournament_id: str,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, Any]:
    excluded = await lifecycle.exclude_all_no_show(tournament_id, actor_id)
    return {"excluded": excluded}


# =============================================================================
# Player Endpoints
# =============================================================================


@router.post("/{tournament_id}/players/{player_id}/payment")
async def confirm_payment(
    tournament_id: str,
    player_id: str,
    request: PaymentRequest,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, Any]:
    registration = await lifecycle.confirm_payment(
        tournament_id,
        player_id,
        request.amount,
        request.method,
        notes=request.notes,
        actor_id=actor_id,
    )
    return registration.to_dict()


@router.post("/{tournament_id}/players/{player_id}/no-show")
async def mark_no_show(
    tournament_id: str,
    player_id: str,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, Any]:
    return (await lifecycle.mark_no_show(tournament_id, player_id, actor_id)).to_dict()


@router.post("/{tournament_id}/players/{player_id}/restore")
async def restore_player(
    tournament_id: str,
    player_id: str,
    request: Optional[RestoreRequest] = None,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, Any]:
    request = request or RestoreRequest()
    registration = await lifecycle.restore(
        tournament_id,
        player_id,
        table_number=request.table_number,
        seat_number=request.seat_number,
        actor_id=actor_id,
    )
    return registration.to_dict()


@router.post("/{tournament_id}/players/{player_id}/eliminate")
async def eliminate_player(
    tournament_id: str,
    player_id: str,
    request: Optional[EliminateRequest] = None,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, Any]:
    request = request or EliminateRequest()
    outcome = await lifecycle.eliminate_or_finish(
        tournament_id,
        player_id,
        finish_place=request.finish_place,
        actor_id=actor_id,
    )
    return outcome.to_dict()


@router.post("/{tournament_id}/players/{player_id}/bonus")
async def add_bonus(
    tournament_id: str,
    player_id: str,
    request: BonusRequest,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, Any]:
    registration = await lifecycle.add_bonus(
        tournament_id,
        player_id,
        request.amount,
        reason=request.reason,
        actor_id=actor_id,
    )
    return registration.to_dict()


# =============================================================================
# Query Endpoints
# =============================================================================


@router.get("/{tournament_id}/seating")
async def get_seating(
    tournament_id: str,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
) -> Dict[str, Any]:
    seating = await lifecycle.get_seating(tournament_id)
    return {"seating": {p: s.to_dict() for p, s in sorted(seating.items())}}


@router.get("/{tournament_id}/stats")
async def get_stats(
    tournament_id: str,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
) -> Dict[str, Any]:
    return (await lifecycle.get_stats(tournament_id)).to_dict()


@router.get("/{tournament_id}/results")
async def get_results(
    tournament_id: str,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
) -> Dict[str, Any]:
    results = await lifecycle.get_results(tournament_id)
    return {"results": [r.to_dict() for r in results]}


@router.get("/{tournament_id}/actions")
async def get_actions(
    tournament_id: str,
    lifecycle: TournamentLifecycle = Depends(get_lifecycle),
) -> Dict[str, Any]:
    actions = await lifecycle.get_actions(tournament_id)
    return {"actions": [a.to_dict() for a in actions]}
