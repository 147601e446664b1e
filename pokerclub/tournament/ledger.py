"""
Registration Ledger.

Per-player status machine for one tournament:

    Registered --confirm_payment--> Paid --check_in--> Playing --eliminate--> Eliminated
    Registered/Paid --mark_no_show--> NoShow --restore--> Registered
    Registered/Paid --unregister--> (entry removed)
    Eliminated --restore--> Playing

The ledger works on the lifecycle's working copy of a TournamentSnapshot.
It knows nothing about the tournament lifecycle state; the lifecycle checks
that before calling in.
"""

from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple, Union

from pokerclub.utils.errors import (
    AlreadyRegistered,
    DuplicatePlace,
    InvalidArgument,
    InvalidTransition,
    NotFound,
    TournamentFull,
)
from .models import (
    PaymentMethod,
    PaymentRecord,
    Registration,
    RegistrationStatus,
    RegistrationType,
    TournamentSnapshot,
    utcnow,
)
from .points import PointsCalculator, default_calculator, resolve_points

# Statuses that mean the buy-in has been collected
PAID_STATUSES = (
    RegistrationStatus.PAID,
    RegistrationStatus.PLAYING,
    RegistrationStatus.ELIMINATED,
)


def parse_amount(amount: Union[Decimal, int, float, str]) -> Decimal:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise InvalidArgument(
            f"Invalid payment amount: {amount!r}", details={"amount": str(amount)}
        ) from None
    if not value.is_finite() or value <= 0:
        raise InvalidArgument(
            "Payment amount must be greater than 0", details={"amount": str(amount)}
        )
    return value


def parse_method(method: Union[PaymentMethod, str]) -> PaymentMethod:
    try:
        return PaymentMethod(method)
    except ValueError:
        raise InvalidArgument(
            f"Unknown payment method: {method!r}",
            details={"method": str(method), "allowed": [m.value for m in PaymentMethod]},
        ) from None


class RegistrationLedger:
    """Status changes, payment records and finish places for one snapshot."""

    def __init__(
        self,
        snapshot: TournamentSnapshot,
        calculator: PointsCalculator = default_calculator,
    ):
        self.snapshot = snapshot
        self.calculator = calculator

    # =========================================================================
    # Lookups
    # =========================================================================

    def get(self, player_id: str) -> Registration:
        registration = self.snapshot.registrations.get(player_id)
        if registration is None:
            raise NotFound(
                f"Player {player_id} is not registered",
                details={
                    "tournamentId": self.snapshot.tournament_id,
                    "playerId": player_id,
                },
            )
        return registration

    def _put(self, registration: Registration) -> Registration:
        self.snapshot.registrations[registration.player_id] = registration
        return registration

    def count(self, *statuses: RegistrationStatus) -> int:
        return len(self.snapshot.players_with(*statuses))

    def holding_capacity(self) -> int:
        """Registrations that occupy a capacity slot (everyone but no-shows)."""
        return sum(
            1
            for reg in self.snapshot.registrations.values()
            if reg.status != RegistrationStatus.NO_SHOW
        )

    def participant_count(self) -> int:
        """Players who took part in play: Playing + Eliminated."""
        return self.count(RegistrationStatus.PLAYING, RegistrationStatus.ELIMINATED)

    def used_places(self) -> dict:
        return {
            reg.finish_place: reg.player_id
            for reg in self.snapshot.registrations.values()
            if reg.status == RegistrationStatus.ELIMINATED
            and reg.finish_place is not None
        }

    def next_finish_place(self) -> Optional[int]:
        """Highest place in 1..participants nobody holds yet."""
        used = self.used_places()
        for place in range(self.participant_count(), 0, -1):
            if place not in used:
                return place
        return None

    # =========================================================================
    # Registration and payment
    # =========================================================================

    def register(
        self,
        player_id: str,
        registration_type: RegistrationType = RegistrationType.STANDARD,
        enforce_capacity: bool = True,
    ) -> Registration:
        """
        Create a Registered entry.

        A NoShow entry is reset to Registered instead of failing.

        Raises:
            AlreadyRegistered: an entry exists and is not NoShow
            TournamentFull: enforce_capacity and every slot is held
        """
        existing = self.snapshot.registrations.get(player_id)
        if existing is not None and existing.status != RegistrationStatus.NO_SHOW:
            raise AlreadyRegistered(player_id, existing.status.value)

        capacity = self.snapshot.tournament.capacity
        if enforce_capacity and self.holding_capacity() >= capacity:
            raise TournamentFull(capacity)

        return self._put(
            Registration(
                tournament_id=self.snapshot.tournament_id,
                player_id=player_id,
                status=RegistrationStatus.REGISTERED,
                registration_type=registration_type,
                registered_at=utcnow(),
            )
        )

    def unregister(self, player_id: str) -> Registration:
        """
        Withdraw a Registered or Paid player; the entry is removed and the
        slot freed. Returns the removed registration.
        """
        registration = self.get(player_id)
        if registration.status not in (
            RegistrationStatus.REGISTERED,
            RegistrationStatus.PAID,
        ):
            raise InvalidTransition.for_state("unregister", registration.status)
        del self.snapshot.registrations[player_id]
        self.snapshot.seating.pop(player_id, None)
        return registration

    def confirm_payment(
        self,
        player_id: str,
        amount: Union[Decimal, int, float, str],
        method: Union[PaymentMethod, str],
        notes: Optional[str] = None,
        confirmed_by: Optional[str] = None,
    ) -> Tuple[Registration, bool]:
        """
        Registered -> Paid with a payment record.

        Confirming a registration that has already paid is a no-op, so two
        check-in terminals submitting the same payment both succeed.

        Returns:
            (registration, changed)
        """
        value = parse_amount(amount)
        payment_method = parse_method(method)
        registration = self.get(player_id)

        if registration.status in PAID_STATUSES:
            return registration, False
        if registration.status != RegistrationStatus.REGISTERED:
            raise InvalidTransition.for_state("confirm payment", registration.status)

        payment = PaymentRecord(
            amount=value,
            method=payment_method,
            notes=notes,
            confirmed_by=confirmed_by,
            confirmed_at=utcnow(),
        )
        return (
            self._put(registration.with_status(RegistrationStatus.PAID, payment=payment)),
            True,
        )

    def mark_no_show(self, player_id: str) -> Registration:
        registration = self.get(player_id)
        if registration.status not in (
            RegistrationStatus.REGISTERED,
            RegistrationStatus.PAID,
        ):
            raise InvalidTransition.for_state("mark no-show", registration.status)
        return self._put(registration.with_status(RegistrationStatus.NO_SHOW))

    def exclude_all_no_show(self) -> List[str]:
        """Every still-unpaid Registered player becomes NoShow."""
        affected = self.snapshot.players_with(RegistrationStatus.REGISTERED)
        for player_id in affected:
            self._put(
                self.snapshot.registrations[player_id].with_status(
                    RegistrationStatus.NO_SHOW
                )
            )
        return affected

    def restore(self, player_id: str) -> Registration:
        """
        NoShow -> Registered, or Eliminated -> Playing.

        A restored no-show takes a capacity slot again. Re-seating a restored
        Eliminated player is the caller's job.

        Raises:
            TournamentFull: the no-show's slot has been taken in the meantime
        """
        registration = self.get(player_id)
        if registration.status == RegistrationStatus.NO_SHOW:
            capacity = self.snapshot.tournament.capacity
            if self.holding_capacity() >= capacity:
                raise TournamentFull(capacity)
            return self._put(registration.with_status(RegistrationStatus.REGISTERED))
        if registration.status == RegistrationStatus.ELIMINATED:
            return self._put(
                registration.with_status(
                    RegistrationStatus.PLAYING,
                    finish_place=None,
                    points_earned=0,
                )
            )
        raise InvalidTransition.for_state("restore", registration.status)

    # =========================================================================
    # Play
    # =========================================================================

    def check_in(self) -> List[str]:
        """All Paid -> Playing. Returns the players checked in."""
        affected = self.snapshot.players_with(RegistrationStatus.PAID)
        for player_id in affected:
            self._put(
                self.snapshot.registrations[player_id].with_status(
                    RegistrationStatus.PLAYING
                )
            )
        return affected

    def check_in_player(self, player_id: str) -> Registration:
        registration = self.get(player_id)
        if registration.status != RegistrationStatus.PAID:
            raise InvalidTransition.for_state("check in", registration.status)
        return self._put(registration.with_status(RegistrationStatus.PLAYING))

    def eliminate(self, player_id: str, finish_place: Optional[int] = None) -> Registration:
        """
        Playing -> Eliminated at a finishing place; frees the seat.

        Without an explicit place the player takes the highest place still
        free. An explicit place must lie between the current number of
        active players and the number of participants.

        Raises:
            InvalidTransition: player is not Playing
            DuplicatePlace: place already held
            InvalidArgument: place out of range
        """
        registration = self.get(player_id)
        if registration.status != RegistrationStatus.PLAYING:
            raise InvalidTransition.for_state("eliminate", registration.status)

        participants = self.participant_count()
        if finish_place is None:
            finish_place = self.next_finish_place()
        else:
            if isinstance(finish_place, bool) or finish_place < 1:
                raise InvalidArgument(
                    "finish_place must be >= 1", details={"finishPlace": finish_place}
                )
            holder = self.used_places().get(finish_place)
            if holder is not None:
                raise DuplicatePlace(finish_place, holder)

            active = self.count(RegistrationStatus.PLAYING)
            if not active <= finish_place <= participants:
                raise InvalidArgument(
                    f"finish_place must be between {active} and {participants}",
                    details={"finishPlace": finish_place},
                )

        points = resolve_points(
            self.snapshot.tournament.points_mode,
            finish_place,
            participants,
            self.calculator,
        )
        self.snapshot.seating.pop(player_id, None)
        return self._put(registration.eliminated(finish_place, points))

    def add_bonus(self, player_id: str, amount: int) -> Registration:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidArgument(
                "Bonus amount must be a positive integer", details={"amount": amount}
            )
        return self._put(self.get(player_id).with_bonus(amount))

    def recompute_points(self) -> None:
        """Re-derive points_earned for every placed player from the current source."""
        participants = self.participant_count()
        points_mode = self.snapshot.tournament.points_mode
        for player_id in self.snapshot.players_with(RegistrationStatus.ELIMINATED):
            registration = self.snapshot.registrations[player_id]
            if registration.finish_place is None:
                continue
            self._put(
                registration.eliminated(
                    registration.finish_place,
                    resolve_points(
                        points_mode,
                        registration.finish_place,
                        participants,
                        self.calculator,
                    ),
                )
            )

    def reset_for_restart(self) -> List[str]:
        """
        Undo play: Playing/Eliminated -> Paid, seating cleared.

        Places, points and bonuses are cleared for everyone. NoShow and
        Registered entries keep their status.
        """
        reset = []
        for player_id, registration in list(self.snapshot.registrations.items()):
            status = registration.status
            if status in (RegistrationStatus.PLAYING, RegistrationStatus.ELIMINATED):
                status = RegistrationStatus.PAID
                reset.append(player_id)
            self._put(
                registration.with_status(
                    status,
                    finish_place=None,
                    points_earned=0,
                    bonus_points=0,
                )
            )
        self.snapshot.seating.clear()
        return reset
