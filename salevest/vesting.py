# salevest/vesting.py
"""Vesting engine: global curve parameters, per-purchase schedules, claims.

Every schedule follows the one live parameter record. Changing the
parameters moves the derived amounts of all schedules, existing ones
included. Two payout buckets exist per schedule and are tracked apart:

- the TGE bucket, ``total * tge_bps // 10000``, claimable once at/after
  ``tge_time``;
- the linear bucket, 0 until ``start + cliff``, then growing linearly to
  ``total`` over ``duration`` seconds; paid incrementally via ``released``.

The engine never adds the two buckets up, so a beneficiary who drains both
receives ``total + tge_amount``.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from salevest import events, models
from salevest.access import AccessControl, VEST_MANAGER_ROLE, normalize_address
from salevest.custody import CustodyToken
from salevest.errors import (
    AuthorizationError,
    StateError,
    TemporalError,
    TransferFailedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

BASIS_POINTS = 10_000
CONFIG_ID = 1


def _uint(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer")
    if value < 0:
        raise ValidationError(f"{name} must be >= 0")
    return value


@dataclass(frozen=True)
class VestingParameters:
    cliff_seconds: int
    start_time: int
    duration_seconds: int
    tge_time: int
    tge_basis_points: int

    @property
    def cliff_end(self) -> int:
        return self.start_time + self.cliff_seconds

    @property
    def vesting_end(self) -> int:
        return self.cliff_end + self.duration_seconds


ZERO_PARAMETERS = VestingParameters(0, 0, 0, 0, 0)


def vested_amount(total_amount: int, params: VestingParameters, now: int) -> int:
    if now < params.cliff_end:
        return 0
    if now >= params.vesting_end:
        return total_amount
    # duration > 0 here, otherwise vesting_end == cliff_end was caught above
    return total_amount * (now - params.cliff_end) // params.duration_seconds


def tge_amount(total_amount: int, params: VestingParameters) -> int:
    return total_amount * params.tge_basis_points // BASIS_POINTS


def cliff_passed(params: VestingParameters, now: int) -> bool:
    return now >= params.cliff_end


@dataclass(frozen=True)
class ScheduleInfo:
    id: int
    beneficiary: str
    total_amount: int
    tge_amount: int
    released: int
    tge_claimed: bool
    cliff_seconds: int
    start_time: int
    duration_seconds: int
    tge_time: int
    tge_basis_points: int
    vested: int
    claimable: int
    cliff_passed: bool


class VestingEngine:
    SCOPE = "vesting"

    def __init__(
        self,
        *,
        address: str,
        token: CustodyToken,
        time_provider: Callable[[], int] | None = None,
    ):
        self.address = normalize_address(address)
        self.token = token
        self.access = AccessControl(self.SCOPE)
        self._time_provider = time_provider or (lambda: int(time.time()))

    def _current_time(self) -> int:
        timestamp = self._time_provider()
        try:
            return int(timestamp)
        except (TypeError, ValueError) as exc:
            raise ValueError("time_provider must return an integer timestamp") from exc

    # -------- Config --------

    def is_initialized(self, db: Session) -> bool:
        return db.get(models.VestingConfig, CONFIG_ID) is not None

    def initialize(self, db: Session) -> bool:
        """Create the global record once; returns False if it already exists."""
        if self.is_initialized(db):
            return False
        db.add(
            models.VestingConfig(
                id=CONFIG_ID,
                token_address=self.token.address,
                cliff_seconds=0,
                start_time=0,
                duration_seconds=0,
                tge_time=0,
                tge_basis_points=0,
                current_schedule_id=0,
            )
        )
        db.flush()
        logger.info("Vesting engine %s initialized for token %s", self.address, self.token.address)
        return True

    def _config(self, db: Session, *, lock: bool = False) -> models.VestingConfig:
        self.initialize(db)
        if lock:
            return db.get(models.VestingConfig, CONFIG_ID, with_for_update=True, populate_existing=True)
        return db.get(models.VestingConfig, CONFIG_ID)

    def token_address(self, db: Session) -> str:
        row = db.get(models.VestingConfig, CONFIG_ID)
        if row is not None and row.token_address:
            return row.token_address
        return self.token.address

    def get_vesting_parameters(self, db: Session) -> VestingParameters:
        row = db.get(models.VestingConfig, CONFIG_ID)
        if row is None:
            return ZERO_PARAMETERS
        return VestingParameters(
            cliff_seconds=row.cliff_seconds,
            start_time=row.start_time,
            duration_seconds=row.duration_seconds,
            tge_time=row.tge_time,
            tge_basis_points=row.tge_basis_points,
        )

    def set_vesting_parameters(
        self,
        db: Session,
        *,
        caller: str,
        cliff_seconds: int,
        start_time: int,
        duration_seconds: int,
        tge_time: int,
        tge_basis_points: int,
    ) -> VestingParameters:
        caller = normalize_address(caller)
        with db.begin_nested():
            self.access.require_not_paused(db)
            self.access.require_role(db, VEST_MANAGER_ROLE, caller)

            values = {
                "cliff_seconds": _uint(cliff_seconds, "cliff_seconds"),
                "start_time": _uint(start_time, "start_time"),
                "duration_seconds": _uint(duration_seconds, "duration_seconds"),
                "tge_time": _uint(tge_time, "tge_time"),
                "tge_basis_points": _uint(tge_basis_points, "tge_basis_points"),
            }
            if values["tge_basis_points"] > BASIS_POINTS:
                raise ValidationError("Invalid tge percentage")

            row = self._config(db, lock=True)
            for key, value in values.items():
                setattr(row, key, value)
            db.flush()
            events.emit(db, self.SCOPE, "VestingParametersUpdated", **values)

        logger.info("Vesting parameters updated by %s: %s", caller, values)
        return self.get_vesting_parameters(db)

    # -------- Schedules --------

    def current_schedule_id(self, db: Session) -> int:
        row = db.get(models.VestingConfig, CONFIG_ID)
        return row.current_schedule_id if row else 0

    def create_schedule(
        self,
        db: Session,
        *,
        caller: str,
        beneficiary: str,
        total_amount: int,
    ) -> models.VestingSchedule:
        caller = normalize_address(caller)
        with db.begin_nested():
            self.access.require_not_paused(db)
            self.access.require_role(db, VEST_MANAGER_ROLE, caller)

            beneficiary = normalize_address(beneficiary)
            amount = _uint(total_amount, "total_amount")
            if amount == 0:
                raise ValidationError("Invalid token amount")

            config = self._config(db, lock=True)
            schedule_id = config.current_schedule_id + 1
            config.current_schedule_id = schedule_id

            row = models.VestingSchedule(
                id=schedule_id,
                beneficiary=beneficiary,
                total_amount=amount,
                released=0,
                tge_claimed=False,
            )
            db.add(row)
            db.flush()
            events.emit(
                db,
                self.SCOPE,
                "ScheduleCreated",
                id=schedule_id,
                beneficiary=beneficiary,
                total_amount=amount,
            )

        logger.info("Schedule %s created: %s tokens for %s", schedule_id, amount, beneficiary)
        return row

    def _schedule(self, db: Session, schedule_id: int, *, lock: bool = False) -> models.VestingSchedule:
        row = None
        if isinstance(schedule_id, int) and not isinstance(schedule_id, bool) and schedule_id > 0:
            if lock:
                # concurrent claims on one schedule serialize here
                row = db.get(models.VestingSchedule, schedule_id, with_for_update=True, populate_existing=True)
            else:
                row = db.get(models.VestingSchedule, schedule_id)
        if row is None:
            raise ValidationError("Invalid schedule id")
        return row

    def get_schedule_ids_of_beneficiary(self, db: Session, beneficiary: str) -> List[int]:
        rows = (
            db.query(models.VestingSchedule.id)
            .filter(models.VestingSchedule.beneficiary == normalize_address(beneficiary))
            .order_by(models.VestingSchedule.id)
            .all()
        )
        return [r[0] for r in rows]

    def get_schedule(self, db: Session, schedule_id: int, *, now: Optional[int] = None) -> ScheduleInfo:
        schedule = self._schedule(db, schedule_id)
        params = self.get_vesting_parameters(db)
        if now is None:
            now = self._current_time()

        vested = vested_amount(schedule.total_amount, params, now)
        return ScheduleInfo(
            id=schedule.id,
            beneficiary=schedule.beneficiary,
            total_amount=schedule.total_amount,
            # the TGE bucket is reported only once it has opened
            tge_amount=tge_amount(schedule.total_amount, params) if now >= params.tge_time else 0,
            released=schedule.released,
            tge_claimed=schedule.tge_claimed,
            cliff_seconds=params.cliff_seconds,
            start_time=params.start_time,
            duration_seconds=params.duration_seconds,
            tge_time=params.tge_time,
            tge_basis_points=params.tge_basis_points,
            vested=vested,
            claimable=max(0, vested - schedule.released),
            cliff_passed=cliff_passed(params, now),
        )

    def get_claimable_amount(self, db: Session, schedule_id: int, *, now: Optional[int] = None) -> int:
        return self.get_schedule(db, schedule_id, now=now).claimable

    # -------- Claims --------

    def _pay(self, db: Session, to: str, amount: int) -> None:
        if not self.token.transfer(db, sender=self.address, to=to, amount=amount):
            raise TransferFailedError("Token transfer failed")

    def claim_tge(self, db: Session, *, caller: str, schedule_id: int) -> int:
        caller = normalize_address(caller)
        with db.begin_nested():
            self.access.require_not_paused(db)
            schedule = self._schedule(db, schedule_id, lock=True)
            if schedule.beneficiary != caller:
                raise AuthorizationError("Sender should be beneficiary")

            params = self.get_vesting_parameters(db)
            if self._current_time() < params.tge_time:
                raise TemporalError("Invalid tge timestamp")
            if schedule.tge_claimed:
                raise StateError("Already claimed")

            amount = tge_amount(schedule.total_amount, params)
            self._pay(db, schedule.beneficiary, amount)
            schedule.tge_claimed = True
            db.flush()
            events.emit(
                db,
                self.SCOPE,
                "TgeClaimed",
                id=schedule.id,
                beneficiary=schedule.beneficiary,
                amount=amount,
            )

        logger.info("Schedule %s: TGE amount %s claimed by %s", schedule_id, amount, caller)
        return amount

    def claim(self, db: Session, *, caller: str, schedule_id: int) -> int:
        caller = normalize_address(caller)
        with db.begin_nested():
            self.access.require_not_paused(db)
            schedule = self._schedule(db, schedule_id, lock=True)
            if schedule.beneficiary != caller:
                raise AuthorizationError("Sender should be beneficiary")

            params = self.get_vesting_parameters(db)
            vested = vested_amount(schedule.total_amount, params, self._current_time())
            claimable = vested - schedule.released
            if claimable <= 0:
                raise TemporalError("Claimable amount is zero")

            self._pay(db, schedule.beneficiary, claimable)
            schedule.released = schedule.released + claimable
            db.flush()
            events.emit(
                db,
                self.SCOPE,
                "Claimed",
                id=schedule.id,
                beneficiary=schedule.beneficiary,
                amount=claimable,
            )

        logger.info("Schedule %s: %s released to %s", schedule_id, claimable, caller)
        return claimable

    # -------- Custody --------

    def custody_balance(self, db: Session) -> int:
        return self.token.balance_of(db, self.address)

    def outstanding_obligations(self, db: Session) -> int:
        """Everything still payable under the live parameters, both buckets."""
        params = self.get_vesting_parameters(db)
        total = 0
        for schedule in db.query(models.VestingSchedule).all():
            total += schedule.total_amount - schedule.released
            if not schedule.tge_claimed:
                total += tge_amount(schedule.total_amount, params)
        return total

    # -------- Pause --------

    def pause(self, db: Session, *, caller: str) -> None:
        self.access.pause(db, caller=caller)

    def unpause(self, db: Session, *, caller: str) -> None:
        self.access.unpause(db, caller=caller)
