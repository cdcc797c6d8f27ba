# salevest/sale.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence

from sqlalchemy.orm import Session

from salevest import events, models
from salevest.access import AccessControl, OPERATOR_ROLE, normalize_address
from salevest.errors import (
    AuthorizationError,
    CapExceededError,
    ValidationError,
)
from salevest.vesting import VestingEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsigneeInfo:
    address: str
    total_token_amount: int
    sold_token_amount: int


@dataclass(frozen=True)
class PurchaseInfo:
    consignee_address: str
    buyer_address: str
    token_amount: int
    schedule_id: int | None


def _amount(x, name: str = "amount") -> int:
    if isinstance(x, bool) or not isinstance(x, int):
        raise ValidationError(f"{name} must be an integer number of base units")
    if x <= 0:
        raise ValidationError(f"{name} must be > 0")
    return x


def _pairs(left: Sequence, right: Sequence) -> list:
    if len(left) != len(right):
        raise ValidationError("Array length mismatch")
    return list(zip(left, right))


def _consignee_info(row: models.Consignee) -> ConsigneeInfo:
    return ConsigneeInfo(
        address=row.address,
        total_token_amount=row.total_token_amount,
        sold_token_amount=row.sold_token_amount,
    )


def _purchase_info(row: models.PurchaseRecord) -> PurchaseInfo:
    return PurchaseInfo(
        consignee_address=row.consignee_address,
        buyer_address=row.buyer_address,
        token_amount=row.token_amount,
        schedule_id=row.schedule_id,
    )


class TokenSale:
    """Consignee caps, offline purchases, and the vesting hand-off.

    The sale calls ``vesting.create_schedule`` under its own address, which
    therefore needs ``VEST_MANAGER_ROLE`` on the engine.
    """

    SCOPE = "sale"

    def __init__(self, *, address: str, vesting: VestingEngine):
        self.address = normalize_address(address)
        self.vesting = vesting
        self.access = AccessControl(self.SCOPE)

    # -------- Consignees --------

    def _get_consignee(self, db: Session, address: str, *, lock: bool = False) -> models.Consignee | None:
        query = db.query(models.Consignee).filter(models.Consignee.address == normalize_address(address))
        if lock:
            query = query.with_for_update().populate_existing()
        return query.first()

    def is_consignee(self, db: Session, address: str) -> bool:
        return self._get_consignee(db, address) is not None

    def _add_consignee(self, db: Session, address: str, total_token_amount: int) -> models.Consignee:
        address = normalize_address(address)
        amount = _amount(total_token_amount, "total_token_amount")
        if self._get_consignee(db, address) is not None:
            raise ValidationError("Consignee already registered")

        row = models.Consignee(address=address, total_token_amount=amount, sold_token_amount=0)
        db.add(row)
        db.flush()
        events.emit(db, self.SCOPE, "ConsigneeAdded", address=address, total_token_amount=amount)
        return row

    def add_consignee(self, db: Session, *, caller: str, address: str, total_token_amount: int) -> ConsigneeInfo:
        caller = normalize_address(caller)
        with db.begin_nested():
            self.access.require_not_paused(db)
            self.access.require_role(db, OPERATOR_ROLE, caller)
            row = self._add_consignee(db, address, total_token_amount)

        logger.info("Consignee %s added with cap %s", row.address, row.total_token_amount)
        return _consignee_info(row)

    def batch_add_consignee(
        self,
        db: Session,
        *,
        caller: str,
        addresses: Sequence[str],
        amounts: Sequence[int],
    ) -> List[ConsigneeInfo]:
        caller = normalize_address(caller)
        with db.begin_nested():
            self.access.require_not_paused(db)
            self.access.require_role(db, OPERATOR_ROLE, caller)
            rows = [self._add_consignee(db, a, n) for a, n in _pairs(addresses, amounts)]

        logger.info("Batch added %d consignees", len(rows))
        return [_consignee_info(r) for r in rows]

    def get_consignee_info(self, db: Session, address: str) -> ConsigneeInfo:
        row = self._get_consignee(db, address)
        if row is None:
            # unregistered reads as an empty allowance
            return ConsigneeInfo(address=normalize_address(address), total_token_amount=0, sold_token_amount=0)
        return _consignee_info(row)

    def _all_consignee_rows(self, db: Session) -> List[models.Consignee]:
        return db.query(models.Consignee).order_by(models.Consignee.id).all()

    def get_all_consignee_info(self, db: Session) -> List[ConsigneeInfo]:
        return [_consignee_info(r) for r in self._all_consignee_rows(db)]

    def get_all_consignees(self, db: Session) -> List[str]:
        return [r.address for r in self._all_consignee_rows(db)]

    def get_all_consignees_length(self, db: Session) -> int:
        return db.query(models.Consignee).count()

    # -------- Purchases --------

    def _create_offline_purchase(
        self,
        db: Session,
        consignee: models.Consignee,
        buyer: str,
        amount: int,
    ) -> models.PurchaseRecord:
        buyer = normalize_address(buyer)
        amount = _amount(amount)
        if consignee.sold_token_amount + amount > consignee.total_token_amount:
            raise CapExceededError("Exceeds consignee token amount")

        consignee.sold_token_amount = consignee.sold_token_amount + amount

        schedule = self.vesting.create_schedule(
            db,
            caller=self.address,
            beneficiary=buyer,
            total_amount=amount,
        )

        row = models.PurchaseRecord(
            consignee_address=consignee.address,
            buyer_address=buyer,
            token_amount=amount,
            schedule_id=schedule.id,
        )
        db.add(row)
        db.flush()
        events.emit(db, self.SCOPE, "PurchaseCreated", consignee=consignee.address, buyer=buyer, amount=amount)
        return row

    def _require_consignee(self, db: Session, address: str, message: str) -> models.Consignee:
        row = self._get_consignee(db, address, lock=True)
        if row is None:
            raise AuthorizationError(message)
        return row

    def consignee_create_offline_purchase(self, db: Session, *, caller: str, buyer: str, amount: int) -> PurchaseInfo:
        caller = normalize_address(caller)
        with db.begin_nested():
            self.access.require_not_paused(db)
            consignee = self._require_consignee(db, caller, "Caller is not a registered consignee")
            row = self._create_offline_purchase(db, consignee, buyer, amount)

        logger.info("Purchase by consignee %s: %s tokens for %s", caller, row.token_amount, row.buyer_address)
        return _purchase_info(row)

    def admin_create_offline_purchase(
        self,
        db: Session,
        *,
        caller: str,
        consignee: str,
        buyer: str,
        amount: int,
    ) -> PurchaseInfo:
        caller = normalize_address(caller)
        with db.begin_nested():
            self.access.require_not_paused(db)
            self.access.require_role(db, OPERATOR_ROLE, caller)
            row = self._create_offline_purchase(db, self._known_consignee(db, consignee), buyer, amount)

        logger.info(
            "Purchase by operator %s for consignee %s: %s tokens for %s",
            caller,
            row.consignee_address,
            row.token_amount,
            row.buyer_address,
        )
        return _purchase_info(row)

    def _known_consignee(self, db: Session, address: str) -> models.Consignee:
        row = self._get_consignee(db, address, lock=True)
        if row is None:
            raise ValidationError("Consignee is not registered")
        return row

    def batch_consignee_create_offline_purchase(
        self,
        db: Session,
        *,
        caller: str,
        buyers: Sequence[str],
        amounts: Sequence[int],
    ) -> List[PurchaseInfo]:
        caller = normalize_address(caller)
        with db.begin_nested():
            self.access.require_not_paused(db)
            consignee = self._require_consignee(db, caller, "Caller is not a registered consignee")
            rows = [self._create_offline_purchase(db, consignee, b, n) for b, n in _pairs(buyers, amounts)]

        logger.info("Batch purchase by consignee %s: %d records", caller, len(rows))
        return [_purchase_info(r) for r in rows]

    def batch_admin_create_offline_purchase(
        self,
        db: Session,
        *,
        caller: str,
        consignee: str,
        buyers: Sequence[str],
        amounts: Sequence[int],
    ) -> List[PurchaseInfo]:
        caller = normalize_address(caller)
        with db.begin_nested():
            self.access.require_not_paused(db)
            self.access.require_role(db, OPERATOR_ROLE, caller)
            target = self._known_consignee(db, consignee)
            rows = [self._create_offline_purchase(db, target, b, n) for b, n in _pairs(buyers, amounts)]

        logger.info("Batch purchase by operator %s for %s: %d records", caller, target.address, len(rows))
        return [_purchase_info(r) for r in rows]

    def get_user_purchase_info(self, db: Session, buyer: str) -> List[PurchaseInfo]:
        rows = (
            db.query(models.PurchaseRecord)
            .filter(models.PurchaseRecord.buyer_address == normalize_address(buyer))
            .order_by(models.PurchaseRecord.id)
            .all()
        )
        return [_purchase_info(r) for r in rows]

    def get_user_purchase_info_by_consignee_address(self, db: Session, consignee: str) -> List[PurchaseInfo]:
        rows = (
            db.query(models.PurchaseRecord)
            .filter(models.PurchaseRecord.consignee_address == normalize_address(consignee))
            .order_by(models.PurchaseRecord.id)
            .all()
        )
        return [_purchase_info(r) for r in rows]

    # -------- Pause --------

    def pause(self, db: Session, *, caller: str) -> None:
        self.access.pause(db, caller=caller)

    def unpause(self, db: Session, *, caller: str) -> None:
        self.access.unpause(db, caller=caller)
