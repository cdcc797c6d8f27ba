# salevest/custody.py
# Off-chain custody of the single sale token. The vesting engine holds the
# pool; claims move balance from the engine to beneficiaries.

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from salevest import events, models
from salevest.access import normalize_address
from salevest.errors import ValidationError

logger = logging.getLogger(__name__)

SCOPE = "token"


def _amount(x) -> int:
    if isinstance(x, bool) or not isinstance(x, int):
        raise ValidationError("amount must be an integer number of base units")
    return x


class CustodyToken:
    def __init__(self, address: str, *, decimals: int = 18):
        self.address = normalize_address(address)
        self.decimals = decimals

    def _row(
        self, db: Session, account: str, *, create: bool = False, lock: bool = False
    ) -> models.TokenBalance | None:
        if lock:
            row = db.get(models.TokenBalance, account, with_for_update=True, populate_existing=True)
        else:
            row = db.get(models.TokenBalance, account)
        if row is None and create:
            row = models.TokenBalance(account=account, balance=0)
            db.add(row)
            db.flush()
        return row

    def balance_of(self, db: Session, account: str) -> int:
        row = self._row(db, normalize_address(account))
        return row.balance if row else 0

    def total_supply(self, db: Session) -> int:
        return sum(r.balance for r in db.query(models.TokenBalance).all())

    def mint(self, db: Session, *, to: str, amount: int) -> None:
        to = normalize_address(to)
        amt = _amount(amount)
        if amt <= 0:
            raise ValidationError("amount must be > 0")
        with db.begin_nested():
            row = self._row(db, to, create=True)
            row.balance = (row.balance or 0) + amt
            db.flush()
            events.emit(db, SCOPE, "Mint", to=to, amount=amt)

    def transfer(self, db: Session, *, sender: str, to: str, amount: int) -> bool:
        """Move ``amount`` from ``sender`` to ``to``.

        Returns False (and changes nothing) when the sender's balance is short.
        """
        sender = normalize_address(sender)
        to = normalize_address(to)
        amt = _amount(amount)
        if amt < 0:
            raise ValidationError("amount must be >= 0")

        # fixed lock order so opposite-direction transfers cannot deadlock
        for account in sorted({sender, to}):
            self._row(db, account, lock=True)

        available = self.balance_of(db, sender)
        if available < amt:
            logger.warning("transfer declined: %s has %s, needs %s", sender, available, amt)
            return False

        with db.begin_nested():
            src = self._row(db, sender, create=True)
            dst = self._row(db, to, create=True)
            src.balance = src.balance - amt
            dst.balance = (dst.balance or 0) + amt
            db.flush()
            events.emit(db, SCOPE, "Transfer", sender=sender, to=to, amount=amt)
        return True
