# salevest/access.py
"""Scoped role membership and pause switch.

Each component (``sale``, ``vesting``) owns its own role table slice and its
own pause flag, the way two separately deployed contracts would:

- ``DEFAULT_ADMIN_ROLE`` administers every role of its scope.
- ``PAUSER_ROLE`` may flip the pause flag.
- Grant/revoke are idempotent and only emit events on change.
- Mutating operations call ``require_not_paused`` before touching state.
"""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from salevest import events, models
from salevest.errors import (
    AccessControlUnauthorizedAccount,
    PausedError,
    StateError,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_ROLE = "DEFAULT_ADMIN_ROLE"
PAUSER_ROLE = "PAUSER_ROLE"
OPERATOR_ROLE = "OPERATOR_ROLE"
VEST_MANAGER_ROLE = "VEST_MANAGER_ROLE"

ZERO_ADDRESS = "0x" + "0" * 40


def normalize_address(address: str | None) -> str:
    if address is None:
        raise ValidationError("Invalid address")
    addr = str(address).strip().lower()
    if not addr or set(addr.removeprefix("0x")) <= {"0"}:
        raise ValidationError("Invalid address")
    return addr


class AccessControl:
    def __init__(self, scope: str):
        self.scope = scope

    # -------- Roles --------

    def has_role(self, db: Session, role: str, account: str) -> bool:
        row = (
            db.query(models.RoleMember.id)
            .filter(
                models.RoleMember.scope == self.scope,
                models.RoleMember.role == role,
                models.RoleMember.account == normalize_address(account),
            )
            .first()
        )
        return row is not None

    def require_role(self, db: Session, role: str, account: str) -> None:
        if not self.has_role(db, role, account):
            raise AccessControlUnauthorizedAccount(account, role)

    def members(self, db: Session, role: str) -> list[str]:
        rows = (
            db.query(models.RoleMember.account)
            .filter(models.RoleMember.scope == self.scope, models.RoleMember.role == role)
            .order_by(models.RoleMember.id)
            .all()
        )
        return [r[0] for r in rows]

    def _grant(self, db: Session, role: str, account: str, sender: str) -> bool:
        account = normalize_address(account)
        if self.has_role(db, role, account):
            return False
        db.add(models.RoleMember(scope=self.scope, role=role, account=account))
        db.flush()
        events.emit(db, self.scope, "RoleGranted", role=role, account=account, sender=sender)
        return True

    def grant_role(self, db: Session, *, caller: str, role: str, account: str) -> bool:
        """Returns True if the membership was created."""
        caller = normalize_address(caller)
        with db.begin_nested():
            self.require_role(db, DEFAULT_ADMIN_ROLE, caller)
            return self._grant(db, role, account, caller)

    def revoke_role(self, db: Session, *, caller: str, role: str, account: str) -> bool:
        caller = normalize_address(caller)
        account = normalize_address(account)
        with db.begin_nested():
            self.require_role(db, DEFAULT_ADMIN_ROLE, caller)
            row = (
                db.query(models.RoleMember)
                .filter(
                    models.RoleMember.scope == self.scope,
                    models.RoleMember.role == role,
                    models.RoleMember.account == account,
                )
                .first()
            )
            if row is None:
                return False
            db.delete(row)
            db.flush()
            events.emit(db, self.scope, "RoleRevoked", role=role, account=account, sender=caller)
            return True

    def setup_role(self, db: Session, role: str, account: str) -> bool:
        """Unchecked grant, only for deployment bootstrap."""
        return self._grant(db, role, account, "bootstrap")

    # -------- Pause --------

    def _pause_row(self, db: Session) -> models.PauseState:
        row = db.get(models.PauseState, self.scope)
        if row is None:
            row = models.PauseState(scope=self.scope, paused=False)
            db.add(row)
            db.flush()
        return row

    def is_paused(self, db: Session) -> bool:
        row = db.get(models.PauseState, self.scope)
        return bool(row and row.paused)

    def require_not_paused(self, db: Session) -> None:
        if self.is_paused(db):
            raise PausedError(self.scope)

    def pause(self, db: Session, *, caller: str) -> None:
        caller = normalize_address(caller)
        with db.begin_nested():
            self.require_role(db, PAUSER_ROLE, caller)
            row = self._pause_row(db)
            if row.paused:
                raise StateError("EnforcedPause")
            row.paused = True
            db.flush()
            events.emit(db, self.scope, "Paused", account=caller)
        logger.warning("%s paused by %s", self.scope, caller)

    def unpause(self, db: Session, *, caller: str) -> None:
        caller = normalize_address(caller)
        with db.begin_nested():
            self.require_role(db, PAUSER_ROLE, caller)
            row = self._pause_row(db)
            if not row.paused:
                raise StateError("ExpectedPause")
            row.paused = False
            db.flush()
            events.emit(db, self.scope, "Unpaused", account=caller)
        logger.info("%s unpaused by %s", self.scope, caller)
