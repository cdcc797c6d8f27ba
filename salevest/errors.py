# salevest/errors.py
from __future__ import annotations


class SaleError(Exception):
    """Base class for every aborted ledger / vesting operation.

    The message is the human readable reason; ``code`` is a stable
    identifier the HTTP layer returns to clients.
    """

    code = "sale_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthorizationError(SaleError):
    code = "unauthorized"


class AccessControlUnauthorizedAccount(AuthorizationError):
    code = "missing_role"

    def __init__(self, account: str, role: str):
        super().__init__(f"AccessControlUnauthorizedAccount({account}, {role})")
        self.account = account
        self.role = role


class ValidationError(SaleError, ValueError):
    code = "invalid_input"


class CapExceededError(SaleError):
    code = "cap_exceeded"


class TemporalError(SaleError):
    code = "too_early"


class StateError(SaleError):
    code = "invalid_state"


class TransferFailedError(SaleError):
    code = "transfer_failed"


class PausedError(SaleError):
    code = "paused"

    def __init__(self, scope: str):
        super().__init__(f"EnforcedPause({scope})")
        self.scope = scope
