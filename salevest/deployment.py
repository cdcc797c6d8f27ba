# salevest/deployment.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Dict

from sqlalchemy.orm import Session

from salevest.access import (
    DEFAULT_ADMIN_ROLE,
    OPERATOR_ROLE,
    PAUSER_ROLE,
    VEST_MANAGER_ROLE,
    normalize_address,
)
from salevest.core.config import Settings, settings as default_settings
from salevest.custody import CustodyToken
from salevest.sale import TokenSale
from salevest.vesting import VestingEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Deployment:
    token: CustodyToken
    vesting: VestingEngine
    sale: TokenSale


def build_deployment(
    cfg: Settings | None = None,
    *,
    time_provider: Callable[[], int] | None = None,
) -> Deployment:
    """Wire token, engine and sale objects. Touches no state."""
    cfg = cfg or default_settings
    token = CustodyToken(cfg.TOKEN_ADDRESS, decimals=cfg.TOKEN_DECIMALS)
    vesting = VestingEngine(address=cfg.VESTING_ADDRESS, token=token, time_provider=time_provider)
    sale = TokenSale(address=cfg.SALE_ADDRESS, vesting=vesting)
    return Deployment(token=token, vesting=vesting, sale=sale)


def bootstrap(
    db: Session,
    deployment: Deployment,
    *,
    admin: str,
    initial_custody: int = 0,
    parameters: Optional[Dict[str, int]] = None,
) -> bool:
    """First-run setup; returns False when the database is already set up.

    - admin gets DEFAULT_ADMIN / PAUSER / OPERATOR on the sale and
      DEFAULT_ADMIN / PAUSER / VEST_MANAGER on the engine
    - the sale's own address gets VEST_MANAGER on the engine
    - the engine is funded with ``initial_custody``
    """
    admin = normalize_address(admin)
    sale, vesting, token = deployment.sale, deployment.vesting, deployment.token

    if vesting.is_initialized(db):
        logger.info("Deployment already bootstrapped; skipping")
        return False

    with db.begin_nested():
        vesting.initialize(db)

        for role in (DEFAULT_ADMIN_ROLE, PAUSER_ROLE, OPERATOR_ROLE):
            sale.access.setup_role(db, role, admin)
        for role in (DEFAULT_ADMIN_ROLE, PAUSER_ROLE, VEST_MANAGER_ROLE):
            vesting.access.setup_role(db, role, admin)
        vesting.access.setup_role(db, VEST_MANAGER_ROLE, sale.address)

        if initial_custody:
            token.mint(db, to=vesting.address, amount=int(initial_custody))

        if parameters:
            vesting.set_vesting_parameters(db, caller=admin, **parameters)

    logger.info(
        "Bootstrapped sale=%s vesting=%s token=%s admin=%s custody=%s",
        sale.address,
        vesting.address,
        token.address,
        admin,
        initial_custody,
    )
    return True
