from __future__ import annotations

import pytest
from sqlalchemy.orm import Query, Session

from salevest.core.config import Settings
from salevest.database import db_session, init_db, make_engine, make_sessionmaker
from salevest.deployment import bootstrap, build_deployment


def addr(n: int) -> str:
    return "0x" + format(n, "040x")


ADMIN = addr(0xA1)
SALE = addr(0x5A1E)
VESTING = addr(0xDE57)
TOKEN = addr(0x7070)

CONSIGNEE1 = addr(0xC1)
CONSIGNEE2 = addr(0xC2)
USER1 = addr(0x101)
USER2 = addr(0x102)
USER3 = addr(0x103)

ETHER = 10**18
DAY = 24 * 60 * 60

CLIFF = 180 * DAY
DURATION = 365 * DAY
TGE_BPS = 2000

T0 = 1_700_000_000
CUSTODY = 10_000_000_000 * ETHER


class FakeClock:
    """Monotonic, test-controlled time source."""

    def __init__(self, now: int):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def increase_to(self, timestamp: int) -> None:
        assert timestamp >= self.now, "clock only moves forward"
        self.now = timestamp

    def increase(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock(T0)


@pytest.fixture
def engine():
    eng = make_engine("sqlite://")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_sessionmaker(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def settings_for_tests():
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite://",
        ADMIN_ADDRESS=ADMIN,
        SALE_ADDRESS=SALE,
        VESTING_ADDRESS=VESTING,
        TOKEN_ADDRESS=TOKEN,
    )


@pytest.fixture
def deployment(settings_for_tests, clock):
    return build_deployment(settings_for_tests, time_provider=clock)


@pytest.fixture
def vesting_params():
    # start/tge 200 s after "now", like the deploy fixture of the sale
    return {
        "cliff_seconds": CLIFF,
        "start_time": T0 + 200,
        "duration_seconds": DURATION,
        "tge_time": T0 + 200,
        "tge_basis_points": TGE_BPS,
    }


@pytest.fixture
def deployed(db, deployment, vesting_params):
    bootstrap(db, deployment, admin=ADMIN, initial_custody=CUSTODY, parameters=vesting_params)
    db.commit()
    return deployment


@pytest.fixture
def sale(deployed):
    return deployed.sale


@pytest.fixture
def vesting(deployed):
    return deployed.vesting


@pytest.fixture
def committed_deployment(session_factory, deployment, vesting_params):
    """Bootstrapped through a short-lived session (no connection left open)."""
    with db_session(session_factory) as s:
        bootstrap(s, deployment, admin=ADMIN, initial_custody=CUSTODY, parameters=vesting_params)
    return deployment


@pytest.fixture
def row_locks(monkeypatch):
    """Names of the mapped classes read with SELECT ... FOR UPDATE."""
    locked = []
    session_get = Session.get
    query_lock = Query.with_for_update

    def get(self, entity, ident, **kw):
        if kw.get("with_for_update"):
            locked.append(entity.__name__)
        return session_get(self, entity, ident, **kw)

    def with_for_update(self, *args, **kw):
        locked.append(self.column_descriptions[0]["entity"].__name__)
        return query_lock(self, *args, **kw)

    monkeypatch.setattr(Session, "get", get)
    monkeypatch.setattr(Query, "with_for_update", with_for_update)
    return locked
