from salevest.access import (
    DEFAULT_ADMIN_ROLE,
    OPERATOR_ROLE,
    PAUSER_ROLE,
    VEST_MANAGER_ROLE,
)
from salevest.core.config import Settings
from salevest.deployment import bootstrap
from salevest.monitoring import run_selftest

from conftest import ADMIN, CUSTODY, SALE, USER1


def test_bootstrap_grants_roles(db, deployed):
    sale, vesting = deployed.sale, deployed.vesting
    for role in (DEFAULT_ADMIN_ROLE, PAUSER_ROLE, OPERATOR_ROLE):
        assert sale.access.has_role(db, role, ADMIN)
    for role in (DEFAULT_ADMIN_ROLE, PAUSER_ROLE, VEST_MANAGER_ROLE):
        assert vesting.access.has_role(db, role, ADMIN)
    assert vesting.access.has_role(db, VEST_MANAGER_ROLE, SALE)
    assert not sale.access.has_role(db, OPERATOR_ROLE, SALE)


def test_bootstrap_runs_once(db, deployed):
    assert bootstrap(db, deployed, admin=USER1, initial_custody=CUSTODY) is False
    assert deployed.vesting.custody_balance(db) == CUSTODY
    assert not deployed.sale.access.has_role(db, OPERATOR_ROLE, USER1)


def test_initial_vesting_parameters_need_every_field():
    cfg = Settings(_env_file=None, VESTING_CLIFF_SECONDS=1)
    assert cfg.initial_vesting_parameters() is None

    cfg = Settings(
        _env_file=None,
        VESTING_CLIFF_SECONDS=1,
        VESTING_START_TIME=2,
        VESTING_DURATION_SECONDS=3,
        VESTING_TGE_TIME=4,
        VESTING_TGE_BASIS_POINTS=5,
    )
    assert cfg.initial_vesting_parameters() == {
        "cliff_seconds": 1,
        "start_time": 2,
        "duration_seconds": 3,
        "tge_time": 4,
        "tge_basis_points": 5,
    }


def test_selftest_ok(session_factory, committed_deployment):
    result = run_selftest(session_factory, committed_deployment, quick=False)
    assert result["status"] == "ok"
    names = {c["name"]: c for c in result["checks"]}
    assert names["db:select1"]["ok"]
    assert names["vesting:initialized"]["ok"]
    assert names["vesting:custody_covers_obligations"]["extra"]["custody"] == str(CUSTODY)


def test_selftest_flags_uninitialized(session_factory, deployment):
    result = run_selftest(session_factory, deployment, quick=True)
    assert result["status"] == "degraded"
    assert [c["name"] for c in result["checks"]] == ["db:select1", "vesting:initialized"]
