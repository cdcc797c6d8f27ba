# salevest/monitoring.py
from __future__ import annotations

import time
from typing import Any, Callable, Dict, List

from sqlalchemy import text
from sqlalchemy.orm import Session

from salevest.deployment import Deployment


def _check(name: str, ok: bool, detail: str = "", extra: Dict[str, Any] | None = None) -> Dict[str, Any]:
    row: Dict[str, Any] = {"name": name, "ok": bool(ok)}
    if detail:
        row["detail"] = detail
    if extra:
        row["extra"] = extra
    return row


def run_selftest(session_factory: Callable[[], Session], deployment: Deployment, quick: bool = True) -> dict:
    checks: List[Dict[str, Any]] = []

    # --- DB ---
    db_ok = False
    db_err = ""
    t0 = time.time()
    try:
        db = session_factory()
        try:
            db.execute(text("SELECT 1"))
            db_ok = True
        finally:
            db.close()
    except Exception as e:
        db_err = repr(e)

    checks.append(_check("db:select1", db_ok, detail=db_err, extra={"ms": int((time.time() - t0) * 1000)}))

    # --- Vesting state (needs the DB) ---
    if db_ok:
        db = session_factory()
        try:
            vesting = deployment.vesting
            initialized = vesting.is_initialized(db)
            checks.append(_check("vesting:initialized", initialized, detail="" if initialized else "run bootstrap"))

            if not quick:
                custody = vesting.custody_balance(db)
                owed = vesting.outstanding_obligations(db)
                checks.append(
                    _check(
                        "vesting:custody_covers_obligations",
                        custody >= owed,
                        detail="TGE and linear buckets both counted",
                        # base units, as strings
                        extra={"custody": str(custody), "outstanding": str(owed)},
                    )
                )
                for scope, access in (("sale", deployment.sale.access), ("vesting", vesting.access)):
                    paused = access.is_paused(db)
                    checks.append(_check(f"{scope}:not_paused", not paused, detail="paused" if paused else ""))
        finally:
            db.close()

    status = "ok" if all(c.get("ok") for c in checks) else "degraded"
    return {"status": status, "checks": checks}
