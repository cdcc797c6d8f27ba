# salevest/main.py
from __future__ import annotations

import logging
from typing import Callable, Generator, List, Optional

from fastapi import Depends, FastAPI, Header, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from salevest import database, events
from salevest.core.config import settings
from salevest.database import db_session, get_sessionmaker, init_db
from salevest.deployment import Deployment, bootstrap, build_deployment
from salevest.errors import (
    AuthorizationError,
    CapExceededError,
    PausedError,
    SaleError,
    StateError,
    TemporalError,
    TransferFailedError,
    ValidationError,
)
from salevest.monitoring import run_selftest
from salevest.schemas import (
    AdminPurchaseBatchIn,
    AdminPurchaseIn,
    ClaimOut,
    ConsigneeBatchIn,
    ConsigneeIn,
    ConsigneeOut,
    EventOut,
    PurchaseBatchIn,
    PurchaseIn,
    PurchaseOut,
    RoleMembersOut,
    ScheduleOut,
    TokenOut,
    VestingParametersIn,
    VestingParametersOut,
)

logger = logging.getLogger(__name__)

ERROR_STATUS = (
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (CapExceededError, status.HTTP_409_CONFLICT),
    (TemporalError, status.HTTP_409_CONFLICT),
    (StateError, status.HTTP_409_CONFLICT),
    (TransferFailedError, status.HTTP_502_BAD_GATEWAY),
    (PausedError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def _status_for(exc: SaleError) -> int:
    for cls, code in ERROR_STATUS:
        if isinstance(exc, cls):
            return code
    return status.HTTP_400_BAD_REQUEST


def get_db(request: Request) -> Generator[Session, None, None]:
    yield from database.get_db(request.app.state.session_factory)


def get_deployment(request: Request) -> Deployment:
    return request.app.state.deployment


def get_caller(x_caller_address: str = Header(...)) -> str:
    # authentication happens upstream; we only carry the identity through
    return x_caller_address


def _startup_from_settings(app: FastAPI) -> None:
    logging.basicConfig(level=settings.LOG_LEVEL.upper())

    init_db()
    app.state.session_factory = get_sessionmaker()
    logger.info("DB initialized")

    with db_session(app.state.session_factory) as db:
        bootstrap(
            db,
            app.state.deployment,
            admin=settings.ADMIN_ADDRESS,
            initial_custody=int(settings.INITIAL_CUSTODY_AMOUNT),
            parameters=settings.initial_vesting_parameters(),
        )


def create_app(
    *,
    session_factory: Optional[Callable[[], Session]] = None,
    deployment: Optional[Deployment] = None,
) -> FastAPI:
    app = FastAPI(title="Salevest Token Sale Ledger")
    app.state.session_factory = session_factory
    app.state.deployment = deployment or build_deployment(settings)

    @app.on_event("startup")
    async def startup_event():
        if app.state.session_factory is not None:
            return
        try:
            _startup_from_settings(app)
        except Exception:
            logger.exception("DB init failed (startup). Continuing to boot app.")

    @app.exception_handler(SaleError)
    async def sale_error_handler(request: Request, exc: SaleError):
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            {"ok": False, "error": exc.code, "detail": exc.message},
            status_code=_status_for(exc),
        )

    # -------- Service --------

    @app.get("/")
    async def root():
        return {"message": "Salevest Token Sale Ledger is running"}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/ready")
    def ready():
        result = run_selftest(app.state.session_factory or get_sessionmaker(), app.state.deployment, quick=True)
        return {"status": result.get("status", "unknown"), "checks": result.get("checks", [])}

    @app.get("/selftest")
    def selftest():
        return run_selftest(app.state.session_factory or get_sessionmaker(), app.state.deployment, quick=False)

    # -------- Sale --------

    @app.post("/sale/consignees", response_model=ConsigneeOut, status_code=status.HTTP_201_CREATED)
    def add_consignee(
        body: ConsigneeIn,
        db: Session = Depends(get_db),
        dep: Deployment = Depends(get_deployment),
        caller: str = Depends(get_caller),
    ):
        return dep.sale.add_consignee(
            db, caller=caller, address=body.address, total_token_amount=body.total_token_amount
        )

    @app.post("/sale/consignees/batch", response_model=List[ConsigneeOut], status_code=status.HTTP_201_CREATED)
    def batch_add_consignee(
        body: ConsigneeBatchIn,
        db: Session = Depends(get_db),
        dep: Deployment = Depends(get_deployment),
        caller: str = Depends(get_caller),
    ):
        return dep.sale.batch_add_consignee(db, caller=caller, addresses=body.addresses, amounts=body.amounts)

    @app.get("/sale/consignees", response_model=List[ConsigneeOut])
    def all_consignees(db: Session = Depends(get_db), dep: Deployment = Depends(get_deployment)):
        return dep.sale.get_all_consignee_info(db)

    @app.get("/sale/consignees/{address}")
    def consignee_info(address: str, db: Session = Depends(get_db), dep: Deployment = Depends(get_deployment)):
        info = ConsigneeOut.model_validate(dep.sale.get_consignee_info(db, address))
        return {**info.model_dump(), "is_consignee": dep.sale.is_consignee(db, address)}

    @app.post("/sale/purchases", response_model=PurchaseOut, status_code=status.HTTP_201_CREATED)
    def consignee_purchase(
        body: PurchaseIn,
        db: Session = Depends(get_db),
        dep: Deployment = Depends(get_deployment),
        caller: str = Depends(get_caller),
    ):
        return dep.sale.consignee_create_offline_purchase(db, caller=caller, buyer=body.buyer, amount=body.amount)

    @app.post("/sale/purchases/batch", response_model=List[PurchaseOut], status_code=status.HTTP_201_CREATED)
    def consignee_purchase_batch(
        body: PurchaseBatchIn,
        db: Session = Depends(get_db),
        dep: Deployment = Depends(get_deployment),
        caller: str = Depends(get_caller),
    ):
        return dep.sale.batch_consignee_create_offline_purchase(
            db, caller=caller, buyers=body.buyers, amounts=body.amounts
        )

    @app.post("/sale/admin/purchases", response_model=PurchaseOut, status_code=status.HTTP_201_CREATED)
    def admin_purchase(
        body: AdminPurchaseIn,
        db: Session = Depends(get_db),
        dep: Deployment = Depends(get_deployment),
        caller: str = Depends(get_caller),
    ):
        return dep.sale.admin_create_offline_purchase(
            db, caller=caller, consignee=body.consignee, buyer=body.buyer, amount=body.amount
        )

    @app.post("/sale/admin/purchases/batch", response_model=List[PurchaseOut], status_code=status.HTTP_201_CREATED)
    def admin_purchase_batch(
        body: AdminPurchaseBatchIn,
        db: Session = Depends(get_db),
        dep: Deployment = Depends(get_deployment),
        caller: str = Depends(get_caller),
    ):
        return dep.sale.batch_admin_create_offline_purchase(
            db, caller=caller, consignee=body.consignee, buyers=body.buyers, amounts=body.amounts
        )

    @app.get("/sale/purchases/by-buyer/{address}", response_model=List[PurchaseOut])
    def purchases_by_buyer(address: str, db: Session = Depends(get_db), dep: Deployment = Depends(get_deployment)):
        return dep.sale.get_user_purchase_info(db, address)

    @app.get("/sale/purchases/by-consignee/{address}", response_model=List[PurchaseOut])
    def purchases_by_consignee(address: str, db: Session = Depends(get_db), dep: Deployment = Depends(get_deployment)):
        return dep.sale.get_user_purchase_info_by_consignee_address(db, address)

    # -------- Vesting --------

    @app.get("/vesting/parameters", response_model=VestingParametersOut)
    def vesting_parameters(db: Session = Depends(get_db), dep: Deployment = Depends(get_deployment)):
        return dep.vesting.get_vesting_parameters(db)

    @app.put("/vesting/parameters", response_model=VestingParametersOut)
    def set_vesting_parameters(
        body: VestingParametersIn,
        db: Session = Depends(get_db),
        dep: Deployment = Depends(get_deployment),
        caller: str = Depends(get_caller),
    ):
        return dep.vesting.set_vesting_parameters(db, caller=caller, **body.model_dump())

    @app.get("/vesting/token", response_model=TokenOut)
    def vesting_token(db: Session = Depends(get_db), dep: Deployment = Depends(get_deployment)):
        return TokenOut(
            token_address=dep.vesting.token_address(db),
            decimals=dep.token.decimals,
            custody_balance=dep.vesting.custody_balance(db),
            outstanding_obligations=dep.vesting.outstanding_obligations(db),
        )

    @app.get("/vesting/schedules/{schedule_id}", response_model=ScheduleOut)
    def schedule_info(schedule_id: int, db: Session = Depends(get_db), dep: Deployment = Depends(get_deployment)):
        return dep.vesting.get_schedule(db, schedule_id)

    @app.get("/vesting/beneficiaries/{address}/schedules")
    def beneficiary_schedules(address: str, db: Session = Depends(get_db), dep: Deployment = Depends(get_deployment)):
        return {
            "beneficiary": address.strip().lower(),
            "schedule_ids": dep.vesting.get_schedule_ids_of_beneficiary(db, address),
            "current_schedule_id": dep.vesting.current_schedule_id(db),
        }

    @app.post("/vesting/schedules/{schedule_id}/claim-tge", response_model=ClaimOut)
    def claim_tge(
        schedule_id: int,
        db: Session = Depends(get_db),
        dep: Deployment = Depends(get_deployment),
        caller: str = Depends(get_caller),
    ):
        amount = dep.vesting.claim_tge(db, caller=caller, schedule_id=schedule_id)
        return ClaimOut(schedule_id=schedule_id, beneficiary=caller.strip().lower(), amount=amount)

    @app.post("/vesting/schedules/{schedule_id}/claim", response_model=ClaimOut)
    def claim(
        schedule_id: int,
        db: Session = Depends(get_db),
        dep: Deployment = Depends(get_deployment),
        caller: str = Depends(get_caller),
    ):
        amount = dep.vesting.claim(db, caller=caller, schedule_id=schedule_id)
        return ClaimOut(schedule_id=schedule_id, beneficiary=caller.strip().lower(), amount=amount)

    # -------- Roles --------

    @app.get("/roles/{scope}/{role}", response_model=RoleMembersOut)
    def role_members(scope: str, role: str, db: Session = Depends(get_db), dep: Deployment = Depends(get_deployment)):
        components = {"sale": dep.sale, "vesting": dep.vesting}
        if scope not in components:
            raise ValidationError(f"Unknown role scope: {scope}")
        return RoleMembersOut(scope=scope, role=role, members=components[scope].access.members(db, role))

    # -------- Events --------

    @app.get("/events", response_model=List[EventOut])
    def list_events(
        scope: Optional[str] = None,
        name: Optional[str] = None,
        limit: Optional[int] = None,
        db: Session = Depends(get_db),
    ):
        rows = events.list_events(db, scope=scope, name=name, limit=limit)
        return [EventOut(id=r.id, scope=r.scope, name=r.name, payload=events.decode(r)) for r in rows]

    return app


app = create_app()
