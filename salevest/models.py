# salevest/models.py
from __future__ import annotations

from sqlalchemy import (
    Column,
    BigInteger,
    String,
    DateTime,
    Integer,
    Boolean,
    Text,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


class TokenAmount(TypeDecorator):
    """Unbounded non-negative integer stored as decimal text.

    Token amounts are base units (18 decimals), so 100 tokens is already
    1e20 and does not fit BIGINT. SQLite would silently turn NUMERIC into
    REAL, so the value goes over the wire as a string on every backend.
    """

    impl = String(80)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(int(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


class VestingConfig(Base):
    """Single global vesting record (row id=1) shared by every schedule."""

    __tablename__ = "vesting_config"

    id = Column(Integer, primary_key=True, autoincrement=False)

    token_address = Column(String(64), nullable=True)

    cliff_seconds = Column(BigInteger, nullable=False, default=0)
    start_time = Column(BigInteger, nullable=False, default=0)
    duration_seconds = Column(BigInteger, nullable=False, default=0)
    tge_time = Column(BigInteger, nullable=False, default=0)
    tge_basis_points = Column(Integer, nullable=False, default=0)  # 0..10000

    # last assigned schedule id
    current_schedule_id = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)


class VestingSchedule(Base):
    __tablename__ = "vesting_schedules"

    id = Column(Integer, primary_key=True, autoincrement=False)  # 1-based, from VestingConfig

    beneficiary = Column(String(64), nullable=False)
    total_amount = Column(TokenAmount, nullable=False)
    released = Column(TokenAmount, nullable=False, default=0)  # linear path only
    tge_claimed = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)

    __table_args__ = (
        Index("ix_vesting_schedules_beneficiary", "beneficiary", "id"),
    )


class Consignee(Base):
    __tablename__ = "consignees"

    # insertion order for enumeration
    id = Column(Integer, primary_key=True, autoincrement=True)

    address = Column(String(64), nullable=False, unique=True)
    total_token_amount = Column(TokenAmount, nullable=False)
    sold_token_amount = Column(TokenAmount, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)


class PurchaseRecord(Base):
    """Append-only; read back by buyer or by consignee in creation order."""

    __tablename__ = "purchase_records"

    id = Column(Integer, primary_key=True, autoincrement=True)

    consignee_address = Column(String(64), nullable=False)
    buyer_address = Column(String(64), nullable=False)
    token_amount = Column(TokenAmount, nullable=False)
    schedule_id = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)

    __table_args__ = (
        Index("ix_purchase_records_buyer", "buyer_address", "id"),
        Index("ix_purchase_records_consignee", "consignee_address", "id"),
    )


class RoleMember(Base):
    __tablename__ = "role_members"

    id = Column(Integer, primary_key=True, autoincrement=True)

    scope = Column(String(16), nullable=False)  # sale / vesting
    role = Column(String(32), nullable=False)
    account = Column(String(64), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)

    __table_args__ = (
        UniqueConstraint("scope", "role", "account", name="uq_role_members_scope_role_account"),
    )


class PauseState(Base):
    __tablename__ = "pause_state"

    scope = Column(String(16), primary_key=True)
    paused = Column(Boolean, nullable=False, default=False)

    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)


class TokenBalance(Base):
    __tablename__ = "token_balances"

    account = Column(String(64), primary_key=True)
    balance = Column(TokenAmount, nullable=False, default=0)


class EventLog(Base):
    __tablename__ = "event_log"

    id = Column(Integer, primary_key=True, autoincrement=True)

    scope = Column(String(16), nullable=False)  # sale / vesting / token
    name = Column(String(64), nullable=False)
    payload = Column(Text, nullable=False)  # canonical JSON

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)

    __table_args__ = (
        Index("ix_event_log_scope_name", "scope", "name"),
    )
