"""SQLAlchemy ORM models for properties, owner statements and their line items."""

from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

# Line items are quantized to six places on input; summaries are stored in cents
ITEM_MONEY = Numeric(20, 6)
SUMMARY_MONEY = Numeric(20, 2)


def new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)


def _json_value(value: Any) -> Any:
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


class StatementState(str, Enum):
    """Lifecycle of a statement: LIVE until tombstoned, never back."""

    LIVE = "live"
    TOMBSTONED = "tombstoned"


class Property(Base):
    """A canonical property owned by an organization."""

    __tablename__ = "properties"

    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(String(64), nullable=False)
    name = Column(String(255), nullable=False)
    address = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    statements = relationship("OwnerStatement", back_populates="rental_property")

    __table_args__ = (
        Index("ix_properties_org_deleted", "organization_id", "deleted_at"),
        Index("ix_properties_name_org", "name", "organization_id"),
    )

    def __repr__(self) -> str:
        return f"<Property(id={self.id!r}, name={self.name!r})>"


class StatementIncome(Base):
    """A reservation line on a statement."""

    __tablename__ = "owner_statement_incomes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    statement_id = Column(
        String(36), ForeignKey("owner_statements.id", ondelete="CASCADE"), nullable=False
    )
    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)
    days = Column(Integer, nullable=False, default=0)
    platform = Column(String(100), nullable=False, default="")
    guest = Column(String(255), nullable=False, default="")
    gross_revenue = Column(ITEM_MONEY, nullable=False, default=0)
    host_fee = Column(ITEM_MONEY, nullable=False, default=0)
    platform_fee = Column(ITEM_MONEY, nullable=False, default=0)
    gross_income = Column(ITEM_MONEY, nullable=False, default=0)

    statement = relationship("OwnerStatement", back_populates="incomes")

    __table_args__ = (Index("ix_incomes_statement", "statement_id"),)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "check_in": _json_value(self.check_in),
            "check_out": _json_value(self.check_out),
            "days": self.days,
            "platform": self.platform,
            "guest": self.guest,
            "gross_revenue": _json_value(self.gross_revenue),
            "host_fee": _json_value(self.host_fee),
            "platform_fee": _json_value(self.platform_fee),
            "gross_income": _json_value(self.gross_income),
        }


class StatementExpense(Base):
    """A vendor expense charged against a statement."""

    __tablename__ = "owner_statement_expenses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    statement_id = Column(
        String(36), ForeignKey("owner_statements.id", ondelete="CASCADE"), nullable=False
    )
    date = Column(Date, nullable=False)
    description = Column(String(500), nullable=False)
    vendor = Column(String(255), nullable=False)
    amount = Column(ITEM_MONEY, nullable=False)

    statement = relationship("OwnerStatement", back_populates="expenses")

    __table_args__ = (
        Index("ix_expenses_statement", "statement_id"),
        Index("ix_expenses_vendor_description", "vendor", "description"),
        Index("ix_expenses_date", "date"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": _json_value(self.date),
            "description": self.description,
            "vendor": self.vendor,
            "amount": _json_value(self.amount),
        }


class StatementAdjustment(Base):
    """A signed adjustment added to the grand total."""

    __tablename__ = "owner_statement_adjustments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    statement_id = Column(
        String(36), ForeignKey("owner_statements.id", ondelete="CASCADE"), nullable=False
    )
    check_in = Column(Date, nullable=True)
    check_out = Column(Date, nullable=True)
    description = Column(String(500), nullable=False)
    amount = Column(ITEM_MONEY, nullable=False)

    statement = relationship("OwnerStatement", back_populates="adjustments")

    __table_args__ = (Index("ix_adjustments_statement", "statement_id"),)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "check_in": _json_value(self.check_in),
            "check_out": _json_value(self.check_out),
            "description": self.description,
            "amount": _json_value(self.amount),
        }


class OwnerStatement(Base):
    """One property's reconciliation for one calendar month."""

    __tablename__ = "owner_statements"

    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(String(64), nullable=False)
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False)
    statement_month = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)

    total_income = Column(SUMMARY_MONEY, nullable=False, default=0)
    total_expenses = Column(SUMMARY_MONEY, nullable=False, default=0)
    total_adjustments = Column(SUMMARY_MONEY, nullable=False, default=0)
    grand_total = Column(SUMMARY_MONEY, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    created_by = Column(String(64), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=True)
    updated_by = Column(String(64), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    rental_property = relationship("Property", back_populates="statements")
    incomes = relationship(
        "StatementIncome",
        back_populates="statement",
        cascade="all, delete-orphan",
        order_by="StatementIncome.id",
    )
    expenses = relationship(
        "StatementExpense",
        back_populates="statement",
        cascade="all, delete-orphan",
        order_by="StatementExpense.id",
    )
    adjustments = relationship(
        "StatementAdjustment",
        back_populates="statement",
        cascade="all, delete-orphan",
        order_by="StatementAdjustment.id",
    )

    __table_args__ = (
        Index("ix_statements_org_month_deleted", "organization_id", "statement_month", "deleted_at"),
        Index("ix_statements_property_month", "property_id", "statement_month"),
        Index("ix_statements_month_deleted", "statement_month", "deleted_at"),
    )

    @property
    def state(self) -> StatementState:
        return StatementState.LIVE if self.deleted_at is None else StatementState.TOMBSTONED

    @property
    def property_name(self) -> str:
        return self.rental_property.name if self.rental_property is not None else "Unknown Property"

    def summary_dict(self) -> dict[str, Any]:
        """Summary fields without line items."""
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "property_id": self.property_id,
            "property_name": self.property_name,
            "statement_month": _json_value(self.statement_month),
            "notes": self.notes,
            "total_income": _json_value(self.total_income),
            "total_expenses": _json_value(self.total_expenses),
            "total_adjustments": _json_value(self.total_adjustments),
            "grand_total": _json_value(self.grand_total),
            "state": self.state.value,
            "created_at": _json_value(self.created_at),
            "created_by": self.created_by,
            "updated_at": _json_value(self.updated_at),
            "updated_by": self.updated_by,
            "deleted_at": _json_value(self.deleted_at),
        }

    def to_dict(self) -> dict[str, Any]:
        """Full statement with line items."""
        result = self.summary_dict()
        result["incomes"] = [item.to_dict() for item in self.incomes]
        result["expenses"] = [item.to_dict() for item in self.expenses]
        result["adjustments"] = [item.to_dict() for item in self.adjustments]
        return result

    def __repr__(self) -> str:
        return (
            f"<OwnerStatement(id={self.id!r}, property_id={self.property_id!r}, "
            f"month={self.statement_month!s}, state={self.state.value})>"
        )
