"""
Tables shared with the web frontend's Supabase project.

`customers.credits` is the balance the ledger charges against;
`credits_history` is the append-only record that explains it.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def utc_now() -> datetime:
    return datetime.now(UTC)


class Customer(Base):
    """
    ORM model for customers table.

    One row per identity-provider user. Provisioned on signup or by the
    payment webhook; this service only grants and charges credits.
    """

    __tablename__ = "customers"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    # Identity provider user id
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Materialized balance of credits_history
    credits: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_customers_credits_non_negative"),
        Index("idx_customers_updated_at", "updated_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Customer(id={self.id}, user_id={self.user_id}, credits={self.credits})>"


class CreditHistory(Base):
    """
    ORM model for credits_history table.

    Immutable ledger of every grant and charge.
    """

    __tablename__ = "credits_history"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    customer_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONB, nullable=False, default=dict
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_credits_history_amount_positive"),
        CheckConstraint("type IN ('add', 'subtract')", name="ck_credits_history_type"),
        Index("idx_credits_history_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<CreditHistory(id={self.id}, customer_id={self.customer_id}, "
            f"type={self.type}, amount={self.amount})>"
        )


class NameGenerationLog(Base):
    """
    ORM model for name_generation_logs table.

    Written by the generation pipeline; read here for history queries.
    """

    __tablename__ = "name_generation_logs"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    plan_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    credits_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    names_generated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (Index("idx_name_generation_logs_user_created", "user_id", "created_at"),)
