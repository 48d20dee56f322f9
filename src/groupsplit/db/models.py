"""SQLAlchemy models for GroupSplit.

All amounts are integer cents. Member coefficients are basis points where
10000 means 100 % of the group's shared costs.
"""

from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator, CHAR

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GUID(TypeDecorator):
    """Platform-independent GUID type using CHAR(36) outside PostgreSQL."""

    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID())
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, UUID):
            return value
        return UUID(value)


class User(Base):
    """A person who signs in with a magic link."""

    __tablename__ = "users"

    id = Column(GUID(), primary_key=True, default=uuid4)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(100), nullable=True)
    email_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    sessions = relationship(
        "UserSession", back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"


class UserSession(Base):
    """An authenticated browser or API session; only the token hash is stored."""

    __tablename__ = "sessions"

    id = Column(GUID(), primary_key=True, default=uuid4)
    user_id = Column(GUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_hash = Column(String(64), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    last_seen_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="sessions")

    __table_args__ = (Index("ix_sessions_user_id", "user_id"),)

    def __repr__(self) -> str:
        return f"<UserSession(id={self.id}, user_id={self.user_id})>"


class LoginToken(Base):
    """Single-use record of an emailed magic link, keyed by the JWT id."""

    __tablename__ = "login_tokens"

    id = Column(GUID(), primary_key=True, default=uuid4)
    email = Column(String(255), nullable=False)
    jti = Column(String(64), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_login_tokens_email", "email"),)

    def __repr__(self) -> str:
        return f"<LoginToken(email='{self.email}', used={self.used_at is not None})>"


class Group(Base):
    """A group of people sharing expenses."""

    __tablename__ = "groups"

    id = Column(GUID(), primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    currency = Column(String(3), nullable=False, default="EUR")
    income_frequency = Column(String(10), nullable=False, default="annual")
    created_by = Column(GUID(), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    archived_at = Column(DateTime(timezone=True), nullable=True)

    members = relationship(
        "GroupMember", back_populates="group", cascade="all, delete-orphan"
    )
    invitations = relationship(
        "GroupInvitation", back_populates="group", cascade="all, delete-orphan"
    )
    expenses = relationship(
        "Expense", back_populates="group", cascade="all, delete-orphan"
    )
    settlements = relationship(
        "Settlement", back_populates="group", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Group(id={self.id}, name='{self.name}')>"


class GroupInvitation(Base):
    """An emailed invitation to join a group."""

    __tablename__ = "group_invitations"

    id = Column(GUID(), primary_key=True, default=uuid4)
    group_id = Column(GUID(), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    email = Column(String(255), nullable=False)
    token = Column(String(64), nullable=False, unique=True)
    created_by = Column(GUID(), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    declined_at = Column(DateTime(timezone=True), nullable=True)

    group = relationship("Group", back_populates="invitations")
    inviter = relationship("User")

    __table_args__ = (
        Index("ix_group_invitations_group_id", "group_id"),
        Index("ix_group_invitations_email", "email"),
    )

    def __repr__(self) -> str:
        return f"<GroupInvitation(group_id={self.group_id}, email='{self.email}')>"


class GroupMember(Base):
    """Membership of a person in a group.

    ``user_id`` is null while the member is only invited. ``left_at`` marks a
    member who left or was removed; such members keep their history but no
    longer count for balances.
    """

    __tablename__ = "group_members"

    id = Column(GUID(), primary_key=True, default=uuid4)
    group_id = Column(GUID(), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(GUID(), ForeignKey("users.id"), nullable=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True)
    income = Column(Integer, nullable=False, default=0)
    coefficient = Column(Integer, nullable=False, default=0)
    joined_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    left_at = Column(DateTime(timezone=True), nullable=True)

    group = relationship("Group", back_populates="members")
    user = relationship("User")

    __table_args__ = (
        Index("ix_group_members_group_id", "group_id"),
        Index("ix_group_members_user_id", "user_id"),
        CheckConstraint("income >= 0", name="ck_group_members_income_non_negative"),
    )

    @property
    def display_name(self) -> str:
        """Account name once the member has joined and set one, else the member name."""
        if self.user is not None and self.user.name:
            return self.user.name
        return self.name

    def __repr__(self) -> str:
        return f"<GroupMember(id={self.id}, name='{self.name}')>"


class Expense(Base):
    """An expense paid by one member and shared by participants."""

    __tablename__ = "expenses"

    id = Column(GUID(), primary_key=True, default=uuid4)
    group_id = Column(GUID(), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    paid_by = Column(GUID(), ForeignKey("group_members.id"), nullable=False)
    amount = Column(Integer, nullable=False)
    description = Column(String(500), nullable=False)
    date = Column(String(10), nullable=False)  # YYYY-MM-DD
    created_by = Column(GUID(), ForeignKey("group_members.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    group = relationship("Group", back_populates="expenses")
    payer = relationship("GroupMember", foreign_keys=[paid_by])
    creator = relationship("GroupMember", foreign_keys=[created_by])
    participants = relationship(
        "ExpenseParticipant",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ExpenseParticipant.id",
    )

    __table_args__ = (
        Index("ix_expenses_group_date", "group_id", "date"),
        Index("ix_expenses_group_created", "group_id", "created_at"),
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
    )

    def __repr__(self) -> str:
        return f"<Expense(id={self.id}, amount={self.amount})>"


class ExpenseParticipant(Base):
    """A member sharing an expense, optionally with a fixed amount."""

    __tablename__ = "expense_participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    expense_id = Column(GUID(), ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False)
    member_id = Column(GUID(), ForeignKey("group_members.id"), nullable=False)
    custom_amount = Column(Integer, nullable=True)

    expense = relationship("Expense", back_populates="participants")
    member = relationship("GroupMember")

    __table_args__ = (
        UniqueConstraint("expense_id", "member_id", name="uq_expense_participant"),
        Index("ix_expense_participants_member_id", "member_id"),
    )

    def __repr__(self) -> str:
        return f"<ExpenseParticipant(expense_id={self.expense_id}, member_id={self.member_id})>"


class Settlement(Base):
    """A repayment from one member to another."""

    __tablename__ = "settlements"

    id = Column(GUID(), primary_key=True, default=uuid4)
    group_id = Column(GUID(), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    from_member = Column(GUID(), ForeignKey("group_members.id"), nullable=False)
    to_member = Column(GUID(), ForeignKey("group_members.id"), nullable=False)
    amount = Column(Integer, nullable=False)
    date = Column(String(10), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    group = relationship("Group", back_populates="settlements")
    sender = relationship("GroupMember", foreign_keys=[from_member])
    recipient = relationship("GroupMember", foreign_keys=[to_member])

    __table_args__ = (
        Index("ix_settlements_group_created", "group_id", "created_at"),
        CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
    )

    def __repr__(self) -> str:
        return f"<Settlement(id={self.id}, amount={self.amount})>"
