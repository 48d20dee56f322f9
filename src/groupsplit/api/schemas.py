"""Pydantic models for API request/response validation."""

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import PydanticCustomError

from ..core.enums import Currency, IncomeFrequency
from ..utils.dates import is_valid_date

EMAIL_REQUIRED_MESSAGE = "Adresse email requise"
EMAIL_INVALID_MESSAGE = "Adresse email invalide"
DATE_INVALID_MESSAGE = "Date invalide"
EXPENSE_DESCRIPTION_MAX = 200


def check_email(value: Any) -> str:
    """
    Validate an email address typed by a person.

    Runs before type coercion, so an absent or null address gets the same
    message as an empty one. The address is returned exactly as given;
    callers lowercase it when they store or compare it.

    Raises:
        PydanticCustomError: "Adresse email requise" or "Adresse email invalide"
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise PydanticCustomError("email_required", EMAIL_REQUIRED_MESSAGE)
    if not isinstance(value, str):
        raise PydanticCustomError("email_invalid", EMAIL_INVALID_MESSAGE)
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        raise PydanticCustomError("email_invalid", EMAIL_INVALID_MESSAGE)
    return value


def check_date(value: str) -> str:
    if not is_valid_date(value):
        raise PydanticCustomError("date_invalid", DATE_INVALID_MESSAGE)
    return value


# Base response models
class BaseResponse(BaseModel):
    """Base response model with common fields."""

    model_config = ConfigDict(from_attributes=True)


class ProblemDetails(BaseModel):
    """RFC 9457 Problem Details for HTTP APIs."""

    type: str = Field(description="A URI reference that identifies the problem type")
    title: str = Field(description="A short, human-readable summary of the problem type")
    status: int = Field(description="The HTTP status code")
    code: str = Field(description="Machine-readable error code")
    detail: Optional[str] = Field(
        None, description="A human-readable explanation specific to this occurrence"
    )
    instance: Optional[str] = Field(
        None, description="A URI reference that identifies the specific occurrence"
    )


# Authentication schemas
class LoginRequest(BaseModel):
    """Schema for requesting a magic link."""

    email: Optional[str] = Field(
        None, validate_default=True, description="Address the sign-in link is sent to"
    )

    @field_validator("email", mode="before")
    @classmethod
    def validate_email_address(cls, value: Any) -> str:
        return check_email(value)


class LoginResponse(BaseModel):
    """Schema for login response."""

    message: str
    expires_at: datetime = Field(description="Magic link expiration timestamp")


class VerifyRequest(BaseModel):
    """Schema for exchanging a magic-link token for a session."""

    token: str = Field(min_length=1)


class UserResponse(BaseResponse):
    """Schema for user response."""

    id: UUID
    email: str
    name: Optional[str] = None
    email_verified: bool
    created_at: datetime


class VerifyResponse(BaseModel):
    """Schema for a freshly opened session."""

    session_token: str = Field(description="Session token for API authentication")
    expires_at: datetime = Field(description="Session expiration timestamp")
    user: UserResponse


class SessionResponse(BaseModel):
    authenticated: bool
    user: Optional[UserResponse] = None


class ProfileUpdate(BaseModel):
    """Schema for updating the current user's profile."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)


# Group schemas
class GroupCreate(BaseModel):
    """Schema for creating a new group."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(description="Name of the group", min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    currency: Currency = Currency.EUR
    income_frequency: IncomeFrequency = IncomeFrequency.ANNUAL


class GroupUpdate(BaseModel):
    """Schema for renaming or describing a group."""

    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=500)


class GroupSummary(BaseModel):
    """One entry of the caller's group list."""

    id: UUID
    name: str
    description: Optional[str] = None
    currency: Currency
    income_frequency: IncomeFrequency
    created_at: datetime
    member_count: int
    my_balance: int = Field(description="Caller's net balance in cents")
    is_archived: bool


class GroupListResponse(BaseModel):
    groups: List[GroupSummary]


# Member schemas
class MemberResponse(BaseModel):
    """Schema for member response."""

    id: UUID
    user_id: Optional[UUID] = None
    name: str
    email: Optional[str] = None
    income: int
    coefficient: int = Field(description="Share of costs in basis points")
    coefficient_percent: int
    joined_at: datetime
    is_pending: bool = Field(description="Invited but not joined yet")
    is_current_user: bool


class MemberListResponse(BaseModel):
    members: List[MemberResponse]


class MemberUpdate(BaseModel):
    """Schema for updating a member's name or income."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    income: Optional[int] = Field(None, ge=0, description="Income in cents")


class GroupDetail(BaseModel):
    """Schema for a group with its members."""

    id: UUID
    name: str
    description: Optional[str] = None
    currency: Currency
    income_frequency: IncomeFrequency
    created_by: UUID
    created_at: datetime
    archived_at: Optional[datetime] = None
    is_archived: bool
    members: List[MemberResponse]
    my_member_id: UUID
    is_creator: bool


# Expense schemas
class ParticipantInput(BaseModel):
    member_id: UUID
    custom_amount: Optional[int] = Field(None, ge=0)


class ExpenseCreate(BaseModel):
    """Schema for recording an expense."""

    model_config = ConfigDict(str_strip_whitespace=True)

    paid_by: UUID
    amount: int = Field(gt=0, description="Amount in cents")
    description: str = Field(min_length=1, max_length=EXPENSE_DESCRIPTION_MAX)
    date: str = Field(description="YYYY-MM-DD")
    participants: List[ParticipantInput]

    @field_validator("date")
    @classmethod
    def validate_date(cls, value: str) -> str:
        return check_date(value)


class ExpenseUpdate(BaseModel):
    """Schema for editing an expense; omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    paid_by: Optional[UUID] = None
    amount: Optional[int] = Field(None, gt=0)
    description: Optional[str] = Field(None, min_length=1, max_length=EXPENSE_DESCRIPTION_MAX)
    date: Optional[str] = None
    participants: Optional[List[ParticipantInput]] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, value: Optional[str]) -> Optional[str]:
        return check_date(value) if value is not None else value


class MemberRef(BaseModel):
    id: UUID
    name: str


class MemberRefWithCurrent(MemberRef):
    is_current_user: bool


class ExpenseListItem(BaseModel):
    id: UUID
    group_id: UUID
    paid_by: MemberRef
    amount: int
    description: str
    date: str
    created_by: MemberRef
    created_at: datetime
    participant_count: int
    my_share: Optional[int] = None


class ExpenseListResponse(BaseModel):
    expenses: List[ExpenseListItem]
    next_cursor: Optional[str] = None
    has_more: bool


class ExpenseParticipantDetail(BaseModel):
    id: int
    member_id: UUID
    member_name: str
    custom_amount: Optional[int] = None
    calculated_share: int
    is_current_user: bool


class ExpenseDetail(BaseModel):
    id: UUID
    group_id: UUID
    paid_by: MemberRefWithCurrent
    amount: int
    description: str
    date: str
    created_by: MemberRefWithCurrent
    created_at: datetime
    updated_at: datetime
    participants: List[ExpenseParticipantDetail]
    can_edit: bool
    can_delete: bool


# Balance schemas
class BalanceEntry(BaseModel):
    member_id: UUID
    member_name: str
    member_user_id: Optional[UUID] = None
    total_paid: int
    total_owed: int
    balance: int
    settlements_paid: int
    settlements_received: int
    net_balance: int
    is_current_user: bool


class BalancesResponse(BaseModel):
    balances: List[BalanceEntry]
    total_expenses: int
    is_valid: bool


class MemberExpenseLine(BaseModel):
    id: UUID
    description: str
    date: str
    amount: int
    paid_by: MemberRef
    my_share: int
    is_payer: bool


class MemberSettlementLine(BaseModel):
    id: UUID
    date: str
    amount: int
    direction: str
    other_member: MemberRef


class MemberBalanceDetail(BaseModel):
    balance: BalanceEntry
    expenses: List[MemberExpenseLine]
    settlements: List[MemberSettlementLine]


class MemberStats(BaseModel):
    member_id: UUID
    member_name: str
    total_paid: int
    percentage: int


class MonthStats(BaseModel):
    month: str
    total: int
    count: int


class StatsResponse(BaseModel):
    period: str
    total_expenses: int
    expense_count: int
    average_expense: int
    by_member: List[MemberStats]
    by_month: List[MonthStats]


# Settlement schemas
class SettlementCreate(BaseModel):
    """Schema for recording a repayment from the caller."""

    to_member: UUID
    amount: int = Field(gt=0, description="Amount in cents")
    date: str

    @field_validator("date")
    @classmethod
    def validate_date(cls, value: str) -> str:
        return check_date(value)


class SettlementResponse(BaseModel):
    id: UUID
    group_id: UUID
    from_member: MemberRefWithCurrent
    to_member: MemberRefWithCurrent
    amount: int
    date: str
    created_at: datetime


class SettlementListResponse(BaseModel):
    settlements: List[SettlementResponse]
    next_cursor: Optional[str] = None
    has_more: bool


class SuggestedSettlement(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: MemberRefWithCurrent = Field(alias="from")
    to: MemberRefWithCurrent
    amount: int


class SuggestedSettlementsResponse(BaseModel):
    suggestions: List[SuggestedSettlement]


# Invitation schemas
class InviteMemberRequest(BaseModel):
    """Schema for inviting someone to a group."""

    email: Optional[str] = Field(None, validate_default=True)
    name: Optional[str] = Field(None, max_length=100)

    @field_validator("email", mode="before")
    @classmethod
    def validate_email_address(cls, value: Any) -> str:
        return check_email(value)


class InvitationResponse(BaseModel):
    id: UUID
    email: str
    invited_by: str
    created_at: datetime
    expires_at: datetime


class InvitationListResponse(BaseModel):
    invitations: List[InvitationResponse]


class GroupRef(BaseModel):
    id: UUID
    name: str


class PendingInvitation(BaseModel):
    id: UUID
    token: str
    group: GroupRef
    invited_by: str
    created_at: datetime
    expires_at: datetime


class PendingInvitationListResponse(BaseModel):
    invitations: List[PendingInvitation]


class InvitationDetails(BaseModel):
    """Public view of an invitation reached through its link."""

    group: GroupRef
    inviter_name: str
    expires_at: datetime
    is_for_current_user: Optional[bool] = None


class AcceptInvitationResponse(BaseModel):
    group_id: UUID
