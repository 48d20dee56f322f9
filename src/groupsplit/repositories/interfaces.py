"""Abstract repository interfaces for data access layer."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from ..core.enums import SettlementFilter
from ..db.models import (
    User,
    UserSession,
    LoginToken,
    Group,
    GroupInvitation,
    GroupMember,
    Expense,
    Settlement,
)


class BaseRepository(ABC):
    """Base repository interface with common operations."""

    @abstractmethod
    async def save(self, entity) -> None:
        """Save an entity to the repository."""
        pass

    @abstractmethod
    async def delete(self, entity) -> None:
        """Delete an entity from the repository."""
        pass

    @abstractmethod
    async def commit(self) -> None:
        """Commit the current transaction."""
        pass

    @abstractmethod
    async def rollback(self) -> None:
        """Rollback the current transaction."""
        pass


class UserRepository(BaseRepository):
    """Repository interface for users, sessions and magic-link records."""

    @abstractmethod
    async def get_by_id(self, user_id: UUID) -> Optional[User]:
        pass

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[User]:
        """Get a user by (lowercase) email."""
        pass

    @abstractmethod
    async def get_or_create(self, email: str) -> User:
        """Get a user by email, creating it on first sign-in."""
        pass

    @abstractmethod
    async def create_session(self, user: User, token_hash: str, expires_at: datetime) -> UserSession:
        pass

    @abstractmethod
    async def get_active_session(self, token_hash: str, now: datetime) -> Optional[UserSession]:
        """Get an unexpired session by token hash."""
        pass

    @abstractmethod
    async def delete_session(self, token_hash: str) -> None:
        pass

    @abstractmethod
    async def create_login_token(self, email: str, jti: str, expires_at: datetime) -> LoginToken:
        pass

    @abstractmethod
    async def get_login_token(self, jti: str) -> Optional[LoginToken]:
        pass


class GroupRepository(BaseRepository):
    """Repository interface for Group entities."""

    @abstractmethod
    async def get_by_id(self, group_id: UUID) -> Optional[Group]:
        pass

    @abstractmethod
    async def list_for_user(self, user_id: UUID) -> List[Tuple[Group, GroupMember]]:
        """Groups where the user is an active member, newest first, with that membership."""
        pass

    @abstractmethod
    async def create(
        self,
        name: str,
        description: Optional[str],
        currency: str,
        income_frequency: str,
        creator: User,
        creator_name: str,
    ) -> Group:
        """Create a group with its creator as first member."""
        pass


class MemberRepository(BaseRepository):
    """Repository interface for GroupMember entities."""

    @abstractmethod
    async def get_by_id(self, group_id: UUID, member_id: UUID) -> Optional[GroupMember]:
        pass

    @abstractmethod
    async def get_active_by_id(self, group_id: UUID, member_id: UUID) -> Optional[GroupMember]:
        pass

    @abstractmethod
    async def get_active_for_user(self, group_id: UUID, user_id: UUID) -> Optional[GroupMember]:
        pass

    @abstractmethod
    async def get_joined_by_email(self, group_id: UUID, email: str) -> Optional[GroupMember]:
        """Active member linked to an account, matched on member or account email."""
        pass

    @abstractmethod
    async def get_pending_by_email(self, group_id: UUID, email: str) -> Optional[GroupMember]:
        """The not-yet-joined member created for an invitation."""
        pass

    @abstractmethod
    async def list_active(self, group_id: UUID) -> List[GroupMember]:
        """Active members ordered by join date."""
        pass

    @abstractmethod
    async def list_all(self, group_id: UUID) -> List[GroupMember]:
        """All members including those who left."""
        pass

    @abstractmethod
    async def count_active(self, group_id: UUID) -> int:
        pass

    @abstractmethod
    async def create(
        self,
        group_id: UUID,
        name: str,
        email: Optional[str] = None,
        user_id: Optional[UUID] = None,
        income: int = 0,
    ) -> GroupMember:
        pass

    @abstractmethod
    async def recalculate_coefficients(self, group_id: UUID) -> None:
        """Recompute coefficients of all active members from their incomes."""
        pass

    @abstractmethod
    async def remove_pending(self, member: GroupMember, now: datetime) -> None:
        """Drop a member that never joined; soft-delete if already referenced."""
        pass


class ExpenseRepository(BaseRepository):
    """Repository interface for Expense entities."""

    @abstractmethod
    async def get_by_id(self, group_id: UUID, expense_id: UUID) -> Optional[Expense]:
        """Get a non-deleted expense with its participants."""
        pass

    @abstractmethod
    async def list_active(self, group_id: UUID) -> List[Expense]:
        """All non-deleted expenses with participants."""
        pass

    @abstractmethod
    async def list_page(
        self,
        group_id: UUID,
        limit: int,
        after: Optional[Tuple[str, datetime]] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        paid_by: Optional[UUID] = None,
        participant_id: Optional[UUID] = None,
        search: Optional[str] = None,
    ) -> List[Expense]:
        """Up to ``limit`` expenses by date then creation time, newest first."""
        pass

    @abstractmethod
    async def create(
        self,
        group_id: UUID,
        paid_by: UUID,
        amount: int,
        description: str,
        date: str,
        created_by: UUID,
        participants: Sequence[Tuple[UUID, Optional[int]]],
    ) -> Expense:
        pass

    @abstractmethod
    async def replace_participants(
        self, expense: Expense, participants: Sequence[Tuple[UUID, Optional[int]]]
    ) -> None:
        pass


class SettlementRepository(BaseRepository):
    """Repository interface for Settlement entities."""

    @abstractmethod
    async def get_by_id(self, group_id: UUID, settlement_id: UUID) -> Optional[Settlement]:
        pass

    @abstractmethod
    async def list_for_group(self, group_id: UUID) -> List[Settlement]:
        pass

    @abstractmethod
    async def list_page(
        self,
        group_id: UUID,
        member_id: UUID,
        settlement_filter: SettlementFilter,
        limit: int,
        before: Optional[datetime] = None,
    ) -> List[Settlement]:
        pass

    @abstractmethod
    async def create(
        self, group_id: UUID, from_member: UUID, to_member: UUID, amount: int, date: str
    ) -> Settlement:
        pass


class InvitationRepository(BaseRepository):
    """Repository interface for GroupInvitation entities."""

    @abstractmethod
    async def get_by_id(self, group_id: UUID, invitation_id: UUID) -> Optional[GroupInvitation]:
        pass

    @abstractmethod
    async def get_by_token(self, token: str) -> Optional[GroupInvitation]:
        pass

    @abstractmethod
    async def get_pending_for_email(
        self, group_id: UUID, email: str, now: datetime
    ) -> Optional[GroupInvitation]:
        pass

    @abstractmethod
    async def list_pending(self, group_id: UUID, now: datetime) -> List[GroupInvitation]:
        pass

    @abstractmethod
    async def list_pending_for_user_email(self, email: str, now: datetime) -> List[GroupInvitation]:
        pass

    @abstractmethod
    async def create(
        self, group_id: UUID, email: str, created_by: UUID, expires_at: datetime
    ) -> GroupInvitation:
        pass


class RepositoryContainer:
    """Container for all repository interfaces to support dependency injection."""

    def __init__(
        self,
        user_repo: UserRepository,
        group_repo: GroupRepository,
        member_repo: MemberRepository,
        expense_repo: ExpenseRepository,
        settlement_repo: SettlementRepository,
        invitation_repo: InvitationRepository,
    ):
        self.user = user_repo
        self.group = group_repo
        self.member = member_repo
        self.expense = expense_repo
        self.settlement = settlement_repo
        self.invitation = invitation_repo

    async def commit(self) -> None:
        """Commit the unit of work shared by all repositories."""
        await self.group.commit()

    async def rollback(self) -> None:
        await self.group.rollback()
