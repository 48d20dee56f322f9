"""SQLAlchemy concrete implementations of repository interfaces.

Repositories add and flush; the request handler commits the unit of work
through ``RepositoryContainer.commit`` once every change is in place.
"""

from datetime import datetime
from typing import List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

from sqlalchemy import and_, desc, func, or_
from sqlalchemy.orm import Session, selectinload

from .interfaces import (
    UserRepository,
    GroupRepository,
    MemberRepository,
    ExpenseRepository,
    SettlementRepository,
    InvitationRepository,
)
from ..core.enums import SettlementFilter
from ..db.models import (
    User,
    UserSession,
    LoginToken,
    Group,
    GroupInvitation,
    GroupMember,
    Expense,
    ExpenseParticipant,
    Settlement,
)
from ..services.coefficients import recalculate_coefficients


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class BaseSQLAlchemyRepository:
    """Base SQLAlchemy repository implementation."""

    def __init__(self, session: Session):
        self._session = session

    async def save(self, entity) -> None:
        """Save an entity to the repository."""
        self._session.add(entity)
        self._session.flush()

    async def delete(self, entity) -> None:
        """Delete an entity from the repository."""
        self._session.delete(entity)
        self._session.flush()

    async def commit(self) -> None:
        """Commit the current transaction."""
        self._session.commit()

    async def rollback(self) -> None:
        """Rollback the current transaction."""
        self._session.rollback()


class SQLAlchemyUserRepository(BaseSQLAlchemyRepository, UserRepository):
    """SQLAlchemy implementation of UserRepository."""

    async def get_by_id(self, user_id: UUID) -> Optional[User]:
        return self._session.query(User).filter(User.id == user_id).first()

    async def get_by_email(self, email: str) -> Optional[User]:
        return self._session.query(User).filter(User.email == email.lower()).first()

    async def get_or_create(self, email: str) -> User:
        user = await self.get_by_email(email)
        if user is None:
            user = User(email=email.lower(), email_verified=True)
            await self.save(user)
        elif not user.email_verified:
            user.email_verified = True
        return user

    async def create_session(self, user: User, token_hash: str, expires_at: datetime) -> UserSession:
        session = UserSession(user_id=user.id, token_hash=token_hash, expires_at=expires_at)
        await self.save(session)
        return session

    async def get_active_session(self, token_hash: str, now: datetime) -> Optional[UserSession]:
        return (
            self._session.query(UserSession)
            .options(selectinload(UserSession.user))
            .filter(and_(UserSession.token_hash == token_hash, UserSession.expires_at > now))
            .first()
        )

    async def delete_session(self, token_hash: str) -> None:
        self._session.query(UserSession).filter(UserSession.token_hash == token_hash).delete()
        self._session.flush()

    async def create_login_token(self, email: str, jti: str, expires_at: datetime) -> LoginToken:
        record = LoginToken(email=email, jti=jti, expires_at=expires_at)
        await self.save(record)
        return record

    async def get_login_token(self, jti: str) -> Optional[LoginToken]:
        return self._session.query(LoginToken).filter(LoginToken.jti == jti).first()


class SQLAlchemyGroupRepository(BaseSQLAlchemyRepository, GroupRepository):
    """SQLAlchemy implementation of GroupRepository."""

    async def get_by_id(self, group_id: UUID) -> Optional[Group]:
        return self._session.query(Group).filter(Group.id == group_id).first()

    async def list_for_user(self, user_id: UUID) -> List[Tuple[Group, GroupMember]]:
        return (
            self._session.query(Group, GroupMember)
            .join(GroupMember, GroupMember.group_id == Group.id)
            .filter(and_(GroupMember.user_id == user_id, GroupMember.left_at.is_(None)))
            .order_by(desc(Group.created_at))
            .all()
        )

    async def create(
        self,
        name: str,
        description: Optional[str],
        currency: str,
        income_frequency: str,
        creator: User,
        creator_name: str,
    ) -> Group:
        group = Group(
            name=name,
            description=description,
            currency=currency,
            income_frequency=income_frequency,
            created_by=creator.id,
        )
        await self.save(group)

        member = GroupMember(
            group_id=group.id,
            user_id=creator.id,
            name=creator_name,
            email=creator.email,
            income=0,
            coefficient=10000,
        )
        await self.save(member)
        return group


class SQLAlchemyMemberRepository(BaseSQLAlchemyRepository, MemberRepository):
    """SQLAlchemy implementation of MemberRepository."""

    async def get_by_id(self, group_id: UUID, member_id: UUID) -> Optional[GroupMember]:
        return (
            self._session.query(GroupMember)
            .filter(and_(GroupMember.group_id == group_id, GroupMember.id == member_id))
            .first()
        )

    async def get_active_by_id(self, group_id: UUID, member_id: UUID) -> Optional[GroupMember]:
        return (
            self._session.query(GroupMember)
            .filter(
                and_(
                    GroupMember.group_id == group_id,
                    GroupMember.id == member_id,
                    GroupMember.left_at.is_(None),
                )
            )
            .first()
        )

    async def get_active_for_user(self, group_id: UUID, user_id: UUID) -> Optional[GroupMember]:
        return (
            self._session.query(GroupMember)
            .filter(
                and_(
                    GroupMember.group_id == group_id,
                    GroupMember.user_id == user_id,
                    GroupMember.left_at.is_(None),
                )
            )
            .first()
        )

    async def get_joined_by_email(self, group_id: UUID, email: str) -> Optional[GroupMember]:
        email = email.lower()
        return (
            self._session.query(GroupMember)
            .join(User, User.id == GroupMember.user_id)
            .filter(
                and_(
                    GroupMember.group_id == group_id,
                    GroupMember.left_at.is_(None),
                    or_(func.lower(GroupMember.email) == email, func.lower(User.email) == email),
                )
            )
            .first()
        )

    async def get_pending_by_email(self, group_id: UUID, email: str) -> Optional[GroupMember]:
        return (
            self._session.query(GroupMember)
            .filter(
                and_(
                    GroupMember.group_id == group_id,
                    func.lower(GroupMember.email) == email.lower(),
                    GroupMember.user_id.is_(None),
                    GroupMember.left_at.is_(None),
                )
            )
            .first()
        )

    async def list_active(self, group_id: UUID) -> List[GroupMember]:
        return (
            self._session.query(GroupMember)
            .options(selectinload(GroupMember.user))
            .filter(and_(GroupMember.group_id == group_id, GroupMember.left_at.is_(None)))
            .order_by(GroupMember.joined_at)
            .all()
        )

    async def list_all(self, group_id: UUID) -> List[GroupMember]:
        return (
            self._session.query(GroupMember)
            .options(selectinload(GroupMember.user))
            .filter(GroupMember.group_id == group_id)
            .order_by(GroupMember.joined_at)
            .all()
        )

    async def count_active(self, group_id: UUID) -> int:
        return (
            self._session.query(func.count(GroupMember.id))
            .filter(and_(GroupMember.group_id == group_id, GroupMember.left_at.is_(None)))
            .scalar()
        )

    async def create(
        self,
        group_id: UUID,
        name: str,
        email: Optional[str] = None,
        user_id: Optional[UUID] = None,
        income: int = 0,
    ) -> GroupMember:
        member = GroupMember(
            group_id=group_id,
            user_id=user_id,
            name=name,
            email=email.lower() if email else None,
            income=income,
            coefficient=0,
        )
        await self.save(member)
        return member

    async def recalculate_coefficients(self, group_id: UUID) -> None:
        # Pending joins and departures must be visible to the query below
        self._session.flush()
        members = await self.list_active(group_id)
        recalculate_coefficients(members)
        self._session.flush()

    async def _is_referenced(self, member_id: UUID) -> bool:
        if (
            self._session.query(Expense.id)
            .filter(or_(Expense.paid_by == member_id, Expense.created_by == member_id))
            .first()
        ):
            return True
        if (
            self._session.query(ExpenseParticipant.id)
            .filter(ExpenseParticipant.member_id == member_id)
            .first()
        ):
            return True
        return (
            self._session.query(Settlement.id)
            .filter(or_(Settlement.from_member == member_id, Settlement.to_member == member_id))
            .first()
            is not None
        )

    async def remove_pending(self, member: GroupMember, now: datetime) -> None:
        if await self._is_referenced(member.id):
            member.left_at = now
            self._session.flush()
        else:
            await self.delete(member)


class SQLAlchemyExpenseRepository(BaseSQLAlchemyRepository, ExpenseRepository):
    """SQLAlchemy implementation of ExpenseRepository."""

    def _active_query(self, group_id: UUID):
        return (
            self._session.query(Expense)
            .options(selectinload(Expense.participants))
            .filter(and_(Expense.group_id == group_id, Expense.deleted_at.is_(None)))
        )

    async def get_by_id(self, group_id: UUID, expense_id: UUID) -> Optional[Expense]:
        return self._active_query(group_id).filter(Expense.id == expense_id).first()

    async def list_active(self, group_id: UUID) -> List[Expense]:
        return self._active_query(group_id).all()

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
        query = self._active_query(group_id)

        if after is not None:
            after_date, after_created = after
            query = query.filter(
                or_(
                    Expense.date < after_date,
                    and_(Expense.date == after_date, Expense.created_at < after_created),
                )
            )
        if start_date:
            query = query.filter(Expense.date >= start_date)
        if end_date:
            query = query.filter(Expense.date <= end_date)
        if paid_by:
            query = query.filter(Expense.paid_by == paid_by)
        if participant_id:
            query = query.filter(
                Expense.participants.any(ExpenseParticipant.member_id == participant_id)
            )
        if search:
            query = query.filter(
                Expense.description.ilike(f"%{_escape_like(search)}%", escape="\\")
            )

        return (
            query.order_by(desc(Expense.date), desc(Expense.created_at))
            .limit(limit)
            .all()
        )

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
        expense = Expense(
            group_id=group_id,
            paid_by=paid_by,
            amount=amount,
            description=description,
            date=date,
            created_by=created_by,
        )
        expense.participants = [
            ExpenseParticipant(member_id=member_id, custom_amount=custom_amount)
            for member_id, custom_amount in participants
        ]
        await self.save(expense)
        return expense

    async def replace_participants(
        self, expense: Expense, participants: Sequence[Tuple[UUID, Optional[int]]]
    ) -> None:
        expense.participants.clear()
        self._session.flush()
        expense.participants.extend(
            ExpenseParticipant(member_id=member_id, custom_amount=custom_amount)
            for member_id, custom_amount in participants
        )
        self._session.flush()


class SQLAlchemySettlementRepository(BaseSQLAlchemyRepository, SettlementRepository):
    """SQLAlchemy implementation of SettlementRepository."""

    async def get_by_id(self, group_id: UUID, settlement_id: UUID) -> Optional[Settlement]:
        return (
            self._session.query(Settlement)
            .filter(and_(Settlement.group_id == group_id, Settlement.id == settlement_id))
            .first()
        )

    async def list_for_group(self, group_id: UUID) -> List[Settlement]:
        return (
            self._session.query(Settlement)
            .filter(Settlement.group_id == group_id)
            .order_by(desc(Settlement.created_at))
            .all()
        )

    async def list_page(
        self,
        group_id: UUID,
        member_id: UUID,
        settlement_filter: SettlementFilter,
        limit: int,
        before: Optional[datetime] = None,
    ) -> List[Settlement]:
        query = self._session.query(Settlement).filter(Settlement.group_id == group_id)

        if settlement_filter == SettlementFilter.SENT:
            query = query.filter(Settlement.from_member == member_id)
        elif settlement_filter == SettlementFilter.RECEIVED:
            query = query.filter(Settlement.to_member == member_id)

        if before is not None:
            query = query.filter(Settlement.created_at < before)

        return query.order_by(desc(Settlement.created_at)).limit(limit).all()

    async def create(
        self, group_id: UUID, from_member: UUID, to_member: UUID, amount: int, date: str
    ) -> Settlement:
        settlement = Settlement(
            group_id=group_id,
            from_member=from_member,
            to_member=to_member,
            amount=amount,
            date=date,
        )
        await self.save(settlement)
        return settlement


class SQLAlchemyInvitationRepository(BaseSQLAlchemyRepository, InvitationRepository):
    """SQLAlchemy implementation of InvitationRepository."""

    @staticmethod
    def _pending(now: datetime):
        return and_(
            GroupInvitation.accepted_at.is_(None),
            GroupInvitation.declined_at.is_(None),
            GroupInvitation.expires_at > now,
        )

    async def get_by_id(self, group_id: UUID, invitation_id: UUID) -> Optional[GroupInvitation]:
        return (
            self._session.query(GroupInvitation)
            .filter(
                and_(GroupInvitation.group_id == group_id, GroupInvitation.id == invitation_id)
            )
            .first()
        )

    async def get_by_token(self, token: str) -> Optional[GroupInvitation]:
        return self._session.query(GroupInvitation).filter(GroupInvitation.token == token).first()

    async def get_pending_for_email(
        self, group_id: UUID, email: str, now: datetime
    ) -> Optional[GroupInvitation]:
        return (
            self._session.query(GroupInvitation)
            .filter(
                and_(
                    GroupInvitation.group_id == group_id,
                    GroupInvitation.email == email.lower(),
                    self._pending(now),
                )
            )
            .first()
        )

    async def list_pending(self, group_id: UUID, now: datetime) -> List[GroupInvitation]:
        return (
            self._session.query(GroupInvitation)
            .options(selectinload(GroupInvitation.inviter))
            .filter(and_(GroupInvitation.group_id == group_id, self._pending(now)))
            .order_by(desc(GroupInvitation.created_at))
            .all()
        )

    async def list_pending_for_user_email(self, email: str, now: datetime) -> List[GroupInvitation]:
        return (
            self._session.query(GroupInvitation)
            .options(selectinload(GroupInvitation.group), selectinload(GroupInvitation.inviter))
            .join(Group, Group.id == GroupInvitation.group_id)
            .filter(
                and_(
                    GroupInvitation.email == email.lower(),
                    Group.archived_at.is_(None),
                    self._pending(now),
                )
            )
            .order_by(desc(GroupInvitation.created_at))
            .all()
        )

    async def create(
        self, group_id: UUID, email: str, created_by: UUID, expires_at: datetime
    ) -> GroupInvitation:
        invitation = GroupInvitation(
            group_id=group_id,
            email=email.lower(),
            token=str(uuid4()),
            created_by=created_by,
            expires_at=expires_at,
        )
        await self.save(invitation)
        return invitation
