"""Dependency injection for repository layer."""

from fastapi import Depends
from sqlalchemy.orm import Session

from ..db.database import get_db
from .interfaces import RepositoryContainer
from .sqlalchemy_impl import (
    SQLAlchemyUserRepository,
    SQLAlchemyGroupRepository,
    SQLAlchemyMemberRepository,
    SQLAlchemyExpenseRepository,
    SQLAlchemySettlementRepository,
    SQLAlchemyInvitationRepository,
)


def get_repository_container(
    db: Session = Depends(get_db),
) -> RepositoryContainer:
    """
    Create and configure a repository container with SQLAlchemy implementations.

    All repositories share the request's session, so one commit covers them.
    """
    return RepositoryContainer(
        user_repo=SQLAlchemyUserRepository(db),
        group_repo=SQLAlchemyGroupRepository(db),
        member_repo=SQLAlchemyMemberRepository(db),
        expense_repo=SQLAlchemyExpenseRepository(db),
        settlement_repo=SQLAlchemySettlementRepository(db),
        invitation_repo=SQLAlchemyInvitationRepository(db),
    )


def get_user_repository(db: Session = Depends(get_db)) -> SQLAlchemyUserRepository:
    """Get User repository instance."""
    return SQLAlchemyUserRepository(db)


def get_group_repository(db: Session = Depends(get_db)) -> SQLAlchemyGroupRepository:
    """Get Group repository instance."""
    return SQLAlchemyGroupRepository(db)


def get_member_repository(db: Session = Depends(get_db)) -> SQLAlchemyMemberRepository:
    """Get GroupMember repository instance."""
    return SQLAlchemyMemberRepository(db)
