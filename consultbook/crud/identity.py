"""
Identity lookups consumed by the scheduling core.
"""

from typing import Optional

from sqlalchemy.orm import Session

from consultbook.models.user import User, Consultant


def get_consultant(db: Session, consultant_id: int) -> Optional[Consultant]:
    return db.query(Consultant).filter(
        Consultant.id == consultant_id,
        Consultant.is_active.is_(True),
    ).first()


def get_user(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(
        User.id == user_id,
        User.is_active.is_(True),
    ).first()


def consultant_exists(db: Session, consultant_id: int) -> bool:
    return get_consultant(db, consultant_id) is not None


def user_exists(db: Session, user_id: int) -> bool:
    return get_user(db, user_id) is not None
