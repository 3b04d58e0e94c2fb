"""User lookup and creation."""

from __future__ import annotations

from typing import Callable, Optional

from sqlmodel import Session, select

from ..errors import InvalidInput, NotFound
from ..models.user import User

SessionFactory = Callable[[], Session]


def _clean_username(username: str) -> str:
    cleaned = (username or "").strip()
    if not cleaned:
        raise InvalidInput("Username must not be empty")
    return cleaned


def get_user_by_username(username: str, session_factory: SessionFactory) -> Optional[User]:
    """Fetch a user by username."""
    username = username.strip()
    with session_factory() as session:
        user = session.exec(select(User).where(User.username == username)).first()
        if user:
            session.expunge(user)
        return user


def get_user(user_id: int, session_factory: SessionFactory) -> User:
    """Fetch a user by id or raise NotFound."""
    with session_factory() as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found")
        session.expunge(user)
        return user


def ensure_user(username: str, session_factory: SessionFactory) -> User:
    """Return the user with ``username``, creating it on first use."""

    username = _clean_username(username)
    existing = get_user_by_username(username, session_factory)
    if existing is not None:
        return existing
    with session_factory() as session:
        user = User(username=username)
        session.add(user)
        session.commit()
        session.refresh(user)
        session.expunge(user)
        return user


__all__ = ["ensure_user", "get_user", "get_user_by_username"]
