"""Habit tracking data structures."""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from enum import Enum
from typing import TYPE_CHECKING, ClassVar, Optional

from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import relationship
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:  # pragma: no cover
    from .user import User


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HabitColor(str, Enum):
    """Palette a habit can be displayed with."""

    MIDNIGHT_BLUE = "midnight_blue"
    AMETHYST = "amethyst"
    POMEGRANATE = "pomegranate"
    ALIZARIN = "alizarin"
    CARROT = "carrot"
    ORANGE = "orange"
    BLUE = "blue"
    PETER_RIVER = "peter_river"
    BELIZE_HOLE = "belize_hole"
    TURQUOISE = "turquoise"
    EMERALD = "emerald"


class HabitStatus(str, Enum):
    """Segment a habit is listed under."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Habit(SQLModel, table=True):
    """A habit tracked through a series of challenges."""

    __tablename__: ClassVar[str] = "habit"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    name: str = Field(nullable=False, max_length=80, index=True)
    color: HabitColor = Field(default=HabitColor.EMERALD, nullable=False)
    created_at: datetime = Field(default_factory=_utcnow, nullable=False, index=True)
    version: int = Field(default=1, nullable=False)

    challenges: list["Challenge"] = Relationship(
        back_populates="habit",
        sa_relationship=relationship(
            "Challenge",
            back_populates="habit",
            cascade="all, delete-orphan",
            order_by="desc(Challenge.start_date)",
        ),
    )
    reminders: list["HabitReminder"] = Relationship(
        back_populates="habit",
        sa_relationship=relationship(
            "HabitReminder",
            back_populates="habit",
            cascade="all, delete-orphan",
            order_by="HabitReminder.fire_time",
        ),
    )

    user: "User" = Relationship(sa_relationship=relationship("User", back_populates="habits"))


class Challenge(SQLModel, table=True):
    """One scheduled stretch of days for a habit."""

    __tablename__: ClassVar[str] = "challenge"

    id: Optional[int] = Field(default=None, primary_key=True)
    habit_id: Optional[int] = Field(
        default=None, foreign_key="habit.id", nullable=False, index=True
    )
    start_date: date = Field(nullable=False, index=True)
    end_date: date = Field(nullable=False)
    created_at: datetime = Field(default_factory=_utcnow, nullable=False)

    days: list["Day"] = Relationship(
        back_populates="challenge",
        sa_relationship=relationship(
            "Day",
            back_populates="challenge",
            cascade="all, delete-orphan",
            order_by="Day.scheduled_on",
        ),
    )

    habit: Optional["Habit"] = Relationship(
        back_populates="challenges",
        sa_relationship=relationship("Habit", back_populates="challenges"),
    )


class Day(SQLModel, table=True):
    """A calendar day inside a challenge, executed or not."""

    __tablename__: ClassVar[str] = "challenge_day"
    __table_args__ = (UniqueConstraint("challenge_id", "scheduled_on"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    challenge_id: Optional[int] = Field(
        default=None, foreign_key="challenge.id", nullable=False, index=True
    )
    scheduled_on: date = Field(nullable=False, index=True)
    executed: bool = Field(default=False, nullable=False)
    executed_at: Optional[datetime] = Field(default=None)

    challenge: Optional["Challenge"] = Relationship(
        back_populates="days",
        sa_relationship=relationship("Challenge", back_populates="days"),
    )


class HabitReminder(SQLModel, table=True):
    """Time of day at which a reminder for the habit should fire."""

    __tablename__: ClassVar[str] = "habit_reminder"
    __table_args__ = (UniqueConstraint("habit_id", "fire_time"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    habit_id: Optional[int] = Field(
        default=None, foreign_key="habit.id", nullable=False, index=True
    )
    fire_time: time = Field(nullable=False)

    habit: Optional["Habit"] = Relationship(
        back_populates="reminders",
        sa_relationship=relationship("Habit", back_populates="reminders"),
    )
