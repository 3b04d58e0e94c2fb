"""SQLModel table exports."""

from .habit import Challenge, Day, Habit, HabitColor, HabitReminder, HabitStatus
from .user import User

__all__ = [
    "Challenge",
    "Day",
    "Habit",
    "HabitColor",
    "HabitReminder",
    "HabitStatus",
    "User",
]
