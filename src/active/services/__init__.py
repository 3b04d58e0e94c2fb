"""Habit rules and application services."""
