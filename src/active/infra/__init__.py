"""Persistence and event infrastructure."""
