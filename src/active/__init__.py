"""Active: habits tracked as challenges of scheduled days."""

from __future__ import annotations

from .config import BaseConfig, DevConfig, TestingConfig
from .context import AppContext, create_app_context

__all__ = ["AppContext", "BaseConfig", "DevConfig", "TestingConfig", "create_app_context"]
