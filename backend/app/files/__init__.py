"""File routes scoped to the authenticated user."""

from .router import router

__all__ = ["router"]
