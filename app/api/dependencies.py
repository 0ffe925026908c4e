"""Shared API auth dependencies."""
from app.core.security import require_operator

__all__ = ["require_operator"]
