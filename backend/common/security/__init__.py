"""
Common security utilities for identifying the authenticated caller.
"""

from .auth import AuthenticatedPrincipal, get_current_principal

__all__ = ["AuthenticatedPrincipal", "get_current_principal"]
