"""
Domain services containing pure business logic.
"""

from domain.services import selection

__all__ = ["selection"]
