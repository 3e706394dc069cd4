"""
EzMark Pipeline - Backend Module
"""

from .config import settings

__all__ = [
    "settings",
]
