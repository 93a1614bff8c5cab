"""
Database models package
"""

from .event import Event
from .guest import Guest
from .photo import Photo
from .account import Account, Partner

__all__ = ["Event", "Guest", "Photo", "Account", "Partner"]
