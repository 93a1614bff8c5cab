"""
Pydantic schemas package
"""

from .common import *
from .event import *
from .guest import *
from .photo import *

__all__ = [
    "StandardResponse",
    "ErrorDetails",
    "ErrorResponse",
    "EventCreate",
    "EventUpdate",
    "EventResponse",
    "TrialAccountCreate",
    "PhotoUploadRequest",
    "GuestUploadInfo",
    "PhotoRecord",
    "PhotoSummary",
    "ResyncReport",
]
