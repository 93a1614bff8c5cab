"""
Response envelopes shared by all routes
"""

from typing import Any, Optional
from pydantic import BaseModel

class StandardResponse(BaseModel):
    """Envelope for successful requests"""
    success: bool
    message: str
    data: Optional[Any] = None

class ErrorDetails(BaseModel):
    """Machine-readable part of a rejected admission or storage failure"""
    retryable: bool = False
    reason: Optional[str] = None  # storage failures only

class ErrorResponse(BaseModel):
    """Envelope for rejected requests; ``error_code`` is the domain error code"""
    success: bool = False
    message: str
    error_code: Optional[str] = None
    details: Optional[ErrorDetails] = None
