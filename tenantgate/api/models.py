"""API request/response models."""

from typing import List, Optional
from pydantic import BaseModel, Field


# ============================================================================
# Sessions Models
# ============================================================================

class SessionResponse(BaseModel):
    """One login session of the authenticated user."""
    id: int
    session_id: str
    device_info: str = Field(..., example="iPhone - Safari 14.0 - iOS 14.0")
    location: str = Field(..., example="Local, Local")
    ip_address: str
    browser: Optional[str] = None
    platform: Optional[str] = None
    device_type: Optional[str] = Field(None, example="mobile")
    state: str = Field(..., example="current", description="current | active")
    is_current: bool = Field(..., description="Whether this is the session making the request")
    last_activity: str
    created_at: str


class SessionListData(BaseModel):
    sessions: List[SessionResponse]
    total_sessions: int


class SessionListResponse(BaseModel):
    """Response model for listing active sessions."""
    success: bool = True
    data: SessionListData


class LogoutCountData(BaseModel):
    logged_out_count: int


class LogoutResponse(BaseModel):
    """Response model for logout operations."""
    success: bool = True
    message: str
    data: Optional[LogoutCountData] = None


class SessionTimeoutData(BaseModel):
    timeout_minutes: int
    idle_minutes: int
    remaining_minutes: int
    remaining_seconds: int
    last_activity: str
    expires_at: str


class SessionTimeoutResponse(BaseModel):
    """Response model for the current session's timeout state."""
    success: bool = True
    data: SessionTimeoutData


# ============================================================================
# Errors
# ============================================================================

class ErrorBody(BaseModel):
    code: str = Field(..., example="SESSION_EXPIRED")
    message: str
    message_localized: Optional[str] = None
    details: Optional[dict] = None


class ErrorResponse(BaseModel):
    """Error payload returned by every failing endpoint and interceptor."""
    success: bool = False
    error: ErrorBody
