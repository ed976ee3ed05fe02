"""Sessions API router: the authenticated user's own login sessions."""

from datetime import timedelta

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from tenantgate.api.auth import Identity, get_identity
from tenantgate.api.dependencies import get_session_manager
from tenantgate.api.models import LogoutResponse, SessionListResponse, SessionTimeoutResponse
from tenantgate.infra.config import config
from tenantgate.infra.errors import SessionNotFound
from tenantgate.models.tenant import UserSession
from tenantgate.services.session_manager import SessionLifecycleManager
from tenantgate.services.session_timeout import seconds_remaining

router = APIRouter(prefix="/api/sessions")


def _session_not_found(message: str = "Session not found") -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content=SessionNotFound(message).to_payload(config.ERROR_LOCALE),
    )


def _serialize(session: UserSession, current_session_id: str) -> dict:
    return {
        "id": session.id,
        "session_id": session.session_id,
        "device_info": session.device_info,
        "location": session.location_string,
        "ip_address": session.ip_address,
        "browser": session.browser,
        "platform": session.platform,
        "device_type": session.device_type,
        "state": session.state.value,
        "is_current": session.session_id == current_session_id,
        "last_activity": session.last_activity.isoformat(),
        "created_at": session.created_at.isoformat(),
    }


@router.get("", tags=["Sessions"], response_model=SessionListResponse)
async def list_sessions(
    identity: Identity = Depends(get_identity),
    manager: SessionLifecycleManager = Depends(get_session_manager),
):
    """List the active sessions of the authenticated user."""
    sessions = await run_in_threadpool(manager.get_active_sessions, identity.user_id)
    return {
        "success": True,
        "data": {
            "sessions": [_serialize(session, identity.session_id) for session in sessions],
            "total_sessions": len(sessions),
        },
    }


@router.delete("/{session_id}", tags=["Sessions"], response_model=LogoutResponse)
async def logout_session(
    session_id: str,
    identity: Identity = Depends(get_identity),
    manager: SessionLifecycleManager = Depends(get_session_manager),
):
    """Log out one of the user's sessions."""
    success = await run_in_threadpool(manager.logout_session, identity.user_id, session_id)
    if not success:
        return _session_not_found()
    return {"success": True, "message": "Session logged out successfully"}


@router.post("/logout-others", tags=["Sessions"], response_model=LogoutResponse)
async def logout_other_sessions(
    identity: Identity = Depends(get_identity),
    manager: SessionLifecycleManager = Depends(get_session_manager),
):
    """Log out every session except the one making the request."""
    count = await run_in_threadpool(manager.logout_other_sessions, identity.user_id, identity.session_id)
    return {
        "success": True,
        "message": f"Logged out {count} other sessions",
        "data": {"logged_out_count": count},
    }


@router.post("/logout-all", tags=["Sessions"], response_model=LogoutResponse)
async def logout_all_sessions(
    identity: Identity = Depends(get_identity),
    manager: SessionLifecycleManager = Depends(get_session_manager),
):
    """Log out every session, the current one included."""
    count = await run_in_threadpool(manager.logout_all_sessions, identity.user_id)
    return {
        "success": True,
        "message": f"All sessions ({count}) logged out",
        "data": {"logged_out_count": count},
    }


@router.get("/timeout", tags=["Sessions"], response_model=SessionTimeoutResponse)
async def session_timeout(
    identity: Identity = Depends(get_identity),
    manager: SessionLifecycleManager = Depends(get_session_manager),
):
    """Idle timeout state of the current session."""
    session = await run_in_threadpool(manager.find_active_session, identity.user_id, identity.session_id)
    if session is None:
        return _session_not_found("Current session not found")

    timeout_minutes = config.SESSION_TIMEOUT_MINUTES
    idle_seconds = max(0, int((manager.clock() - session.last_activity).total_seconds()))
    idle_minutes = idle_seconds // 60
    return {
        "success": True,
        "data": {
            "timeout_minutes": timeout_minutes,
            "idle_minutes": idle_minutes,
            "remaining_minutes": max(0, timeout_minutes - idle_minutes),
            "remaining_seconds": seconds_remaining(timeout_minutes, idle_seconds),
            "last_activity": session.last_activity.isoformat(),
            "expires_at": (session.last_activity + timedelta(minutes=timeout_minutes)).isoformat(),
        },
    }
