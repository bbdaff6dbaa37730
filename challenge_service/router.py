"""
POSTURE MUSE Challenge Service Router

Endpoints for the pose library, multi-level challenge sessions, live frame
scoring, and the closing summary/report.
Joint angles come from the client-side detector; no video is processed here.
"""

import logging
from typing import Optional, List, Dict, Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel, Field

from shared.utils import handle_exceptions, error_response

from .models import (
    ChallengeSession,
    ChallengeSessionHandler,
    PoseLibrary,
    SessionState,
    SessionStateError,
    get_pose_library,
    get_session_handler,
    render_report
)

logger = logging.getLogger(__name__)

router = APIRouter()


# Service instances (singleton pattern)
_pose_library: Optional[PoseLibrary] = None
_session_handler: Optional[ChallengeSessionHandler] = None


def get_services():
    """Get or initialize service instances."""
    global _pose_library, _session_handler
    if _pose_library is None:
        _pose_library = get_pose_library()
    if _session_handler is None:
        _session_handler = get_session_handler()
    return _pose_library, _session_handler


# ============= Pydantic Models =============

class StartChallengeRequest(BaseModel):
    user_id: str
    pose_slugs: Optional[List[str]] = None  # level order; default challenge if omitted


class PoseFrameRequest(BaseModel):
    angles: Dict[str, float]
    landmarks: Optional[List[Dict[str, Any]]] = None  # passed through, unused for scoring


class CameraRequest(BaseModel):
    active: bool = True


# ============= Pose Library =============

@router.get("/poses")
async def list_poses(difficulty: Optional[str] = None):
    """Get the pose library."""
    library, _ = get_services()
    poses = library.list_poses(difficulty)
    return {
        "poses": [p.to_dict() for p in poses],
        "total": len(poses)
    }


@router.get("/poses/{slug}")
@handle_exceptions
async def get_pose(slug: str):
    """Get one reference pose."""
    library, _ = get_services()
    return library.require(slug).to_dict()


@router.get("/levels")
async def get_default_levels():
    """Get the default challenge levels."""
    library, _ = get_services()
    levels = library.build_challenge()
    return {"levels": [lvl.to_dict() for lvl in levels], "total": len(levels)}


# ============= Challenge Sessions =============

@router.post("/session/start")
@handle_exceptions
async def start_challenge(request: StartChallengeRequest):
    """
    Start a new challenge session.

    Returns a session ID for the REST and WebSocket endpoints.
    """
    _, handler = get_services()
    session = handler.create_session(user_id=request.user_id, pose_slugs=request.pose_slugs)

    return {
        "status": "created",
        "session_id": session.session_id,
        "user_id": request.user_id,
        "levels": [lvl.to_dict() for lvl in session.levels],
        "websocket_url": f"/api/challenge/ws/session/{session.session_id}"
    }


@router.get("/session/{session_id}")
@handle_exceptions
async def get_session_status(session_id: str):
    """Get current session status."""
    _, handler = get_services()
    return handler.require_session(session_id).to_dict()


@router.post("/session/{session_id}/camera")
@handle_exceptions
async def set_camera(session_id: str, request: CameraRequest):
    """Report camera availability."""
    _, handler = get_services()
    session = handler.require_session(session_id)
    if request.active:
        return session.activate_camera()
    return session.deactivate_camera()


@router.post("/session/{session_id}/begin")
@handle_exceptions
async def begin_level(session_id: str):
    """Start the countdown for the current level."""
    _, handler = get_services()
    return handler.require_session(session_id).begin()


@router.post("/session/{session_id}/frame")
@handle_exceptions
async def submit_frame(session_id: str, request: PoseFrameRequest):
    """
    Score one detection frame.

    Frames outside the hold are acknowledged and ignored.
    """
    _, handler = get_services()
    session = handler.require_session(session_id)
    update = session.handle_pose_detected(request.angles, request.landmarks)

    if update is None:
        return {"status": "ignored", "state": session.state.value}

    return {"status": "scored", "state": session.state.value, **update.to_dict()}


@router.post("/session/{session_id}/reset")
@handle_exceptions
async def reset_level(session_id: str):
    """Discard the current attempt."""
    _, handler = get_services()
    return handler.require_session(session_id).reset_level()


@router.post("/session/{session_id}/skip")
@handle_exceptions
async def skip_level(session_id: str):
    """Skip the current level (recorded as 0)."""
    _, handler = get_services()
    session = handler.require_session(session_id)
    result = session.skip_level()
    return {"status": "skipped", "result": result.to_dict(), "session": session.to_dict()}


@router.post("/session/{session_id}/next")
@handle_exceptions
async def next_level(session_id: str):
    """Record the finished level and move on."""
    _, handler = get_services()
    return handler.require_session(session_id).next_level()


@router.get("/session/{session_id}/summary")
@handle_exceptions
async def get_summary(session_id: str):
    """Get the closing summary of a finished challenge."""
    _, handler = get_services()
    session = _require_complete(handler, session_id)
    return session.summary().to_dict()


@router.get("/session/{session_id}/report")
@handle_exceptions
async def get_report(session_id: str):
    """Render the closing report as a PNG image."""
    library, handler = get_services()
    session = _require_complete(handler, session_id)
    png = await render_report(session.summary(), library)
    return Response(content=png, media_type="image/png")


@router.delete("/session/{session_id}")
async def delete_session(session_id: str):
    """Stop and remove a session."""
    _, handler = get_services()
    if not handler.get_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    handler.cleanup_session(session_id)
    return {"status": "removed", "session_id": session_id}


def _require_complete(handler: ChallengeSessionHandler, session_id: str) -> ChallengeSession:
    session = handler.require_session(session_id)
    if session.state != SessionState.CHALLENGE_COMPLETE:
        raise SessionStateError("Challenge is not complete yet")
    return session


# ============= WebSocket Endpoints =============

@router.websocket("/ws/session/{session_id}")
async def challenge_session_stream(websocket: WebSocket, session_id: str):
    """
    Real-time challenge session.

    Client messages: {"type": "camera", "active": bool}, {"type": "begin"},
    {"type": "pose", "angles": {...}}, {"type": "reset"}, {"type": "skip"},
    {"type": "next"}, {"type": "status"}.
    """
    await websocket.accept()
    _, handler = get_services()

    session = handler.get_session(session_id)
    if not session:
        await websocket.send_json(error_response(f"Session {session_id} not found", "SESSION_NOT_FOUND"))
        await websocket.close()
        return

    await websocket.send_json({"type": "SESSION_CONNECTED", "session": session.to_dict()})

    try:
        while True:
            try:
                message = await websocket.receive_json()
                reply = _handle_ws_message(session, message)
            except WebSocketDisconnect:
                raise
            except Exception as e:
                logger.warning(f"⚠️ Session {session_id}: rejected message ({type(e).__name__}: {e})")
                await websocket.send_json(error_response(str(e), "INVALID_MESSAGE"))
                continue

            if reply is not None:
                await websocket.send_json(reply)

    except WebSocketDisconnect:
        logger.info(f"Session {session_id} disconnected")
    finally:
        # Drop any attempt in progress; recorded levels are kept
        if session.state in (SessionState.COUNTDOWN, SessionState.HOLDING):
            session.reset_level()


def _handle_ws_message(session: ChallengeSession, message: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(message, dict):
        raise ValueError("Message must be a JSON object")

    msg_type = message.get("type")

    if msg_type == "pose":
        update = session.handle_pose_detected(dict(message["angles"]), message.get("landmarks"))
        if update is None:
            return None
        if update.completed:
            return {"type": "LEVEL_COMPLETED", **update.to_dict()}
        return {"type": "LIVE_UPDATE", **update.to_dict()}

    if msg_type == "camera":
        if message.get("active", True):
            return {"type": "STATUS", "session": session.activate_camera()}
        return {"type": "STATUS", "session": session.deactivate_camera()}

    if msg_type == "begin":
        return {"type": "COUNTDOWN_STARTED", "session": session.begin()}

    if msg_type == "reset":
        return {"type": "LEVEL_RESET", "session": session.reset_level()}

    if msg_type == "skip":
        result = session.skip_level()
        return {"type": "LEVEL_SKIPPED", "result": result.to_dict(), "session": session.to_dict()}

    if msg_type == "next":
        status = session.next_level()
        if session.state == SessionState.CHALLENGE_COMPLETE:
            return {"type": "CHALLENGE_COMPLETED", "summary": session.summary().to_dict()}
        return {"type": "LEVEL_STARTED", "session": status}

    if msg_type == "status":
        return {"type": "STATUS", "session": session.to_dict()}

    raise ValueError(f"Unknown message type: {msg_type}")
