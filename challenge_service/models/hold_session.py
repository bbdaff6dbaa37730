"""
POSTURE MUSE Challenge Service - Hold Session

Runs a multi-level pose challenge: camera readiness, the countdown, the timed
hold fed by detection frames, level finalization, skip/reset, and the ledger
of level results.

Two timers run on the event loop while a level is active: the countdown tick
and, during the hold, the one-second live-average flush. Both are plain
asyncio tasks owned by the session and cancelled on every exit from the
state they serve. Without a running loop the same steps can be driven by
calling ``tick_countdown()`` and ``flush_live_averages()`` directly.
"""

import asyncio
import logging
import numbers
import math
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Any

from core.config import settings

from .angles import average_angles, mean_stability
from .ledger import LevelScoreLedger, SessionResult
from .pose_library import ChallengeLevel, PoseDefinition, PoseLibrary, get_pose_library
from .scoring import (
    FrameScore,
    SimilarityResult,
    compute_accuracy,
    compute_session_score,
    compute_symmetry,
    generate_feedback,
    round_half_up,
    score_to_grade,
    similarity_score,
)
from .summary import ChallengeSummary

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Challenge session states."""
    IDLE = "idle"
    CAMERA_READY = "camera_ready"
    COUNTDOWN = "countdown"
    HOLDING = "holding"
    FINALIZING = "finalizing"
    LEVEL_COMPLETE = "level_complete"
    CHALLENGE_COMPLETE = "challenge_complete"


# A level may be reset or skipped only before it starts finalizing
_INTERRUPTIBLE_STATES = (
    SessionState.IDLE,
    SessionState.CAMERA_READY,
    SessionState.COUNTDOWN,
    SessionState.HOLDING,
)


class SessionStateError(ValueError):
    """Operation not allowed in the session's current state."""
    http_status = 409


class SessionLimitError(RuntimeError):
    """Too many active sessions."""
    http_status = 503


@dataclass
class LiveUpdate:
    """What one detection frame reports back while holding."""
    similarity: int  # 0-100
    hold_progress: float  # 0-100
    feedback: List[str] = field(default_factory=list)
    live_averages: Dict[str, int] = field(default_factory=dict)
    completed: bool = False
    result: Optional[SessionResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "similarity": self.similarity,
            "hold_progress": round(self.hold_progress, 1),
            "feedback": self.feedback,
            "live_averages": self.live_averages,
            "completed": self.completed,
            "result": self.result.to_dict() if self.result else None,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# HOLD BUFFERS
# ═══════════════════════════════════════════════════════════════════════════════

class HoldSession:
    """
    Buffers for the level currently being held.

    Frame scores and the per-angle time series cover the whole hold; the
    per-second buffer only feeds the live display.
    """

    def __init__(self, pose: PoseDefinition, clock: Callable[[], float] = time.monotonic):
        self.pose = pose
        self.hold_seconds = pose.effective_hold_seconds
        self._clock = clock
        self.reset()

    def reset(self):
        """Discard every buffer and live value."""
        self.frame_scores: List[FrameScore] = []
        self.angle_series: Dict[str, List[float]] = {}
        self.second_buffer: Dict[str, List[float]] = {}
        self.live_averages: Dict[str, int] = {}
        self.live_similarity: int = 0
        self.live_feedback: List[str] = []
        self.hold_progress: float = 0.0
        self.start_time: Optional[float] = None

    def start(self):
        self.start_time = self._clock()

    @property
    def elapsed(self) -> float:
        if self.start_time is None:
            return 0.0
        return max(0.0, self._clock() - self.start_time)

    @property
    def is_complete(self) -> bool:
        return self.hold_progress >= 100.0

    def add_frame(self, angles: Dict[str, float]) -> SimilarityResult:
        """Score a frame and append it to the hold buffers."""
        spec = self.pose.target_spec
        similarity = similarity_score(angles, spec.target_angles, spec.tolerances, spec.weights)

        self.live_similarity = round_half_up(similarity.score * 100)
        self.frame_scores.append(FrameScore(
            score=similarity.score,
            timestamp=self._clock(),
            angles=dict(angles)
        ))

        for name, value in angles.items():
            if not isinstance(value, numbers.Real) or not math.isfinite(value):
                continue
            self.angle_series.setdefault(name, []).append(float(value))
            self.second_buffer.setdefault(name, []).append(float(value))

        self.hold_progress = min(100.0, self.elapsed / self.hold_seconds * 100.0)
        return similarity

    def flush_second_buffer(self) -> Dict[str, int]:
        """Average the last second of angles into the live display and clear it."""
        self.live_averages = average_angles(self.second_buffer)
        self.second_buffer = {}
        return self.live_averages

    def finalize(self) -> SessionResult:
        """
        Build the level result.

        Accuracy, symmetry and feedback come from the most recent frame only;
        stability and the overall score use the whole hold.
        """
        spec = self.pose.target_spec
        last_frame = self.frame_scores[-1] if self.frame_scores else None

        accuracy = compute_accuracy(last_frame.score) if last_frame else 0
        symmetry = compute_symmetry(last_frame.angles) if last_frame else 0

        if self.angle_series:
            stability = round_half_up(mean_stability(self.angle_series) * 100)
        else:
            stability = 0

        overall = compute_session_score(self.frame_scores, stability / 100)

        if last_frame:
            deviations = similarity_score(
                last_frame.angles, spec.target_angles, spec.tolerances, spec.weights
            ).deviations
            feedback = generate_feedback(deviations, spec.target_angles, last_frame.angles)
        else:
            feedback = []

        return SessionResult(
            accuracy=accuracy,
            stability=stability,
            symmetry=symmetry,
            grade=score_to_grade(overall),
            feedback=feedback,
            overall_score=overall
        )


# ═══════════════════════════════════════════════════════════════════════════════
# CHALLENGE SESSION
# ═══════════════════════════════════════════════════════════════════════════════

class ChallengeSession:
    """
    State machine for one user's multi-level challenge.

    IDLE -> CAMERA_READY -> COUNTDOWN -> HOLDING -> FINALIZING ->
    LEVEL_COMPLETE -> (next level | CHALLENGE_COMPLETE)
    """

    def __init__(
        self,
        session_id: str,
        user_id: str,
        levels: List[ChallengeLevel],
        library: PoseLibrary,
        clock: Callable[[], float] = time.monotonic,
        countdown_seconds: Optional[int] = None,
        tick_interval: Optional[float] = None,
        average_interval: Optional[float] = None,
        live_hint_count: Optional[int] = None
    ):
        if not levels:
            raise ValueError("A challenge needs at least one level")

        self.session_id = session_id
        self.user_id = user_id
        self.levels = list(levels)
        self.library = library
        self._clock = clock

        self.countdown_seconds = settings.COUNTDOWN_SECONDS if countdown_seconds is None else countdown_seconds
        self.tick_interval = settings.COUNTDOWN_TICK_SECONDS if tick_interval is None else tick_interval
        self.average_interval = (
            settings.LIVE_AVERAGE_INTERVAL_SECONDS if average_interval is None else average_interval
        )
        self.live_hint_count = settings.LIVE_HINT_COUNT if live_hint_count is None else live_hint_count

        self.state = SessionState.IDLE
        self.camera_active = False
        self.current_level = 0
        self.countdown = self.countdown_seconds
        self.ledger = LevelScoreLedger(len(self.levels))
        self.result: Optional[SessionResult] = None
        self.hold = HoldSession(self.current_pose, clock)

        self._countdown_task: Optional[asyncio.Task] = None
        self._average_task: Optional[asyncio.Task] = None

        self.created_at = time.time()

    # ─── properties ──────────────────────────────────────────────────────────

    @property
    def current_level_info(self) -> ChallengeLevel:
        return self.levels[self.current_level]

    @property
    def current_pose(self) -> PoseDefinition:
        return self.library.require(self.current_level_info.slug)

    @property
    def is_last_level(self) -> bool:
        return self.current_level >= len(self.levels) - 1

    @property
    def timers_running(self) -> bool:
        return any(
            task is not None and not task.done()
            for task in (self._countdown_task, self._average_task)
        )

    # ─── state guard ─────────────────────────────────────────────────────────

    def _set_state(self, new_state: SessionState):
        old_state = self.state
        if old_state == new_state:
            return

        if old_state == SessionState.HOLDING:
            self._cancel_average_timer()
            self.hold.second_buffer = {}
            self.hold.live_averages = {}
        if old_state == SessionState.COUNTDOWN and new_state != SessionState.HOLDING:
            self._cancel_countdown_timer()

        self.state = new_state
        logger.debug(f"Session {self.session_id}: {old_state.value} -> {new_state.value}")

    # ─── timers ──────────────────────────────────────────────────────────────

    @staticmethod
    def _spawn(coro_factory) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return None
        return loop.create_task(coro_factory())

    @staticmethod
    def _cancel(task: Optional[asyncio.Task]):
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # a timer finishing its own last step exits on its own
        if task is not current:
            task.cancel()

    def _cancel_countdown_timer(self):
        task, self._countdown_task = self._countdown_task, None
        self._cancel(task)

    def _cancel_average_timer(self):
        task, self._average_task = self._average_task, None
        self._cancel(task)

    async def _countdown_loop(self):
        while self.state == SessionState.COUNTDOWN:
            await asyncio.sleep(self.tick_interval)
            if self.tick_countdown():
                break

    async def _live_average_loop(self):
        while self.state == SessionState.HOLDING:
            await asyncio.sleep(self.average_interval)
            if self.state != SessionState.HOLDING:
                break
            self.flush_live_averages()

    def tick_countdown(self) -> bool:
        """
        Advance the countdown by one step.

        Returns True once the countdown is over (holding has started, or the
        session is no longer counting down).
        """
        if self.state != SessionState.COUNTDOWN:
            return True

        self.countdown -= 1
        if self.countdown > 0:
            return False

        self.countdown = 0
        self._enter_holding()
        return True

    def flush_live_averages(self) -> Dict[str, int]:
        """Publish the last second of angle averages (holding only)."""
        if self.state != SessionState.HOLDING:
            return {}
        return self.hold.flush_second_buffer()

    def _enter_holding(self):
        self._countdown_task = None
        self.hold.reset()
        self.hold.start()
        self._set_state(SessionState.HOLDING)
        self._average_task = self._spawn(self._live_average_loop)
        logger.info(
            f"🧘 Session {self.session_id}: holding level {self.current_level + 1} "
            f"({self.current_pose.slug}, {self.hold.hold_seconds}s)"
        )

    # ─── camera ──────────────────────────────────────────────────────────────

    def activate_camera(self) -> Dict[str, Any]:
        self.camera_active = True
        if self.state == SessionState.IDLE:
            self._set_state(SessionState.CAMERA_READY)
        logger.info(f"📷 Session {self.session_id}: camera active")
        return self.to_dict()

    def deactivate_camera(self) -> Dict[str, Any]:
        """Camera lost or denied: drop the current attempt and wait for a camera."""
        self.camera_active = False
        if self.state in _INTERRUPTIBLE_STATES:
            self.hold.reset()
            self.countdown = self.countdown_seconds
            self._set_state(SessionState.IDLE)
        logger.warning(f"⚠️ Session {self.session_id}: camera unavailable")
        return self.to_dict()

    # ─── level flow ──────────────────────────────────────────────────────────

    def begin(self) -> Dict[str, Any]:
        """Start the countdown for the current level."""
        if self.state == SessionState.COUNTDOWN:
            logger.debug(f"Session {self.session_id}: countdown already running")
            return self.to_dict()
        if self.state != SessionState.CAMERA_READY:
            raise SessionStateError(f"Cannot begin from state '{self.state.value}'; camera must be ready")

        self.countdown = self.countdown_seconds
        self._set_state(SessionState.COUNTDOWN)

        if self.countdown <= 0:
            self._enter_holding()
        else:
            self._countdown_task = self._spawn(self._countdown_loop)

        return self.to_dict()

    def handle_pose_detected(self, angles: Dict[str, float], landmarks: Any = None) -> Optional[LiveUpdate]:
        """
        Feed one detection frame.

        Args:
            angles: Joint angle sample (angle name -> degrees)
            landmarks: Raw landmarks from the detector (unused)

        Returns:
            LiveUpdate while holding, None when the frame was ignored.
        """
        if self.state != SessionState.HOLDING:
            return None

        pose = self.current_pose
        similarity = self.hold.add_frame(angles)
        hints = generate_feedback(similarity.deviations, pose.target_angles, angles, self.live_hint_count)
        self.hold.live_feedback = hints

        update = LiveUpdate(
            similarity=self.hold.live_similarity,
            hold_progress=self.hold.hold_progress,
            feedback=hints,
            live_averages=dict(self.hold.live_averages)
        )

        if self.hold.is_complete:
            update.result = self._complete_level()
            update.completed = True

        return update

    def _complete_level(self) -> SessionResult:
        self._set_state(SessionState.FINALIZING)

        result = self.hold.finalize()
        self.result = result
        self.hold.reset()

        self._set_state(SessionState.LEVEL_COMPLETE)
        logger.info(
            f"✅ Session {self.session_id}: level {self.current_level + 1} complete "
            f"(score {result.overall_score}, {result.grade})"
        )
        return result

    def reset_level(self) -> Dict[str, Any]:
        """Discard the current attempt without recording anything."""
        if self.state not in _INTERRUPTIBLE_STATES:
            raise SessionStateError(f"Cannot reset from state '{self.state.value}'")

        self.hold.reset()
        self.countdown = self.countdown_seconds
        self._set_state(SessionState.CAMERA_READY if self.camera_active else SessionState.IDLE)
        logger.info(f"🔄 Session {self.session_id}: level {self.current_level + 1} reset")
        return self.to_dict()

    def skip_level(self) -> SessionResult:
        """Record the current level as skipped (score 0) and move on."""
        if self.state not in _INTERRUPTIBLE_STATES:
            raise SessionStateError(f"Cannot skip from state '{self.state.value}'")

        self.ledger.record_skip(self.current_level)
        self.hold.reset()
        logger.info(f"⏭️ Session {self.session_id}: level {self.current_level + 1} skipped")

        self._advance()
        return SessionResult.skipped()

    def next_level(self) -> Dict[str, Any]:
        """Commit the cached level result and move on."""
        if self.state != SessionState.LEVEL_COMPLETE or self.result is None:
            raise SessionStateError(f"No finished level to advance from (state '{self.state.value}')")

        self.ledger.record_score(self.current_level, self.result)
        self._advance()
        return self.to_dict()

    def _advance(self):
        self.result = None
        self.countdown = self.countdown_seconds

        if self.is_last_level:
            self._set_state(SessionState.CHALLENGE_COMPLETE)
            logger.info(
                f"🏁 Session {self.session_id}: challenge complete "
                f"(total {self.ledger.total_score()})"
            )
            return

        self.current_level += 1
        self.hold = HoldSession(self.current_pose, self._clock)
        self._set_state(SessionState.CAMERA_READY if self.camera_active else SessionState.IDLE)

    # ─── results ─────────────────────────────────────────────────────────────

    def summary(self) -> ChallengeSummary:
        return ChallengeSummary.from_ledger(self.ledger, self.levels)

    def close(self):
        """Stop every timer owned by this session."""
        self._cancel_countdown_timer()
        self._cancel_average_timer()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        pose = self.current_pose
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "state": self.state.value,
            "camera_active": self.camera_active,
            "level": self.current_level + 1,
            "total_levels": len(self.levels),
            "is_last_level": self.is_last_level,
            "pose": {
                "slug": pose.slug,
                "name": pose.name,
                "difficulty": pose.difficulty,
                "hold_seconds": self.hold.hold_seconds,
            },
            "countdown": self.countdown,
            "similarity": self.hold.live_similarity,
            "hold_progress": round(self.hold.hold_progress, 1),
            "live_feedback": self.hold.live_feedback,
            "live_averages": self.hold.live_averages,
            "result": self.result.to_dict() if self.result else None,
            "ledger": self.ledger.to_dict(),
        }


# ═══════════════════════════════════════════════════════════════════════════════
# SESSION HANDLER
# ═══════════════════════════════════════════════════════════════════════════════

class ChallengeSessionHandler:
    """Registry of active challenge sessions."""

    def __init__(self, library: Optional[PoseLibrary] = None, max_sessions: Optional[int] = None):
        """
        Initialize session handler.

        Args:
            library: PoseLibrary instance (uses global if None)
            max_sessions: Cap on concurrent sessions (settings if None)
        """
        self.library = library if library is not None else get_pose_library()
        self.max_sessions = settings.MAX_ACTIVE_SESSIONS if max_sessions is None else max_sessions
        self.active_sessions: Dict[str, ChallengeSession] = {}

    def create_session(
        self,
        user_id: str,
        pose_slugs: Optional[List[str]] = None,
        **session_options
    ) -> ChallengeSession:
        """
        Create a new challenge session.

        Args:
            user_id: User ID
            pose_slugs: Level order (library default challenge if None)

        Returns:
            New ChallengeSession
        """
        if len(self.active_sessions) >= self.max_sessions:
            self.evict_finished()
        if len(self.active_sessions) >= self.max_sessions:
            raise SessionLimitError("Maximum active sessions reached")

        levels = self.library.build_challenge(pose_slugs)
        session_id = str(uuid.uuid4())[:8]

        session = ChallengeSession(
            session_id=session_id,
            user_id=user_id,
            levels=levels,
            library=self.library,
            **session_options
        )
        self.active_sessions[session_id] = session

        logger.info(f"🆕 Challenge session {session_id} created for {user_id} ({len(levels)} levels)")
        return session

    def get_session(self, session_id: str) -> Optional[ChallengeSession]:
        """Get session by ID."""
        return self.active_sessions.get(session_id)

    def require_session(self, session_id: str) -> ChallengeSession:
        session = self.active_sessions.get(session_id)
        if session is None:
            raise KeyError(f"Session {session_id} not found")
        return session

    def cleanup_session(self, session_id: str):
        """Stop and remove a session."""
        session = self.active_sessions.pop(session_id, None)
        if session:
            session.close()
            logger.info(f"🧹 Challenge session {session_id} removed")

    def evict_finished(self) -> int:
        """Remove sessions whose challenge is complete; returns how many."""
        finished = [
            session_id for session_id, session in self.active_sessions.items()
            if session.state == SessionState.CHALLENGE_COMPLETE
        ]
        for session_id in finished:
            self.cleanup_session(session_id)
        if finished:
            logger.info(f"🧹 Evicted {len(finished)} finished challenge sessions")
        return len(finished)

    def shutdown(self):
        """Stop every session's timers."""
        for session in self.active_sessions.values():
            session.close()
        self.active_sessions.clear()

    def get_stats(self) -> Dict[str, Any]:
        states: Dict[str, int] = {}
        for session in self.active_sessions.values():
            states[session.state.value] = states.get(session.state.value, 0) + 1
        return {
            "active_sessions": len(self.active_sessions),
            "max_sessions": self.max_sessions,
            "states": states,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# MODULE-LEVEL SINGLETON
# ═══════════════════════════════════════════════════════════════════════════════

_handler_instance: Optional[ChallengeSessionHandler] = None

def get_session_handler() -> ChallengeSessionHandler:
    """Get or create the global session handler instance."""
    global _handler_instance
    if _handler_instance is None:
        _handler_instance = ChallengeSessionHandler()
    return _handler_instance
