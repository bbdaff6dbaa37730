"""
POSTURE MUSE Challenge Service Models

Pose similarity scoring, hold sessions, and challenge results.
"""

from .angles import (
    stability_score,
    mean_stability,
    average_angles
)

from .scoring import (
    FrameScore,
    SimilarityResult,
    Grade,
    similarity_score,
    compute_accuracy,
    compute_symmetry,
    compute_session_score,
    score_to_grade,
    generate_feedback
)

from .pose_library import (
    TargetPoseSpec,
    PoseDefinition,
    ChallengeLevel,
    PoseLibrary,
    get_pose_library
)

from .ledger import (
    SessionResult,
    LevelStatus,
    LevelOutcome,
    LevelScoreLedger
)

from .summary import (
    ChallengeSummary,
    ClosingFeedback,
    LevelBreakdown,
    closing_feedback
)

from .hold_session import (
    SessionState,
    SessionStateError,
    SessionLimitError,
    LiveUpdate,
    HoldSession,
    ChallengeSession,
    ChallengeSessionHandler,
    get_session_handler
)

from .report import (
    draw_report,
    render_report
)

__all__ = [
    # Angles
    "stability_score",
    "mean_stability",
    "average_angles",
    # Scoring
    "FrameScore",
    "SimilarityResult",
    "Grade",
    "similarity_score",
    "compute_accuracy",
    "compute_symmetry",
    "compute_session_score",
    "score_to_grade",
    "generate_feedback",
    # Pose Library
    "TargetPoseSpec",
    "PoseDefinition",
    "ChallengeLevel",
    "PoseLibrary",
    "get_pose_library",
    # Ledger
    "SessionResult",
    "LevelStatus",
    "LevelOutcome",
    "LevelScoreLedger",
    # Summary
    "ChallengeSummary",
    "ClosingFeedback",
    "LevelBreakdown",
    "closing_feedback",
    # Hold Session
    "SessionState",
    "SessionStateError",
    "SessionLimitError",
    "LiveUpdate",
    "HoldSession",
    "ChallengeSession",
    "ChallengeSessionHandler",
    "get_session_handler",
    # Report
    "draw_report",
    "render_report",
]
