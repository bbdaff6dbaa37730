"""
POSTURE MUSE Challenge Service - Level Results

The result of one level and the per-level ledger a challenge accumulates.
Skipped levels are tagged explicitly even though their externally reported
score is 0, so a summary can tell a skip from a genuine zero.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Any

from .scoring import round_half_up, score_to_grade


SKIPPED_DISPLAY = "—"


@dataclass(frozen=True)
class SessionResult:
    """Outcome of one completed (or skipped) hold."""
    accuracy: int  # 0-100, from the last frame
    stability: int  # 0-100, whole hold
    symmetry: int  # 0-100, from the last frame
    grade: str
    feedback: List[str] = field(default_factory=list)
    overall_score: int = 0  # 0-100

    @classmethod
    def skipped(cls) -> "SessionResult":
        return cls(
            accuracy=0,
            stability=0,
            symmetry=0,
            grade=score_to_grade(0),
            feedback=[],
            overall_score=0
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accuracy": self.accuracy,
            "stability": self.stability,
            "symmetry": self.symmetry,
            "grade": self.grade,
            "feedback": list(self.feedback),
            "overall_score": self.overall_score,
        }


class LevelStatus(Enum):
    """Ledger slot states."""
    PENDING = "pending"
    SCORED = "scored"
    SKIPPED = "skipped"


@dataclass
class LevelOutcome:
    """One ledger slot."""
    status: LevelStatus = LevelStatus.PENDING
    score: int = 0
    feedback: List[str] = field(default_factory=list)

    @property
    def display(self) -> str:
        """Score as shown in summaries; anything but a real score shows a dash."""
        if self.status == LevelStatus.SCORED:
            return str(self.score)
        return SKIPPED_DISPLAY


class LevelScoreLedger:
    """
    Ordered per-level scores and feedback for a whole challenge.

    ``scores`` collapses skipped and pending slots to 0; the per-slot
    ``LevelOutcome`` keeps the distinction.
    """

    def __init__(self, level_count: int):
        self._outcomes: List[LevelOutcome] = [LevelOutcome() for _ in range(level_count)]

    def __len__(self) -> int:
        return len(self._outcomes)

    def record_score(self, index: int, result: SessionResult):
        self._outcomes[index] = LevelOutcome(
            status=LevelStatus.SCORED,
            score=int(result.overall_score),
            feedback=list(result.feedback)
        )

    def record_skip(self, index: int):
        self._outcomes[index] = LevelOutcome(status=LevelStatus.SKIPPED)

    def outcome(self, index: int) -> LevelOutcome:
        return self._outcomes[index]

    @property
    def outcomes(self) -> List[LevelOutcome]:
        return list(self._outcomes)

    @property
    def scores(self) -> List[int]:
        return [o.score if o.status == LevelStatus.SCORED else 0 for o in self._outcomes]

    @property
    def feedbacks(self) -> List[List[str]]:
        return [list(o.feedback) for o in self._outcomes]

    def is_skipped(self, index: int) -> bool:
        return self._outcomes[index].status == LevelStatus.SKIPPED

    def total_score(self) -> int:
        """Unweighted mean of every slot, skipped and pending slots counting as 0."""
        if not self._outcomes:
            return 0
        return round_half_up(sum(self.scores) / len(self._outcomes))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scores": self.scores,
            "feedbacks": self.feedbacks,
            "statuses": [o.status.value for o in self._outcomes],
            "display": [o.display for o in self._outcomes],
            "total_score": self.total_score(),
        }
