"""
POSTURE MUSE Challenge Service - Challenge Summary

Closing numbers for a finished challenge: the total score, its grade with a
short encouraging message, and a per-level breakdown.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any

from .ledger import LevelScoreLedger, LevelStatus
from .pose_library import ChallengeLevel
from .scoring import GRADE_THRESHOLDS, Grade


@dataclass(frozen=True)
class ClosingFeedback:
    """Grade, headline and message shown with the total score."""
    grade: str
    label: str
    message: str


CLOSING_FEEDBACK = {
    Grade.SUPERB: ClosingFeedback(
        grade=Grade.SUPERB.value,
        label="🌟 Pose Master",
        message="You nailed it! Strength, control, and grace, beautifully done."
    ),
    Grade.GREAT: ClosingFeedback(
        grade=Grade.GREAT.value,
        label="🌞 Flowing Smoothly",
        message="Your focus is shining through. Just a few tweaks to perfect it!"
    ),
    Grade.HEALTHY: ClosingFeedback(
        grade=Grade.HEALTHY.value,
        label="🌿 Steady & Centered",
        message="Strong form and great balance. Stay mindful of your breathing."
    ),
    Grade.IMPROVING: ClosingFeedback(
        grade=Grade.IMPROVING.value,
        label="🌤 Getting Stronger",
        message="Nice progress! Keep refining your alignment, you're leveling up."
    ),
    Grade.NEEDS_FOCUS: ClosingFeedback(
        grade=Grade.NEEDS_FOCUS.value,
        label="🌱 Just Beginning",
        message="Every expert starts here. Your consistency will make magic!"
    ),
}


def closing_feedback(total_score: float) -> ClosingFeedback:
    """Closing message for a total score (same bands as level grades)."""
    for threshold, grade in GRADE_THRESHOLDS:
        if total_score >= threshold:
            return CLOSING_FEEDBACK[grade]
    return CLOSING_FEEDBACK[Grade.NEEDS_FOCUS]


@dataclass
class LevelBreakdown:
    """One row of the level breakdown."""
    level: int
    slug: str
    name: str
    difficulty: str
    score: int
    display: str
    skipped: bool
    feedback: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "slug": self.slug,
            "name": self.name,
            "difficulty": self.difficulty,
            "score": self.score,
            "display": self.display,
            "skipped": self.skipped,
            "feedback": self.feedback,
        }


@dataclass
class ChallengeSummary:
    """Everything the closing screen and report need."""
    total_score: int
    feedback: ClosingFeedback
    levels: List[LevelBreakdown]
    level_scores: List[int]
    level_feedbacks: List[List[str]]

    @classmethod
    def from_ledger(
        cls,
        ledger: LevelScoreLedger,
        levels: Optional[List[ChallengeLevel]] = None
    ) -> "ChallengeSummary":
        levels = levels or []
        rows = []
        for idx, outcome in enumerate(ledger.outcomes):
            details = levels[idx] if idx < len(levels) else None
            rows.append(LevelBreakdown(
                level=idx + 1,
                slug=details.slug if details else "",
                name=details.name if details else f"Level {idx + 1}",
                difficulty=details.difficulty if details else "",
                score=outcome.score if outcome.status == LevelStatus.SCORED else 0,
                display=outcome.display,
                skipped=outcome.status == LevelStatus.SKIPPED,
                feedback=list(outcome.feedback)
            ))

        total = ledger.total_score()
        return cls(
            total_score=total,
            feedback=closing_feedback(total),
            levels=rows,
            level_scores=ledger.scores,
            level_feedbacks=ledger.feedbacks
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_score": self.total_score,
            "grade": self.feedback.grade,
            "label": self.feedback.label,
            "message": self.feedback.message,
            "levels": [row.to_dict() for row in self.levels],
            "level_scores": self.level_scores,
            "level_feedbacks": self.level_feedbacks,
        }
