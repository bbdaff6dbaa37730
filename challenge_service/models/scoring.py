"""
POSTURE MUSE Challenge Service - Pose Scoring

Frame-level similarity against a target pose, the derived accuracy/symmetry
metrics, session aggregation, grade bands, and corrective feedback ranking.
"""

import math
import numbers
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence


# Blend of mean frame similarity and hold stability in the session score
ACCURACY_WEIGHT = 0.7
STABILITY_WEIGHT = 0.3

# Left/right difference (degrees) at which a bilateral pair scores 0
SYMMETRY_SATURATION_DEG = 45.0
# Reported when a pose has no left_/right_ angle pairs
NEUTRAL_SYMMETRY = 100


# ═══════════════════════════════════════════════════════════════════════════════
# DATA CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

class Grade(Enum):
    """Grade bands, lowest first."""
    NEEDS_FOCUS = "Needs Focus"
    IMPROVING = "Improving"
    HEALTHY = "Healthy"
    GREAT = "Great"
    SUPERB = "Superb"


# Inclusive lower bound of each band, highest first
GRADE_THRESHOLDS = (
    (90, Grade.SUPERB),
    (80, Grade.GREAT),
    (65, Grade.HEALTHY),
    (50, Grade.IMPROVING),
    (0, Grade.NEEDS_FOCUS),
)


@dataclass(frozen=True)
class FrameScore:
    """Similarity of one captured frame."""
    score: float  # 0-1
    timestamp: float
    angles: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class SimilarityResult:
    """Weighted similarity plus the normalized error of every scored angle."""
    score: float
    deviations: Dict[str, float] = field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════════════

def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up."""
    return int(math.floor(value + 0.5))


def _is_number(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool) and math.isfinite(value)


def _joint_label(angle_name: str) -> str:
    return angle_name.replace("_", " ")


# ═══════════════════════════════════════════════════════════════════════════════
# FRAME SIMILARITY
# ═══════════════════════════════════════════════════════════════════════════════

def similarity_score(
    angles: Dict[str, float],
    target_angles: Dict[str, float],
    tolerances: Dict[str, float],
    weights: Dict[str, float]
) -> SimilarityResult:
    """
    Compare one frame's joint angles to a target pose.

    Each angle present in the frame and in all three target maps contributes
    ``1 - min(1, |observed - target| / tolerance)``, weighted by its weight.
    A tolerance <= 0 makes the angle score 0. Angles missing from any map,
    non-finite observations and non-positive weights are left out entirely.

    Returns:
        SimilarityResult with the overall score in [0, 1] and the normalized
        error for every scored angle.
    """
    weighted_sum = 0.0
    total_weight = 0.0
    deviations: Dict[str, float] = {}

    for name, observed in angles.items():
        if name not in target_angles or name not in tolerances or name not in weights:
            continue
        if not _is_number(observed):
            continue

        weight = weights[name]
        if not _is_number(weight) or weight <= 0:
            continue

        tolerance = tolerances[name]
        deviation = abs(observed - target_angles[name])
        if not _is_number(tolerance) or tolerance <= 0:
            normalized_error = 1.0
        else:
            normalized_error = min(1.0, deviation / tolerance)

        deviations[name] = normalized_error
        weighted_sum += weight * (1.0 - normalized_error)
        total_weight += weight

    if total_weight <= 0:
        return SimilarityResult(score=0.0, deviations=deviations)

    score = min(1.0, max(0.0, weighted_sum / total_weight))
    return SimilarityResult(score=score, deviations=deviations)


# ═══════════════════════════════════════════════════════════════════════════════
# DERIVED METRICS
# ═══════════════════════════════════════════════════════════════════════════════

def compute_accuracy(score: float) -> int:
    """Frame similarity as a 0-100 percentage."""
    if not _is_number(score):
        return 0
    return max(0, min(100, round_half_up(score * 100)))


def compute_symmetry(angles: Dict[str, float]) -> int:
    """
    Left/right balance of one frame, 0-100.

    Pairs are found by naming convention (``left_knee`` / ``right_knee``).
    Each pair loses score linearly with its difference, reaching 0 at
    SYMMETRY_SATURATION_DEG. Without any pair, NEUTRAL_SYMMETRY is returned.
    """
    pair_scores: List[float] = []

    for name, left in angles.items():
        if not name.startswith("left_"):
            continue
        right = angles.get("right_" + name[len("left_"):])
        if not _is_number(left) or not _is_number(right):
            continue
        diff = abs(left - right)
        pair_scores.append(max(0.0, 100.0 - diff / SYMMETRY_SATURATION_DEG * 100.0))

    if not pair_scores:
        return NEUTRAL_SYMMETRY

    return max(0, min(100, round_half_up(sum(pair_scores) / len(pair_scores))))


# ═══════════════════════════════════════════════════════════════════════════════
# SESSION AGGREGATION
# ═══════════════════════════════════════════════════════════════════════════════

def compute_session_score(frames: Sequence[FrameScore], stability: float) -> int:
    """
    Overall 0-100 score for one hold.

    Args:
        frames: Every frame scored during the hold
        stability: Hold stability factor in [0, 1]

    Returns:
        round((0.7 * mean frame score + 0.3 * stability) * 100), or 0 when
        no frames were captured.
    """
    scores = [f.score for f in frames if _is_number(f.score)]
    if not scores:
        return 0

    mean_score = min(1.0, max(0.0, sum(scores) / len(scores)))
    stability = min(1.0, max(0.0, stability)) if _is_number(stability) else 0.0

    blended = ACCURACY_WEIGHT * mean_score + STABILITY_WEIGHT * stability
    return max(0, min(100, round_half_up(blended * 100)))


def score_to_grade(score: float) -> str:
    """Grade label for an overall score; lower band bounds are inclusive."""
    if not _is_number(score):
        return Grade.NEEDS_FOCUS.value
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade.value
    return Grade.NEEDS_FOCUS.value


# ═══════════════════════════════════════════════════════════════════════════════
# FEEDBACK
# ═══════════════════════════════════════════════════════════════════════════════

def generate_feedback(
    deviations: Dict[str, float],
    target_angles: Dict[str, float],
    current_angles: Dict[str, float],
    max_hints: Optional[int] = None
) -> List[str]:
    """
    Turn per-angle deviations into corrective hints, worst first.

    Ties keep the iteration order of ``deviations``. Angles already on target
    produce no hint. ``max_hints=None`` returns every hint.
    """
    if not deviations:
        return []
    if max_hints is not None and max_hints <= 0:
        return []

    ranked = sorted(deviations.items(), key=lambda item: item[1], reverse=True)

    hints: List[str] = []
    for name, deviation in ranked:
        if max_hints is not None and len(hints) >= max_hints:
            break
        if not _is_number(deviation) or deviation <= 0:
            continue

        target = target_angles.get(name)
        observed = current_angles.get(name)
        if not _is_number(target) or not _is_number(observed):
            continue

        delta = round_half_up(abs(observed - target))
        joint = _joint_label(name)
        if observed < target:
            hints.append(f"Straighten your {joint} by about {delta}°")
        elif observed > target:
            hints.append(f"Bend your {joint} about {delta}° more")

    return hints
