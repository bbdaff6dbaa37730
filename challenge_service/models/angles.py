"""
POSTURE MUSE Challenge Service - Angle Statistics

Steadiness of a joint angle over a hold, and the per-second display averages
shown while the user is holding a pose.
"""

import math
from typing import Dict, List, Sequence

import numpy as np


# Standard deviation (degrees) still counted as a perfectly steady hold
STABILITY_DEADBAND_DEG = 5.0
# Standard deviation (degrees) at which stability bottoms out at 0
STABILITY_SATURATION_DEG = 20.0


def _finite(values: Sequence[float]) -> np.ndarray:
    arr = np.asarray(list(values), dtype=float)
    return arr[np.isfinite(arr)]


def stability_score(series: Sequence[float]) -> float:
    """
    Map the spread of one angle's samples to a steadiness score.

    Args:
        series: Angle values (degrees) in capture order

    Returns:
        1.0 when the angle never moved (or fewer than two samples exist),
        falling linearly to 0.0 once the standard deviation reaches
        STABILITY_SATURATION_DEG.
    """
    values = _finite(series)
    if values.size < 2:
        return 1.0

    spread = float(np.std(values))
    if spread <= STABILITY_DEADBAND_DEG:
        return 1.0
    if spread >= STABILITY_SATURATION_DEG:
        return 0.0

    span = STABILITY_SATURATION_DEG - STABILITY_DEADBAND_DEG
    return float(np.clip(1.0 - (spread - STABILITY_DEADBAND_DEG) / span, 0.0, 1.0))


def mean_stability(time_series: Dict[str, List[float]]) -> float:
    """Unweighted mean stability over every tracked angle (0.0 when none)."""
    if not time_series:
        return 0.0
    scores = [stability_score(series) for series in time_series.values()]
    return float(np.mean(scores))


def average_angles(buffer: Dict[str, List[float]]) -> Dict[str, int]:
    """Whole-degree mean of each angle collected in the current window."""
    averages: Dict[str, int] = {}
    for name, values in buffer.items():
        finite = _finite(values)
        if finite.size == 0:
            continue
        averages[name] = int(math.floor(float(np.mean(finite)) + 0.5))
    return averages
