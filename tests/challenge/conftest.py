"""
Shared fixtures for the challenge service tests.
"""

import pytest

from challenge_service.models import (
    ChallengeSession,
    PoseDefinition,
    PoseLibrary,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_knee_pose(slug: str = "knee-hold", hold_seconds: int = 3) -> PoseDefinition:
    return PoseDefinition(
        slug=slug,
        name="Knee Hold",
        difficulty="Beginner",
        target_angles={"knee": 90},
        tolerances={"knee": 10},
        weights={"knee": 1},
        hold_seconds=hold_seconds,
        thumbnail="",
    )


def make_bilateral_pose(slug: str = "squat-hold", hold_seconds: int = 2) -> PoseDefinition:
    return PoseDefinition(
        slug=slug,
        name="Squat Hold",
        difficulty="Intermediate",
        target_angles={"left_knee": 100, "right_knee": 100, "left_elbow": 170, "right_elbow": 170},
        tolerances={"left_knee": 20, "right_knee": 20, "left_elbow": 20, "right_elbow": 20},
        weights={"left_knee": 2, "right_knee": 2, "left_elbow": 1, "right_elbow": 1},
        hold_seconds=hold_seconds,
        thumbnail="",
    )


@pytest.fixture
def knee_pose():
    return make_knee_pose


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def library():
    return PoseLibrary(
        poses=[make_knee_pose(), make_bilateral_pose()],
        challenge=["knee-hold", "squat-hold"],
    )


@pytest.fixture
def make_session(library, clock):
    """Build a two-level session driven by the fake clock."""

    def _make(**options) -> ChallengeSession:
        options.setdefault("clock", clock)
        options.setdefault("countdown_seconds", 3)
        return ChallengeSession(
            session_id="test",
            user_id="user-1",
            levels=library.build_challenge(),
            library=library,
            **options
        )

    return _make
