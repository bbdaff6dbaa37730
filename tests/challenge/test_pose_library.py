"""
Tests for the reference pose library and challenge level building.
"""

import json

import pytest

from challenge_service.models import PoseDefinition, PoseLibrary
from core.config import settings


class TestBuiltInLibrary:

    def test_default_challenge_covers_every_built_in_pose(self):
        library = PoseLibrary()
        levels = library.build_challenge()

        assert len(library) == 5
        assert [lvl.level for lvl in levels] == [1, 2, 3, 4, 5]
        assert levels[0].slug == "mountain"
        assert all(lvl.slug in library for lvl in levels)

    def test_built_in_poses_score_every_angle(self):
        library = PoseLibrary()

        assert library.scoring_gaps() == []
        for pose in library.list_poses():
            assert set(pose.target_spec.scored_angles) == set(pose.target_angles)

    def test_filter_by_difficulty(self):
        library = PoseLibrary()
        slugs = [p.slug for p in library.list_poses("intermediate")]

        assert slugs == ["tree", "warrior-ii"]


class TestChallengeLevels:

    def test_custom_order(self):
        levels = PoseLibrary().build_challenge(["tree", "mountain"])

        assert [(lvl.level, lvl.slug) for lvl in levels] == [(1, "tree"), (2, "mountain")]
        assert levels[0].to_dict()["name"] == "Tree Pose"

    def test_unknown_slug_raises(self):
        with pytest.raises(KeyError):
            PoseLibrary().build_challenge(["mountain", "handstand"])

    def test_empty_library_has_no_challenge(self):
        with pytest.raises(ValueError):
            PoseLibrary(poses=[]).build_challenge()

    def test_require_unknown_pose(self):
        library = PoseLibrary()

        assert library.get("handstand") is None
        with pytest.raises(KeyError):
            library.require("handstand")


class TestPoseDefinition:

    def test_missing_hold_time_uses_default(self):
        pose = PoseDefinition.from_dict({
            "slug": "plank",
            "targetAngles": {"left_elbow": 90},
            "tolerances": {"left_elbow": 10},
            "weights": {"left_elbow": 1},
            "hold_seconds": 0,
        })

        assert pose.name == "plank"
        assert pose.effective_hold_seconds == settings.DEFAULT_HOLD_SECONDS
        assert pose.to_dict()["hold_seconds"] == settings.DEFAULT_HOLD_SECONDS

    def test_incomplete_maps_are_reported(self):
        pose = PoseDefinition(
            slug="lopsided",
            name="Lopsided",
            difficulty="Beginner",
            target_angles={"left_knee": 90, "right_knee": 90},
            tolerances={"left_knee": 10},
            weights={"left_knee": 1, "right_knee": 1},
        )
        library = PoseLibrary(poses=[pose])

        assert pose.target_spec.scored_angles == ["left_knee"]
        assert library.scoring_gaps() == ["lopsided"]


def test_load_from_json(tmp_path):
    path = tmp_path / "poses.json"
    path.write_text(json.dumps({
        "poses": [
            {
                "slug": "boat",
                "name": "Boat Pose",
                "difficulty": "Advanced",
                "target_angles": {"left_hip": 60, "right_hip": 60},
                "tolerances": {"left_hip": 15, "right_hip": 15},
                "weights": {"left_hip": 1, "right_hip": 1},
                "hold_seconds": 15,
            },
            {
                "slug": "child",
                "name": "Child's Pose",
                "difficulty": "Beginner",
                "targetAngles": {"left_knee": 30},
                "tolerances": {"left_knee": 20},
                "weights": {"left_knee": 1},
            },
        ],
        "challenge": ["child", "boat"],
    }), encoding="utf-8")

    library = PoseLibrary.from_json(str(path))

    assert len(library) == 2
    assert library.require("boat").target_angles == {"left_hip": 60, "right_hip": 60}
    assert library.require("boat").effective_hold_seconds == 15
    assert [lvl.slug for lvl in library.build_challenge()] == ["child", "boat"]
