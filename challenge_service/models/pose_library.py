"""
POSTURE MUSE Challenge Service - Pose Library

Reference poses (target angles, tolerances, weights, hold time) and the
ordered challenge levels built from them. Display metadata such as steps,
tips and thumbnails is carried along untouched by scoring.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Any

from core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# DATA CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TargetPoseSpec:
    """Per-angle targets, tolerances and weights for one pose."""
    target_angles: Dict[str, float]
    tolerances: Dict[str, float]
    weights: Dict[str, float]

    @property
    def scored_angles(self) -> List[str]:
        """Angle names with an entry in all three maps."""
        return [
            name for name in self.target_angles
            if name in self.tolerances and name in self.weights
        ]


@dataclass
class PoseDefinition:
    """A reference pose as supplied by the content library."""
    slug: str
    name: str
    difficulty: str
    target_angles: Dict[str, float]
    tolerances: Dict[str, float]
    weights: Dict[str, float]
    hold_seconds: int = 0
    thumbnail: str = ""
    steps: List[str] = field(default_factory=list)
    tips: List[str] = field(default_factory=list)

    @property
    def target_spec(self) -> TargetPoseSpec:
        return TargetPoseSpec(
            target_angles=self.target_angles,
            tolerances=self.tolerances,
            weights=self.weights
        )

    @property
    def effective_hold_seconds(self) -> int:
        """Configured hold time, or the default when missing/non-positive."""
        if self.hold_seconds and self.hold_seconds > 0:
            return self.hold_seconds
        return settings.DEFAULT_HOLD_SECONDS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PoseDefinition":
        return cls(
            slug=data["slug"],
            name=data.get("name", data["slug"]),
            difficulty=data.get("difficulty", ""),
            target_angles=dict(data.get("targetAngles", data.get("target_angles", {}))),
            tolerances=dict(data.get("tolerances", {})),
            weights=dict(data.get("weights", {})),
            hold_seconds=int(data.get("hold_seconds", 0) or 0),
            thumbnail=data.get("thumbnail", ""),
            steps=list(data.get("steps", [])),
            tips=list(data.get("tips", [])),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "slug": self.slug,
            "name": self.name,
            "difficulty": self.difficulty,
            "thumbnail": self.thumbnail,
            "target_angles": self.target_angles,
            "tolerances": self.tolerances,
            "weights": self.weights,
            "steps": self.steps,
            "tips": self.tips,
            "hold_seconds": self.effective_hold_seconds,
        }


@dataclass(frozen=True)
class ChallengeLevel:
    """One level of a multi-level challenge."""
    level: int
    slug: str
    name: str
    difficulty: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "slug": self.slug,
            "name": self.name,
            "difficulty": self.difficulty,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# BUILT-IN CONTENT
# ═══════════════════════════════════════════════════════════════════════════════

DEFAULT_POSES = [
    {
        "slug": "mountain",
        "name": "Mountain Pose",
        "difficulty": "Beginner",
        "thumbnail": "/media/poses/mountain.jpg",
        "targetAngles": {"left_knee": 178, "right_knee": 178, "left_hip": 176, "right_hip": 176,
                         "left_elbow": 172, "right_elbow": 172},
        "tolerances": {"left_knee": 12, "right_knee": 12, "left_hip": 12, "right_hip": 12,
                       "left_elbow": 20, "right_elbow": 20},
        "weights": {"left_knee": 1.0, "right_knee": 1.0, "left_hip": 1.0, "right_hip": 1.0,
                    "left_elbow": 0.5, "right_elbow": 0.5},
        "steps": ["Stand with feet together", "Lengthen through the crown of your head",
                  "Let your arms rest by your sides"],
        "tips": ["Spread your weight evenly across both feet", "Relax your shoulders away from your ears"],
        "hold_seconds": 20,
    },
    {
        "slug": "chair",
        "name": "Chair Pose",
        "difficulty": "Beginner",
        "thumbnail": "/media/poses/chair.jpg",
        "targetAngles": {"left_knee": 110, "right_knee": 110, "left_hip": 100, "right_hip": 100,
                         "left_shoulder": 170, "right_shoulder": 170},
        "tolerances": {"left_knee": 15, "right_knee": 15, "left_hip": 15, "right_hip": 15,
                       "left_shoulder": 20, "right_shoulder": 20},
        "weights": {"left_knee": 1.5, "right_knee": 1.5, "left_hip": 1.0, "right_hip": 1.0,
                    "left_shoulder": 0.75, "right_shoulder": 0.75},
        "steps": ["Bend your knees as if sitting back into a chair", "Raise your arms overhead"],
        "tips": ["Keep your knees behind your toes", "Draw your belly in to protect your lower back"],
        "hold_seconds": 20,
    },
    {
        "slug": "tree",
        "name": "Tree Pose",
        "difficulty": "Intermediate",
        "thumbnail": "/media/poses/tree.jpg",
        "targetAngles": {"left_knee": 178, "right_knee": 50, "left_hip": 175, "right_hip": 120,
                         "left_shoulder": 165, "right_shoulder": 165},
        "tolerances": {"left_knee": 10, "right_knee": 20, "left_hip": 12, "right_hip": 20,
                       "left_shoulder": 20, "right_shoulder": 20},
        "weights": {"left_knee": 1.5, "right_knee": 1.0, "left_hip": 1.0, "right_hip": 1.0,
                    "left_shoulder": 0.5, "right_shoulder": 0.5},
        "steps": ["Shift your weight onto your left foot", "Place your right sole on your inner left thigh",
                  "Bring your palms together overhead"],
        "tips": ["Fix your gaze on a still point", "Press foot and thigh into each other"],
        "hold_seconds": 25,
    },
    {
        "slug": "warrior-ii",
        "name": "Warrior II",
        "difficulty": "Intermediate",
        "thumbnail": "/media/poses/warrior-ii.jpg",
        "targetAngles": {"left_knee": 95, "right_knee": 175, "left_elbow": 175, "right_elbow": 175,
                         "left_shoulder": 90, "right_shoulder": 90},
        "tolerances": {"left_knee": 15, "right_knee": 12, "left_elbow": 15, "right_elbow": 15,
                       "left_shoulder": 15, "right_shoulder": 15},
        "weights": {"left_knee": 2.0, "right_knee": 1.0, "left_elbow": 0.5, "right_elbow": 0.5,
                    "left_shoulder": 1.0, "right_shoulder": 1.0},
        "steps": ["Step your feet wide apart", "Bend your front knee over the ankle",
                  "Extend your arms parallel to the floor"],
        "tips": ["Keep your torso upright between your legs", "Reach actively through both fingertips"],
        "hold_seconds": 30,
    },
    {
        "slug": "triangle",
        "name": "Triangle Pose",
        "difficulty": "Advanced",
        "thumbnail": "/media/poses/triangle.jpg",
        "targetAngles": {"left_knee": 178, "right_knee": 178, "left_hip": 60, "right_hip": 130,
                         "left_shoulder": 95, "right_shoulder": 95},
        "tolerances": {"left_knee": 10, "right_knee": 10, "left_hip": 15, "right_hip": 15,
                       "left_shoulder": 15, "right_shoulder": 15},
        "weights": {"left_knee": 1.0, "right_knee": 1.0, "left_hip": 1.5, "right_hip": 1.5,
                    "left_shoulder": 1.0, "right_shoulder": 1.0},
        "steps": ["Straighten both legs in a wide stance", "Hinge at the front hip and reach down",
                  "Stack your top arm above your shoulder"],
        "tips": ["Lengthen both sides of the waist", "Use a block if your hand does not reach the floor"],
        "hold_seconds": 30,
    },
]

DEFAULT_CHALLENGE = ["mountain", "chair", "tree", "warrior-ii", "triangle"]


# ═══════════════════════════════════════════════════════════════════════════════
# POSE LIBRARY
# ═══════════════════════════════════════════════════════════════════════════════

class PoseLibrary:
    """
    Lookup of reference poses by slug.

    Loads the built-in poses, or a JSON file of the same shape
    (``{"poses": [...], "challenge": ["slug", ...]}``).
    """

    def __init__(self, poses: Optional[List[PoseDefinition]] = None, challenge: Optional[List[str]] = None):
        if poses is None:
            poses = [PoseDefinition.from_dict(p) for p in DEFAULT_POSES]
        self._poses: Dict[str, PoseDefinition] = {p.slug: p for p in poses}
        self._challenge: List[str] = list(challenge) if challenge else [p.slug for p in poses]

        for slug in self.scoring_gaps():
            logger.warning(f"⚠️ Pose '{slug}' has angles missing a tolerance or weight; they will not be scored")

    @classmethod
    def from_json(cls, path: str) -> "PoseLibrary":
        """Load a library from a JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        poses = [PoseDefinition.from_dict(p) for p in data.get("poses", [])]
        logger.info(f"📚 Loaded {len(poses)} poses from {path}")
        return cls(poses=poses, challenge=data.get("challenge"))

    def scoring_gaps(self) -> List[str]:
        """Slugs of poses whose three maps don't share the same keys."""
        gaps = []
        for pose in self._poses.values():
            spec = pose.target_spec
            if len(spec.scored_angles) != len(set(spec.target_angles) | set(spec.tolerances) | set(spec.weights)):
                gaps.append(pose.slug)
        return gaps

    def get(self, slug: str) -> Optional[PoseDefinition]:
        return self._poses.get(slug)

    def require(self, slug: str) -> PoseDefinition:
        """Get a pose, raising KeyError when it is unknown."""
        pose = self._poses.get(slug)
        if pose is None:
            raise KeyError(f"Pose '{slug}' not found")
        return pose

    def list_poses(self, difficulty: Optional[str] = None) -> List[PoseDefinition]:
        poses = list(self._poses.values())
        if difficulty:
            poses = [p for p in poses if p.difficulty.lower() == difficulty.lower()]
        return poses

    def build_challenge(self, slugs: Optional[List[str]] = None) -> List[ChallengeLevel]:
        """
        Build ordered challenge levels.

        Args:
            slugs: Pose slugs in level order (library default if None)

        Raises:
            KeyError: if a slug is not in the library
            ValueError: if no levels would be produced
        """
        slugs = list(slugs) if slugs else list(self._challenge)
        if not slugs:
            raise ValueError("A challenge needs at least one level")

        levels = []
        for idx, slug in enumerate(slugs):
            pose = self.require(slug)
            levels.append(ChallengeLevel(
                level=idx + 1,
                slug=pose.slug,
                name=pose.name,
                difficulty=pose.difficulty
            ))
        return levels

    def __len__(self) -> int:
        return len(self._poses)

    def __contains__(self, slug: str) -> bool:
        return slug in self._poses


# ═══════════════════════════════════════════════════════════════════════════════
# MODULE-LEVEL SINGLETON
# ═══════════════════════════════════════════════════════════════════════════════

_library_instance: Optional[PoseLibrary] = None

def get_pose_library() -> PoseLibrary:
    """Get or create the global pose library instance."""
    global _library_instance
    if _library_instance is None:
        if settings.POSE_LIBRARY_PATH and Path(settings.POSE_LIBRARY_PATH).exists():
            _library_instance = PoseLibrary.from_json(settings.POSE_LIBRARY_PATH)
        else:
            if settings.POSE_LIBRARY_PATH:
                logger.warning(f"⚠️ Pose library not found at {settings.POSE_LIBRARY_PATH}; using built-in poses")
            _library_instance = PoseLibrary()
    return _library_instance
