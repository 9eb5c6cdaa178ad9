"""Humanoid skeleton: HumanBone enumeration and bone -> node mapping.

The source avatar's Animator carries a humanoid mapping from standard body
part identifiers to transform nodes. Normalization may replace every node
(names are preserved), so the mapping can be re-resolved by name against a
new root with Skeleton.rebind().

When an Animator has no explicit mapping, Skeleton.from_hierarchy() guesses
one from bone names using the Unity Humanoid / VRChat alias table below.
"""

from enum import Enum
from typing import Dict, Iterable, Optional

from ..scene_graph.sg_classes import Behavior
from ..utils.errors import ConfigurationError


class HumanBone(str, Enum):
    HIPS = "Hips"
    SPINE = "Spine"
    CHEST = "Chest"
    UPPER_CHEST = "UpperChest"
    NECK = "Neck"
    HEAD = "Head"
    JAW = "Jaw"
    LEFT_EYE = "LeftEye"
    RIGHT_EYE = "RightEye"
    LEFT_SHOULDER = "LeftShoulder"
    LEFT_UPPER_ARM = "LeftUpperArm"
    LEFT_LOWER_ARM = "LeftLowerArm"
    LEFT_HAND = "LeftHand"
    RIGHT_SHOULDER = "RightShoulder"
    RIGHT_UPPER_ARM = "RightUpperArm"
    RIGHT_LOWER_ARM = "RightLowerArm"
    RIGHT_HAND = "RightHand"
    LEFT_UPPER_LEG = "LeftUpperLeg"
    LEFT_LOWER_LEG = "LeftLowerLeg"
    LEFT_FOOT = "LeftFoot"
    LEFT_TOES = "LeftToes"
    RIGHT_UPPER_LEG = "RightUpperLeg"
    RIGHT_LOWER_LEG = "RightLowerLeg"
    RIGHT_FOOT = "RightFoot"
    RIGHT_TOES = "RightToes"


# Bones that must resolve before dynamics / collider processing
REQUIRED_BONES = (HumanBone.HEAD, HumanBone.LEFT_HAND, HumanBone.RIGHT_HAND)


# ============================================================================
# Bone Name Aliases: Unity Humanoid / VRChat -> HumanBone
# ============================================================================

_HUMAN_BONE_ALIASES_RAW = [
    # Spine chain
    (["Hips", "hips", "Pelvis"],                                  HumanBone.HIPS),
    (["Spine", "spine"],                                          HumanBone.SPINE),
    (["Chest", "chest"],                                          HumanBone.CHEST),
    (["UpperChest", "Upper Chest", "upperchest", "upper_chest"],  HumanBone.UPPER_CHEST),
    (["Neck", "neck"],                                            HumanBone.NECK),
    (["Head", "head"],                                            HumanBone.HEAD),
    (["Jaw", "jaw"],                                              HumanBone.JAW),
    (["LeftEye", "Left Eye", "Eye_L", "eye_L", "Eye.L"],          HumanBone.LEFT_EYE),
    (["RightEye", "Right Eye", "Eye_R", "eye_R", "Eye.R"],        HumanBone.RIGHT_EYE),

    # Left arm
    (["LeftShoulder", "Left Shoulder", "Left shoulder",
      "left_shoulder", "Shoulder_L", "Shoulder.L"],               HumanBone.LEFT_SHOULDER),
    (["LeftUpperArm", "Left UpperArm", "Left Upper Arm",
      "left_upper_arm", "Left arm", "UpperArm_L", "UpperArm.L"],  HumanBone.LEFT_UPPER_ARM),
    (["LeftLowerArm", "Left LowerArm", "Left Lower Arm",
      "left_lower_arm", "LeftForeArm", "Left elbow",
      "LowerArm_L", "LowerArm.L"],                                HumanBone.LEFT_LOWER_ARM),
    (["LeftHand", "Left Hand", "left_hand", "Left wrist",
      "Hand_L", "Hand.L"],                                        HumanBone.LEFT_HAND),

    # Right arm
    (["RightShoulder", "Right Shoulder", "Right shoulder",
      "right_shoulder", "Shoulder_R", "Shoulder.R"],              HumanBone.RIGHT_SHOULDER),
    (["RightUpperArm", "Right UpperArm", "Right Upper Arm",
      "right_upper_arm", "Right arm", "UpperArm_R", "UpperArm.R"], HumanBone.RIGHT_UPPER_ARM),
    (["RightLowerArm", "Right LowerArm", "Right Lower Arm",
      "right_lower_arm", "RightForeArm", "Right elbow",
      "LowerArm_R", "LowerArm.R"],                                HumanBone.RIGHT_LOWER_ARM),
    (["RightHand", "Right Hand", "right_hand", "Right wrist",
      "Hand_R", "Hand.R"],                                        HumanBone.RIGHT_HAND),

    # Left leg
    (["LeftUpperLeg", "Left UpperLeg", "Left Upper Leg",
      "left_upper_leg", "Left leg", "UpperLeg_L", "UpperLeg.L"],  HumanBone.LEFT_UPPER_LEG),
    (["LeftLowerLeg", "Left LowerLeg", "Left Lower Leg",
      "left_lower_leg", "Left knee", "LowerLeg_L", "LowerLeg.L"], HumanBone.LEFT_LOWER_LEG),
    (["LeftFoot", "Left Foot", "left_foot", "Left ankle",
      "Foot_L", "Foot.L"],                                        HumanBone.LEFT_FOOT),
    (["LeftToes", "Left Toes", "left_toes", "Left toe",
      "Toes_L", "Toes.L"],                                        HumanBone.LEFT_TOES),

    # Right leg
    (["RightUpperLeg", "Right UpperLeg", "Right Upper Leg",
      "right_upper_leg", "Right leg", "UpperLeg_R", "UpperLeg.R"], HumanBone.RIGHT_UPPER_LEG),
    (["RightLowerLeg", "Right LowerLeg", "Right Lower Leg",
      "right_lower_leg", "Right knee", "LowerLeg_R", "LowerLeg.R"], HumanBone.RIGHT_LOWER_LEG),
    (["RightFoot", "Right Foot", "right_foot", "Right ankle",
      "Foot_R", "Foot.R"],                                        HumanBone.RIGHT_FOOT),
    (["RightToes", "Right Toes", "right_toes", "Right toe",
      "Toes_R", "Toes.R"],                                        HumanBone.RIGHT_TOES),
]

HUMAN_BONE_ALIASES: Dict[str, HumanBone] = {}
for aliases, human_bone in _HUMAN_BONE_ALIASES_RAW:
    for alias in aliases:
        HUMAN_BONE_ALIASES[alias] = human_bone


class Skeleton:
    """Mapping from HumanBone to SceneNode."""

    def __init__(self, bones=None, name="Avatar"):
        self.name = name
        self.bones: Dict[HumanBone, object] = {
            HumanBone(bone): node for bone, node in (bones or {}).items()
        }

    def __repr__(self):
        return f"<Skeleton '{self.name}' {len(self.bones)} bones>"

    def copy(self, name=None):
        """Same mapping under a new name. Nodes are shared, not cloned."""
        return Skeleton(self.bones, name=self.name if name is None else name)

    def get_bone(self, bone) -> Optional[object]:
        """Node mapped to `bone`, or None if unmapped or destroyed."""
        node = self.bones.get(HumanBone(bone))
        if node is None or node.destroyed:
            return None
        return node

    def require(self, bones: Iterable = REQUIRED_BONES):
        """Check that every bone resolves to a live node.

        Raises:
            ConfigurationError: listing every missing bone.
        """
        missing = [HumanBone(b).value for b in bones if self.get_bone(b) is None]
        if missing:
            raise ConfigurationError(
                f"Humanoid bone(s) not mapped: {', '.join(missing)}")

    def require_bone(self, bone):
        self.require([bone])
        return self.get_bone(bone)

    def rebind(self, root):
        """Re-resolve every mapped bone by name under `root`.

        Returns:
            A new Skeleton. Bones whose name no longer exists are dropped.
        """
        rebound = {}
        for bone, node in self.bones.items():
            if node is None:
                continue
            match = root.find(node.name)
            if match is not None:
                rebound[bone] = match
        return Skeleton(rebound, name=self.name)

    @classmethod
    def from_hierarchy(cls, root):
        """Guess a humanoid mapping from bone names (first match wins)."""
        bones = {}
        for node in root.iter_tree():
            human_bone = HUMAN_BONE_ALIASES.get(node.name)
            if human_bone is not None and human_bone not in bones:
                bones[human_bone] = node
        return cls(bones)


class Animator(Behavior):
    """Humanoid animator carrying the avatar's Skeleton."""

    type_tag = "Animator"

    def __init__(self, skeleton=None, enabled=True):
        super().__init__(enabled=enabled)
        self.skeleton = skeleton if skeleton is not None else Skeleton()


def get_skeleton(root):
    """Return the Skeleton of the Animator on `root`.

    Raises:
        ConfigurationError: if the root has no Animator.
    """
    animator = root.get_behavior(Animator)
    if animator is None:
        raise ConfigurationError(f"'{root.name}' has no Animator component")
    if not animator.skeleton.bones:
        animator.skeleton = Skeleton.from_hierarchy(root)
    return animator.skeleton
