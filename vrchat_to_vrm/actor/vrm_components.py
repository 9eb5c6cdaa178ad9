"""Destination-side (VRM) behaviors.

These are what the exporter reads: meta, first-person settings, look-at
curves, spring bones with their collider groups, and blend shape clips.
initialize() attaches the per-avatar ones to the root at the start of a
conversion; the pipeline stages fill them in.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional

from mathutils import Vector

from ..scene_graph.sg_classes import Behavior
from .sg_skeleton import HumanBone


SECONDARY_NODE_NAME = "secondary"


# ============================================================================
# Meta
# ============================================================================

@dataclass
class AvatarMeta:
    """Author / licensing record, passed through to the exporter verbatim."""
    name: str = "Meta"
    title: str = ""
    version: str = ""
    author: str = ""
    contact_information: str = ""
    reference: str = ""
    allowed_user: str = "OnlyAuthor"
    violent_usage: str = "Disallow"
    sexual_usage: str = "Disallow"
    commercial_usage: str = "Disallow"
    other_permission_url: str = ""
    license_type: str = "Redistribution_Prohibited"
    other_license_url: str = ""
    thumbnail: Optional[str] = None

    def copy(self, **changes):
        return replace(self, **changes)


class VRMMeta(Behavior):
    type_tag = "VRMMeta"

    def __init__(self, meta=None, enabled=True):
        super().__init__(enabled=enabled)
        self.meta = meta


# ============================================================================
# First person / look at
# ============================================================================

class FirstPersonFlag(str, Enum):
    AUTO = "Auto"
    BOTH = "Both"
    THIRD_PERSON_ONLY = "ThirdPersonOnly"
    FIRST_PERSON_ONLY = "FirstPersonOnly"


@dataclass
class RendererFirstPersonFlags:
    renderer: object
    flag: FirstPersonFlag = FirstPersonFlag.AUTO


class VRMFirstPerson(Behavior):
    """First-person anchor bone, bone-local offset, per-renderer visibility."""

    type_tag = "VRMFirstPerson"

    def __init__(self, first_person_bone=None, first_person_offset=(0.0, 0.0, 0.0),
                 enabled=True):
        super().__init__(enabled=enabled)
        self.first_person_bone = first_person_bone
        self.first_person_offset = Vector(first_person_offset)
        self.renderers: List[RendererFirstPersonFlags] = []


@dataclass
class CurveMapper:
    """Maps eye-bone input degrees (x range) to output degrees (y range)."""
    curve_x_range_degree: float = 90.0
    curve_y_range_degree: float = 10.0


class VRMLookAtBoneApplier(Behavior):
    """Bone-type look-at with one curve per look direction."""

    type_tag = "VRMLookAtBoneApplyer"

    def __init__(self, left_eye=None, right_eye=None, enabled=True):
        super().__init__(enabled=enabled)
        self.left_eye = left_eye
        self.right_eye = right_eye
        self.look_up = CurveMapper()
        self.look_down = CurveMapper()
        self.look_left = CurveMapper()
        self.look_right = CurveMapper()

    @property
    def mappers(self):
        return [self.look_up, self.look_down, self.look_left, self.look_right]


# ============================================================================
# Spring bones
# ============================================================================

@dataclass
class SpringBoneCollider:
    """Sphere, or capsule from `offset` to `tail`, relative to the group's node."""
    shape: str
    offset: Vector
    radius: float
    tail: Optional[Vector] = None


class VRMSpringBoneColliderGroup(Behavior):
    """Colliders anchored to the node this behavior lives on."""

    type_tag = "VRMSpringBoneColliderGroup"

    def __init__(self, colliders=None, enabled=True):
        super().__init__(enabled=enabled)
        self.colliders: List[SpringBoneCollider] = list(colliders or [])


class VRMSpringBone(Behavior):
    """Destination spring chain.

    Attributes:
        comment: source chain name
        bones: ordered chain nodes, root first
        stiffness_force, drag_force, gravity_power: physical parameters
        gravity_dir: mathutils.Vector
        hit_radius: float
        collider_groups: list of VRMSpringBoneColliderGroup
    """

    type_tag = "VRMSpringBone"

    def __init__(self, comment="", bones=None, stiffness_force=1.0, drag_force=0.4,
                 gravity_power=0.0, gravity_dir=(0.0, -1.0, 0.0), hit_radius=0.02,
                 collider_groups=None, enabled=True):
        super().__init__(enabled=enabled)
        self.comment = comment
        self.bones = list(bones or [])
        self.stiffness_force = stiffness_force
        self.drag_force = drag_force
        self.gravity_power = gravity_power
        self.gravity_dir = Vector(gravity_dir)
        self.hit_radius = hit_radius
        self.collider_groups: List[VRMSpringBoneColliderGroup] = list(collider_groups or [])


# ============================================================================
# Blend shapes
# ============================================================================

@dataclass
class BlendShapeBinding:
    relative_path: str
    index: int
    weight: float


@dataclass
class BlendShapeClip:
    preset: str
    name: str
    bindings: List[BlendShapeBinding] = field(default_factory=list)


class VRMBlendShapeProxy(Behavior):
    type_tag = "VRMBlendShapeProxy"

    def __init__(self, enabled=True):
        super().__init__(enabled=enabled)
        self.clips: List[BlendShapeClip] = []


def initialize(root, skeleton, meta=None):
    """Attach the destination behaviors to a freshly cloned avatar.

    Adds VRMMeta, VRMFirstPerson (anchored to the Head bone),
    VRMLookAtBoneApplier (eye bones when mapped), VRMBlendShapeProxy and
    the `secondary` node that holds spring bones. Existing ones are reused.

    Args:
        root: avatar root SceneNode.
        skeleton: Skeleton with at least the required bones.
        meta: AvatarMeta or None.
    """
    skeleton.require()

    vrm_meta = root.get_behavior(VRMMeta) or root.add_behavior(VRMMeta())
    if meta is not None:
        vrm_meta.meta = meta

    first_person = root.get_behavior(VRMFirstPerson) or root.add_behavior(VRMFirstPerson())
    first_person.first_person_bone = skeleton.get_bone(HumanBone.HEAD)

    look_at = (root.get_behavior(VRMLookAtBoneApplier)
               or root.add_behavior(VRMLookAtBoneApplier()))
    look_at.left_eye = skeleton.get_bone(HumanBone.LEFT_EYE)
    look_at.right_eye = skeleton.get_bone(HumanBone.RIGHT_EYE)

    if root.get_behavior(VRMBlendShapeProxy) is None:
        root.add_behavior(VRMBlendShapeProxy())

    if root.find_child(SECONDARY_NODE_NAME) is None:
        root.add_child(SECONDARY_NODE_NAME)
