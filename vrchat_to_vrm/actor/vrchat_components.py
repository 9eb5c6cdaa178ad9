"""Source-side (VRChat) behaviors: avatar descriptors and secondary dynamics.

Two SDK generations of the avatar descriptor exist and carry different eye
settings; two secondary-dynamics formats exist (PhysBone, shipped with
SDK3, and the older DynamicBone plugin). Which ones a rig uses is decided
by profiles.detect_capabilities(), matching on the type tags below.
"""

from dataclasses import dataclass
from typing import Optional

from mathutils import Vector

from ..scene_graph.sg_classes import Behavior


# ============================================================================
# Avatar descriptors
# ============================================================================

class AvatarDescriptorBase(Behavior):
    """Common descriptor data.

    Attributes:
        view_position: mathutils.Vector, avatar-space first-person anchor
    """

    def __init__(self, view_position=(0.0, 1.6, 0.0), enabled=True):
        super().__init__(enabled=enabled)
        self.view_position = Vector(view_position)


class VRCAvatarDescriptorSDK2(AvatarDescriptorBase):
    """SDK2 descriptor. Eye movement is automatic (see first_person)."""
    type_tag = "VRC_AvatarDescriptor"


@dataclass
class EyeRotations:
    """Per-eye Euler rotations (degrees) for one look direction."""
    left: Vector
    right: Vector


@dataclass
class CustomEyeLookSettings:
    """SDK3 eye-look limits. Any direction may be left unset (None)."""
    eyes_looking_up: Optional[EyeRotations] = None
    eyes_looking_down: Optional[EyeRotations] = None
    eyes_looking_left: Optional[EyeRotations] = None
    eyes_looking_right: Optional[EyeRotations] = None


class VRCAvatarDescriptor(AvatarDescriptorBase):
    """SDK3 descriptor with optional custom eye-look settings."""

    type_tag = "VRCAvatarDescriptor"

    def __init__(self, view_position=(0.0, 1.6, 0.0), enable_eye_look=False,
                 custom_eye_look_settings=None, enabled=True):
        super().__init__(view_position=view_position, enabled=enabled)
        self.enable_eye_look = enable_eye_look
        self.custom_eye_look_settings = (custom_eye_look_settings
                                         if custom_eye_look_settings is not None
                                         else CustomEyeLookSettings())


# ============================================================================
# PhysBone (primary dynamics format)
# ============================================================================

class VRCPhysBoneCollider(Behavior):
    """PhysBone collider.

    Attributes:
        root_transform: anchor node, or None for the owning node
        shape_type: 'SPHERE', 'CAPSULE' or 'PLANE'
        radius: float
        height: capsule height including both end caps
        position: mathutils.Vector offset from the anchor (capsule axis is +Y)
        inside_bounds: keep bones inside instead of outside (unsupported)
    """

    type_tag = "VRCPhysBoneCollider"

    def __init__(self, shape_type='SPHERE', radius=0.5, height=2.0,
                 position=(0.0, 0.0, 0.0), root_transform=None,
                 inside_bounds=False, enabled=True):
        super().__init__(enabled=enabled)
        self.root_transform = root_transform
        self.shape_type = shape_type
        self.radius = radius
        self.height = height
        self.position = Vector(position)
        self.inside_bounds = inside_bounds


class VRCPhysBone(Behavior):
    """PhysBone chain.

    Attributes:
        root_transform: chain root node, or None for the owning node
        ignore_transforms: nodes whose subtrees are excluded from the chain
        pull: 0..1 return force
        spring: 0..1 momentum retention
        gravity: gravity strength
        radius: collision radius
        colliders: list of VRCPhysBoneCollider
    """

    type_tag = "VRCPhysBone"

    def __init__(self, root_transform=None, ignore_transforms=None, pull=0.2,
                 spring=0.2, gravity=0.0, radius=0.0, colliders=None, enabled=True):
        super().__init__(enabled=enabled)
        self.root_transform = root_transform
        self.ignore_transforms = list(ignore_transforms or [])
        self.pull = pull
        self.spring = spring
        self.gravity = gravity
        self.radius = radius
        self.colliders = list(colliders or [])


# ============================================================================
# DynamicBone (legacy dynamics format)
# ============================================================================

class DynamicBoneCollider(Behavior):
    """DynamicBone collider, anchored to its owning node.

    Attributes:
        radius: float
        height: capsule height; a sphere when height <= 2 * radius
        center: mathutils.Vector offset from the node
        direction: capsule axis, 'X', 'Y' or 'Z'
        bound: 'OUTSIDE' or 'INSIDE' (unsupported)
    """

    type_tag = "DynamicBoneCollider"

    def __init__(self, radius=0.5, height=0.0, center=(0.0, 0.0, 0.0),
                 direction='Y', bound='OUTSIDE', enabled=True):
        super().__init__(enabled=enabled)
        self.radius = radius
        self.height = height
        self.center = Vector(center)
        self.direction = direction
        self.bound = bound


class DynamicBone(Behavior):
    """DynamicBone chain (m_Root, m_Exclusions, m_Damping...)."""

    type_tag = "DynamicBone"

    def __init__(self, root=None, exclusions=None, damping=0.1, elasticity=0.1,
                 stiffness=0.1, radius=0.0, gravity=(0.0, 0.0, 0.0),
                 colliders=None, enabled=True):
        super().__init__(enabled=enabled)
        self.root = root
        self.exclusions = list(exclusions or [])
        self.damping = damping
        self.elasticity = elasticity
        self.stiffness = stiffness
        self.radius = radius
        self.gravity = Vector(gravity)
        self.colliders = list(colliders or [])
