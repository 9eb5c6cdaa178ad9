"""First-person view offset, renderer visibility, and eye look-at limits.

First-person offset:
    offset = descriptor view position - head bone world position

It must be computed on the dynamics-converted, pre-normalized rig: the view
position was authored against that pose, and normalization may move the
head.

Look-at limits come from the avatar descriptor and depend on the SDK:
    SDK2 (simple)       automatic eye movement rotates the eyes at most
                        max_auto_eye_movement_degree in every direction,
                        and only when automatic eye movement is active
    SDK3 (directional)  each direction has a left-eye and right-eye sample;
                        the narrower eye bounds the curve. A partial setup
                        (any direction missing) is not applied at all.
"""

import logging

from ..profiles import EYE_LOOK_DIRECTIONAL, EYE_LOOK_SIMPLE
from ..scene_graph.sg_geometry import SkinnedMeshRenderer
from ..utils.errors import ConfigurationError
from .sg_skeleton import HumanBone
from .vrchat_components import AvatarDescriptorBase, VRCAvatarDescriptor
from .vrm_components import (
    FirstPersonFlag, RendererFirstPersonFlags, VRMFirstPerson,
    VRMLookAtBoneApplier,
)

_log = logging.getLogger("vrc2vrm.first_person")

# Renderer node the SDK2 client blinks with
SDK2_BODY_NODE_NAME = "Body"


def _get_descriptor(root):
    descriptor = root.get_behavior(AvatarDescriptorBase)
    if descriptor is None:
        raise ConfigurationError(f"'{root.name}' has no VRChat avatar descriptor")
    return descriptor


def _get_first_person(root):
    first_person = root.get_behavior(VRMFirstPerson)
    if first_person is None:
        raise ConfigurationError(f"'{root.name}' has no VRMFirstPerson component")
    return first_person


# ============================================================================
# First person
# ============================================================================

def set_first_person_offset(root):
    """Store view position - head position on the VRMFirstPerson behavior.

    Returns:
        The offset Vector.
    """
    descriptor = _get_descriptor(root)
    first_person = _get_first_person(root)
    if first_person.first_person_bone is None:
        raise ConfigurationError("VRMFirstPerson has no first person bone")

    offset = descriptor.view_position - first_person.first_person_bone.world_position
    first_person.first_person_offset = offset
    _log.debug("First person offset from '%s': %s",
               first_person.first_person_bone.name, tuple(offset))
    return offset


def traverse_renderers(root, first_person):
    """Default visibility classification for every renderer under `root`.

    Renderers weighted only to the head subtree are hidden in first person
    (THIRD_PERSON_ONLY), renderers partly weighted to it are split at
    runtime (AUTO), everything else is visible in both views (BOTH).
    """
    head = first_person.first_person_bone
    head_nodes = list(head.iter_tree()) if head is not None else []

    flags = []
    for renderer in root.get_behaviors_in_children(SkinnedMeshRenderer):
        used = renderer.used_bones()
        in_head = [bone for bone in used if any(bone is n for n in head_nodes)]
        if used and len(in_head) == len(used):
            flag = FirstPersonFlag.THIRD_PERSON_ONLY
        elif in_head:
            flag = FirstPersonFlag.AUTO
        else:
            flag = FirstPersonFlag.BOTH
        flags.append(RendererFirstPersonFlags(renderer, flag))
    return flags


def set_first_person_renderers(root, traverse=traverse_renderers):
    """Classify every renderer's first-person visibility.

    Args:
        root: finalized avatar root.
        traverse: callable(root, first_person) -> list of
            RendererFirstPersonFlags.
    """
    first_person = _get_first_person(root)
    first_person.renderers = list(traverse(root, first_person))
    return first_person.renderers


# ============================================================================
# Look at
# ============================================================================

def is_auto_eye_movement_enabled(root, skeleton):
    """Whether the SDK2 client would animate this avatar's eyes.

    Requires both eye bones and a "Body" renderer with shape keys (the
    client drives blinking through them).
    """
    if skeleton.get_bone(HumanBone.LEFT_EYE) is None or skeleton.get_bone(HumanBone.RIGHT_EYE) is None:
        return False
    body = root.find(SDK2_BODY_NODE_NAME)
    if body is None:
        return False
    renderer = body.get_behavior(SkinnedMeshRenderer)
    return renderer is not None and renderer.mesh is not None and bool(renderer.mesh.shape_keys)


def _min_magnitude(rotations, axis):
    return min(abs(rotations.left[axis]), abs(rotations.right[axis]))


def set_look_at_bone_applier(root, skeleton, sdk_profile, max_auto_eye_movement_degree=30.0):
    """Fill the look-at curves from the avatar descriptor.

    Args:
        root: avatar root with a VRMLookAtBoneApplier.
        skeleton: Skeleton resolved against `root`.
        sdk_profile: detected SDKProfile.
        max_auto_eye_movement_degree: SDK2 rotation limit.

    Returns:
        True if the curves were changed.
    """
    look_at = root.get_behavior(VRMLookAtBoneApplier)
    if look_at is None:
        raise ConfigurationError(f"'{root.name}' has no VRMLookAtBoneApplier component")

    if sdk_profile.eye_look_variant == EYE_LOOK_SIMPLE:
        if not is_auto_eye_movement_enabled(root, skeleton):
            _log.info("Automatic eye movement disabled; look-at curves left at defaults")
            return False
        for mapper in look_at.mappers:
            mapper.curve_y_range_degree = max_auto_eye_movement_degree
        return True

    if sdk_profile.eye_look_variant == EYE_LOOK_DIRECTIONAL:
        descriptor = root.get_behavior(VRCAvatarDescriptor)
        settings = descriptor.custom_eye_look_settings if descriptor is not None else None
        if settings is None:
            return False
        samples = (settings.eyes_looking_up, settings.eyes_looking_down,
                   settings.eyes_looking_left, settings.eyes_looking_right)
        if any(sample is None for sample in samples):
            _log.info("Custom eye look settings incomplete; look-at curves left at defaults")
            return False

        # Vertical looks rotate around X, horizontal around Y
        look_at.look_up.curve_y_range_degree = _min_magnitude(settings.eyes_looking_up, 0)
        look_at.look_down.curve_y_range_degree = _min_magnitude(settings.eyes_looking_down, 0)
        look_at.look_left.curve_y_range_degree = _min_magnitude(settings.eyes_looking_left, 1)
        look_at.look_right.curve_y_range_degree = _min_magnitude(settings.eyes_looking_right, 1)
        return True

    _log.warning("Unknown eye look variant '%s'", sdk_profile.eye_look_variant)
    return False
