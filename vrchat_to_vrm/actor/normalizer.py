"""Skeleton normalization hand-off.

T-pose retargeting is an external collaborator: any callable
normalizer(root, force_t_pose=True) -> new root SceneNode. Bone names are
preserved, node identities may not be, so everything holding a node
reference is re-resolved against the returned root by name.

The default normalizer only clones the hierarchy. It does not touch the
pose; hosts that need a real T-pose pass their own.
"""

import logging

from ..utils.errors import ConfigurationError
from .sg_skeleton import Animator, HumanBone
from .vrm_components import (
    VRMFirstPerson, VRMLookAtBoneApplier, VRMSpringBone, VRMSpringBoneColliderGroup,
)

_log = logging.getLogger("vrc2vrm.normalize")


def clone_normalizer(root, force_t_pose=True):
    """Default normalizer: a name-preserving copy of the hierarchy."""
    normalized = root.clone(name=root.name)
    _log.debug("Cloned '%s' for normalization (force_t_pose=%s)", root.name, force_t_pose)
    return normalized


def rebind_references(normalized):
    """Re-resolve the skeleton and bone references against `normalized`.

    Returns:
        The rebound Skeleton.

    Raises:
        ConfigurationError: if the normalized root has no Animator.
    """
    animator = normalized.get_behavior(Animator)
    if animator is None:
        raise ConfigurationError("Normalized avatar has no Animator component")
    animator.skeleton = animator.skeleton.rebind(normalized)
    skeleton = animator.skeleton

    first_person = normalized.get_behavior(VRMFirstPerson)
    if first_person is not None:
        first_person.first_person_bone = skeleton.get_bone(HumanBone.HEAD)

    look_at = normalized.get_behavior(VRMLookAtBoneApplier)
    if look_at is not None:
        look_at.left_eye = skeleton.get_bone(HumanBone.LEFT_EYE)
        look_at.right_eye = skeleton.get_bone(HumanBone.RIGHT_EYE)

    rebound_springs = 0
    for spring in normalized.get_behaviors_in_children(VRMSpringBone):
        bones = [_resolve(normalized, bone) for bone in spring.bones]
        groups = []
        for group in spring.collider_groups:
            if group.node is not None and group.node.is_descendant_of(normalized):
                groups.append(group)
                continue
            anchor = _resolve(normalized, group.node)
            match = anchor.get_behavior(VRMSpringBoneColliderGroup) if anchor is not None else None
            if match is not None:
                groups.append(match)
        if bones != spring.bones or groups != spring.collider_groups:
            rebound_springs += 1
        spring.bones = [bone for bone in bones if bone is not None]
        spring.collider_groups = groups

    if rebound_springs:
        _log.debug("Rebound %d spring bone(s) by name", rebound_springs)
    return skeleton


def _resolve(root, node):
    """`node` if it lives under `root`, else the node of the same name."""
    if node is None:
        return None
    if node.is_descendant_of(root):
        return node
    return root.find(node.name)
