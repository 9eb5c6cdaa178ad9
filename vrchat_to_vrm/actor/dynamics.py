"""Secondary dynamics: PhysBone / DynamicBone -> VRM spring bones.

One adapter per source format. The format is detected once per conversion
(profiles.detect_dynamics_format); convert_secondary_dynamics() picks the
adapter and runs it over the whole rig.

Every source chain becomes one VRMSpringBone on the `secondary` node:
    bones       root + descendants, depth-first, excluded subtrees skipped
    parameters  mapped 1:1 with a per-format scale (see each adapter)
    colliders   converted into VRMSpringBoneColliderGroups, one group per
                anchor node, shared by every chain colliding with it

Supported collider shapes are spheres and capsules. Plane colliders and
inside-bound colliders have no VRM equivalent and are skipped with a
warning.

After conversion, remove_unused_collider_groups() prunes groups no chain
references, keeping the reserved hand groups.
"""

import logging
from typing import Dict, List, Optional, Tuple

from mathutils import Vector

from ..profiles import DynamicsFormat
from .sg_skeleton import REQUIRED_BONES, HumanBone
from .vrchat_components import (
    DynamicBone, DynamicBoneCollider, VRCPhysBone, VRCPhysBoneCollider,
)
from .vrm_components import (
    SECONDARY_NODE_NAME, SpringBoneCollider, VRMSpringBone,
    VRMSpringBoneColliderGroup,
)

_log = logging.getLogger("vrc2vrm.dynamics")

# VRM stiffness force runs 0..4 where the source formats use 0..1
STIFFNESS_SCALE = 4.0

_AXES = {
    'X': Vector((1.0, 0.0, 0.0)),
    'Y': Vector((0.0, 1.0, 0.0)),
    'Z': Vector((0.0, 0.0, 1.0)),
}


# ============================================================================
# Adapters
# ============================================================================

class DynamicsAdapter:
    """Base adapter: chain traversal and collider group bookkeeping.

    Subclasses implement source_chains(), chain_root(), chain_exclusions(),
    spring_parameters() and convert_collider().
    """

    dynamics_format = DynamicsFormat.NONE

    def __init__(self, root, skeleton, reserved_bones=(HumanBone.LEFT_HAND,
                                                       HumanBone.RIGHT_HAND)):
        self.root = root
        self.skeleton = skeleton
        self.reserved_nodes = [skeleton.get_bone(b) for b in reserved_bones
                               if skeleton.get_bone(b) is not None]
        self._groups: Dict[object, VRMSpringBoneColliderGroup] = {}
        self._collider_groups: Dict[int, Optional[VRMSpringBoneColliderGroup]] = {}

    def source_chains(self):
        raise NotImplementedError

    def chain_root(self, chain):
        raise NotImplementedError

    def chain_exclusions(self, chain):
        return []

    def spring_parameters(self, chain):
        """Returns dict of VRMSpringBone keyword arguments."""
        raise NotImplementedError

    def convert_collider(self, collider) -> Tuple[object, Optional[SpringBoneCollider]]:
        """Returns (anchor node, SpringBoneCollider or None if unsupported)."""
        raise NotImplementedError

    def convert(self) -> List[VRMSpringBone]:
        secondary = self.root.find_child(SECONDARY_NODE_NAME)
        if secondary is None:
            secondary = self.root.add_child(SECONDARY_NODE_NAME)

        springs = []
        for chain in self.source_chains():
            root_bone = self.chain_root(chain)
            if root_bone is None or root_bone.destroyed:
                _log.warning("Skipping %s on '%s': no root bone",
                             chain.type_tag, chain.node.name if chain.node else None)
                continue

            groups = []
            for collider in chain.colliders:
                if collider is None or collider.destroyed:
                    continue
                group = self._group_for(collider)
                if group is not None and group not in groups:
                    groups.append(group)

            spring = VRMSpringBone(
                comment=chain.node.name,
                bones=collect_chain_bones(root_bone, self.chain_exclusions(chain)),
                collider_groups=groups,
                **self.spring_parameters(chain),
            )
            secondary.add_behavior(spring)
            springs.append(spring)
            _log.debug("Converted %s '%s': %d bones, %d collider group(s)",
                       chain.type_tag, spring.comment, len(spring.bones), len(groups))

        _log.info("Converted %d %s chain(s), %d collider group(s)",
                  len(springs), self.dynamics_format.value, len(self._groups))
        return springs

    def _group_for(self, collider):
        """Destination group holding `collider`, created on first use.

        Each source collider is converted once, however many chains use it.
        """
        if id(collider) in self._collider_groups:
            return self._collider_groups[id(collider)]
        anchor, converted = self.convert_collider(collider)
        if converted is None:
            self._collider_groups[id(collider)] = None
            return None
        group = self._groups.get(anchor)
        if group is None:
            existing = anchor.get_behavior(VRMSpringBoneColliderGroup)
            if existing is not None and any(anchor is n for n in self.reserved_nodes):
                group = existing
            else:
                group = anchor.add_behavior(VRMSpringBoneColliderGroup())
            self._groups[anchor] = group
        group.colliders.append(converted)
        self._collider_groups[id(collider)] = group
        return group


class PhysBoneAdapter(DynamicsAdapter):
    """VRCPhysBone -> VRMSpringBone.

    Parameter mapping:
        stiffness_force = pull * 4
        drag_force      = 1 - spring   (spring is momentum kept per frame)
        gravity_power   = gravity, pointing down
        hit_radius      = radius
    """

    dynamics_format = DynamicsFormat.PHYS_BONE

    def source_chains(self):
        return self.root.get_behaviors_in_children(VRCPhysBone)

    def chain_root(self, chain):
        return chain.root_transform if chain.root_transform is not None else chain.node

    def chain_exclusions(self, chain):
        return chain.ignore_transforms

    def spring_parameters(self, chain):
        return {
            'stiffness_force': chain.pull * STIFFNESS_SCALE,
            'drag_force': min(max(1.0 - chain.spring, 0.0), 1.0),
            'gravity_power': abs(chain.gravity),
            'gravity_dir': (0.0, -1.0, 0.0) if chain.gravity >= 0 else (0.0, 1.0, 0.0),
            'hit_radius': chain.radius,
        }

    def convert_collider(self, collider):
        anchor = collider.root_transform if collider.root_transform is not None else collider.node
        if collider.inside_bounds:
            _log.warning("Skipping inside-bounds PhysBone collider on '%s'", anchor.name)
            return anchor, None
        if collider.shape_type == 'SPHERE':
            return anchor, SpringBoneCollider('sphere', collider.position.copy(), collider.radius)
        if collider.shape_type == 'CAPSULE':
            half = max(collider.height / 2.0 - collider.radius, 0.0)
            return anchor, _capsule(collider.position, _AXES['Y'], half, collider.radius)
        _log.warning("Skipping %s PhysBone collider on '%s': unsupported shape",
                     collider.shape_type, anchor.name)
        return anchor, None


class DynamicBoneAdapter(DynamicsAdapter):
    """DynamicBone -> VRMSpringBone.

    Parameter mapping:
        stiffness_force = elasticity * 4
        drag_force      = damping
        gravity_power   = |gravity|, gravity_dir = gravity normalized
        hit_radius      = radius

    DynamicBone's own m_Stiffness (pose retention) has no VRM counterpart
    and is not read; VRM stiffness comes from elasticity alone.
    """

    dynamics_format = DynamicsFormat.DYNAMIC_BONE

    def source_chains(self):
        return self.root.get_behaviors_in_children(DynamicBone)

    def chain_root(self, chain):
        return chain.root

    def chain_exclusions(self, chain):
        return chain.exclusions

    def spring_parameters(self, chain):
        power = chain.gravity.length
        direction = chain.gravity.normalized() if power > 0.0 else Vector((0.0, -1.0, 0.0))
        return {
            'stiffness_force': chain.elasticity * STIFFNESS_SCALE,
            'drag_force': chain.damping,
            'gravity_power': power,
            'gravity_dir': direction,
            'hit_radius': chain.radius,
        }

    def convert_collider(self, collider):
        anchor = collider.node
        if collider.bound != 'OUTSIDE':
            _log.warning("Skipping inside-bound DynamicBone collider on '%s'", anchor.name)
            return anchor, None
        half = collider.height / 2.0 - collider.radius
        if half <= 0.0:
            return anchor, SpringBoneCollider('sphere', collider.center.copy(), collider.radius)
        axis = _AXES.get(collider.direction.upper(), _AXES['Y'])
        return anchor, _capsule(collider.center, axis, half, collider.radius)


ADAPTERS = {
    DynamicsFormat.PHYS_BONE: PhysBoneAdapter,
    DynamicsFormat.DYNAMIC_BONE: DynamicBoneAdapter,
}


# ============================================================================
# Entry points
# ============================================================================

def convert_secondary_dynamics(root, skeleton, dynamics_format, reserved_bones=None):
    """Convert every source chain of the detected format.

    Args:
        root: sanitized avatar root.
        skeleton: Skeleton resolved against `root`.
        dynamics_format: DynamicsFormat from detect_dynamics_format().
        reserved_bones: HumanBones whose existing collider groups are reused.

    Returns:
        list of VRMSpringBone created (empty for DynamicsFormat.NONE).

    Raises:
        ConfigurationError: if a required humanoid bone is missing.
    """
    skeleton.require(REQUIRED_BONES)
    adapter_class = ADAPTERS.get(dynamics_format)
    if adapter_class is None:
        _log.info("No secondary dynamics to convert")
        return []
    if reserved_bones is None:
        adapter = adapter_class(root, skeleton)
    else:
        adapter = adapter_class(root, skeleton, reserved_bones)
    return adapter.convert()


def remove_unused_collider_groups(root, skeleton, reserved_bones=(HumanBone.LEFT_HAND,
                                                                  HumanBone.RIGHT_HAND)):
    """Delete collider groups no spring bone references.

    Groups anchored to a reserved bone survive regardless.

    Returns:
        int number of groups removed.

    Raises:
        ConfigurationError: if a reserved bone is not mapped.
    """
    reserved = [skeleton.require_bone(bone) for bone in reserved_bones]

    used_anchors = [
        group.node
        for spring in root.get_behaviors_in_children(VRMSpringBone)
        for group in spring.collider_groups
        if not group.destroyed
    ]

    removed = 0
    for group in root.get_behaviors_in_children(VRMSpringBoneColliderGroup):
        anchor = group.node
        if any(anchor is n for n in used_anchors) or any(anchor is n for n in reserved):
            continue
        _log.debug("Removing unused collider group on '%s'", anchor.name)
        group.destroy()
        removed += 1

    _log.info("Removed %d unused collider group(s)", removed)
    return removed


# ============================================================================
# Helpers
# ============================================================================

def collect_chain_bones(root_bone, exclusions=()):
    """Root + descendants in depth-first order, skipping excluded subtrees."""
    bones = []

    def visit(node):
        if any(node is excluded for excluded in exclusions):
            return
        bones.append(node)
        for child in node.children:
            visit(child)

    visit(root_bone)
    return bones


def _capsule(center, axis, half, radius):
    if half <= 0.0:
        return SpringBoneCollider('sphere', center.copy(), radius)
    return SpringBoneCollider('capsule', center - axis * half, radius, center + axis * half)
