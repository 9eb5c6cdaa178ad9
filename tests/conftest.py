"""
Pytest configuration and fixtures for the VRChat -> VRM converter tests.

World positions of the humanoid fixture (y up):
    Hips 1.0, Spine 1.1, Chest 1.3, Neck 1.45, Head 1.55
"""

import numpy as np
import pytest

from vrchat_to_vrm.actor.sg_skeleton import Animator, Skeleton
from vrchat_to_vrm.actor.vrchat_components import VRCAvatarDescriptor
from vrchat_to_vrm.profiles import ConversionSettings
from vrchat_to_vrm.scene_graph import Material, Mesh, SceneNode, SkinnedMeshRenderer


def build_humanoid(name="Avatar"):
    root = SceneNode(name)
    armature = root.add_child("Armature")
    hips = armature.add_child("Hips", (0.0, 1.0, 0.0))
    spine = hips.add_child("Spine", (0.0, 0.1, 0.0))
    chest = spine.add_child("Chest", (0.0, 0.2, 0.0))
    neck = chest.add_child("Neck", (0.0, 0.15, 0.0))
    head = neck.add_child("Head", (0.0, 0.1, 0.0))
    head.add_child("LeftEye", (0.03, 0.05, 0.05))
    head.add_child("RightEye", (-0.03, 0.05, 0.05))
    hair = head.add_child("Hair1", (0.0, 0.1, -0.1))
    hair = hair.add_child("Hair2", (0.0, -0.1, 0.0))
    hair.add_child("Hair3", (0.0, -0.1, 0.0))

    for side, sign in (("Left", 1.0), ("Right", -1.0)):
        shoulder = chest.add_child(f"{side}Shoulder", (0.05 * sign, 0.12, 0.0))
        upper = shoulder.add_child(f"{side}UpperArm", (0.1 * sign, 0.0, 0.0))
        lower = upper.add_child(f"{side}LowerArm", (0.25 * sign, 0.0, 0.0))
        lower.add_child(f"{side}Hand", (0.25 * sign, 0.0, 0.0))
        leg = hips.add_child(f"{side}UpperLeg", (0.1 * sign, -0.05, 0.0))
        knee = leg.add_child(f"{side}LowerLeg", (0.0, -0.45, 0.0))
        knee.add_child(f"{side}Foot", (0.0, -0.45, 0.0))

    root.add_behavior(Animator(Skeleton.from_hierarchy(root)))
    root.add_behavior(VRCAvatarDescriptor(view_position=(0.0, 1.65, 0.08)))
    return root


def quad_mesh(name, offset=(0.0, 0.0, 0.0), shape_keys=()):
    """Two-triangle quad skinned fully to bone 0; each shape key moves
    every vertex up by a key-specific amount."""
    vertices = np.array([
        [0.0, 0.0, 0.0],
        [1.0, 0.0, 0.0],
        [1.0, 1.0, 0.0],
        [0.0, 1.0, 0.0],
    ], dtype=np.float32) + np.asarray(offset, dtype=np.float32)
    bone_indices = np.zeros((4, 4), dtype=np.int32)
    bone_weights = np.zeros((4, 4), dtype=np.float32)
    bone_weights[:, 0] = 1.0
    mesh = Mesh(name, vertices, [[0, 1, 2, 0, 2, 3]], bone_indices, bone_weights)
    for i, key in enumerate(shape_keys):
        deltas = np.zeros((4, 3), dtype=np.float32)
        deltas[:, 1] = 0.001 * (i + 1)
        mesh.add_shape_key(key, deltas)
    return mesh


def add_renderer(parent, name, mesh, materials, bones):
    node = parent.add_child(name)
    return node.add_behavior(SkinnedMeshRenderer(mesh, materials, bones, bones[0]))


FACE_SHAPE_KEYS = ("Blink", "A", "I", "U", "E")


@pytest.fixture
def humanoid():
    """Bare humanoid with an SDK3 descriptor, no renderers."""
    return build_humanoid()


@pytest.fixture
def standard_material():
    return Material("Body", "Standard")


@pytest.fixture
def toon_material():
    return Material("Face", "ToonLit", render_queue=2450)


@pytest.fixture
def avatar(humanoid, standard_material, toon_material):
    """Humanoid with a Body renderer (Standard, skinned to Hips) and a Face
    renderer (ToonLit, skinned to Head, five shape keys)."""
    hips = humanoid.find("Hips")
    head = humanoid.find("Head")
    add_renderer(humanoid, "Body", quad_mesh("Body"), [standard_material], [hips])
    add_renderer(humanoid, "Face", quad_mesh("Face", (0.0, 1.5, 0.0), FACE_SHAPE_KEYS),
                 [toon_material], [head])
    return humanoid


@pytest.fixture
def settings(tmp_path):
    """Settings with the temporary folder inside tmp_path."""
    return ConversionSettings(temporary_folder=str(tmp_path / "VRMConverterTemporary"))


@pytest.fixture
def make_quad_mesh():
    return quad_mesh


@pytest.fixture
def make_renderer():
    return add_renderer
