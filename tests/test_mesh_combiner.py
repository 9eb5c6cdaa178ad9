"""
Tests for mesh combination, shape key cleanup and shape key separation.
"""

import numpy as np
import pytest

from vrchat_to_vrm.exporter.mesh_combiner import (
    BASE_MESH_SUFFIX,
    BLEND_SHAPE_SUFFIX,
    clean_up_shape_keys,
    combine_meshes,
    combine_meshes_and_sub_meshes,
    separate_shape_keys,
)
from vrchat_to_vrm.scene_graph import Material, Mesh, SceneNode, SkinnedMeshRenderer


def _renderers(root):
    return root.get_behaviors_in_children(SkinnedMeshRenderer)


class TestCombine:
    """Test combining every renderer into one."""

    def test_one_submesh_per_material(self, avatar):
        combined = combine_meshes_and_sub_meshes(avatar, "vrm-mesh")

        mesh = combined.mesh
        assert combined.node.name == "vrm-mesh"
        assert combined.node.parent is avatar
        assert mesh.vertex_count == 8
        assert len(mesh.submeshes) == 2
        assert [m.name for m in combined.materials] == ["Body", "Face"]
        assert _renderers(avatar) == [combined]

    def test_indices_offset_per_part(self, avatar):
        mesh = combine_meshes_and_sub_meshes(avatar, "vrm-mesh").mesh
        assert mesh.submeshes[0].tolist() == [0, 1, 2, 0, 2, 3]
        assert mesh.submeshes[1].tolist() == [4, 5, 6, 4, 6, 7]

    def test_shared_material_merges_submeshes(self, humanoid, make_quad_mesh, make_renderer):
        shared = Material("Skin", "Standard")
        hips = humanoid.find("Hips")
        make_renderer(humanoid, "A", make_quad_mesh("A"), [shared], [hips])
        make_renderer(humanoid, "B", make_quad_mesh("B", (2.0, 0.0, 0.0)), [shared], [hips])

        combined = combine_meshes_and_sub_meshes(humanoid, "vrm-mesh")

        assert len(combined.mesh.submeshes) == 1
        assert len(combined.mesh.submeshes[0]) == 12
        assert combined.materials == [shared]

    def test_bones_unioned_and_remapped(self, avatar):
        combined = combine_meshes_and_sub_meshes(avatar, "vrm-mesh")

        assert [b.name for b in combined.bones] == ["Hips", "Head"]
        assert combined.mesh.bone_indices[:4, 0].tolist() == [0, 0, 0, 0]
        assert combined.mesh.bone_indices[4:, 0].tolist() == [1, 1, 1, 1]

    def test_shape_keys_unioned_with_zero_deltas(self, avatar):
        mesh = combine_meshes_and_sub_meshes(avatar, "vrm-mesh").mesh

        assert mesh.shape_key_names == ["Blink", "A", "I", "U", "E"]
        blink = mesh.get_shape_key("Blink").deltas
        assert np.all(blink[:4] == 0.0)
        assert np.allclose(blink[4:, 1], 0.001)

    def test_unskinned_renderer_bound_to_own_node(self):
        root = SceneNode("Root")
        prop = root.add_child("Prop")
        prop.add_behavior(SkinnedMeshRenderer(Mesh("P", np.zeros((3, 3)), [[0, 1, 2]]),
                                              [Material("M", "Standard")]))

        mesh, materials, bones = combine_meshes(_renderers(root), "combined")

        assert bones == [prop]
        assert mesh.bone_weights[:, 0].tolist() == [1.0, 1.0, 1.0]

    def test_nothing_to_combine(self, humanoid):
        assert combine_meshes_and_sub_meshes(humanoid, "vrm-mesh") is None
        assert humanoid.find("vrm-mesh") is None

    def test_custom_primitive_used(self, avatar):
        calls = []

        def combine(renderers, name):
            calls.append((len(renderers), name))
            return combine_meshes(renderers, name)

        combine_meshes_and_sub_meshes(avatar, "merged", combine=combine)
        assert calls == [(2, "merged")]


class TestCleanUp:
    """Test unused shape key removal."""

    def test_only_referenced_keys_kept(self, avatar):
        mesh = combine_meshes_and_sub_meshes(avatar, "vrm-mesh").mesh
        removed = clean_up_shape_keys(mesh, ["Blink"])

        assert mesh.shape_key_names == ["Blink"]
        assert removed == ["A", "I", "U", "E"]

    def test_empty_usage_removes_all(self, make_quad_mesh):
        mesh = make_quad_mesh("M", shape_keys=("A", "B"))
        clean_up_shape_keys(mesh, [])
        assert mesh.shape_keys == []


class TestSeparate:
    """Test splitting blend-shape triangles from static ones."""

    def test_split_keeps_base_geometry(self, avatar):
        combined = combine_meshes_and_sub_meshes(avatar, "vrm-mesh")
        original = combined.mesh
        pairs = separate_shape_keys(avatar)

        assert len(pairs) == 1
        blend, base = pairs[0]
        assert blend.node.name == "vrm-mesh" + BLEND_SHAPE_SUFFIX
        assert base.node.name == "vrm-mesh" + BASE_MESH_SUFFIX
        assert combined.destroyed
        assert avatar.find("vrm-mesh") is None

        assert blend.mesh.shape_key_names == original.shape_key_names
        assert base.mesh.shape_keys == []
        assert blend.mesh.vertex_count + base.mesh.vertex_count == original.vertex_count
        assert [m.name for m in blend.materials] == ["Face"]
        assert [m.name for m in base.materials] == ["Body"]

        rebuilt = np.concatenate([base.mesh.vertices, blend.mesh.vertices])
        assert np.allclose(np.sort(rebuilt, axis=0), np.sort(original.vertices, axis=0))

    def test_all_moving_renderer_left_alone(self, humanoid, make_quad_mesh, make_renderer):
        renderer = make_renderer(humanoid, "Face", make_quad_mesh("Face", shape_keys=("Blink",)),
                                 [Material("Face", "Standard")], [humanoid.find("Head")])

        assert separate_shape_keys(humanoid) == []
        assert not renderer.destroyed

    def test_renderer_without_keys_left_alone(self, humanoid, make_quad_mesh, make_renderer):
        make_renderer(humanoid, "Body", make_quad_mesh("Body"),
                      [Material("Body", "Standard")], [humanoid.find("Hips")])
        assert separate_shape_keys(humanoid) == []


@pytest.mark.parametrize("keys", [("Blink",), ("Blink", "A", "I")])
def test_combined_key_count(avatar, keys):
    mesh = combine_meshes_and_sub_meshes(avatar, "vrm-mesh").mesh
    clean_up_shape_keys(mesh, keys)
    assert mesh.shape_key_names == list(keys)
