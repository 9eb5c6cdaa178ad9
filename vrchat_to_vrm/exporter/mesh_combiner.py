"""Combine all skinned meshes into one, then manage its shape keys.

Pipeline:
    1. combine_meshes_and_sub_meshes(): every SkinnedMeshRenderer under the
       root (traversal order) is merged into one Mesh on a new child node.
       Submeshes sharing a material are merged, so there is one submesh per
       distinct material, in first-seen order.
    2. clean_up_shape_keys(): optionally drop shape keys no expression uses.
    3. separate_shape_keys(): split each renderer into the triangles that a
       shape key moves (".blendShape") and the rest (".baseMesh"), so the
       static part does not pay for blending. Base geometry is unchanged.

Vertices are in avatar space, so merging is concatenation plus index
offsets. Bones are unioned by node identity and skin indices remapped;
a renderer with no bones is bound rigidly to its own node.
"""

import logging
from typing import List, Optional

import numpy as np

from ..scene_graph.sg_geometry import Mesh, SkinnedMeshRenderer

_log = logging.getLogger("vrc2vrm.mesh")

BLEND_SHAPE_SUFFIX = ".blendShape"
BASE_MESH_SUFFIX = ".baseMesh"


# ============================================================================
# Combination
# ============================================================================

def combine_meshes(renderers, name):
    """Merge renderers into one mesh (raw primitive, no scene changes).

    Args:
        renderers: list of SkinnedMeshRenderer with meshes.
        name: name of the combined mesh.

    Returns:
        (Mesh, materials list, bones list)
    """
    materials = []
    bones = []
    vertex_chunks = []
    index_chunks: List[List[np.ndarray]] = []
    skin_index_chunks = []
    skin_weight_chunks = []
    parts = []   # (vertex offset, mesh)
    offset = 0

    def bone_slot(node):
        for i, bone in enumerate(bones):
            if bone is node:
                return i
        bones.append(node)
        return len(bones) - 1

    def material_slot(material):
        for i, known in enumerate(materials):
            if known is material:
                return i
        materials.append(material)
        index_chunks.append([])
        return len(materials) - 1

    for renderer in renderers:
        mesh = renderer.mesh
        if mesh is None or mesh.vertex_count == 0:
            continue

        count = mesh.vertex_count
        vertex_chunks.append(mesh.vertices)

        if mesh.bone_indices is None or not renderer.bones:
            slot = bone_slot(renderer.node)
            indices = np.zeros((count, 4), dtype=np.int32)
            indices[:, 0] = slot
            weights = np.zeros((count, 4), dtype=np.float32)
            weights[:, 0] = 1.0
        else:
            remap = np.array([bone_slot(b) for b in renderer.bones], dtype=np.int32)
            indices = remap[np.clip(mesh.bone_indices, 0, len(remap) - 1)]
            weights = mesh.bone_weights.copy()
        skin_index_chunks.append(indices)
        skin_weight_chunks.append(weights)

        for sub_index, triangles in enumerate(mesh.submeshes):
            if renderer.materials:
                material = renderer.materials[min(sub_index, len(renderer.materials) - 1)]
            else:
                material = None
            index_chunks[material_slot(material)].append(triangles + offset)

        parts.append((offset, mesh))
        offset += count

    if offset == 0:
        vertices = np.zeros((0, 3), dtype=np.float32)
        skin_indices = np.zeros((0, 4), dtype=np.int32)
        skin_weights = np.zeros((0, 4), dtype=np.float32)
    else:
        vertices = np.concatenate(vertex_chunks)
        skin_indices = np.concatenate(skin_index_chunks)
        skin_weights = np.concatenate(skin_weight_chunks)

    submeshes = [np.concatenate(chunks) if chunks else np.zeros(0, dtype=np.int32)
                 for chunks in index_chunks]
    combined = Mesh(name, vertices, submeshes, skin_indices, skin_weights)

    key_names = []
    for _, mesh in parts:
        for key_name in mesh.shape_key_names:
            if key_name not in key_names:
                key_names.append(key_name)
    for key_name in key_names:
        deltas = np.zeros((offset, 3), dtype=np.float32)
        for start, mesh in parts:
            key = mesh.get_shape_key(key_name)
            if key is not None:
                deltas[start:start + mesh.vertex_count] = key.deltas
        combined.add_shape_key(key_name, deltas)

    return combined, materials, bones


def combine_meshes_and_sub_meshes(root, destination_name="vrm-mesh", combine=combine_meshes):
    """Replace every skinned renderer under `root` with one combined renderer.

    Args:
        root: normalized avatar root.
        destination_name: name of the new node holding the result.
        combine: primitive callable(renderers, name) -> (Mesh, materials, bones).

    Returns:
        The combined SkinnedMeshRenderer, or None if there was nothing to
        combine.
    """
    renderers = [r for r in root.get_behaviors_in_children(SkinnedMeshRenderer)
                 if r.mesh is not None]
    if not renderers:
        _log.warning("No skinned meshes under '%s'; nothing to combine", root.name)
        return None

    mesh, materials, bones = combine(renderers, destination_name)
    root_bone = next((r.root_bone for r in renderers if r.root_bone is not None), None)

    for renderer in renderers:
        renderer.destroy()

    node = root.add_child(destination_name)
    combined = node.add_behavior(SkinnedMeshRenderer(mesh, materials, bones, root_bone))
    _log.info("Combined %d renderer(s) into '%s': %d vertices, %d submesh(es), %d shape key(s)",
              len(renderers), destination_name, mesh.vertex_count, len(mesh.submeshes),
              len(mesh.shape_keys))
    return combined


# ============================================================================
# Shape keys
# ============================================================================

def clean_up_shape_keys(mesh, used_names):
    """Delete every shape key whose name is not in `used_names`.

    Returns:
        list of removed shape key names.
    """
    used = set(used_names)
    removed = [name for name in mesh.shape_key_names if name not in used]
    for name in removed:
        mesh.remove_shape_key(name)
    if removed:
        _log.info("Removed %d unused shape key(s) from '%s'", len(removed), mesh.name)
    return removed


def _sub_mesh(mesh, name, triangle_masks, keep_shape_keys):
    """Mesh holding only the masked triangles of each submesh, compacted.

    Returns:
        (Mesh, kept submesh slots) or (None, []) if no triangle survives.
    """
    slots = []
    tri_arrays = []
    for slot, (triangles, mask) in enumerate(zip(mesh.submeshes, triangle_masks)):
        selected = triangles.reshape(-1, 3)[mask]
        if len(selected):
            slots.append(slot)
            tri_arrays.append(selected)
    if not tri_arrays:
        return None, []

    used = np.unique(np.concatenate(tri_arrays).reshape(-1))
    remap = np.full(mesh.vertex_count, -1, dtype=np.int32)
    remap[used] = np.arange(len(used), dtype=np.int32)

    part = Mesh(
        name,
        mesh.vertices[used],
        [remap[t].reshape(-1) for t in tri_arrays],
        None if mesh.bone_indices is None else mesh.bone_indices[used],
        None if mesh.bone_weights is None else mesh.bone_weights[used],
    )
    if keep_shape_keys:
        for key in mesh.shape_keys:
            part.add_shape_key(key.name, key.deltas[used])
    return part, slots


def separate_shape_keys(root):
    """Split renderers with shape keys into blend-shape and static parts.

    A triangle goes to the blend-shape part when any of its vertices has a
    non-zero delta in any shape key. Renderers whose triangles all fall on
    one side are left as they are.

    Returns:
        list of (blend-shape renderer, base renderer) pairs created.
    """
    created = []
    for renderer in root.get_behaviors_in_children(SkinnedMeshRenderer):
        mesh = renderer.mesh
        if mesh is None or not mesh.shape_keys:
            continue

        moved = np.zeros(mesh.vertex_count, dtype=bool)
        for key in mesh.shape_keys:
            moved |= np.any(key.deltas != 0.0, axis=1)

        blend_masks = [moved[t.reshape(-1, 3)].any(axis=1) for t in mesh.submeshes]
        blend_count = sum(int(m.sum()) for m in blend_masks)
        total = sum(len(m) for m in blend_masks)
        if blend_count == 0 or blend_count == total:
            continue

        node = renderer.node
        base_masks = [~m for m in blend_masks]
        pair = []
        for suffix, masks, keep in ((BLEND_SHAPE_SUFFIX, blend_masks, True),
                                    (BASE_MESH_SUFFIX, base_masks, False)):
            part_name = node.name + suffix
            part, slots = _sub_mesh(mesh, part_name, masks, keep)
            materials = [renderer.materials[min(s, len(renderer.materials) - 1)]
                         for s in slots] if renderer.materials else []
            part_node = node.parent.add_child(part_name) if node.parent else node.add_child(part_name)
            pair.append(part_node.add_behavior(SkinnedMeshRenderer(
                part, materials, renderer.bones, renderer.root_bone)))

        renderer.destroy()
        if node.parent is not None and not node.children and not node.behaviors:
            node.destroy()
        created.append(tuple(pair))
        _log.info("Separated '%s' into %s (%d tris) and %s (%d tris)",
                  node.name, pair[0].node.name, blend_count,
                  pair[1].node.name, total - blend_count)
    return created
