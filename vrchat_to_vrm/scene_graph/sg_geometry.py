"""Mesh geometry, shape keys, and the skinned renderer behavior.

Mesh buffers are numpy arrays:
    vertices:      (V, 3) float32, avatar space (bind pose)
    submeshes:     list of flat int32 triangle index arrays; the position
                   in the list is the material slot
    bone_indices:  (V, 4) int32 into the owning renderer's bone list
    bone_weights:  (V, 4) float32
    shape keys:    name -> (V, 3) float32 position deltas

Shape key weights follow the authoring convention of 0..100.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np

from .sg_classes import Behavior


@dataclass(eq=False)
class ShapeKey:
    """A named per-vertex offset blended into the mesh by a scalar weight."""
    name: str
    deltas: np.ndarray   # (V, 3) float32


class Mesh:
    """Triangle mesh asset shared by reference between renderers.

    Attributes:
        name: asset name
        vertices: (V, 3) float32 positions
        submeshes: list of flat int32 index arrays, one per material slot
        bone_indices: (V, 4) int32 or None for unskinned meshes
        bone_weights: (V, 4) float32 or None
        shape_keys: ordered list of ShapeKey (names unique)
    """

    def __init__(self, name, vertices, submeshes=None, bone_indices=None,
                 bone_weights=None, shape_keys=None):
        self.name = name
        self.vertices = np.asarray(vertices, dtype=np.float32).reshape(-1, 3)
        self.submeshes = [np.asarray(s, dtype=np.int32).reshape(-1)
                          for s in (submeshes or [])]
        self.bone_indices = None
        self.bone_weights = None
        if bone_indices is not None:
            self.bone_indices = np.asarray(bone_indices, dtype=np.int32).reshape(-1, 4)
            self.bone_weights = np.asarray(bone_weights, dtype=np.float32).reshape(-1, 4)
        self.shape_keys: List[ShapeKey] = []
        for key in shape_keys or []:
            if isinstance(key, ShapeKey):
                self.add_shape_key(key.name, key.deltas)
            else:
                self.add_shape_key(*key)

    def __repr__(self):
        return (f"<Mesh {self.name!r} verts={self.vertex_count} "
                f"submeshes={len(self.submeshes)} keys={len(self.shape_keys)}>")

    def __deepcopy__(self, memo):
        # Assets are shared by cloned hierarchies
        return self

    @property
    def vertex_count(self):
        return len(self.vertices)

    @property
    def shape_key_names(self):
        return [key.name for key in self.shape_keys]

    def get_shape_key(self, name) -> Optional[ShapeKey]:
        for key in self.shape_keys:
            if key.name == name:
                return key
        return None

    def get_shape_key_index(self, name):
        for i, key in enumerate(self.shape_keys):
            if key.name == name:
                return i
        return -1

    def add_shape_key(self, name, deltas):
        """Add a shape key.

        Raises:
            ValueError: if the name already exists or the delta count does
                not match the vertex count.
        """
        if self.get_shape_key(name) is not None:
            raise ValueError(f"Mesh '{self.name}' already has a shape key named '{name}'")
        deltas = np.asarray(deltas, dtype=np.float32).reshape(-1, 3)
        if len(deltas) != self.vertex_count:
            raise ValueError(
                f"Shape key '{name}' has {len(deltas)} deltas, "
                f"mesh '{self.name}' has {self.vertex_count} vertices")
        key = ShapeKey(name, deltas)
        self.shape_keys.append(key)
        return key

    def remove_shape_key(self, name):
        key = self.get_shape_key(name)
        if key is not None:
            self.shape_keys.remove(key)
        return key

    def evaluate(self, weights: Optional[Dict[str, float]] = None):
        """Vertex positions with the given shape key weights (0..100) applied."""
        result = self.vertices.copy()
        for name, weight in (weights or {}).items():
            key = self.get_shape_key(name)
            if key is not None and weight:
                result += key.deltas * (weight / 100.0)
        return result

    def triangles(self):
        """All triangles as an (N, 3) int array, submeshes concatenated."""
        if not self.submeshes:
            return np.zeros((0, 3), dtype=np.int32)
        return np.concatenate(self.submeshes).reshape(-1, 3)

    def duplicate(self, name=None):
        """Independent deep copy of this mesh (new asset)."""
        twin = Mesh(
            name if name is not None else self.name,
            self.vertices.copy(),
            [s.copy() for s in self.submeshes],
            None if self.bone_indices is None else self.bone_indices.copy(),
            None if self.bone_weights is None else self.bone_weights.copy(),
        )
        for key in self.shape_keys:
            twin.add_shape_key(key.name, key.deltas.copy())
        return twin


class SkinnedMeshRenderer(Behavior):
    """Binds one Mesh and an ordered material list to a node.

    Attributes:
        mesh: shared Mesh asset (or None)
        materials: list of Material, index = submesh material slot
        bones: list of SceneNode; mesh.bone_indices index into this list
        root_bone: SceneNode or None
    """

    type_tag = "SkinnedMeshRenderer"

    def __init__(self, mesh=None, materials=None, bones=None, root_bone=None,
                 enabled=True):
        super().__init__(enabled=enabled)
        self.mesh = mesh
        self.materials = list(materials or [])
        self.bones = list(bones or [])
        self.root_bone = root_bone

    def used_bones(self):
        """Bones carrying a non-zero weight on at least one vertex."""
        mesh = self.mesh
        if mesh is None:
            return []
        if mesh.bone_indices is None or not self.bones:
            return [self.node] if self.node is not None else []
        used = np.unique(mesh.bone_indices[mesh.bone_weights > 0.0])
        return [self.bones[i] for i in used if 0 <= i < len(self.bones)]
