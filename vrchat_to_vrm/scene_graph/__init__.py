from .sg_classes import SceneNode, Behavior, GenericBehavior
from .sg_geometry import Mesh, ShapeKey, SkinnedMeshRenderer
from .sg_materials import Material

__all__ = [
    "SceneNode",
    "Behavior",
    "GenericBehavior",
    "Mesh",
    "ShapeKey",
    "SkinnedMeshRenderer",
    "Material",
]
