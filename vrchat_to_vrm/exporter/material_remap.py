"""Remap shaders the destination format cannot export.

Materials whose shader is on the supported list are left alone and stay
shared between renderers. Every other material is duplicated once per
conversion (memoized by material identity, so two renderers sharing a
material also share its duplicate) and given a supported shader:

    name contains "unlit"  -> ShaderConfig.unlit_shader
    else contains "toon"   -> ShaderConfig.toon_shader
    else                   -> ShaderConfig.fallback_shader

Duplicates keep the source name and render queue and are written to
temporary storage before use.
"""

import logging

from ..profiles import ShaderConfig
from ..scene_graph.sg_geometry import SkinnedMeshRenderer

_log = logging.getLogger("vrc2vrm.materials")


def choose_shader(shader_name, shader_config):
    """Destination shader for an unsupported source shader name."""
    lowered = (shader_name or "").lower()
    if "unlit" in lowered:
        return shader_config.unlit_shader
    if "toon" in lowered:
        return shader_config.toon_shader
    return shader_config.fallback_shader


class ShaderReplacer:
    """Per-conversion material remapper with a duplicate memo table.

    Args:
        shader_config: ShaderConfig.
        storage: TemporaryStorage the duplicates are written to, or None.
    """

    def __init__(self, shader_config=None, storage=None):
        self.shader_config = shader_config if shader_config is not None else ShaderConfig()
        self.storage = storage
        self._duplicated = {}

    @property
    def duplicate_count(self):
        return len(self._duplicated)

    def replace(self, material):
        """Return the exportable counterpart of `material`."""
        if material is None or material.shader in self.shader_config.supported_shader_names:
            return material

        duplicate = self._duplicated.get(material)
        if duplicate is not None:
            return duplicate

        duplicate = material.duplicate()
        duplicate.name = material.name
        duplicate.shader = choose_shader(material.shader, self.shader_config)
        duplicate.render_queue = material.render_queue
        if self.storage is not None:
            duplicate = self.storage.create_object(duplicate)

        self._duplicated[material] = duplicate
        _log.debug("Material '%s': shader '%s' -> '%s'",
                   material.name, material.shader, duplicate.shader)
        return duplicate


def replace_shaders(root, storage=None, shader_config=None):
    """Remap the materials of every renderer under `root` in place.

    Returns:
        The ShaderReplacer used (its memo holds the duplicates).
    """
    replacer = ShaderReplacer(shader_config, storage)
    for renderer in root.get_behaviors_in_children(SkinnedMeshRenderer):
        renderer.materials = [replacer.replace(m) for m in renderer.materials]
    _log.info("Remapped %d unsupported material(s)", replacer.duplicate_count)
    return replacer
