"""Facial expression presets: from VRChat bindings to VRM blend shape clips.

A VRChat expression binding is either an animation clip (the gesture
animation the avatar plays) or an explicit list of shape key names. Only
the shape keys it ultimately drives matter for VRM, so extraction resolves
each binding to an ordered {shape key name: weight} mapping.

Animation curve conventions:
    property "blendShape.<name>" on any path drives shape key <name>;
    the pose value is the first keyframe's value (weights are 0..100).
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ..scene_graph.sg_geometry import SkinnedMeshRenderer
from ..utils.errors import ConfigurationError
from .vrm_components import BlendShapeBinding, BlendShapeClip, VRMBlendShapeProxy

_log = logging.getLogger("vrc2vrm.expressions")

BLEND_SHAPE_PROPERTY_PREFIX = "blendShape."
FULL_WEIGHT = 100.0


class ExpressionPreset(str, Enum):
    NEUTRAL = "neutral"
    A = "a"
    I = "i"
    U = "u"
    E = "e"
    O = "o"
    BLINK = "blink"
    JOY = "joy"
    ANGRY = "angry"
    SORROW = "sorrow"
    FUN = "fun"
    LOOK_UP = "lookup"
    LOOK_DOWN = "lookdown"
    LOOK_LEFT = "lookleft"
    LOOK_RIGHT = "lookright"
    BLINK_L = "blink_l"
    BLINK_R = "blink_r"


@dataclass
class AnimationCurve:
    """One animated property: keyframes are (time, value) pairs."""
    path: str
    property_name: str
    keyframes: List[Tuple[float, float]] = field(default_factory=list)


class AnimationClip:
    """Animation asset (shared by reference like meshes and materials)."""

    def __init__(self, name, curves=None):
        self.name = name
        self.curves: List[AnimationCurve] = list(curves or [])

    def __deepcopy__(self, memo):
        return self


@dataclass
class VRChatExpressionBinding:
    """What triggers an expression on the VRChat side."""
    animation_clip: Optional[AnimationClip] = None
    shape_key_names: Optional[List[str]] = None


def extract_shape_key_names(binding) -> Dict[str, float]:
    """Resolve one binding to the shape keys it drives.

    Args:
        binding: VRChatExpressionBinding.

    Returns:
        dict shape key name -> weight (0..100), in first-seen order.
        Zero weights are dropped.

    Raises:
        ConfigurationError: if the binding is not a VRChatExpressionBinding,
            has neither a clip nor names, or a blend shape curve has no
            keyframes.
    """
    if binding is not None and not isinstance(binding, VRChatExpressionBinding):
        raise ConfigurationError(
            f"Expression binding must be a VRChatExpressionBinding, got {type(binding).__name__}")
    if binding is None or (binding.animation_clip is None and binding.shape_key_names is None):
        raise ConfigurationError("Expression binding has neither an animation clip nor shape keys")

    pairs: Dict[str, float] = {}

    if binding.animation_clip is not None:
        clip = binding.animation_clip
        for curve in clip.curves:
            if not curve.property_name.startswith(BLEND_SHAPE_PROPERTY_PREFIX):
                continue
            if not curve.keyframes:
                raise ConfigurationError(
                    f"Animation '{clip.name}': curve '{curve.property_name}' has no keyframes")
            name = curve.property_name[len(BLEND_SHAPE_PROPERTY_PREFIX):]
            weight = float(curve.keyframes[0][1])
            if weight == 0.0 or name in pairs:
                continue
            pairs[name] = weight

    for name in binding.shape_key_names or []:
        if name not in pairs:
            pairs[name] = FULL_WEIGHT

    return pairs


def extract_presets(preset_bindings) -> Dict[ExpressionPreset, Dict[str, float]]:
    """extract_shape_key_names() for every preset.

    Raises:
        ConfigurationError: on an unknown preset or malformed binding.
    """
    result = {}
    for preset, binding in preset_bindings.items():
        try:
            preset = ExpressionPreset(preset)
        except ValueError:
            raise ConfigurationError(f"Unknown expression preset: {preset!r}") from None
        result[preset] = extract_shape_key_names(binding)
    return result


def used_shape_key_names(preset_pairs) -> List[str]:
    """Union of shape key names referenced by any preset, first-seen order."""
    names = []
    for pairs in preset_pairs.values():
        for name in pairs:
            if name not in names:
                names.append(name)
    return names


def set_expressions(root, preset_pairs):
    """Write blend shape clips for every preset into the VRMBlendShapeProxy.

    Each (shape key, weight) pair binds to every renderer under `root`
    whose mesh has that shape key. Pairs matching no renderer are skipped.

    Returns:
        list of BlendShapeClip written.
    """
    proxy = root.get_behavior(VRMBlendShapeProxy)
    if proxy is None:
        proxy = root.add_behavior(VRMBlendShapeProxy())

    renderers = [r for r in root.get_behaviors_in_children(SkinnedMeshRenderer)
                 if r.mesh is not None]

    clips = []
    for preset, pairs in preset_pairs.items():
        preset = ExpressionPreset(preset)
        clip = BlendShapeClip(preset=preset.value, name=preset.name.title().replace("_", ""))
        for shape_key_name, weight in pairs.items():
            bound = False
            for renderer in renderers:
                index = renderer.mesh.get_shape_key_index(shape_key_name)
                if index < 0:
                    continue
                clip.bindings.append(BlendShapeBinding(
                    relative_path=renderer.node.relative_path(root),
                    index=index,
                    weight=weight,
                ))
                bound = True
            if not bound:
                _log.warning("Expression '%s': shape key '%s' not found on any mesh",
                             preset.value, shape_key_name)
        clips.append(clip)

    proxy.clips = clips
    return clips
