"""Conversion settings and source-avatar capability detection.

Two things vary between the avatars we accept:

- The SDK generation that authored the avatar descriptor (SDK2 or SDK3).
  It decides how eye look-at limits are read.
- The secondary-dynamics format (PhysBone, DynamicBone, or none).

Both are detected once per conversion from the behavior type tags present
in the rig, returning closed enumerations / registered profiles instead of
probing for optional component types at every use.

ConversionSettings carries every constant the pipeline needs (temporary
folder, supported shaders, reserved collider bones...) so none of them are
module-level globals the caller cannot override.

Adding a new SDK generation:
    1. Create an SDKProfile with its descriptor type tag and eye-look variant
    2. List type tags that only that generation ships as signature_tags
    3. Call register_sdk_profile()
"""

import os
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Tuple

from .actor.sg_skeleton import HumanBone


# ---------------------------------------------------------------------------
# Configuration dataclasses
# ---------------------------------------------------------------------------

@dataclass
class ShaderConfig:
    """Shader remapping rules.

    Shaders in `supported_shader_names` are exported as-is. Anything else
    is duplicated and switched to `unlit_shader` when its name contains
    "unlit", `toon_shader` when it contains "toon", else `fallback_shader`
    (case-insensitive).
    """

    supported_shader_names: Tuple[str, ...] = (
        "Standard",
        "Standard (Specular setup)",
        "Unlit/Color",
        "Unlit/Texture",
        "Unlit/Transparent",
        "Unlit/Transparent Cutout",
        "UniGLTF/NormalMapDecoder",
        "UniGLTF/NormalMapEncoder",
        "UniGLTF/StandardVColor",
        "UniGLTF/UniUnlit",
        "VRM/MToon",
        "VRM/UnlitCutout",
        "VRM/UnlitTexture",
        "VRM/UnlitTransparent",
        "VRM/UnlitTransparentZWrite",
    )
    unlit_shader: str = "UniGLTF/UniUnlit"
    toon_shader: str = "VRM/MToon"

    # Shaders matching neither rule would otherwise be left without a
    # shader; the generic lit shader keeps them renderable.
    fallback_shader: str = "Standard"


def _default_temporary_folder():
    return os.path.join(tempfile.gettempdir(), "VRMConverterTemporary")


@dataclass
class ConversionSettings:
    """Per-conversion configuration.

    The temporary folder is a single location: run at most one conversion
    per folder at a time.
    """

    temporary_folder: str = field(default_factory=_default_temporary_folder)
    temporary_file_name: str = "temporary.json"
    combined_mesh_name: str = "vrm-mesh"

    # Collider groups on these bones survive pruning even when unused
    # (hand colliders are used for interaction, not only for spring bones).
    reserved_collider_bones: Tuple[HumanBone, ...] = (HumanBone.LEFT_HAND,
                                                       HumanBone.RIGHT_HAND)

    # SDK2 automatic eye movement rotates the eye bones at most this far.
    max_auto_eye_movement_degree: float = 30.0

    shaders: ShaderConfig = field(default_factory=ShaderConfig)


# ---------------------------------------------------------------------------
# SDK profiles
# ---------------------------------------------------------------------------

EYE_LOOK_SIMPLE = "simple"
EYE_LOOK_DIRECTIONAL = "directional"


@dataclass
class SDKProfile:
    """One VRChat SDK generation.

    Attributes:
        sdk_id: registry key
        name: display name
        descriptor_type_tag: avatar descriptor type tag (hard requirement)
        eye_look_variant: EYE_LOOK_SIMPLE or EYE_LOOK_DIRECTIONAL
        signature_tags: type tags only this generation ships; each match
            found in the rig raises the detection score
    """

    sdk_id: str
    name: str
    descriptor_type_tag: str
    eye_look_variant: str
    signature_tags: Tuple[str, ...] = ()


SDK_PROFILES: Dict[str, SDKProfile] = {}


def register_sdk_profile(profile: SDKProfile) -> None:
    """Register an SDK profile in the global registry."""
    SDK_PROFILES[profile.sdk_id] = profile


def get_sdk_profile(sdk_id: str) -> Optional[SDKProfile]:
    return SDK_PROFILES.get(sdk_id)


def detect_sdk_profile(root) -> Optional[SDKProfile]:
    """Pick the SDK profile that best matches the rig.

    Strategy:
        1. Collect every behavior type tag in the hierarchy.
        2. Skip profiles whose descriptor tag is not on the root.
        3. Score the rest by signature tag matches; highest wins.

    Returns:
        SDKProfile, or None when the root carries no known descriptor.
    """
    root_tags = {b.type_tag for b in root.behaviors}
    all_tags = {b.type_tag for b in root.get_behaviors_in_children(include_inactive=True)}

    best_score = -1
    best_profile = None
    for profile in SDK_PROFILES.values():
        if profile.descriptor_type_tag not in root_tags:
            continue
        score = 1
        for tag in profile.signature_tags:
            if tag in all_tags:
                score += 3
        if score > best_score:
            best_score = score
            best_profile = profile
    return best_profile


# ---------------------------------------------------------------------------
# Dynamics format
# ---------------------------------------------------------------------------

class DynamicsFormat(Enum):
    NONE = "none"
    PHYS_BONE = "phys_bone"
    DYNAMIC_BONE = "dynamic_bone"


PHYS_BONE_TAGS = ("VRCPhysBone",)
DYNAMIC_BONE_TAGS = ("DynamicBone", "DynamicBoneCollider")


def detect_dynamics_format(root) -> DynamicsFormat:
    """PhysBone if any PhysBone exists, else DynamicBone if any of its data
    is present, else NONE."""
    tags = {b.type_tag for b in root.get_behaviors_in_children()}
    if any(tag in tags for tag in PHYS_BONE_TAGS):
        return DynamicsFormat.PHYS_BONE
    if any(tag in tags for tag in DYNAMIC_BONE_TAGS):
        return DynamicsFormat.DYNAMIC_BONE
    return DynamicsFormat.NONE


class SourceCapabilities(NamedTuple):
    sdk: Optional[SDKProfile]
    dynamics: DynamicsFormat


def detect_capabilities(root) -> SourceCapabilities:
    """Evaluate every capability check once for a sanitized rig."""
    return SourceCapabilities(detect_sdk_profile(root), detect_dynamics_format(root))


def get_profile_items() -> List[Tuple[str, str, str]]:
    """(identifier, name, description) for every registered SDK profile."""
    return [(sid, prof.name, prof.descriptor_type_tag)
            for sid, prof in SDK_PROFILES.items()]


# ---------------------------------------------------------------------------
# Built-in profiles
# ---------------------------------------------------------------------------

register_sdk_profile(SDKProfile(
    sdk_id="vrcsdk3",
    name="VRChat SDK3 (Avatars)",
    descriptor_type_tag="VRCAvatarDescriptor",
    eye_look_variant=EYE_LOOK_DIRECTIONAL,
    signature_tags=("VRCPhysBone", "VRCPhysBoneCollider", "VRCPipelineManager"),
))

register_sdk_profile(SDKProfile(
    sdk_id="vrcsdk2",
    name="VRChat SDK2",
    descriptor_type_tag="VRC_AvatarDescriptor",
    eye_look_variant=EYE_LOOK_SIMPLE,
    signature_tags=("PipelineManager",),
))
