"""
Tests for settings and capability detection.
"""

import os

import pytest

from vrchat_to_vrm.actor.sg_skeleton import HumanBone
from vrchat_to_vrm.actor.vrchat_components import (
    VRCAvatarDescriptor,
    VRCAvatarDescriptorSDK2,
    VRCPhysBone,
)
from vrchat_to_vrm.profiles import (
    EYE_LOOK_DIRECTIONAL,
    EYE_LOOK_SIMPLE,
    SDK_PROFILES,
    ConversionSettings,
    DynamicsFormat,
    SDKProfile,
    ShaderConfig,
    detect_capabilities,
    detect_sdk_profile,
    get_profile_items,
    register_sdk_profile,
)
from vrchat_to_vrm.scene_graph import GenericBehavior, SceneNode


class TestSettings:
    """Test default configuration values."""

    def test_defaults(self):
        settings = ConversionSettings()
        assert os.path.basename(settings.temporary_folder) == "VRMConverterTemporary"
        assert settings.combined_mesh_name == "vrm-mesh"
        assert settings.max_auto_eye_movement_degree == 30.0
        assert settings.reserved_collider_bones == (HumanBone.LEFT_HAND, HumanBone.RIGHT_HAND)

    def test_shader_allow_list(self):
        config = ShaderConfig()
        assert "VRM/MToon" in config.supported_shader_names
        assert "Standard" in config.supported_shader_names
        assert "ToonLit" not in config.supported_shader_names
        assert config.fallback_shader == "Standard"

    def test_settings_are_independent(self):
        a = ConversionSettings()
        b = ConversionSettings()
        a.shaders.fallback_shader = "VRM/MToon"
        assert b.shaders.fallback_shader == "Standard"


class TestSDKDetection:
    """Test SDK profile scoring."""

    def test_sdk3(self, humanoid):
        profile = detect_sdk_profile(humanoid)
        assert profile.sdk_id == "vrcsdk3"
        assert profile.eye_look_variant == EYE_LOOK_DIRECTIONAL

    def test_sdk2(self):
        root = SceneNode("Avatar")
        root.add_behavior(VRCAvatarDescriptorSDK2())
        root.add_behavior(GenericBehavior("PipelineManager"))

        profile = detect_sdk_profile(root)
        assert profile.sdk_id == "vrcsdk2"
        assert profile.eye_look_variant == EYE_LOOK_SIMPLE

    def test_descriptor_must_be_on_root(self):
        root = SceneNode("Scene")
        root.add_child("Avatar").add_behavior(VRCAvatarDescriptor())
        assert detect_sdk_profile(root) is None

    def test_signature_tags_break_ties(self):
        extra = SDKProfile("test_fork", "Fork", "VRCAvatarDescriptor", EYE_LOOK_SIMPLE,
                           signature_tags=("ForkMarker",))
        register_sdk_profile(extra)
        try:
            root = SceneNode("Avatar")
            root.add_behavior(VRCAvatarDescriptor())
            root.add_child("Hair").add_behavior(GenericBehavior("ForkMarker"))
            assert detect_sdk_profile(root) is extra
        finally:
            del SDK_PROFILES["test_fork"]

    def test_profile_items(self):
        ids = [item[0] for item in get_profile_items()]
        assert "vrcsdk2" in ids
        assert "vrcsdk3" in ids


def test_capabilities_evaluated_together(humanoid):
    humanoid.find("Hair1").add_behavior(VRCPhysBone())
    capabilities = detect_capabilities(humanoid)

    assert capabilities.sdk.sdk_id == "vrcsdk3"
    assert capabilities.dynamics is DynamicsFormat.PHYS_BONE


@pytest.mark.parametrize("tags, expected", [
    ((), DynamicsFormat.NONE),
    (("DynamicBone",), DynamicsFormat.DYNAMIC_BONE),
    (("DynamicBone", "VRCPhysBone"), DynamicsFormat.PHYS_BONE),
])
def test_dynamics_by_tag(tags, expected):
    root = SceneNode("Avatar")
    for tag in tags:
        root.add_child(tag).add_behavior(GenericBehavior(tag))
    assert detect_capabilities(root).dynamics is expected
