"""
Tests for expression extraction and blend shape clip binding.
"""

import pytest

from vrchat_to_vrm.actor.expressions import (
    AnimationClip,
    AnimationCurve,
    ExpressionPreset,
    VRChatExpressionBinding,
    extract_presets,
    extract_shape_key_names,
    set_expressions,
    used_shape_key_names,
)
from vrchat_to_vrm.actor.vrm_components import VRMBlendShapeProxy
from vrchat_to_vrm.utils.errors import ConfigurationError


def _clip(*curves):
    return AnimationClip("Gesture", [AnimationCurve(path, prop, keys) for path, prop, keys in curves])


class TestExtractShapeKeyNames:
    """Test binding resolution."""

    def test_clip_first_keyframe_value(self):
        binding = VRChatExpressionBinding(animation_clip=_clip(
            ("Body", "blendShape.Smile", [(0.0, 80.0), (1.0, 0.0)]),
            ("Body", "blendShape.Blink", [(0.0, 100.0)]),
        ))

        assert extract_shape_key_names(binding) == {"Smile": 80.0, "Blink": 100.0}

    def test_non_blend_shape_curves_ignored(self):
        binding = VRChatExpressionBinding(animation_clip=_clip(
            ("Armature/Hips", "m_LocalPosition.x", [(0.0, 1.0)]),
            ("Body", "blendShape.A", [(0.0, 50.0)]),
        ))

        assert list(extract_shape_key_names(binding)) == ["A"]

    def test_zero_weight_dropped(self):
        binding = VRChatExpressionBinding(animation_clip=_clip(
            ("Body", "blendShape.Off", [(0.0, 0.0)]),
            ("Body", "blendShape.On", [(0.0, 30.0)]),
        ))

        assert extract_shape_key_names(binding) == {"On": 30.0}

    def test_names_get_full_weight(self):
        binding = VRChatExpressionBinding(shape_key_names=["vrc.blink_left", "vrc.blink_right"])

        assert extract_shape_key_names(binding) == {
            "vrc.blink_left": 100.0,
            "vrc.blink_right": 100.0,
        }

    def test_empty_binding_rejected(self):
        with pytest.raises(ConfigurationError):
            extract_shape_key_names(VRChatExpressionBinding())

    @pytest.mark.parametrize("binding", ["Blink", {"shape_key_names": ["Blink"]}, ["Blink"]])
    def test_wrong_binding_type_rejected(self, binding):
        with pytest.raises(ConfigurationError, match="VRChatExpressionBinding"):
            extract_shape_key_names(binding)

    def test_curve_without_keyframes_rejected(self):
        binding = VRChatExpressionBinding(animation_clip=_clip(("Body", "blendShape.A", [])))
        with pytest.raises(ConfigurationError):
            extract_shape_key_names(binding)

    def test_extraction_does_not_mutate_clip(self):
        clip = _clip(("Body", "blendShape.A", [(0.0, 50.0)]))
        extract_shape_key_names(VRChatExpressionBinding(animation_clip=clip))
        assert clip.curves[0].keyframes == [(0.0, 50.0)]


class TestPresets:
    """Test preset tables."""

    def test_string_presets_accepted(self):
        result = extract_presets({"blink": VRChatExpressionBinding(shape_key_names=["Blink"])})
        assert result == {ExpressionPreset.BLINK: {"Blink": 100.0}}

    def test_unknown_preset_rejected(self):
        with pytest.raises(ConfigurationError, match="surprised"):
            extract_presets({"surprised": VRChatExpressionBinding(shape_key_names=["X"])})

    def test_used_names_union(self):
        pairs = {
            ExpressionPreset.A: {"A": 100.0, "Mouth": 20.0},
            ExpressionPreset.BLINK: {"Blink": 100.0, "Mouth": 10.0},
        }
        assert used_shape_key_names(pairs) == ["A", "Mouth", "Blink"]


class TestSetExpressions:
    """Test writing clips into the blend shape proxy."""

    def test_bindings_reference_renderer_path_and_index(self, avatar):
        clips = set_expressions(avatar, {ExpressionPreset.BLINK: {"Blink": 100.0, "E": 40.0}})

        proxy = avatar.get_behavior(VRMBlendShapeProxy)
        assert proxy.clips == clips
        assert clips[0].preset == "blink"
        assert [(b.relative_path, b.index, b.weight) for b in clips[0].bindings] == [
            ("Face", 0, 100.0),
            ("Face", 4, 40.0),
        ]

    def test_missing_shape_key_skipped(self, avatar):
        clips = set_expressions(avatar, {ExpressionPreset.JOY: {"Smile": 100.0}})
        assert clips[0].bindings == []
