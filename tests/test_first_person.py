"""
Tests for first-person offset, renderer visibility and eye look-at curves.
"""

import numpy as np
import pytest
from mathutils import Vector

from vrchat_to_vrm.actor.first_person import (
    is_auto_eye_movement_enabled,
    set_first_person_offset,
    set_first_person_renderers,
    set_look_at_bone_applier,
)
from vrchat_to_vrm.actor.sg_skeleton import Animator, get_skeleton
from vrchat_to_vrm.actor.vrchat_components import (
    CustomEyeLookSettings,
    EyeRotations,
    VRCAvatarDescriptor,
    VRCAvatarDescriptorSDK2,
)
from vrchat_to_vrm.actor.vrm_components import (
    FirstPersonFlag,
    VRMFirstPerson,
    VRMLookAtBoneApplier,
    initialize,
)
from vrchat_to_vrm.profiles import get_sdk_profile
from vrchat_to_vrm.scene_graph import Material, SkinnedMeshRenderer
from vrchat_to_vrm.utils.errors import ConfigurationError


def _vertical(left, right):
    return EyeRotations(Vector((left, 0.0, 0.0)), Vector((right, 0.0, 0.0)))


def _horizontal(left, right):
    return EyeRotations(Vector((0.0, left, 0.0)), Vector((0.0, right, 0.0)))


@pytest.fixture
def initialized(avatar):
    initialize(avatar, get_skeleton(avatar))
    return avatar


@pytest.fixture
def sdk2_avatar(avatar):
    avatar.remove_behavior(avatar.get_behavior(VRCAvatarDescriptor))
    avatar.add_behavior(VRCAvatarDescriptorSDK2(view_position=(0.0, 1.65, 0.08)))
    initialize(avatar, get_skeleton(avatar))
    return avatar


class TestFirstPersonOffset:
    """Test view position - head position."""

    def test_offset(self, initialized):
        offset = set_first_person_offset(initialized)

        first_person = initialized.get_behavior(VRMFirstPerson)
        assert first_person.first_person_bone is initialized.find("Head")
        assert tuple(first_person.first_person_offset) == pytest.approx((0.0, 0.1, 0.08), abs=1e-5)
        assert offset == first_person.first_person_offset

    def test_missing_descriptor(self, initialized):
        initialized.remove_behavior(initialized.get_behavior(VRCAvatarDescriptor))
        with pytest.raises(ConfigurationError):
            set_first_person_offset(initialized)

    def test_missing_first_person(self, avatar):
        with pytest.raises(ConfigurationError):
            set_first_person_offset(avatar)


class TestFirstPersonRenderers:
    """Test renderer visibility classification."""

    def test_default_traversal(self, initialized, make_quad_mesh, make_renderer):
        hips = initialized.find("Hips")
        head = initialized.find("Head")
        mesh = make_quad_mesh("Mixed")
        mesh.bone_indices[2:, 0] = 1
        make_renderer(initialized, "Mixed", mesh, [Material("M", "Standard")], [hips, head])

        flags = set_first_person_renderers(initialized)

        assert [(f.renderer.node.name, f.flag) for f in flags] == [
            ("Body", FirstPersonFlag.BOTH),
            ("Face", FirstPersonFlag.THIRD_PERSON_ONLY),
            ("Mixed", FirstPersonFlag.AUTO),
        ]

    def test_custom_traversal(self, initialized):
        calls = []

        def traverse(root, first_person):
            calls.append(first_person)
            return []

        set_first_person_renderers(initialized, traverse=traverse)
        assert calls == [initialized.get_behavior(VRMFirstPerson)]


class TestDirectionalEyeLook:
    """Test SDK3 per-direction eye limits."""

    def _settings(self, **overrides):
        values = {
            'eyes_looking_up': _vertical(-10.0, -12.0),
            'eyes_looking_down': _vertical(8.0, 9.0),
            'eyes_looking_left': _horizontal(5.0, 7.0),
            'eyes_looking_right': _horizontal(6.0, 4.0),
        }
        values.update(overrides)
        return CustomEyeLookSettings(**values)

    def test_minimum_of_each_pair(self, initialized):
        initialized.get_behavior(VRCAvatarDescriptor).custom_eye_look_settings = self._settings()

        changed = set_look_at_bone_applier(initialized, get_skeleton(initialized),
                                           get_sdk_profile("vrcsdk3"))

        look_at = initialized.get_behavior(VRMLookAtBoneApplier)
        assert changed
        assert look_at.look_up.curve_y_range_degree == pytest.approx(10.0)
        assert look_at.look_down.curve_y_range_degree == pytest.approx(8.0)
        assert look_at.look_left.curve_y_range_degree == pytest.approx(5.0)
        assert look_at.look_right.curve_y_range_degree == pytest.approx(4.0)

    @pytest.mark.parametrize("missing", [
        'eyes_looking_up', 'eyes_looking_down', 'eyes_looking_left', 'eyes_looking_right',
    ])
    def test_any_missing_direction_skips_stage(self, initialized, missing):
        initialized.get_behavior(VRCAvatarDescriptor).custom_eye_look_settings = \
            self._settings(**{missing: None})

        changed = set_look_at_bone_applier(initialized, get_skeleton(initialized),
                                           get_sdk_profile("vrcsdk3"))

        look_at = initialized.get_behavior(VRMLookAtBoneApplier)
        assert not changed
        assert [m.curve_y_range_degree for m in look_at.mappers] == [10.0, 10.0, 10.0, 10.0]


class TestSimpleEyeLook:
    """Test SDK2 automatic eye movement."""

    def test_auto_eye_movement_sets_all_curves(self, sdk2_avatar):
        body = sdk2_avatar.find("Body").get_behavior(SkinnedMeshRenderer)
        body.mesh.add_shape_key("vrc.blink", np.zeros((4, 3)))
        skeleton = get_skeleton(sdk2_avatar)

        changed = set_look_at_bone_applier(sdk2_avatar, skeleton, get_sdk_profile("vrcsdk2"), 30.0)

        look_at = sdk2_avatar.get_behavior(VRMLookAtBoneApplier)
        assert changed
        assert [m.curve_y_range_degree for m in look_at.mappers] == [30.0, 30.0, 30.0, 30.0]

    def test_disabled_without_body_shape_keys(self, sdk2_avatar):
        skeleton = get_skeleton(sdk2_avatar)
        assert not is_auto_eye_movement_enabled(sdk2_avatar, skeleton)

        changed = set_look_at_bone_applier(sdk2_avatar, skeleton, get_sdk_profile("vrcsdk2"))
        assert not changed

    def test_disabled_without_eye_bones(self, sdk2_avatar):
        sdk2_avatar.find("LeftEye").destroy()
        skeleton = sdk2_avatar.get_behavior(Animator).skeleton
        assert not is_auto_eye_movement_enabled(sdk2_avatar, skeleton)
