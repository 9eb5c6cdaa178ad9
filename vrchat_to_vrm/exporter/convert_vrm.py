"""VRChat avatar -> VRM conversion pipeline.

VRMConversion runs every stage over a clone of the source avatar as an
explicit state machine:

    IDLE -> CLONING -> INITIALIZING -> DYNAMICS_CONVERSION
         -> COLLIDER_PRUNING -> NORMALIZING -> COMBINING
         -> MATERIAL_REMAPPING -> FINALIZING -> EXPORTING
         -> SUCCEEDED | FAILED

Transitions are strictly sequential. Any exception jumps to FAILED: the
error reporter is called once with (version, failed state, error), then
the error propagates. Exceptions that are not ConverterError are wrapped
in ConversionFailure carrying the failed stage.

Whatever the exit path, the clone, the normalized avatar and the
temporary storage folder are released in a finally block. The source
avatar is never modified and the output path only ever receives a fully
written file (written next to it as <path>.part, then renamed).

External collaborators are constructor arguments with working defaults:
    normalizer(root, force_t_pose=True) -> new root
    combine(renderers, name) -> (Mesh, materials, bones)
    separate(root)
    exporter(root) -> bytes
    error_reporter(version, state, exception)
    traverse_renderers(root, first_person) -> [RendererFirstPersonFlags]
"""

import logging
import os
import time
from enum import Enum

from ..actor.dynamics import convert_secondary_dynamics, remove_unused_collider_groups
from ..actor.expressions import extract_presets, set_expressions, used_shape_key_names
from ..actor.first_person import (
    set_first_person_offset, set_first_person_renderers, set_look_at_bone_applier,
    traverse_renderers as default_traverse_renderers,
)
from ..actor.normalizer import clone_normalizer, rebind_references
from ..actor.sanitizer import remove_inactive_objects_and_disabled_components
from ..actor.sg_skeleton import Animator, get_skeleton
from ..actor.vrm_components import VRMMeta, initialize
from ..profiles import ConversionSettings, detect_capabilities
from ..scene_graph.sg_geometry import SkinnedMeshRenderer
from ..utils.errors import ConfigurationError, ConversionFailure, ConverterError, ResourceError
from .material_remap import replace_shaders
from .mesh_combiner import (
    clean_up_shape_keys, combine_meshes, combine_meshes_and_sub_meshes,
    separate_shape_keys,
)
from .temp_storage import TemporaryStorage
from .vrm_json import export_vrm_json

_log = logging.getLogger("vrc2vrm.convert")


class ConversionState(Enum):
    IDLE = "idle"
    CLONING = "cloning"
    INITIALIZING = "initializing"
    DYNAMICS_CONVERSION = "dynamics_conversion"
    COLLIDER_PRUNING = "collider_pruning"
    NORMALIZING = "normalizing"
    COMBINING = "combining"
    MATERIAL_REMAPPING = "material_remapping"
    FINALIZING = "finalizing"
    EXPORTING = "exporting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def log_error_reporter(version, state, exception):
    """Default error reporter: one ERROR record with the traceback."""
    _log.error("VRChat to VRM converter %s: conversion failed while %s: %s",
               version, state.value, exception, exc_info=exception)


class VRMConversion:
    """One conversion run. Instances are single-use.

    Args:
        instance: source avatar root SceneNode (left untouched).
        output_path: destination file path.
        meta: AvatarMeta for the destination, or None.
        preset_bindings: {ExpressionPreset or preset value: VRChatExpressionBinding}.
        keep_unused_shape_keys: keep shape keys no expression references.
        version: converter version reported on failure.
        settings: ConversionSettings (temporary folder, shaders...).
        operator: optional object with report(levels, message) for
            progress messages; they are printed when None.
    """

    def __init__(self, instance, output_path, meta=None, preset_bindings=None,
                 keep_unused_shape_keys=False, version="", settings=None,
                 normalizer=clone_normalizer, combine=combine_meshes,
                 separate=separate_shape_keys, exporter=export_vrm_json,
                 error_reporter=log_error_reporter,
                 traverse_renderers=default_traverse_renderers, operator=None):
        self.instance = instance
        self.output_path = output_path
        self.meta = meta
        self.preset_bindings = dict(preset_bindings or {})
        self.keep_unused_shape_keys = keep_unused_shape_keys
        self.version = version
        self.settings = settings if settings is not None else ConversionSettings()

        self.normalizer = normalizer
        self.combine = combine
        self.separate = separate
        self.exporter = exporter
        self.error_reporter = error_reporter
        self.traverse_renderers = traverse_renderers
        self.operator = operator

        self.state = ConversionState.IDLE
        self.history = [ConversionState.IDLE]
        self.storage = None
        self.clone = None
        self.normalized = None
        self.skeleton = None
        self.capabilities = None
        self.preset_pairs = {}

    # ---------------------------------------------------------------------
    # Run
    # ---------------------------------------------------------------------

    def run(self):
        """Convert and write the output file.

        Returns:
            The bytes written to output_path.

        Raises:
            ConverterError: ConfigurationError, ResourceError, or
                ConversionFailure wrapping any other exception.
        """
        if self.state is not ConversionState.IDLE:
            raise ConverterError("A VRMConversion can only be run once")

        t_start = time.time()
        self.storage = TemporaryStorage(self.settings.temporary_folder,
                                        self.settings.temporary_file_name)
        try:
            self.storage.ensure_folder()
            stages = (
                (ConversionState.CLONING, self._clone),
                (ConversionState.INITIALIZING, self._initialize),
                (ConversionState.DYNAMICS_CONVERSION, self._convert_dynamics),
                (ConversionState.COLLIDER_PRUNING, self._prune_colliders),
                (ConversionState.NORMALIZING, self._normalize),
                (ConversionState.COMBINING, self._combine),
                (ConversionState.MATERIAL_REMAPPING, self._remap_materials),
                (ConversionState.FINALIZING, self._finalize),
            )
            for state, stage in stages:
                self._enter(state)
                stage()
            self._enter(ConversionState.EXPORTING)
            data = self._export()
            self._enter(ConversionState.SUCCEEDED)
        except Exception as e:
            failed = self.state
            self._enter(ConversionState.FAILED)
            error = e if isinstance(e, ConverterError) else ConversionFailure(failed.name, e)
            _report(self.operator, 'ERROR', f"Conversion failed ({failed.value}): {error}")
            self._report_error(failed, error)
            if error is e:
                raise
            raise error from e
        finally:
            self._cleanup()

        _report(self.operator, 'INFO',
                f"Converted '{self.instance.name}' to {os.path.basename(self.output_path)} "
                f"({len(data):,} bytes, {time.time() - t_start:.2f}s)")
        return data

    def _enter(self, state):
        _log.debug("%s -> %s", self.state.name, state.name)
        self.state = state
        self.history.append(state)

    def _report_error(self, state, error):
        try:
            self.error_reporter(self.version, state, error)
        except Exception:
            _log.exception("Error reporter raised while reporting %s", type(error).__name__)

    # ---------------------------------------------------------------------
    # Stages
    # ---------------------------------------------------------------------

    def _clone(self):
        self.clone = self.instance.clone()
        remove_inactive_objects_and_disabled_components(self.clone)
        if self.clone.destroyed:
            raise ConfigurationError(f"Avatar '{self.instance.name}' is inactive")

    def _initialize(self):
        self.preset_pairs = extract_presets(self.preset_bindings)

        self.capabilities = detect_capabilities(self.clone)
        if self.capabilities.sdk is None:
            raise ConfigurationError(
                f"'{self.instance.name}' has no VRChat avatar descriptor on its root")
        _report(self.operator, 'INFO',
                f"Detected {self.capabilities.sdk.name}, "
                f"dynamics: {self.capabilities.dynamics.value}")

        self.skeleton = get_skeleton(self.clone)
        initialize(self.clone, self.skeleton, self.meta)
        set_look_at_bone_applier(self.clone, self.skeleton, self.capabilities.sdk,
                                 self.settings.max_auto_eye_movement_degree)

    def _convert_dynamics(self):
        convert_secondary_dynamics(self.clone, self.skeleton, self.capabilities.dynamics,
                                   self.settings.reserved_collider_bones)
        # Measured on the rig as converted, before normalization moves bones
        set_first_person_offset(self.clone)

    def _prune_colliders(self):
        remove_unused_collider_groups(self.clone, self.skeleton,
                                      self.settings.reserved_collider_bones)

    def _normalize(self):
        normalized = self.normalizer(self.clone, force_t_pose=True)
        if normalized is None:
            raise TypeError("Normalizer returned no avatar")
        self.normalized = normalized
        self.skeleton = rebind_references(self.normalized)

    def _combine(self):
        combined = combine_meshes_and_sub_meshes(
            self.normalized, self.settings.combined_mesh_name, combine=self.combine)
        if not self.keep_unused_shape_keys and combined is not None:
            clean_up_shape_keys(combined.mesh, used_shape_key_names(self.preset_pairs))
        self.separate(self.normalized)

    def _remap_materials(self):
        replace_shaders(self.normalized, self.storage, self.settings.shaders)

    def _finalize(self):
        root = self.normalized
        root.name = self.instance.name

        vrm_meta = root.get_behavior(VRMMeta)
        if vrm_meta is not None and vrm_meta.meta is not None:
            vrm_meta.meta = self.storage.create_object(vrm_meta.meta.copy(name="Meta"))

        animator = root.get_behavior(Animator)
        animator.skeleton = self.storage.create_object(
            animator.skeleton.copy(name=f"{root.name}Avatar"))
        self.skeleton = animator.skeleton

        for renderer in root.get_behaviors_in_children(SkinnedMeshRenderer):
            if renderer.mesh is None:
                continue
            renderer.mesh = self.storage.create_object(
                renderer.mesh.duplicate(name=renderer.node.name))

        set_first_person_renderers(root, traverse=self.traverse_renderers)
        set_expressions(root, self.preset_pairs)

    def _export(self):
        data = self.exporter(self.normalized)
        if not isinstance(data, (bytes, bytearray)):
            raise TypeError(f"Exporter returned {type(data).__name__}, expected bytes")
        data = bytes(data)
        write_output(self.output_path, data)
        return data

    # ---------------------------------------------------------------------
    # Cleanup
    # ---------------------------------------------------------------------

    def _cleanup(self):
        for root in (self.normalized, self.clone):
            if root is not None:
                root.destroy()
        if self.storage is not None:
            try:
                self.storage.delete()
            except OSError:
                _log.exception("Could not delete temporary folder '%s'", self.storage.folder)


def write_output(path, data):
    """Write `data` to `path` through a sibling .part file.

    Raises:
        ResourceError: if the file cannot be written.
    """
    partial = path + ".part"
    try:
        with open(partial, 'wb') as f:
            f.write(data)
        os.replace(partial, path)
    except OSError as e:
        if os.path.exists(partial):
            os.remove(partial)
        raise ResourceError(f"Cannot write '{path}': {e}") from e


def convert(output_path, instance, meta=None, preset_bindings=None,
            keep_unused_shape_keys=False, **options):
    """Convert `instance` to VRM and write it to `output_path`.

    Keyword options are passed to VRMConversion (version, settings,
    collaborators, operator).

    Returns:
        The bytes written.
    """
    return VRMConversion(instance, output_path, meta=meta, preset_bindings=preset_bindings,
                         keep_unused_shape_keys=keep_unused_shape_keys, **options).run()


# ===========================================================================
def _report(operator, level, message):
    """Report a message through the operator or print to console."""
    if operator is not None and hasattr(operator, 'report'):
        operator.report({level}, message)
    else:
        print(f"[{level}] {message}")
