"""Scoped temporary storage for intermediate conversion assets.

Intermediate assets (combined meshes, duplicated materials, meta, the
humanoid avatar mapping) are written into one folder while a conversion
runs and the whole folder is deleted when it ends. Layout:

    <folder>/
        temporary.json        manifest: one entry per stored asset
        <asset>.npz           mesh buffers (numpy)
        <asset>.json          materials, meta, humanoid bone -> node name

The folder location comes from ConversionSettings; only one conversion may
use a given folder at a time.
"""

import dataclasses
import json
import logging
import os
import re
import shutil

import numpy as np

from ..actor.sg_skeleton import Skeleton
from ..scene_graph.sg_geometry import Mesh
from ..scene_graph.sg_materials import Material
from ..utils.errors import ResourceError

_log = logging.getLogger("vrc2vrm.storage")


def slug(value):
    cleaned = re.sub(r"[^a-zA-Z0-9_.-]+", "_", value or "").strip("_.")
    return cleaned or "asset"


class TemporaryStorage:
    """Folder holding the assets of one running conversion.

    Attributes:
        folder: absolute folder path
        manifest_name: manifest file name inside the folder
        entries: list of manifest dicts (name, kind, file)
    """

    def __init__(self, folder, manifest_name="temporary.json"):
        self.folder = os.path.abspath(folder)
        self.manifest_name = manifest_name
        self.entries = []
        self._used_files = set()

    def ensure_folder(self):
        """Create the folder (and parents).

        Raises:
            ResourceError: if it cannot be created.
        """
        try:
            os.makedirs(self.folder, exist_ok=True)
        except OSError as e:
            raise ResourceError(f"Cannot create temporary folder '{self.folder}': {e}") from e
        self._write_manifest()

    def create_object(self, asset):
        """Persist `asset` into the folder and return it.

        Args:
            asset: Mesh, Material, Skeleton, or a dataclass instance (meta).

        Raises:
            ResourceError: if writing fails.
            TypeError: for unsupported asset types.
        """
        name = getattr(asset, "name", type(asset).__name__)
        try:
            if isinstance(asset, Mesh):
                file_name = self._unique_file(name, ".npz")
                self._save_mesh(asset, os.path.join(self.folder, file_name))
                kind = "mesh"
            elif isinstance(asset, Material):
                file_name = self._unique_file(name, ".json")
                self._save_json({
                    'name': asset.name,
                    'shader': asset.shader,
                    'render_queue': asset.render_queue,
                    'properties': asset.properties,
                }, os.path.join(self.folder, file_name))
                kind = "material"
            elif isinstance(asset, Skeleton):
                file_name = self._unique_file(name, ".json")
                self._save_json({
                    'name': asset.name,
                    'humanBones': {bone.value: node.name for bone, node in asset.bones.items()
                                   if node is not None},
                }, os.path.join(self.folder, file_name))
                kind = "avatar"
            elif dataclasses.is_dataclass(asset):
                file_name = self._unique_file(name, ".json")
                self._save_json(dataclasses.asdict(asset), os.path.join(self.folder, file_name))
                kind = type(asset).__name__
            else:
                raise TypeError(f"Cannot store {type(asset).__name__} in temporary storage")
            self.entries.append({'name': name, 'kind': kind, 'file': file_name})
            self._write_manifest()
        except OSError as e:
            raise ResourceError(f"Cannot write '{name}' to temporary storage: {e}") from e

        _log.debug("Stored %s '%s' as %s", kind, name, file_name)
        return asset

    def delete(self):
        """Remove the folder and everything in it. Missing folder is fine."""
        if os.path.isdir(self.folder):
            shutil.rmtree(self.folder)
            _log.debug("Deleted temporary folder '%s'", self.folder)
        self.entries = []
        self._used_files = set()

    def _unique_file(self, name, extension):
        base = slug(name)
        candidate = base + extension
        counter = 1
        while candidate in self._used_files or candidate == self.manifest_name:
            candidate = f"{base}_{counter}{extension}"
            counter += 1
        self._used_files.add(candidate)
        return candidate

    def _save_mesh(self, mesh, path):
        arrays = {'vertices': mesh.vertices}
        for i, triangles in enumerate(mesh.submeshes):
            arrays[f'submesh_{i}'] = triangles
        if mesh.bone_indices is not None:
            arrays['bone_indices'] = mesh.bone_indices
            arrays['bone_weights'] = mesh.bone_weights
        for i, key in enumerate(mesh.shape_keys):
            arrays[f'shape_key_{i}'] = key.deltas
        arrays['shape_key_names'] = np.array(mesh.shape_key_names, dtype=str)
        with open(path, 'wb') as f:
            np.savez(f, **arrays)

    def _save_json(self, data, path):
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, default=str)

    def _write_manifest(self):
        try:
            self._save_json({'assets': self.entries},
                            os.path.join(self.folder, self.manifest_name))
        except OSError as e:
            raise ResourceError(f"Cannot write temporary manifest: {e}") from e
