"""Default destination exporter: JSON description of the converted rig.

Writing a binary .vrm is the job of a real VRM writer the host plugs in
(VRMConversion(exporter=...)). This default serializes the same
information the VRM 0.x extension carries, which is enough to inspect a
conversion or feed a downstream glTF writer:

    {
      "nodes":              [{name, parent, position}],
      "meshes":             [{name, node, vertexCount, submeshes,
                              materials, bones, blendShapes}],
      "materials":          [{name, shader, renderQueue}],
      "extensions": {"VRM": {meta, humanoid, firstPerson, blendShapeMaster,
                             secondaryAnimation}}
    }

Node references are indices into "nodes" (pre-order from the root). A
mesh's "materials" has one entry per material slot; an empty slot is -1.
"""

import dataclasses
import json
import logging

from ..actor.sg_skeleton import Animator
from ..actor.vrm_components import (
    VRMBlendShapeProxy, VRMFirstPerson, VRMLookAtBoneApplier, VRMMeta,
    VRMSpringBone, VRMSpringBoneColliderGroup,
)
from ..scene_graph.sg_geometry import SkinnedMeshRenderer

_log = logging.getLogger("vrc2vrm.export")


def _vec(v):
    return {'x': round(float(v[0]), 6), 'y': round(float(v[1]), 6), 'z': round(float(v[2]), 6)}


def _mapper(mapper):
    return {
        'curve': [0, 0, 0, 1, 1, 1, 1, 0],
        'xRange': mapper.curve_x_range_degree,
        'yRange': mapper.curve_y_range_degree,
    }


def build_vrm_document(root):
    """Collect the destination rig under `root` into a JSON-ready dict."""
    nodes = list(root.iter_tree())
    index = {id(node): i for i, node in enumerate(nodes)}

    def node_index(node):
        if node is None:
            return -1
        return index.get(id(node), -1)

    doc_nodes = [{
        'name': node.name,
        'parent': node_index(node.parent) if node is not root else -1,
        'position': _vec(node.position),
    } for node in nodes]

    # Materials (identity dedup, first-seen order)
    materials = []

    def material_index(material):
        for i, known in enumerate(materials):
            if known is material:
                return i
        materials.append(material)
        return len(materials) - 1

    meshes = []
    for renderer in root.get_behaviors_in_children(SkinnedMeshRenderer):
        mesh = renderer.mesh
        if mesh is None:
            continue
        meshes.append({
            'name': mesh.name,
            'node': node_index(renderer.node),
            'vertexCount': mesh.vertex_count,
            'submeshes': [int(len(s) // 3) for s in mesh.submeshes],
            'materials': [material_index(m) if m is not None else -1
                          for m in renderer.materials],
            'bones': [node_index(b) for b in renderer.bones],
            'blendShapes': mesh.shape_key_names,
        })

    vrm = {}

    vrm_meta = root.get_behavior(VRMMeta)
    if vrm_meta is not None and vrm_meta.meta is not None:
        vrm['meta'] = dataclasses.asdict(vrm_meta.meta)

    animator = root.get_behavior(Animator)
    if animator is not None:
        vrm['humanoid'] = {'humanBones': [
            {'bone': bone.value, 'node': node_index(node)}
            for bone, node in animator.skeleton.bones.items()
            if node is not None and not node.destroyed
        ]}

    first_person = root.get_behavior(VRMFirstPerson)
    if first_person is not None:
        fp = {
            'firstPersonBone': node_index(first_person.first_person_bone),
            'firstPersonBoneOffset': _vec(first_person.first_person_offset),
            'meshAnnotations': [
                {'mesh': node_index(entry.renderer.node), 'firstPersonFlag': entry.flag.value}
                for entry in first_person.renderers
                if entry.renderer.node is not None
            ],
            'lookAtTypeName': 'Bone',
        }
        look_at = root.get_behavior(VRMLookAtBoneApplier)
        if look_at is not None:
            fp['lookAtHorizontalOuter'] = _mapper(look_at.look_left)
            fp['lookAtHorizontalInner'] = _mapper(look_at.look_right)
            fp['lookAtVerticalDown'] = _mapper(look_at.look_down)
            fp['lookAtVerticalUp'] = _mapper(look_at.look_up)
        vrm['firstPerson'] = fp

    proxy = root.get_behavior(VRMBlendShapeProxy)
    if proxy is not None:
        vrm['blendShapeMaster'] = {'blendShapeGroups': [
            {
                'name': clip.name,
                'presetName': clip.preset,
                'binds': [{'mesh': b.relative_path, 'index': b.index, 'weight': b.weight}
                          for b in clip.bindings],
            }
            for clip in proxy.clips
        ]}

    groups = root.get_behaviors_in_children(VRMSpringBoneColliderGroup)
    group_index = {id(g): i for i, g in enumerate(groups)}
    vrm['secondaryAnimation'] = {
        'colliderGroups': [{
            'node': node_index(group.node),
            'colliders': [{
                'shape': c.shape,
                'offset': _vec(c.offset),
                'radius': c.radius,
                'tail': _vec(c.tail) if c.tail is not None else None,
            } for c in group.colliders],
        } for group in groups],
        'boneGroups': [{
            'comment': spring.comment,
            'stiffiness': spring.stiffness_force,
            'dragForce': spring.drag_force,
            'gravityPower': spring.gravity_power,
            'gravityDir': _vec(spring.gravity_dir),
            'hitRadius': spring.hit_radius,
            'bones': [node_index(b) for b in spring.bones],
            'colliderGroups': [group_index[id(g)] for g in spring.collider_groups
                               if id(g) in group_index],
        } for spring in root.get_behaviors_in_children(VRMSpringBone)],
    }

    return {
        'nodes': doc_nodes,
        'meshes': meshes,
        'materials': [{'name': m.name, 'shader': m.shader, 'renderQueue': m.render_queue}
                      for m in materials],
        'extensions': {'VRM': vrm},
    }


def export_vrm_json(root):
    """Exporter callable: root SceneNode -> UTF-8 JSON bytes."""
    document = build_vrm_document(root)
    data = json.dumps(document, indent=2, default=str).encode('utf-8')
    _log.debug("Serialized '%s': %d node(s), %d mesh(es), %d bytes",
               root.name, len(document['nodes']), len(document['meshes']), len(data))
    return data
