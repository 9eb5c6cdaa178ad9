"""Strip hidden objects and disabled behaviors from a cloned avatar."""

import logging

_log = logging.getLogger("vrc2vrm.sanitize")


def remove_inactive_objects_and_disabled_components(root):
    """Remove inactive nodes, then disabled behaviors.

    A node whose own active flag is False is destroyed with its entire
    subtree, active descendants included. Afterwards every remaining
    behavior with enabled=False is removed; its node stays.

    References destroyed earlier in the pass are skipped.

    Args:
        root: SceneNode to sanitize in place.
    """
    removed_nodes = 0
    for node in list(root.iter_tree()):
        if node is None or node.destroyed or node.active:
            continue
        _log.debug("Removing inactive node '%s'", node.name)
        node.destroy()
        removed_nodes += 1

    removed_behaviors = 0
    for behavior in root.get_behaviors_in_children(include_inactive=True):
        if behavior is None or behavior.destroyed or behavior.enabled:
            continue
        _log.debug("Removing disabled %s on '%s'", behavior.type_tag, behavior.node.name)
        behavior.destroy()
        removed_behaviors += 1

    _log.info("Sanitized '%s': removed %d inactive node(s), %d disabled behavior(s)",
              root.name, removed_nodes, removed_behaviors)
