"""Scene graph node classes for the avatar hierarchy.

Provides the in-memory scene graph the conversion pipeline mutates:
- SceneNode: named transform node, parent owns its children
- Behavior: data attached to a node (descriptor, dynamics, renderer...)
- GenericBehavior: behavior with an arbitrary type tag and payload dict

Assets referenced by behaviors (meshes, materials, animation clips) are
shared, not owned: cloning a node tree copies nodes and behaviors but keeps
pointing at the same asset objects, the way instantiating a prefab does.
Asset classes opt into this by returning themselves from __deepcopy__.
"""

import copy

from mathutils import Vector


class SceneNode:
    """A transform node in the avatar hierarchy.

    Positions are local offsets from the parent (translation only; the
    avatars we convert are authored in a shared avatar space so rotation
    and scale never enter the calculations below).

    Attributes:
        name: node name, used to re-resolve bones after normalization
        active: the node's OWN active flag (not the effective one)
        position: mathutils.Vector local offset from parent
        parent: parent SceneNode or None for a root
        children: ordered list of child SceneNodes
        behaviors: ordered list of attached Behavior objects
        destroyed: True once destroy() has run on this node or an ancestor
    """

    def __init__(self, name, position=None, active=True, parent=None):
        self.name = name
        self.active = active
        self.position = Vector(position) if position is not None else Vector((0.0, 0.0, 0.0))
        self.parent = None
        self.children = []
        self.behaviors = []
        self.destroyed = False
        if parent is not None:
            parent.add_child(self)

    def __repr__(self):
        state = " destroyed" if self.destroyed else ""
        return f"<SceneNode {self.name!r}{state}>"

    # ---------------------------------------------------------------------
    # Hierarchy
    # ---------------------------------------------------------------------

    def add_child(self, child, position=None, active=True):
        """Attach a child node, creating it when given a name.

        Args:
            child: SceneNode to re-parent, or a str name for a new node.
            position: local position for a newly created node.
            active: active flag for a newly created node.

        Returns:
            The attached child SceneNode.
        """
        if isinstance(child, str):
            child = SceneNode(child, position=position, active=active)
        if child.parent is not None:
            child.parent.children.remove(child)
        child.parent = self
        self.children.append(child)
        return child

    def iter_tree(self, include_inactive=True):
        """Yield this node and all descendants in depth-first pre-order.

        With include_inactive=False, inactive nodes and their whole subtree
        are skipped (the node is not active in the hierarchy).
        """
        if not include_inactive and not self.active:
            return
        yield self
        for child in list(self.children):
            yield from child.iter_tree(include_inactive)

    def find(self, name):
        """Return the first node named `name` in this subtree, or None."""
        for node in self.iter_tree():
            if node.name == name:
                return node
        return None

    def find_child(self, name):
        """Return the direct child named `name`, or None."""
        for child in self.children:
            if child.name == name:
                return child
        return None

    def is_descendant_of(self, ancestor):
        node = self
        while node is not None:
            if node is ancestor:
                return True
            node = node.parent
        return False

    def relative_path(self, root):
        """Slash-separated path from `root` (exclusive) down to this node."""
        names = []
        node = self
        while node is not None and node is not root:
            names.append(node.name)
            node = node.parent
        return "/".join(reversed(names))

    @property
    def world_position(self):
        """Accumulated position of this node in avatar space."""
        result = self.position.copy()
        node = self.parent
        while node is not None:
            result += node.position
            node = node.parent
        return result

    # ---------------------------------------------------------------------
    # Behaviors
    # ---------------------------------------------------------------------

    def add_behavior(self, behavior):
        """Attach a behavior to this node and return it."""
        if behavior.node is not None:
            behavior.node.behaviors.remove(behavior)
        behavior.node = self
        self.behaviors.append(behavior)
        return behavior

    def remove_behavior(self, behavior):
        if behavior in self.behaviors:
            self.behaviors.remove(behavior)
        behavior.node = None

    def get_behavior(self, behavior_type):
        """First behavior on this node matching a class or type tag."""
        for behavior in self.behaviors:
            if _matches(behavior, behavior_type):
                return behavior
        return None

    def get_behaviors(self, behavior_type=None):
        return [b for b in self.behaviors if _matches(b, behavior_type)]

    def get_behaviors_in_children(self, behavior_type=None, include_inactive=False):
        """All behaviors in this subtree matching a class or type tag.

        Args:
            behavior_type: Behavior subclass, type tag string, or None for all.
            include_inactive: also search inactive subtrees.

        Returns:
            list of Behavior in traversal order.
        """
        found = []
        for node in self.iter_tree(include_inactive):
            for behavior in node.behaviors:
                if _matches(behavior, behavior_type):
                    found.append(behavior)
        return found

    def get_behavior_in_children(self, behavior_type, include_inactive=False):
        for node in self.iter_tree(include_inactive):
            for behavior in node.behaviors:
                if _matches(behavior, behavior_type):
                    return behavior
        return None

    # ---------------------------------------------------------------------
    # Lifetime
    # ---------------------------------------------------------------------

    def destroy(self):
        """Destroy this node and its entire subtree.

        Detaches the node from its parent, marks every node in the subtree
        destroyed and detaches every behavior. Destroying an already
        destroyed node is a no-op.
        """
        if self.destroyed:
            return
        if self.parent is not None and self in self.parent.children:
            self.parent.children.remove(self)
        for node in list(self.iter_tree()):
            node.destroyed = True
            for behavior in node.behaviors:
                behavior.node = None
            node.behaviors = []
        for node in list(self.iter_tree()):
            node.children = []
        self.parent = None

    def clone(self, name=None):
        """Deep-copy this subtree into a new, unparented root.

        Node references held by behaviors inside the subtree are remapped
        to the copies; shared assets stay shared.

        Args:
            name: name of the new root. Defaults to "<name>(Clone)".
        """
        memo = {}
        if self.parent is not None:
            memo[id(self.parent)] = None
        twin = copy.deepcopy(self, memo)
        twin.name = name if name is not None else f"{self.name}(Clone)"
        return twin


class Behavior:
    """Data attached to a SceneNode.

    Subclasses set `type_tag` to the component name of the platform that
    authored it; capability detection matches on these tags.
    """

    type_tag = "Behavior"

    def __init__(self, enabled=True):
        self.enabled = enabled
        self.node = None

    def __repr__(self):
        owner = self.node.name if self.node is not None else None
        return f"<{type(self).__name__} on {owner!r}>"

    @property
    def destroyed(self):
        return self.node is None

    def destroy(self):
        """Detach from the owning node. No-op when already detached."""
        if self.node is not None:
            self.node.remove_behavior(self)


class GenericBehavior(Behavior):
    """Behavior the pipeline does not interpret (custom scripts etc.)."""

    def __init__(self, type_tag, payload=None, enabled=True):
        super().__init__(enabled=enabled)
        self.type_tag = type_tag
        self.payload = dict(payload or {})


def _matches(behavior, behavior_type):
    if behavior_type is None:
        return True
    if isinstance(behavior_type, str):
        return behavior.type_tag == behavior_type
    return isinstance(behavior, behavior_type)
