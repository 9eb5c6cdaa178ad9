"""Material assets.

A Material is a shader reference (by shader name), a render-queue value
and a free-form parameter set (colors, texture names, keywords...). Shader
compilation is the host's business; here a shader is only its name.

Materials have identity semantics: two materials with identical fields are
still different materials, which is what the shader remapper's memo table
relies on.
"""

import copy


# Render queue ranges (Unity convention)
RENDER_QUEUE_BACKGROUND = 1000
RENDER_QUEUE_GEOMETRY = 2000
RENDER_QUEUE_ALPHA_TEST = 2450
RENDER_QUEUE_TRANSPARENT = 3000
RENDER_QUEUE_OVERLAY = 4000


class Material:
    """Shader name + render queue + parameters.

    Attributes:
        name: material name
        shader: shader identifier, e.g. "Standard" or "lilToon"
        render_queue: int draw order
        properties: dict of shader parameters
    """

    def __init__(self, name, shader, render_queue=RENDER_QUEUE_GEOMETRY, properties=None):
        self.name = name
        self.shader = shader
        self.render_queue = render_queue
        self.properties = dict(properties or {})

    def __repr__(self):
        return f"<Material {self.name!r} shader={self.shader!r} queue={self.render_queue}>"

    def __deepcopy__(self, memo):
        return self

    def duplicate(self):
        """New Material asset with a copy of this one's state."""
        return Material(self.name, self.shader, self.render_queue,
                        copy.deepcopy(self.properties))
