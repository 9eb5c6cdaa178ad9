"""VRChat avatar to VRM converter.

Takes an avatar hierarchy authored for VRChat (SDK2 or SDK3 descriptor,
PhysBone or DynamicBone secondary motion) and produces a VRM avatar rig.

    from vrchat_to_vrm import convert
    convert("avatar.vrm", avatar_root, meta, preset_bindings)

Set VRC2VRM_DEBUG=1 to log every pipeline step.
"""

__version__ = "0.3.0"

import logging
import os

from .exporter.convert_vrm import ConversionState, VRMConversion, convert
from .profiles import ConversionSettings, ShaderConfig
from .utils.errors import ConfigurationError, ConversionFailure, ConverterError, ResourceError

if os.environ.get("VRC2VRM_DEBUG") == "1":
    logging.getLogger("vrc2vrm").setLevel(logging.DEBUG)

__all__ = [
    "__version__",
    "convert",
    "VRMConversion",
    "ConversionState",
    "ConversionSettings",
    "ShaderConfig",
    "ConverterError",
    "ConfigurationError",
    "ResourceError",
    "ConversionFailure",
]
