"""Exporter module: mesh combination, material remapping, temporary storage
and the VRChat -> VRM conversion pipeline.
"""
