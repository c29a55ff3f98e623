"""Expand hierarchical transformation rules into colored 3D meshes."""

__version__ = "0.1.0"
