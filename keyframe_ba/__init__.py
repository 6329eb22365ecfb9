"""Geometry, ray triangulation and landmark selection schemes for keyframe-based bundle adjustment."""

__version__ = "0.1.0"