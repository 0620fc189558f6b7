"""Terrain Package.

Synthetic test terrains and heightmap file loading.
"""
