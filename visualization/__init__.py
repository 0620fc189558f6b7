"""Visualization Package.

Matplotlib figures for shadow maps and shaded relief.
"""
