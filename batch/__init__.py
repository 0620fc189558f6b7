"""Batch Package.

Single-job runner and result persistence for the shadow engine.
"""
