"""Shadow Engine Package.

Ray-marched terrain shadows, Lambertian shading, and cache-aware grid
evaluation for elevation matrices.
"""

from shadow_engine.errors import InvalidInputError, ShadeError, WorkerFailureError
from shadow_engine.shading import RayShader, ShadowResult, ray_shade

__all__ = [
    "InvalidInputError",
    "RayShader",
    "ShadeError",
    "ShadowResult",
    "WorkerFailureError",
    "ray_shade",
]
