"""
Pipeline step functions and services.

Steps:
- StripLocator: Finds the strip's oriented rectangle
- solve_rotation: Minimal rotation making the strip vertical
- rotate_image: Rotation onto an enlarged, white-filled canvas
- solve_crop / crop_image: Padded axis-aligned crop
"""

from services.pipeline.steps.strip_locator import StripLocator
from services.pipeline.steps.orientation import solve_rotation
from services.pipeline.steps.rotation import rotate_image
from services.pipeline.steps.cropping import solve_crop, crop_image

__all__ = [
    'StripLocator',
    'solve_rotation',
    'rotate_image',
    'solve_crop',
    'crop_image'
]
