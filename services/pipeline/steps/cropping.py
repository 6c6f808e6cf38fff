"""
Crop solving and extraction for strip normalization.
"""

import logging
import math
from typing import Tuple

import numpy as np

from services.interfaces import AxisRect, OrientedRect

logger = logging.getLogger(__name__)


def solve_crop(rect: OrientedRect, image_size: Tuple[int, int], padding: int = 5) -> AxisRect:
    """
    Axis-aligned crop around an oriented rectangle.

    Takes the bounding box of the rectangle's corners (floor/ceil so edge
    pixels are kept), expands it by `padding` on every side and clamps it to
    the image. The result may be empty for a degenerate rectangle; callers
    substitute AxisRect.full() in that case.

    Args:
        rect: Oriented rectangle in the coordinates of the target image
        image_size: Target image size as (width, height)
        padding: Pixels added on every side

    Returns:
        AxisRect contained in [0, width] x [0, height]
    """
    corners = rect.corners()
    min_x, min_y = corners.min(axis=0)
    max_x, max_y = corners.max(axis=0)

    return AxisRect.from_bounds(
        left=math.floor(min_x) - padding,
        top=math.floor(min_y) - padding,
        right=math.ceil(max_x) + padding,
        bottom=math.ceil(max_y) + padding,
        image_size=image_size
    )


def crop_image(image: np.ndarray, crop_rect: AxisRect) -> np.ndarray:
    """
    Extract a sub-image.

    Args:
        image: Source image
        crop_rect: Rectangle to extract (re-clamped to the image)

    Returns:
        Copy of the cropped region, or a copy of the whole image if the
        rectangle is empty
    """
    h, w = image.shape[:2]
    crop_rect = AxisRect.from_bounds(crop_rect.x, crop_rect.y, crop_rect.right, crop_rect.bottom, (w, h))

    if crop_rect.is_empty:
        logger.warning('Invalid crop rectangle, returning original image')
        return image.copy()

    return image[crop_rect.y:crop_rect.bottom, crop_rect.x:crop_rect.right].copy()
