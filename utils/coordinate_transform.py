"""
Coordinate transformation utilities for the strip normalization service.
Maps points and oriented rectangles between original and rotated image space.
"""

import cv2
import numpy as np
import logging

from services.interfaces import OrientedRect

logger = logging.getLogger(__name__)


def transform_points(points: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """
    Apply a 2x3 affine matrix to points.

    Args:
        points: (N, 2) array of x, y coordinates
        matrix: 2x3 affine matrix (e.g. from get_rotation_matrix)

    Returns:
        (N, 2) float32 array of transformed points
    """
    pts = np.asarray(points, dtype=np.float32).reshape(-1, 1, 2)
    transformed = cv2.transform(pts, matrix)
    return transformed.reshape(-1, 2)


def transform_rect(rect: OrientedRect, matrix: np.ndarray) -> OrientedRect:
    """
    Map an oriented rectangle through an affine rotation matrix.

    The corners are transformed and a new minimum-area rectangle is fitted,
    so the result follows the same angle convention as a fresh detection.

    Args:
        rect: Rectangle in source image coordinates
        matrix: 2x3 affine matrix

    Returns:
        Rectangle in destination image coordinates
    """
    corners = transform_points(rect.corners(), matrix)
    transformed = OrientedRect.from_box(cv2.minAreaRect(corners))
    logger.debug(
        f'Transformed rect: center=({transformed.center[0]:.1f}, {transformed.center[1]:.1f}), '
        f'size={transformed.width:.1f}x{transformed.height:.1f}, angle={transformed.angle:.2f}°'
    )
    return transformed
