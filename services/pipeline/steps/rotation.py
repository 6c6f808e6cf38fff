"""
Image rotation for strip normalization.

Rotates about the image center onto an enlarged canvas so no source pixel is
clipped. Exposed areas are filled with white.
"""

import cv2
import numpy as np
import logging
from typing import Tuple

logger = logging.getLogger(__name__)

WHITE = (255, 255, 255)


def _expanded_size(width: int, height: int, angle: float) -> Tuple[int, int]:
    angle_rad = np.radians(angle)
    cos_a = abs(np.cos(angle_rad))
    sin_a = abs(np.sin(angle_rad))

    # Round away float noise (cos(90) is ~6e-17, not 0) before ceil
    new_w = int(np.ceil(round(width * cos_a + height * sin_a, 6)))
    new_h = int(np.ceil(round(width * sin_a + height * cos_a, 6)))
    return max(new_w, 1), max(new_h, 1)


def get_rotation_matrix(image_size: Tuple[int, int], angle: float) -> Tuple[np.ndarray, Tuple[int, int]]:
    """
    Affine matrix rotating an image of `image_size` by `angle` degrees.

    Args:
        image_size: Source size as (width, height)
        angle: Rotation in degrees (positive turns +x toward +y)

    Returns:
        Tuple of (2x3 float64 matrix, (new_width, new_height))
    """
    w, h = image_size
    center = (w / 2, h / 2)
    new_w, new_h = _expanded_size(w, h, angle)

    # getRotationMatrix2D treats positive angles as the opposite turn direction
    rotation_matrix = cv2.getRotationMatrix2D(center, -angle, 1.0)

    # Move the source center to the center of the enlarged canvas
    rotation_matrix[0, 2] += (new_w - w) / 2
    rotation_matrix[1, 2] += (new_h - h) / 2

    return rotation_matrix, (new_w, new_h)


def rotate_image(
    image: np.ndarray,
    angle: float,
    border_value=WHITE,
    interpolation: int = cv2.INTER_LINEAR,
    min_rotation_threshold: float = 0.01
) -> np.ndarray:
    """
    Rotate an image about its center, expanding the canvas to fit.

    Args:
        image: Input image (BGR or single channel)
        angle: Rotation in degrees (positive turns +x toward +y)
        border_value: Fill for pixels outside the source (default white)
        interpolation: OpenCV interpolation flag (default bilinear)
        min_rotation_threshold: Rotations smaller than this return a copy

    Returns:
        New rotated image; the input is not modified
    """
    if abs(angle) < min_rotation_threshold:
        return image.copy()

    h, w = image.shape[:2]
    rotation_matrix, (new_w, new_h) = get_rotation_matrix((w, h), angle)

    rotated = cv2.warpAffine(
        image,
        rotation_matrix,
        (new_w, new_h),
        flags=interpolation,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=border_value
    )

    logger.debug(f'Applied rotation: {angle:.2f}°, original: {w}x{h}, rotated: {new_w}x{new_h}')
    return rotated


def rotate_coverage_mask(
    image_size: Tuple[int, int],
    angle: float,
    min_rotation_threshold: float = 0.01
) -> np.ndarray:
    """
    Mask of the rotated canvas marking pixels sampled from the source.

    Args:
        image_size: Source size as (width, height)
        angle: Rotation in degrees, same as passed to rotate_image()

    Returns:
        uint8 mask with 255 for source pixels and 0 for fill
    """
    w, h = image_size
    mask = np.full((h, w), 255, dtype=np.uint8)
    return rotate_image(
        mask,
        angle,
        border_value=0,
        interpolation=cv2.INTER_NEAREST,
        min_rotation_threshold=min_rotation_threshold
    )
