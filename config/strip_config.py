"""
Strip normalization configuration.

Values are read from the environment once at import time and are treated as
read-only afterwards.
"""

import os
from typing import Dict, Optional

# Gaussian blur kernel size applied before thresholding (must be odd)
BLUR_KERNEL_SIZE: int = int(os.getenv('STRIP_BLUR_KERNEL_SIZE', '5'))

# Canny edge detection thresholds
CANNY_LOW: int = int(os.getenv('STRIP_CANNY_LOW', '50'))
CANNY_HIGH: int = int(os.getenv('STRIP_CANNY_HIGH', '150'))

# Edge dilation (closes small gaps in the strip outline)
DILATE_KERNEL_SIZE: int = int(os.getenv('STRIP_DILATE_KERNEL_SIZE', '3'))
DILATE_ITERATIONS: int = int(os.getenv('STRIP_DILATE_ITERATIONS', '2'))

# Contours smaller than this (px^2) are treated as speckle noise
MIN_CONTOUR_AREA: float = float(os.getenv('STRIP_MIN_CONTOUR_AREA', '100'))

# Aspect ratio cap used in candidate scoring (area * min(aspect, cap))
ASPECT_RATIO_CAP: float = float(os.getenv('STRIP_ASPECT_RATIO_CAP', '10.0'))

# Padding around the final crop (pixels)
CROP_PADDING: int = int(os.getenv('STRIP_CROP_PADDING', '5'))

# Rotations smaller than this (degrees) are skipped
MIN_ROTATION_THRESHOLD: float = float(os.getenv('STRIP_MIN_ROTATION_THRESHOLD', '0.01'))

# Edges closer than this to rotation fill are ignored during re-detection
MASK_EDGE_MARGIN: int = int(os.getenv('STRIP_MASK_EDGE_MARGIN', '5'))


def get_strip_config(overrides: Optional[Dict] = None) -> Dict:
    """
    Get strip normalization configuration dictionary.

    Args:
        overrides: Optional values replacing the environment defaults

    Returns:
        Dictionary with strip normalization parameters
    """
    config = {
        'blur_kernel_size': BLUR_KERNEL_SIZE,
        'canny_low': CANNY_LOW,
        'canny_high': CANNY_HIGH,
        'dilate_kernel_size': DILATE_KERNEL_SIZE,
        'dilate_iterations': DILATE_ITERATIONS,
        'min_contour_area': MIN_CONTOUR_AREA,
        'aspect_ratio_cap': ASPECT_RATIO_CAP,
        'crop_padding': CROP_PADDING,
        'min_rotation_threshold': MIN_ROTATION_THRESHOLD,
        'mask_edge_margin': MASK_EDGE_MARGIN
    }
    if overrides:
        config.update(overrides)
    return config


def validate_strip_config(config: Dict) -> None:
    """
    Validate a strip configuration dictionary.

    Raises:
        ValueError: If any parameter is out of range
    """
    blur = config['blur_kernel_size']
    if blur <= 0 or blur % 2 == 0:
        raise ValueError(f'blur_kernel_size must be a positive odd integer, got {blur}')

    if config['canny_low'] < 0 or config['canny_low'] > config['canny_high']:
        raise ValueError(
            f"canny thresholds must satisfy 0 <= low <= high, "
            f"got low={config['canny_low']} high={config['canny_high']}"
        )

    if config['dilate_kernel_size'] <= 0:
        raise ValueError(f"dilate_kernel_size must be positive, got {config['dilate_kernel_size']}")
    if config['dilate_iterations'] < 0:
        raise ValueError(f"dilate_iterations must be >= 0, got {config['dilate_iterations']}")

    if config['min_contour_area'] < 0:
        raise ValueError(f"min_contour_area must be >= 0, got {config['min_contour_area']}")
    if config['aspect_ratio_cap'] < 1.0:
        raise ValueError(f"aspect_ratio_cap must be >= 1, got {config['aspect_ratio_cap']}")

    if config['crop_padding'] < 0:
        raise ValueError(f"crop_padding must be >= 0, got {config['crop_padding']}")
    if config['mask_edge_margin'] < 0:
        raise ValueError(f"mask_edge_margin must be >= 0, got {config['mask_edge_margin']}")
