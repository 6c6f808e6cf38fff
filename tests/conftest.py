"""
Shared test fixtures and configuration.
"""

import os

# Must be set before app.py is imported by any test module
os.environ.setdefault('RATE_LIMIT_ENABLED', 'false')

import cv2
import numpy as np
import pytest


def make_strip_image(
    image_size=(400, 400),
    strip_size=(20, 200),
    angle=30.0,
    center=None,
    background=0,
    foreground=255
) -> np.ndarray:
    """
    Synthetic BGR image with one filled rectangle.

    The rectangle is drawn from cv2.boxPoints((center, strip_size, angle)),
    so with the default 20x200 size its long axis lies at angle + 90 degrees.
    """
    width, height = image_size
    image = np.full((height, width, 3), background, dtype=np.uint8)
    if center is None:
        center = (width / 2, height / 2)
    box = cv2.boxPoints((center, strip_size, angle))
    cv2.fillPoly(image, [np.round(box).astype(np.int32)], (foreground, foreground, foreground))
    return image


def make_smooth_image(width=300, height=200) -> np.ndarray:
    """Smooth color gradient, suited for interpolation round trips."""
    xs = np.linspace(0, 255, width, dtype=np.float32)
    ys = np.linspace(0, 255, height, dtype=np.float32)
    grid_x, grid_y = np.meshgrid(xs, ys)
    image = np.dstack([grid_x, grid_y, (grid_x + grid_y) / 2])
    return image.astype(np.uint8)


def encode(image: np.ndarray, ext: str = '.png') -> bytes:
    success, buffer = cv2.imencode(ext, image)
    assert success
    return buffer.tobytes()


@pytest.fixture
def strip_image():
    """400x400 black image with a white 20x200 strip whose long axis is at -60 degrees."""
    return make_strip_image()


@pytest.fixture
def strip_png(strip_image):
    return encode(strip_image)
