"""
Unit tests for coordinate transforms between original and rotated images.
"""

import numpy as np

from conftest import make_strip_image
from services.interfaces import OrientedRect
from services.pipeline.steps.orientation import angle_difference, solve_rotation
from services.pipeline.steps.rotation import get_rotation_matrix, rotate_coverage_mask, rotate_image
from services.pipeline.steps.strip_locator import StripLocator
from utils.coordinate_transform import transform_points, transform_rect


IDENTITY = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])


class TestTransformPoints:
    """Test cases for transform_points."""

    def test_identity(self):
        points = np.array([[0.0, 0.0], [10.5, 20.25], [300.0, 5.0]])
        assert np.allclose(transform_points(points, IDENTITY), points)

    def test_translation(self):
        matrix = np.array([[1.0, 0.0, 5.0], [0.0, 1.0, -3.0]])
        result = transform_points(np.array([[1.0, 1.0]]), matrix)
        assert np.allclose(result, [[6.0, -2.0]])


class TestTransformRect:
    """Test cases for transform_rect."""

    def test_identity_keeps_geometry(self):
        rect = OrientedRect(center=(50.0, 60.0), size=(20.0, 100.0), angle=30.0)
        result = transform_rect(rect, IDENTITY)

        assert abs(result.center[0] - 50.0) < 0.01
        assert abs(result.center[1] - 60.0) < 0.01
        assert abs(result.long_side - 100.0) < 0.05
        assert abs(angle_difference(result.long_axis_angle, rect.long_axis_angle)) < 0.01

    def test_solved_rotation_makes_rect_vertical(self):
        rect = OrientedRect(center=(200.0, 200.0), size=(20.0, 200.0), angle=30.0)
        angle = solve_rotation(rect)
        matrix, (new_w, new_h) = get_rotation_matrix((400, 400), angle)

        result = transform_rect(rect, matrix)

        assert abs(angle_difference(result.long_axis_angle, 90.0)) < 0.01
        assert abs(result.center[0] - new_w / 2) < 0.5
        assert abs(result.center[1] - new_h / 2) < 0.5

    def test_matches_relocated_rect(self):
        image = make_strip_image(angle=30.0)
        locator = StripLocator()
        initial = locator.locate(image)
        angle = solve_rotation(initial.rect)

        rotated = rotate_image(image, angle)
        mask = rotate_coverage_mask((400, 400), angle)
        matrix, _ = get_rotation_matrix((400, 400), angle)

        relocated = locator.locate(rotated, valid_mask=mask).rect
        transformed = transform_rect(initial.rect, matrix)

        assert abs(relocated.center[0] - transformed.center[0]) < 2.0
        assert abs(relocated.center[1] - transformed.center[1]) < 2.0
        assert abs(relocated.long_side - transformed.long_side) < 3.0
        assert abs(relocated.short_side - transformed.short_side) < 3.0
        assert abs(angle_difference(relocated.long_axis_angle, transformed.long_axis_angle)) < 1.0
