"""
Rotation solving for strip normalization.

Computes the smallest rotation that makes an oriented rectangle's long axis
vertical. Top and bottom are not distinguished, so a 180 degree rotation is
equivalent to no rotation.
"""

from services.interfaces import OrientedRect


def normalize_angle(angle: float, low: float, high: float, period: float = 180.0) -> float:
    """
    Fold an angle into [low, high] by adding or subtracting `period`.

    The range must span at least one period.
    """
    while angle > high:
        angle -= period
    while angle < low:
        angle += period
    return angle


def angle_difference(a: float, b: float, period: float = 180.0) -> float:
    """Signed minimal difference a - b modulo `period`, in [-period/2, period/2)."""
    half = period / 2.0
    return (a - b + half) % period - half


def solve_rotation(rect: OrientedRect) -> float:
    """
    Rotation (degrees) that brings the rectangle's long axis to vertical.

    The long axis is the width edge when width >= height, otherwise the
    perpendicular edge. The required rotation is 90 - long_axis_angle,
    folded into [-90, 90] so the smallest turn is chosen.

    Args:
        rect: Oriented rectangle with positive width and height

    Returns:
        Rotation angle in [-90, 90] (positive turns +x toward +y)
    """
    rotation = 90.0 - rect.long_axis_angle
    return normalize_angle(rotation, -90.0, 90.0)
