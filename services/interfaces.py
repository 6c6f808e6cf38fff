"""
Service interfaces and type definitions for the strip normalization service.

Geometry values passed between pipeline steps are immutable dataclasses;
dictionaries returned to callers are described with TypedDicts.

Angle convention: degrees in image pixel coordinates (x right, y down).
A positive angle turns the +x axis toward +y. This matches the angle that
cv2.minAreaRect reports for the rectangle's width edge.
"""

from dataclasses import dataclass
from typing import Dict, Literal, Optional, Tuple, TypedDict

import cv2
import numpy as np


DetectionStatus = Literal["detected", "fallback"]

# Fallback reasons that mean "nothing usable was found" (full-image rectangle)
FULL_IMAGE_FALLBACK_REASONS = ("no_contours", "image_too_small", "degenerate_rect", "empty_mask")


@dataclass(frozen=True)
class OrientedRect:
    """
    Minimum-area rectangle (center, size, angle).

    Width and height are unordered: width is the edge at `angle` from the
    x axis, height is the perpendicular edge. Either may be the longer one.
    """
    center: Tuple[float, float]
    size: Tuple[float, float]
    angle: float

    @classmethod
    def from_box(cls, box) -> 'OrientedRect':
        """Build from an OpenCV RotatedRect tuple ((cx, cy), (w, h), angle)."""
        (cx, cy), (w, h), angle = box
        return cls(center=(float(cx), float(cy)), size=(float(w), float(h)), angle=float(angle))

    @classmethod
    def full_image(cls, width: int, height: int) -> 'OrientedRect':
        """Rectangle spanning a whole width x height image at angle 0."""
        return cls(center=(width / 2.0, height / 2.0), size=(float(width), float(height)), angle=0.0)

    def to_box(self) -> Tuple[Tuple[float, float], Tuple[float, float], float]:
        return (self.center, self.size, self.angle)

    @property
    def width(self) -> float:
        return self.size[0]

    @property
    def height(self) -> float:
        return self.size[1]

    @property
    def long_side(self) -> float:
        return max(self.size)

    @property
    def short_side(self) -> float:
        return min(self.size)

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def is_degenerate(self) -> bool:
        return self.width <= 0 or self.height <= 0

    @property
    def aspect_ratio(self) -> float:
        """Long side / short side (inf for a zero-width rectangle)."""
        if self.short_side <= 0:
            return float('inf')
        return self.long_side / self.short_side

    @property
    def long_axis_angle(self) -> float:
        """Angle of the long axis from the x axis, normalized into (-180, 180]."""
        angle = self.angle if self.width >= self.height else self.angle + 90.0
        while angle > 180.0:
            angle -= 360.0
        while angle <= -180.0:
            angle += 360.0
        return angle

    def corners(self) -> np.ndarray:
        """Four corner points as a (4, 2) float32 array."""
        return cv2.boxPoints(self.to_box())

    def to_dict(self) -> Dict:
        return {
            'center': {'x': self.center[0], 'y': self.center[1]},
            'size': {'width': self.width, 'height': self.height},
            'angle': self.angle,
            'aspect_ratio': self.aspect_ratio if not self.is_degenerate else None
        }


@dataclass(frozen=True)
class AxisRect:
    """
    Axis-aligned integer rectangle.

    Use from_bounds() or full() to build one; both clamp to the parent image
    so the rectangle is always contained in it.
    """
    x: int
    y: int
    width: int
    height: int

    @classmethod
    def from_bounds(
        cls,
        left: int,
        top: int,
        right: int,
        bottom: int,
        image_size: Tuple[int, int]
    ) -> 'AxisRect':
        """
        Build from edge coordinates, clamping to [0, W] x [0, H].

        Args:
            left, top, right, bottom: Edge coordinates (right/bottom exclusive)
            image_size: Parent image size as (width, height)
        """
        img_w, img_h = image_size
        x1 = int(min(max(left, 0), img_w))
        y1 = int(min(max(top, 0), img_h))
        x2 = int(min(max(right, 0), img_w))
        y2 = int(min(max(bottom, 0), img_h))
        return cls(x=x1, y=y1, width=max(0, x2 - x1), height=max(0, y2 - y1))

    @classmethod
    def full(cls, image_size: Tuple[int, int]) -> 'AxisRect':
        img_w, img_h = image_size
        return cls(x=0, y=0, width=int(img_w), height=int(img_h))

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def to_dict(self) -> Dict:
        return {
            'x': self.x,
            'y': self.y,
            'width': self.width,
            'height': self.height,
            'left': self.x,
            'top': self.y,
            'right': self.right,
            'bottom': self.bottom
        }


@dataclass(frozen=True)
class LocateResult:
    """
    Outcome of a strip location pass.

    status is "detected" for a confident detection and "fallback" when the
    rectangle is a substitute (see reason).
    """
    status: DetectionStatus
    rect: OrientedRect
    reason: Optional[str] = None
    contour_count: int = 0
    candidate_count: int = 0
    score: float = 0.0

    @classmethod
    def detected(
        cls,
        rect: OrientedRect,
        contour_count: int,
        candidate_count: int,
        score: float
    ) -> 'LocateResult':
        return cls(
            status="detected",
            rect=rect,
            contour_count=contour_count,
            candidate_count=candidate_count,
            score=score
        )

    @classmethod
    def fallback(cls, rect: OrientedRect, reason: str, contour_count: int = 0) -> 'LocateResult':
        return cls(status="fallback", rect=rect, reason=reason, contour_count=contour_count)

    @property
    def is_fallback(self) -> bool:
        return self.status == "fallback"

    @property
    def is_full_image(self) -> bool:
        """True when nothing usable was found and rect spans the whole image."""
        return self.is_fallback and self.reason in FULL_IMAGE_FALLBACK_REASONS

    def to_dict(self) -> Dict:
        return {
            'status': self.status,
            'reason': self.reason,
            'rect': self.rect.to_dict(),
            'contour_count': self.contour_count,
            'candidate_count': self.candidate_count,
            'score': self.score
        }


class ImageSize(TypedDict):
    """Raster dimensions in pixels."""
    width: int
    height: int


class NormalizationSummary(TypedDict):
    """
    Serializable summary of a normalization run.

    Returned by NormalizationResult.to_dict() for logs, CLI output and
    response headers.
    """
    states: list
    input_size: ImageSize
    rotated_size: ImageSize
    output_size: ImageSize
    initial_detection: Dict  # LocateResult.to_dict()
    final_detection: Optional[Dict]  # LocateResult.to_dict() on the rotated image
    rotation_angle: float  # Degrees applied by the rotator
    crop: Dict  # AxisRect.to_dict()
    crop_source: Literal["relocated", "transformed", "full_image"]
    processing_time_ms: int
