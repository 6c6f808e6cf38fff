"""
Pipeline service for normalizing test strip images.

Orchestrates: Decode → Strip Location → Rotation → Re-location → Crop → Encode
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from config.strip_config import get_strip_config, validate_strip_config
from services.interfaces import AxisRect, LocateResult, NormalizationSummary, OrientedRect
from services.pipeline.steps.cropping import crop_image, solve_crop
from services.pipeline.steps.orientation import solve_rotation
from services.pipeline.steps.rotation import get_rotation_matrix, rotate_coverage_mask, rotate_image
from services.pipeline.steps.strip_locator import StripLocator
from services.utils.debug import DebugContext
from utils.coordinate_transform import transform_rect
from utils.image_loader import decode_image, encode_png

logger = logging.getLogger(__name__)

IDENTITY_MATRIX = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])


class PipelineCancelledError(Exception):
    """Raised when the caller cancels a run between pipeline stages."""


@dataclass
class NormalizationResult:
    """Output of one normalization run."""
    image: np.ndarray
    initial_detection: LocateResult
    final_detection: Optional[LocateResult]
    rotation_angle: float
    crop_rect: AxisRect
    crop_source: str
    input_size: Tuple[int, int]
    rotated_size: Tuple[int, int]
    states: List[str] = field(default_factory=list)
    png_bytes: Optional[bytes] = None
    processing_time_ms: int = 0

    @property
    def output_size(self) -> Tuple[int, int]:
        h, w = self.image.shape[:2]
        return (w, h)

    def to_dict(self) -> NormalizationSummary:
        return NormalizationSummary(
            states=list(self.states),
            input_size={'width': self.input_size[0], 'height': self.input_size[1]},
            rotated_size={'width': self.rotated_size[0], 'height': self.rotated_size[1]},
            output_size={'width': self.output_size[0], 'height': self.output_size[1]},
            initial_detection=self.initial_detection.to_dict(),
            final_detection=self.final_detection.to_dict() if self.final_detection else None,
            rotation_angle=self.rotation_angle,
            crop=self.crop_rect.to_dict(),
            crop_source=self.crop_source,
            processing_time_ms=self.processing_time_ms
        )


class StripNormalizationService:
    """
    Turns a strip photograph into a vertical, tightly cropped strip image.

    The service holds only read-only configuration, so one instance can be
    shared by concurrent requests. Each run works on its own arrays.
    """

    def __init__(self, config: Optional[Dict] = None, strip_locator: Optional[StripLocator] = None):
        """
        Initialize pipeline service.

        Args:
            config: Strip configuration dict (uses get_strip_config() if None)
            strip_locator: Optional pre-initialized locator
        """
        self.config = config or get_strip_config()
        validate_strip_config(self.config)
        self.strip_locator = strip_locator or StripLocator(self.config)

    def process_bytes(
        self,
        data: bytes,
        cancel_event=None,
        debug: Optional[DebugContext] = None
    ) -> NormalizationResult:
        """
        Decode, normalize and PNG-encode an uploaded image.

        Args:
            data: Encoded image bytes
            cancel_event: Optional object with is_set() (e.g. threading.Event)
            debug: Optional DebugContext for visual logging

        Returns:
            NormalizationResult with png_bytes set

        Raises:
            ImageDecodeError: If the bytes are not a supported image
            PipelineCancelledError: If cancel_event is set between stages
        """
        start_time = time.time()

        image = decode_image(data)
        result = self.process_image(image, cancel_event=cancel_event, debug=debug)

        self._check_cancelled(cancel_event, 'encoded')
        result.png_bytes = encode_png(result.image)
        result.states.append('encoded')
        result.processing_time_ms = int((time.time() - start_time) * 1000)

        return result

    def process_image(
        self,
        image: np.ndarray,
        cancel_event=None,
        debug: Optional[DebugContext] = None
    ) -> NormalizationResult:
        """
        Normalize a decoded image.

        Args:
            image: Input image (BGR format); not modified
            cancel_event: Optional object with is_set() (e.g. threading.Event)
            debug: Optional DebugContext for visual logging

        Returns:
            NormalizationResult (png_bytes left unset)
        """
        start_time = time.time()
        states = ['decoded']
        h, w = image.shape[:2]
        logger.debug(f'Normalizing image: {w}x{h}')

        if debug:
            debug.add_step('00_input', 'Input image', image, {'width': w, 'height': h})

        # Step 1: Locate strip
        self._check_cancelled(cancel_event, 'located')
        initial = self.strip_locator.locate(image, debug=debug, step_prefix='01_locate')
        states.append('located')

        # Step 2: Solve and apply rotation
        self._check_cancelled(cancel_event, 'rotated')
        if initial.is_full_image:
            logger.warning(f'No strip found ({initial.reason}), skipping rotation')
            angle = 0.0
        else:
            angle = solve_rotation(initial.rect)
        logger.debug(f'Rotation angle to make vertical: {angle:.2f}°')

        threshold = self.config['min_rotation_threshold']
        rotation_applied = abs(angle) >= threshold
        if rotation_applied:
            rotated = rotate_image(image, angle, min_rotation_threshold=threshold)
            matrix, _ = get_rotation_matrix((w, h), angle)
            valid_mask = rotate_coverage_mask((w, h), angle, min_rotation_threshold=threshold)
        else:
            rotated = image.copy()
            matrix = IDENTITY_MATRIX
            valid_mask = None
        states.append('rotated')

        rotated_h, rotated_w = rotated.shape[:2]
        if debug:
            debug.add_step('02_rotated', f'Rotated by {angle:.2f}°', rotated, {
                'angle': angle,
                'rotated_size': (rotated_w, rotated_h)
            })

        # Step 3: Re-locate strip in rotated image
        self._check_cancelled(cancel_event, 'relocated')
        if initial.is_full_image:
            final = None
        else:
            final = self.strip_locator.locate(rotated, valid_mask=valid_mask, debug=debug, step_prefix='03_relocate')
        states.append('relocated')

        # Step 4: Crop
        self._check_cancelled(cancel_event, 'cropped')
        crop_target, crop_source = self._select_crop_target(initial, final, matrix)

        if crop_target is None:
            crop_rect = AxisRect.full((rotated_w, rotated_h))
        else:
            crop_rect = solve_crop(crop_target, (rotated_w, rotated_h), self.config['crop_padding'])
            if crop_rect.is_empty:
                logger.warning('Crop rectangle collapsed, using full image')
                crop_rect = AxisRect.full((rotated_w, rotated_h))
                crop_source = 'full_image'

        cropped = crop_image(rotated, crop_rect)
        states.append('cropped')
        logger.debug(
            f'Crop rectangle: X={crop_rect.x}, Y={crop_rect.y}, '
            f'W={crop_rect.width}, H={crop_rect.height} ({crop_source})'
        )

        if debug:
            debug.add_step('04_cropped', 'Cropped strip', cropped, {
                'crop': crop_rect,
                'crop_source': crop_source
            })

        result = NormalizationResult(
            image=cropped,
            initial_detection=initial,
            final_detection=final,
            rotation_angle=angle,
            crop_rect=crop_rect,
            crop_source=crop_source,
            input_size=(w, h),
            rotated_size=(rotated_w, rotated_h),
            states=states,
            processing_time_ms=int((time.time() - start_time) * 1000)
        )

        logger.info(
            f'Strip normalization completed ({initial.status}, {crop_source}). '
            f'Output: {cropped.shape[1]}x{cropped.shape[0]}'
        )
        return result

    def _select_crop_target(
        self,
        initial: LocateResult,
        final: Optional[LocateResult],
        matrix: np.ndarray
    ) -> Tuple[Optional[OrientedRect], str]:
        """
        Pick the rectangle the crop is solved from.

        Prefers the re-detected rectangle; when re-detection falls back after a
        confident first detection, the first rectangle is mapped through the
        rotation instead.
        """
        if final is None or final.is_full_image and initial.is_fallback:
            return None, 'full_image'

        if not final.is_fallback:
            return final.rect, 'relocated'

        if not initial.is_fallback:
            logger.warning(f'Re-detection fell back ({final.reason}), transforming initial rectangle')
            return transform_rect(initial.rect, matrix), 'transformed'

        return final.rect, 'relocated'

    def _check_cancelled(self, cancel_event, next_state: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f'Pipeline cancelled before state: {next_state}')
            raise PipelineCancelledError(f'Processing cancelled before {next_state}')
