"""
Debug utilities for the strip normalization service.

Provides a step-tracking interface on top of the visual logger.
"""

import logging
import numpy as np
import cv2
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from utils.visual_logger import VisualLogger

logger = logging.getLogger(__name__)


@dataclass
class DebugStep:
    """Represents a single debug step in the pipeline."""
    step_id: str
    name: str
    data: Dict[str, Any] = field(default_factory=dict)


class DebugContext:
    """
    Manages debug state and visual logging throughout the pipeline.

    Usage:
        debug = DebugContext(enabled=True, output_dir="logs/visual", image_name="strip.jpg")
        debug.add_step("01_located", "Strip Location", image, {"status": "detected"})
        debug.save_log(final_image)
    """

    def __init__(
        self,
        enabled: bool = False,
        output_dir: Optional[str] = None,
        image_name: str = "unknown",
        run_name: str = "pipeline"
    ):
        """
        Initialize debug context.

        Args:
            enabled: Whether debug mode is enabled
            output_dir: Directory for saving visual logs
            image_name: Name of the image being processed
            run_name: Sub-directory name for this run
        """
        self.enabled = enabled
        self.image_name = image_name
        self.steps: List[DebugStep] = []
        self.visual_logger: Optional[VisualLogger] = None

        if enabled:
            self.visual_logger = VisualLogger(output_dir)
            self.visual_logger.start_log(run_name, image_name)

    def add_step(
        self,
        step_id: str,
        name: str,
        image: Optional[np.ndarray] = None,
        data: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Add a debug step.

        Args:
            step_id: Unique identifier for the step (e.g., "01_located")
            name: Human-readable step name
            image: Optional image to log (grayscale images are converted to BGR)
            data: Optional metadata dictionary
        """
        if not self.enabled:
            return

        clean_data = {key: self._clean_value(value) for key, value in (data or {}).items()}
        self.steps.append(DebugStep(step_id=step_id, name=name, data=clean_data))

        if self.visual_logger and image is not None:
            if image.ndim == 2:
                image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
            self.visual_logger.add_step(step_id, name, image, clean_data)

    def _clean_value(self, value):
        """Recursively clean a value for JSON serialization."""
        if hasattr(value, 'to_dict') and callable(getattr(value, 'to_dict')):
            return self._clean_value(value.to_dict())
        if isinstance(value, np.ndarray):
            return value.tolist() if value.size < 100 else f"<ndarray shape={value.shape}>"
        if isinstance(value, np.bool_):
            return bool(value)
        if isinstance(value, np.integer):
            return int(value)
        if isinstance(value, np.floating):
            return float(value)
        if isinstance(value, (list, tuple)):
            return [self._clean_value(v) for v in value]
        if isinstance(value, dict):
            return {k: self._clean_value(v) for k, v in value.items()}
        return value

    def save_log(self, final_image: Optional[np.ndarray] = None) -> Optional[str]:
        """
        Save the debug log.

        Returns:
            Path to saved log directory, or None if disabled
        """
        if not self.enabled or not self.visual_logger:
            return None

        try:
            return self.visual_logger.save_log(final_image) or None
        except OSError as e:
            logger.warning(f"Failed to save debug log: {e}", exc_info=True)
            return None
