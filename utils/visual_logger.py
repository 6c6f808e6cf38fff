"""
Visual logging utilities for debugging the normalization pipeline.
"""

import cv2
import numpy as np
import logging
import json
from typing import Dict, List, Optional
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)


class VisualLogger:
    """Collects step images and writes them to disk as a browsable log."""

    def __init__(self, output_dir: Optional[str] = None):
        """
        Initialize visual logger.

        Args:
            output_dir: Base directory for saving logs. If None, uses logs/visual/
        """
        self.output_dir = output_dir or 'logs/visual'
        self.steps: List[Dict] = []
        self.run_name: Optional[str] = None
        self.image_name: Optional[str] = None

    def start_log(self, run_name: str, image_name: str):
        """Start a new visual log for a pipeline run."""
        self.run_name = run_name
        self.image_name = image_name
        self.steps = []

    def add_step(
        self,
        step_name: str,
        description: str,
        image: np.ndarray,
        data: Optional[Dict] = None
    ):
        """
        Add a visualization step to the log.

        Args:
            step_name: Name of the step (used in filename)
            description: Human-readable description
            image: Annotated image for this step
            data: Additional debug data (JSON-serializable)
        """
        self.steps.append({
            'step_name': step_name,
            'description': description,
            'image': image.copy(),
            'data': data or {}
        })

    def get_log_dir(self) -> Optional[Path]:
        if not self.run_name or not self.image_name:
            return None
        return Path(self.output_dir) / Path(self.image_name).stem / self.run_name

    def save_log(self, final_visualization: Optional[np.ndarray] = None) -> str:
        """
        Save visual log to disk.

        Args:
            final_visualization: Optional final result image

        Returns:
            Path to saved log directory ('' if the log was never started)
        """
        log_dir = self.get_log_dir()
        if log_dir is None:
            logger.warning('Cannot save log: run_name or image_name not set')
            return ''

        log_dir.mkdir(parents=True, exist_ok=True)

        for idx, step in enumerate(self.steps):
            step_path = log_dir / f'step_{idx:02d}_{step["step_name"]}.jpg'
            cv2.imwrite(str(step_path), step['image'])

        final_image = None
        if final_visualization is not None and final_visualization.size > 0:
            final_image = 'final_result.png'
            cv2.imwrite(str(log_dir / final_image), final_visualization)

        metadata = {
            'run_name': self.run_name,
            'image_name': self.image_name,
            'timestamp': datetime.now().isoformat(),
            'steps': [
                {
                    'step_name': step['step_name'],
                    'description': step['description'],
                    'image_file': f'step_{idx:02d}_{step["step_name"]}.jpg',
                    'data': step['data']
                }
                for idx, step in enumerate(self.steps)
            ],
            'final_image': final_image
        }

        with open(log_dir / 'log.json', 'w') as f:
            json.dump(metadata, f, indent=2)

        logger.info(f'Visual log saved to: {log_dir}')
        return str(log_dir)
