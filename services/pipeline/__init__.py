"""
Pipeline services for test strip normalization.

Main orchestrator: StripNormalizationService
Pipeline steps: StripLocator, solve_rotation, rotate_image, solve_crop, crop_image
"""

from services.pipeline.pipeline import (
    NormalizationResult,
    PipelineCancelledError,
    StripNormalizationService
)

__all__ = ['StripNormalizationService', 'NormalizationResult', 'PipelineCancelledError']
