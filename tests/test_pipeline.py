"""
Tests for the strip normalization pipeline.
"""

import json
import threading
from pathlib import Path

import numpy as np
import pytest

from conftest import encode, make_strip_image
from config.strip_config import get_strip_config
from services.interfaces import LocateResult, OrientedRect
from services.pipeline import NormalizationResult, PipelineCancelledError, StripNormalizationService
from services.pipeline.steps.orientation import angle_difference
from services.utils.debug import DebugContext
from utils.image_loader import ImageDecodeError, decode_image

ALL_STATES = ['decoded', 'located', 'rotated', 'relocated', 'cropped', 'encoded']


class CancelAfter:
    """Cancellation token that reports set after `checks` calls to is_set()."""

    def __init__(self, checks):
        self.checks = checks
        self.calls = 0

    def is_set(self):
        self.calls += 1
        return self.calls > self.checks


class ScriptedLocator:
    """Locator double returning queued results."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def locate(self, image, valid_mask=None, debug=None, step_prefix='locate'):
        self.calls.append((image.shape, valid_mask is not None, step_prefix))
        result = self.results.pop(0)
        if callable(result):
            return result(image)
        return result


class TestStripNormalizationService:
    """Test cases for StripNormalizationService."""

    def setup_method(self):
        """Set up test fixtures."""
        self.service = StripNormalizationService()

    def test_synthetic_strip_end_to_end(self, strip_png):
        result = self.service.process_bytes(strip_png)

        assert isinstance(result, NormalizationResult)
        assert result.states == ALL_STATES
        assert result.initial_detection.status == 'detected'
        assert result.final_detection.status == 'detected'
        assert result.crop_source == 'relocated'
        assert result.rotation_angle == pytest.approx(-30.0, abs=1.5)

        out_w, out_h = result.output_size
        padding = self.service.config['crop_padding']
        assert out_h > out_w
        assert abs(out_w - (20 + 2 * padding)) <= 12
        assert abs(out_h - (200 + 2 * padding)) <= 12
        assert abs(angle_difference(result.final_detection.rect.long_axis_angle, 90.0)) < 1.0

        # Strip is centered and white; the padding corners are background
        decoded = decode_image(result.png_bytes)
        assert decoded.shape[:2] == (out_h, out_w)
        assert decoded[out_h // 2, out_w // 2].min() > 200

    def test_output_is_deterministic(self, strip_png):
        first = self.service.process_bytes(strip_png)
        second = self.service.process_bytes(strip_png)
        assert first.png_bytes == second.png_bytes

    def test_process_image_does_not_encode(self, strip_image):
        original = strip_image.copy()
        result = self.service.process_image(strip_image)

        assert result.png_bytes is None
        assert result.states == ALL_STATES[:-1]
        assert np.array_equal(strip_image, original)

    def test_blank_image_is_passed_through(self):
        image = np.zeros((80, 120, 3), dtype=np.uint8)
        result = self.service.process_bytes(encode(image))

        assert result.initial_detection.is_full_image
        assert result.final_detection is None
        assert result.rotation_angle == 0.0
        assert result.crop_source == 'full_image'
        assert result.output_size == (120, 80)
        assert result.states == ALL_STATES

    def test_single_pixel_image(self):
        image = np.full((1, 1, 3), 128, dtype=np.uint8)
        result = self.service.process_bytes(encode(image))

        assert result.initial_detection.reason == 'image_too_small'
        assert result.output_size == (1, 1)
        assert decode_image(result.png_bytes).shape == (1, 1, 3)

    def test_vertical_strip_needs_no_rotation(self):
        image = make_strip_image(strip_size=(20, 200), angle=0.0)
        result = self.service.process_image(image)

        assert abs(result.rotation_angle) < self.service.config['min_rotation_threshold']
        assert result.rotated_size == result.input_size

    def test_horizontal_strip_turns_upright(self):
        image = make_strip_image(image_size=(400, 300), strip_size=(200, 20), angle=0.0)
        result = self.service.process_image(image)

        assert abs(result.rotation_angle) == pytest.approx(90.0, abs=1.0)
        assert result.rotated_size == (300, 400)
        out_w, out_h = result.output_size
        assert out_h > 4 * out_w

    def test_strip_touching_left_border(self):
        image = make_strip_image(strip_size=(20, 200), angle=0.0, center=(12, 200))
        result = self.service.process_image(image)

        assert result.crop_rect.x == 0
        assert result.crop_rect.right <= result.rotated_size[0]

    def test_padding_changes_output_size(self, strip_image):
        narrow = StripNormalizationService(get_strip_config({'crop_padding': 0})).process_image(strip_image)
        wide = StripNormalizationService(get_strip_config({'crop_padding': 10})).process_image(strip_image)

        assert abs((wide.output_size[0] - narrow.output_size[0]) - 20) <= 2
        assert abs((wide.output_size[1] - narrow.output_size[1]) - 20) <= 2

    def test_decode_error(self):
        with pytest.raises(ImageDecodeError):
            self.service.process_bytes(b'definitely not an image')

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            StripNormalizationService(get_strip_config({'crop_padding': -1}))


class TestRedetectionFallback:
    """Crop selection when re-detection on the rotated image fails."""

    def test_transforms_initial_rect(self, strip_image):
        initial = LocateResult.detected(
            OrientedRect(center=(200.0, 200.0), size=(20.0, 200.0), angle=30.0),
            contour_count=1,
            candidate_count=1,
            score=20000.0
        )
        locator = ScriptedLocator(
            initial,
            lambda image: LocateResult.fallback(
                OrientedRect.full_image(image.shape[1], image.shape[0]), 'no_contours'
            )
        )
        service = StripNormalizationService(strip_locator=locator)

        result = service.process_image(strip_image)

        assert result.rotation_angle == pytest.approx(-30.0)
        assert result.crop_source == 'transformed'
        assert 28 <= result.crop_rect.width <= 33
        assert 208 <= result.crop_rect.height <= 213
        # Second call runs on the rotated canvas with a coverage mask
        assert locator.calls[1][1] is True
        assert locator.calls[1][2] == '03_relocate'

    def test_full_image_fallback_skips_relocation(self):
        image = np.zeros((50, 60, 3), dtype=np.uint8)
        locator = ScriptedLocator(LocateResult.fallback(OrientedRect.full_image(60, 50), 'no_contours'))
        service = StripNormalizationService(strip_locator=locator)

        result = service.process_image(image)

        assert len(locator.calls) == 1
        assert result.crop_source == 'full_image'
        assert result.output_size == (60, 50)

    def test_below_area_floor_still_rotates(self, strip_image):
        service = StripNormalizationService(get_strip_config({'min_contour_area': 1e9}))
        result = service.process_image(strip_image)

        assert result.initial_detection.reason == 'below_area_floor'
        assert result.rotation_angle == pytest.approx(-30.0, abs=1.5)
        assert result.crop_source == 'relocated'
        assert result.output_size[1] > 4 * result.output_size[0]


class TestCancellation:
    """Cancellation between pipeline stages."""

    def setup_method(self):
        """Set up test fixtures."""
        self.service = StripNormalizationService()

    def test_cancel_before_start(self, strip_png):
        event = threading.Event()
        event.set()

        with pytest.raises(PipelineCancelledError, match='located'):
            self.service.process_bytes(strip_png, cancel_event=event)

    @pytest.mark.parametrize('checks, next_state', [
        (0, 'located'),
        (1, 'rotated'),
        (2, 'relocated'),
        (3, 'cropped'),
        (4, 'encoded'),
    ])
    def test_cancel_between_stages(self, strip_png, checks, next_state):
        token = CancelAfter(checks)

        with pytest.raises(PipelineCancelledError, match=next_state):
            self.service.process_bytes(strip_png, cancel_event=token)

    def test_unset_event_completes(self, strip_png):
        result = self.service.process_bytes(strip_png, cancel_event=threading.Event())
        assert result.states == ALL_STATES


class TestDebugAndSummary:
    """Visual logging and result serialization."""

    def test_debug_log_written(self, strip_image, tmp_path):
        debug = DebugContext(enabled=True, output_dir=str(tmp_path), image_name='strip.png')
        result = StripNormalizationService().process_image(strip_image, debug=debug)

        log_dir = debug.save_log(result.image)

        assert log_dir is not None
        metadata = json.loads((Path(log_dir) / 'log.json').read_text())
        step_names = [step['step_name'] for step in metadata['steps']]
        assert step_names[0] == '00_input'
        assert '02_rotated' in step_names
        assert step_names[-1] == '04_cropped'
        assert metadata['final_image'] == 'final_result.png'

    def test_to_dict(self, strip_png):
        summary = StripNormalizationService().process_bytes(strip_png).to_dict()

        assert set(summary) == {
            'states', 'input_size', 'rotated_size', 'output_size', 'initial_detection',
            'final_detection', 'rotation_angle', 'crop', 'crop_source', 'processing_time_ms'
        }
        assert summary['input_size'] == {'width': 400, 'height': 400}
        assert summary['initial_detection']['status'] == 'detected'
        assert summary['crop_source'] == 'relocated'
        json.dumps(summary)
