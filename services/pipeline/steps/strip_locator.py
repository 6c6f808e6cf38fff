"""
Strip location for strip normalization.

Finds the dominant elongated foreground shape in an image and returns its
minimum-area oriented rectangle.
"""

import cv2
import numpy as np
import logging
from typing import Dict, List, Optional, Tuple

from config.strip_config import get_strip_config, validate_strip_config
from services.interfaces import LocateResult, OrientedRect
from services.utils.debug import DebugContext

logger = logging.getLogger(__name__)


class StripLocator:
    """Locate a test strip using Otsu thresholding, Canny edges and contour scoring."""

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize locator.

        Args:
            config: Strip configuration dict (uses get_strip_config() if None)
        """
        self.config = config or get_strip_config()
        validate_strip_config(self.config)

    def locate(
        self,
        image: np.ndarray,
        valid_mask: Optional[np.ndarray] = None,
        debug: Optional[DebugContext] = None,
        step_prefix: str = 'locate'
    ) -> LocateResult:
        """
        Locate the strip in an image.

        Step-by-step pipeline:
        1. Convert to grayscale
        2. Apply Gaussian blur
        3. Binarize with Otsu's threshold
        4. Run Canny edge detection on the binary image
        5. Drop edges next to rotation fill (when valid_mask is given)
        6. Dilate edges to close gaps
        7. Find external contours
        8. Score contours by area * min(aspect_ratio, cap), keep the best

        Never raises for a non-empty image: when nothing usable is found the
        result is a fallback (see LocateResult.reason).

        Args:
            image: Input image (BGR or grayscale)
            valid_mask: Optional uint8 mask, 0 where pixels are rotation fill
            debug: Optional debug context for visual logging
            step_prefix: Prefix for debug step ids

        Returns:
            LocateResult with status "detected" or "fallback"
        """
        h, w = image.shape[:2]
        full_rect = OrientedRect.full_image(w, h)
        blur_size = self.config['blur_kernel_size']

        if min(h, w) < blur_size:
            logger.warning(f'Image too small for strip location ({w}x{h}), using full image')
            return LocateResult.fallback(full_rect, 'image_too_small')

        # Step 1: Convert to grayscale
        gray = self._to_gray(image)

        # Step 2: Apply Gaussian blur
        blurred = cv2.GaussianBlur(gray, (blur_size, blur_size), 0)

        # Step 3: Binarize (Otsu)
        binary = self._binarize(blurred, valid_mask)
        if binary is None:
            logger.warning('Valid mask is empty, using full image')
            return LocateResult.fallback(full_rect, 'empty_mask')
        if debug:
            debug.add_step(f'{step_prefix}_01_binary', 'Otsu binarization', binary)

        # Step 4: Canny edge detection
        edges = cv2.Canny(binary, self.config['canny_low'], self.config['canny_high'])

        # Step 5: Drop edges created by the rotation fill boundary
        if valid_mask is not None:
            edges = self._suppress_fill_edges(edges, valid_mask)

        # Step 6: Dilate edges to close gaps in the outline
        dilate_size = self.config['dilate_kernel_size']
        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (dilate_size, dilate_size))
        dilated = cv2.dilate(edges, kernel, iterations=self.config['dilate_iterations'])
        if debug:
            debug.add_step(f'{step_prefix}_02_edges', 'Canny edges (dilated)', dilated, {
                'canny_low': self.config['canny_low'],
                'canny_high': self.config['canny_high']
            })

        # Step 7: External contours only
        contours, _ = cv2.findContours(dilated, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

        if len(contours) == 0:
            logger.warning('No contours found, returning full image bounds')
            return LocateResult.fallback(full_rect, 'no_contours')

        # Step 8: Score candidates
        candidates = self._score_contours(contours)

        if not candidates:
            result = self._largest_contour_fallback(contours, full_rect)
        else:
            best_rect, best_area, best_score = max(candidates, key=lambda c: c[2])
            result = LocateResult.detected(
                best_rect,
                contour_count=len(contours),
                candidate_count=len(candidates),
                score=best_score
            )
            logger.debug(
                f'Detected strip - center: ({best_rect.center[0]:.1f}, {best_rect.center[1]:.1f}), '
                f'size: {best_rect.width:.1f}x{best_rect.height:.1f}, angle: {best_rect.angle:.2f}°, '
                f'area: {best_area:.0f}, score: {best_score:.0f}, candidates: {len(candidates)}'
            )

        if debug:
            debug.add_step(
                f'{step_prefix}_03_selected',
                f'Selected rectangle ({result.status})',
                self._draw_result(image, contours, result.rect),
                result.to_dict()
            )

        return result

    def _to_gray(self, image: np.ndarray) -> np.ndarray:
        if image.ndim == 2:
            return image
        if image.shape[2] == 4:
            return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
        if image.shape[2] == 1:
            return image[:, :, 0]
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)

    def _binarize(self, blurred: np.ndarray, valid_mask: Optional[np.ndarray]) -> Optional[np.ndarray]:
        """Otsu binarization; the threshold ignores pixels outside valid_mask."""
        if valid_mask is None:
            _, binary = cv2.threshold(blurred, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
            return binary

        valid_pixels = blurred[valid_mask > 0]
        if valid_pixels.size == 0:
            return None

        threshold, _ = cv2.threshold(
            valid_pixels.reshape(-1, 1), 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU
        )
        _, binary = cv2.threshold(blurred, threshold, 255, cv2.THRESH_BINARY)
        return binary

    def _suppress_fill_edges(self, edges: np.ndarray, valid_mask: np.ndarray) -> np.ndarray:
        """Zero edges within mask_edge_margin pixels of the fill region."""
        margin = self.config['mask_edge_margin']
        if margin > 0:
            kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (2 * margin + 1, 2 * margin + 1))
            # Pixels outside the image count as fill too
            inner = cv2.erode(valid_mask, kernel, borderType=cv2.BORDER_CONSTANT, borderValue=0)
        else:
            inner = valid_mask
        return cv2.bitwise_and(edges, edges, mask=inner)

    def _score_contours(self, contours) -> List[Tuple[OrientedRect, float, float]]:
        """Return (rect, area, score) for contours passing the area floor."""
        min_area = self.config['min_contour_area']
        cap = self.config['aspect_ratio_cap']

        candidates = []
        for cnt in contours:
            area = cv2.contourArea(cnt)
            if area < min_area:
                continue

            rect = OrientedRect.from_box(cv2.minAreaRect(cnt))
            if rect.is_degenerate:
                continue

            score = area * min(rect.aspect_ratio, cap)
            candidates.append((rect, area, score))

        return candidates

    def _largest_contour_fallback(self, contours, full_rect: OrientedRect) -> LocateResult:
        largest = max(contours, key=cv2.contourArea)
        rect = OrientedRect.from_box(cv2.minAreaRect(largest))

        if rect.is_degenerate:
            logger.warning('Largest contour is degenerate, returning full image bounds')
            return LocateResult.fallback(full_rect, 'degenerate_rect', contour_count=len(contours))

        logger.warning(
            f'No contour reached the area floor ({self.config["min_contour_area"]} px²), '
            f'using largest contour ({cv2.contourArea(largest):.0f} px²)'
        )
        return LocateResult.fallback(rect, 'below_area_floor', contour_count=len(contours))

    def _draw_result(self, image: np.ndarray, contours, rect: OrientedRect) -> np.ndarray:
        if image.ndim == 3 and image.shape[2] == 3:
            vis = image.copy()
        else:
            vis = cv2.cvtColor(self._to_gray(image), cv2.COLOR_GRAY2BGR)
        cv2.drawContours(vis, contours, -1, (0, 255, 0), 1)
        box = np.intp(rect.corners())
        cv2.drawContours(vis, [box], 0, (255, 0, 0), 2)
        return vis
