"""
Image loading and encoding utilities for the strip normalization service.

Decodes uploaded bytes (JPEG, PNG, GIF, WebP, BMP) into OpenCV BGR arrays,
encodes results back to PNG, and loads images from local paths or URLs.
"""

import io
import cv2
import numpy as np
import requests
import logging
from PIL import Image, UnidentifiedImageError
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

SUPPORTED_CONTENT_TYPES = ('image/jpeg', 'image/png', 'image/gif', 'image/webp', 'image/bmp')


class ImageDecodeError(ValueError):
    """Raised when input bytes cannot be decoded as a supported image."""


def decode_image(data: bytes) -> np.ndarray:
    """
    Decode encoded image bytes into a 3-channel BGR array.

    OpenCV handles JPEG, PNG, BMP and most WebP files. Formats the OpenCV
    build cannot read (GIF in particular) are decoded with Pillow; only the
    first frame of animated images is used.

    Args:
        data: Encoded image bytes

    Returns:
        OpenCV image array in BGR format (uint8, shape (H, W, 3))

    Raises:
        ImageDecodeError: If the bytes are empty or not a supported image
    """
    if not data:
        raise ImageDecodeError('Image data is empty')

    buffer = np.frombuffer(data, np.uint8)
    try:
        image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    except cv2.error as e:
        logger.debug(f'OpenCV failed to decode image: {e}')
        image = None

    if image is None:
        image = _decode_with_pillow(data)

    if image.size == 0:
        raise ImageDecodeError('Decoded image is empty')

    height, width = image.shape[:2]
    logger.debug(f'Decoded image: {width}x{height} pixels')
    return image


def _decode_with_pillow(data: bytes) -> np.ndarray:
    """Decode bytes with Pillow and convert to BGR."""
    try:
        with Image.open(io.BytesIO(data)) as pil_image:
            pil_image.seek(0)
            rgb = np.array(pil_image.convert('RGB'))
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f'Failed to decode image: {e}') from e

    logger.debug('Decoded image with Pillow fallback')
    return cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)


def encode_png(image: np.ndarray) -> bytes:
    """
    Encode an image as PNG bytes.

    Args:
        image: OpenCV image array (BGR or grayscale)

    Returns:
        PNG-encoded bytes

    Raises:
        ValueError: If the image is empty or encoding fails
    """
    if image is None or image.size == 0:
        raise ValueError('Cannot encode an empty image')

    success, encoded = cv2.imencode('.png', image)
    if not success:
        raise ValueError('Failed to encode image as PNG')
    return encoded.tobytes()


def load_image(image_path: str, timeout: int = 30) -> np.ndarray:
    """
    Load image from local path or URL (S3 signed URL).

    Args:
        image_path: Path to image (local file path or HTTP/HTTPS URL)
        timeout: Request timeout in seconds for URL downloads

    Returns:
        OpenCV image array in BGR format (numpy.ndarray)

    Raises:
        ValueError: If image path is invalid or image cannot be loaded
    """
    if not image_path:
        raise ValueError('image_path cannot be empty')

    parsed = urlparse(image_path)
    is_url = parsed.scheme in ('http', 'https')

    if is_url:
        logger.info(f'Loading image from URL: {image_path}')
        try:
            response = requests.get(image_path, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f'Failed to download image from URL: {e}')
            raise ValueError(f'Failed to load image from URL: {str(e)}') from e
        data = response.content
    else:
        logger.info(f'Loading image from local path: {image_path}')
        try:
            with open(image_path, 'rb') as f:
                data = f.read()
        except OSError as e:
            raise ValueError(f'Failed to read image file: {str(e)}') from e

    return decode_image(data)


def get_image_info(image: np.ndarray) -> dict:
    """
    Get basic information about an image.

    Args:
        image: OpenCV image array

    Returns:
        Dictionary with image information (width, height, channels, dtype)
    """
    height, width = image.shape[:2]
    channels = image.shape[2] if len(image.shape) == 3 else 1

    return {
        'width': width,
        'height': height,
        'channels': channels,
        'dtype': str(image.dtype),
        'size_bytes': image.nbytes
    }
