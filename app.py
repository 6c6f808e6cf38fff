"""
PoolGuy Strip Normalizer - Flask Application
Computer Vision service that rotates test strip photos upright and crops them to the strip
"""

from flask import Flask, request, jsonify, g, send_file
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import RequestEntityTooLarge
from werkzeug.utils import secure_filename
import cv2
import numpy as np
import io
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from dotenv import load_dotenv
from typing import Optional, Tuple

# Import services
from services.pipeline import StripNormalizationService, PipelineCancelledError
from services.utils.debug import DebugContext
from utils.image_loader import ImageDecodeError, SUPPORTED_CONTENT_TYPES

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create Flask app
app = Flask(__name__)
CORS(app, expose_headers=['X-Request-ID', 'X-Strip-Detection', 'X-Rotation-Angle', 'X-Crop-Source'])

# Determine if we're in production mode
is_production = os.getenv('FLASK_DEBUG', 'False').lower() != 'true'


# Request ID middleware for tracing
@app.before_request
def generate_request_id():
    """Generate or use existing request ID for tracing."""
    g.request_id = request.headers.get('X-Request-ID') or str(uuid.uuid4())
    logger.debug(f'[Request {g.request_id}] {request.method} {request.path}')


@app.after_request
def add_request_id_header(response):
    """Add request ID to response headers."""
    if hasattr(g, 'request_id'):
        response.headers['X-Request-ID'] = g.request_id
    return response


def sanitize_error_message(error: Exception) -> str:
    """
    Sanitize error messages for production.

    In production, returns generic messages to prevent information disclosure.
    In development, returns full error details for debugging.

    Args:
        error: Exception object

    Returns:
        Sanitized error message string
    """
    if is_production:
        return "An error occurred while processing the image. Please ensure the image contains a visible test strip."
    return str(error)


# Rate limiting configuration
limiter = Limiter(
    key_func=get_remote_address,
    app=app,
    default_limits=["200 per hour", "20 per minute"],
    storage_uri="memory://",  # In-memory storage (use Redis in production for multi-instance)
    headers_enabled=True,
    enabled=os.getenv('RATE_LIMIT_ENABLED', 'true').lower() == 'true'
)

# Configuration
app.config['MAX_CONTENT_LENGTH'] = int(os.getenv('MAX_UPLOAD_MB', '50')) * 1024 * 1024

# Visual logs (development/debugging only)
enable_visual_logs = os.getenv('ENABLE_VISUAL_LOGS', 'false').lower() == 'true'
visual_log_dir = os.getenv('VISUAL_LOG_DIR', 'logs/visual')

# Initialize services
normalization_service = StripNormalizationService()


@app.errorhandler(RequestEntityTooLarge)
def handle_too_large(error):
    return jsonify({
        'success': False,
        'error': f"File exceeds the {app.config['MAX_CONTENT_LENGTH'] // (1024 * 1024)} MB upload limit",
        'error_code': 'FILE_TOO_LARGE'
    }), 413


@app.route('/health', methods=['GET'])
@limiter.exempt
def health_check():
    """Health check endpoint"""
    return jsonify({
        'status': 'healthy',
        'service': 'poolguy-strip-normalizer',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'opencv_version': cv2.__version__,
        'numpy_version': np.__version__
    })


def validate_process_request(file) -> Tuple[bool, Optional[str], Optional[str]]:
    """
    Validate process request upload.

    Args:
        file: Uploaded werkzeug FileStorage (or None)

    Returns:
        Tuple of (is_valid, error_message, error_code)
    """
    if file is None:
        return False, 'No file uploaded or file is empty', 'MISSING_FILE'

    content_type = (file.mimetype or '').lower()
    if content_type not in SUPPORTED_CONTENT_TYPES:
        return False, 'Invalid file type. Allowed types: JPEG, PNG, GIF, WebP, BMP', 'INVALID_FILE_TYPE'

    return True, None, None


@app.route('/process', methods=['POST'])
@limiter.limit(os.getenv('PROCESS_RATE_LIMIT', '10 per minute'))  # Image processing is CPU heavy
def process_strip_image():
    """
    Normalize a test strip photo.

    Pipeline: Image → Strip Location → Rotation → Re-location → Crop → PNG

    Request (multipart/form-data):
    - file: Image file (JPEG, PNG, GIF, WebP or BMP)

    Returns:
    - PNG image of the vertical, cropped strip
    - X-Strip-Detection: "detected" or "fallback"
    - X-Rotation-Angle: Rotation applied in degrees
    - X-Crop-Source: "relocated", "transformed" or "full_image"
    """
    request_id = getattr(g, 'request_id', 'unknown')
    file = request.files.get('file')

    is_valid, error_msg, error_code = validate_process_request(file)
    if not is_valid:
        logger.warning(f'[Request {request_id}] {error_msg}')
        body = {'success': False, 'error': error_msg, 'error_code': error_code}
        if error_code == 'INVALID_FILE_TYPE':
            body['received_type'] = file.mimetype
        return jsonify(body), 400

    data = file.read()
    if not data:
        logger.warning(f'[Request {request_id}] Uploaded file is empty')
        return jsonify({
            'success': False,
            'error': 'No file uploaded or file is empty',
            'error_code': 'MISSING_FILE'
        }), 400

    logger.info(
        f'[Request {request_id}] Processing image: {file.filename}, '
        f'Size: {len(data)} bytes, Type: {file.mimetype}'
    )

    debug = None
    if enable_visual_logs:
        debug = DebugContext(
            enabled=True,
            output_dir=visual_log_dir,
            image_name=secure_filename(file.filename or '') or 'upload',
            run_name=f"{datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%S')}_{uuid.uuid4().hex[:8]}"
        )

    try:
        result = normalization_service.process_bytes(data, debug=debug)
    except ImageDecodeError as e:
        logger.warning(f'[Request {request_id}] Failed to decode image: {e}')
        return jsonify({
            'success': False,
            'error': 'Failed to decode image. Allowed types: JPEG, PNG, GIF, WebP, BMP',
            'error_code': 'IMAGE_DECODE_ERROR'
        }), 400
    except PipelineCancelledError as e:
        logger.warning(f'[Request {request_id}] {e}')
        return jsonify({
            'success': False,
            'error': 'Processing was cancelled',
            'error_code': 'CANCELLED'
        }), 503
    except Exception as e:
        logger.error(f'[Request {request_id}] Error processing image {file.filename}: {str(e)}', exc_info=True)
        return jsonify({
            'success': False,
            'error': sanitize_error_message(e),
            'error_code': 'INTERNAL_ERROR'
        }), 500

    if debug:
        debug.save_log(result.image)

    logger.info(
        f'[Request {request_id}] Successfully processed image: {file.filename} '
        f'({result.processing_time_ms} ms)'
    )

    stem = Path(file.filename).stem if file.filename else 'image'
    response = send_file(
        io.BytesIO(result.png_bytes),
        mimetype='image/png',
        as_attachment=True,
        download_name=f'processed_{stem}.png'
    )
    response.headers['X-Strip-Detection'] = result.initial_detection.status
    response.headers['X-Rotation-Angle'] = f'{result.rotation_angle:.2f}'
    response.headers['X-Crop-Source'] = result.crop_source
    return response


if __name__ == '__main__':
    port = int(os.getenv('PORT', 5000))
    debug_mode = os.getenv('FLASK_DEBUG', 'False').lower() == 'true'
    app.run(host='0.0.0.0', port=port, debug=debug_mode)
