#!/usr/bin/env python3
"""
Command-line runner for the strip normalization pipeline.

Loads an image (local path or URL), rotates the strip upright, crops it and
writes the PNG result plus a JSON summary.
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

from config.strip_config import get_strip_config
from services.pipeline import StripNormalizationService
from services.utils.debug import DebugContext
from utils.image_loader import encode_png, load_image

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(description='Rotate a test strip photo upright and crop it to the strip')
    parser.add_argument('image_path', help='Path or URL of the strip photo')
    parser.add_argument('--output', type=str, help='Output PNG path (default: processed_<name>.png)')
    parser.add_argument('--padding', type=int, help='Crop padding in pixels (overrides STRIP_CROP_PADDING)')
    parser.add_argument('--visual-log', action='store_true', help='Save per-step debug images')
    parser.add_argument('--log-dir', type=str, default='logs/visual', help='Directory for visual logs')

    args = parser.parse_args()

    overrides = {}
    if args.padding is not None:
        overrides['crop_padding'] = args.padding

    try:
        service = StripNormalizationService(get_strip_config(overrides))
    except ValueError as e:
        print(f"ERROR: Invalid configuration: {e}")
        sys.exit(2)

    try:
        image = load_image(args.image_path)
    except ValueError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    image_name = Path(args.image_path).name or 'image'
    debug = DebugContext(enabled=True, output_dir=args.log_dir, image_name=image_name) if args.visual_log else None

    result = service.process_image(image, debug=debug)
    output_path = Path(args.output) if args.output else Path(f'processed_{Path(image_name).stem}.png')
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(encode_png(result.image))

    print(json.dumps(result.to_dict(), indent=2))
    print(f"\nOutput saved to: {output_path}")

    if debug:
        log_path = debug.save_log(result.image)
        if log_path:
            print(f"Visual log saved to: {log_path}")


if __name__ == '__main__':
    main()
