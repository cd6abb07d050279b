#!/usr/bin/env python3
"""
passportify - Passport Photo Pipeline
Command line entry point
"""

import warnings
import os

# Suppress warnings
os.environ['ORT_LOGGING_LEVEL'] = '3'
warnings.filterwarnings('ignore')

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from .compositor import BackgroundSpec
from .config import BACKGROUND_COLORS, PhotoFormatSpec, PipelineConfig, REGISTRY
from .exceptions import PassportPhotoError
from .imaging import decode_image, encode_image
from .processor import PhotoProcessor

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="passportify",
        description="Passport photo maker: background removal, face-anchored crop, background substitution",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""\
Formats: {', '.join(REGISTRY.keys())} or --size WxH --unit mm|cm|inch
Backgrounds: {', '.join(BACKGROUND_COLORS)}, #RRGGBB, an image path, or 'none'

Examples:
  passportify photo.jpg --format 35x45 --background white
  passportify photo.jpg --size 2x2 --unit inch --strategy opencv -o out.png
""",
    )
    p.add_argument("input", help="Input image path")
    p.add_argument("-o", "--output", default=None, help="Output path (default: <input>_passport.png)")
    p.add_argument("--format", dest="format_key", default=None, choices=REGISTRY.keys(),
                   help="Photo format from the registry")
    p.add_argument("--size", default=None, help="Custom size as WxH, e.g. 35x45")
    p.add_argument("--unit", default="mm", help="Unit of --size: mm, cm or inch (default mm)")
    p.add_argument("--dpi", type=int, default=None, help="Print resolution (default from config)")
    p.add_argument("--strategy", default=None,
                   help="Removal strategy: auto, opencv, neural, managed (default from config)")
    p.add_argument("--background", default="none", help="Background color, image path or 'none'")
    p.add_argument("--bg-scale", type=float, default=1.0, help="Background image scale (default 1.0)")
    p.add_argument("--bg-offset-x", type=float, default=0.0, help="Background offset, -1 to 1")
    p.add_argument("--bg-offset-y", type=float, default=0.0, help="Background offset, -1 to 1")
    p.add_argument("--brightness", type=float, default=0, help="Brightness, -100 to 100")
    p.add_argument("--contrast", type=float, default=1.0, help="Contrast multiplier")
    p.add_argument("--saturation", type=float, default=1.0, help="Saturation multiplier")
    p.add_argument("--border", type=int, default=None, help="Black border width in pixels")
    p.add_argument("--debug", action="store_true", help="Write intermediate masks to the debug directory")
    return p


def parse_size(size: str, unit: str, dpi: int) -> PhotoFormatSpec:
    try:
        width, height = (float(v) for v in size.lower().split('x'))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid size '{size}', expected WxH")
    return PhotoFormatSpec(width, height, unit, dpi, key=size, label=f"{size} {unit}")


def parse_background(args) -> BackgroundSpec:
    value = args.background.strip()
    if value.lower() == 'none':
        return BackgroundSpec.none()
    if value.lower() in BACKGROUND_COLORS:
        return BackgroundSpec.solid(BACKGROUND_COLORS[value.lower()])
    if os.path.isfile(value):
        return BackgroundSpec.from_image(
            Path(value).read_bytes(),
            scale=args.bg_scale,
            offset_x=args.bg_offset_x,
            offset_y=args.bg_offset_y,
        )
    return BackgroundSpec.solid(value)


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    args = build_parser().parse_args(argv)

    config = PipelineConfig()
    overrides = {}
    if args.dpi is not None:
        overrides['dpi'] = args.dpi
    if args.strategy:
        overrides['removal_strategy'] = args.strategy
    if args.border is not None:
        overrides['border_width'] = args.border
    if args.debug:
        overrides['debug'] = True
    input_path = Path(args.input)
    output_path = Path(args.output) if args.output else input_path.with_name(f"{input_path.stem}_passport.png")

    processor = None
    try:
        config = replace(config, **overrides)
        if args.size:
            fmt = parse_size(args.size, args.unit, config.dpi)
        else:
            fmt = args.format_key

        if not input_path.exists():
            logger.error(f"Could not find {input_path}")
            return 1

        image = decode_image(input_path.read_bytes())
        processor = PhotoProcessor(config)
        result = processor.process(
            image,
            fmt,
            background=parse_background(args),
            adjustments={
                'brightness': args.brightness,
                'contrast': args.contrast,
                'saturation': args.saturation,
            },
        )

        out_format = 'jpeg' if output_path.suffix.lower() in ('.jpg', '.jpeg') else 'png'
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(encode_image(result.photo, out_format, dpi=config.dpi))
        logger.info(f"Saved {output_path} ({result.photo.shape[1]}x{result.photo.shape[0]}px, "
                    f"strategy: {result.strategy})")
        return 0
    except argparse.ArgumentTypeError as e:
        logger.error(str(e))
        return 2
    except PassportPhotoError as e:
        logger.error(f"Processing failed: {e}")
        return 1
    finally:
        if processor is not None:
            processor.close()


if __name__ == "__main__":
    sys.exit(main())
