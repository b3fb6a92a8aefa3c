#!/usr/bin/env python3
"""
Command-line barcode scanner.

    foodscan-scan --image label.jpg --lookup
    foodscan-scan --camera 0 --timeout 30
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from foodscan.capture import AcceptedBarcode, CaptureManager, ImageUpload
from foodscan.capture.sources import camera_opener
from foodscan.config import get_settings
from foodscan.core.exceptions import AppException
from foodscan.products import ProductClient


logger = logging.getLogger(__name__)


async def scan_image(manager: CaptureManager, path: Path):
    if not path.exists():
        print(f"❌ ERROR: Image not found: {path}")
        return None
    return await manager.open_still_image_capture(ImageUpload.from_path(path))


async def scan_camera(manager: CaptureManager, timeout: float):
    print("📷 Point the camera at a barcode (Ctrl+C to quit)")
    handle = await manager.open_live_capture()
    try:
        if timeout > 0:
            return await asyncio.wait_for(handle.wait_for_result(), timeout)
        return await handle.wait_for_result()
    except asyncio.TimeoutError:
        print(f"⏱️ No barcode confirmed within {timeout:.0f}s")
        return None
    finally:
        handle.close()


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    camera_index = settings.camera_index if args.camera is None else args.camera
    manager = CaptureManager(settings, opener=camera_opener(camera_index))

    try:
        if args.image:
            outcome = await scan_image(manager, Path(args.image))
        else:
            outcome = await scan_camera(manager, args.timeout)
    except AppException as e:
        print(f"❌ ERROR: {e.message}")
        return 1

    if not isinstance(outcome, AcceptedBarcode):
        if outcome is not None:
            print(f"❌ {outcome.message}")
        return 1

    print(f"✅ Barcode: {outcome.code} ({outcome.symbology or 'unknown'})")

    if args.lookup:
        try:
            product = await ProductClient().fetch_product(outcome.code)
        except AppException as e:
            print(f"⚠️ {e.message}")
            return 0
        print(f"🛒 {product.product_name or 'Unnamed product'} - {product.brands or 'unknown brand'}")
        if product.nutriscore_grade:
            print(f"   Nutri-Score: {product.nutriscore_grade.upper()}")

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scan a product barcode")
    parser.add_argument("--image", help="Decode a still image instead of the camera")
    parser.add_argument("--camera", type=int, default=None, help="Camera device index")
    parser.add_argument("--timeout", type=float, default=0, help="Give up after N seconds (0 = never)")
    parser.add_argument("--lookup", action="store_true", help="Fetch product data for the barcode")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main() -> None:
    args = build_parser().parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )

    try:
        sys.exit(asyncio.run(run(args)))
    except KeyboardInterrupt:
        print("\n🛑 Scan cancelled")
        sys.exit(130)


if __name__ == "__main__":
    main()
