"""Main application: live face verification loop."""

import argparse
import logging
import sys

import requests

from face_attendance.asset_cache import AssetCache
from face_attendance.capture import Camera
from face_attendance.config import CAMERA_INDEX, DISTANCE_THRESHOLD, SECOND_BEST_MARGIN
from face_attendance.db import FaceDatabase
from face_attendance.engine import FaceEngine
from face_attendance.recognizer import FaceRecognizer, UNKNOWN
from face_attendance.utils import WindowDisplay


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Verify faces from the webcam against enrolled users")
    parser.add_argument("--camera", type=int, default=CAMERA_INDEX,
                        help="Webcam index")
    parser.add_argument("--threshold", type=float, default=DISTANCE_THRESHOLD,
                        help="Max descriptor distance for a match (default: %(default)s)")
    parser.add_argument("--margin", type=float, default=SECOND_BEST_MARGIN,
                        help="Min gap between best and second-best user (default: %(default)s)")
    parser.add_argument("--sync-assets", action="store_true",
                        help="Refresh the offline asset cache before starting")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv=None):
    """Run the verification loop."""
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    asset_cache = AssetCache()
    if args.sync_assets:
        print("Syncing offline asset cache...")
        asset_cache.install()
        asset_cache.activate()

    database = FaceDatabase()
    if len(database) == 0:
        print("Warning: No users enrolled. Please run 'python scripts/enroll.py' first.")
        return

    print(f"Loaded {len(database)} user(s)")
    for username in database.names():
        print(f"  - {username}: {len(database.get(username))} descriptor(s)")

    recognizer = FaceRecognizer(camera=Camera(args.camera),
                                engine=FaceEngine(asset_cache=asset_cache),
                                database=database)
    recognizer.set_thresholds(args.threshold, args.margin)
    display = WindowDisplay("Face Verification", on_quit=recognizer.stop)
    recognizer.display = display

    print("Loading face models...")
    try:
        recognizer.init()
    except (OSError, RuntimeError, requests.RequestException) as e:
        print(f"Error: Failed to load face models: {e}")
        sys.exit(1)

    last_message = None

    def on_result(result):
        nonlocal last_message
        if result.name != UNKNOWN:
            message = f"AUTHORIZED: {result.name}"
        elif result.distance > 0:
            message = "DENIED"
        else:
            message = "No face detected"

        # Only report changes
        if message != last_message:
            print(f"{message} (dist: {result.distance:.3f})" if result.distance else message)
            last_message = message

    print("Starting verification loop...")
    print("Press 'q' to quit\n")

    try:
        recognizer.verify(on_result=on_result)
    except KeyboardInterrupt:
        print("\nInterrupted by user")
    except RuntimeError as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        display.close()
        asset_cache.wait_for_refresh(timeout=5)
        print("Camera released. Exiting.")


if __name__ == "__main__":
    main()
