"""CLI tool to enroll a new user."""

import argparse
import logging
import sys
from pathlib import Path

import requests

# Add parent directory to path to import face_attendance modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from face_attendance.config import CAMERA_INDEX, SAMPLES_PER_POSE
from face_attendance.capture import Camera
from face_attendance.recognizer import EnrollmentError, FaceRecognizer
from face_attendance.utils import WindowDisplay

IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.bmp'}


def enroll_from_images(recognizer, username, image_dir):
    """Enroll a user from the face images in a directory."""
    image_paths = sorted(p for p in Path(image_dir).iterdir() if p.suffix.lower() in IMAGE_EXTENSIONS)
    if len(image_paths) == 0:
        raise EnrollmentError(f"No images found in {image_dir}")

    print(f"\nGenerating face descriptors from {len(image_paths)} image(s)...")
    descriptors = []
    for img_path in image_paths:
        detection = recognizer.encode_image(img_path)
        if detection is not None:
            descriptors.append(detection.descriptor)
            print(f"  ✓ Encoded: {img_path}")
        else:
            print(f"  ✗ No usable face in: {img_path}")

    if len(descriptors) == 0:
        raise EnrollmentError("No valid face descriptors generated. "
                              "Please ensure faces are visible in the images.")

    recognizer.replace(username, descriptors)
    return len(descriptors)


def main():
    """Enroll a new user."""
    parser = argparse.ArgumentParser(description="Enroll a user by guided camera capture or from images")
    parser.add_argument("username", nargs="?", help="Name to enroll (prompted if omitted)")
    parser.add_argument("--images", type=str, default=None,
                        help="Directory of face images to enroll from instead of the camera")
    parser.add_argument("--camera", type=int, default=CAMERA_INDEX, help="Webcam index")
    parser.add_argument("--samples-per-pose", type=int, default=SAMPLES_PER_POSE,
                        help="Samples captured for each pose (default: %(default)s)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("=== User Enrollment ===")

    username = (args.username or input("Enter username: ")).strip()
    if not username:
        print("Error: Username cannot be empty")
        return

    recognizer = FaceRecognizer(camera=Camera(args.camera), samples_per_pose=args.samples_per_pose)
    if username in recognizer.database:
        print(f"Note: existing samples for '{username}' will be replaced")

    print("Loading face models...")
    try:
        recognizer.init()
    except (OSError, RuntimeError, requests.RequestException) as e:
        print(f"Error loading face models: {e}")
        return

    try:
        if args.images:
            count = enroll_from_images(recognizer, username, args.images)
        else:
            display = WindowDisplay("Enrollment", on_quit=recognizer.stop)
            recognizer.display = display

            def on_progress(progress):
                pose_name = recognizer.pose_instructions[progress.pose_index][0]
                print(f"  ✓ {pose_name}: {progress.pose_count}/{recognizer.samples_per_pose} "
                      f"(total {progress.total})")

            print("\nFollow the on-screen pose instructions. Press 'q' to stop early.")
            try:
                count = recognizer.enroll(username, on_progress=on_progress)
            finally:
                display.close()
    except KeyboardInterrupt:
        recognizer.stop()
        print("\nEnrollment cancelled by user")
        return
    except RuntimeError as e:  # camera failures and EnrollmentError
        print(f"Error: {e}")
        return

    print(f"✓ User '{username}' enrolled successfully with {count} sample(s)!")


if __name__ == "__main__":
    main()
